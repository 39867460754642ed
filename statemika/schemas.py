"""
Pydantic schemas for the statemika clients.

All wire shapes (simulation request/response) and the uniform query result
are defined here.

Design Philosophy:
- Simulation payloads keep unknown fields (``extra="allow"``) so service-side
  additions survive a round trip through the cache
- QueryResult always carries exactly one of ``payload`` / ``error_message``
- The dynamic ``response`` field of the query endpoint is resolved once, in
  ``normalize_payload``, instead of leaking an untyped value to callers
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ============================================================================
# Simulation Request Schemas
# ============================================================================


class Location(BaseModel):
    """A named place the simulated subject can be at or travel to."""

    model_config = ConfigDict(extra="allow")

    name: str = Field(..., description="Unique location name (used as key in available_locations)")
    lat: float = Field(0.0, description="Latitude")
    lon: float = Field(0.0, description="Longitude")
    type: str = Field("unknown", description="Location category (residential, business, park, ...)")
    role: Optional[str] = Field(None, description="Role for the subject (home, office, recreation)")
    country: Optional[str] = None


class SimulationConfig(BaseModel):
    """Body of POST /simulate.

    Must be complete before it reaches the simulation client; use
    ``LifeSimulatorClient.merge_with_default_config`` to build one from a
    partial mapping.
    """

    model_config = ConfigDict(extra="allow")

    residence: Location
    office: Location
    occupation: str
    available_locations: Dict[str, Location] = Field(default_factory=dict)
    # ISO 8601; defaulted to "now" by the client when absent
    current_time: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    timezone: Optional[str] = None
    gender: Optional[str] = None
    age: Optional[int] = None
    name: Optional[str] = None


# ============================================================================
# Simulation Response Schemas
# ============================================================================


class WeatherInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    condition: str = "unknown"
    temperature: float = 0.0
    details: Dict[str, Any] = Field(default_factory=dict)


class TransitInfo(BaseModel):
    """A single departure on a nearby line."""

    model_config = ConfigDict(extra="allow")

    line_name: str
    delay_minutes: int = 0
    crowding_level: str = "unknown"
    next_departure: Optional[str] = None


class TransitRoute(BaseModel):
    """A suggested route between the current location and the destination."""

    model_config = ConfigDict(extra="allow")

    line_name: str
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None
    duration_minutes: int = 0
    transfers: int = 0
    sections: List[str] = Field(default_factory=list)


class TransitSummary(BaseModel):
    model_config = ConfigDict(extra="allow")

    departures: List[TransitInfo] = Field(default_factory=list)
    routes: List[TransitRoute] = Field(default_factory=list)


class ActivityLocation(BaseModel):
    model_config = ConfigDict(extra="allow")

    current: str
    destination: str


class ActivityContext(BaseModel):
    """Time, weather and transit context attached to an activity."""

    model_config = ConfigDict(extra="allow")

    time: Optional[str] = None
    weather: WeatherInfo = Field(default_factory=WeatherInfo)
    transit_info: TransitSummary = Field(default_factory=TransitSummary)


class ActivityDetails(BaseModel):
    model_config = ConfigDict(extra="allow")

    main_action: str
    location: ActivityLocation
    reason: str = ""
    narrative: str = ""
    details: ActivityContext = Field(default_factory=ActivityContext)


class Incident(BaseModel):
    """Unexpected event layered on top of the activity."""

    model_config = ConfigDict(extra="allow")

    type: str = Field(..., description="'positive' or any other value for a negative event")
    severity: float = Field(0.0, description="Usually 0-5; scales the emotional impact")
    description: str = ""
    impact_duration: int = 0
    affects_next_activity: bool = False


class ActivityResponse(BaseModel):
    """Body returned by POST /simulate."""

    model_config = ConfigDict(extra="allow")

    activity: ActivityDetails
    incident: Optional[Incident] = None


# ============================================================================
# Query Result Schemas
# ============================================================================


class QueryErrorKind(str, Enum):
    """Failure taxonomy for QueryResult."""

    MISSING_CREDENTIAL = "missing_credential"
    BAD_REQUEST = "bad_request"
    UPSTREAM_FAILURE = "upstream_failure"
    # 500 whose detail carries the downstream validation marker
    VALIDATION_FAILURE = "validation_failure"
    # Any other non-200 status
    HTTP_ERROR = "http_error"
    NO_RESPONSE = "no_response"
    TRANSPORT_ERROR = "transport_error"


class RouteInfo(BaseModel):
    """Optional ``route`` block describing which tool the service picked."""

    model_config = ConfigDict(extra="allow")

    tool: Optional[str] = None
    confidence: Optional[float] = None


class QueryResult(BaseModel):
    """Uniform result of one query (success or failure, never raised)."""

    status_code: int = Field(..., description="HTTP-style status; 0 when no response arrived")
    payload: Optional[Union[str, Dict[str, Any], List[Any]]] = None
    error_message: Optional[str] = None
    raw: Any = Field(None, description="Upstream body, for diagnostics")
    error_kind: Optional[QueryErrorKind] = None
    route: Optional[RouteInfo] = None
    tool: Optional[str] = Field(None, description="Tool sent with the request ('' = auto-routing)")
    session_id: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one_outcome(self) -> "QueryResult":
        if (self.payload is None) == (self.error_message is None):
            raise ValueError("QueryResult requires exactly one of payload or error_message")
        return self

    @property
    def ok(self) -> bool:
        return self.status_code == 200 and self.error_message is None


def _coerce_payload(value: Any) -> Union[str, Dict[str, Any], List[Any]]:
    if value is None:
        return ""
    if isinstance(value, (str, dict, list)):
        return value
    return str(value)


def normalize_payload(body: Any) -> Union[str, Dict[str, Any], List[Any]]:
    """Resolve the service's ``response`` field into a single payload value.

    Priority: ``response.processed_response`` > ``response`` > whole body.
    Scalars (numbers, booleans) come back as strings and a missing body as "".
    """

    if isinstance(body, dict):
        response = body.get("response")
        if isinstance(response, dict) and response.get("processed_response") is not None:
            return _coerce_payload(response["processed_response"])
        if response is not None:
            return _coerce_payload(response)
        return body
    return _coerce_payload(body)


__all__ = [
    "Location",
    "SimulationConfig",
    "WeatherInfo",
    "TransitInfo",
    "TransitRoute",
    "TransitSummary",
    "ActivityLocation",
    "ActivityContext",
    "ActivityDetails",
    "Incident",
    "ActivityResponse",
    "QueryErrorKind",
    "RouteInfo",
    "QueryResult",
    "normalize_payload",
]
