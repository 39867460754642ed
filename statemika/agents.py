"""Agent adapter: drive a host's agents with life-simulation snapshots.

The host (a game or simulation engine) describes each agent as plain dicts:

    context = AgentContext(
        agent={"name": "Mika", "occupation": "Barista",
               "location": {"name": "Cafe", "coordinates": [35.66, 139.70]},
               "home": {...}, "work": {...}, "state": {}},
        world={"city": "Tokyo", "country": "Japan", "timezone": "Asia/Tokyo",
               "locations": [...]},
        memory=agent_memory,  # anything with add_thought(dict)
    )

``run_agent_life_cycle`` turns that context into a SimulationConfig, fetches
(or reuses) a simulation, and writes the result back onto ``agent["state"]``
and the agent's memory.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

from .logging_utils import ConsoleLogger, LoggerSink
from .schemas import ActivityResponse, Incident, Location, SimulationConfig
from .simulator import LifeSimulatorClient, iso_now

MAX_EMOTION = 100
EMOTION_PER_SEVERITY = 20


class ThoughtSink(Protocol):
    def add_thought(self, thought: Dict[str, Any]) -> None: ...


@dataclass
class AgentContext:
    """Host-side view of one agent."""

    agent: Dict[str, Any]
    world: Optional[Dict[str, Any]] = None
    memory: Optional[ThoughtSink] = None
    engine: Any = None


@dataclass
class ThoughtLog:
    """Minimal ThoughtSink that just collects thoughts in order."""

    thoughts: list[Dict[str, Any]] = field(default_factory=list)

    def add_thought(self, thought: Dict[str, Any]) -> None:
        self.thoughts.append(thought)


def game_location_to_sim_location(game_location: Dict[str, Any]) -> Location:
    """Convert a host location into a simulator Location.

    Coordinates may be ``{"lat": .., "lng": ..}`` or a ``[lat, lon]`` pair;
    the first tag (if any) becomes the location role.
    """

    lat, lon = 0.0, 0.0
    coordinates = game_location.get("coordinates")
    if coordinates:
        if isinstance(coordinates, dict):
            lat = coordinates.get("lat", 0.0)
            lon = coordinates.get("lng", coordinates.get("lon", 0.0))
        else:
            lat, lon = coordinates[0], coordinates[1]

    tags = game_location.get("tags") or []
    return Location(
        name=game_location.get("name") or "Unknown",
        lat=float(lat),
        lon=float(lon),
        type=game_location.get("type") or "unknown",
        role=tags[0] if tags else None,
        country=game_location.get("country"),
    )


class LifeSimulatorAdapter:
    """Plugs a LifeSimulatorClient into a host engine's agent loop."""

    name = "LifeSimulatorPlugin"

    def __init__(
        self,
        client: Optional[LifeSimulatorClient] = None,
        *,
        logger: Optional[LoggerSink] = None,
        **client_kwargs: Any,
    ):
        self.logger = logger or ConsoleLogger()
        self.client = client or LifeSimulatorClient(logger=self.logger, **client_kwargs)
        self.engine: Any = None

    # ------------------------------------------------------------------
    # Host lifecycle
    # ------------------------------------------------------------------

    def on_initialize(self, engine: Any) -> None:
        """Attach to the host engine, adopting its logger when it offers one."""
        self.engine = engine
        get_logger = getattr(engine, "get_logger", None)
        if callable(get_logger):
            self.logger = get_logger()
            self.client.logger = self.logger
        self.logger.info(f"[{self.name}] Initialized")

    def on_disable(self) -> None:
        self.logger.info(f"[{self.name}] Disabled")
        self.client.clear_cache()

    # ------------------------------------------------------------------
    # Context -> config
    # ------------------------------------------------------------------

    def create_config_from_agent(self, context: AgentContext) -> SimulationConfig:
        """Build a complete SimulationConfig from an agent context.

        Home and work fall back to the agent's current location; world
        locations are added unless a location with the same name exists.
        """
        agent = context.agent
        world = context.world or {}

        location = agent.get("location") or {}
        current = game_location_to_sim_location(
            {
                "name": location.get("name") or "Unknown",
                "coordinates": location.get("coordinates") or [0, 0],
                "type": location.get("type") or "unknown",
                "country": location.get("country"),
            }
        )
        home = game_location_to_sim_location(agent["home"]) if agent.get("home") else current
        work = game_location_to_sim_location(agent["work"]) if agent.get("work") else current

        available: Dict[str, Location] = {current.name: current}
        if agent.get("home"):
            available[home.name] = home
        if agent.get("work"):
            available[work.name] = work
        for world_location in world.get("locations") or []:
            name = world_location.get("name")
            if name and name not in available:
                available[name] = game_location_to_sim_location(world_location)

        return SimulationConfig(
            name=agent.get("name") or "Unknown",
            age=agent.get("age") or 30,
            gender=agent.get("gender") or "unknown",
            occupation=agent.get("occupation") or "Unknown",
            residence=home,
            office=work,
            available_locations=available,
            city=world.get("city") or "Unknown",
            country=world.get("country") or "Unknown",
            timezone=world.get("timezone") or "UTC",
            current_time=iso_now(),
        )

    # ------------------------------------------------------------------
    # Simulation -> agent
    # ------------------------------------------------------------------

    async def get_agent_life_simulation(
        self,
        context: AgentContext,
        force_refresh: bool = False,
    ) -> ActivityResponse:
        config = self.create_config_from_agent(context)
        return await self.client.get_life_simulation(config, force_refresh)

    async def get_life_simulation(
        self,
        config: SimulationConfig,
        force_refresh: bool = False,
    ) -> ActivityResponse:
        return await self.client.get_life_simulation(config, force_refresh)

    def apply_simulation_to_agent(self, context: AgentContext, simulation: ActivityResponse) -> None:
        """Write activity, weather, transit, narrative and incident onto the agent."""
        agent = context.agent
        activity = simulation.activity
        state = agent.get("state")

        if state is not None:
            state["current_activity"] = activity.main_action
            state["destination"] = activity.location.destination
            state["reason"] = activity.reason

            environment = state.setdefault("environment", {})
            environment["weather"] = {
                "condition": activity.details.weather.condition,
                "temperature": activity.details.weather.temperature,
            }

            state["transit_options"] = [
                {
                    "name": route.line_name,
                    "duration": route.duration_minutes,
                    "transfers": route.transfers,
                }
                for route in activity.details.transit_info.routes
            ]

        if context.memory is not None and activity.narrative:
            context.memory.add_thought(
                {
                    "content": activity.narrative,
                    "timestamp": _now(),
                    "type": "observation",
                }
            )

        if simulation.incident is not None:
            self.handle_incident(context, simulation.incident)

        self.logger.debug(f"Applied simulation to agent {agent.get('name')}")

    def handle_incident(self, context: AgentContext, incident: Incident) -> None:
        """Record an incident and apply its emotional impact.

        Positive incidents raise happiness, everything else raises stress,
        by severity * 20, capped at 100.
        """
        agent = context.agent
        positive = incident.type == "positive"

        if context.memory is not None:
            context.memory.add_thought(
                {
                    "content": incident.description,
                    "timestamp": _now(),
                    "type": "positive_event" if positive else "negative_event",
                    "metadata": {
                        "severity": incident.severity,
                        "impact_duration": incident.impact_duration,
                    },
                }
            )

        state = agent.get("state")
        if state is not None:
            state.setdefault("active_incidents", []).append(
                {
                    "type": incident.type,
                    "description": incident.description,
                    "severity": incident.severity,
                    "remaining_duration": incident.impact_duration,
                    "affects_next_activity": incident.affects_next_activity,
                }
            )

            emotions = state.setdefault("emotions", {})
            emotion = "happiness" if positive else "stress"
            emotions[emotion] = min(
                emotions.get(emotion, 0) + incident.severity * EMOTION_PER_SEVERITY,
                MAX_EMOTION,
            )

        self.logger.info(
            f"Applied {incident.type} incident to agent {agent.get('name')}: {incident.description}"
        )

    async def run_agent_life_cycle(
        self,
        context: AgentContext,
        force_refresh: bool = False,
    ) -> AgentContext:
        """Fetch a simulation for the agent, apply it, and return the same context."""
        simulation = await self.get_agent_life_simulation(context, force_refresh)
        self.apply_simulation_to_agent(context, simulation)
        return context


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_life_simulator_adapter(
    client: Optional[LifeSimulatorClient] = None,
    **kwargs: Any,
) -> LifeSimulatorAdapter:
    """Create the engine adapter (wrapping a new client unless one is given)."""
    return LifeSimulatorAdapter(client, **kwargs)


__all__ = [
    "AgentContext",
    "ThoughtLog",
    "ThoughtSink",
    "LifeSimulatorAdapter",
    "create_life_simulator_adapter",
    "game_location_to_sim_location",
]
