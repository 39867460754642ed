"""
Life simulation client.

Fetches "what is this person doing right now" activity snapshots from the
service's /simulate endpoint and keeps them in a TTL cache so repeated
requests for the same subject do not hit the network.

Data flow for ``get_life_simulation(config)``:
1. Derive the cache key from (name, residence name, current_time)
2. Unless force_refresh, return the cached activity if still fresh
3. Otherwise POST the config, validate the body into ActivityResponse
4. Store it under the key (replacing any previous entry) and return it

A failed fetch raises SimulatorError and leaves the cache untouched.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

import httpx
from pydantic import BaseModel, ValidationError

from .cache import ResponseCache, epoch_ms
from .config import ClientConfig
from .logging_utils import ConsoleLogger, LoggerSink
from .schemas import ActivityResponse, Location, SimulationConfig
from .transport import SimulatorError, post_simulation

_REQUIRED_FIELDS = ("residence", "office", "occupation")


class ConfigurationError(ValueError):
    """Raised when a simulation config is missing required fields."""


def iso_now() -> str:
    """Current UTC time in the service's ISO format (millisecond precision, Z suffix)."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _as_dict(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(exclude_none=True)
    return value


class LifeSimulatorClient:
    """Simulation fetch client with a per-subject TTL cache."""

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        api_key: Optional[str] = None,
        default_simulation_config: Optional[Mapping[str, Any]] = None,
        logger: Optional[LoggerSink] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        cache: Optional[ResponseCache] = None,
        clock: Callable[[], int] = epoch_ms,
        single_flight: bool = True,
    ):
        """Initialize the client.

        Args:
            config: Explicit configuration (defaults to ClientConfig.from_env()).
            api_key: Overrides the configured credential.
            default_simulation_config: Values merged under partial configs by
                                       merge_with_default_config().
            logger: Log sink; defaults to a ConsoleLogger prefixed "LifeSimulator".
            http_client: Optional shared httpx.AsyncClient (not closed by us).
            cache: Pre-built cache; otherwise one is created from the config.
            clock: Epoch-milliseconds source for cache timestamps.
            single_flight: Hold a per-key lock around lookup+fetch so
                           overlapping misses for one key fetch only once.
                           When False, overlapping misses both fetch and the
                           later store wins.
        """
        if config is None:
            config = ClientConfig.from_env(api_key=api_key)
        elif api_key:
            config = config.model_copy(update={"api_key": api_key})
        self.config = config
        self.default_config: Dict[str, Any] = dict(default_simulation_config or {})
        self.logger = logger or ConsoleLogger("LifeSimulator")
        self.http_client = http_client
        self.cache = cache or ResponseCache(
            config.cache_duration_ms,
            key_mode=config.cache_key_mode,
            clock=clock,
        )
        self.single_flight = single_flight

        if self.config.api_key:
            self.logger.info(f"Initialized with API key: {self.config.masked_key()}")
        else:
            self.logger.warn("Initialized without API key - some features may be limited")
        self.logger.info(f"Using API URL: {self.config.root_url}/simulate")

    async def fetch_simulation(self, config: SimulationConfig) -> ActivityResponse:
        """POST one simulation request, bypassing the cache.

        ``current_time`` is filled with "now" on the outgoing body when the
        config leaves it empty; the caller's object is not modified.

        Raises:
            SimulatorError: If the request fails or the body is not an ActivityResponse
        """
        if not config.current_time:
            config = config.model_copy(update={"current_time": iso_now()})

        body = config.model_dump(mode="json", exclude_none=True)
        data = await post_simulation(
            base_url=self.config.root_url,
            api_key=self.config.api_key,
            body=body,
            timeout_ms=self.config.timeout_ms,
            client=self.http_client,
        )

        try:
            return ActivityResponse.model_validate(data)
        except ValidationError as exc:
            raise SimulatorError(500, "Invalid simulation response", str(exc)) from exc

    async def get_life_simulation(
        self,
        config: SimulationConfig,
        force_refresh: bool = False,
    ) -> ActivityResponse:
        """Return a fresh-enough simulation for ``config``, fetching on miss.

        force_refresh always fetches, but still stores the result so the next
        non-forced call can reuse it.
        """
        key = self.cache.key_for(config)
        if not self.single_flight:
            return await self._lookup_or_fetch(key, config, force_refresh)
        async with self.cache.single_flight(key):
            return await self._lookup_or_fetch(key, config, force_refresh)

    async def _lookup_or_fetch(
        self,
        key: str,
        config: SimulationConfig,
        force_refresh: bool,
    ) -> ActivityResponse:
        if not force_refresh:
            cached = self.cache.get_fresh(key)
            if cached is not None:
                self.logger.debug(f"Using cached simulation data for {config.name}")
                return cached

        self.logger.debug(f"Fetching fresh simulation data for {config.name}")
        try:
            fresh = await self.fetch_simulation(config)
        except SimulatorError as exc:
            self.logger.error(f"[{key}] Simulation fetch failed: {exc}")
            raise

        self.cache.store(key, fresh)
        return fresh

    def clear_cache(self) -> None:
        """Drop every cached simulation."""
        self.cache.clear()
        self.logger.debug("Cache cleared")

    def merge_with_default_config(self, partial: Mapping[str, Any]) -> SimulationConfig:
        """Build a complete SimulationConfig from a partial mapping.

        Residence and office are added to ``available_locations`` when the
        partial does not supply any. Partial values win over the defaults
        given at construction; ``current_time`` defaults to now.

        Raises:
            ConfigurationError: If residence, office or occupation is missing
        """
        values = {k: _as_dict(v) for k, v in dict(partial).items()}
        missing = [name for name in _REQUIRED_FIELDS if not values.get(name)]
        if missing:
            raise ConfigurationError(
                "Configuration must include residence, office, and occupation "
                f"(missing: {', '.join(missing)})"
            )

        if not values.get("available_locations"):
            try:
                residence = Location.model_validate(values["residence"])
                office = Location.model_validate(values["office"])
            except ValidationError as exc:
                raise ConfigurationError(f"Invalid residence or office location: {exc}") from exc
            values["available_locations"] = {
                residence.name: values["residence"],
                office.name: values["office"],
            }

        merged = {k: _as_dict(v) for k, v in self.default_config.items()}
        merged.update(values)
        merged["current_time"] = values.get("current_time") or iso_now()

        try:
            return SimulationConfig.model_validate(merged)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid simulation configuration: {exc}") from exc


def create_life_simulator_client(config: Optional[ClientConfig] = None, **kwargs) -> LifeSimulatorClient:
    """Create a standalone LifeSimulatorClient."""
    return LifeSimulatorClient(config, **kwargs)


__all__ = [
    "ConfigurationError",
    "LifeSimulatorClient",
    "create_life_simulator_client",
    "iso_now",
]
