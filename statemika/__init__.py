"""
statemika - resilient client for the State of Mika data service.

Two entry points:
- QueryClient: free-text knowledge / market-data queries with tool routing
  and a single web-search fallback
- LifeSimulatorClient: per-subject life-simulation snapshots behind a TTL cache

No global config. Every client takes an explicit ClientConfig (or builds one
from the environment when asked).
"""

__version__ = "0.2.0"

from .config import ClientConfig, CacheKeyMode
from .logging_utils import ConsoleLogger, LoggerSink, NullLogger

# Schemas
from .schemas import (
    Location,
    SimulationConfig,
    ActivityResponse,
    ActivityDetails,
    Incident,
    WeatherInfo,
    TransitInfo,
    TransitRoute,
    QueryResult,
    QueryErrorKind,
    RouteInfo,
)

# Clients
from .query_client import (
    QueryClient,
    QueryOptions,
    RoutingStage,
    WEB_SEARCH_TOOL,
    create_query_client,
)
from .cache import ResponseCache, CacheEntry
from .transport import SimulatorError
from .simulator import ConfigurationError, LifeSimulatorClient, create_life_simulator_client
from .agents import (
    AgentContext,
    LifeSimulatorAdapter,
    ThoughtLog,
    create_life_simulator_adapter,
    game_location_to_sim_location,
)

__all__ = [
    # Configuration and logging
    "ClientConfig",
    "CacheKeyMode",
    "ConsoleLogger",
    "LoggerSink",
    "NullLogger",
    # Schemas
    "Location",
    "SimulationConfig",
    "ActivityResponse",
    "ActivityDetails",
    "Incident",
    "WeatherInfo",
    "TransitInfo",
    "TransitRoute",
    "QueryResult",
    "QueryErrorKind",
    "RouteInfo",
    # Query routing
    "QueryClient",
    "QueryOptions",
    "RoutingStage",
    "WEB_SEARCH_TOOL",
    "create_query_client",
    # Simulation + cache
    "ResponseCache",
    "CacheEntry",
    "LifeSimulatorClient",
    "create_life_simulator_client",
    "SimulatorError",
    "ConfigurationError",
    # Agent adapter
    "AgentContext",
    "LifeSimulatorAdapter",
    "ThoughtLog",
    "create_life_simulator_adapter",
    "game_location_to_sim_location",
]
