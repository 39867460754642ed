"""Tests for the agent adapter (context mapping and applying simulations)."""

import pytest

from statemika import create_life_simulator_adapter, create_life_simulator_client, create_query_client
from statemika.agents import (
    AgentContext,
    LifeSimulatorAdapter,
    ThoughtLog,
    game_location_to_sim_location,
)
from statemika.config import ClientConfig
from statemika.logging_utils import NullLogger
from statemika.schemas import ActivityResponse
from statemika.simulator import LifeSimulatorClient


def make_adapter() -> LifeSimulatorAdapter:
    client = LifeSimulatorClient(ClientConfig(api_key="k"), logger=NullLogger())
    return LifeSimulatorAdapter(client, logger=NullLogger())


def make_simulation(incident=None) -> ActivityResponse:
    body = {
        "activity": {
            "main_action": "Walking to the cafe",
            "location": {"current": "Home", "destination": "Cafe"},
            "reason": "Needs coffee",
            "narrative": "Mika strolls down the street.",
            "details": {
                "weather": {"condition": "Sunny", "temperature": 21},
                "transit_info": {
                    "routes": [{"line_name": "Bus 12", "duration_minutes": 9, "transfers": 1}]
                },
            },
        }
    }
    if incident:
        body["incident"] = incident
    return ActivityResponse.model_validate(body)


def test_location_conversion_handles_both_coordinate_shapes():
    from_dict = game_location_to_sim_location(
        {"name": "Cafe", "coordinates": {"lat": 35.6, "lng": 139.7}, "tags": ["leisure", "food"]}
    )
    from_pair = game_location_to_sim_location({"name": "Office", "coordinates": [1.5, 2.5], "type": "business"})
    bare = game_location_to_sim_location({"name": "Nowhere"})

    assert (from_dict.lat, from_dict.lon, from_dict.role) == (35.6, 139.7, "leisure")
    assert (from_pair.lat, from_pair.lon, from_pair.type) == (1.5, 2.5, "business")
    assert (bare.lat, bare.lon, bare.type, bare.role) == (0.0, 0.0, "unknown", None)


def test_create_config_from_agent_uses_home_work_and_world():
    adapter = make_adapter()
    context = AgentContext(
        agent={
            "name": "Mika",
            "age": 27,
            "occupation": "Barista",
            "location": {"name": "Street", "coordinates": [1, 1]},
            "home": {"name": "Apartment", "coordinates": [2, 2], "type": "residential"},
            "work": {"name": "Cafe", "coordinates": [3, 3], "type": "business"},
        },
        world={
            "city": "Tokyo",
            "country": "Japan",
            "timezone": "Asia/Tokyo",
            "locations": [{"name": "Park", "coordinates": [4, 4]}, {"name": "Cafe", "type": "other"}],
        },
    )

    config = adapter.create_config_from_agent(context)

    assert config.name == "Mika"
    assert config.age == 27
    assert config.gender == "unknown"
    assert config.residence.name == "Apartment"
    assert config.office.name == "Cafe"
    assert set(config.available_locations) == {"Street", "Apartment", "Cafe", "Park"}
    # An existing entry is not replaced by a world location of the same name.
    assert config.available_locations["Cafe"].type == "business"
    assert config.timezone == "Asia/Tokyo"
    assert config.current_time


def test_create_config_defaults_for_sparse_agent():
    adapter = make_adapter()

    config = adapter.create_config_from_agent(AgentContext(agent={}))

    assert config.name == "Unknown"
    assert config.age == 30
    assert config.occupation == "Unknown"
    assert config.residence.name == config.office.name == "Unknown"
    assert (config.city, config.country, config.timezone) == ("Unknown", "Unknown", "UTC")


def test_apply_simulation_updates_state_and_memory():
    adapter = make_adapter()
    memory = ThoughtLog()
    context = AgentContext(agent={"name": "Mika", "state": {}}, memory=memory)

    adapter.apply_simulation_to_agent(context, make_simulation())

    state = context.agent["state"]
    assert state["current_activity"] == "Walking to the cafe"
    assert state["destination"] == "Cafe"
    assert state["reason"] == "Needs coffee"
    assert state["environment"]["weather"] == {"condition": "Sunny", "temperature": 21}
    assert state["transit_options"] == [{"name": "Bus 12", "duration": 9, "transfers": 1}]
    assert memory.thoughts[0]["type"] == "observation"
    assert memory.thoughts[0]["content"] == "Mika strolls down the street."


def test_negative_incident_raises_stress_capped_at_100():
    adapter = make_adapter()
    memory = ThoughtLog()
    context = AgentContext(agent={"name": "Mika", "state": {"emotions": {"stress": 70}}}, memory=memory)
    incident = {"type": "negative", "severity": 2, "description": "Spilled coffee", "impact_duration": 30}

    adapter.apply_simulation_to_agent(context, make_simulation(incident))

    state = context.agent["state"]
    assert state["emotions"]["stress"] == 100
    assert state["active_incidents"][0]["remaining_duration"] == 30
    assert memory.thoughts[-1]["type"] == "negative_event"
    assert memory.thoughts[-1]["metadata"] == {"severity": 2, "impact_duration": 30}


def test_positive_incident_raises_happiness():
    adapter = make_adapter()
    context = AgentContext(agent={"name": "Mika", "state": {}})
    incident = {"type": "positive", "severity": 1.5, "description": "Free pastry"}

    adapter.apply_simulation_to_agent(context, make_simulation(incident))

    assert context.agent["state"]["emotions"] == {"happiness": 30}


def test_agent_without_state_only_gets_thoughts():
    adapter = make_adapter()
    memory = ThoughtLog()
    context = AgentContext(agent={"name": "Ghost"}, memory=memory)

    adapter.apply_simulation_to_agent(context, make_simulation())

    assert "state" not in context.agent
    assert len(memory.thoughts) == 1


@pytest.mark.asyncio
async def test_run_agent_life_cycle_fetches_and_applies(monkeypatch):
    bodies = []

    async def fake_post_simulation(**kwargs):
        bodies.append(kwargs["body"])
        return make_simulation().model_dump()

    monkeypatch.setattr("statemika.simulator.post_simulation", fake_post_simulation)
    adapter = make_adapter()
    context = AgentContext(agent={"name": "Mika", "occupation": "Barista", "state": {}})

    returned = await adapter.run_agent_life_cycle(context)

    assert returned is context
    assert bodies[0]["name"] == "Mika"
    assert context.agent["state"]["current_activity"] == "Walking to the cafe"


def test_lifecycle_hooks_adopt_engine_logger_and_clear_cache():
    class Engine:
        def __init__(self):
            self.logger = NullLogger()

        def get_logger(self):
            return self.logger

    adapter = make_adapter()
    adapter.client.cache.store("k", make_simulation())
    engine = Engine()

    adapter.on_initialize(engine)
    assert adapter.logger is engine.logger
    assert adapter.client.logger is engine.logger

    adapter.on_disable()
    assert len(adapter.client.cache) == 0


def test_factories_wire_shared_config():
    config = ClientConfig(api_key="k", cache_duration_ms=1_000)
    client = create_life_simulator_client(config, logger=NullLogger())
    adapter = create_life_simulator_adapter(client, logger=NullLogger())
    query_client = create_query_client(config, logger=NullLogger())

    assert adapter.client is client
    assert client.cache.duration_ms == 1_000
    assert query_client.config.api_key == "k"

    # Without a client the adapter builds one from the given kwargs.
    built = create_life_simulator_adapter(config=config, logger=NullLogger())
    assert built.client.config is config
