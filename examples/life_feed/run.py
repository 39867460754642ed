"""
Example: Life Simulation Feed
=============================

WHAT THIS SHOWS:
- Building a complete SimulationConfig from a partial one
- Fetching a life-simulation snapshot for one subject
- The TTL cache: the second call for the same config never hits the network
- Driving a host agent through the adapter (state, thoughts and incidents)

RUN:
    STATE_OF_MIKA_API_KEY=... python -m examples.life_feed.run
    python -m examples.life_feed.run --subject-key --rounds 3
"""

import argparse
import asyncio
import time

from statemika import (
    AgentContext,
    CacheKeyMode,
    ClientConfig,
    LifeSimulatorAdapter,
    LifeSimulatorClient,
    SimulatorError,
    ThoughtLog,
)


HOME = {"name": "Home", "lat": 40.7128, "lon": -74.0060, "type": "residential", "role": "home"}
OFFICE = {"name": "Office", "lat": 40.7580, "lon": -73.9855, "type": "business", "role": "office"}
PARK = {"name": "Central Park", "lat": 40.7812, "lon": -73.9665, "type": "park", "role": "recreation"}


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Life simulation feed demo")
    parser.add_argument("--rounds", type=int, default=2, help="How many times to request the same subject")
    parser.add_argument("--force", action="store_true", help="Bypass the cache on every round after the first")
    parser.add_argument(
        "--subject-key",
        action="store_true",
        help="Key the cache on subject only (ignore current_time)",
    )
    parser.add_argument("--delay", type=float, default=0.0, help="Seconds to wait between rounds")
    return parser.parse_args()


async def standalone(args: argparse.Namespace) -> None:
    mode = CacheKeyMode.SUBJECT if args.subject_key else CacheKeyMode.SUBJECT_AND_TIME
    config = ClientConfig.from_env(cache_key_mode=mode)
    print(config.display())

    client = LifeSimulatorClient(
        config,
        default_simulation_config={"city": "New York", "country": "USA", "timezone": "America/New_York"},
    )
    sim_config = client.merge_with_default_config(
        {
            "name": "Test User",
            "occupation": "Software Developer",
            "residence": HOME,
            "office": OFFICE,
            "available_locations": {"Home": HOME, "Office": OFFICE, "Central Park": PARK},
            "gender": "non-binary",
            "age": 30,
        }
    )

    for round_no in range(1, args.rounds + 1):
        started = time.perf_counter()
        try:
            simulation = await client.get_life_simulation(sim_config, force_refresh=args.force and round_no > 1)
        except SimulatorError as exc:
            print(f"Round {round_no}: simulation failed: {exc}")
            return
        elapsed = (time.perf_counter() - started) * 1000

        activity = simulation.activity
        print(f"\n=== Round {round_no} ({elapsed:.0f}ms) ===")
        print(f"Activity: {activity.main_action}")
        print(f"Location: {activity.location.current} -> {activity.location.destination}")
        print(f"Reason: {activity.reason}")
        print(f"Weather: {activity.details.weather.condition}, {activity.details.weather.temperature}")
        if simulation.incident:
            print(f"Incident: {simulation.incident.type} (severity {simulation.incident.severity})")
            print(f"  {simulation.incident.description}")

        if args.delay and round_no < args.rounds:
            await asyncio.sleep(args.delay)

    print(f"\nCache: {client.cache.stats()}")


async def with_adapter() -> None:
    adapter = LifeSimulatorAdapter(config=ClientConfig.from_env())
    memory = ThoughtLog()
    context = AgentContext(
        agent={
            "name": "Mika",
            "age": 24,
            "occupation": "Barista",
            "location": {"name": "Shibuya Crossing", "coordinates": [35.6595, 139.7005]},
            "home": {"name": "Apartment", "coordinates": {"lat": 35.6467, "lng": 139.7100}, "type": "residential"},
            "work": {"name": "Cafe", "coordinates": [35.6618, 139.7041], "type": "business", "tags": ["work"]},
            "state": {},
        },
        world={"city": "Tokyo", "country": "Japan", "timezone": "Asia/Tokyo"},
        memory=memory,
    )

    try:
        await adapter.run_agent_life_cycle(context)
    except SimulatorError as exc:
        print(f"Agent cycle failed: {exc}")
        return

    print("\n=== Agent state ===")
    for key, value in context.agent["state"].items():
        print(f"  {key}: {value}")
    print(f"  thoughts: {len(memory.thoughts)}")
    adapter.on_disable()


async def main(args: argparse.Namespace) -> None:
    await standalone(args)
    await with_adapter()


if __name__ == "__main__":
    asyncio.run(main(parse_args()))
