"""
Example: Knowledge / Market Data Queries
========================================

WHAT THIS SHOWS:
- Relevance detection (is this a market/crypto/news question?)
- Auto-routing with the single web-search fallback
- The bitcoin valuation shortcut (straight to web search)
- Explicit tool selection (no fallback)

RUN:
    STATE_OF_MIKA_API_KEY=... python -m examples.market_query.run
    python -m examples.market_query.run "What is the current price of Solana?" --debug
"""

import argparse
import asyncio
import time

from statemika import ClientConfig, QueryClient, QueryOptions

DEFAULT_QUERIES = [
    ("What is the current price of Solana?", QueryOptions(session_id="demo-crypto")),
    ("What is the price of Bitcoin?", QueryOptions(session_id="demo-btc")),
    ("What are the latest developments in AI technology?", QueryOptions(session_id="demo-web", force_web_search=True)),
    ("What is photosynthesis?", QueryOptions(session_id="demo-general")),
]


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="State of Mika query demo")
    parser.add_argument("query", nargs="?", help="Single query to run instead of the demo set")
    parser.add_argument("--tool", help="Force a specific tool (disables fallback)")
    parser.add_argument("--web-search", action="store_true", help="Force the web-search tool")
    parser.add_argument("--timeout-ms", type=int, default=None, help="Per-call timeout")
    parser.add_argument("--debug", action="store_true", help="Log raw responses")
    parser.add_argument("--delay", type=float, default=1.0, help="Seconds between demo queries")
    return parser.parse_args()


def preview(value, limit: int = 150) -> str:
    text = value if isinstance(value, str) else repr(value)
    return text[:limit] + ("..." if len(text) > limit else "")


async def run_one(client: QueryClient, text: str, options: QueryOptions) -> bool:
    relevant = client.detect_relevance(text)
    started = time.perf_counter()
    result = await client.query(text, options)
    elapsed = (time.perf_counter() - started) * 1000

    print(f'\n"{text}" (relevant={relevant}, {elapsed:.0f}ms)')
    if result.ok:
        print(f"  -> {preview(result.payload)}")
        if result.route:
            print(f"  routed to {result.route.tool} (confidence {result.route.confidence})")
        return True
    print(f"  !! status={result.status_code} kind={result.error_kind} error={result.error_message}")
    return False


async def main(args: argparse.Namespace) -> None:
    client = QueryClient(ClientConfig.from_env())

    if args.query:
        options = QueryOptions(
            tool=args.tool,
            force_web_search=args.web_search,
            timeout_ms=args.timeout_ms,
            debug=args.debug,
        )
        await run_one(client, args.query, options)
        return

    passed = 0
    for index, (text, options) in enumerate(DEFAULT_QUERIES):
        options.debug = args.debug
        if await run_one(client, text, options):
            passed += 1
        if index < len(DEFAULT_QUERIES) - 1:
            await asyncio.sleep(args.delay)
    print(f"\n{passed}/{len(DEFAULT_QUERIES)} queries succeeded")


if __name__ == "__main__":
    asyncio.run(main(parse_args()))
