"""
Manual rate lookup — resolves one currency pair from the command line.

Usage:
    python scripts/fetch_rate.py USD NGN

Uses the configured rate store and oracle (ORACLE_MOCK, RATE_STORE_BACKEND),
so it exercises the same tiers as the API.
"""

import asyncio
import json
import sys

from app.services.oracle_client import get_oracle
from app.services.rate_service import RateService
from app.services.rate_store import build_rate_store


async def main(source: str, target: str):
    """Resolve the pair and print the quote with the tier it came from."""
    service = RateService(store=build_rate_store(), oracle=get_oracle())
    resolution = await service.resolve(source, target)
    await service.drain()

    print(f"\n=== {source.upper()} -> {target.upper()} ({resolution.tier.value}) ===")
    print(json.dumps(resolution.quote.model_dump(), indent=2))


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print("Usage: python scripts/fetch_rate.py FROM TO")
        sys.exit(1)
    asyncio.run(main(sys.argv[1], sys.argv[2]))
