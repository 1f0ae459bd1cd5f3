"""Backfill daily average prices from CoinGecko into the price cache."""

from __future__ import annotations

import argparse
import asyncio

from app.config import get_settings
from app.core.logging import setup_logging
from app.services.container import build_coingecko_source, build_price_point_cache
from app.services.history import backfill_price_history


async def _run(symbols: list[str], days: int) -> None:
    settings = get_settings()
    cache = build_price_point_cache(settings)
    source = build_coingecko_source(settings)
    try:
        written = await backfill_price_history(cache, source, symbols, days=days)
    finally:
        await source.aclose()
    print(f"Merged {len(written)} daily price points into {cache.path}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the price cache with historical daily prices")
    parser.add_argument("--symbol", action="append", dest="symbols", help="Symbol to backfill (repeatable)")
    parser.add_argument("--days", type=int, default=30)
    args = parser.parse_args()
    setup_logging()
    settings = get_settings()
    symbols = args.symbols or [s for s in settings.tracked_symbols if s not in settings.stable_prices]
    asyncio.run(_run(symbols, args.days))


if __name__ == "__main__":
    main()
