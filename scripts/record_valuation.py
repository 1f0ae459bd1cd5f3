"""Record today's (or a given day's) fund valuation into the price cache."""

from __future__ import annotations

import argparse
import asyncio
from datetime import date

from app.config import get_settings
from app.core.logging import setup_logging
from app.core.telemetry import setup_telemetry
from app.services.container import build_container


async def _run(day: date | None, tokens_available: float | None) -> None:
    settings = get_settings()
    setup_telemetry(None, settings)
    container = build_container(settings)
    try:
        point = await container.valuation.record(day, tokens_available=tokens_available)
    finally:
        await container.aclose()
    prices = ", ".join(f"{symbol}={value}" for symbol, value in sorted(point.prices.items()))
    print(f"Recorded {point.date}: FUNDS={point.funds_usd} TOKENS_AVAILABLE={point.tokens_available} {prices}")
    currency = container.settings.exchange_rate_currency
    if currency and currency.upper() in point.prices:
        print(f"FUNDS in {currency.upper()}: {point.funds_usd * point.prices[currency.upper()]:.2f}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Merge the daily NAV and asset prices into the price cache")
    parser.add_argument("--date", type=date.fromisoformat, default=None, help="YYYY-MM-DD, defaults to today (UTC)")
    parser.add_argument("--tokens-available", type=float, default=None, help="Unsold fund shares for the day")
    args = parser.parse_args()
    setup_logging()
    asyncio.run(_run(args.date, args.tokens_available))


if __name__ == "__main__":
    main()
