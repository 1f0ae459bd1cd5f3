"""Backfill historical daily prices into the price point cache."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

import pandas as pd

from app.core.errors import PriceSourceError
from app.providers.prices import CoinGeckoPriceSource
from app.services.price_points import PricePointCache

logger = logging.getLogger(__name__)


def daily_average_prices(samples: Sequence[tuple[datetime, float]]) -> dict[str, float]:
    """Average intraday samples into one price per UTC calendar day."""

    if not samples:
        return {}
    frame = pd.DataFrame(samples, columns=["timestamp", "price"])
    frame["timestamp"] = pd.to_datetime(frame["timestamp"], utc=True)
    daily = frame.set_index("timestamp")["price"].resample("1D").mean().dropna()
    return {stamp.date().isoformat(): float(value) for stamp, value in daily.items()}


async def backfill_price_history(
    cache: PricePointCache,
    source: CoinGeckoPriceSource,
    symbols: Sequence[str],
    *,
    days: int = 30,
    now: Optional[datetime] = None,
) -> list[str]:
    """Fetch ``days`` of history per symbol and merge daily averages.

    Returns the dates that were written. A symbol whose history cannot be
    fetched is logged and skipped.
    """

    end = now or datetime.now(timezone.utc)
    start = end - timedelta(days=days)

    by_date: dict[str, dict[str, float]] = {}
    for symbol in symbols:
        try:
            samples = await source.fetch_market_chart(symbol, start, end)
        except PriceSourceError as exc:
            logger.error("Skipping %s history: %s", symbol, exc)
            continue
        for day, price in daily_average_prices(samples).items():
            by_date.setdefault(day, {})[symbol] = price
        logger.info("Fetched %d %s price samples", len(samples), symbol)

    for day in sorted(by_date):
        cache.merge(day, prices=by_date[day])
    return sorted(by_date, reverse=True)


__all__ = ["backfill_price_history", "daily_average_prices"]
