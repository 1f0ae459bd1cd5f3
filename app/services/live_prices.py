"""Per-symbol live price cache with stale-while-revalidate and request coalescing."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable, Mapping, Optional

from opentelemetry import metrics

from app.core.errors import PriceSourceError, PriceUnavailableError, UnknownSymbolError
from app.providers.prices import PriceSource

logger = logging.getLogger(__name__)

_meter = metrics.get_meter(__name__)
_upstream_fetches = _meter.create_counter(
    "fund_ledger.price_fetches",
    description="Upstream price fetches started by the live price service",
)

DEFAULT_FRESH_WINDOW = 30.0
DEFAULT_STALE_WINDOW = 30 * 60.0
DEFAULT_MIN_FETCH_INTERVAL = 10.0


@dataclass
class PriceQuote:
    symbol: str
    price: Decimal
    fetched_at: Optional[float] = None
    cached: bool = False
    stale: bool = False
    error: Optional[str] = None


@dataclass
class LivePriceEntry:
    """Cache slot for one symbol. ``in_flight`` is the single shared fetch."""

    price: Optional[Decimal] = None
    fetched_at: Optional[float] = None
    last_fetch_started_at: Optional[float] = None
    last_successful_fetch_started_at: Optional[float] = None
    in_flight: Optional[asyncio.Task] = None
    last_error: Optional[str] = None


class LivePriceService:
    """Serve live prices from ``source`` with a three-band freshness policy.

    * age below ``fresh_window``: cached value, no upstream call.
    * age below ``stale_window``: cached value, plus one detached refresh when
      none is running and ``min_fetch_interval`` has passed since the last attempt.
    * older or missing: wait for the in-flight fetch, starting one if needed.

    When ``known_symbols`` is given, any other symbol that is not a stable
    asset raises :class:`UnknownSymbolError` without touching the cache. A
    symbol whose first fetch fails keeps no cache slot.
    """

    def __init__(
        self,
        source: PriceSource,
        *,
        fresh_window: float = DEFAULT_FRESH_WINDOW,
        stale_window: float = DEFAULT_STALE_WINDOW,
        min_fetch_interval: float = DEFAULT_MIN_FETCH_INTERVAL,
        stable_prices: Optional[Mapping[str, Decimal]] = None,
        default_prices: Optional[Mapping[str, Decimal]] = None,
        known_symbols: Optional[Iterable[str]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if stale_window < fresh_window:
            raise ValueError("stale_window must not be shorter than fresh_window")
        self._source = source
        self.fresh_window = fresh_window
        self.stale_window = stale_window
        self.min_fetch_interval = min_fetch_interval
        self._stable = {symbol.upper(): Decimal(value) for symbol, value in (stable_prices or {}).items()}
        self._defaults = {symbol.upper(): Decimal(value) for symbol, value in (default_prices or {}).items()}
        self._known = {symbol.upper() for symbol in known_symbols} if known_symbols is not None else None
        self._clock = clock
        self._entries: dict[str, LivePriceEntry] = {}
        self._background: set[asyncio.Task] = set()

    def entry(self, symbol: str) -> Optional[LivePriceEntry]:
        return self._entries.get(symbol.upper())

    async def get_price(self, symbol: str) -> PriceQuote:
        key = symbol.upper()
        if key in self._stable:
            return PriceQuote(symbol=key, price=self._stable[key])

        if self._known is not None and key not in self._known:
            raise UnknownSymbolError(key)

        entry = self._entries.setdefault(key, LivePriceEntry())
        now = self._clock()
        if entry.price is not None and entry.fetched_at is not None:
            age = now - entry.fetched_at
            if age < self.fresh_window:
                return self._cached_quote(key, entry)
            if age < self.stale_window:
                if entry.in_flight is None and self._may_refresh(entry, now):
                    self._refresh_in_background(key, entry)
                return self._cached_quote(key, entry)

        task = entry.in_flight or self._start_fetch(key, entry)
        try:
            price = await asyncio.shield(task)
        except PriceSourceError as exc:
            return self._fallback(key, entry, exc)
        finally:
            self._forget_if_empty(key, entry)
        return PriceQuote(symbol=key, price=price, fetched_at=entry.fetched_at)

    async def get_price_value(self, symbol: str) -> Decimal:
        return (await self.get_price(symbol)).price

    async def wait_for_background(self) -> None:
        """Wait until every detached refresh has finished."""

        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._background):
            task.cancel()
        await self.wait_for_background()

    def _forget_if_empty(self, key: str, entry: LivePriceEntry) -> None:
        if entry.price is None and entry.in_flight is None and self._entries.get(key) is entry:
            del self._entries[key]

    def _may_refresh(self, entry: LivePriceEntry, now: float) -> bool:
        last = entry.last_fetch_started_at
        return last is None or now - last >= self.min_fetch_interval

    def _start_fetch(self, key: str, entry: LivePriceEntry) -> asyncio.Task:
        entry.last_fetch_started_at = self._clock()
        task = asyncio.create_task(self._fetch(key, entry, entry.last_fetch_started_at))
        entry.in_flight = task
        return task

    def _refresh_in_background(self, key: str, entry: LivePriceEntry) -> None:
        task = self._start_fetch(key, entry)
        self._background.add(task)
        task.add_done_callback(self._background_done)

    def _background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None and not isinstance(exc, PriceSourceError):
            logger.error("Background price refresh failed", exc_info=exc)

    async def _fetch(self, key: str, entry: LivePriceEntry, started_at: float) -> Decimal:
        _upstream_fetches.add(1, {"symbol": key})
        try:
            price = await self._source.fetch_price(key)
        except PriceSourceError as exc:
            entry.last_error = str(exc)
            logger.warning("Price fetch for %s failed: %s", key, exc)
            raise
        finally:
            entry.in_flight = None

        entry.price = price
        entry.fetched_at = self._clock()
        entry.last_successful_fetch_started_at = started_at
        entry.last_error = None
        return price

    def _cached_quote(self, key: str, entry: LivePriceEntry) -> PriceQuote:
        assert entry.price is not None
        return PriceQuote(
            symbol=key,
            price=entry.price,
            fetched_at=entry.fetched_at,
            cached=True,
            error=entry.last_error,
        )

    def _fallback(self, key: str, entry: LivePriceEntry, exc: Exception) -> PriceQuote:
        if entry.price is not None:
            return PriceQuote(
                symbol=key,
                price=entry.price,
                fetched_at=entry.fetched_at,
                cached=True,
                stale=True,
                error=str(exc),
            )
        if key in self._defaults:
            logger.warning("Using configured default price for %s", key)
            return PriceQuote(symbol=key, price=self._defaults[key], stale=True, error=str(exc))
        raise PriceUnavailableError(key, str(exc)) from exc


__all__ = [
    "DEFAULT_FRESH_WINDOW",
    "DEFAULT_MIN_FETCH_INTERVAL",
    "DEFAULT_STALE_WINDOW",
    "LivePriceEntry",
    "LivePriceService",
    "PriceQuote",
]
