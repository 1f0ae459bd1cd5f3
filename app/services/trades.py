"""Trade reconstruction for an address over a date range."""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Optional

from opentelemetry import trace

from app.config import AppSettings
from app.core.errors import LedgerError, PriceUnavailableError
from app.providers.sui_rpc import SuiRpcClient
from app.services.live_prices import LivePriceService
from app.services.price_points import PricePointCache
from fund_ledger.models import Trade
from fund_ledger.pairing import FeePriceLookup
from fund_ledger.pipeline import reconstruct_trades
from fund_ledger.statistics import TradeStatistics, compute_statistics

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class TradeReport:
    address: str
    start: date
    end: date
    trades: list[Trade] = field(default_factory=list)
    statistics: TradeStatistics = field(default_factory=lambda: compute_statistics([]))
    stale: bool = False
    error: Optional[str] = None


def window_bounds_ms(start: date, end: date) -> tuple[int, int]:
    """Inclusive millisecond bounds covering whole UTC days."""

    start_at = datetime.combine(start, time.min, tzinfo=timezone.utc)
    end_at = datetime.combine(end, time.max, tzinfo=timezone.utc)
    return int(start_at.timestamp() * 1000), int(end_at.timestamp() * 1000)


class TradeReconstructionService:
    """Fetch a ledger window and rebuild the fund's trades."""

    def __init__(
        self,
        ledger: SuiRpcClient,
        price_points: PricePointCache,
        live_prices: LivePriceService,
        settings: AppSettings,
    ) -> None:
        self._ledger = ledger
        self._price_points = price_points
        self._live_prices = live_prices
        self._settings = settings
        self._last_reports: OrderedDict[tuple[str, date, date], TradeReport] = OrderedDict()

    async def get_trades(self, address: str, start: date, end: date) -> TradeReport:
        if start > end:
            raise ValueError("start must not be after end")
        settings = self._settings
        pair = settings.asset_pair()
        fee_asset = settings.fee_asset
        fee_decimals = settings.decimals_for(fee_asset) if fee_asset else 0
        key = (address, start, end)

        with tracer.start_as_current_span("trades.reconstruct") as span:
            span.set_attribute("fund_ledger.address", address)
            span.set_attribute("fund_ledger.window", f"{start.isoformat()}/{end.isoformat()}")

            start_ms, end_ms = window_bounds_ms(start, end)
            try:
                raw_events = await self._ledger.fetch_window(address, start_ms, end_ms)
            except LedgerError as exc:
                logger.warning("Ledger unavailable for %s: %s", address, exc)
                span.record_exception(exc)
                previous = self._last_reports.get(key)
                if previous is not None:
                    self._last_reports.move_to_end(key)
                    return replace(previous, stale=True, error=str(exc))
                return TradeReport(address=address, start=start, end=end, stale=True, error=str(exc))

            fee_price_for = await self._fee_price_lookup()
            result = reconstruct_trades(
                raw_events,
                address,
                pair=pair,
                venue_module=settings.pairing_venue_module,
                fee_asset=fee_asset,
                fee_decimals=fee_decimals,
                fee_price_for=fee_price_for,
                coin_symbols=settings.coin_symbols,
            )
            span.set_attribute("fund_ledger.trades", len(result.trades))

        report = TradeReport(
            address=address,
            start=start,
            end=end,
            trades=result.trades,
            statistics=compute_statistics(result.trades),
        )
        self._remember(key, report)
        return report

    def _remember(self, key: tuple[str, date, date], report: TradeReport) -> None:
        """Keep the last good report per window, evicting the least recently used."""

        self._last_reports[key] = report
        self._last_reports.move_to_end(key)
        while len(self._last_reports) > self._settings.trade_report_cache_size:
            self._last_reports.popitem(last=False)

    async def _fee_price_lookup(self) -> FeePriceLookup:
        """Build a synchronous fee-asset price lookup for the pairing step.

        Today's legs use the live price; older legs use the cached daily price
        with nearest-prior fallback. Either source stands in when the other
        has nothing.
        """

        fee_asset = self._settings.fee_asset
        live_price: Optional[Decimal] = None
        if fee_asset:
            try:
                live_price = (await self._live_prices.get_price(fee_asset)).price
            except PriceUnavailableError as exc:
                logger.warning("No live %s price for fee valuation: %s", fee_asset, exc)

        today = datetime.now(timezone.utc).date()

        def lookup(day: date) -> Optional[Decimal]:
            if not fee_asset:
                return None
            if day >= today and live_price is not None:
                return live_price
            cached = self._price_points.price_for_date(fee_asset, day)
            if cached is not None:
                return Decimal(str(cached))
            return live_price

        return lookup


__all__ = ["TradeReconstructionService", "TradeReport", "window_bounds_ms"]
