"""Trade reconstruction service tests."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from app.config import AppSettings
from app.core.errors import ConfigurationError, LedgerError
from app.services.container import build_container
from app.services.price_points import PricePointCache
from app.services.trades import window_bounds_ms
from fund_ledger.models import TradeStatus
from ledger_stubs import ADDRESS, MARCH_1_MS, StubLedger, StubPriceSource, round_trip_events


def _container(cache: PricePointCache, ledger: StubLedger, **overrides):
    settings = AppSettings(fund_address=ADDRESS, price_cache_path=str(cache.path), **overrides)
    return build_container(
        settings,
        ledger=ledger,
        price_source=StubPriceSource({"SUI": "3.5", "DEEP": "0.3"}),
        price_points=cache,
    )


async def test_reconstructs_round_trip_with_fee_from_cache(price_cache):
    ledger = StubLedger(round_trip_events())
    container = _container(price_cache, ledger)

    report = await container.trades.get_trades(ADDRESS, date(2024, 3, 1), date(2024, 3, 2))

    (trade,) = report.trades
    assert trade.status is TradeStatus.CLOSED
    assert trade.id == "buy"
    assert trade.exit_price == Decimal("3")
    assert trade.entry_price == Decimal("3.75")
    assert float(trade.realized_pnl_pct) == pytest.approx(20.0)
    assert trade.realized_pnl_usd == Decimal("30")
    assert trade.fee_raw == 2_000_000
    assert trade.fee_usd == Decimal("0.5")
    assert report.statistics.total_trades == 1
    assert report.statistics.net_pnl_usd == Decimal("29.5")
    assert report.stale is False
    assert ledger.windows == [(ADDRESS, MARCH_1_MS, MARCH_1_MS + 2 * 86_400_000 - 1)]


async def test_ledger_failure_returns_last_report_flagged_stale(price_cache):
    ledger = StubLedger(round_trip_events())
    container = _container(price_cache, ledger)
    fresh = await container.trades.get_trades(ADDRESS, date(2024, 3, 1), date(2024, 3, 2))

    ledger.error = LedgerError("rpc down")
    stale = await container.trades.get_trades(ADDRESS, date(2024, 3, 1), date(2024, 3, 2))
    empty = await container.trades.get_trades(ADDRESS, date(2024, 1, 1), date(2024, 1, 2))

    assert stale.stale is True
    assert stale.error == "rpc down"
    assert stale.trades == fresh.trades
    assert empty.stale is True
    assert empty.trades == []
    assert empty.statistics.total_trades == 0


async def test_missing_decimals_is_a_configuration_error(price_cache):
    container = _container(price_cache, StubLedger(), asset_decimals={"USDC": 6, "DEEP": 6})
    with pytest.raises(ConfigurationError) as excinfo:
        await container.trades.get_trades(ADDRESS, date(2024, 3, 1), date(2024, 3, 2))
    assert excinfo.value.setting == "ASSET_DECIMALS"


def test_window_bounds_cover_whole_days():
    start_ms, end_ms = window_bounds_ms(date(2024, 3, 1), date(2024, 3, 1))
    assert start_ms == MARCH_1_MS
    assert end_ms == MARCH_1_MS + 86_400_000 - 1


async def test_stale_fallback_keeps_only_recent_windows(price_cache):
    ledger = StubLedger(round_trip_events())
    container = _container(price_cache, ledger, trade_report_cache_size=1)
    await container.trades.get_trades(ADDRESS, date(2024, 3, 1), date(2024, 3, 2))
    await container.trades.get_trades(ADDRESS, date(2024, 3, 1), date(2024, 3, 3))

    ledger.error = LedgerError("rpc down")
    evicted = await container.trades.get_trades(ADDRESS, date(2024, 3, 1), date(2024, 3, 2))
    kept = await container.trades.get_trades(ADDRESS, date(2024, 3, 1), date(2024, 3, 3))

    assert evicted.stale is True
    assert evicted.trades == []
    assert kept.stale is True
    assert len(kept.trades) == 1
