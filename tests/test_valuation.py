"""Daily valuation merger, NAV and share price tests."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from app.core.errors import ConfigurationError, LedgerError, PriceSourceError
from app.services.history import backfill_price_history, daily_average_prices
from app.services.live_prices import LivePriceService
from app.services.price_points import PricePointCache
from app.services.valuation import DailyValuationMerger, WalletNavProvider, share_price_frame
from fund_ledger.models import PricePoint


class SymbolSource:
    def __init__(self, prices: dict[str, str]) -> None:
        self.prices = {symbol: Decimal(value) for symbol, value in prices.items()}

    async def fetch_price(self, symbol: str) -> Decimal:
        if symbol not in self.prices:
            raise PriceSourceError(f"no quote for {symbol}")
        return self.prices[symbol]


class StubNav:
    def __init__(self, value: Decimal | Exception) -> None:
        self.value = value
        self.addresses: list[str] = []

    async def total_value_usd(self, address: str) -> Decimal:
        self.addresses.append(address)
        if isinstance(self.value, Exception):
            raise self.value
        return self.value


class StubRates:
    currency = "GBP"

    def __init__(self, rate: str | Exception) -> None:
        self.rate = rate
        self.days: list[date | None] = []

    async def usd_rate(self, day: date | None = None) -> Decimal:
        self.days.append(day)
        if isinstance(self.rate, Exception):
            raise self.rate
        return Decimal(self.rate)

    async def convert(self, amount_usd: Decimal, day: date | None = None) -> Decimal:
        return amount_usd * await self.usd_rate(day)


class StubLedger:
    def __init__(self, balances: list[dict]) -> None:
        self.balances = balances

    async def get_all_balances(self, address: str) -> list[dict]:
        return self.balances


def _live(prices: dict[str, str]) -> LivePriceService:
    return LivePriceService(SymbolSource(prices), stable_prices={"USDC": Decimal("1")})


def _cache(tmp_path) -> PricePointCache:
    return PricePointCache(
        tmp_path / "prices.json",
        default_prices={"USDC": 1.0, "SUI": 0.0, "DEEP": 0.0},
        default_tokens_available=998_942,
        clock=lambda: 1_700_000_000.0,
    )


async def test_record_requires_fund_address(tmp_path):
    merger = DailyValuationMerger(_cache(tmp_path), _live({}), StubNav(Decimal(0)), fund_address=None, tracked_symbols=["SUI"])
    with pytest.raises(ConfigurationError) as excinfo:
        await merger.record(date(2024, 3, 1))
    assert excinfo.value.setting == "FUND_ADDRESS"
    assert "FUND_ADDRESS" in str(excinfo.value)


async def test_record_merges_prices_and_nav(tmp_path):
    cache = _cache(tmp_path)
    nav = StubNav(Decimal("2116.25"))
    merger = DailyValuationMerger(
        cache,
        _live({"SUI": "1.8"}),
        nav,
        fund_address="0xfund",
        tracked_symbols=["USDC", "SUI", "DEEP"],
    )

    point = await merger.record(date(2024, 3, 1), tokens_available=998_900)

    assert point.prices == {"USDC": 1.0, "SUI": 1.8, "DEEP": 0.0}
    assert point.funds_usd == 2116.25
    assert point.tokens_available == 998_900
    assert nav.addresses == ["0xfund"]
    assert cache.get("2024-03-01") == point


async def test_nav_failure_keeps_previous_funds(tmp_path):
    cache = _cache(tmp_path)
    cache.merge("2024-03-01", funds_usd=1500.0, prices={"SUI": 1.5})
    merger = DailyValuationMerger(
        cache,
        _live({"SUI": "1.9"}),
        StubNav(LedgerError("rpc down")),
        fund_address="0xfund",
        tracked_symbols=["SUI"],
    )

    point = await merger.record(date(2024, 3, 1))

    assert point.funds_usd == 1500.0
    assert point.prices["SUI"] == 1.9


async def test_wallet_nav_values_known_coins():
    ledger = StubLedger(
        [
            {"coinType": "0x2::sui::SUI", "totalBalance": "2000000000"},
            {"coinType": "0xdba34672e30cb065b1f93e3ab55318768fd6fef66c15942c9f7cb846e2f900e7::usdc::USDC", "totalBalance": "150500000"},
            {"coinType": "0xabc::meme::MEME", "totalBalance": "1"},
            {"coinType": "0xdeeb7a4662eec9f2f3def03fb937a663dddaa2e215b8078a284d026b7946c270::deep::DEEP", "totalBalance": "1000000"},
        ]
    )
    provider = WalletNavProvider(ledger, _live({"SUI": "2.5"}), asset_decimals={"SUI": 9, "USDC": 6, "DEEP": 6})

    holdings = await provider.balances("0xfund")
    total = await provider.total_value_usd("0xfund")

    assert [holding.symbol for holding in holdings] == ["SUI", "USDC", "DEEP"]
    assert holdings[2].value_usd == 0
    assert total == Decimal("155.5")


def test_share_price_frame_sorted_ascending():
    points = [
        PricePoint(date="2024-03-02", funds_usd=2200.0, tokens_available=998_900),
        PricePoint(date="2024-03-01", funds_usd=2116.0, tokens_available=998_942),
        PricePoint(date="2024-02-29", funds_usd=10.0, tokens_available=1_000_000),
    ]

    frame = share_price_frame(points, 1_000_000)

    assert [stamp.date().isoformat() for stamp in frame["date"]] == ["2024-02-29", "2024-03-01", "2024-03-02"]
    assert frame["share_price"].tolist() == pytest.approx([0.0, 2.0, 2200.0 / 1100])


def test_share_price_frame_empty():
    frame = share_price_frame([], 1_000_000)
    assert frame.empty
    assert "share_price" in frame.columns


def test_daily_average_prices():
    samples = [
        (datetime(2024, 3, 1, 1, tzinfo=timezone.utc), 1.0),
        (datetime(2024, 3, 1, 13, tzinfo=timezone.utc), 2.0),
        (datetime(2024, 3, 3, 5, tzinfo=timezone.utc), 4.0),
    ]
    assert daily_average_prices(samples) == {"2024-03-01": 1.5, "2024-03-03": 4.0}
    assert daily_average_prices([]) == {}


async def test_record_stores_exchange_rate_for_the_day(tmp_path):
    cache = _cache(tmp_path)
    rates = StubRates("0.79")
    merger = DailyValuationMerger(
        cache,
        _live({"SUI": "1.8"}),
        StubNav(Decimal("1000")),
        fund_address="0xfund",
        tracked_symbols=["SUI"],
        exchange_rates=rates,
    )

    point = await merger.record(date(2024, 3, 1))

    assert point.prices["GBP"] == 0.79
    assert rates.days == [date(2024, 3, 1)]


async def test_exchange_rate_failure_keeps_stored_rate(tmp_path):
    cache = _cache(tmp_path)
    cache.merge("2024-03-01", prices={"GBP": 0.8})
    merger = DailyValuationMerger(
        cache,
        _live({"SUI": "1.8"}),
        StubNav(Decimal("1000")),
        fund_address="0xfund",
        tracked_symbols=["SUI"],
        exchange_rates=StubRates(PriceSourceError("rates down")),
    )

    point = await merger.record(date(2024, 3, 1))

    assert point.prices["GBP"] == 0.8
    assert point.funds_usd == 1000.0


async def test_wallet_nav_in_second_currency():
    ledger = StubLedger([{"coinType": "0x2::sui::SUI", "totalBalance": "4000000000"}])
    provider = WalletNavProvider(
        ledger,
        _live({"SUI": "2.5"}),
        asset_decimals={"SUI": 9},
        exchange_rates=StubRates("0.8"),
    )

    currency, value = await provider.total_value_converted("0xfund")

    assert currency == "GBP"
    assert value == Decimal("8")


async def test_wallet_nav_conversion_needs_a_currency():
    provider = WalletNavProvider(StubLedger([]), _live({}), asset_decimals={"SUI": 9})
    with pytest.raises(ConfigurationError) as excinfo:
        await provider.total_value_converted("0xfund")
    assert excinfo.value.setting == "EXCHANGE_RATE_CURRENCY"


class ChartSource:
    def __init__(self, charts: dict[str, list[tuple[datetime, float]]]) -> None:
        self.charts = charts
        self.requests: list[tuple[str, datetime, datetime]] = []

    async def fetch_market_chart(self, symbol: str, start: datetime, end: datetime) -> list[tuple[datetime, float]]:
        self.requests.append((symbol, start, end))
        if symbol not in self.charts:
            raise PriceSourceError(f"no history for {symbol}")
        return self.charts[symbol]


async def test_backfill_merges_daily_averages_and_skips_failed_symbols(tmp_path):
    cache = _cache(tmp_path)
    cache.merge("2024-03-01", funds_usd=1500.0)
    now = datetime(2024, 3, 3, 12, tzinfo=timezone.utc)
    source = ChartSource(
        {
            "SUI": [
                (datetime(2024, 3, 1, 1, tzinfo=timezone.utc), 1.0),
                (datetime(2024, 3, 1, 13, tzinfo=timezone.utc), 2.0),
                (datetime(2024, 3, 2, 5, tzinfo=timezone.utc), 3.0),
            ],
            "DEEP": [(datetime(2024, 3, 2, 6, tzinfo=timezone.utc), 0.2)],
        }
    )

    written = await backfill_price_history(cache, source, ["SUI", "WAL", "DEEP"], days=2, now=now)

    assert written == ["2024-03-02", "2024-03-01"]
    assert [request[0] for request in source.requests] == ["SUI", "WAL", "DEEP"]
    assert source.requests[0][1] == datetime(2024, 3, 1, 12, tzinfo=timezone.utc)
    first = cache.get("2024-03-01")
    assert first.prices["SUI"] == 1.5
    assert first.prices["DEEP"] == 0.0
    assert first.funds_usd == 1500.0
    second = cache.get("2024-03-02")
    assert second.prices["SUI"] == 3.0
    assert second.prices["DEEP"] == 0.2
    assert "WAL" not in second.prices
