"""Daily valuation: NAV plus asset prices merged into the price point cache."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Protocol, Sequence

import pandas as pd

from app.core.errors import ConfigurationError, LedgerError, PriceSourceError, PriceUnavailableError
from app.providers.exchange_rates import ExchangeRateClient
from app.providers.sui_rpc import SuiRpcClient
from app.services.live_prices import LivePriceService
from app.services.price_points import PricePointCache
from fund_ledger.amounts import to_units
from fund_ledger.models import PricePoint
from fund_ledger.normalizer import coin_symbol

logger = logging.getLogger(__name__)


class NavProvider(Protocol):
    async def total_value_usd(self, address: str) -> Decimal:
        ...


@dataclass
class TokenBalance:
    symbol: str
    coin_type: str
    raw_balance: int
    decimals: int
    price_usd: Decimal
    value_usd: Decimal


class WalletNavProvider:
    """Values every known coin the fund account holds at live prices."""

    def __init__(
        self,
        ledger: SuiRpcClient,
        live_prices: LivePriceService,
        *,
        asset_decimals: Mapping[str, int],
        coin_symbols: Optional[Mapping[str, str]] = None,
        exchange_rates: Optional[ExchangeRateClient] = None,
    ) -> None:
        self._ledger = ledger
        self._live_prices = live_prices
        self._asset_decimals = dict(asset_decimals)
        self._coin_symbols = coin_symbols
        self._exchange_rates = exchange_rates

    async def balances(self, address: str) -> list[TokenBalance]:
        holdings: list[TokenBalance] = []
        for item in await self._ledger.get_all_balances(address):
            coin_type = str(item.get("coinType") or "")
            symbol = coin_symbol(coin_type, self._coin_symbols)
            if symbol is None or symbol not in self._asset_decimals:
                logger.info("Ignoring balance of unknown coin type %s", coin_type)
                continue
            try:
                raw_balance = int(str(item.get("totalBalance", "0")))
            except ValueError:
                logger.warning("Skipping malformed %s balance %r", symbol, item.get("totalBalance"))
                continue

            try:
                price = (await self._live_prices.get_price(symbol)).price
            except PriceUnavailableError as exc:
                logger.warning("Valuing %s balance at 0: %s", symbol, exc)
                price = Decimal(0)

            decimals = self._asset_decimals[symbol]
            holdings.append(
                TokenBalance(
                    symbol=symbol,
                    coin_type=coin_type,
                    raw_balance=raw_balance,
                    decimals=decimals,
                    price_usd=price,
                    value_usd=to_units(raw_balance, decimals) * price,
                )
            )
        return holdings

    async def total_value_usd(self, address: str) -> Decimal:
        holdings = await self.balances(address)
        return sum((holding.value_usd for holding in holdings), Decimal(0))

    async def total_value_converted(self, address: str) -> tuple[str, Decimal]:
        """Return the NAV in the configured second currency as ``(currency, value)``."""

        if self._exchange_rates is None:
            raise ConfigurationError("EXCHANGE_RATE_CURRENCY", "no second valuation currency is configured")
        total = await self.total_value_usd(address)
        return self._exchange_rates.currency, await self._exchange_rates.convert(total)


class DailyValuationMerger:
    """Persist one valuation snapshot per calendar day."""

    def __init__(
        self,
        cache: PricePointCache,
        live_prices: LivePriceService,
        nav_provider: NavProvider,
        *,
        fund_address: Optional[str],
        tracked_symbols: Sequence[str],
        exchange_rates: Optional[ExchangeRateClient] = None,
    ) -> None:
        self._cache = cache
        self._live_prices = live_prices
        self._nav_provider = nav_provider
        self._fund_address = fund_address
        self._tracked_symbols = list(tracked_symbols)
        self._exchange_rates = exchange_rates

    async def record(
        self,
        day: Optional[date] = None,
        *,
        tokens_available: Optional[float] = None,
    ) -> PricePoint:
        if not self._fund_address:
            raise ConfigurationError("FUND_ADDRESS", "required to record the daily valuation")
        day = day or datetime.now(timezone.utc).date()

        prices: dict[str, float] = {}
        for symbol in self._tracked_symbols:
            try:
                quote = await self._live_prices.get_price(symbol)
            except PriceUnavailableError as exc:
                logger.warning("Leaving %s price unchanged for %s: %s", symbol, day, exc)
                continue
            prices[symbol] = float(quote.price)

        if self._exchange_rates is not None:
            currency = self._exchange_rates.currency
            try:
                prices[currency] = float(await self._exchange_rates.usd_rate(day))
            except PriceSourceError as exc:
                logger.warning("Leaving %s rate unchanged for %s: %s", currency, day, exc)

        funds_usd: Optional[float] = None
        try:
            funds_usd = float(await self._nav_provider.total_value_usd(self._fund_address))
        except (LedgerError, PriceSourceError) as exc:
            logger.error("NAV unavailable for %s, keeping the stored FUNDS value: %s", day, exc)

        point = self._cache.merge(
            day,
            prices=prices,
            funds_usd=funds_usd,
            tokens_available=tokens_available,
        )
        logger.info("Recorded valuation for %s: FUNDS=%s", point.date, point.funds_usd)
        return point


def share_price_frame(points: Iterable[PricePoint], total_supply: float) -> pd.DataFrame:
    """Return NAV and share price per day, ascending by date."""

    rows = [
        {
            "date": pd.Timestamp(point.date),
            "funds_usd": point.funds_usd,
            "tokens_available": point.tokens_available,
            "shares_outstanding": point.shares_outstanding(total_supply),
        }
        for point in points
    ]
    columns = ["date", "funds_usd", "tokens_available", "shares_outstanding", "share_price"]
    if not rows:
        return pd.DataFrame(columns=columns)

    frame = pd.DataFrame(rows).sort_values("date").reset_index(drop=True)
    outstanding = frame["shares_outstanding"]
    frame["share_price"] = (frame["funds_usd"] / outstanding.where(outstanding > 0)).fillna(0.0)
    return frame[columns]


__all__ = [
    "DailyValuationMerger",
    "NavProvider",
    "TokenBalance",
    "WalletNavProvider",
    "share_price_frame",
]
