"""Construction of the long-lived service objects shared by the API and scripts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from app.config import AppSettings, get_settings
from app.core.errors import ConfigurationError
from app.providers.exchange_rates import ExchangeRateClient
from app.providers.prices import (
    CoinGeckoPriceSource,
    CsvTimeSeriesPriceSource,
    FallbackPriceSource,
    PriceSource,
)
from app.providers.sui_rpc import SuiRpcClient
from app.services.live_prices import LivePriceService
from app.services.price_points import PricePointCache
from app.services.trades import TradeReconstructionService
from app.services.valuation import DailyValuationMerger, WalletNavProvider

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: AppSettings
    ledger: SuiRpcClient
    price_source: PriceSource
    live_prices: LivePriceService
    price_points: PricePointCache
    trades: TradeReconstructionService
    valuation: DailyValuationMerger
    exchange_rates: Optional[ExchangeRateClient] = None

    async def aclose(self) -> None:
        await self.live_prices.aclose()
        close = getattr(self.price_source, "aclose", None)
        if close is not None:
            await close()
        if self.exchange_rates is not None:
            await self.exchange_rates.aclose()
        await self.ledger.aclose()


def build_coingecko_source(settings: AppSettings) -> CoinGeckoPriceSource:
    return CoinGeckoPriceSource(
        settings.price_api_url,
        source_ids=settings.price_source_ids,
        api_key=settings.price_api_key,
        timeout_seconds=settings.price_timeout_seconds,
    )


def build_price_source(settings: AppSettings) -> PriceSource:
    """Create the upstream price source selected by ``PRICE_PROVIDER``."""

    provider = settings.price_provider
    if provider == "coingecko":
        return build_coingecko_source(settings)
    if not settings.price_csv_url:
        raise ConfigurationError("PRICE_CSV_URL", f"required by PRICE_PROVIDER={provider}")
    csv_source = CsvTimeSeriesPriceSource(
        settings.price_csv_url,
        timeout_seconds=settings.price_timeout_seconds,
    )
    if provider == "csv":
        return csv_source
    return FallbackPriceSource([build_coingecko_source(settings), csv_source])


def build_exchange_rates(settings: AppSettings) -> Optional[ExchangeRateClient]:
    """Create the USD exchange rate client when a second currency is configured."""

    if not settings.exchange_rate_currency:
        return None
    return ExchangeRateClient(
        settings.exchange_rate_api_url,
        api_key=settings.exchange_rate_api_key,
        currency=settings.exchange_rate_currency,
        cache_seconds=settings.exchange_rate_cache_seconds,
        timeout_seconds=settings.price_timeout_seconds,
    )


def build_price_point_cache(settings: AppSettings) -> PricePointCache:
    defaults = {symbol: 0.0 for symbol in settings.tracked_symbols}
    defaults.update({symbol: float(value) for symbol, value in settings.stable_prices.items()})
    return PricePointCache(
        settings.price_cache_path,
        default_prices=defaults,
        default_tokens_available=settings.default_tokens_available,
    )


def build_container(
    settings: Optional[AppSettings] = None,
    *,
    ledger: Optional[SuiRpcClient] = None,
    price_source: Optional[PriceSource] = None,
    price_points: Optional[PricePointCache] = None,
    exchange_rates: Optional[ExchangeRateClient] = None,
) -> ServiceContainer:
    """Wire the services from settings; collaborators may be passed in directly."""

    settings = settings or get_settings()
    ledger = ledger or SuiRpcClient(
        settings.sui_rpc_url,
        timeout_seconds=settings.ledger_timeout_seconds,
        page_limit=settings.ledger_page_limit,
        page_delay_seconds=settings.ledger_page_delay_seconds,
    )
    price_source = price_source or build_price_source(settings)
    price_points = price_points or build_price_point_cache(settings)
    exchange_rates = exchange_rates or build_exchange_rates(settings)
    live_prices = LivePriceService(
        price_source,
        fresh_window=settings.price_fresh_seconds,
        stale_window=settings.price_stale_seconds,
        min_fetch_interval=settings.price_min_fetch_interval_seconds,
        stable_prices=settings.stable_prices,
        default_prices=settings.default_prices,
        known_symbols=settings.quotable_symbols(),
    )
    nav_provider = WalletNavProvider(
        ledger,
        live_prices,
        asset_decimals=settings.asset_decimals,
        coin_symbols=settings.coin_symbols,
        exchange_rates=exchange_rates,
    )
    valuation = DailyValuationMerger(
        price_points,
        live_prices,
        nav_provider,
        fund_address=settings.fund_address,
        tracked_symbols=settings.tracked_symbols,
        exchange_rates=exchange_rates,
    )
    trades = TradeReconstructionService(ledger, price_points, live_prices, settings)
    logger.info("Service container ready (price provider: %s)", settings.price_provider)
    return ServiceContainer(
        settings=settings,
        ledger=ledger,
        price_source=price_source,
        live_prices=live_prices,
        price_points=price_points,
        trades=trades,
        valuation=valuation,
        exchange_rates=exchange_rates,
    )


__all__ = [
    "ServiceContainer",
    "build_coingecko_source",
    "build_container",
    "build_exchange_rates",
    "build_price_point_cache",
    "build_price_source",
]
