"""Application configuration and environment helpers."""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.errors import ConfigurationError
from fund_ledger.models import AssetPair
from fund_ledger.normalizer import KNOWN_COIN_SYMBOLS

DEFAULT_PRICE_CACHE_PATH = ".price-cache/prices.json"
DEFAULT_SUI_RPC_URL = "https://fullnode.mainnet.sui.io:443"


class AppSettings(BaseSettings):
    """Configuration options for the fund ledger service."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = Field(default="Fund Ledger")

    fund_address: str | None = Field(
        default=None,
        description="Ledger address of the fund account (FUND_ADDRESS).",
    )

    sui_rpc_url: str = Field(default=DEFAULT_SUI_RPC_URL)
    ledger_page_limit: int = Field(default=50, ge=1, le=50)
    ledger_page_delay_seconds: float = Field(default=0.2, ge=0.0)
    ledger_timeout_seconds: float = Field(default=15.0)

    price_provider: Literal["coingecko", "csv", "coingecko+csv"] = Field(default="coingecko")
    price_api_url: str = Field(default="https://api.coingecko.com/api/v3")
    price_api_key: str | None = Field(default=None)
    price_csv_url: str | None = Field(default=None)
    price_timeout_seconds: float = Field(default=15.0)
    price_source_ids: dict[str, str] = Field(
        default_factory=lambda: {"SUI": "sui", "USDC": "usd-coin", "DEEP": "deep"},
        description="Upstream price id per tracked symbol.",
    )

    price_fresh_seconds: float = Field(default=30.0, gt=0)
    price_stale_seconds: float = Field(default=1800.0, gt=0)
    price_min_fetch_interval_seconds: float = Field(default=10.0, ge=0)
    stable_prices: dict[str, Decimal] = Field(default_factory=lambda: {"USDC": Decimal("1")})
    default_prices: dict[str, Decimal] = Field(
        default_factory=dict,
        description="Last-resort prices used when no live or cached value exists.",
    )

    trade_report_cache_size: int = Field(
        default=32,
        ge=1,
        description="Trade reports kept per address and window for the stale fallback.",
    )

    exchange_rate_currency: str | None = Field(
        default=None,
        description="Second valuation currency recorded with each day, e.g. GBP.",
    )
    exchange_rate_api_url: str = Field(default="https://openexchangerates.org/api")
    exchange_rate_api_key: str | None = Field(default=None)
    exchange_rate_cache_seconds: float = Field(default=1800.0, gt=0)

    price_cache_path: str = Field(default=DEFAULT_PRICE_CACHE_PATH)
    tracked_symbols: list[str] = Field(default_factory=lambda: ["USDC", "SUI", "DEEP"])
    total_share_supply: float = Field(default=1_000_000)
    default_tokens_available: float = Field(
        default=998_942,
        description="Unsold fund shares assumed for a day with no recorded value.",
    )

    quote_asset: str = Field(default="USDC")
    base_asset: str = Field(default="SUI")
    fee_asset: str | None = Field(default="DEEP")
    pairing_venue_module: str = Field(default="pool")
    asset_decimals: dict[str, int] = Field(default_factory=lambda: {"SUI": 9, "USDC": 6, "DEEP": 6})
    coin_symbols: dict[str, str] = Field(default_factory=lambda: dict(KNOWN_COIN_SYMBOLS))

    telemetry_enabled: bool = Field(default=False)
    telemetry_service_name: str = Field(default="fund-ledger")
    telemetry_otlp_endpoint: str | None = Field(default=None)
    telemetry_otlp_insecure: bool = Field(default=True)
    telemetry_sample_ratio: float = Field(default=1.0, ge=0.0, le=1.0)

    def dict_for_logging(self) -> dict[str, Any]:
        """Return a sanitized dict for logging purposes."""

        hidden = {"price_api_key", "exchange_rate_api_key"}
        return {k: ("***" if k in hidden else v) for k, v in self.model_dump().items()}

    def decimals_for(self, symbol: str) -> int:
        try:
            return self.asset_decimals[symbol]
        except KeyError:
            raise ConfigurationError(
                "ASSET_DECIMALS", f"no decimal precision configured for {symbol}"
            ) from None

    def asset_pair(self) -> AssetPair:
        return AssetPair(
            quote=self.quote_asset,
            base=self.base_asset,
            quote_decimals=self.decimals_for(self.quote_asset),
            base_decimals=self.decimals_for(self.base_asset),
        )

    def quotable_symbols(self) -> set[str]:
        """Symbols the live price endpoint accepts besides the stable assets."""

        symbols = {*self.price_source_ids, *self.default_prices, *self.tracked_symbols}
        return {symbol.upper() for symbol in symbols}

    def require_fund_address(self) -> str:
        if not self.fund_address:
            raise ConfigurationError("FUND_ADDRESS", "the fund account address is not configured")
        return self.fund_address


@lru_cache(maxsize=1)
def get_settings(**overrides: Any) -> AppSettings:
    """Return cached application settings with optional overrides."""

    if overrides:
        return AppSettings(**overrides)
    return AppSettings()


__all__ = [
    "AppSettings",
    "DEFAULT_PRICE_CACHE_PATH",
    "DEFAULT_SUI_RPC_URL",
    "get_settings",
]
