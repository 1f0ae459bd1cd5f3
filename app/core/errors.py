"""Exception types shared by the service layer."""

from __future__ import annotations


class FundLedgerError(RuntimeError):
    """Base class for service errors."""


class ConfigurationError(FundLedgerError):
    """Raised when a required setting is missing or invalid."""

    def __init__(self, setting: str, message: str | None = None) -> None:
        self.setting = setting
        detail = message or "setting is missing"
        super().__init__(f"{setting}: {detail}")


class LedgerError(FundLedgerError):
    """Raised when the ledger RPC cannot be reached or returns an error."""


class PriceSourceError(FundLedgerError):
    """Raised when an upstream price source fails."""


class PriceUnavailableError(FundLedgerError):
    """Raised when no live, cached or default price exists for a symbol."""

    def __init__(self, symbol: str, reason: str | None = None) -> None:
        self.symbol = symbol
        message = f"No price available for {symbol}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class UnknownSymbolError(PriceUnavailableError):
    """Raised for a symbol that no configured price source can quote."""

    def __init__(self, symbol: str) -> None:
        super().__init__(symbol, "symbol is not tracked")


class PriceCacheError(FundLedgerError):
    """Raised when the price point cache file cannot be read or written."""


__all__ = [
    "ConfigurationError",
    "FundLedgerError",
    "LedgerError",
    "PriceCacheError",
    "PriceSourceError",
    "PriceUnavailableError",
    "UnknownSymbolError",
]
