"""USD exchange rates from the Open Exchange Rates API."""

from __future__ import annotations

import logging
import time
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional

import httpx

from app.core.errors import ConfigurationError, PriceSourceError
from app.providers.prices import parse_lenient_json

logger = logging.getLogger(__name__)

DEFAULT_RATE_CACHE_SECONDS = 30 * 60.0


class ExchangeRateClient:
    """Fetch the USD to ``currency`` rate, latest or for a past day.

    Rates are cached per day for ``cache_seconds``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: Optional[str],
        currency: str = "GBP",
        cache_seconds: float = DEFAULT_RATE_CACHE_SECONDS,
        timeout_seconds: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.currency = currency.upper()
        self.cache_seconds = cache_seconds
        self.timeout_seconds = timeout_seconds
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._clock = clock
        self._cache: dict[str, tuple[Decimal, float]] = {}

    async def aclose(self) -> None:
        await self._client.aclose()

    async def usd_rate(self, day: Optional[date] = None) -> Decimal:
        """Return how many units of ``currency`` one USD buys on ``day``."""

        if not self.api_key:
            raise ConfigurationError("EXCHANGE_RATE_API_KEY", f"required to convert USD to {self.currency}")
        today = datetime.now(timezone.utc).date()
        day = day or today
        key = day.isoformat()
        cached = self._cache.get(key)
        if cached is not None and self._clock() - cached[1] < self.cache_seconds:
            return cached[0]

        path = "latest.json" if day >= today else f"historical/{key}.json"
        payload = await self._get(path)
        rate = self._read_rate(payload)
        self._cache[key] = (rate, self._clock())
        logger.info("USD/%s rate for %s: %s", self.currency, key, rate)
        return rate

    async def convert(self, amount_usd: Decimal, day: Optional[date] = None) -> Decimal:
        if not amount_usd:
            return Decimal(0)
        return amount_usd * await self.usd_rate(day)

    async def _get(self, path: str) -> Any:
        url = f"{self.base_url}/{path}"
        params = {"app_id": self.api_key, "base": "USD", "symbols": self.currency}
        try:
            response = await self._client.get(url, params=params, timeout=self.timeout_seconds)
        except httpx.HTTPError as exc:
            raise PriceSourceError(f"Failed to reach exchange rate API: {exc}") from exc
        if response.status_code >= 400:
            raise PriceSourceError(f"Exchange rate API error {response.status_code}: {response.text[:200]}")
        try:
            payload = parse_lenient_json(response.text)
        except ValueError as exc:
            raise PriceSourceError("Exchange rate API returned invalid JSON payload") from exc
        if not isinstance(payload, dict):
            raise PriceSourceError("Exchange rate API returned an unexpected payload")
        if payload.get("error"):
            detail = payload.get("description") or payload.get("message") or "unknown error"
            raise PriceSourceError(f"Exchange rate API error: {detail}")
        return payload

    def _read_rate(self, payload: dict[str, Any]) -> Decimal:
        rates = payload.get("rates")
        value = rates.get(self.currency) if isinstance(rates, dict) else None
        if value is None:
            raise PriceSourceError(f"Exchange rate response has no {self.currency} rate")
        try:
            rate = Decimal(str(value))
        except InvalidOperation as exc:
            raise PriceSourceError(f"Invalid {self.currency} rate {value!r}") from exc
        if not rate.is_finite() or rate <= 0:
            raise PriceSourceError(f"Invalid {self.currency} rate {value!r}")
        return rate


__all__ = ["DEFAULT_RATE_CACHE_SECONDS", "ExchangeRateClient"]
