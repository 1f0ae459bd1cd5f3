"""Upstream price sources for live and historical asset prices."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional, Protocol, Sequence

import httpx

from app.core.errors import ConfigurationError, PriceSourceError

logger = logging.getLogger(__name__)

DEFAULT_VS_CURRENCY = "usd"
MAX_CSV_ERRORS = 10


class PriceSource(Protocol):
    """Interface for anything that can quote a USD price for a symbol."""

    async def fetch_price(self, symbol: str) -> Decimal:
        ...


def parse_lenient_json(text: str) -> Any:
    """Parse JSON that may arrive wrapped in quotes with doubled inner quotes."""

    try:
        value = json.loads(text)
    except ValueError:
        cleaned = text.strip()
        if len(cleaned) >= 2 and cleaned.startswith('"') and cleaned.endswith('"'):
            cleaned = cleaned[1:-1]
        cleaned = cleaned.replace('""""', '"').replace('""', '"')
        value = json.loads(cleaned)
    # Double-encoded payloads decode to a JSON string first
    if isinstance(value, str):
        stripped = value.strip()
        if stripped[:1] in ("[", "{"):
            value = json.loads(stripped)
    return value


def _parse_timestamp(value: str) -> datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_price_rows(text: str, symbol: str, *, max_errors: int = MAX_CSV_ERRORS) -> list[tuple[datetime, Decimal]]:
    """Parse ``timestamp,"[{""coin"":""SUI"",""close"":...}]"`` rows for ``symbol``.

    The first line is a header. Bad rows are logged and skipped until
    ``max_errors`` is exceeded, after which parsing stops.
    """

    rows: list[tuple[datetime, Decimal]] = []
    errors = 0
    for line_number, line in enumerate(text.strip().splitlines(), start=1):
        if line_number == 1 or not line.strip():
            continue
        timestamp_text, separator, payload = line.partition(",")
        if not separator:
            logger.warning("No comma found in price row %d", line_number)
            continue
        try:
            data = parse_lenient_json(payload.strip())
            if not isinstance(data, list):
                raise ValueError(f"expected a list, got {type(data).__name__}")
            entry = next(
                (item for item in data if isinstance(item, dict) and item.get("coin") == symbol),
                None,
            )
            if entry is None:
                raise ValueError(f"no {symbol} entry")
            close = Decimal(str(entry.get("close")))
            if not close.is_finite():
                raise ValueError(f"invalid close {entry.get('close')!r}")
            rows.append((_parse_timestamp(timestamp_text), close))
        except (ValueError, InvalidOperation) as exc:
            errors += 1
            logger.warning("Skipping price row %d: %s", line_number, exc)
            if errors > max_errors:
                logger.error("Too many bad price rows; stopping after line %d", line_number)
                break
    return rows


def _read_json(response: httpx.Response, source: str) -> Any:
    if response.status_code >= 400:
        raise PriceSourceError(f"{source} error {response.status_code}: {response.text[:200]}")
    try:
        return parse_lenient_json(response.text)
    except ValueError as exc:
        raise PriceSourceError(f"{source} returned invalid JSON payload") from exc


class CoinGeckoPriceSource:
    """Client for the CoinGecko ``simple/price`` and ``market_chart/range`` endpoints."""

    def __init__(
        self,
        base_url: str,
        *,
        source_ids: Mapping[str, str],
        api_key: Optional[str] = None,
        timeout_seconds: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.source_ids = {symbol.upper(): source_id for symbol, source_id in source_ids.items()}
        self.timeout_seconds = timeout_seconds
        self._headers = {"x-cg-demo-api-key": api_key} if api_key else {}
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def aclose(self) -> None:
        await self._client.aclose()

    def source_id(self, symbol: str) -> str:
        try:
            return self.source_ids[symbol.upper()]
        except KeyError:
            raise ConfigurationError(
                "PRICE_SOURCE_IDS", f"no upstream price id configured for {symbol}"
            ) from None

    async def _get(self, path: str, params: dict[str, Any]) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = await self._client.get(
                url,
                params=params,
                headers=self._headers,
                timeout=self.timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise PriceSourceError(f"Failed to reach price API: {exc}") from exc
        return _read_json(response, "Price API")

    async def fetch_price(self, symbol: str) -> Decimal:
        source_id = self.source_id(symbol)
        payload = await self._get("simple/price", {"ids": source_id, "vs_currencies": DEFAULT_VS_CURRENCY})
        try:
            value = payload[source_id][DEFAULT_VS_CURRENCY]
        except (KeyError, TypeError) as exc:
            raise PriceSourceError(f"Price API response has no {symbol} price") from exc
        try:
            return Decimal(str(value))
        except InvalidOperation as exc:
            raise PriceSourceError(f"Price API returned a non-numeric {symbol} price: {value!r}") from exc

    async def fetch_market_chart(
        self,
        symbol: str,
        start: datetime,
        end: datetime,
    ) -> list[tuple[datetime, float]]:
        """Return ``(timestamp, price)`` samples between ``start`` and ``end``."""

        source_id = self.source_id(symbol)
        payload = await self._get(
            f"coins/{source_id}/market_chart/range",
            {
                "vs_currency": DEFAULT_VS_CURRENCY,
                "from": int(start.timestamp()),
                "to": int(end.timestamp()),
            },
        )
        prices = payload.get("prices") if isinstance(payload, dict) else None
        if not isinstance(prices, list):
            raise PriceSourceError(f"Price API market chart for {symbol} has no prices")

        samples: list[tuple[datetime, float]] = []
        for item in prices:
            if not isinstance(item, (list, tuple)) or len(item) < 2:
                continue
            try:
                moment = datetime.fromtimestamp(float(item[0]) / 1000, tz=timezone.utc)
                samples.append((moment, float(item[1])))
            except (TypeError, ValueError):
                logger.debug("Skipping malformed market chart sample %r", item)
        return samples


class CsvTimeSeriesPriceSource:
    """Reads the latest close from a CSV feed with JSON-encoded rows."""

    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_price(self, symbol: str) -> Decimal:
        try:
            response = await self._client.get(self.url, timeout=self.timeout_seconds)
        except httpx.HTTPError as exc:
            raise PriceSourceError(f"Failed to reach price feed: {exc}") from exc
        if response.status_code >= 400:
            raise PriceSourceError(f"Price feed error {response.status_code}")

        rows = parse_price_rows(response.text, symbol.upper())
        if not rows:
            raise PriceSourceError(f"Price feed has no rows for {symbol}")
        _, close = max(rows, key=lambda row: row[0])
        return close


class FallbackPriceSource:
    """Tries each source in order until one returns a price."""

    def __init__(self, sources: Sequence[PriceSource]) -> None:
        if not sources:
            raise ConfigurationError("PRICE_PROVIDER", "at least one price source is required")
        self.sources = list(sources)

    async def fetch_price(self, symbol: str) -> Decimal:
        last_error: Optional[Exception] = None
        for source in self.sources:
            try:
                return await source.fetch_price(symbol)
            except (PriceSourceError, ConfigurationError) as exc:
                logger.warning("%s failed for %s: %s", type(source).__name__, symbol, exc)
                last_error = exc
        assert last_error is not None
        raise last_error

    async def aclose(self) -> None:
        for source in self.sources:
            close = getattr(source, "aclose", None)
            if close is not None:
                await close()


__all__ = [
    "CoinGeckoPriceSource",
    "CsvTimeSeriesPriceSource",
    "FallbackPriceSource",
    "PriceSource",
    "parse_lenient_json",
    "parse_price_rows",
]
