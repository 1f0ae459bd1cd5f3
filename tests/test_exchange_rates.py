"""Exchange rate client tests."""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from decimal import Decimal

import httpx
import pytest

from app.config import AppSettings
from app.core.errors import ConfigurationError, PriceSourceError
from app.providers.exchange_rates import ExchangeRateClient
from app.services.container import build_exchange_rates


class StubResponse:
    def __init__(self, payload: object, status_code: int = 200) -> None:
        self.text = payload if isinstance(payload, str) else json.dumps(payload)
        self.status_code = status_code


class StubClient:
    def __init__(self, response: StubResponse | Exception) -> None:
        self.response = response
        self.calls: list[dict[str, object]] = []

    async def get(self, url: str, params: dict[str, object] | None = None, timeout=None) -> StubResponse:
        self.calls.append({"url": url, "params": params})
        if isinstance(self.response, Exception):
            raise self.response
        return self.response

    async def aclose(self) -> None:  # pragma: no cover - included for interface completeness
        return None


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _client(response: StubResponse | Exception, *, api_key: str | None = "app-id", clock=None) -> ExchangeRateClient:
    return ExchangeRateClient(
        "https://rates.example.test/api/",
        api_key=api_key,
        currency="gbp",
        client=StubClient(response),
        clock=clock or FakeClock(),
    )


async def test_latest_rate_is_cached_for_thirty_minutes():
    clock = FakeClock()
    rates = _client(StubResponse({"base": "USD", "rates": {"GBP": 0.79}}), clock=clock)

    first = await rates.usd_rate()
    clock.now += 29 * 60
    second = await rates.usd_rate()

    assert first == second == Decimal("0.79")
    calls = rates._client.calls
    assert len(calls) == 1
    assert calls[0]["url"] == "https://rates.example.test/api/latest.json"
    assert calls[0]["params"] == {"app_id": "app-id", "base": "USD", "symbols": "GBP"}

    clock.now += 2 * 60
    await rates.usd_rate()
    assert len(calls) == 2


async def test_past_days_use_historical_endpoint():
    rates = _client(StubResponse({"rates": {"GBP": "0.7812"}}))

    rate = await rates.usd_rate(date(2024, 3, 1))

    assert rate == Decimal("0.7812")
    assert rates._client.calls[0]["url"] == "https://rates.example.test/api/historical/2024-03-01.json"


async def test_convert_multiplies_by_rate():
    rates = _client(StubResponse({"rates": {"GBP": 0.8}}))

    assert await rates.convert(Decimal("250")) == Decimal("200.0")
    assert await rates.convert(Decimal(0)) == Decimal(0)


async def test_missing_api_key_is_a_configuration_error():
    rates = _client(StubResponse({"rates": {"GBP": 0.8}}), api_key=None)

    with pytest.raises(ConfigurationError) as excinfo:
        await rates.usd_rate()
    assert excinfo.value.setting == "EXCHANGE_RATE_API_KEY"
    assert rates._client.calls == []


@pytest.mark.parametrize(
    "response",
    [
        StubResponse({"error": True, "description": "Invalid App ID"}),
        StubResponse({"rates": {"EUR": 0.9}}),
        StubResponse({"rates": {"GBP": -1}}),
        StubResponse("not json"),
        StubResponse("upstream down", status_code=502),
        httpx.ConnectError("boom"),
    ],
)
async def test_upstream_failures_raise_price_source_error(response):
    rates = _client(response)
    with pytest.raises(PriceSourceError):
        await rates.usd_rate(datetime.now(timezone.utc).date())


def test_client_is_built_only_for_a_configured_currency():
    assert build_exchange_rates(AppSettings()) is None

    rates = build_exchange_rates(AppSettings(exchange_rate_currency="gbp", exchange_rate_api_key="app-id"))

    assert rates.currency == "GBP"
    assert rates.cache_seconds == 1800.0
