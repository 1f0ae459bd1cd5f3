import asyncio
import inspect
import pathlib
import sys

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.config import get_settings  # noqa: E402
from app.services.price_points import PricePointCache  # noqa: E402


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers used in the suite."""

    config.addinivalue_line("markers", "asyncio: mark test as running in an asyncio event loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Execute async test functions without requiring pytest-asyncio."""

    test_function = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_function):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            arguments = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
            loop.run_until_complete(test_function(**arguments))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch):
    """Keep the process environment and cached settings out of each test."""

    for name in (
        "FUND_ADDRESS",
        "PRICE_PROVIDER",
        "PRICE_CACHE_PATH",
        "TELEMETRY_ENABLED",
        "EXCHANGE_RATE_CURRENCY",
        "EXCHANGE_RATE_API_KEY",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def price_cache(tmp_path: pathlib.Path) -> PricePointCache:
    """A cache with two recorded days of prices and NAV."""

    cache = PricePointCache(
        tmp_path / "prices.json",
        default_prices={"USDC": 1.0, "SUI": 0.0, "DEEP": 0.0},
        default_tokens_available=998_942,
        clock=lambda: 1_709_337_600.0,
    )
    cache.merge("2024-02-28", prices={"DEEP": 0.25})
    cache.merge("2024-03-01", prices={"SUI": 1.8}, funds_usd=2116.0)
    cache.merge("2024-03-02", prices={"SUI": 1.9}, funds_usd=2200.0, tokens_available=998_900)
    return cache
