"""
Market Resolver: Test Configuration & Fixtures
Shared fixtures for all test modules.
"""
import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import pytest
from aiohttp import web
from aiohttp import test_utils

from market_resolver.config.settings import ProviderSettings
from market_resolver.data.adapters.base import BaseProviderAdapter
from market_resolver.data.errors import ProviderError
from market_resolver.data.models import Candle, ProviderId, Quote, RequestPolicy


# Fast policy for HTTP tests: minimum allowed timeout and delay
FAST_POLICY = RequestPolicy(timeout_ms=2000, retries=2, retry_delay_ms=100)


@asynccontextmanager
async def serve(routes: Dict[str, Callable]):
    """Run an in-process aiohttp server with the given GET routes."""
    app = web.Application()
    for path, handler in routes.items():
        app.router.add_get(path, handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        yield str(server.make_url("")).rstrip("/")
    finally:
        await server.close()


def settings_for(base_url: str, **overrides) -> ProviderSettings:
    """Provider settings with every provider pointed at one test server."""
    values = dict(
        binance_us_base_url=base_url,
        kraken_base_url=base_url,
        dexscreener_base_url=base_url,
        timeout_ms=FAST_POLICY.timeout_ms,
        retries=FAST_POLICY.retries,
        retry_delay_ms=FAST_POLICY.retry_delay_ms,
    )
    values.update(overrides)
    return ProviderSettings(**values)


class FakeAdapter(BaseProviderAdapter):
    """Scripted adapter: returns ``price`` or fails with ``error``."""

    def __init__(
        self,
        provider: ProviderId,
        price: Optional[float] = None,
        error: Optional[str] = None,
        delay: float = 0.0,
        calls: Optional[List[ProviderId]] = None,
    ):
        self.provider = provider
        self.price = price
        self.error = error
        self.delay = delay
        self.calls = calls if calls is not None else []

    async def fetch_spot_price(self, base, quote, signal=None):
        self.calls.append(self.provider)
        if self.delay:
            await asyncio.sleep(self.delay)
        if signal:
            signal.raise_if_cancelled()
        if self.error is not None:
            raise ProviderError(self.provider, [f"{base}{quote}"], self.error)
        return Quote(
            provider=self.provider,
            base_asset=base,
            quote_asset=quote,
            symbol=f"{base}{quote}",
            price=self.price,
            timestamp=datetime.now(timezone.utc),
        )

    async def fetch_candles(self, base, quote, interval, limit, signal=None):
        self.calls.append(self.provider)
        if self.error is not None:
            raise ProviderError(self.provider, [f"{base}{quote}"], self.error)
        return [
            Candle(
                open_time="2024-01-01T00:00:00.000Z",
                close_time="2024-01-01T01:00:00.000Z",
                open=1.0, high=2.0, low=0.5, close=1.5, volume=10.0,
            )
        ][:limit]


@pytest.fixture
def fake_factory():
    """Build an adapter factory from {provider: dict(price=..., error=...)} scripts."""
    def build(scripts: Dict[ProviderId, dict], calls: Optional[List[ProviderId]] = None):
        calls = calls if calls is not None else []

        def factory(provider, transport):
            return FakeAdapter(provider, calls=calls, **scripts[provider])

        return factory
    return build


@pytest.fixture
def binance_kline_rows():
    """20 hourly Binance klines starting 2024-01-01T00:00Z, string-encoded like the API."""
    start = 1704067200000
    hour = 3_600_000
    rows = []
    for i in range(20):
        open_time = start + i * hour
        price = 100 + i
        rows.append([
            open_time, f"{price:.2f}", f"{price + 1:.2f}", f"{price - 1:.2f}", f"{price + 0.5:.2f}",
            "12.5", open_time + hour - 1, "1250.0", 42, "6.0", "600.0", "0",
        ])
    return rows


@pytest.fixture
def kraken_ohlc_rows():
    """10 hourly Kraken OHLC rows (epoch seconds, no close time)."""
    start = 1704067200
    return [
        [start + i * 3600, f"{50 + i}.0", f"{51 + i}.0", f"{49 + i}.0", f"{50 + i}.5", f"{50 + i}.2", "3.25", 17]
        for i in range(10)
    ]


@pytest.fixture
def serve_routes():
    return serve


@pytest.fixture
def make_settings():
    return settings_for


@pytest.fixture
def fast_policy():
    return FAST_POLICY
