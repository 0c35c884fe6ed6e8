"""
Market Resolver: Integration Tests for Fallback, Consensus and Candle Resolution
Adapters are scripted; transports are real but never used for requests.
"""
import asyncio

import pytest

from market_resolver.data.cancellation import CancellationSignal
from market_resolver.data.errors import (
    AllProvidersFailedError,
    InputValidationError,
    NoQuotesError,
    OperationCancelledError,
)
from market_resolver.data.models import CandleInterval, ProviderId
from market_resolver.data.resolver import MarketDataResolver, canonical_asset, select_providers

BINANCE = ProviderId.BINANCE_US
KRAKEN = ProviderId.KRAKEN


def make_resolver(make_settings, fake_factory, scripts, calls=None):
    factory = fake_factory(scripts, calls)
    return MarketDataResolver(settings=make_settings("http://127.0.0.1:9"), adapter_factory=factory)


# ─── Input handling ─────────────────────────────────────────────

class TestInputs:
    def test_canonical_asset(self):
        assert canonical_asset(" btc ", "base_asset") == "BTC"

    @pytest.mark.parametrize("raw", ["", "   ", "$$$", None])
    def test_canonical_asset_rejects_empty(self, raw):
        with pytest.raises(InputValidationError, match="base_asset"):
            canonical_asset(raw, "base_asset")

    def test_select_providers_dedups(self):
        assert select_providers(["kraken", "binance_us", "kraken"], ["binance_us"]) == [KRAKEN, BINANCE]

    def test_select_providers_defaults_when_empty(self):
        assert select_providers([], ["binance_us", "kraken"]) == [BINANCE, KRAKEN]
        assert select_providers(None, [KRAKEN]) == [KRAKEN]

    def test_select_providers_rejects_unknown(self):
        with pytest.raises(InputValidationError, match="Unsupported provider"):
            select_providers(["coinbase"], ["binance_us"])


# ─── Fallback ───────────────────────────────────────────────────

class TestFallback:
    @pytest.mark.asyncio
    async def test_first_success_wins(self, make_settings, fake_factory):
        calls = []
        resolver = make_resolver(
            make_settings, fake_factory,
            {BINANCE: dict(price=42000.0), KRAKEN: dict(price=41990.0)}, calls,
        )
        result = await resolver.resolve_spot_price("btc", "usd")
        assert result.selected_provider == BINANCE
        assert result.price == 42000.0
        assert result.base_asset == "BTC"
        assert result.quote_asset == "USD"
        assert len(result.attempts) == 1
        assert calls == [BINANCE]

    @pytest.mark.asyncio
    async def test_falls_back_after_failure(self, make_settings, fake_factory):
        resolver = make_resolver(
            make_settings, fake_factory,
            {BINANCE: dict(error="HTTP 400: Invalid symbol"), KRAKEN: dict(price=41990.0)},
        )
        result = await resolver.resolve_spot_price("BTC", "USD")
        assert result.selected_provider == KRAKEN
        assert result.price == 41990.0
        assert [a.provider for a in result.attempts] == [BINANCE, KRAKEN]
        assert result.attempts[0].success is False
        assert "Invalid symbol" in result.attempts[0].error
        assert result.attempts[1].success is True
        assert result.attempts[1].price == 41990.0

    @pytest.mark.asyncio
    async def test_providers_after_winner_not_contacted(self, make_settings, fake_factory):
        calls = []
        resolver = make_resolver(
            make_settings, fake_factory,
            {KRAKEN: dict(price=1.0), BINANCE: dict(price=2.0)}, calls,
        )
        result = await resolver.resolve_spot_price("ETH", "USD", providers=["kraken", "binance_us"])
        assert result.selected_provider == KRAKEN
        assert calls == [KRAKEN]

    @pytest.mark.asyncio
    async def test_duplicate_preferences_tried_once(self, make_settings, fake_factory):
        calls = []
        resolver = make_resolver(
            make_settings, fake_factory,
            {KRAKEN: dict(error="down"), BINANCE: dict(error="down")}, calls,
        )
        with pytest.raises(AllProvidersFailedError):
            await resolver.resolve_spot_price("ETH", "USD", providers=["kraken", "kraken", "binance_us"])
        assert calls == [KRAKEN, BINANCE]

    @pytest.mark.asyncio
    async def test_all_failed_carries_attempts(self, make_settings, fake_factory):
        resolver = make_resolver(
            make_settings, fake_factory,
            {BINANCE: dict(error="HTTP 503"), KRAKEN: dict(error="EQuery:Unknown asset pair")},
        )
        with pytest.raises(AllProvidersFailedError) as exc:
            await resolver.resolve_spot_price("FOO", "BAR")
        attempts = exc.value.attempts
        assert len(attempts) == 2
        assert all(not a.success for a in attempts)
        assert str(exc.value).startswith("All providers failed: binance_us: ")
        assert "kraken: " in str(exc.value)

    @pytest.mark.asyncio
    async def test_attempts_can_be_omitted(self, make_settings, fake_factory):
        resolver = make_resolver(make_settings, fake_factory, {BINANCE: dict(price=5.0)})
        result = await resolver.resolve_spot_price("SOL", "USD", providers=["binance_us"], include_attempts=False)
        assert result.attempts == []

    @pytest.mark.asyncio
    async def test_invalid_input_makes_no_calls(self, make_settings, fake_factory):
        calls = []
        resolver = make_resolver(make_settings, fake_factory, {BINANCE: dict(price=1.0)}, calls)
        with pytest.raises(InputValidationError):
            await resolver.resolve_spot_price("", "USD")
        with pytest.raises(InputValidationError):
            await resolver.resolve_spot_price("BTC", "USD", providers=["nope"])
        assert calls == []

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, make_settings, fake_factory):
        calls = []
        resolver = make_resolver(make_settings, fake_factory, {BINANCE: dict(price=1.0)}, calls)
        signal = CancellationSignal()
        signal.cancel()
        with pytest.raises(OperationCancelledError):
            await resolver.resolve_spot_price("BTC", "USD", signal=signal)
        assert calls == []

    @pytest.mark.asyncio
    async def test_cancellation_is_not_a_provider_failure(self, make_settings, fake_factory):
        calls = []
        resolver = make_resolver(
            make_settings, fake_factory,
            {BINANCE: dict(price=1.0, delay=0.2), KRAKEN: dict(price=2.0)}, calls,
        )
        signal = CancellationSignal()
        asyncio.get_running_loop().call_later(0.05, signal.cancel)
        with pytest.raises(OperationCancelledError):
            await resolver.resolve_spot_price("BTC", "USD", signal=signal)
        assert calls == [BINANCE]


# ─── Consensus ──────────────────────────────────────────────────

class TestConsensusResolution:
    @pytest.mark.asyncio
    async def test_all_providers_summarized(self, make_settings, fake_factory):
        resolver = make_resolver(
            make_settings, fake_factory,
            {BINANCE: dict(price=100.0), KRAKEN: dict(price=110.0)},
        )
        result = await resolver.resolve_consensus("BTC", "USD")
        assert len(result.quotes) == 2
        assert result.summary.median == 105.0
        assert result.summary.min == 100.0
        assert result.summary.max == 110.0
        assert result.summary.spread_percent == pytest.approx(10 / 105 * 100)
        assert all(a.success for a in result.attempts)

    @pytest.mark.asyncio
    async def test_waits_for_every_provider(self, make_settings, fake_factory):
        resolver = make_resolver(
            make_settings, fake_factory,
            {BINANCE: dict(price=100.0, delay=0.15), KRAKEN: dict(price=101.0)},
        )
        result = await resolver.resolve_consensus("BTC", "USD")
        assert {q.provider for q in result.quotes} == {BINANCE, KRAKEN}

    @pytest.mark.asyncio
    async def test_runs_concurrently(self, make_settings, fake_factory):
        resolver = make_resolver(
            make_settings, fake_factory,
            {BINANCE: dict(price=1.0, delay=0.3), KRAKEN: dict(price=1.0, delay=0.3)},
        )
        loop = asyncio.get_running_loop()
        started = loop.time()
        await resolver.resolve_consensus("BTC", "USD")
        assert loop.time() - started < 0.55

    @pytest.mark.asyncio
    async def test_failures_recorded_next_to_quotes(self, make_settings, fake_factory):
        resolver = make_resolver(
            make_settings, fake_factory,
            {BINANCE: dict(error="HTTP 451"), KRAKEN: dict(price=64000.0)},
        )
        result = await resolver.resolve_consensus("BTC", "USD")
        assert [q.provider for q in result.quotes] == [KRAKEN]
        assert result.summary.median == 64000.0
        assert result.summary.spread_percent == 0
        failed = [a for a in result.attempts if not a.success]
        assert [a.provider for a in failed] == [BINANCE]

    @pytest.mark.asyncio
    async def test_no_quotes(self, make_settings, fake_factory):
        resolver = make_resolver(
            make_settings, fake_factory,
            {BINANCE: dict(error="x"), KRAKEN: dict(error="y")},
        )
        with pytest.raises(NoQuotesError) as exc:
            await resolver.resolve_consensus("BTC", "USD")
        assert len(exc.value.attempts) == 2

    @pytest.mark.asyncio
    async def test_explicit_provider_subset(self, make_settings, fake_factory):
        calls = []
        resolver = make_resolver(
            make_settings, fake_factory,
            {BINANCE: dict(price=1.0), KRAKEN: dict(price=2.0)}, calls,
        )
        result = await resolver.resolve_consensus("BTC", "USD", providers=["kraken"])
        assert calls == [KRAKEN]
        assert result.summary.median == 2.0

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, make_settings, fake_factory):
        resolver = make_resolver(
            make_settings, fake_factory,
            {BINANCE: dict(price=1.0, delay=0.2), KRAKEN: dict(price=2.0, delay=0.2)},
        )
        signal = CancellationSignal()
        asyncio.get_running_loop().call_later(0.05, signal.cancel)
        with pytest.raises(OperationCancelledError):
            await resolver.resolve_consensus("BTC", "USD", signal=signal)


# ─── Candles ────────────────────────────────────────────────────

class TestCandleResolution:
    @pytest.mark.asyncio
    async def test_fallback(self, make_settings, fake_factory):
        resolver = make_resolver(
            make_settings, fake_factory,
            {BINANCE: dict(error="HTTP 400"), KRAKEN: dict(price=1.0)},
        )
        series = await resolver.resolve_candles("BTC", "USD", interval="1h", limit=5)
        assert series.selected_provider == KRAKEN
        assert series.interval == CandleInterval.H1
        assert series.point_count == len(series.points) == 1
        assert [a.success for a in series.attempts] == [False, True]

    @pytest.mark.asyncio
    async def test_all_failed(self, make_settings, fake_factory):
        resolver = make_resolver(
            make_settings, fake_factory,
            {BINANCE: dict(error="a"), KRAKEN: dict(error="b")},
        )
        with pytest.raises(AllProvidersFailedError):
            await resolver.resolve_candles("BTC", "USD", limit=10)

    @pytest.mark.asyncio
    async def test_unknown_interval(self, make_settings, fake_factory):
        resolver = make_resolver(make_settings, fake_factory, {BINANCE: dict(price=1.0)})
        with pytest.raises(InputValidationError, match="interval"):
            await resolver.resolve_candles("BTC", "USD", interval="2h")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, 4, 1001])
    async def test_limit_out_of_range(self, make_settings, fake_factory, limit):
        calls = []
        resolver = make_resolver(make_settings, fake_factory, {BINANCE: dict(price=1.0)}, calls)
        with pytest.raises(InputValidationError, match="limit"):
            await resolver.resolve_candles("BTC", "USD", limit=limit)
        assert calls == []
