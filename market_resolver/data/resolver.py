"""
Market Resolver: Resolution Engine
Orchestrates provider adapters in two modes:
  - fallback: providers tried strictly in order, first success wins
  - consensus: every provider queried concurrently, order statistics over
    the successful quotes
Candle series use the same fallback ordering as spot prices.
"""
import asyncio
from functools import partial
from typing import Iterable, List, Optional, Sequence, Union

from market_resolver.data.adapters.registry import AdapterFactory, build_adapter
from market_resolver.data.cancellation import CancellationSignal
from market_resolver.data.consensus import compute_consensus
from market_resolver.data.errors import (
    AllProvidersFailedError,
    InputValidationError,
    NoQuotesError,
    OperationCancelledError,
    ProviderError,
)
from market_resolver.data.models import (
    CandleInterval,
    CandleSeries,
    ConsensusResult,
    ProviderAttempt,
    ProviderId,
    Quote,
    RequestPolicy,
    SpotPriceResult,
)
from market_resolver.data.symbols import normalize_symbol
from market_resolver.data.transport import Transport, default_policy
from market_resolver.config.settings import ProviderSettings, get_settings
from market_resolver.utils.helpers import ordered_unique, utc_now
from market_resolver.utils.logger import get_logger

logger = get_logger("resolver")

ProviderLike = Union[ProviderId, str]


def canonical_asset(value: str, field: str) -> str:
    """Normalize a ticker and reject it if nothing alphanumeric remains."""
    normalized = normalize_symbol(value or "")
    if not normalized:
        raise InputValidationError(f"{field} must contain at least one letter or digit")
    return normalized


def select_providers(
    preferred: Optional[Iterable[ProviderLike]], defaults: Sequence[ProviderLike]
) -> List[ProviderId]:
    """Caller preference (or defaults when empty), validated and deduplicated."""
    chosen = list(preferred or []) or list(defaults)
    try:
        return ordered_unique(ProviderId(p) for p in chosen)
    except ValueError as e:
        supported = ", ".join(p.value for p in ProviderId)
        raise InputValidationError(f"Unsupported provider ({e}); expected one of: {supported}") from e


class MarketDataResolver:
    """
    Resolves prices and candles across independent public providers.
    Stateless between calls: each call builds its own transport(s).
    """

    def __init__(
        self,
        settings: Optional[ProviderSettings] = None,
        adapter_factory: Optional[AdapterFactory] = None,
    ):
        self.settings = settings or get_settings().providers
        self._adapter_factory = adapter_factory or partial(build_adapter, settings=self.settings)

    def _policy(self, policy: Optional[RequestPolicy]) -> RequestPolicy:
        return policy or default_policy(self.settings)

    def _transport(self, policy: RequestPolicy) -> Transport:
        return Transport(policy, user_agent=self.settings.user_agent)

    def _validate_limit(self, limit: int) -> int:
        lo, hi = self.settings.candle_min_limit, self.settings.candle_max_limit
        if not lo <= limit <= hi:
            raise InputValidationError(f"limit must be between {lo} and {hi}, got {limit}")
        return limit

    # ─── Fallback mode ──────────────────────────────────────────

    async def resolve_spot_price(
        self,
        base_asset: str,
        quote_asset: str,
        providers: Optional[Iterable[ProviderLike]] = None,
        policy: Optional[RequestPolicy] = None,
        signal: Optional[CancellationSignal] = None,
        include_attempts: bool = True,
    ) -> SpotPriceResult:
        """
        Try providers in preference order; return the first quote with the
        attempt log of every provider contacted so far.
        """
        base = canonical_asset(base_asset, "base_asset")
        quote = canonical_asset(quote_asset, "quote_asset")
        selected = select_providers(providers, self.settings.default_providers)
        if signal:
            signal.raise_if_cancelled()

        attempts: List[ProviderAttempt] = []
        async with self._transport(self._policy(policy)) as transport:
            for provider in selected:
                adapter = self._adapter_factory(provider, transport)
                try:
                    result = await adapter.fetch_spot_price(base, quote, signal)
                except ProviderError as e:
                    attempts.append(ProviderAttempt(provider=provider, success=False, error=str(e)))
                    logger.warning("spot_provider_failed", provider=provider.value, base=base, quote=quote, error=str(e))
                    continue

                attempts.append(ProviderAttempt(provider=provider, success=True, price=result.price))
                logger.info(
                    "spot_price_resolved",
                    provider=provider.value,
                    base=base,
                    quote=quote,
                    price=result.price,
                    attempts=len(attempts),
                )
                return SpotPriceResult(
                    base_asset=base,
                    quote_asset=quote,
                    selected_provider=provider,
                    price=result.price,
                    timestamp=utc_now(),
                    attempts=attempts if include_attempts else [],
                )

        logger.error("spot_all_providers_failed", base=base, quote=quote, providers=[p.value for p in selected])
        raise AllProvidersFailedError(attempts)

    # ─── Consensus mode ─────────────────────────────────────────

    async def _quote_from(
        self,
        provider: ProviderId,
        base: str,
        quote: str,
        policy: RequestPolicy,
        signal: Optional[CancellationSignal],
    ) -> Quote:
        # Each task owns its transport; nothing is shared across tasks
        async with self._transport(policy) as transport:
            adapter = self._adapter_factory(provider, transport)
            return await adapter.fetch_spot_price(base, quote, signal)

    async def resolve_consensus(
        self,
        base_asset: str,
        quote_asset: str,
        providers: Optional[Iterable[ProviderLike]] = None,
        policy: Optional[RequestPolicy] = None,
        signal: Optional[CancellationSignal] = None,
    ) -> ConsensusResult:
        """
        Query every provider concurrently and wait for all of them to settle
        before computing median/min/max/spread over the successful quotes.
        """
        base = canonical_asset(base_asset, "base_asset")
        quote = canonical_asset(quote_asset, "quote_asset")
        selected = select_providers(providers, [p.value for p in ProviderId])
        resolved_policy = self._policy(policy)
        if signal:
            signal.raise_if_cancelled()

        settled = await asyncio.gather(
            *(self._quote_from(p, base, quote, resolved_policy, signal) for p in selected),
            return_exceptions=True,
        )

        quotes: List[Quote] = []
        attempts: List[ProviderAttempt] = []
        for provider, outcome in zip(selected, settled):
            # Cancellation is never counted as a provider failure
            if isinstance(outcome, OperationCancelledError):
                raise outcome
            if isinstance(outcome, asyncio.CancelledError):
                raise OperationCancelledError()
            if isinstance(outcome, Quote):
                quotes.append(outcome)
                attempts.append(ProviderAttempt(provider=provider, success=True, price=outcome.price))
            elif isinstance(outcome, ProviderError):
                attempts.append(ProviderAttempt(provider=provider, success=False, error=str(outcome)))
                logger.warning("consensus_provider_failed", provider=provider.value, base=base, quote=quote, error=str(outcome))
            else:
                raise outcome

        if not quotes:
            logger.error("consensus_no_quotes", base=base, quote=quote, providers=[p.value for p in selected])
            raise NoQuotesError(attempts)

        if len(quotes) == 1:
            logger.warning("consensus_single_source", base=base, quote=quote, provider=quotes[0].provider.value)

        summary = compute_consensus([q.price for q in quotes])
        logger.info(
            "consensus_resolved",
            base=base,
            quote=quote,
            sources=len(quotes),
            median=summary.median,
            spread_percent=round(summary.spread_percent, 4),
        )
        return ConsensusResult(
            base_asset=base,
            quote_asset=quote,
            quotes=quotes,
            summary=summary,
            attempts=attempts,
            timestamp=utc_now(),
        )

    # ─── Candles ────────────────────────────────────────────────

    async def resolve_candles(
        self,
        base_asset: str,
        quote_asset: str,
        interval: Union[CandleInterval, str] = CandleInterval.H1,
        limit: int = 200,
        providers: Optional[Iterable[ProviderLike]] = None,
        policy: Optional[RequestPolicy] = None,
        signal: Optional[CancellationSignal] = None,
    ) -> CandleSeries:
        """Fetch candles from the first provider in preference order that answers."""
        base = canonical_asset(base_asset, "base_asset")
        quote = canonical_asset(quote_asset, "quote_asset")
        try:
            candle_interval = CandleInterval(interval)
        except ValueError as e:
            supported = ", ".join(i.value for i in CandleInterval)
            raise InputValidationError(f"Unsupported interval {interval!r}; expected one of: {supported}") from e
        self._validate_limit(limit)
        selected = select_providers(providers, self.settings.default_providers)
        if signal:
            signal.raise_if_cancelled()

        attempts: List[ProviderAttempt] = []
        async with self._transport(self._policy(policy)) as transport:
            for provider in selected:
                adapter = self._adapter_factory(provider, transport)
                try:
                    points = await adapter.fetch_candles(base, quote, candle_interval, limit, signal)
                except ProviderError as e:
                    attempts.append(ProviderAttempt(provider=provider, success=False, error=str(e)))
                    logger.warning("candles_provider_failed", provider=provider.value, base=base, quote=quote, error=str(e))
                    continue

                attempts.append(ProviderAttempt(provider=provider, success=True))
                logger.info(
                    "candles_resolved",
                    provider=provider.value,
                    base=base,
                    quote=quote,
                    interval=candle_interval.value,
                    count=len(points),
                )
                return CandleSeries(
                    base_asset=base,
                    quote_asset=quote,
                    interval=candle_interval,
                    selected_provider=provider,
                    point_count=len(points),
                    points=points,
                    attempts=attempts,
                )

        logger.error("candles_all_providers_failed", base=base, quote=quote, interval=candle_interval.value)
        raise AllProvidersFailedError(attempts)


# Singleton
_resolver: Optional[MarketDataResolver] = None


def get_resolver() -> MarketDataResolver:
    global _resolver
    if _resolver is None:
        _resolver = MarketDataResolver()
    return _resolver
