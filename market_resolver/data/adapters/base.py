"""
Market Resolver: Base Provider Adapter Interface
All price providers implement this interface.
"""
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional, TypeVar

from market_resolver.data.cancellation import CancellationSignal
from market_resolver.data.errors import OperationCancelledError, ProviderError, ProviderRequestError
from market_resolver.data.models import Candle, CandleInterval, PairCandidate, ProviderId, Quote
from market_resolver.data.symbols import pair_candidates
from market_resolver.data.transport import Transport
from market_resolver.utils.logger import get_logger

logger = get_logger("adapters")

T = TypeVar("T")


class BaseProviderAdapter(ABC):
    """Abstract base class for all spot price / candle providers."""

    provider: ProviderId

    def __init__(self, transport: Transport, base_url: str):
        self.transport = transport
        self.base_url = base_url.rstrip("/")

    def candidates(self, base: str, quote: str) -> List[PairCandidate]:
        return pair_candidates(self.provider, base, quote)

    async def probe(
        self,
        candidates: List[PairCandidate],
        fetch_one: Callable[[PairCandidate], Awaitable[T]],
    ) -> T:
        """
        Try candidates in rank order and return the first parsed response.
        Raises ProviderError naming every tried candidate once all fail.
        """
        last_error: Optional[str] = None
        for candidate in candidates:
            try:
                return await fetch_one(candidate)
            except OperationCancelledError:
                raise
            except ProviderRequestError as e:
                last_error = str(e)
                logger.debug(
                    "candidate_failed",
                    provider=self.provider.value,
                    symbol=candidate.symbol,
                    rank=candidate.rank,
                    error=last_error,
                )
        raise ProviderError(self.provider, [c.symbol for c in candidates], last_error)

    @abstractmethod
    async def fetch_spot_price(
        self, base: str, quote: str, signal: Optional[CancellationSignal] = None
    ) -> Quote:
        """Fetch the latest price for a canonical pair."""

    @abstractmethod
    async def fetch_candles(
        self,
        base: str,
        quote: str,
        interval: CandleInterval,
        limit: int,
        signal: Optional[CancellationSignal] = None,
    ) -> List[Candle]:
        """Fetch the most recent ``limit`` candles, oldest first."""
