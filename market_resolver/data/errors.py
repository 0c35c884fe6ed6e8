"""
Market Resolver: Error Types
Provider failures are caught per provider and turned into attempt records;
only the aggregate errors below ever reach a caller of the resolver.
"""
from typing import List, Optional, Sequence

from market_resolver.data.models import ProviderAttempt, ProviderId


class MarketDataError(Exception):
    """Base class for every error raised by the engine."""


class InputValidationError(MarketDataError, ValueError):
    """Caller input violates a declared constraint. Raised before any network call."""


class OperationCancelledError(MarketDataError):
    """The caller's cancellation signal fired."""

    def __init__(self, message: str = "Operation has been cancelled"):
        super().__init__(message)


class ProviderRequestError(MarketDataError):
    """A single HTTP request to a provider failed."""

    def __init__(self, message: str, status: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.url = url


class TransientProviderError(ProviderRequestError):
    """Rate limit, server error or network failure. Retried within the policy budget."""


class PermanentProviderError(ProviderRequestError):
    """Other client error or malformed response. Never retried."""


class ProviderError(MarketDataError):
    """Every candidate of one provider was exhausted."""

    def __init__(self, provider: ProviderId, candidates: Sequence[str], last_error: Optional[str]):
        self.provider = provider
        self.candidates = list(candidates)
        self.last_error = last_error or "unknown error"
        super().__init__(
            f"{provider.value} request failed. Tried pairs: {', '.join(self.candidates)}. "
            f"Last error: {self.last_error}"
        )


def _describe(attempts: Sequence[ProviderAttempt]) -> str:
    return " | ".join(f"{a.provider.value}: {a.error or 'unknown error'}" for a in attempts)


class AllProvidersFailedError(MarketDataError):
    """Fallback resolution ran out of providers."""

    def __init__(self, attempts: List[ProviderAttempt]):
        self.attempts = list(attempts)
        super().__init__(f"All providers failed: {_describe(self.attempts)}")


class NoQuotesError(MarketDataError):
    """Consensus resolution produced no successful quote."""

    def __init__(self, attempts: List[ProviderAttempt]):
        self.attempts = list(attempts)
        super().__init__(f"No provider returned a valid quote: {_describe(self.attempts)}")
