"""
Market Resolver: Per-Call HTTP Transport
One aiohttp session per resolution call (or per consensus task), configured
from a RequestPolicy. Rate limits, server errors and network failures are
retried after a fixed delay; every other client error is terminal.
"""
import asyncio
import aiohttp
from typing import Any, Dict, Optional

from market_resolver.config.settings import ProviderSettings, get_settings
from market_resolver.data.cancellation import (
    CancellationSignal,
    run_unless_cancelled,
    sleep_unless_cancelled,
)
from market_resolver.data.errors import PermanentProviderError, TransientProviderError
from market_resolver.data.models import RequestPolicy
from market_resolver.utils.logger import get_logger

logger = get_logger("transport")

_NETWORK_ERRORS = (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError, asyncio.TimeoutError)


def is_retryable_status(status: int) -> bool:
    return status == 429 or status >= 500


def default_policy(settings: Optional[ProviderSettings] = None) -> RequestPolicy:
    """Request policy built from the configured defaults."""
    settings = settings or get_settings().providers
    return RequestPolicy(
        timeout_ms=settings.timeout_ms,
        retries=settings.retries,
        retry_delay_ms=settings.retry_delay_ms,
    )


class Transport:
    """Async context manager owning a single aiohttp session."""

    def __init__(self, policy: Optional[RequestPolicy] = None, user_agent: Optional[str] = None):
        self.policy = policy or default_policy()
        self.user_agent = user_agent or get_settings().providers.user_agent
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "Transport":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    async def connect(self) -> None:
        timeout = aiohttp.ClientTimeout(total=self.policy.timeout_ms / 1000)
        self._session = aiohttp.ClientSession(
            timeout=timeout,
            headers={
                "User-Agent": self.user_agent,
                "Accept": "application/json, text/plain, */*",
            },
        )

    async def disconnect(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        signal: Optional[CancellationSignal] = None,
    ) -> Any:
        """GET ``url`` and decode JSON, retrying transient failures per the policy."""
        if not self._session:
            await self.connect()

        attempt = 0
        while True:
            try:
                return await run_unless_cancelled(self._get_once(url, params), signal)
            except TransientProviderError as e:
                if attempt >= self.policy.retries:
                    logger.warning("request_retries_exhausted", url=url, attempts=attempt + 1, error=str(e))
                    raise
                attempt += 1
                logger.info(
                    "request_retry_scheduled",
                    url=url,
                    attempt=attempt,
                    retries=self.policy.retries,
                    delay_ms=self.policy.retry_delay_ms,
                    error=str(e),
                )
                await sleep_unless_cancelled(self.policy.retry_delay_ms / 1000, signal)

    async def _get_once(self, url: str, params: Optional[Dict[str, Any]]) -> Any:
        try:
            async with self._session.get(url, params=params) as resp:
                if resp.status >= 400:
                    # Error bodies are not guaranteed to be valid UTF-8
                    body = (await resp.read()).decode("utf-8", "replace")[:200]
                    message = f"HTTP {resp.status}: {body}" if body else f"HTTP {resp.status}"
                    if is_retryable_status(resp.status):
                        raise TransientProviderError(message, status=resp.status, url=url)
                    raise PermanentProviderError(message, status=resp.status, url=url)
                try:
                    return await resp.json(content_type=None)
                except ValueError as e:
                    raise PermanentProviderError(
                        f"Malformed JSON response: {e}", status=resp.status, url=url
                    ) from e
        except _NETWORK_ERRORS as e:
            raise TransientProviderError(
                f"Network error: {type(e).__name__}: {e}", url=url
            ) from e
