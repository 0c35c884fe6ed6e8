"""
Market Resolver: Cooperative Cancellation
A single signal is threaded through every in-flight provider call. Firing it
aborts the running request and interrupts any pending retry wait.
"""
import asyncio
import contextlib
from typing import Awaitable, Optional, TypeVar

from market_resolver.data.errors import OperationCancelledError

T = TypeVar("T")


class CancellationSignal:
    """Fire-once cancellation flag that awaiting code can race against."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "Operation has been cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError(self.reason)

    async def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds`` unless the signal fires first."""
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise OperationCancelledError(self.reason)

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable``, abandoning it as soon as the signal fires."""
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise OperationCancelledError(self.reason)
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()
        if task.done():
            return task.result()
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        raise OperationCancelledError(self.reason)


async def sleep_unless_cancelled(seconds: float, signal: Optional[CancellationSignal]) -> None:
    if signal is None:
        await asyncio.sleep(seconds)
    else:
        await signal.sleep(seconds)


async def run_unless_cancelled(awaitable: Awaitable[T], signal: Optional[CancellationSignal]) -> T:
    if signal is None:
        return await awaitable
    return await signal.guard(awaitable)
