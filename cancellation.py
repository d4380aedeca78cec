"""Cooperative cancellation for a running task."""
from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, TypeVar

from exceptions import TaskAbortedError

T = TypeVar("T")


class AbortSignal:
    """A one-shot flag that in-flight awaits can race against.

    Each suspension point of the agent wraps its awaitable in :meth:`guard`,
    so a triggered signal interrupts a slow model call or page load instead
    of waiting for it to finish.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def abort(self, reason: Optional[str] = None) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_aborted(self) -> None:
        if self.aborted:
            raise TaskAbortedError(self.reason)

    async def wait(self) -> None:
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the signal fires first."""
        if self.aborted:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise TaskAbortedError(self.reason)
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()
        if task in done:
            return task.result()

        task.cancel()
        # Let the cancelled work unwind before reporting the abort
        await asyncio.gather(task, return_exceptions=True)
        raise TaskAbortedError(self.reason)
