"""
Cancellation signal shared between a pipeline run and its in-flight calls.
"""
import asyncio
from typing import Awaitable, Optional, TypeVar

from agents.errors import OperationCancelledError

T = TypeVar("T")


class CancellationSignal:
    """
    One-shot cancellation flag that in-flight awaitables can race against.

    A signal belongs to exactly one pipeline run. Once cancelled it stays
    cancelled.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "Cancelled by caller") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError(self.reason or "Cancelled")

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` unless the signal fires first.

        When the signal wins, the pending work is cancelled and awaited so
        nothing leaks, then OperationCancelledError is raised.
        """
        task = asyncio.ensure_future(awaitable)
        if self._event.is_set():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            self.raise_if_cancelled()

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            # Outer cancellation must not leave either task running
            for pending in (task, waiter):
                if not pending.done():
                    pending.cancel()

        if task in done:
            return task.result()

        await asyncio.gather(task, return_exceptions=True)
        raise OperationCancelledError(self.reason or "Cancelled")
