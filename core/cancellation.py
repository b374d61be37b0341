"""Cancellation signal threaded through one turn"""
import asyncio
import contextlib
import logging
from typing import Awaitable, Optional, TypeVar

from core.errors import Cancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancelSignal:
    """One-shot cancellation flag with a reason, awaitable by transports.

    Create one per call and pass it in the turn options; ``cancel()`` may be
    called from any task on the same event loop.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "aborted") -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        logger.info(f"Cancellation requested: {reason}")

    def raise_if_aborted(self) -> None:
        if self._event.is_set():
            raise Cancelled(self.reason)

    async def wait(self) -> None:
        await self._event.wait()


async def guarded(awaitable: Awaitable[T], signal: Optional[CancelSignal]) -> T:
    """Await ``awaitable`` unless ``signal`` fires first.

    When the signal wins, the pending operation is cancelled and
    ``Cancelled`` is raised. A result that is already available wins over a
    signal that fired at the same time.
    """
    if signal is None:
        return await awaitable

    signal.raise_if_aborted()
    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(signal.wait())
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
    # Outcome of the abandoned operation is irrelevant once cancelled
    with contextlib.suppress(asyncio.CancelledError, Exception):
        await task
    raise Cancelled(signal.reason)
