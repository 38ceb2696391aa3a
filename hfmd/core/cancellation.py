"""
A job-scoped cancellation signal shared by every transfer of a job.
"""

import asyncio
import contextlib
from typing import Awaitable, TypeVar

from hfmd.exceptions import TransferCancelledError

T = TypeVar("T")


class CancellationToken:
    """
    Set-once cancellation flag observed cooperatively by transfers.

    `cancel()` is safe to call from a signal handler installed with
    `loop.add_signal_handler`, and may be called any number of times.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TransferCancelledError("Transfer cancelled.")

    async def race(self, awaitable: Awaitable[T]) -> T:
        """
        Awaits `awaitable` unless the token fires first, in which case the
        awaitable is aborted and TransferCancelledError is raised.
        """
        if self._event.is_set():
            # Close un-awaited coroutines (and aiohttp request wrappers) quietly
            close = getattr(awaitable, "close", None)
            if callable(close):
                close()
            raise TransferCancelledError("Transfer cancelled.")

        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {work, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if work in done:
            return work.result()

        work.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await work
        raise TransferCancelledError("Transfer cancelled.")

    async def sleep(self, seconds: float) -> None:
        """Sleeps for `seconds`, waking early with TransferCancelledError on cancel."""
        await self.race(asyncio.sleep(seconds))
