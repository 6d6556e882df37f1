"""Cooperative cancellation for a running task.

Each task session owns one CancellationToken. The loop checks it between
turns and races it against the tool that is currently running, so a
cancelled tool resolves promptly instead of hanging.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Optional, TypeVar

T = TypeVar("T")


class TaskCancelled(Exception):
    """Raised inside the loop when the session's token was triggered."""

    def __init__(self, reason: str = "user"):
        super().__init__(f"Task cancelled ({reason})")
        self.reason = reason


@dataclass
class CancellationToken:
    """Per-session cancel flag."""
    reason: str = ""
    _event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "user") -> None:
        self.reason = reason
        self._event.set()

    def reset(self) -> None:
        self.reason = ""
        self._event.clear()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise TaskCancelled(self.reason)

    async def wait(self) -> None:
        await self._event.wait()

    async def run(self, awaitable: Awaitable[T], timeout: Optional[float] = None) -> T:
        """Await `awaitable` unless cancellation or `timeout` happens first.

        Raises TaskCancelled or asyncio.TimeoutError. The inner task is
        cancelled in either case.
        """
        self.raise_if_cancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {work, waiter}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            waiter.cancel()
        if work in done:
            return work.result()
        work.cancel()
        try:
            await work
        except asyncio.CancelledError:
            pass
        if self.cancelled:
            raise TaskCancelled(self.reason)
        raise asyncio.TimeoutError()
