"""
Minimal drivers for running an operation to completion.

- block_on: blocks the calling thread, with optional deadline and stall detection
- drive: awaits an operation on the running asyncio loop; task cancellation
  runs the operation's cancellation handshake before CancelledError propagates

Usage:
    result = block_on(zip(sleep(0.1, "a"), sleep(0.2, "b")))

    async def main():
        winner = await asyncio.wait_for(drive(race(op_a, op_b)), timeout=5)
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Optional, TypeVar

from joinery.config import EngineSettings, get_settings
from joinery.core.errors import JoinTimeoutError, StallError
from joinery.core.poll import PENDING, Ready
from joinery.core.protocols import Operation

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ThreadWaker:
    """Waker backed by a threading.Event."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def wake(self) -> None:
        self._event.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait for a wake and re-arm. Returns False on timeout."""
        woken = self._event.wait(timeout)
        self._event.clear()
        return woken


class LoopWaker:
    """Waker that may be called from any thread; resolves on the owning loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop
        self._event = asyncio.Event()

    def wake(self) -> None:
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._event.set)

    async def wait(self) -> None:
        await self._event.wait()
        self._event.clear()


def _wait_timeout(
    deadline: Optional[float], stall_timeout: Optional[float]
) -> Optional[float]:
    if deadline is None:
        return stall_timeout
    remaining = max(deadline - time.monotonic(), 0.0)
    return remaining if stall_timeout is None else min(remaining, stall_timeout)


def cancel_blocking(
    operation: Operation[object], *, settings: Optional[EngineSettings] = None
) -> None:
    """Drive ``operation.poll_cancel`` until the operation reports cancelled."""
    settings = settings or get_settings()
    waker = ThreadWaker()
    while operation.poll_cancel(waker) is PENDING:
        if not waker.wait(settings.stall_timeout):
            raise StallError(
                "No wake while cancelling", timeout=settings.stall_timeout
            )


def block_on(
    operation: Operation[T],
    *,
    timeout: Optional[float] = None,
    settings: Optional[EngineSettings] = None,
) -> T:
    """
    Poll ``operation`` on this thread until it finishes.

    Args:
        operation: Any object implementing the Operation protocol
        timeout: Seconds until the operation is cancelled and JoinTimeoutError raised
        settings: Overrides; ``stall_timeout`` turns a missing wake into StallError
    """
    settings = settings or get_settings()
    deadline = None if timeout is None else time.monotonic() + timeout
    waker = ThreadWaker()

    while True:
        poll = operation.poll_ready(waker)
        if poll is not PENDING:
            assert isinstance(poll, Ready)
            return poll.value

        woken = waker.wait(_wait_timeout(deadline, settings.stall_timeout))
        # Deadline is checked after every wait, woken or not.
        if deadline is not None and time.monotonic() >= deadline:
            logger.debug(f"Deadline of {timeout}s elapsed, cancelling {operation!r}")
            cancel_blocking(operation, settings=settings)
            raise JoinTimeoutError("Operation timed out", timeout=timeout)
        if woken:
            continue
        raise StallError(
            "Operation returned pending without arranging a wake",
            timeout=settings.stall_timeout,
        )


async def drive(operation: Operation[T]) -> T:
    """Await ``operation`` on the running loop."""
    waker = LoopWaker(asyncio.get_running_loop())
    try:
        while True:
            poll = operation.poll_ready(waker)
            if poll is not PENDING:
                assert isinstance(poll, Ready)
                return poll.value
            await waker.wait()
    except asyncio.CancelledError:
        logger.debug(f"Task cancelled, draining {operation!r}")
        await _drain_cancel(operation, waker)
        raise


async def _drain_cancel(operation: Operation[object], waker: LoopWaker) -> None:
    while operation.poll_cancel(waker) is PENDING:
        try:
            await waker.wait()
        except asyncio.CancelledError:
            # Already propagating one cancellation; the handshake still has to finish.
            logger.debug(f"Repeated cancellation while draining {operation!r}")
