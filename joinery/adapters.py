"""Adapters that change how a single operation reacts to cancellation or faults."""

from __future__ import annotations

import logging
from typing import Any, Generic, Optional, TypeVar

from joinery.core.poll import CANCELLED, PENDING, Err, Ok, Poll, Ready
from joinery.core.protocols import Operation, Waker

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MustComplete(Generic[T]):
    """Ignores cancellation: poll_cancel keeps the inner operation running to its end."""

    def __init__(self, inner: Operation[T]):
        self.inner = inner
        self._finished = False

    def poll_ready(self, waker: Waker) -> Poll[T]:
        poll = self.inner.poll_ready(waker)
        if poll is not PENDING:
            self._finished = True
        return poll

    def poll_cancel(self, waker: Waker) -> Poll[None]:
        if self._finished or self.poll_ready(waker) is not PENDING:
            return CANCELLED
        return PENDING


class NowOrNever(Generic[T]):
    """
    Output of the inner operation if it is ready on the first poll, else None.

    When the first poll comes back pending the inner operation is cancelled
    through its handshake before None is produced.
    """

    def __init__(self, inner: Operation[T]):
        self.inner = inner
        self._polled = False
        self._done = False

    def poll_ready(self, waker: Waker) -> Poll[Optional[T]]:
        if not self._polled:
            self._polled = True
            poll = self.inner.poll_ready(waker)
            if poll is not PENDING:
                self._done = True
                return poll
        if self._done or self.inner.poll_cancel(waker) is not PENDING:
            self._done = True
            return Ready(None)
        return PENDING

    def poll_cancel(self, waker: Waker) -> Poll[None]:
        if self._done or not self._polled:
            return CANCELLED
        if self.inner.poll_cancel(waker) is PENDING:
            return PENDING
        self._done = True
        return CANCELLED


class FaultIsolated(Generic[T]):
    """
    Turns exceptions raised while polling into an ``Err(exc)`` output.

    A successful output is wrapped in ``Ok``. An exception during
    poll_cancel counts as cancelled, since the operation can no longer
    be driven.
    """

    def __init__(self, inner: Operation[T]):
        self.inner = inner

    def poll_ready(self, waker: Waker) -> Poll[Ok[T] | Err[Exception]]:
        try:
            poll = self.inner.poll_ready(waker)
        except Exception as e:
            logger.warning(f"Isolated fault in {type(self.inner).__name__}: {e!r}")
            return Ready(Err(e))
        if poll is PENDING:
            return PENDING
        assert isinstance(poll, Ready)
        return Ready(Ok(poll.value))

    def poll_cancel(self, waker: Waker) -> Poll[None]:
        try:
            return self.inner.poll_cancel(waker)
        except Exception as e:
            logger.warning(
                f"Isolated fault while cancelling {type(self.inner).__name__}: {e!r}"
            )
            return CANCELLED


def must_complete(operation: Operation[T]) -> MustComplete[T]:
    return MustComplete(operation)


def now_or_never(operation: Operation[T]) -> NowOrNever[T]:
    return NowOrNever(operation)


def isolate_faults(operation: Operation[Any]) -> FaultIsolated[Any]:
    return FaultIsolated(operation)
