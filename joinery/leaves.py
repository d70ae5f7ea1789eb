"""
Leaf operations.

- ready / pending: trivial operations, mostly for composing and testing
- sleep: a threading.Timer; cancelling stops the timer
- ThreadCall: a blocking call on a concurrent.futures executor. Once the
  call is running it cannot be abandoned, so cancellation waits for it
  to return and discards the result.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Callable, Generic, Optional, TypeVar

from joinery.core.poll import CANCELLED, PENDING, Poll, Ready
from joinery.core.protocols import Waker

logger = logging.getLogger(__name__)

T = TypeVar("T")

_default_executor: Optional[ThreadPoolExecutor] = None
_executor_lock = threading.Lock()


def _get_default_executor() -> ThreadPoolExecutor:
    global _default_executor
    with _executor_lock:
        if _default_executor is None:
            _default_executor = ThreadPoolExecutor(thread_name_prefix="joinery")
        return _default_executor


class ReadyOperation(Generic[T]):
    """Finishes on the first poll."""

    def __init__(self, value: T):
        self._value = value

    def poll_ready(self, waker: Waker) -> Poll[T]:
        return Ready(self._value)

    def poll_cancel(self, waker: Waker) -> Poll[None]:
        return CANCELLED


class PendingOperation:
    """Never finishes and never wakes anyone. Cancels immediately."""

    def poll_ready(self, waker: Waker) -> Poll[Any]:
        return PENDING

    def poll_cancel(self, waker: Waker) -> Poll[None]:
        return CANCELLED


def ready(value: T) -> ReadyOperation[T]:
    return ReadyOperation(value)


def pending() -> PendingOperation:
    return PendingOperation()


class _WakerCell:
    """Latest waker for an operation whose completion fires on another thread."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._waker: Optional[Waker] = None
        self._fired = False

    def arm(self, waker: Waker) -> bool:
        """Store the waker. Returns True if the event already fired."""
        with self._lock:
            self._waker = waker
            return self._fired

    def fire(self) -> None:
        with self._lock:
            self._fired = True
            waker = self._waker
        if waker is not None:
            waker.wake()

    @property
    def fired(self) -> bool:
        with self._lock:
            return self._fired


class Sleep(Generic[T]):
    """Finishes with ``value`` once ``seconds`` have elapsed after the first poll."""

    def __init__(self, seconds: float, value: T = None):  # type: ignore[assignment]
        self.seconds = seconds
        self._value = value
        self._cell = _WakerCell()
        self._timer: Optional[threading.Timer] = None

    def poll_ready(self, waker: Waker) -> Poll[T]:
        if self._cell.arm(waker):
            return Ready(self._value)
        if self._timer is None:
            self._timer = threading.Timer(self.seconds, self._cell.fire)
            self._timer.daemon = True
            self._timer.start()
        return PENDING

    def poll_cancel(self, waker: Waker) -> Poll[None]:
        if self._timer is not None and not self._cell.fired:
            self._timer.cancel()
        return CANCELLED


def sleep(seconds: float, value: Any = None) -> Sleep[Any]:
    return Sleep(seconds, value)


class ThreadCall(Generic[T]):
    """
    Run ``func(*args, **kwargs)`` on an executor when first polled.

    With ``cancellable=True`` the function receives a ``cancel_event``
    keyword (a threading.Event) that gets set when cancellation is
    requested, so long-running calls can return early.

    Exceptions raised by the function are re-raised from poll_ready; wrap
    the operation with isolate_faults() to turn them into Err outputs.
    """

    def __init__(
        self,
        func: Callable[..., T],
        *args: Any,
        executor: Optional[Executor] = None,
        cancellable: bool = False,
        **kwargs: Any,
    ):
        self.func = func
        self.args = args
        self.kwargs = kwargs
        self.executor = executor
        self.cancel_event = threading.Event()
        if cancellable:
            self.kwargs["cancel_event"] = self.cancel_event
        self._cell = _WakerCell()
        self._future: Optional[Future[T]] = None

    @property
    def started(self) -> bool:
        return self._future is not None

    def _submit(self) -> Future[T]:
        executor = self.executor or _get_default_executor()
        future = executor.submit(self.func, *self.args, **self.kwargs)
        future.add_done_callback(lambda _f: self._cell.fire())
        return future

    def poll_ready(self, waker: Waker) -> Poll[T]:
        self._cell.arm(waker)
        if self._future is None:
            self._future = self._submit()
        if not self._future.done():
            return PENDING
        return Ready(self._future.result())

    def poll_cancel(self, waker: Waker) -> Poll[None]:
        if self._future is None:
            return CANCELLED
        self.cancel_event.set()
        self._cell.arm(waker)
        if self._future.cancel() or self._future.done():
            return CANCELLED
        logger.debug(f"Waiting for running call {getattr(self.func, '__name__', self.func)!r} to return")
        return PENDING
