"""Protocols (interfaces) for the engine - operations compose without inheritance."""

from __future__ import annotations

from typing import Protocol, TypeVar, runtime_checkable

from .poll import Poll

T_co = TypeVar("T_co", covariant=True)


@runtime_checkable
class Waker(Protocol):
    """Handle an operation keeps to request another poll. Callable from any thread."""

    def wake(self) -> None:
        ...


@runtime_checkable
class Operation(Protocol[T_co]):
    """Protocol for joinable operations - implement this, don't inherit."""

    def poll_ready(self, waker: Waker) -> Poll[T_co]:
        """
        Advance one step.

        Returning PENDING obliges the operation to call ``waker.wake()``
        once it can make progress again.
        """
        ...

    def poll_cancel(self, waker: Waker) -> Poll[None]:
        """
        Advance cooperative teardown one step.

        CANCELLED means every external effect has quiesced and the
        operation may be dropped. Must return CANCELLED at once if the
        operation already finished.
        """
        ...
