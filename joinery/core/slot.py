"""Per-slot lifecycle shared by every combinator."""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar

from .errors import SlotStateError
from .poll import PENDING, Ready
from .protocols import Operation, Waker

T = TypeVar("T")


class SlotState(Enum):
    RUNNING = "running"
    FINISHED = "finished"
    CANCEL_REQUESTED = "cancel_requested"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SlotState.FINISHED, SlotState.CANCELLED)


TransitionObserver = Callable[[int, SlotState, SlotState], None]


class Slot(Generic[T]):
    """
    One operation plus its join-local lifecycle.

    The slot drops its reference to the operation as soon as it reaches a
    terminal state, so nothing can poll it again by accident.
    """

    __slots__ = ("index", "_operation", "_state", "_output", "_observer")

    def __init__(
        self,
        index: int,
        operation: Operation[T],
        observer: Optional[TransitionObserver] = None,
    ):
        self.index = index
        self._operation: Optional[Operation[T]] = operation
        self._state = SlotState.RUNNING
        self._output: Any = None
        self._observer = observer

    @property
    def state(self) -> SlotState:
        return self._state

    @property
    def output(self) -> T:
        if self._state is not SlotState.FINISHED:
            raise SlotStateError(
                "Slot has no output", index=self.index, state=self._state.value
            )
        return self._output

    @property
    def is_terminal(self) -> bool:
        return self._state.is_terminal

    def _move(self, new: SlotState) -> None:
        old = self._state
        self._state = new
        if self._observer is not None:
            self._observer(self.index, old, new)

    def poll_ready(self, waker: Waker) -> bool:
        """Poll a running operation. Returns True when it finished."""
        if self._state is not SlotState.RUNNING or self._operation is None:
            raise SlotStateError(
                "poll_ready on a slot that is not running",
                index=self.index,
                state=self._state.value,
            )
        poll = self._operation.poll_ready(waker)
        if poll is PENDING:
            return False
        assert isinstance(poll, Ready)
        self._output = poll.value
        self._operation = None
        self._move(SlotState.FINISHED)
        return True

    def request_cancel(self) -> bool:
        """
        Ask the slot to stop.

        Returns True when a handshake is needed (the slot was running).
        A finished slot is cancelled immediately and its output dropped.
        """
        if self._state is SlotState.RUNNING:
            self._move(SlotState.CANCEL_REQUESTED)
            return True
        if self._state is SlotState.FINISHED:
            self._output = None
            self._move(SlotState.CANCELLED)
            return False
        return False

    def poll_cancel(self, waker: Waker) -> bool:
        """Drive the cancellation handshake. Returns True once cancelled."""
        if self._state is not SlotState.CANCEL_REQUESTED or self._operation is None:
            raise SlotStateError(
                "poll_cancel on a slot without a pending cancel",
                index=self.index,
                state=self._state.value,
            )
        if self._operation.poll_cancel(waker) is PENDING:
            return False
        self._operation = None
        self._move(SlotState.CANCELLED)
        return True

    def __repr__(self) -> str:
        return f"Slot(index={self.index}, state={self._state.value})"
