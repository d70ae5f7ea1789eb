"""
Join driver - the stepping loop shared by zip, try_zip, race and race_ok.

Key properties:
1. O(1) per wake: only slots signaled through the wake table are polled
2. Deterministic: due slots are visited in index order, so ties go to the lowest index
3. Drained shutdown: losing slots are cancelled through their handshake, never dropped
4. Composable: a JoinDriver is itself an Operation and can be joined again
"""

from __future__ import annotations

import logging
import sys
import warnings
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Generic, Iterable, Optional, Sequence, TypeVar

if sys.version_info < (3, 12):
    from typing_extensions import TypedDict
else:
    from typing import TypedDict

from joinery.config import EngineSettings, get_settings

from .errors import InvariantViolation, JoinStateError, PolledAfterCompletion
from .poll import CANCELLED, PENDING, Poll, Ready
from .protocols import Operation, Waker
from .slot import Slot, SlotState, TransitionObserver
from .wake import SlotWaker, WakeTable

logger = logging.getLogger(__name__)

R = TypeVar("R")


class SlotSnapshot(TypedDict):
    index: int
    state: str
    signaled: bool


class JoinPolicy(ABC, Generic[R]):
    """
    Decision rule layered on the driver.

    The driver calls on_finished() each time a slot finishes, in index
    order. Returning True ends the group: running slots get cancelled and
    finished slots the policy does not retain are discarded.
    """

    name: str = "join"

    @abstractmethod
    def on_finished(self, slots: Sequence[Slot[Any]], index: int) -> bool:
        ...

    def retains(self, index: int) -> bool:
        """Whether a finished slot's output is part of the group result."""
        return True

    @abstractmethod
    def result(self, slots: Sequence[Slot[Any]]) -> R:
        """Build the group result. Only called once every slot is terminal."""
        ...


class Phase(Enum):
    DRIVING = "driving"
    COMPLETING = "completing"
    CANCELLING = "cancelling"
    DONE = "done"


class JoinDriver(Generic[R]):
    """
    Drives a fixed group of operations under one policy.

    Usage:
        driver = JoinDriver([op_a, op_b], RacePolicy())
        poll = driver.poll_ready(waker)     # call again whenever waker fires
        if poll is not PENDING:
            winner = poll.value

    Cancelling the whole group (timeouts, an outer race) goes through
    poll_cancel(), which keeps driving until every slot is cancelled.
    """

    def __init__(
        self,
        operations: Iterable[Operation[Any]],
        policy: JoinPolicy[R],
        *,
        observer: Optional[TransitionObserver] = None,
        settings: Optional[EngineSettings] = None,
    ):
        ops = list(operations)
        self._settings = settings or get_settings()
        self._policy = policy
        self._observer = observer
        self._table = WakeTable(len(ops))
        self._slots: list[Slot[Any]] = [
            Slot(i, op, self._on_transition) for i, op in enumerate(ops)
        ]
        self._wakers = [SlotWaker(self._table, i) for i in range(len(ops))]
        self._live = len(ops)
        self._phase = Phase.DRIVING
        self._polled = False

    def __len__(self) -> int:
        return len(self._slots)

    def __repr__(self) -> str:
        return (
            f"JoinDriver(policy={self._policy.name}, "
            f"size={len(self._slots)}, phase={self._phase.value})"
        )

    @property
    def policy(self) -> JoinPolicy[R]:
        return self._policy

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def is_done(self) -> bool:
        return self._phase is Phase.DONE

    @property
    def states(self) -> tuple[SlotState, ...]:
        return tuple(slot.state for slot in self._slots)

    def snapshot(self) -> list[SlotSnapshot]:
        """Per-slot view for debugging and tracing."""
        return [
            SlotSnapshot(
                index=slot.index,
                state=slot.state.value,
                signaled=self._table.is_signaled(slot.index),
            )
            for slot in self._slots
        ]

    def _log_fields(self, index: Optional[int] = None) -> dict[str, Any]:
        fields: dict[str, Any] = {"policy": self._policy.name, "phase": self._phase.value}
        if index is not None:
            fields["slot"] = index
        return fields

    def _on_transition(self, index: int, old: SlotState, new: SlotState) -> None:
        if new.is_terminal and not old.is_terminal:
            self._live -= 1
        if self._settings.debug_transitions:
            logger.debug(
                f"{self._policy.name} slot {index}: {old.value} -> {new.value}",
                extra=self._log_fields(index),
            )
        if self._observer is not None:
            self._observer(index, old, new)

    def _live_indices(self) -> list[int]:
        return [slot.index for slot in self._slots if not slot.is_terminal]

    # ------------------------------------------------------------------
    # slot calls
    # ------------------------------------------------------------------

    def _poll_slot(self, slot: Slot[Any]) -> bool:
        """
        Poll one running slot. A raising slot aborts the step; the caller
        requeues the rest of the drained batch so their wakes are kept.
        """
        try:
            return slot.poll_ready(self._wakers[slot.index])
        except Exception:
            logger.error(
                f"{self._policy.name} slot {slot.index} raised in poll_ready; "
                f"slots {self._live_indices()} are left undriven",
                extra=self._log_fields(slot.index),
            )
            raise

    def _cancel_slot(self, slot: Slot[Any]) -> bool:
        try:
            return slot.poll_cancel(self._wakers[slot.index])
        except Exception:
            logger.error(
                f"{self._policy.name} slot {slot.index} raised in poll_cancel; "
                f"slots {self._live_indices()} are left undriven",
                extra=self._log_fields(slot.index),
            )
            raise

    def _shut_down(self, retain: Callable[[int], bool]) -> list[int]:
        """Cancel running slots and discard unretained outputs. Returns slots needing a handshake."""
        handshakes = []
        for slot in self._slots:
            if slot.state is SlotState.RUNNING:
                slot.request_cancel()
                handshakes.append(slot.index)
            elif slot.state is SlotState.FINISHED and not retain(slot.index):
                slot.request_cancel()
        return handshakes

    def _drive(self) -> None:
        """Poll every due slot once, then start handshakes for newly cancelled slots."""
        handshakes: list[int] = []
        cancel_polled: set[int] = set()

        due = self._table.drain()
        for position, index in enumerate(due):
            slot = self._slots[index]
            try:
                if slot.state is SlotState.RUNNING:
                    if self._poll_slot(slot) and self._policy.on_finished(
                        self._slots, index
                    ):
                        self._phase = Phase.COMPLETING
                        logger.debug(
                            f"{self._policy.name} group completing after slot {index}",
                            extra=self._log_fields(index),
                        )
                        handshakes.extend(self._shut_down(self._policy.retains))
                elif slot.state is SlotState.CANCEL_REQUESTED:
                    self._cancel_slot(slot)
                    cancel_polled.add(index)
            except Exception:
                self._table.requeue(due[position + 1 :])
                raise

        self._start_handshakes(handshakes, cancel_polled)

    def _start_handshakes(self, indices: Iterable[int], already: set[int]) -> None:
        # Each cancel-requested slot needs one poll_cancel to arm its wake.
        for index in indices:
            slot = self._slots[index]
            if index not in already and slot.state is SlotState.CANCEL_REQUESTED:
                self._cancel_slot(slot)

    # ------------------------------------------------------------------
    # Operation contract
    # ------------------------------------------------------------------

    def poll_ready(self, waker: Waker) -> Poll[R]:
        if self._phase is Phase.DONE:
            raise PolledAfterCompletion(
                "Join polled after its result was produced", policy=self._policy.name
            )
        if self._phase is Phase.CANCELLING:
            raise JoinStateError(
                "poll_ready after cancellation started", policy=self._policy.name
            )
        self._polled = True
        self._table.register(waker)
        self._drive()

        if self._live:
            return PENDING
        return Ready(self._release())

    def poll_cancel(self, waker: Waker) -> Poll[None]:
        if self._phase is Phase.DONE:
            return CANCELLED
        self._polled = True
        self._table.register(waker)

        handshakes: list[int] = []
        if self._phase is not Phase.CANCELLING:
            self._phase = Phase.CANCELLING
            logger.debug(
                f"{self._policy.name} group cancelling", extra=self._log_fields()
            )
            handshakes = self._shut_down(lambda index: False)

        cancel_polled: set[int] = set()
        for index in self._table.drain():
            slot = self._slots[index]
            if slot.state is SlotState.CANCEL_REQUESTED:
                self._cancel_slot(slot)
                cancel_polled.add(index)
        self._start_handshakes(handshakes, cancel_polled)

        if self._live:
            return PENDING
        self._phase = Phase.DONE
        logger.debug(f"{self._policy.name} group cancelled", extra=self._log_fields())
        return CANCELLED

    def _release(self) -> R:
        if self._live:
            raise InvariantViolation(
                "Join released while slots were still live",
                indices=self._live_indices(),
                policy=self._policy.name,
            )
        result = self._policy.result(self._slots)
        self._phase = Phase.DONE
        logger.debug(
            f"{self._policy.name} group finished with {len(self._slots)} slots",
            extra=self._log_fields(),
        )
        return result

    def __del__(self) -> None:
        slots = getattr(self, "_slots", None)
        if not slots or not getattr(self, "_polled", False):
            return
        if self._phase is Phase.DONE:
            return
        live = [slot.index for slot in slots if not slot.is_terminal]
        if live:
            warnings.warn(
                f"{self!r} dropped while slots {live} were live; "
                "their operations were never driven to a terminal state",
                ResourceWarning,
                stacklevel=2,
            )
