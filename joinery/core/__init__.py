"""
Joinery core - the engine every combinator is built on.

- Operation / Waker: the two-method contract joined operations implement
- WakeTable: coalescing per-slot wake flags, O(1) work per wake
- Slot / SlotState: running -> finished | cancel_requested -> cancelled
- JoinDriver / JoinPolicy: the stepping loop and the decision rule plugged into it
"""

from joinery.core.driver import JoinDriver, JoinPolicy, Phase, SlotSnapshot
from joinery.core.errors import (
    ClassificationError,
    InvariantViolation,
    JoinError,
    JoinStateError,
    JoinTimeoutError,
    PolledAfterCompletion,
    SlotStateError,
    StallError,
)
from joinery.core.poll import (
    CANCELLED,
    PENDING,
    Classifier,
    Err,
    Ok,
    Outcome,
    Poll,
    Ready,
    default_classify,
    is_ready,
)
from joinery.core.protocols import Operation, Waker
from joinery.core.slot import Slot, SlotState, TransitionObserver
from joinery.core.wake import SlotWaker, WakeTable

__all__ = [
    # Contract
    "Operation",
    "Waker",
    "Poll",
    "Ready",
    "PENDING",
    "CANCELLED",
    "is_ready",
    # Outcomes
    "Ok",
    "Err",
    "Outcome",
    "Classifier",
    "default_classify",
    # Engine
    "WakeTable",
    "SlotWaker",
    "Slot",
    "SlotState",
    "TransitionObserver",
    "JoinDriver",
    "JoinPolicy",
    "Phase",
    "SlotSnapshot",
    # Errors
    "JoinError",
    "SlotStateError",
    "JoinStateError",
    "PolledAfterCompletion",
    "InvariantViolation",
    "StallError",
    "JoinTimeoutError",
    "ClassificationError",
]
