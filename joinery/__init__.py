"""
Joinery - join and race combinators for operations that cancel cooperatively.

Operations implement two methods, poll_ready(waker) and poll_cancel(waker).
Joined groups only poll the operations that signaled a wake, and every
losing operation is driven through its cancellation handshake before the
group reports a result.

Example usage:

    from joinery import block_on, race, sleep, zip, ThreadCall

    # Wait for both
    a, b = block_on(zip(sleep(0.1, "a"), ThreadCall(fetch, url)))

    # First to finish; the slower call is drained, never abandoned
    winner = block_on(race(ThreadCall(fetch, primary), ThreadCall(fetch, mirror)))

    # From asyncio
    result = await drive(try_zip(op_a, op_b))
"""

from joinery.adapters import (
    FaultIsolated,
    MustComplete,
    NowOrNever,
    isolate_faults,
    must_complete,
    now_or_never,
)
from joinery.config import EngineSettings, get_settings, reset_settings
from joinery.core import (
    CANCELLED,
    PENDING,
    ClassificationError,
    Err,
    InvariantViolation,
    JoinDriver,
    JoinError,
    JoinPolicy,
    JoinStateError,
    JoinTimeoutError,
    Ok,
    Operation,
    PolledAfterCompletion,
    Ready,
    SlotState,
    SlotStateError,
    StallError,
    Waker,
    default_classify,
)
from joinery.executor import block_on, cancel_blocking, drive
from joinery.join import (
    race,
    race_all,
    race_ok,
    race_ok_all,
    try_zip,
    try_zip_all,
    zip,
    zip_all,
)
from joinery.leaves import ThreadCall, pending, ready, sleep

__version__ = "0.1.0"

__all__ = [
    # Contract
    "Operation",
    "Waker",
    "Ready",
    "PENDING",
    "CANCELLED",
    "Ok",
    "Err",
    "default_classify",
    # Engine
    "JoinDriver",
    "JoinPolicy",
    "SlotState",
    # Combinators
    "zip",
    "try_zip",
    "race",
    "race_ok",
    "zip_all",
    "try_zip_all",
    "race_all",
    "race_ok_all",
    # Leaves and adapters
    "ready",
    "pending",
    "sleep",
    "ThreadCall",
    "must_complete",
    "now_or_never",
    "isolate_faults",
    "MustComplete",
    "NowOrNever",
    "FaultIsolated",
    # Executors
    "block_on",
    "cancel_blocking",
    "drive",
    # Config
    "EngineSettings",
    "get_settings",
    "reset_settings",
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
