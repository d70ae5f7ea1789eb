"""
Error hierarchy for joinery.

Design:
- All engine errors inherit from JoinError
- Leg errors are never raised; they travel as Err values
- Include context for debugging
"""

from __future__ import annotations

from typing import Any, Sequence


class JoinError(Exception):
    """Base class for all joinery errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message


class SlotStateError(JoinError):
    """A slot was asked to make a transition its state does not allow."""

    def __init__(
        self,
        message: str,
        *,
        index: int | None = None,
        state: str | None = None,
        **context: Any,
    ):
        super().__init__(message, index=index, state=state, **context)
        self.index = index
        self.state = state


class JoinStateError(JoinError):
    """A join driver was called in a state that forbids the call."""

    pass


class PolledAfterCompletion(JoinStateError):
    """The group result was already produced."""

    pass


class InvariantViolation(JoinError):
    """Slots were still live when the group tried to release them."""

    def __init__(
        self,
        message: str,
        *,
        indices: Sequence[int] = (),
        **context: Any,
    ):
        super().__init__(message, indices=tuple(indices), **context)
        self.indices = tuple(indices)


class StallError(JoinError):
    """No wake arrived within the stall timeout."""

    def __init__(self, message: str, *, timeout: float | None = None, **context: Any):
        super().__init__(message, timeout=timeout, **context)
        self.timeout = timeout


class JoinTimeoutError(JoinError):
    """Deadline elapsed; the operation was cancelled before this was raised."""

    def __init__(self, message: str, *, timeout: float | None = None, **context: Any):
        super().__init__(message, timeout=timeout, **context)
        self.timeout = timeout


class ClassificationError(JoinError):
    """A classifier returned something other than Ok or Err."""

    def __init__(
        self,
        message: str,
        *,
        index: int | None = None,
        returned: str | None = None,
        **context: Any,
    ):
        super().__init__(message, index=index, returned=returned, **context)
        self.index = index
        self.returned = returned
