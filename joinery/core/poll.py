"""Poll results and leg outcomes - small immutable values, no magic."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


class _Pending:
    """Singleton marker for "not done yet"."""

    __slots__ = ()
    _instance: "_Pending | None" = None

    def __new__(cls) -> "_Pending":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "PENDING"

    def __reduce__(self) -> str:
        return "PENDING"


PENDING = _Pending()


@dataclass(frozen=True, slots=True)
class Ready(Generic[T]):
    """A finished poll carrying the operation's output."""

    value: T


Poll = Union[Ready[T], _Pending]

# poll_cancel reports a completed teardown with this value.
CANCELLED: Ready[None] = Ready(None)


def is_ready(poll: Poll[Any]) -> bool:
    return poll is not PENDING


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful leg output."""

    value: T

    @property
    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """Failed leg output. Carried as data, never raised by the engine."""

    error: E

    @property
    def is_ok(self) -> bool:
        return False


Outcome = Union[Ok[T], Err[E]]
Classifier = Callable[[Any], Outcome[Any, Any]]


def default_classify(output: Any) -> Outcome[Any, Any]:
    """Pass Ok/Err through, treat exception instances as errors, the rest as success."""
    if isinstance(output, (Ok, Err)):
        return output
    if isinstance(output, BaseException):
        return Err(output)
    return Ok(output)
