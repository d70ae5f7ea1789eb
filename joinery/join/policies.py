"""
The four combinator policies.

| policy   | group ends when          | result                                 |
|----------|--------------------------|----------------------------------------|
| zip      | every slot finished      | all outputs, construction order        |
| try_zip  | all finished or an Err   | Ok(values) or Err(first error)         |
| race     | first slot finished      | that output                            |
| race_ok  | first Ok, or all Err     | Ok(value) or Err(errors in order)      |
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Sequence

from joinery.core.driver import JoinPolicy
from joinery.core.errors import ClassificationError
from joinery.core.poll import Classifier, Err, Ok, default_classify
from joinery.core.slot import Slot

# tuple for fixed arity, list for the *_all variants
Collect = Callable[[list[Any]], Any]


class _Classifying:
    """Mixin that runs the caller's classifier and checks what it returned."""

    classify: Classifier

    def _classify(self, index: int, output: Any) -> Ok[Any] | Err[Any]:
        outcome = self.classify(output)
        if not isinstance(outcome, (Ok, Err)):
            raise ClassificationError(
                "Classifier must return Ok or Err",
                index=index,
                returned=type(outcome).__name__,
            )
        return outcome


class ZipPolicy(JoinPolicy[Any]):
    """Wait for every slot; no slot ever loses."""

    name = "zip"

    def __init__(self, collect: Collect = tuple):
        self.collect = collect
        self._finished = 0

    def on_finished(self, slots: Sequence[Slot[Any]], index: int) -> bool:
        self._finished += 1
        return self._finished == len(slots)

    def result(self, slots: Sequence[Slot[Any]]) -> Any:
        return self.collect([slot.output for slot in slots])


class TryZipPolicy(_Classifying, JoinPolicy[Any]):
    """Wait for every slot unless one fails; the first failure cancels the rest."""

    name = "try_zip"

    def __init__(self, classify: Classifier = default_classify, collect: Collect = tuple):
        self.classify = classify
        self.collect = collect
        self._values: dict[int, Any] = {}
        self._failed: Optional[int] = None
        self._error: Any = None

    def on_finished(self, slots: Sequence[Slot[Any]], index: int) -> bool:
        outcome = self._classify(index, slots[index].output)
        if isinstance(outcome, Err):
            self._failed = index
            self._error = outcome.error
            return True
        self._values[index] = outcome.value
        return len(self._values) == len(slots)

    def retains(self, index: int) -> bool:
        return self._failed is None or index == self._failed

    def result(self, slots: Sequence[Slot[Any]]) -> Ok[Any] | Err[Any]:
        if self._failed is not None:
            return Err(self._error)
        return Ok(self.collect([self._values[i] for i in range(len(slots))]))


class RacePolicy(JoinPolicy[Any]):
    """First slot to finish wins, whatever its output."""

    name = "race"

    def __init__(self) -> None:
        self._winner: Optional[int] = None

    def on_finished(self, slots: Sequence[Slot[Any]], index: int) -> bool:
        self._winner = index
        return True

    def retains(self, index: int) -> bool:
        return index == self._winner

    def result(self, slots: Sequence[Slot[Any]]) -> Any:
        assert self._winner is not None
        return slots[self._winner].output


class RaceOkPolicy(_Classifying, JoinPolicy[Any]):
    """First success wins; if every slot fails, report all errors."""

    name = "race_ok"

    def __init__(self, classify: Classifier = default_classify, collect: Collect = tuple):
        self.classify = classify
        self.collect = collect
        self._winner: Optional[int] = None
        self._value: Any = None
        self._errors: dict[int, Any] = {}

    def on_finished(self, slots: Sequence[Slot[Any]], index: int) -> bool:
        outcome = self._classify(index, slots[index].output)
        if isinstance(outcome, Ok):
            self._winner = index
            self._value = outcome.value
            return True
        self._errors[index] = outcome.error
        return len(self._errors) == len(slots)

    def retains(self, index: int) -> bool:
        return self._winner is None or index == self._winner

    def result(self, slots: Sequence[Slot[Any]]) -> Ok[Any] | Err[Any]:
        if self._winner is not None:
            return Ok(self._value)
        return Err(self.collect([self._errors[i] for i in range(len(slots))]))
