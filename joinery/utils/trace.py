"""Recording and rendering slot transitions."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Iterable, Optional

from rich.console import Console
from rich.table import Table

from joinery.core.slot import SlotState

_STATE_STYLES = {
    SlotState.RUNNING: "cyan",
    SlotState.FINISHED: "green",
    SlotState.CANCEL_REQUESTED: "yellow",
    SlotState.CANCELLED: "red",
}


@dataclass(frozen=True, slots=True)
class Transition:
    index: int
    old: SlotState
    new: SlotState


class TransitionRecorder:
    """
    Observer that keeps every transition in order.

    Usage:
        recorder = TransitionRecorder()
        block_on(race(a, b, observer=recorder))
        recorder.states_of(1)   # [RUNNING, CANCEL_REQUESTED, CANCELLED]
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: list[Transition] = []

    def __call__(self, index: int, old: SlotState, new: SlotState) -> None:
        with self._lock:
            self._records.append(Transition(index, old, new))

    @property
    def records(self) -> list[Transition]:
        with self._lock:
            return list(self._records)

    def states_of(self, index: int) -> list[SlotState]:
        """Every state slot ``index`` passed through, starting with RUNNING."""
        states = [SlotState.RUNNING]
        states.extend(r.new for r in self.records if r.index == index)
        return states

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


def render_transitions(records: Iterable[Transition], title: str = "Slot transitions") -> Table:
    table = Table(title=title)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Slot", justify="right")
    table.add_column("From")
    table.add_column("To")

    for step, record in enumerate(records):
        table.add_row(
            str(step),
            str(record.index),
            f"[{_STATE_STYLES[record.old]}]{record.old.value}[/]",
            f"[{_STATE_STYLES[record.new]}]{record.new.value}[/]",
        )
    return table


def print_transitions(
    records: Iterable[Transition], console: Optional[Console] = None
) -> None:
    (console or Console()).print(render_transitions(records))
