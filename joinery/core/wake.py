"""
Wake dispatch table - per-join record of which slots asked to be polled.

Each slot owns one presence flag. A wake sets the flag and queues the
slot index only if the flag was clear, so repeated wakes coalesce and the
driver touches exactly the slots that were signaled instead of rescanning
all of them.
"""

from __future__ import annotations

import threading
from collections import deque

from .protocols import Waker


class WakeTable:
    """
    Thread-safe flag set plus FIFO of signaled slot indices.

    Usage:
        table = WakeTable(3)        # every slot starts signaled
        table.register(parent)      # waker of the task driving the join
        due = table.drain()         # [0, 1, 2], flags cleared
        table.signal(1)             # from any thread; wakes parent once
        table.signal(1)             # coalesced, no-op
    """

    def __init__(self, size: int):
        self._lock = threading.Lock()
        self._flags = [True] * size
        self._queue: deque[int] = deque(range(size))
        self._parent: Waker | None = None

    def __len__(self) -> int:
        return len(self._flags)

    def register(self, waker: Waker) -> None:
        """Set the waker notified when any slot gets signaled."""
        with self._lock:
            self._parent = waker

    def signal(self, index: int) -> bool:
        """
        Mark a slot as needing a poll.

        Returns False when the flag was already set; nothing else happens
        in that case since the parent was woken by the first signal.
        """
        with self._lock:
            if self._flags[index]:
                return False
            self._flags[index] = True
            self._queue.append(index)
            parent = self._parent
        # Woken outside the lock; the parent may poll us synchronously.
        if parent is not None:
            parent.wake()
        return True

    def drain(self) -> list[int]:
        """Take every signaled index, clearing its flag. Sorted ascending."""
        with self._lock:
            due = list(self._queue)
            self._queue.clear()
            for index in due:
                self._flags[index] = False
        due.sort()
        return due

    def requeue(self, indices: list[int]) -> None:
        """Put drained indices back without waking the parent."""
        with self._lock:
            for index in indices:
                if not self._flags[index]:
                    self._flags[index] = True
                    self._queue.append(index)

    def is_signaled(self, index: int) -> bool:
        with self._lock:
            return self._flags[index]

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._queue)


class SlotWaker:
    """Waker handed to the operation in one slot; routes wakes to the table."""

    __slots__ = ("_table", "index")

    def __init__(self, table: WakeTable, index: int):
        self._table = table
        self.index = index

    def wake(self) -> None:
        self._table.signal(self.index)

    def __repr__(self) -> str:
        return f"SlotWaker(index={self.index})"
