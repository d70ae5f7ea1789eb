"""
Tests for the engine core: WakeTable, Slot, JoinDriver.
"""

import gc
import logging
import threading

import pytest

from conftest import ExplodingOperation, ManualOperation, RecordingWaker
from joinery.core import (
    CANCELLED,
    PENDING,
    InvariantViolation,
    JoinDriver,
    JoinStateError,
    Phase,
    PolledAfterCompletion,
    Ready,
    Slot,
    SlotState,
    SlotStateError,
    SlotWaker,
    WakeTable,
)
from joinery.join import RacePolicy, ZipPolicy, race, zip, zip_all
from joinery.leaves import ready
from joinery.utils.trace import TransitionRecorder


class TestWakeTable:
    """Tests for WakeTable."""

    def test_all_slots_start_signaled(self):
        """A new table reports every slot due once."""
        table = WakeTable(3)

        assert table.drain() == [0, 1, 2]
        assert table.drain() == []

    def test_signal_is_idempotent(self):
        """Repeated wakes before a drain coalesce into one entry."""
        table = WakeTable(2)
        table.drain()

        assert table.signal(1) is True
        assert table.signal(1) is False
        assert table.signal(1) is False
        assert table.pending_count == 1
        assert table.drain() == [1]

    def test_parent_woken_once_per_new_signal(self, waker):
        """The parent is only woken when a flag flips from clear to set."""
        table = WakeTable(2)
        table.register(waker)
        table.drain()

        table.signal(0)
        table.signal(0)
        table.signal(1)

        assert waker.wakes == 2

    def test_drain_sorts_indices(self):
        """Due slots come back in index order, not wake order."""
        table = WakeTable(4)
        table.drain()

        table.signal(3)
        table.signal(0)
        table.signal(2)

        assert table.drain() == [0, 2, 3]
        assert not table.is_signaled(0)

    def test_signal_before_register_is_kept(self):
        """Signals without a parent are still recorded for the next drain."""
        table = WakeTable(1)
        table.drain()

        table.signal(0)

        assert table.is_signaled(0)

    def test_concurrent_signals_are_not_lost(self):
        """Wakes from many threads all land in the table."""
        table = WakeTable(64)
        table.drain()
        barrier = threading.Barrier(8)

        def signal_range(start):
            barrier.wait()
            for index in range(start, 64, 8):
                table.signal(index)

        threads = [threading.Thread(target=signal_range, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert table.drain() == list(range(64))

    def test_slot_waker_routes_to_index(self):
        """SlotWaker signals its own index."""
        table = WakeTable(3)
        table.drain()

        SlotWaker(table, 2).wake()

        assert table.drain() == [2]

    def test_requeue_restores_flags_quietly(self, waker):
        """Requeued indices are due again but the parent is not woken."""
        table = WakeTable(3)
        table.register(waker)
        due = table.drain()

        table.requeue(due[1:])

        assert waker.wakes == 0
        assert table.is_signaled(1) and table.is_signaled(2)
        assert table.drain() == [1, 2]


class TestSlot:
    """Tests for the per-slot state machine."""

    def test_running_to_finished(self, waker):
        slot = Slot(0, ready("done"))

        assert slot.state is SlotState.RUNNING
        assert slot.poll_ready(waker) is True
        assert slot.state is SlotState.FINISHED
        assert slot.output == "done"

    def test_pending_stays_running(self, waker):
        op = ManualOperation()
        slot = Slot(0, op)

        assert slot.poll_ready(waker) is False
        assert slot.state is SlotState.RUNNING
        assert op.waker is waker

    def test_cancel_handshake(self, waker):
        """Running -> CancelRequested -> Cancelled through poll_cancel."""
        op = ManualOperation(slow_cancel=True)
        slot = Slot(0, op)

        assert slot.request_cancel() is True
        assert slot.state is SlotState.CANCEL_REQUESTED
        assert slot.poll_cancel(waker) is False

        op.acknowledge_cancel()

        assert slot.poll_cancel(waker) is True
        assert slot.state is SlotState.CANCELLED

    def test_finished_cancels_without_handshake(self, waker):
        """A finished slot whose output is unused is cancelled immediately."""
        slot = Slot(0, ready(1))
        slot.poll_ready(waker)

        assert slot.request_cancel() is False
        assert slot.state is SlotState.CANCELLED
        with pytest.raises(SlotStateError):
            slot.output

    def test_illegal_calls_raise(self, waker):
        slot = Slot(0, ready(1))
        slot.poll_ready(waker)

        with pytest.raises(SlotStateError):
            slot.poll_ready(waker)
        with pytest.raises(SlotStateError):
            slot.poll_cancel(waker)

    def test_observer_sees_transitions(self, waker):
        recorder = TransitionRecorder()
        slot = Slot(3, ManualOperation(), recorder)

        slot.request_cancel()
        slot.poll_cancel(waker)

        assert recorder.states_of(3) == [
            SlotState.RUNNING,
            SlotState.CANCEL_REQUESTED,
            SlotState.CANCELLED,
        ]


class TestJoinDriver:
    """Tests for the generic driving loop."""

    def test_first_step_polls_everyone_once(self, waker):
        a, b = ManualOperation("a"), ManualOperation("b")
        driver = zip(a, b)

        assert driver.poll_ready(waker) is PENDING
        assert (a.poll_count, b.poll_count) == (1, 1)

    def test_only_signaled_slots_are_polled(self, waker):
        a, b, c = ManualOperation("a"), ManualOperation("b"), ManualOperation("c")
        driver = zip(a, b, c)
        driver.poll_ready(waker)

        b.waker.wake()
        driver.poll_ready(waker)

        assert (a.poll_count, b.poll_count, c.poll_count) == (1, 2, 1)

    def test_wake_coalescing(self, waker):
        """K wakes to one slot before a step cause exactly one extra poll."""
        a, b = ManualOperation("a"), ManualOperation("b")
        driver = zip(a, b)
        driver.poll_ready(waker)

        for _ in range(5):
            a.waker.wake()
        driver.poll_ready(waker)

        assert a.poll_count == 2
        assert b.poll_count == 1
        assert waker.wakes == 1

    def test_unwoken_step_polls_nothing(self, waker):
        a = ManualOperation("a")
        driver = zip(a, ManualOperation("b"))
        driver.poll_ready(waker)

        assert driver.poll_ready(waker) is PENDING
        assert a.poll_count == 1

    def test_losers_drained_before_result(self, waker):
        """All-complete invariant: a race waits for its loser's handshake."""
        a, b = ManualOperation("a"), ManualOperation("b", slow_cancel=True)
        driver = race(a, b)
        driver.poll_ready(waker)

        a.finish("a-out")
        assert driver.poll_ready(waker) is PENDING
        assert driver.states == (SlotState.FINISHED, SlotState.CANCEL_REQUESTED)
        assert driver.phase is Phase.COMPLETING

        b.acknowledge_cancel()
        poll = driver.poll_ready(waker)

        assert poll == Ready("a-out")
        assert driver.states == (SlotState.FINISHED, SlotState.CANCELLED)
        assert all(state.is_terminal for state in driver.states)

    def test_new_loser_gets_cancel_poll_same_step(self, waker):
        """A loser that was not due still receives poll_cancel in the winning step."""
        a, b = ManualOperation("a"), ManualOperation("b", slow_cancel=True)
        driver = race(a, b)
        driver.poll_ready(waker)

        a.finish(1)
        driver.poll_ready(waker)

        assert b.cancel_poll_count == 1
        assert b.poll_count == 1

    def test_polled_after_completion(self, waker):
        driver = zip(ready(1), ready(2))

        assert driver.poll_ready(waker) == Ready((1, 2))
        assert driver.is_done
        with pytest.raises(PolledAfterCompletion):
            driver.poll_ready(waker)

    def test_group_cancel(self, waker):
        """Cancelling the group drains every slot, finished ones included."""
        a, b = ManualOperation("a"), ManualOperation("b", slow_cancel=True)
        recorder = TransitionRecorder()
        driver = zip(a, b, observer=recorder)
        driver.poll_ready(waker)
        a.finish("kept?")
        driver.poll_ready(waker)

        assert driver.poll_cancel(waker) is PENDING
        assert driver.states == (SlotState.CANCELLED, SlotState.CANCEL_REQUESTED)

        b.acknowledge_cancel()

        assert driver.poll_cancel(waker) is CANCELLED
        assert driver.states == (SlotState.CANCELLED, SlotState.CANCELLED)
        assert recorder.states_of(1)[-2:] == [
            SlotState.CANCEL_REQUESTED,
            SlotState.CANCELLED,
        ]

    def test_poll_ready_after_cancel_started(self, waker):
        driver = zip(ManualOperation(slow_cancel=True), ManualOperation())
        driver.poll_ready(waker)
        driver.poll_cancel(waker)

        with pytest.raises(JoinStateError):
            driver.poll_ready(waker)

    def test_cancel_after_done_is_noop(self, waker):
        driver = race(ready(1), ready(2))
        driver.poll_ready(waker)

        assert driver.poll_cancel(waker) is CANCELLED

    def test_cancel_before_first_poll(self, waker):
        a = ManualOperation()
        driver = zip(a, ManualOperation())

        assert driver.poll_cancel(waker) is CANCELLED
        assert a.poll_count == 0

    def test_fault_propagates_and_is_logged(self, waker, caplog):
        """Without isolation a fault escapes the step, leaving other slots live."""
        driver = zip(ExplodingOperation(), ManualOperation())

        with caplog.at_level(logging.ERROR, logger="joinery"):
            with pytest.raises(RuntimeError, match="boom"):
                driver.poll_ready(waker)

        assert "slot 0 raised in poll_ready" in caplog.text
        assert driver.states[1] is SlotState.RUNNING

    def test_fault_keeps_rest_of_batch_due(self, waker):
        """Slots drained after a raising slot keep their wake for the next step."""
        survivor = ManualOperation("b")
        driver = zip(ExplodingOperation(), survivor, ManualOperation("c"))

        with pytest.raises(RuntimeError, match="boom"):
            driver.poll_ready(waker)

        assert survivor.poll_count == 0
        assert [entry["signaled"] for entry in driver.snapshot()] == [False, True, True]

    def test_wide_join_step_cost_is_bounded(self, waker, monkeypatch):
        """A wake in a 2000-way zip reads only the woken slot's state."""
        ops = [ManualOperation(str(i)) for i in range(2000)]
        driver = zip_all(ops)
        assert driver.poll_ready(waker) is PENDING

        reads = []
        state, is_terminal = Slot.state, Slot.is_terminal

        def counting(prop):
            def fget(slot):
                reads.append(slot.index)
                return prop.fget(slot)

            return property(fget)

        monkeypatch.setattr(Slot, "state", counting(state))
        monkeypatch.setattr(Slot, "is_terminal", counting(is_terminal))

        ops[1234].finish("x")
        assert driver.poll_ready(waker) is PENDING

        assert len(reads) < 50
        assert set(reads) == {1234}
        assert ops[0].poll_count == 1

    def test_dropping_live_group_warns(self, waker):
        driver = zip(ManualOperation(), ManualOperation())
        driver.poll_ready(waker)

        with pytest.warns(ResourceWarning):
            del driver
            gc.collect()

    def test_release_checks_invariant(self, waker):
        driver = JoinDriver([ManualOperation()], ZipPolicy())

        with pytest.raises(InvariantViolation) as exc_info:
            driver._release()

        assert exc_info.value.indices == (0,)
        assert "indices=(0,)" in str(exc_info.value)

    def test_nested_joins(self, waker):
        """A join is an operation, so it can be a leg of another join."""
        a, b, c = ManualOperation("a"), ManualOperation("b"), ManualOperation("c")
        driver = race(zip(a, b), c)

        assert driver.poll_ready(waker) is PENDING

        a.finish(1)
        b.finish(2)
        poll = driver.poll_ready(waker)

        assert poll == Ready((1, 2))
        assert c.cancel_poll_count == 1

    def test_nested_wake_reaches_outer_parent(self):
        outer_waker = RecordingWaker()
        a = ManualOperation("a")
        driver = race(zip(a, ManualOperation("b")), ManualOperation("c"))
        driver.poll_ready(outer_waker)

        a.finish(1)

        assert outer_waker.wakes == 1

    def test_snapshot(self, waker):
        a = ManualOperation()
        driver = JoinDriver([a, ready(2)], RacePolicy())

        assert [s["signaled"] for s in driver.snapshot()] == [True, True]

        driver.poll_ready(waker)

        assert driver.snapshot() == [
            {"index": 0, "state": "cancelled", "signaled": False},
            {"index": 1, "state": "finished", "signaled": False},
        ]

    def test_debug_transitions_logged(self, waker, caplog):
        from joinery.config import EngineSettings

        driver = zip(ready(1), ready(2), settings=EngineSettings(debug_transitions=True))

        with caplog.at_level(logging.DEBUG, logger="joinery"):
            driver.poll_ready(waker)

        assert "zip slot 0: running -> finished" in caplog.text
