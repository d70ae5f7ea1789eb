"""Shared test doubles for joinery tests."""

import logging

import pytest

from joinery.config import EngineSettings, reset_settings
from joinery.core.poll import CANCELLED, PENDING, Ready

_UNSET = object()


class RecordingWaker:
    """Parent waker that only counts wakes."""

    def __init__(self):
        self.wakes = 0

    def wake(self):
        self.wakes += 1


class ManualOperation:
    """
    Operation finished (and optionally cancel-acknowledged) by the test.

    With slow_cancel=True, poll_cancel stays pending until
    acknowledge_cancel() is called, like an in-flight request that must
    be drained.
    """

    def __init__(self, name="op", *, slow_cancel=False):
        self.name = name
        self.slow_cancel = slow_cancel
        self.poll_count = 0
        self.cancel_poll_count = 0
        self.waker = None
        self._output = _UNSET
        self._cancel_acked = False

    @property
    def finished(self):
        return self._output is not _UNSET

    def finish(self, value, wake=True):
        self._output = value
        if wake and self.waker is not None:
            self.waker.wake()

    def acknowledge_cancel(self):
        self._cancel_acked = True
        if self.waker is not None:
            self.waker.wake()

    def poll_ready(self, waker):
        self.poll_count += 1
        self.waker = waker
        if self.finished:
            return Ready(self._output)
        return PENDING

    def poll_cancel(self, waker):
        self.cancel_poll_count += 1
        self.waker = waker
        if self.finished or not self.slow_cancel or self._cancel_acked:
            return CANCELLED
        return PENDING

    def __repr__(self):
        return f"ManualOperation({self.name!r})"


class SpinningOperation:
    """Never finishes; wakes itself on every poll like a busy producer."""

    def __init__(self):
        self.poll_count = 0
        self.cancel_poll_count = 0

    def poll_ready(self, waker):
        self.poll_count += 1
        waker.wake()
        return PENDING

    def poll_cancel(self, waker):
        self.cancel_poll_count += 1
        return CANCELLED


class ExplodingOperation:
    """Raises from poll_ready (and poll_cancel if asked)."""

    def __init__(self, exc=None, *, on_cancel=False):
        self.exc = exc or RuntimeError("boom")
        self.on_cancel = on_cancel

    def poll_ready(self, waker):
        raise self.exc

    def poll_cancel(self, waker):
        if self.on_cancel:
            raise self.exc
        return CANCELLED


@pytest.fixture
def waker():
    return RecordingWaker()


@pytest.fixture
def settings():
    return EngineSettings()


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    for key in ("JOINERY_DEBUG_TRANSITIONS", "JOINERY_STALL_TIMEOUT", "JOINERY_LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def restore_joinery_logger():
    root = logging.getLogger("joinery")
    handlers, level, propagate = list(root.handlers), root.level, root.propagate
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
    root.propagate = propagate
