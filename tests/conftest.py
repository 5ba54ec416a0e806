import os
import sys
import time
from pathlib import Path

# Kivy parses sys.argv and opens log files on import unless told otherwise
os.environ.setdefault("KIVY_NO_ARGS", "1")
os.environ.setdefault("KIVY_NO_CONSOLELOG", "1")
os.environ.setdefault("KIVY_NO_FILELOG", "1")
os.environ.setdefault("KIVY_GL_BACKEND", "mock")

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import pytest

from timer import CountdownController, TickHandle, TickSource


class ManualTickSource(TickSource):
    """Tick source driven by the test: ``advance()`` fires active handles."""

    def __init__(self):
        self.handles = []

    def schedule(self, interval_ms, on_tick, on_cancel=None):
        handle = TickHandle(interval_ms, on_tick, on_cancel)
        self.handles.append(handle)
        return handle

    @property
    def active(self):
        return [h for h in self.handles if not h.cancelled]

    def advance(self, ticks=1):
        for _ in range(ticks):
            for handle in self.active:
                handle.on_tick()

    def deliver_late(self, handle):
        # Simulates a platform timer firing after it was cancelled
        handle.on_tick()


@pytest.fixture
def ticks():
    return ManualTickSource()


@pytest.fixture
def controller(ticks):
    ctrl = CountdownController(tick_source=ticks)
    yield ctrl
    ctrl.dispose()


@pytest.fixture
def pump():
    """Run the Kivy clock until ``until()`` holds or ``timeout`` seconds pass."""
    from kivy.clock import Clock

    def _pump(until, timeout=2.0):
        deadline = time.monotonic() + timeout
        while not until() and time.monotonic() < deadline:
            Clock.tick()
        return until()

    return _pump
