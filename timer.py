"""Countdown state machine and tick sources.

The controller owns the countdown (remaining time, running flag) and
publishes derived values as Kivy properties so any widget can bind to them.
Ticks come from an injectable tick source; the default one is backed by
``kivy.clock.Clock``.
"""
import logging
from collections import namedtuple

from kivy.clock import Clock
from kivy.event import EventDispatcher
from kivy.properties import BooleanProperty, NumericProperty, OptionProperty, StringProperty

log = logging.getLogger(__name__)

TOTAL_DURATION_MS = 30 * 1000
TICK_INTERVAL_MS = 1000
DONE_TEXT = "Done!"

IDLE = 'idle'
RUNNING = 'running'
FINISHED = 'finished'

# Value-level snapshot used to survive app pause/resume
CountdownState = namedtuple('CountdownState', 'remaining_ms is_running')


def format_elapsed_time(seconds: int) -> str:
    """Format whole seconds as MM:SS, or H:MM:SS from one hour up."""
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


class TickHandle:
    """Returned by a tick source; pass it back to ``cancel``."""

    def __init__(self, interval_ms, on_tick, on_cancel=None):
        self.interval_ms = interval_ms
        self.on_tick = on_tick
        self.on_cancel = on_cancel
        self.cancelled = False
        self.event = None  # backend specific (ClockEvent for ClockTickSource)


class TickSource:
    """Periodic callback facility: ``schedule`` then ``cancel``."""

    def schedule(self, interval_ms, on_tick, on_cancel=None) -> TickHandle:
        raise NotImplementedError

    def cancel(self, handle: TickHandle):
        # Idempotent; on_cancel fires only for the first cancellation
        if handle is None or handle.cancelled:
            return
        handle.cancelled = True
        self._unschedule(handle)
        if handle.on_cancel is not None:
            handle.on_cancel()

    def _unschedule(self, handle):
        pass


class ClockTickSource(TickSource):
    """Tick source backed by the Kivy main loop clock."""

    def schedule(self, interval_ms, on_tick, on_cancel=None):
        handle = TickHandle(interval_ms, on_tick, on_cancel)

        def _fire(dt):
            if handle.cancelled:
                # Returning False unschedules the interval
                return False
            handle.on_tick()

        handle.event = Clock.schedule_interval(_fire, interval_ms / 1000.0)
        return handle

    def _unschedule(self, handle):
        if handle.event is not None:
            handle.event.cancel()
            handle.event = None


class CountdownController(EventDispatcher):
    """Fixed-duration countdown with start/stop/reset controls.

    ``remaining_ms`` of 0 while idle is a sentinel for "start from the full
    duration". Observers bind to the properties below; ``on_finish`` is
    dispatched once per completed run.
    """

    remaining_ms = NumericProperty(0)
    is_running = BooleanProperty(False)
    state = OptionProperty(IDLE, options=[IDLE, RUNNING, FINISHED])
    display_text = StringProperty('')
    progress = NumericProperty(0.)

    __events__ = ('on_finish',)

    def __init__(self, total_duration_ms=TOTAL_DURATION_MS, tick_interval_ms=TICK_INTERVAL_MS,
                 tick_source=None, formatter=format_elapsed_time, done_text=DONE_TEXT, **kwargs):
        if total_duration_ms <= 0:
            raise ValueError(f"total_duration_ms must be positive, got {total_duration_ms}")
        if tick_interval_ms <= 0:
            raise ValueError(f"tick_interval_ms must be positive, got {tick_interval_ms}")
        if tick_interval_ms > total_duration_ms:
            raise ValueError("tick_interval_ms cannot exceed total_duration_ms")
        super().__init__(**kwargs)
        self.total_duration_ms = int(total_duration_ms)
        self.tick_interval_ms = int(tick_interval_ms)
        self.tick_source = tick_source if tick_source is not None else ClockTickSource()
        self.formatter = formatter
        self._done_text = done_text
        self._handle = None
        self._generation = 0
        self._in_tick = False
        self._disposed = False
        self.initial_text = self._format(self.total_duration_ms)
        self.display_text = self.initial_text

    # ---- derived values ----
    def _format(self, millis):
        return self.formatter(int(millis) // 1000)

    def done_text(self):
        if callable(self._done_text):
            return self._done_text()
        return self._done_text

    def _refresh_progress(self):
        if self.is_running:
            self.progress = self.remaining_ms / float(self.total_duration_ms)
        else:
            self.progress = 0.

    # ---- controls ----
    def start(self):
        if self._disposed:
            log.warning("start() after dispose() ignored")
            return
        if self.is_running:
            log.debug("Already running")
            return
        if self.remaining_ms <= 0:
            self.remaining_ms = self.total_duration_ms
        self._generation += 1
        generation = self._generation
        self._handle = self.tick_source.schedule(
            self.tick_interval_ms, lambda: self._on_tick(generation), self._on_tick_cancelled)
        self.state = RUNNING
        self.display_text = self._format(self.remaining_ms)
        # Progress first: is_running observers read it as their target
        self.progress = self.remaining_ms / float(self.total_duration_ms)
        self.is_running = True
        log.info("Started at %d ms", self.remaining_ms)

    def stop(self):
        if not self.is_running:
            return
        self._cancel_ticks()
        self.state = IDLE
        self.is_running = False
        self._refresh_progress()
        log.info("Paused at %d ms", self.remaining_ms)

    def reset(self):
        self._cancel_ticks()
        self.remaining_ms = 0
        self.state = IDLE
        self.is_running = False
        self.display_text = self.initial_text
        self._refresh_progress()
        log.info("Reset")

    def dispose(self):
        """Cancel any pending ticks; the controller is unusable afterwards."""
        self._cancel_ticks()
        if self.is_running:
            self.state = IDLE
        self.is_running = False
        self._refresh_progress()
        self._disposed = True
        log.debug("Disposed")

    # ---- ticking ----
    def _cancel_ticks(self):
        if self._handle is not None:
            handle, self._handle = self._handle, None
            self.tick_source.cancel(handle)

    def _on_tick_cancelled(self):
        log.debug("Tick source cancelled")

    def _on_tick(self, generation):
        # Ticks scheduled by an earlier start() carry a stale generation
        if generation != self._generation or self._handle is None or not self.is_running:
            log.debug("Late tick ignored")
            return
        if self._in_tick:
            log.debug("Overlapping tick ignored")
            return
        self._in_tick = True
        try:
            remaining = max(0, self.remaining_ms - self.tick_interval_ms)
            if remaining == 0:
                self._finish()
                return
            self.remaining_ms = remaining
            self.display_text = self._format(remaining)
            self._refresh_progress()
        finally:
            self._in_tick = False

    def _finish(self):
        self._cancel_ticks()
        self.remaining_ms = 0
        self.state = FINISHED
        self.is_running = False
        self.display_text = self.done_text()
        self._refresh_progress()
        log.info("Finished")
        self.dispatch('on_finish')

    def on_finish(self, *args):
        pass

    # ---- state restoration ----
    def snapshot(self) -> CountdownState:
        return CountdownState(int(self.remaining_ms), bool(self.is_running))

    def restore(self, saved: CountdownState):
        """Restore a snapshot taken by ``snapshot``; resumes ticking if it was running."""
        self._cancel_ticks()
        remaining = min(max(0, int(saved.remaining_ms)), self.total_duration_ms)
        self.remaining_ms = remaining
        self.state = IDLE
        self.is_running = False
        self.display_text = self._format(remaining) if remaining else self.initial_text
        self._refresh_progress()
        if saved.is_running:
            self.start()
