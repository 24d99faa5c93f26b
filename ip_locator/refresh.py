"""Throttled, coalescing cluster refresh."""

import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class RefreshThrottle:
    """
    Runs callback(focus) at most once per window.

    A request inside the window arms a single deferred run for the rest of the
    window; further requests while it is armed are folded into it. flush()
    cancels anything armed and runs right away.
    """

    def __init__(self, callback: Callable[[bool], None], window_ms: int = 300,
                 clock: Callable[[], float] = time.monotonic,
                 timer_factory=threading.Timer):
        self.callback = callback
        self.window_ms = window_ms
        self._clock = clock
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer = None
        self._pending = False
        self._pending_focus = False
        self._last_run: Optional[float] = None
        self.runs = 0

    @property
    def pending(self) -> bool:
        return self._pending

    def request(self, focus: bool = False):
        with self._lock:
            now = self._clock()
            elapsed_ms = None if self._last_run is None else round((now - self._last_run) * 1000)
            if elapsed_ms is None or elapsed_ms >= self.window_ms:
                run_now = True
            else:
                run_now = False
                if self._pending:
                    self._pending_focus = self._pending_focus or focus
                    return
                self._pending = True
                self._pending_focus = focus
                delay = (self.window_ms - elapsed_ms) / 1000
                self._timer = self._timer_factory(delay, self._run_pending)
                self._timer.daemon = True
                self._timer.start()
                logger.debug(f"Refresh deferred by {delay * 1000:.0f}ms")
        if run_now:
            self._run(focus)

    def flush(self, focus: bool = False):
        """Cancel any deferred run and refresh immediately."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            focus = focus or (self._pending and self._pending_focus)
            self._pending = False
            self._pending_focus = False
        self._run(focus)

    def _run_pending(self):
        with self._lock:
            if not self._pending:
                return
            focus = self._pending_focus
            self._pending = False
            self._pending_focus = False
            self._timer = None
        self._run(focus)

    def _run(self, focus: bool):
        self._last_run = self._clock()
        self.runs += 1
        self.callback(focus)
