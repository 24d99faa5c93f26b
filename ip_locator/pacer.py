"""Minimum spacing between live provider calls within one batch."""

import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class CallPacer:
    """
    Enforces a floor of interval_ms between the starts of consecutive live calls.

    The first live call of a batch goes out immediately. Cache hits never reach
    the pacer. One pacer belongs to one batch run.
    """

    def __init__(self, interval_ms: int = 1500,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self.interval_ms = interval_ms
        self._clock = clock
        self._sleep = sleep
        self.live_calls = 0
        self._last_call: Optional[float] = None

    def before_live_call(self) -> float:
        """Block until the next live call may start. Returns the seconds waited."""
        waited = 0.0
        if self.live_calls > 0 and self._last_call is not None:
            remaining = self.interval_ms / 1000 - (self._clock() - self._last_call)
            if remaining > 0:
                logger.debug(f"Pacing: waiting {remaining * 1000:.0f}ms before next live call")
                self._sleep(remaining)
                waited = remaining
        self.live_calls += 1
        self._last_call = self._clock()
        return waited
