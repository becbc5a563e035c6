"""Cancellable timers backing the feed poller."""

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class RepeatingTimer(threading.Thread):
    """Calls a function every `interval` seconds until cancelled."""

    def __init__(self, interval: float, callback: Callable[[], None]):
        super().__init__(daemon=True)
        self.interval = interval
        self.callback = callback
        self._cancelled = threading.Event()

    def run(self) -> None:
        while not self._cancelled.wait(self.interval):
            try:
                self.callback()
            except Exception:
                logger.exception("Unhandled error in repeating timer callback")

    def cancel(self) -> None:
        self._cancelled.set()


class ThreadingScheduler:
    """Creates daemon timer threads. Every handle it returns has cancel()."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer

    def call_every(self, interval: float, callback: Callable[[], None]) -> RepeatingTimer:
        timer = RepeatingTimer(interval, callback)
        timer.start()
        return timer
