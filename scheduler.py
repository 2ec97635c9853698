"""Cancellable delayed callbacks backed by threading.Timer."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ScheduledTask:
    def __init__(self, callback: Callable[[], None]) -> None:
        self._callback = callback
        self._lock = threading.Lock()
        self._cancelled = False
        self._timer: Optional[threading.Timer] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            timer = self._timer
        if timer is not None:
            timer.cancel()

    def run(self) -> None:
        with self._lock:
            if self._cancelled:
                return
        try:
            self._callback()
        except Exception:
            logger.exception("scheduled callback failed")


class ThreadingScheduler:
    """Runs each callback once on a daemon timer thread after ``delay_s``.

    A task cancelled before it fires never runs. A task cancelled while its
    callback is already running is not interrupted, so callers still guard
    their own state when the callback executes.
    """

    def schedule(self, delay_s: float, callback: Callable[[], None]) -> ScheduledTask:
        task = ScheduledTask(callback)
        timer = threading.Timer(max(0.0, delay_s), task.run)
        timer.daemon = True
        task._timer = timer
        timer.start()
        return task
