"""Background sweep that periodically runs a callback until stopped."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from .config import SWEEP_INTERVAL_SECONDS

logger = logging.getLogger(__name__)


class PeriodicSweeper:
    """Run ``callback`` once at start, then every ``interval`` seconds.

    The worker is a daemon thread; ``stop()`` wakes it immediately and joins.
    Exceptions raised by the callback are logged and the schedule continues.
    """

    def __init__(self, callback: Callable[[], object], interval: Optional[float] = None, name: str = 'sweeper'):
        self.callback = callback
        self.interval = float(interval if interval is not None else SWEEP_INTERVAL_SECONDS)
        self.name = name
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        logger.info("Started %s (every %.0fs)", self.name, self.interval)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None
        logger.info("Stopped %s", self.name)

    def run_once(self) -> None:
        self.runs += 1
        try:
            self.callback()
        except Exception:
            logger.exception("%s run failed", self.name)

    def _run(self) -> None:
        self.run_once()
        while not self._stop.wait(self.interval):
            self.run_once()
