"""Periodic background ticker."""

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)


class Ticker:
    """Calls ``callback`` every ``interval`` seconds on a daemon thread.

    Ticks are scheduled against a monotonic clock, so a slow callback does
    not push later ticks back. The callback should only hand work off (e.g.
    post to a queue); it runs on the ticker thread.

    Args:
        interval: Seconds between ticks.
        callback: Function invoked on every tick.
    """

    def __init__(self, interval: float, callback: Callable[[], None]) -> None:
        self._interval = interval
        self._callback = callback
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return (
            self._thread is not None
            and self._thread.is_alive()
            and not self._stop.is_set()
        )

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="ticker", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 1.0) -> None:
        """Stop ticking and wait for the thread to exit.

        Safe to call from the callback itself; the thread then exits after
        the callback returns.
        """
        self._stop.set()
        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return
        thread.join(timeout)
        if thread.is_alive():
            logger.warning("Ticker thread did not stop within %.1fs", timeout)

    def _run(self) -> None:
        deadline = time.monotonic() + self._interval
        while not self._stop.wait(max(0.0, deadline - time.monotonic())):
            try:
                self._callback()
            except Exception as e:
                logger.error("Ticker callback failed: %s", e, exc_info=True)
            deadline += self._interval
