# SPDX-License-Identifier: Apache-2.0

"""
Collapse bursts of change notifications into one refetch.
"""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class Debouncer:
    """
    Run ``callback`` once, ``delay`` seconds after the last ``trigger()``.

    ``timer_factory`` must build an object with ``start()`` and ``cancel()``
    from ``(delay, function)``; it defaults to ``threading.Timer``.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], None],
        timer_factory: Optional[Callable[[float, Callable[[], None]], object]] = None
    ):
        self.delay = delay
        self.callback = callback
        self._timer_factory = timer_factory or threading.Timer
        self._timer = None
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def trigger(self) -> None:
        """Schedule the callback, pushing back any pending run."""
        if self.delay <= 0:
            self._run()
            return

        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            timer = self._timer_factory(self.delay, self._fire)
            if isinstance(timer, threading.Timer):
                timer.daemon = True
            self._timer = timer
        timer.start()

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
        self._run()

    def _run(self) -> None:
        try:
            self.callback()
        except Exception as e:
            logger.error(f"Debounced callback failed: {e}", exc_info=True)

    def flush(self) -> None:
        """Run a pending callback now."""
        with self._lock:
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
            self._run()

    def cancel(self) -> None:
        """Drop a pending callback."""
        with self._lock:
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
