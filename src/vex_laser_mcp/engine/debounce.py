"""Single-slot cancellable timer."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

logger = logging.getLogger(__name__)


class DebounceTimer:
    """Runs the most recently armed call once ``delay`` seconds pass quietly.

    Arming again before the delay elapses cancels the earlier call, so a
    burst of ``arm()`` calls results in exactly one invocation with the
    last arguments.
    """

    def __init__(
        self,
        delay: float,
        timer_factory: Callable[..., Any] = threading.Timer,
    ) -> None:
        self._delay = delay
        self._timer_factory = timer_factory
        self._timer = None
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def arm(self, fn: Callable[..., Any], *args: Any) -> None:
        """(Re)schedule ``fn(*args)``, replacing any pending call."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            timer = self._timer_factory(self._delay, self._fire, args=(self._generation, fn, args))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1

    def _fire(self, generation: int, fn: Callable[..., Any], args: tuple) -> None:
        with self._lock:
            # A cancel() or re-arm raced with an already-expired timer.
            if generation != self._generation:
                return
            self._timer = None
        try:
            fn(*args)
        except Exception:
            logger.exception("Debounced call %r failed", fn)
