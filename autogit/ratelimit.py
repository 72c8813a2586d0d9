"""Sliding one-minute call budget for the completion service."""

from __future__ import annotations

import logging
import time
from collections import deque
from typing import Callable

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0


class RateLimiter:
    """Track completion-service calls over a trailing 60 second window.

    Only touched from the session's event loop, so no locking is needed.
    """

    def __init__(
        self,
        max_calls_per_minute: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_calls_per_minute = int(max_calls_per_minute)
        self._clock = clock
        self._calls: deque[float] = deque()

    def _prune(self, now: float) -> None:
        cutoff = now - WINDOW_SECONDS
        while self._calls and self._calls[0] <= cutoff:
            self._calls.popleft()

    def calls_in_window(self) -> int:
        self._prune(self._clock())
        return len(self._calls)

    def can_call(self) -> bool:
        allowed = self.calls_in_window() < self.max_calls_per_minute
        if not allowed:
            logger.warning(
                "Rate limit reached: %d/%d calls in the last minute",
                len(self._calls),
                self.max_calls_per_minute,
            )
        return allowed

    def record_call(self) -> None:
        now = self._clock()
        self._prune(now)
        self._calls.append(now)

    def time_until_next_call(self) -> float:
        """Seconds until a call is allowed again; 0.0 when under budget."""
        now = self._clock()
        self._prune(now)
        if len(self._calls) < self.max_calls_per_minute:
            return 0.0
        return max(0.0, self._calls[0] + WINDOW_SECONDS - now)
