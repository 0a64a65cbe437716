"""
In-process fetch-rate ceiling for key-set refreshes.
"""

import time
from collections import deque
from typing import Callable, Deque


class FetchRateLimiter:
    """Sliding-window limiter: at most ``max_calls`` per ``period`` seconds.

    Bounds load on the identity backend when callers present unknown kids,
    independent of request volume.
    """

    def __init__(self, max_calls: int = 5, period: float = 60.0, *, clock: Callable[[], float] = time.monotonic):
        self.max_calls = max_calls
        self.period = period
        self._clock = clock
        self._calls: Deque[float] = deque()

    def _evict(self, now: float) -> None:
        while self._calls and now - self._calls[0] >= self.period:
            self._calls.popleft()

    def try_acquire(self) -> bool:
        """Record a call if the window has room; return whether it was allowed."""
        now = self._clock()
        self._evict(now)
        if len(self._calls) >= self.max_calls:
            return False
        self._calls.append(now)
        return True

    def remaining(self) -> int:
        self._evict(self._clock())
        return max(0, self.max_calls - len(self._calls))

    def reset_in_seconds(self) -> float:
        now = self._clock()
        self._evict(now)
        if len(self._calls) < self.max_calls:
            return 0.0
        return self.period - (now - self._calls[0])
