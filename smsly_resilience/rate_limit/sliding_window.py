"""
Sliding Window Rate Limiter
===========================
Sliding window rate limiter keeping admission timestamps in memory.
"""

import threading
import time
from collections import deque
from typing import Callable, Deque

from .models import RateLimitInfo


class SlidingWindowRateLimiter:
    """
    Sliding window rate limiter.

    More accurate than the fixed window: no span of `period` seconds ever
    sees more than `rate` admissions. Costs one timestamp per permit.
    """

    def __init__(
        self,
        rate: int = 100,
        period: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.rate = rate
        self.period = period
        self._clock = clock
        self._admitted: Deque[float] = deque()
        self._lock = threading.Lock()

    def _evict(self, now: float) -> None:
        """Drop timestamps older than one period; caller holds the lock."""
        horizon = now - self.period
        while self._admitted and self._admitted[0] <= horizon:
            self._admitted.popleft()

    def acquire(self) -> RateLimitInfo:
        """Check using sliding window algorithm."""
        with self._lock:
            now = self._clock()
            self._evict(now)
            count = len(self._admitted)

            if count >= self.rate:
                oldest = self._admitted[0]
                retry_after = oldest + self.period - now
                return RateLimitInfo(
                    allowed=False,
                    remaining=0,
                    limit=self.rate,
                    reset_at=oldest + self.period,
                    retry_after=retry_after,
                    window_start=now - self.period,
                )

            self._admitted.append(now)
            return RateLimitInfo(
                allowed=True,
                remaining=self.rate - count - 1,
                limit=self.rate,
                reset_at=now + self.period,
                window_start=now - self.period,
                admitted_at=now,
            )

    def refund(self, info: RateLimitInfo) -> None:
        """Remove the admission recorded for `info`, if it is still tracked."""
        if not info.allowed:
            return
        with self._lock:
            # May already have aged out of the window
            if info.admitted_at in self._admitted:
                self._admitted.remove(info.admitted_at)

    def remaining(self) -> int:
        with self._lock:
            self._evict(self._clock())
            return max(0, self.rate - len(self._admitted))

    def consumed(self) -> int:
        """Admissions still inside the trailing period."""
        with self._lock:
            self._evict(self._clock())
            return len(self._admitted)

    def seed(self, consumed: int) -> None:
        """Record `consumed` admissions as made now."""
        with self._lock:
            now = self._clock()
            self._evict(now)
            self._admitted.extend([now] * max(0, consumed - len(self._admitted)))

    def reconfigure(self, rate: int, period: float) -> None:
        with self._lock:
            self.rate = rate
            self.period = period
