"""
Fixed Window Rate Limiter
=========================
In-process fixed window counter, one per policy instance.
"""

import math
import threading
import time
from typing import Callable

from .models import RateLimitInfo


class FixedWindowRateLimiter:
    """
    Fixed window counter: `rate` permits per `period` seconds.

    Windows are aligned to multiples of the period on the limiter's clock.
    A rejected caller is not queued.
    """

    def __init__(
        self,
        rate: int = 100,
        period: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            rate: Number of calls allowed per window
            period: Window size in seconds
            clock: Monotonic time source
        """
        self.rate = rate
        self.period = period
        self._clock = clock
        self._window_start = self._align(clock())
        self._count = 0
        self._lock = threading.Lock()

    def _align(self, now: float) -> float:
        return math.floor(now / self.period) * self.period

    def _roll(self, now: float) -> float:
        """Advance to the current window; caller holds the lock."""
        window_start = self._align(now)
        if self._window_start < window_start:
            self._window_start = window_start
            self._count = 0
        return window_start

    def acquire(self) -> RateLimitInfo:
        """
        Check and consume one permit.

        Returns:
            RateLimitInfo with decision and quota
        """
        with self._lock:
            now = self._clock()
            window_start = self._roll(now)
            reset_at = window_start + self.period

            if self._count >= self.rate:
                return RateLimitInfo(
                    allowed=False,
                    remaining=0,
                    limit=self.rate,
                    reset_at=reset_at,
                    retry_after=reset_at - now,
                    window_start=window_start,
                )

            self._count += 1
            return RateLimitInfo(
                allowed=True,
                remaining=self.rate - self._count,
                limit=self.rate,
                reset_at=reset_at,
                window_start=window_start,
                admitted_at=now,
            )

    def refund(self, info: RateLimitInfo) -> None:
        """Return a permit, but only while its window is still current."""
        if not info.allowed:
            return
        with self._lock:
            self._roll(self._clock())
            if self._window_start == info.window_start and self._count > 0:
                self._count -= 1

    def remaining(self) -> int:
        with self._lock:
            self._roll(self._clock())
            return max(0, self.rate - self._count)

    def consumed(self) -> int:
        """Permits taken in the current window."""
        with self._lock:
            self._roll(self._clock())
            return self._count

    def seed(self, consumed: int) -> None:
        """Count `consumed` permits against the current window."""
        with self._lock:
            self._roll(self._clock())
            self._count = max(self._count, consumed)

    def reconfigure(self, rate: int, period: float) -> None:
        """Change limit and period; consumed permits in this window carry over."""
        with self._lock:
            self.rate = rate
            if period != self.period:
                self.period = period
                self._window_start = self._align(self._clock())
