"""
Bulkhead
========
Concurrency cap isolating one dependency's load from the others.

Rejection is immediate: there is no wait queue. A bulkhead without a cap
still counts in-flight calls, so the cap can be switched on and off by a
config update without losing track of calls already running.
"""

import threading
from contextlib import asynccontextmanager, contextmanager
from typing import AsyncIterator, Dict, Iterator, Optional

import structlog

from .exceptions import BulkheadFullError

logger = structlog.get_logger(__name__)


class Bulkhead:
    """
    Counting admission gate for concurrent in-flight calls.

    Example:
        bulkhead = Bulkhead("forecast", max_concurrent=10)

        with bulkhead.slot():
            return fetch_forecast()
    """

    def __init__(self, name: str, max_concurrent: Optional[int] = 10):
        self.name = name
        self.max_concurrent = max_concurrent
        self._in_flight = 0
        self._rejected_calls = 0
        self._lock = threading.Lock()

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def limited(self) -> bool:
        return self.max_concurrent is not None

    @property
    def available(self) -> Optional[int]:
        """Free slots, or None when uncapped."""
        if self.max_concurrent is None:
            return None
        return max(0, self.max_concurrent - self._in_flight)

    @property
    def metrics(self) -> Dict[str, Optional[int]]:
        return {
            "in_flight": self._in_flight,
            "max_concurrent": self.max_concurrent,
            "rejected_calls": self._rejected_calls,
        }

    def try_acquire(self) -> bool:
        """Atomically take a slot if one is free."""
        with self._lock:
            if self.max_concurrent is not None and self._in_flight >= self.max_concurrent:
                self._rejected_calls += 1
                return False
            self._in_flight += 1
            return True

    def acquire(self) -> None:
        if not self.try_acquire():
            logger.debug("bulkhead_full", policy=self.name, max_concurrent=self.max_concurrent)
            raise BulkheadFullError(self.name, self.max_concurrent)

    def release(self) -> None:
        with self._lock:
            if self._in_flight <= 0:
                raise RuntimeError(f"Bulkhead '{self.name}' released more often than acquired")
            self._in_flight -= 1

    def resize(self, max_concurrent: Optional[int]) -> None:
        """Change the cap (None removes it); calls already in flight are never evicted."""
        with self._lock:
            self.max_concurrent = max_concurrent

    @contextmanager
    def slot(self) -> Iterator[None]:
        """Hold a slot for the duration of the block."""
        self.acquire()
        try:
            yield
        finally:
            self.release()

    @asynccontextmanager
    async def slot_async(self) -> AsyncIterator[None]:
        """Async variant of slot(); released on cancellation too."""
        self.acquire()
        try:
            yield
        finally:
            self.release()
