"""
Outcome Window
==============
Fixed-capacity ring of recent call outcomes.

Not thread-safe on its own; CircuitBreaker guards it with its lock.
"""

from collections import deque
from typing import Deque, List

from .models import Outcome, WindowStats


class OutcomeWindow:
    """
    Ring buffer of the last N outcomes, oldest evicted on overflow.

    Example:
        window = OutcomeWindow(size=10, minimum_calls=5)
        window.record(Outcome.FAILURE)
        window.stats().failure_rate  # None until 5 outcomes are in
    """

    def __init__(self, size: int, minimum_calls: int):
        self._outcomes: Deque[Outcome] = deque(maxlen=size)
        self.minimum_calls = minimum_calls
        self._failures = 0
        self._slow_calls = 0

    @property
    def capacity(self) -> int:
        return self._outcomes.maxlen or 0

    def __len__(self) -> int:
        return len(self._outcomes)

    def record(self, outcome: Outcome) -> None:
        """Append an outcome, evicting the oldest when full."""
        if len(self._outcomes) == self.capacity:
            self._forget(self._outcomes[0])
        self._outcomes.append(outcome)
        if outcome.is_failure:
            self._failures += 1
        elif outcome is Outcome.SLOW_SUCCESS:
            self._slow_calls += 1

    def _forget(self, outcome: Outcome) -> None:
        if outcome.is_failure:
            self._failures -= 1
        elif outcome is Outcome.SLOW_SUCCESS:
            self._slow_calls -= 1

    def stats(self) -> WindowStats:
        return WindowStats(
            size=len(self._outcomes),
            failures=self._failures,
            slow_calls=self._slow_calls,
            minimum_calls=self.minimum_calls,
        )

    def snapshot(self) -> List[Outcome]:
        """Outcomes in insertion order, oldest first."""
        return list(self._outcomes)

    def reset(self) -> None:
        self._outcomes.clear()
        self._failures = 0
        self._slow_calls = 0

    def resize(self, size: int, minimum_calls: int) -> None:
        """Change capacity, keeping the most recent outcomes."""
        kept = list(self._outcomes)[-size:]
        self._outcomes = deque(maxlen=size)
        self._failures = 0
        self._slow_calls = 0
        self.minimum_calls = minimum_calls
        for outcome in kept:
            self.record(outcome)
