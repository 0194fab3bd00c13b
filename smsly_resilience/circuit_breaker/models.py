"""
Circuit Breaker Models
======================
Data models and enums for the circuit breaker pattern.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Failing, reject requests
    HALF_OPEN = "half_open"  # Testing recovery


class Outcome(str, Enum):
    """Result of one completed call attempt."""
    SUCCESS = "success"
    FAILURE = "failure"
    SLOW_SUCCESS = "slow_success"
    TIMEOUT = "timeout"

    @property
    def is_failure(self) -> bool:
        return self in (Outcome.FAILURE, Outcome.TIMEOUT)


@dataclass(frozen=True)
class BreakerState:
    """
    Immutable breaker state value.

    `epoch` increments on every transition so outcomes from calls admitted
    under an earlier state can be told apart from current ones.
    """
    circuit: CircuitState = CircuitState.CLOSED
    since: float = 0.0
    trial_admitted: int = 0
    trial_successes: int = 0
    epoch: int = 0


@dataclass(frozen=True)
class BreakerPermit:
    """Admission ticket handed out by the breaker for one logical call."""
    epoch: int
    trial: bool = False


@dataclass(frozen=True)
class WindowStats:
    """Aggregates over the outcome window at one point in time."""
    size: int
    failures: int
    slow_calls: int
    minimum_calls: int

    @property
    def sufficient(self) -> bool:
        return self.size >= self.minimum_calls and self.size > 0

    @property
    def failure_rate(self) -> Optional[float]:
        """Failure rate in percent, None below the minimum sample count."""
        if not self.sufficient:
            return None
        return self.failures * 100.0 / self.size

    @property
    def slow_call_rate(self) -> Optional[float]:
        """Slow call rate in percent, None below the minimum sample count."""
        if not self.sufficient:
            return None
        return self.slow_calls * 100.0 / self.size
