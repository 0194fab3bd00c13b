"""
Circuit Breaker Core
====================
Thread-safe circuit breaker driven by a rolling outcome window.

The lock is only ever held for in-memory bookkeeping, never across a call or
an await, so one breaker can be shared by threads and asyncio tasks alike.
"""

import threading
import time
from typing import Any, Callable, Dict, List, Optional

import structlog

from ..config import PolicyConfig
from ..exceptions import CircuitOpenError
from . import transitions
from .models import BreakerPermit, BreakerState, CircuitState, Outcome, WindowStats
from .window import OutcomeWindow

logger = structlog.get_logger(__name__)


class CircuitBreaker:
    """
    Rolling-window circuit breaker.

    Example:
        breaker = CircuitBreaker("forecast", PolicyConfig(ring_buffer_size=10))

        permit = breaker.acquire()          # raises CircuitOpenError
        try:
            result = fetch_forecast()
        except Exception:
            breaker.record(permit, Outcome.FAILURE)
            raise
        breaker.record(permit, Outcome.SUCCESS)
    """

    def __init__(
        self,
        name: str,
        config: Optional[PolicyConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or PolicyConfig()
        self._clock = clock
        self._state = BreakerState(since=clock())
        self._window = OutcomeWindow(
            self.config.ring_buffer_size, self.config.minimum_calls
        )
        self._lock = threading.Lock()

        # Metrics
        self._total_calls = 0
        self._total_failures = 0
        self._total_successes = 0
        self._total_slow_calls = 0
        self._total_rejections = 0

    @property
    def state(self) -> CircuitState:
        """Current circuit state."""
        return self._state.circuit

    @property
    def breaker_state(self) -> BreakerState:
        return self._state

    def stats(self) -> WindowStats:
        with self._lock:
            return self._window.stats()

    def outcomes(self) -> List[Outcome]:
        with self._lock:
            return self._window.snapshot()

    @property
    def metrics(self) -> Dict[str, Any]:
        """Get circuit breaker metrics."""
        with self._lock:
            stats = self._window.stats()
            return {
                "name": self.name,
                "state": self._state.circuit.value,
                "failure_rate": stats.failure_rate,
                "slow_call_rate": stats.slow_call_rate,
                "buffered_calls": stats.size,
                "total_calls": self._total_calls,
                "total_failures": self._total_failures,
                "total_successes": self._total_successes,
                "total_slow_calls": self._total_slow_calls,
                "total_rejections": self._total_rejections,
            }

    def classify_success(self, duration: float) -> Outcome:
        return transitions.classify_success(duration, self.config)

    def try_acquire(self) -> Optional[BreakerPermit]:
        """Atomically check admission. Returns None when rejected."""
        with self._lock:
            now = self._clock()
            new_state, permit = transitions.admit(self._state, self.config, now)
            self._apply(new_state)
            if permit is None:
                self._total_rejections += 1
            return permit

    def acquire(self) -> BreakerPermit:
        """Like try_acquire() but raises CircuitOpenError on rejection."""
        permit = self.try_acquire()
        if permit is None:
            with self._lock:
                state = self._state
                wait = transitions.retry_after(state, self.config, self._clock())
            logger.debug("circuit_rejected", policy=self.name, state=state.circuit.value)
            raise CircuitOpenError(self.name, state.circuit.value, wait)
        return permit

    def record(self, permit: BreakerPermit, outcome: Outcome) -> None:
        """Record one attempt outcome and evaluate transitions."""
        with self._lock:
            self._total_calls += 1
            if outcome.is_failure:
                self._total_failures += 1
            elif outcome is Outcome.SLOW_SUCCESS:
                self._total_slow_calls += 1
            else:
                self._total_successes += 1

            if transitions.counts_toward_window(self._state, permit):
                self._window.record(outcome)
            stats = self._window.stats()
            new_state = transitions.on_outcome(
                self._state, permit, outcome, stats, self.config, self._clock()
            )
            self._apply(new_state, stats=stats, outcome=outcome)

    def release(self, permit: BreakerPermit) -> None:
        """Return an unused half-open trial slot."""
        with self._lock:
            self._state = transitions.release(self._state, permit)

    def reset(self) -> None:
        """Force CLOSED with an empty window (for testing/admin)."""
        with self._lock:
            self._apply(
                transitions.transition_to(self._state, CircuitState.CLOSED, self._clock())
            )
        logger.info("circuit_reset", policy=self.name)

    def force_open(self) -> None:
        """Force OPEN; the wait duration starts now."""
        with self._lock:
            self._apply(
                transitions.transition_to(self._state, CircuitState.OPEN, self._clock())
            )

    def reconfigure(self, config: PolicyConfig) -> None:
        """Swap configuration, keeping state and recorded outcomes."""
        with self._lock:
            self.config = config
            self._window.resize(config.ring_buffer_size, config.minimum_calls)

    def _apply(
        self,
        new_state: BreakerState,
        stats: Optional[WindowStats] = None,
        outcome: Optional[Outcome] = None,
    ) -> None:
        """Install a new state; caller holds the lock."""
        old = self._state.circuit
        changed = new_state.epoch != self._state.epoch
        self._state = new_state
        if not changed:
            return

        if new_state.circuit is CircuitState.OPEN:
            if old is CircuitState.HALF_OPEN:
                logger.warning(
                    "circuit_reopened",
                    policy=self.name,
                    outcome=outcome.value if outcome else None,
                )
            else:
                logger.warning(
                    "circuit_opened",
                    policy=self.name,
                    failure_rate=stats.failure_rate if stats else None,
                    slow_call_rate=stats.slow_call_rate if stats else None,
                )
        elif new_state.circuit is CircuitState.HALF_OPEN:
            logger.info("circuit_half_open", policy=self.name)
        else:
            self._window.reset()
            logger.info("circuit_closed", policy=self.name)
