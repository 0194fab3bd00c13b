"""
Unit Tests for the Circuit Breaker
==================================
Outcome window and the thread-safe breaker around the pure transitions.
"""

import threading

import pytest
from structlog.testing import capture_logs

from smsly_resilience import CircuitOpenError, PolicyConfig
from smsly_resilience.circuit_breaker import CircuitBreaker, CircuitState, Outcome, OutcomeWindow


class TestOutcomeWindow:
    """Tests for the ring buffer of outcomes."""

    def test_evicts_oldest(self):
        """Size never exceeds capacity; oldest outcome goes first."""
        window = OutcomeWindow(size=3, minimum_calls=1)

        for outcome in (Outcome.FAILURE, Outcome.SUCCESS, Outcome.SUCCESS, Outcome.TIMEOUT):
            window.record(outcome)

        assert len(window) == 3
        assert window.snapshot() == [Outcome.SUCCESS, Outcome.SUCCESS, Outcome.TIMEOUT]
        assert window.stats().failures == 1

    def test_failure_rate_counts_failures_and_timeouts(self):
        """FAILURE and TIMEOUT count toward the failure rate, slow calls separately."""
        window = OutcomeWindow(size=4, minimum_calls=4)
        for outcome in (Outcome.FAILURE, Outcome.TIMEOUT, Outcome.SLOW_SUCCESS, Outcome.SUCCESS):
            window.record(outcome)

        stats = window.stats()

        assert stats.failure_rate == 50.0
        assert stats.slow_call_rate == 25.0

    def test_insufficient_data(self):
        """Rates are undefined below the minimum sample count."""
        window = OutcomeWindow(size=10, minimum_calls=5)
        window.record(Outcome.FAILURE)

        assert window.stats().failure_rate is None
        assert window.stats().slow_call_rate is None

    def test_resize_keeps_most_recent(self):
        """Shrinking keeps the newest outcomes and recounts them."""
        window = OutcomeWindow(size=4, minimum_calls=1)
        for outcome in (Outcome.FAILURE, Outcome.FAILURE, Outcome.SUCCESS, Outcome.SUCCESS):
            window.record(outcome)

        window.resize(2, minimum_calls=2)

        assert window.snapshot() == [Outcome.SUCCESS, Outcome.SUCCESS]
        assert window.stats().failure_rate == 0.0


class TestCircuitBreaker:
    """Tests for CircuitBreaker."""

    def _config(self, **overrides) -> PolicyConfig:
        values = dict(
            ring_buffer_size=10,
            minimum_number_of_calls=10,
            failure_rate_threshold=50.0,
            wait_duration_in_open_state=30.0,
            permitted_calls_in_half_open_state=3,
        )
        values.update(overrides)
        return PolicyConfig(**values)

    def _open(self, breaker: CircuitBreaker) -> None:
        for _ in range(breaker.config.ring_buffer_size):
            breaker.record(breaker.acquire(), Outcome.FAILURE)
        assert breaker.state is CircuitState.OPEN

    def test_opens_at_fifty_of_last_hundred(self, clock):
        """With ring 100 and threshold 50%, the 50th failure of the last 100 opens."""
        breaker = CircuitBreaker(
            "forecast",
            PolicyConfig(ring_buffer_size=100, minimum_number_of_calls=100),
            clock=clock,
        )
        for _ in range(100):
            breaker.record(breaker.acquire(), Outcome.SUCCESS)
        for _ in range(49):
            breaker.record(breaker.acquire(), Outcome.FAILURE)

        assert breaker.state is CircuitState.CLOSED

        breaker.record(breaker.acquire(), Outcome.FAILURE)

        assert breaker.state is CircuitState.OPEN

    def test_open_rejects_without_counting(self, clock):
        """Rejected calls raise CircuitOpenError and are not recorded."""
        breaker = CircuitBreaker("alerts", self._config(), clock=clock)
        self._open(breaker)
        clock.advance(10.0)

        with pytest.raises(CircuitOpenError) as exc_info:
            breaker.acquire()

        assert exc_info.value.retry_after == pytest.approx(20.0)
        assert exc_info.value.policy == "alerts"
        assert len(breaker.outcomes()) == 10
        assert breaker.metrics["total_rejections"] == 1

    def test_half_open_trials_close(self, clock):
        """All trials succeeding closes the breaker and resets the window."""
        breaker = CircuitBreaker("alerts", self._config(), clock=clock)
        self._open(breaker)
        clock.advance(30.0)

        permits = [breaker.acquire() for _ in range(3)]
        assert breaker.state is CircuitState.HALF_OPEN
        assert breaker.try_acquire() is None

        for permit in permits:
            breaker.record(permit, Outcome.SUCCESS)

        assert breaker.state is CircuitState.CLOSED
        assert breaker.outcomes() == []

    def test_half_open_single_failure_reopens(self, clock):
        """One failed trial returns the breaker to OPEN."""
        breaker = CircuitBreaker("alerts", self._config(), clock=clock)
        self._open(breaker)
        clock.advance(30.0)

        first = breaker.acquire()
        second = breaker.acquire()
        breaker.record(first, Outcome.SUCCESS)
        breaker.record(second, Outcome.FAILURE)

        assert breaker.state is CircuitState.OPEN
        with pytest.raises(CircuitOpenError):
            breaker.acquire()

    def test_concurrent_trial_allocation(self, clock):
        """Racing threads never get more trial slots than configured."""
        breaker = CircuitBreaker("alerts", self._config(), clock=clock)
        breaker.force_open()
        clock.advance(30.0)

        barrier = threading.Barrier(20)
        granted = []
        lock = threading.Lock()

        def contend():
            barrier.wait()
            permit = breaker.try_acquire()
            if permit is not None:
                with lock:
                    granted.append(permit)

        threads = [threading.Thread(target=contend) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(granted) == 3
        assert all(permit.trial for permit in granted)

    def test_concurrent_recording_loses_nothing(self, clock):
        """Concurrent records are all counted."""
        breaker = CircuitBreaker(
            "alerts",
            PolicyConfig(ring_buffer_size=1000, minimum_number_of_calls=1000),
            clock=clock,
        )

        def worker():
            for _ in range(100):
                breaker.record(breaker.acquire(), Outcome.SUCCESS)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert breaker.metrics["total_calls"] == 800
        assert breaker.stats().size == 800

    def test_stale_outcome_after_close_is_dropped(self, clock):
        """An outcome from a call admitted before a reset does not land in the new window."""
        breaker = CircuitBreaker("alerts", self._config(), clock=clock)
        old_permit = breaker.acquire()
        breaker.reset()

        breaker.record(old_permit, Outcome.FAILURE)

        assert breaker.outcomes() == []
        assert breaker.metrics["total_failures"] == 1

    def test_reconfigure_keeps_state(self, clock):
        """A config swap keeps the OPEN state and recorded outcomes."""
        breaker = CircuitBreaker("alerts", self._config(), clock=clock)
        self._open(breaker)

        breaker.reconfigure(self._config(ring_buffer_size=20, wait_duration_in_open_state=5.0))
        clock.advance(5.0)

        assert breaker.state is CircuitState.OPEN
        assert len(breaker.outcomes()) == 10
        assert breaker.acquire().trial is True

    def test_logs_transitions(self, clock):
        """Transitions are logged as structured events."""
        breaker = CircuitBreaker("alerts", self._config(), clock=clock)

        with capture_logs() as logs:
            self._open(breaker)
            clock.advance(30.0)
            breaker.acquire()

        events = [entry["event"] for entry in logs]
        assert "circuit_opened" in events
        assert "circuit_half_open" in events
        opened = next(entry for entry in logs if entry["event"] == "circuit_opened")
        assert opened["policy"] == "alerts"
        assert opened["failure_rate"] == 100.0
