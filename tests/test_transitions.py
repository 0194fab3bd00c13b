"""
Unit Tests for Circuit Breaker Transitions
==========================================
The pure state machine, exercised without locks or clocks.
"""

from smsly_resilience import PolicyConfig
from smsly_resilience.circuit_breaker import (
    BreakerPermit,
    BreakerState,
    CircuitState,
    Outcome,
    WindowStats,
    transitions,
)

CONFIG = PolicyConfig(
    ring_buffer_size=10,
    minimum_number_of_calls=10,
    failure_rate_threshold=50.0,
    wait_duration_in_open_state=30.0,
    permitted_calls_in_half_open_state=2,
)


def stats(size: int, failures: int = 0, slow_calls: int = 0) -> WindowStats:
    return WindowStats(size=size, failures=failures, slow_calls=slow_calls, minimum_calls=10)


class TestAdmission:
    """Tests for admit()."""

    def test_closed_admits(self):
        """CLOSED should admit with a non-trial permit."""
        state = BreakerState(since=0.0)

        new_state, permit = transitions.admit(state, CONFIG, now=5.0)

        assert new_state is state
        assert permit == BreakerPermit(epoch=0, trial=False)

    def test_open_rejects_before_wait_duration(self):
        """OPEN should reject until the wait duration elapses."""
        state = BreakerState(circuit=CircuitState.OPEN, since=100.0, epoch=1)

        new_state, permit = transitions.admit(state, CONFIG, now=129.9)

        assert permit is None
        assert new_state.circuit is CircuitState.OPEN

    def test_open_moves_to_half_open_after_wait(self):
        """The first call after the wait should become a trial."""
        state = BreakerState(circuit=CircuitState.OPEN, since=100.0, epoch=1)

        new_state, permit = transitions.admit(state, CONFIG, now=130.0)

        assert new_state.circuit is CircuitState.HALF_OPEN
        assert new_state.epoch == 2
        assert new_state.trial_admitted == 1
        assert permit == BreakerPermit(epoch=2, trial=True)

    def test_half_open_limits_trials(self):
        """Only the permitted number of trial slots are handed out."""
        state = BreakerState(circuit=CircuitState.HALF_OPEN, since=0.0, epoch=2)

        state, first = transitions.admit(state, CONFIG, now=1.0)
        state, second = transitions.admit(state, CONFIG, now=1.0)
        state, third = transitions.admit(state, CONFIG, now=1.0)

        assert first is not None and second is not None
        assert third is None
        assert state.trial_admitted == 2

    def test_retry_after(self):
        """Should report remaining wait time while OPEN."""
        state = BreakerState(circuit=CircuitState.OPEN, since=100.0, epoch=1)

        assert transitions.retry_after(state, CONFIG, now=110.0) == 20.0
        assert transitions.retry_after(state, CONFIG, now=200.0) == 0.0


class TestOutcomeEvaluation:
    """Tests for on_outcome()."""

    def test_closed_stays_closed_below_minimum_calls(self):
        """Insufficient data never opens the breaker."""
        state = BreakerState()
        permit = BreakerPermit(epoch=0)

        new_state = transitions.on_outcome(
            state, permit, Outcome.FAILURE, stats(9, failures=9), CONFIG, now=1.0
        )

        assert new_state.circuit is CircuitState.CLOSED

    def test_closed_opens_at_threshold(self):
        """A failure rate equal to the threshold opens the breaker."""
        state = BreakerState()
        permit = BreakerPermit(epoch=0)

        new_state = transitions.on_outcome(
            state, permit, Outcome.SUCCESS, stats(10, failures=5), CONFIG, now=7.0
        )

        assert new_state.circuit is CircuitState.OPEN
        assert new_state.since == 7.0
        assert new_state.epoch == 1

    def test_slow_calls_open_only_when_enabled(self):
        """Slow call rate is only evaluated with a slow call duration set."""
        state = BreakerState()
        permit = BreakerPermit(epoch=0)
        slow_config = CONFIG.with_overrides(
            slow_call_duration=1.0, slow_call_rate_threshold=60.0
        )

        assert transitions.on_outcome(
            state, permit, Outcome.SLOW_SUCCESS, stats(10, slow_calls=6), CONFIG, 1.0
        ).circuit is CircuitState.CLOSED
        assert transitions.on_outcome(
            state, permit, Outcome.SLOW_SUCCESS, stats(10, slow_calls=6), slow_config, 1.0
        ).circuit is CircuitState.OPEN

    def test_half_open_trial_failure_reopens(self):
        """A single failed trial goes back to OPEN with a fresh clock."""
        state = BreakerState(circuit=CircuitState.HALF_OPEN, since=0.0, trial_admitted=2, epoch=2)
        permit = BreakerPermit(epoch=2, trial=True)

        new_state = transitions.on_outcome(
            state, permit, Outcome.TIMEOUT, stats(0), CONFIG, now=50.0
        )

        assert new_state.circuit is CircuitState.OPEN
        assert new_state.since == 50.0

    def test_half_open_all_trials_succeed_closes(self):
        """All permitted trials succeeding closes the breaker."""
        state = BreakerState(circuit=CircuitState.HALF_OPEN, since=0.0, trial_admitted=2, epoch=2)
        permit = BreakerPermit(epoch=2, trial=True)

        state = transitions.on_outcome(state, permit, Outcome.SUCCESS, stats(0), CONFIG, 1.0)
        assert state.circuit is CircuitState.HALF_OPEN
        assert state.trial_successes == 1

        state = transitions.on_outcome(state, permit, Outcome.SUCCESS, stats(0), CONFIG, 2.0)
        assert state.circuit is CircuitState.CLOSED
        assert state.trial_admitted == 0

    def test_stale_permit_never_transitions(self):
        """Outcomes from an earlier epoch leave the state untouched."""
        state = BreakerState(circuit=CircuitState.HALF_OPEN, since=0.0, trial_admitted=1, epoch=3)
        stale = BreakerPermit(epoch=1)

        new_state = transitions.on_outcome(
            state, stale, Outcome.FAILURE, stats(10, failures=10), CONFIG, 1.0
        )

        assert new_state is state

    def test_release_returns_trial_slot(self):
        """An unused trial slot can be handed back."""
        state = BreakerState(circuit=CircuitState.HALF_OPEN, since=0.0, trial_admitted=2, epoch=2)

        released = transitions.release(state, BreakerPermit(epoch=2, trial=True))
        untouched = transitions.release(state, BreakerPermit(epoch=1, trial=True))

        assert released.trial_admitted == 1
        assert untouched is state

    def test_classify_success(self):
        """Slow successes are only flagged with a slow call duration."""
        slow_config = CONFIG.with_overrides(slow_call_duration=0.5)

        assert transitions.classify_success(2.0, CONFIG) is Outcome.SUCCESS
        assert transitions.classify_success(0.4, slow_config) is Outcome.SUCCESS
        assert transitions.classify_success(0.6, slow_config) is Outcome.SLOW_SUCCESS
