"""
Circuit Breaker Transitions
===========================
Pure state transition functions. No locks, no clocks, no I/O: callers pass
the current time and window statistics in and get a new state back.

Legal transitions:
    CLOSED    -> OPEN       failure (or slow call) rate reached its threshold
    OPEN      -> HALF_OPEN  wait duration elapsed, on the next admission
    HALF_OPEN -> OPEN       any trial outcome other than SUCCESS
    HALF_OPEN -> CLOSED     all permitted trials succeeded
"""

from dataclasses import replace
from typing import Optional, Tuple

from ..config import PolicyConfig
from .models import BreakerPermit, BreakerState, CircuitState, Outcome, WindowStats


def transition_to(state: BreakerState, circuit: CircuitState, now: float) -> BreakerState:
    """Enter a new circuit state, starting a fresh epoch."""
    return BreakerState(circuit=circuit, since=now, epoch=state.epoch + 1)


def classify_success(duration: float, config: PolicyConfig) -> Outcome:
    """SLOW_SUCCESS when a successful call exceeded the slow call duration."""
    if config.slow_call_duration is not None and duration > config.slow_call_duration:
        return Outcome.SLOW_SUCCESS
    return Outcome.SUCCESS


def should_open(stats: WindowStats, config: PolicyConfig) -> bool:
    """True once the window holds enough samples and a rate hits its threshold."""
    if not stats.sufficient:
        return False
    if stats.failure_rate >= config.failure_rate_threshold:
        return True
    if config.slow_call_duration is not None:
        return stats.slow_call_rate >= config.slow_call_rate_threshold
    return False


def admit(
    state: BreakerState,
    config: PolicyConfig,
    now: float,
) -> Tuple[BreakerState, Optional[BreakerPermit]]:
    """
    Decide whether a call may proceed.

    Returns the (possibly advanced) state and a permit, or None when the
    call must be rejected.
    """
    if state.circuit is CircuitState.CLOSED:
        return state, BreakerPermit(epoch=state.epoch)

    if state.circuit is CircuitState.OPEN:
        if now - state.since < config.wait_duration_in_open_state:
            return state, None
        state = transition_to(state, CircuitState.HALF_OPEN, now)

    if state.trial_admitted >= config.permitted_calls_in_half_open_state:
        return state, None
    state = replace(state, trial_admitted=state.trial_admitted + 1)
    return state, BreakerPermit(epoch=state.epoch, trial=True)


def on_outcome(
    state: BreakerState,
    permit: BreakerPermit,
    outcome: Outcome,
    stats: WindowStats,
    config: PolicyConfig,
    now: float,
) -> BreakerState:
    """Evaluate the state after an outcome has been recorded."""
    if permit.epoch != state.epoch:
        # Admitted under an earlier state; never drives a transition.
        return state

    if state.circuit is CircuitState.CLOSED:
        if should_open(stats, config):
            return transition_to(state, CircuitState.OPEN, now)
        return state

    if state.circuit is CircuitState.HALF_OPEN and permit.trial:
        if outcome is not Outcome.SUCCESS:
            return transition_to(state, CircuitState.OPEN, now)
        successes = state.trial_successes + 1
        if successes >= config.permitted_calls_in_half_open_state:
            return transition_to(state, CircuitState.CLOSED, now)
        return replace(state, trial_successes=successes)

    return state


def release(state: BreakerState, permit: BreakerPermit) -> BreakerState:
    """Give back a half-open trial slot that never produced an outcome."""
    if (
        permit.trial
        and permit.epoch == state.epoch
        and state.circuit is CircuitState.HALF_OPEN
        and state.trial_admitted > 0
    ):
        return replace(state, trial_admitted=state.trial_admitted - 1)
    return state


def counts_toward_window(state: BreakerState, permit: BreakerPermit) -> bool:
    """
    Whether an outcome belongs in the current window.

    A window reset happens on every entry into CLOSED, so outcomes from
    calls admitted before that reset are dropped.
    """
    return permit.epoch == state.epoch or state.circuit is not CircuitState.CLOSED


def retry_after(state: BreakerState, config: PolicyConfig, now: float) -> float:
    """Seconds until an OPEN breaker will admit a trial call."""
    if state.circuit is not CircuitState.OPEN:
        return 0.0
    return max(0.0, config.wait_duration_in_open_state - (now - state.since))
