"""
SMSLY Resilience - Circuit Breaker
==================================
Rolling-window circuit breaker.

States:

1. CLOSED: Normal operation, outcomes are recorded into the window
2. OPEN: Failure rate reached its threshold, calls are rejected immediately
3. HALF-OPEN: A limited number of trial calls test whether the dependency recovered

Usage:
    from smsly_resilience.circuit_breaker import CircuitBreaker, Outcome

    breaker = CircuitBreaker("alerts", config)
    permit = breaker.acquire()
    ...
    breaker.record(permit, Outcome.SUCCESS)
"""

from .models import (
    CircuitState,
    Outcome,
    BreakerState,
    BreakerPermit,
    WindowStats,
)

from .window import OutcomeWindow

from .breaker import CircuitBreaker

from . import transitions

__all__ = [
    # Models
    "CircuitState",
    "Outcome",
    "BreakerState",
    "BreakerPermit",
    "WindowStats",
    # Window
    "OutcomeWindow",
    # Breaker
    "CircuitBreaker",
    # Pure transitions
    "transitions",
]
