"""
SMSLY Resilience
================
Resilience policy engine for calls to unreliable dependencies.

Each named policy composes a bulkhead, rate limiter, circuit breaker,
timeout guard, retry controller and fallback around an operation.

Usage:
    from smsly_resilience import PolicyRegistry, PolicyConfig

    registry = PolicyRegistry()
    registry.configure("forecast", PolicyConfig(timeout=2.0, bulkhead_max_concurrent=20))

    forecast = registry.execute(
        "forecast",
        lambda: weather_client.forecast(city),
        fallback=lambda exc: CACHED_FORECAST,
    )
    registry.get_state("forecast").to_dict()
"""

__version__ = "0.1.0"

# Configuration
from smsly_resilience.config import PolicyConfig, DEFAULT_CONFIG

# Errors
from smsly_resilience.exceptions import (
    ResilienceError,
    OperationError,
    AttemptTimeoutError,
    CircuitOpenError,
    RateLimitExceededError,
    BulkheadFullError,
    FallbackError,
    CallCancelledError,
)

# Circuit Breaker
from smsly_resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitState,
    Outcome,
    OutcomeWindow,
)

# Rate Limiting
from smsly_resilience.rate_limit import (
    FixedWindowRateLimiter,
    SlidingWindowRateLimiter,
    RateLimitInfo,
)

# Bulkhead, Timeout, Retry
from smsly_resilience.bulkhead import Bulkhead
from smsly_resilience.timeout import TimeoutGuard
from smsly_resilience.retry import RetryController, RetryContext, backoff_delay
from smsly_resilience.waiting import CancellationToken

# Pipeline & Registry
from smsly_resilience.pipeline import PolicyInstance, PolicySnapshot
from smsly_resilience.registry import PolicyRegistry
from smsly_resilience.decorators import resilient

__all__ = [
    # Configuration
    "PolicyConfig",
    "DEFAULT_CONFIG",
    # Errors
    "ResilienceError",
    "OperationError",
    "AttemptTimeoutError",
    "CircuitOpenError",
    "RateLimitExceededError",
    "BulkheadFullError",
    "FallbackError",
    "CallCancelledError",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitState",
    "Outcome",
    "OutcomeWindow",
    # Rate Limiting
    "FixedWindowRateLimiter",
    "SlidingWindowRateLimiter",
    "RateLimitInfo",
    # Policies
    "Bulkhead",
    "TimeoutGuard",
    "RetryController",
    "RetryContext",
    "backoff_delay",
    "CancellationToken",
    # Pipeline
    "PolicyInstance",
    "PolicySnapshot",
    "PolicyRegistry",
    "resilient",
]
