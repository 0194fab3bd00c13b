"""
Resilience Exceptions
=====================
Error taxonomy raised by the policy pipeline.

OperationError and AttemptTimeoutError come from an actual attempt and are
retried locally. Everything else is terminal for the call and goes straight
to the fallback.
"""

from typing import Optional


class ResilienceError(Exception):
    """Base exception for all policy engine errors."""

    def __init__(self, message: str, policy: str = "unknown"):
        self.message = message
        self.policy = policy
        super().__init__(f"[{policy}] {message}")


class OperationError(ResilienceError):
    """Raised when the wrapped operation itself failed."""

    def __init__(
        self,
        policy: str,
        original: BaseException,
        attempts: int = 1,
    ):
        self.original = original
        self.attempts = attempts
        super().__init__(
            f"Operation failed after {attempts} attempt(s): {original!r}",
            policy=policy,
        )


class AttemptTimeoutError(ResilienceError, TimeoutError):
    """Raised when a single attempt exceeded its deadline."""

    def __init__(self, policy: str, timeout: float, attempts: int = 1):
        self.timeout = timeout
        self.attempts = attempts
        super().__init__(
            f"Attempt timed out after {timeout:.3f}s ({attempts} attempt(s))",
            policy=policy,
        )


class CircuitOpenError(ResilienceError):
    """Raised when the breaker rejects a call without attempting it."""

    def __init__(self, policy: str, state: str, retry_after: float):
        self.state = state
        self.retry_after = retry_after
        super().__init__(
            f"Circuit breaker is {state}. Retry after {retry_after:.1f}s",
            policy=policy,
        )


class RateLimitExceededError(ResilienceError):
    """Raised when the rate limiter has no permits left in the window."""

    def __init__(self, policy: str, limit: int, retry_after: float):
        self.limit = limit
        self.retry_after = retry_after
        super().__init__(
            f"Rate limit of {limit} exceeded. Retry after {retry_after:.2f}s",
            policy=policy,
        )


class BulkheadFullError(ResilienceError):
    """Raised when the maximum number of concurrent calls is in flight."""

    def __init__(self, policy: str, max_concurrent: int):
        self.max_concurrent = max_concurrent
        super().__init__(
            f"Bulkhead full ({max_concurrent} concurrent calls)",
            policy=policy,
        )


class FallbackError(ResilienceError):
    """Raised when the fallback itself failed. Carries the original error."""

    def __init__(self, policy: str, original_error: BaseException):
        self.original_error = original_error
        super().__init__(
            f"Fallback failed while handling {type(original_error).__name__}: "
            f"{original_error}",
            policy=policy,
        )


class CallCancelledError(ResilienceError):
    """Raised when the caller cancelled a call through its token."""

    def __init__(self, policy: str = "unknown", reason: Optional[str] = None):
        self.reason = reason
        super().__init__(f"Call cancelled{': ' + reason if reason else ''}", policy=policy)

