"""
Policy Pipeline
===============
Composes the policies of one named instance around an operation.

Order is fixed:

    bulkhead -> rate limiter -> circuit breaker
        -> retry(timeout(operation))   each attempt recorded in the breaker
            -> fallback on terminal failure

Bulkhead and rate limiter run first so load shedding never pollutes the
breaker's failure statistics. Retries run inside the breaker-admitted
region, so each attempt still counts toward the failure rate.
"""

import asyncio
import inspect
import threading
import time
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import structlog

from .bulkhead import Bulkhead
from .circuit_breaker import BreakerPermit, CircuitBreaker, CircuitState, Outcome
from .config import PolicyConfig
from .exceptions import CallCancelledError, FallbackError, RateLimitExceededError
from .rate_limit import (
    FixedWindowRateLimiter,
    RateLimitInfo,
    RateLimiter,
    SlidingWindowRateLimiter,
    create_rate_limiter,
)
from .retry import RetryController
from .timeout import TimeoutGuard
from .waiting import CancellationToken

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Fallback = Callable[[BaseException], Any]


@dataclass(frozen=True)
class PolicySnapshot:
    """Read-only view of a policy instance for observability collaborators."""
    name: str
    circuit_state: CircuitState
    failure_rate: Optional[float]
    slow_call_rate: Optional[float]
    buffered_calls: int
    in_flight: int
    max_concurrent: Optional[int]
    permits_remaining: Optional[int]

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["circuit_state"] = self.circuit_state.value
        return data


class _Admission:
    """Reservations held by one call; released on every exit path."""

    def __init__(self):
        self.bulkhead: Optional[Bulkhead] = None
        self.limiter: Optional[RateLimiter] = None
        self.rate_info: Optional[RateLimitInfo] = None
        self.permit: Optional[BreakerPermit] = None
        self.outcomes: List[Outcome] = []


class PolicyInstance:
    """
    Shared state and pipeline for one logical dependency.

    Example:
        instance = PolicyInstance("forecast", PolicyConfig(timeout=2.0))
        data = instance.execute(fetch_forecast, fallback=lambda exc: CACHED)
    """

    def __init__(
        self,
        name: str,
        config: Optional[PolicyConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        max_workers: Optional[int] = None,
    ):
        self.name = name
        self.config = config or PolicyConfig()
        self._clock = clock
        self.breaker = CircuitBreaker(name, self.config, clock=clock)
        self.rate_limiter: Optional[RateLimiter] = create_rate_limiter(self.config, clock)
        # Uncapped when bulkhead_max_concurrent is None, but always counting
        self.bulkhead = Bulkhead(name, self.config.bulkhead_max_concurrent)
        self.timeout_guard = TimeoutGuard(name, self.config.timeout, max_workers=max_workers)
        self.retry = RetryController(name, self.config, clock=clock)
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def reconfigure(self, config: PolicyConfig) -> None:
        """Hot-swap configuration, keeping breaker, window and counters."""
        with self._lock:
            if config == self.config:
                return
            self.config = config
            self.breaker.reconfigure(config)
            self.retry.config = config
            self.timeout_guard.timeout = config.timeout

            limiter = self.rate_limiter
            wanted = (
                SlidingWindowRateLimiter
                if config.rate_limit_window == "sliding"
                else FixedWindowRateLimiter
            )
            if config.rate_limit_permits is None:
                self.rate_limiter = None
            elif isinstance(limiter, wanted):
                limiter.reconfigure(config.rate_limit_permits, config.rate_limit_period)
            else:
                self.rate_limiter = create_rate_limiter(config, self._clock)
                if limiter is not None:
                    # Permits already taken stay taken under the new window kind
                    self.rate_limiter.seed(limiter.consumed())

            self.bulkhead.resize(config.bulkhead_max_concurrent)

        logger.info("policy_reconfigured", policy=self.name)

    def reset(self) -> None:
        """Drop breaker state and recorded outcomes."""
        self.breaker.reset()

    def shutdown(self, wait: bool = False) -> None:
        self.timeout_guard.shutdown(wait=wait)

    def snapshot(self) -> PolicySnapshot:
        stats = self.breaker.stats()
        limiter = self.rate_limiter
        return PolicySnapshot(
            name=self.name,
            circuit_state=self.breaker.state,
            failure_rate=stats.failure_rate,
            slow_call_rate=stats.slow_call_rate,
            buffered_calls=stats.size,
            in_flight=self.bulkhead.in_flight,
            max_concurrent=self.bulkhead.max_concurrent,
            permits_remaining=limiter.remaining() if limiter is not None else None,
        )

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def _admit(self) -> _Admission:
        """Run the admission checks in order, undoing partial reservations."""
        admission = _Admission()
        self.bulkhead.acquire()
        admission.bulkhead = self.bulkhead
        try:
            limiter = self.rate_limiter
            if limiter is not None:
                info = limiter.acquire()
                if not info.allowed:
                    logger.debug("rate_limit_exceeded", policy=self.name, limit=info.limit)
                    raise RateLimitExceededError(self.name, info.limit, info.retry_after or 0.0)
                admission.limiter = limiter
                admission.rate_info = info
            admission.permit = self.breaker.acquire()
        except BaseException:
            self._release(admission, cancelled=False)
            raise
        return admission

    def _recorder(self, admission: _Admission) -> Callable[[Outcome], None]:
        def record(outcome: Outcome) -> None:
            admission.outcomes.append(outcome)
            self.breaker.record(admission.permit, outcome)
        return record

    def _release(self, admission: _Admission, cancelled: bool) -> None:
        if admission.permit is not None and not admission.outcomes:
            self.breaker.release(admission.permit)
        if cancelled and admission.limiter is not None:
            admission.limiter.refund(admission.rate_info)
        if admission.bulkhead is not None:
            admission.bulkhead.release()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _run(self, operation: Callable[[], T], token: Optional[CancellationToken]) -> T:
        if token is not None:
            token.raise_if_cancelled(self.name)
        admission = self._admit()
        cancelled = False
        try:
            return self.retry.run(
                lambda: self.timeout_guard.run(operation, token),
                self._recorder(admission),
                token,
            )
        except CallCancelledError:
            cancelled = True
            raise
        finally:
            self._release(admission, cancelled)

    async def _run_async(self, operation: Callable[[], Awaitable[Any]]) -> Any:
        admission = self._admit()
        cancelled = False
        try:
            return await self.retry.run_async(
                lambda: self.timeout_guard.run_async(operation),
                self._recorder(admission),
            )
        except asyncio.CancelledError:
            cancelled = True
            raise
        finally:
            self._release(admission, cancelled)

    def execute(
        self,
        operation: Callable[[], T],
        fallback: Optional[Fallback] = None,
        token: Optional[CancellationToken] = None,
    ) -> T:
        """
        Run `operation` through the pipeline on the calling thread.

        Args:
            operation: Zero-argument callable to protect
            fallback: Called with the terminal error to produce a substitute
            token: Cancels backoff and timeout waits when triggered

        Raises:
            ResilienceError subclass when no fallback is given, FallbackError
            when the fallback itself fails

        A failing fallback does not surface the terminal error directly:
        FallbackError is raised instead, with the terminal error as
        `original_error` and the fallback's exception as `__cause__`.
        """
        try:
            return self._run(operation, token)
        except CallCancelledError:
            raise
        except Exception as e:
            if self.retry.is_ignored(e):
                raise
            return self._fallback(e, fallback)

    async def execute_async(
        self,
        operation: Callable[[], Awaitable[Any]],
        fallback: Optional[Fallback] = None,
    ) -> Any:
        """Async variant of execute(); `operation()` must return an awaitable."""
        try:
            return await self._run_async(operation)
        except Exception as e:
            if self.retry.is_ignored(e):
                raise
            result = self._fallback(e, fallback)
            if inspect.isawaitable(result):
                try:
                    result = await result
                except Exception as fallback_exc:
                    raise self._fallback_failed(e, fallback_exc) from fallback_exc
            return result

    def _fallback(self, error: Exception, fallback: Optional[Fallback]) -> Any:
        if fallback is None:
            raise error
        logger.info(
            "fallback_invoked",
            policy=self.name,
            error_type=type(error).__name__,
        )
        try:
            return fallback(error)
        except Exception as fallback_exc:
            raise self._fallback_failed(error, fallback_exc) from fallback_exc

    def _fallback_failed(self, error: Exception, fallback_exc: Exception) -> FallbackError:
        logger.error(
            "fallback_failed",
            policy=self.name,
            error_type=type(error).__name__,
            fallback_error=str(fallback_exc),
        )
        return FallbackError(self.name, error)
