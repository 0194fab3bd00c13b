"""
Retry Controller
================
Re-invokes a failed or timed-out attempt with exponential backoff.

Every attempt reports its own outcome through the `record` callback, so a
retry storm against a degrading dependency still drives the breaker open.
"""

import random
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

import structlog

from .circuit_breaker.models import Outcome
from .circuit_breaker.transitions import classify_success
from .config import PolicyConfig
from .exceptions import AttemptTimeoutError, CallCancelledError, OperationError
from .waiting import CancellationToken, wait, wait_async

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Recorder = Callable[[Outcome], None]


def backoff_delay(
    attempt: int,
    config: PolicyConfig,
    rand: Callable[[], float] = random.random,
) -> float:
    """
    Delay before the attempt following `attempt` (1-based).

    base_delay * multiplier ** (attempt - 1), capped at max_delay, then
    scaled by a factor in [0.5, 1.5) when jitter is on.
    """
    delay = config.backoff_base_delay * (config.backoff_multiplier ** (attempt - 1))
    if config.backoff_max_delay is not None:
        delay = min(delay, config.backoff_max_delay)
    if config.backoff_jitter:
        delay = delay * (0.5 + rand())
    return delay


@dataclass
class RetryContext:
    """Per-call attempt bookkeeping, discarded once the call resolves."""
    max_attempts: int
    attempt: int = 0
    outcomes: List[Outcome] = field(default_factory=list)
    last_error: Optional[BaseException] = None

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts


class RetryController:
    """
    Runs attempts until success, a non-retryable error, or max_attempts.

    Example:
        controller = RetryController("forecast", config)
        result = controller.run(lambda: guard.run(fetch), record=on_outcome)
    """

    def __init__(
        self,
        name: str,
        config: PolicyConfig,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config
        self._clock = clock

    def is_ignored(self, exc: BaseException) -> bool:
        return isinstance(exc, self.config.ignored_exceptions)

    def is_retryable(self, exc: BaseException) -> bool:
        if isinstance(exc, AttemptTimeoutError):
            return True
        return isinstance(exc, self.config.retry_exceptions)

    def _record_error(self, context: RetryContext, exc: Exception, record: Recorder) -> None:
        outcome = Outcome.TIMEOUT if isinstance(exc, AttemptTimeoutError) else Outcome.FAILURE
        context.outcomes.append(outcome)
        context.last_error = exc
        record(outcome)

    def _record_success(self, context: RetryContext, started: float, record: Recorder) -> None:
        outcome = classify_success(self._clock() - started, self.config)
        context.outcomes.append(outcome)
        record(outcome)

    def _should_stop(self, context: RetryContext, exc: Exception) -> bool:
        if context.exhausted:
            logger.error(
                "Retry exhausted",
                policy=self.name,
                attempts=context.attempt,
                error=str(exc),
            )
            return True
        return not self.is_retryable(exc)

    def _terminal(self, context: RetryContext, exc: Exception) -> Exception:
        """The error surfaced to the caller once retries stop."""
        if isinstance(exc, AttemptTimeoutError):
            exc.attempts = context.attempt
            return exc
        return OperationError(self.name, exc, attempts=context.attempt)

    def _next_delay(self, context: RetryContext, exc: Exception) -> float:
        delay = backoff_delay(context.attempt, self.config)
        logger.warning(
            "Retrying after failure",
            policy=self.name,
            attempt=context.attempt,
            delay=delay,
            error=str(exc),
        )
        return delay

    def run(
        self,
        attempt: Callable[[], T],
        record: Recorder,
        token: Optional[CancellationToken] = None,
        context: Optional[RetryContext] = None,
    ) -> T:
        """
        Execute `attempt` with retries on the calling thread.

        Raises:
            OperationError: The last attempt failed
            AttemptTimeoutError: The last attempt timed out
            CallCancelledError: The token was cancelled
        """
        context = context or RetryContext(max_attempts=self.config.max_attempts)
        while True:
            context.attempt += 1
            started = self._clock()
            try:
                result = attempt()
            except CallCancelledError:
                raise
            except Exception as e:
                if self.is_ignored(e):
                    raise
                self._record_error(context, e, record)
                if self._should_stop(context, e):
                    terminal = self._terminal(context, e)
                    if terminal is e:
                        raise
                    raise terminal from e
                wait(self._next_delay(context, e), token, policy=self.name)
                continue

            self._record_success(context, started, record)
            return result

    async def run_async(
        self,
        attempt: Callable[[], Awaitable[Any]],
        record: Recorder,
        context: Optional[RetryContext] = None,
    ) -> Any:
        """Async variant of run(); task cancellation interrupts backoff."""
        context = context or RetryContext(max_attempts=self.config.max_attempts)
        while True:
            context.attempt += 1
            started = self._clock()
            try:
                result = await attempt()
            except CallCancelledError:
                raise
            except Exception as e:
                if self.is_ignored(e):
                    raise
                self._record_error(context, e, record)
                if self._should_stop(context, e):
                    terminal = self._terminal(context, e)
                    if terminal is e:
                        raise
                    raise terminal from e
                await wait_async(self._next_delay(context, e))
                continue

            self._record_success(context, started, record)
            return result
