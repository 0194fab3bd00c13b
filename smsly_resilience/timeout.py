"""
Timeout Guard
=============
Bounds the wall-clock duration of a single attempt.

A timed-out attempt is abandoned from the caller's point of view. In the
threaded path the worker keeps running and its late result is discarded; in
the async path the attempt task is cancelled.
"""

import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog

from .exceptions import AttemptTimeoutError, CallCancelledError
from .waiting import CancellationToken

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class TimeoutGuard:
    """
    Runs one attempt under a deadline.

    Each guard owns its worker pool, so attempts abandoned by one hung
    dependency never hold the threads another policy's attempts need.
    """

    def __init__(
        self,
        name: str,
        timeout: Optional[float] = None,
        max_workers: Optional[int] = None,
    ):
        self.name = name
        self.timeout = timeout
        self.max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()

    @property
    def executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers,
                    thread_name_prefix=f"resilience-{self.name}",
                )
            return self._executor

    def run(
        self,
        operation: Callable[[], T],
        token: Optional[CancellationToken] = None,
    ) -> T:
        """
        Execute `operation` on a worker thread and wait for it.

        Raises:
            AttemptTimeoutError: The deadline passed first
            CallCancelledError: The token was cancelled while waiting
        """
        if token is not None:
            token.raise_if_cancelled(self.name)
        if self.timeout is None:
            return operation()

        future = self.executor.submit(operation)
        wake = threading.Event()
        future.add_done_callback(lambda _: wake.set())
        unregister = token.register(wake.set) if token is not None else None
        try:
            wake.wait(self.timeout)
        finally:
            if unregister is not None:
                unregister()

        if future.done():
            return future.result()

        future.cancel()
        if token is not None and token.cancelled:
            raise CallCancelledError(self.name, token.reason)
        logger.warning("attempt_timed_out", policy=self.name, timeout=self.timeout)
        raise AttemptTimeoutError(self.name, self.timeout)

    async def run_async(self, operation: Callable[[], Awaitable[Any]]) -> Any:
        """Await `operation()` with a deadline."""
        if self.timeout is None:
            return await operation()

        task = asyncio.ensure_future(operation())
        try:
            done, _ = await asyncio.wait({task}, timeout=self.timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task in done:
            return task.result()

        task.cancel()
        logger.warning("attempt_timed_out", policy=self.name, timeout=self.timeout)
        raise AttemptTimeoutError(self.name, self.timeout)

    def shutdown(self, wait: bool = False) -> None:
        """Stop the worker pool. Abandoned attempts are only joined when `wait` is set."""
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)
