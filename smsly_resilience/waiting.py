"""
Cancellable Waits
=================
Wait primitives shared by the timeout guard and the retry backoff.

Threads wait on a CancellationToken; asyncio tasks are cancelled the normal
way, so the async variant is a plain asyncio.sleep.
"""

import asyncio
import threading
import time
from typing import Callable, List, Optional

from .exceptions import CallCancelledError


class CancellationToken:
    """
    Thread-safe cancellation signal for one logical call.

    Example:
        token = CancellationToken()
        threading.Timer(5.0, token.cancel).start()
        registry.execute("forecast", fetch, cancel_token=token)
    """

    def __init__(self):
        self._event = threading.Event()
        self._callbacks: List[Callable[[], None]] = []
        self._lock = threading.Lock()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: Optional[str] = None) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Run `callback` on cancellation (immediately if already cancelled).

        Returns a function that unregisters the callback.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._unregister(callback)
        callback()
        return lambda: None

    def _unregister(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def raise_if_cancelled(self, policy: str = "unknown") -> None:
        if self._event.is_set():
            raise CallCancelledError(policy, self.reason)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or timeout. Returns True if cancelled."""
        return self._event.wait(timeout)


def wait(delay: float, token: Optional[CancellationToken] = None, policy: str = "unknown") -> None:
    """
    Sleep for `delay` seconds, waking early if the token is cancelled.

    Raises:
        CallCancelledError: If the token was cancelled before or during the wait
    """
    if token is None:
        time.sleep(delay)
        return
    if token.wait(delay):
        raise CallCancelledError(policy, token.reason)


async def wait_async(delay: float) -> None:
    """Suspend the current task; task cancellation interrupts the wait."""
    await asyncio.sleep(delay)
