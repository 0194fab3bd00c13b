"""
Policy Registry
===============
Process-wide store of named policy instances.

One registry is constructed at startup and handed to every caller; there is
no module-level registry. Instances are created on first reference and live
until the registry is shut down.
"""

import threading
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import structlog

from .config import PolicyConfig
from .pipeline import Fallback, PolicyInstance, PolicySnapshot
from .waiting import CancellationToken

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class PolicyRegistry:
    """
    Registry of policy instances keyed by dependency name.

    Example:
        registry = PolicyRegistry()
        registry.configure("forecast", PolicyConfig(timeout=2.0, max_attempts=3))

        data = registry.execute(
            "forecast",
            lambda: client.get_forecast(city),
            fallback=lambda exc: cached_forecast(city),
        )
    """

    def __init__(
        self,
        default_config: Optional[PolicyConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        max_workers: Optional[int] = None,
    ):
        """
        Args:
            default_config: Config for instances created on first reference
            clock: Monotonic time source shared by all instances
            max_workers: Size of each policy's own timeout worker pool
        """
        self.default_config = default_config or PolicyConfig()
        self._clock = clock
        self._instances: Dict[str, PolicyInstance] = {}
        self._lock = threading.Lock()
        self._max_workers = max_workers

    def _create(self, name: str, config: PolicyConfig) -> PolicyInstance:
        logger.info("policy_registered", policy=name)
        return PolicyInstance(name, config, clock=self._clock, max_workers=self._max_workers)

    def get(self, name: str) -> PolicyInstance:
        """Get or create the instance for `name`."""
        instance = self._instances.get(name)
        if instance is None:
            with self._lock:
                instance = self._instances.get(name)
                if instance is None:
                    instance = self._create(name, self.default_config)
                    self._instances[name] = instance
        return instance

    def configure(
        self,
        name: str,
        config: PolicyConfig,
        reset: bool = False,
    ) -> PolicyInstance:
        """
        Register a policy or hot-update its configuration.

        Existing state survives the update unless `reset` is set. Applying
        an equal config is a no-op.
        """
        with self._lock:
            instance = self._instances.get(name)
            if instance is None:
                instance = self._create(name, config)
                self._instances[name] = instance
                return instance
        instance.reconfigure(config)
        if reset:
            instance.reset()
        return instance

    def execute(
        self,
        name: str,
        operation: Callable[[], T],
        fallback: Optional[Fallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> T:
        """Run `operation` through the named policy on the calling thread."""
        return self.get(name).execute(operation, fallback=fallback, token=cancel_token)

    async def execute_async(
        self,
        name: str,
        operation: Callable[[], Awaitable[Any]],
        fallback: Optional[Fallback] = None,
    ) -> Any:
        """Await `operation()` through the named policy."""
        return await self.get(name).execute_async(operation, fallback=fallback)

    def get_state(self, name: str) -> PolicySnapshot:
        return self.get(name).snapshot()

    def get_all_states(self) -> Dict[str, PolicySnapshot]:
        return {name: instance.snapshot() for name, instance in self.instances().items()}

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._instances)

    def instances(self) -> Dict[str, PolicyInstance]:
        with self._lock:
            return dict(self._instances)

    def reset(self, name: str) -> None:
        """Reset a policy's breaker to closed state (for testing/admin)."""
        instance = self._instances.get(name)
        if instance is not None:
            instance.reset()

    def reset_all(self) -> None:
        for instance in self.instances().values():
            instance.reset()

    def shutdown(self, wait: bool = False) -> None:
        """Stop every policy's timeout worker pool. Abandoned attempts are not joined by default."""
        for instance in self.instances().values():
            instance.shutdown(wait=wait)
