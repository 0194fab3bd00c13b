"""
Policy Decorator
================
Decorator for wrapping sync or async functions with a named policy.
"""

import inspect
from functools import wraps
from typing import Callable, Optional

from .pipeline import Fallback
from .registry import PolicyRegistry


def resilient(
    registry: PolicyRegistry,
    name: str,
    fallback: Optional[Fallback] = None,
):
    """
    Decorator to run a function through the named policy.

    Example:
        @resilient(registry, "forecast")
        async def get_forecast(city: str):
            return await weather_client.forecast(city)

        @resilient(registry, "alerts", fallback=lambda exc: [])
        def get_alerts(region: str):
            return alerts_client.list(region)
    """
    def decorator(func: Callable) -> Callable:
        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                return await registry.execute_async(
                    name,
                    lambda: func(*args, **kwargs),
                    fallback=fallback,
                )
            return async_wrapper

        @wraps(func)
        def wrapper(*args, **kwargs):
            return registry.execute(
                name,
                lambda: func(*args, **kwargs),
                fallback=fallback,
            )
        return wrapper

    return decorator
