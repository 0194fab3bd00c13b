"""
Rate Limiting
=============
Fixed and sliding window admission limiters for policy instances.
"""

import time
from typing import Callable, Optional, Union

from ..config import PolicyConfig
from .models import RateLimitInfo
from .fixed_window import FixedWindowRateLimiter
from .sliding_window import SlidingWindowRateLimiter

RateLimiter = Union[FixedWindowRateLimiter, SlidingWindowRateLimiter]


def create_rate_limiter(
    config: PolicyConfig,
    clock: Callable[[], float] = time.monotonic,
) -> Optional[RateLimiter]:
    """Build the limiter a config asks for, or None when rate limiting is off."""
    if config.rate_limit_permits is None:
        return None
    if config.rate_limit_window == "sliding":
        return SlidingWindowRateLimiter(
            config.rate_limit_permits, config.rate_limit_period, clock=clock
        )
    return FixedWindowRateLimiter(
        config.rate_limit_permits, config.rate_limit_period, clock=clock
    )


__all__ = [
    # Models
    "RateLimitInfo",
    # Limiters
    "FixedWindowRateLimiter",
    "SlidingWindowRateLimiter",
    "RateLimiter",
    "create_rate_limiter",
]
