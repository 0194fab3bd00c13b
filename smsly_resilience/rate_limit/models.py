"""
Rate Limit Models
=================
Data models for rate limiting results.
"""

from typing import Optional
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitInfo:
    """Rate limit check result with quota information."""
    allowed: bool
    remaining: int
    limit: int
    reset_at: float  # Clock time the current window ends
    retry_after: Optional[float] = None  # Seconds until retry allowed
    window_start: float = 0.0
    admitted_at: float = 0.0
