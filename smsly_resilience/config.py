"""
Policy Configuration
====================
Immutable per-policy configuration, loadable from the environment.
"""

import os
from typing import Any, Dict, Literal, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field

# Variables read by PolicyConfig.from_env(), e.g. FORECAST_RING_BUFFER_SIZE
ENV_FIELDS = (
    "ring_buffer_size",
    "minimum_number_of_calls",
    "failure_rate_threshold",
    "slow_call_rate_threshold",
    "slow_call_duration",
    "wait_duration_in_open_state",
    "permitted_calls_in_half_open_state",
    "timeout",
    "max_attempts",
    "backoff_base_delay",
    "backoff_multiplier",
    "backoff_max_delay",
    "backoff_jitter",
    "rate_limit_permits",
    "rate_limit_period",
    "rate_limit_window",
    "bulkhead_max_concurrent",
)


class PolicyConfig(BaseModel):
    """Configuration for one named policy instance."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Circuit breaker
    ring_buffer_size: int = Field(default=100, ge=1)
    minimum_number_of_calls: int = Field(default=100, ge=1)
    failure_rate_threshold: float = Field(default=50.0, gt=0.0, le=100.0)
    slow_call_rate_threshold: float = Field(default=100.0, gt=0.0, le=100.0)
    slow_call_duration: Optional[float] = Field(default=None, gt=0.0)
    wait_duration_in_open_state: float = Field(default=60.0, ge=0.0)
    permitted_calls_in_half_open_state: int = Field(default=10, ge=1)

    # Timeout guard
    timeout: Optional[float] = Field(default=None, gt=0.0)

    # Retry controller
    max_attempts: int = Field(default=3, ge=1)
    backoff_base_delay: float = Field(default=0.5, ge=0.0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    backoff_max_delay: Optional[float] = Field(default=30.0, ge=0.0)
    backoff_jitter: bool = False
    retry_exceptions: Tuple[Type[BaseException], ...] = (Exception,)
    ignored_exceptions: Tuple[Type[BaseException], ...] = ()

    # Rate limiter
    rate_limit_permits: Optional[int] = Field(default=None, ge=1)
    rate_limit_period: float = Field(default=1.0, gt=0.0)
    rate_limit_window: Literal["fixed", "sliding"] = "fixed"

    # Bulkhead
    bulkhead_max_concurrent: Optional[int] = Field(default=None, ge=1)

    @property
    def minimum_calls(self) -> int:
        """Minimum sample count, never larger than the ring itself."""
        return min(self.minimum_number_of_calls, self.ring_buffer_size)

    def with_overrides(self, **overrides: Any) -> "PolicyConfig":
        """Return a validated copy with the given fields replaced."""
        data = self.model_dump()
        data.update(overrides)
        return PolicyConfig(**data)

    @classmethod
    def from_env(cls, prefix: str, **defaults: Any) -> "PolicyConfig":
        """
        Build a config from environment variables.

        Args:
            prefix: Variable prefix, e.g. "FORECAST" reads FORECAST_TIMEOUT
            **defaults: Values used when a variable is not set

        Returns:
            Validated PolicyConfig
        """
        values: Dict[str, Any] = dict(defaults)
        for field_name in ENV_FIELDS:
            raw = os.getenv(f"{prefix.upper()}_{field_name.upper()}")
            if raw is None or raw == "":
                continue
            values[field_name] = None if raw.lower() == "none" else raw
        return cls(**values)


DEFAULT_CONFIG = PolicyConfig()
