"""
Shared fixtures for smsly-resilience tests.
"""

import pytest
import structlog

from smsly_resilience import PolicyConfig, PolicyRegistry


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    registry = PolicyRegistry(clock=clock)
    yield registry
    registry.shutdown()


@pytest.fixture
def fast_config():
    """No backoff waits, generous breaker window."""
    return PolicyConfig(backoff_base_delay=0.0)


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()
