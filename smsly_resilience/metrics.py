"""
Prometheus Metrics
==================
Publishes policy snapshots as Prometheus gauges.

The collector only reads `PolicyRegistry.get_all_states()` on scrape; it
never takes part in admission decisions.

Usage:
    from prometheus_client import CollectorRegistry, generate_latest

    metrics_registry = CollectorRegistry()
    metrics_registry.register(PolicyMetricsCollector(policy_registry))
    body = generate_latest(metrics_registry)
"""

from typing import Iterator

from prometheus_client.core import GaugeMetricFamily
from prometheus_client.registry import Collector

from .circuit_breaker import CircuitState
from .registry import PolicyRegistry

CIRCUIT_STATE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}


class PolicyMetricsCollector(Collector):
    """Custom collector yielding one sample per policy for each gauge."""

    def __init__(self, registry: PolicyRegistry, namespace: str = "resilience"):
        self.registry = registry
        self.namespace = namespace

    def collect(self) -> Iterator[GaugeMetricFamily]:
        circuit_state = GaugeMetricFamily(
            f"{self.namespace}_circuit_breaker_state",
            "Circuit breaker state (0=closed, 1=half-open, 2=open)",
            labels=["policy"],
        )
        failure_rate = GaugeMetricFamily(
            f"{self.namespace}_circuit_breaker_failure_rate",
            "Failure rate in percent over the outcome window (-1 = insufficient data)",
            labels=["policy"],
        )
        buffered = GaugeMetricFamily(
            f"{self.namespace}_circuit_breaker_buffered_calls",
            "Outcomes currently held in the outcome window",
            labels=["policy"],
        )
        in_flight = GaugeMetricFamily(
            f"{self.namespace}_bulkhead_in_flight",
            "Calls currently in flight",
            labels=["policy"],
        )
        permits = GaugeMetricFamily(
            f"{self.namespace}_rate_limiter_permits_remaining",
            "Permits left in the current rate limiter window",
            labels=["policy"],
        )

        for name, snapshot in self.registry.get_all_states().items():
            circuit_state.add_metric([name], CIRCUIT_STATE_VALUES[snapshot.circuit_state])
            rate = snapshot.failure_rate
            failure_rate.add_metric([name], rate if rate is not None else -1.0)
            buffered.add_metric([name], snapshot.buffered_calls)
            in_flight.add_metric([name], snapshot.in_flight)
            if snapshot.permits_remaining is not None:
                permits.add_metric([name], snapshot.permits_remaining)

        yield circuit_state
        yield failure_rate
        yield buffered
        yield in_flight
        yield permits
