"""Prometheus metrics for relay observability.

Metrics are exposed at the `/metrics` endpoint in Prometheus format.

Metrics Defined:
- relay_webhooks_received_total: Counter of POSTed webhooks per provider
- relay_webhooks_failed_total: Counter of rejected webhooks per provider
  and failure kind
- relay_jobs_triggered_total: Counter of build jobs triggered per provider
- relay_webhook_duration_seconds: Histogram of end-to-end handling time
"""

from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


# Webhook handling is dominated by the callback and Jenkins round-trips
DEFAULT_DURATION_BUCKETS = (
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    30.0,
    60.0,
)


class RelayMetrics:
    """Container for all relay Prometheus metrics.

    Supports custom registries so tests can create isolated instances.

    Example:
        >>> metrics = RelayMetrics(registry=CollectorRegistry())
        >>> metrics.record_received("dockerhub")
        >>> metrics.record_failed("dockerhub", "unauthorized")
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.webhooks_received_total = Counter(
            "relay_webhooks_received_total",
            "Total number of webhooks received",
            labelnames=["provider"],
            registry=self.registry,
        )

        self.webhooks_failed_total = Counter(
            "relay_webhooks_failed_total",
            "Total number of webhooks rejected or failed",
            labelnames=["provider", "kind"],
            registry=self.registry,
        )

        self.jobs_triggered_total = Counter(
            "relay_jobs_triggered_total",
            "Total number of build jobs triggered",
            labelnames=["provider"],
            registry=self.registry,
        )

        self.webhook_duration_seconds = Histogram(
            "relay_webhook_duration_seconds",
            "Time spent handling webhooks in seconds",
            labelnames=["provider"],
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

    def record_received(self, provider: str) -> None:
        self.webhooks_received_total.labels(provider=provider).inc()

    def record_failed(self, provider: str, kind: str) -> None:
        self.webhooks_failed_total.labels(provider=provider, kind=kind).inc()

    def record_triggered(self, provider: str) -> None:
        self.jobs_triggered_total.labels(provider=provider).inc()

    def record_duration(self, provider: str, duration_seconds: float) -> None:
        self.webhook_duration_seconds.labels(provider=provider).observe(
            duration_seconds
        )


# Global metrics instance for the default registry
_default_metrics: Optional[RelayMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> RelayMetrics:
    """Get the global metrics instance, or a new one for a custom registry.

    Prometheus rejects duplicate metric names within a registry, so the
    default registry is only ever populated once.
    """
    global _default_metrics

    if registry is not None:
        return RelayMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = RelayMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Generate Prometheus text output for the /metrics endpoint."""
    return generate_latest(registry or REGISTRY)
