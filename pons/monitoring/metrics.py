"""
Prometheus Metrics

Defines and exports metrics for monitoring sync cycles and rate limiting.
"""

import structlog
from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

logger = structlog.get_logger()

# Singleton metrics instance
_metrics: "Metrics | None" = None


class Metrics:
    """
    Prometheus metrics for the sync core.

    Tracks:
    - Sync cycles by outcome and duration
    - Per-adapter sync attempts
    - Rate limit denials
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """Initialize Prometheus metrics on `registry` (default: global registry)."""
        registry = registry if registry is not None else REGISTRY

        self.sync_cycles_total = Counter(
            "pons_sync_cycles_total",
            "Total sync cycles by outcome",
            ["result"],
            registry=registry,
        )

        self.sync_cycle_duration_seconds = Histogram(
            "pons_sync_cycle_duration_seconds",
            "Sync cycle duration in seconds",
            buckets=[0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0, 600.0],
            registry=registry,
        )

        self.adapter_sync_attempts_total = Counter(
            "pons_adapter_sync_attempts_total",
            "Adapter sync attempts by provider and outcome",
            ["provider", "outcome"],
            registry=registry,
        )

        self.last_cycle_timestamp_seconds = Gauge(
            "pons_sync_last_cycle_timestamp_seconds",
            "Unix timestamp of the last completed sync cycle",
            registry=registry,
        )

        self.rate_limit_denials_total = Counter(
            "pons_rate_limit_denials_total",
            "Outbound calls denied by the rate limiter",
            ["key"],
            registry=registry,
        )

        logger.debug("Prometheus metrics initialized")

    def track_sync_cycle(self, result: str, duration: float, finished_at: float) -> None:
        """Track a completed sync cycle."""
        self.sync_cycles_total.labels(result=result).inc()
        self.sync_cycle_duration_seconds.observe(duration)
        self.last_cycle_timestamp_seconds.set(finished_at)

    def track_adapter_attempt(self, provider: str, success: bool) -> None:
        self.adapter_sync_attempts_total.labels(
            provider=provider,
            outcome="success" if success else "failure",
        ).inc()

    def track_rate_limit_denial(self, key: str) -> None:
        self.rate_limit_denials_total.labels(key=key).inc()


def get_metrics() -> Metrics:
    """Get or create the singleton metrics instance."""
    global _metrics
    if _metrics is None:
        _metrics = Metrics()
    return _metrics
