"""
Monitoring Module

Provides Prometheus metrics for the sync core.
"""

from pons.monitoring.metrics import Metrics, get_metrics

__all__ = [
    "Metrics",
    "get_metrics",
]
