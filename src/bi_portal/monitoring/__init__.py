"""
Monitoring module for metrics and observability.
"""

from .prometheus_metrics import (
    PrometheusMetrics,
    MetricsMiddleware,
    get_metrics,
    metrics_endpoint,
)
from .sentry_config import setup_sentry

__all__ = [
    "PrometheusMetrics",
    "MetricsMiddleware",
    "get_metrics",
    "metrics_endpoint",
    "setup_sentry",
]
