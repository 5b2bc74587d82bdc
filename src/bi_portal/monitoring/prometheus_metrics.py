"""
Prometheus metrics for monitoring access decisions and service performance.

Metrics exported:
- bi_portal_requests_total: Total HTTP requests
- bi_portal_request_duration_seconds: Request duration histogram
- bi_portal_access_decisions_total: Guard outcomes by state and reason
- bi_portal_snapshot_resolution_seconds: Subscription status resolution time
- bi_portal_fetch_failures_total: Upstream reads that failed or timed out
- bi_portal_errors_total: Total errors
- bi_portal_active_sessions: Number of open access sessions
"""

import re
import time
import logging
from typing import Optional

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    generate_latest,
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
)
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class PrometheusMetrics:
    """
    Prometheus metrics collector for the BI Portal.

    Tracks:
    - HTTP request metrics (rate, duration, status codes)
    - Access guard outcomes
    - Subscription status resolution latency and failures
    - Role cache efficiency
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize Prometheus metrics.

        Args:
            registry: Prometheus registry (optional, uses default if not provided)
        """
        self.registry = registry
        kwargs = {"registry": registry} if registry is not None else {}

        # HTTP request metrics
        self.requests_total = Counter(
            "bi_portal_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            **kwargs,
        )

        self.request_duration = Histogram(
            "bi_portal_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0],
            **kwargs,
        )

        # Access engine metrics
        self.access_decisions_total = Counter(
            "bi_portal_access_decisions_total",
            "Route guard decisions",
            ["state", "reason"],
            **kwargs,
        )

        self.snapshot_resolution = Histogram(
            "bi_portal_snapshot_resolution_seconds",
            "Subscription status resolution duration in seconds",
            ["outcome"],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0],
            **kwargs,
        )

        self.fetch_failures_total = Counter(
            "bi_portal_fetch_failures_total",
            "Upstream reads that failed or timed out",
            ["source"],
            **kwargs,
        )

        # Error metrics
        self.errors_total = Counter(
            "bi_portal_errors_total",
            "Total errors",
            ["error_type", "endpoint"],
            **kwargs,
        )

        self.active_sessions = Gauge(
            "bi_portal_active_sessions",
            "Number of open access sessions",
            **kwargs,
        )

        # Cache metrics
        self.cache_hits = Counter(
            "bi_portal_cache_hits_total",
            "Total cache hits",
            ["cache_key"],
            **kwargs,
        )

        self.cache_misses = Counter(
            "bi_portal_cache_misses_total",
            "Total cache misses",
            ["cache_key"],
            **kwargs,
        )

        logger.info("Prometheus metrics initialized")

    def track_request(
        self,
        method: str,
        endpoint: str,
        status_code: int,
        duration: float,
    ):
        """
        Track HTTP request metrics.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: Request endpoint path
            status_code: HTTP status code
            duration: Request duration in seconds
        """
        self.requests_total.labels(
            method=method,
            endpoint=endpoint,
            status_code=status_code,
        ).inc()

        self.request_duration.labels(
            method=method,
            endpoint=endpoint,
        ).observe(duration)

    def track_decision(self, state: str, reason: Optional[str] = None):
        """Track a final guard decision."""
        self.access_decisions_total.labels(
            state=state,
            reason=reason or "none",
        ).inc()

    def track_snapshot_resolution(self, duration: float, outcome: str):
        """
        Track subscription status resolution.

        Args:
            duration: Resolution duration in seconds
            outcome: resolved, unavailable or cancelled
        """
        self.snapshot_resolution.labels(outcome=outcome).observe(duration)

    def track_fetch_failure(self, source: str):
        """Track an upstream read that could not complete."""
        self.fetch_failures_total.labels(source=source).inc()

    def track_error(self, error_type: str, endpoint: str):
        """
        Track error occurrence.

        Args:
            error_type: Type of error (FetchFailure, AuthenticationError, etc.)
            endpoint: Endpoint where error occurred
        """
        self.errors_total.labels(
            error_type=error_type,
            endpoint=endpoint,
        ).inc()

    def set_active_sessions(self, count: int):
        """Update open session count."""
        self.active_sessions.set(count)

    def track_cache_hit(self, cache_key: str):
        """Track cache hit."""
        self.cache_hits.labels(cache_key=cache_key).inc()

    def track_cache_miss(self, cache_key: str):
        """Track cache miss."""
        self.cache_misses.labels(cache_key=cache_key).inc()


# Global metrics instance
_metrics: Optional[PrometheusMetrics] = None


def get_metrics() -> PrometheusMetrics:
    """
    Get global metrics instance.

    Returns:
        PrometheusMetrics instance
    """
    global _metrics
    if _metrics is None:
        _metrics = PrometheusMetrics()
    return _metrics


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    FastAPI middleware for automatic request metrics collection.

    Tracks all HTTP requests and adds metrics to Prometheus.
    """

    def __init__(self, app):
        """Initialize metrics middleware."""
        super().__init__(app)
        self.metrics = get_metrics()
        logger.info("Metrics middleware initialized")

    async def dispatch(self, request: Request, call_next):
        """
        Process request and track metrics.

        Args:
            request: FastAPI request
            call_next: Next middleware/route handler

        Returns:
            Response with metrics tracked
        """
        # Skip metrics endpoint itself
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.time()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as e:
            self.metrics.track_error(type(e).__name__, request.url.path)
            raise
        finally:
            self.metrics.track_request(
                method=request.method,
                endpoint=self._normalize_endpoint(request.url.path),
                status_code=status_code,
                duration=time.time() - start_time,
            )

        return response

    def _normalize_endpoint(self, path: str) -> str:
        """
        Normalize endpoint path for metrics labels.

        Replaces UUIDs, numeric IDs and feature keys with placeholders to
        prevent high cardinality.
        """
        path = re.sub(
            r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}',
            '{uuid}',
            path,
            flags=re.IGNORECASE
        )
        path = re.sub(r'/\d+', '/{id}', path)
        path = re.sub(r'(/access/features/)[^/]+', r'\1{feature_key}', path)

        return path


async def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint handler.

    Returns:
        Response with Prometheus metrics in text format
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
