"""
Metrics Collection with Prometheus.

Exposes generation pipeline and HTTP metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from app.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    OUTCOME = "outcome"
    ERROR_TYPE = "error_type"
    STEP = "step"


class GenerationMetrics:
    """
    Centralized metrics for the generation API.

    Covers:
    - HTTP requests (rate, duration, errors)
    - Generation outcomes per endpoint
    - Credits reserved and refunded
    - Compensation step failures
    - Rate limiter denials and degraded mode
    - Backend call latency
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "generation_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "generation_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "generation_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
        )

        self.http_requests_in_progress = Gauge(
            "generation_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.METHOD],
        )

        # ====================================================================
        # Pipeline Metrics
        # ====================================================================
        self.generations_total = Counter(
            "generation_requests_total",
            "Generation requests by terminal outcome",
            [MetricLabels.ENDPOINT, MetricLabels.OUTCOME],
        )

        self.backend_duration_seconds = Histogram(
            "generation_backend_duration_seconds",
            "Generation backend call duration in seconds",
            [MetricLabels.OPERATION],
            buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0),
        )

        # ====================================================================
        # Credit Metrics
        # ====================================================================
        self.credits_reserved_total = Counter(
            "generation_credits_reserved_total",
            "Credits debited by reservations",
            [MetricLabels.ENDPOINT],
        )

        self.credits_refunded_total = Counter(
            "generation_credits_refunded_total",
            "Credits returned by compensation",
            [MetricLabels.ENDPOINT],
        )

        self.compensation_failures_total = Counter(
            "generation_compensation_failures_total",
            "Compensation steps that failed and need reconciliation",
            [MetricLabels.STEP],
        )

        # ====================================================================
        # Rate Limiter Metrics
        # ====================================================================
        self.rate_limit_denials_total = Counter(
            "generation_rate_limit_denials_total",
            "Requests rejected by the rate limiter",
        )

        self.rate_limiter_degraded_total = Counter(
            "generation_rate_limiter_degraded_total",
            "Admission checks that failed open because the limiter store was unavailable",
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "generation_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_generation(self, endpoint: str, outcome: str) -> None:
        """Record a terminal pipeline outcome (success or an error class name)."""
        self.generations_total.labels(endpoint=endpoint, outcome=outcome).inc()

    def record_backend_call(self, operation: str, duration: float) -> None:
        """Record backend call latency."""
        self.backend_duration_seconds.labels(operation=operation).observe(duration)

    def record_reservation(self, endpoint: str, amount: int) -> None:
        """Record credits debited."""
        self.credits_reserved_total.labels(endpoint=endpoint).inc(amount)

    def record_refund(self, endpoint: str, amount: int) -> None:
        """Record credits returned."""
        self.credits_refunded_total.labels(endpoint=endpoint).inc(amount)

    def record_compensation_failure(self, step: str) -> None:
        """Record a compensation step that could not complete."""
        self.compensation_failures_total.labels(step=step).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = GenerationMetrics()
