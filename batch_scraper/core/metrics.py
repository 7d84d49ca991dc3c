"""Prometheus metrics collection for the batch scraper.

This module defines and manages Prometheus metrics for monitoring
fetch outcomes, batch throughput, job progress and upstream health.
"""

from typing import Mapping

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
app_info = Info("batch_scraper", "Batch scraper application information")

# HTTP request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)

# Fetch metrics
fetches_total = Counter(
    "scraper_fetches_total",
    "Total product fetches by outcome",
    ["fetcher", "outcome"],
)

fetch_duration_seconds = Histogram(
    "scraper_fetch_duration_seconds",
    "Product fetch duration in seconds",
    ["fetcher"],
    buckets=[0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
)

# Batch metrics
batches_total = Counter(
    "scraper_batches_total",
    "Total batches executed",
)

batch_duration_seconds = Histogram(
    "scraper_batch_duration_seconds",
    "Batch duration in seconds including pacing delays",
    buckets=[1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0],
)

# Job metrics
job_items = Gauge(
    "scraper_job_items",
    "Items of the current job by status",
    ["status"],
)

job_transitions_total = Counter(
    "scraper_job_transitions_total",
    "Job status transitions by target status",
    ["status"],
)

checkpoint_failures_total = Counter(
    "scraper_checkpoint_failures_total",
    "Failed checkpoint write attempts",
)

# Health metrics
HEALTH_STATUS_VALUES = {"healthy": 0, "degraded": 1, "unhealthy": 2}

health_status = Gauge(
    "scraper_health_status",
    "Upstream health (0=healthy, 1=degraded, 2=unhealthy)",
)


class MetricsCollector:
    """Centralized metrics collection and update helper.

    Provides static methods for recording various metrics throughout
    the application in a consistent manner.
    """

    @staticmethod
    def record_request(
        method: str,
        endpoint: str,
        status: int,
        duration: float,
    ) -> None:
        """Record HTTP request metrics.

        Args:
            method: HTTP method (GET, POST, etc.).
            endpoint: Normalized endpoint path.
            status: HTTP response status code.
            duration: Request duration in seconds.
        """
        http_requests_total.labels(
            method=method,
            endpoint=endpoint,
            status=str(status),
        ).inc()
        http_request_duration_seconds.labels(
            method=method,
            endpoint=endpoint,
        ).observe(duration)

    @staticmethod
    def record_fetch(fetcher: str, outcome: str, duration: float) -> None:
        """Record a single fetch.

        Args:
            fetcher: Fetcher name (e.g., 'amazon').
            outcome: 'success', 'skipped' or a FetchErrorKind value.
            duration: Fetch duration in seconds.
        """
        fetches_total.labels(fetcher=fetcher, outcome=outcome).inc()
        fetch_duration_seconds.labels(fetcher=fetcher).observe(duration)

    @staticmethod
    def record_batch(duration: float) -> None:
        batches_total.inc()
        batch_duration_seconds.observe(duration)

    @staticmethod
    def update_job_items(counts: Mapping[str, int]) -> None:
        """Update per-status item gauges from a JobCounts dictionary."""
        for status, value in counts.items():
            if status != "total":
                job_items.labels(status=status).set(value)

    @staticmethod
    def record_job_transition(status: str) -> None:
        job_transitions_total.labels(status=status).inc()

    @staticmethod
    def record_checkpoint_failure() -> None:
        checkpoint_failures_total.inc()

    @staticmethod
    def update_health_status(status: str) -> None:
        health_status.set(HEALTH_STATUS_VALUES.get(status, 0))


def initialize_metrics(version: str) -> None:
    """Initialize application metrics with version information.

    Should be called during application startup.

    Args:
        version: Application version string.
    """
    app_info.info({"version": version})
