"""Rolling-window health tracking for the upstream product source.

The status is a pure function of the outcome window plus a consecutive
failure short circuit, so a sudden total outage is caught before the window
fills with failures.
"""

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, Optional

import structlog

from batch_scraper.core.config import HealthConfig
from batch_scraper.core.metrics import MetricsCollector

logger = structlog.get_logger(__name__)


class HealthStatus(str, Enum):
    """Derived upstream health."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass(frozen=True)
class ScraperHealth:
    """Read-only health snapshot exposed to dashboards."""

    status: HealthStatus
    consecutive_failures: int
    window_size: int
    window_failure_rate: float
    last_success_at: Optional[datetime]
    last_failure_at: Optional[datetime]
    rate_limited_total: int
    last_rate_limited_at: Optional[datetime]
    # Daily budget usage, filled in by the job controller
    requests_today: int = 0
    max_per_day: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "consecutive_failures": self.consecutive_failures,
            "window_size": self.window_size,
            "window_failure_rate": round(self.window_failure_rate, 4),
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
            "last_failure_at": self.last_failure_at.isoformat() if self.last_failure_at else None,
            "rate_limited_total": self.rate_limited_total,
            "last_rate_limited_at": (
                self.last_rate_limited_at.isoformat() if self.last_rate_limited_at else None
            ),
            "requests_today": self.requests_today,
            "max_per_day": self.max_per_day,
        }


class HealthMonitor:
    """Tracks fetch outcomes and derives a health status.

    Only the batch runner records outcomes; everything else reads
    snapshots.
    """

    def __init__(self, config: Optional[HealthConfig] = None) -> None:
        self.config = config or HealthConfig()
        self._window: Deque[bool] = deque(maxlen=self.config.window_size)
        self._consecutive_failures = 0
        self._last_success_at: Optional[datetime] = None
        self._last_failure_at: Optional[datetime] = None
        self._rate_limited_total = 0
        self._last_rate_limited_at: Optional[datetime] = None
        self._last_status = HealthStatus.HEALTHY

    def record_success(self) -> HealthStatus:
        self._window.append(True)
        self._consecutive_failures = 0
        self._last_success_at = datetime.now(timezone.utc)
        return self._refresh()

    def record_failure(self, rate_limited: bool = False) -> HealthStatus:
        now = datetime.now(timezone.utc)
        self._window.append(False)
        self._consecutive_failures += 1
        self._last_failure_at = now
        if rate_limited:
            self._rate_limited_total += 1
            self._last_rate_limited_at = now
        return self._refresh()

    @property
    def window_failure_rate(self) -> float:
        if not self._window:
            return 0.0
        failures = sum(1 for ok in self._window if not ok)
        return failures / len(self._window)

    def status(self) -> HealthStatus:
        """Compute the current status without side effects."""
        if self._consecutive_failures >= self.config.max_consecutive_failures:
            return HealthStatus.UNHEALTHY

        rate = self.window_failure_rate
        if rate >= self.config.unhealthy_threshold:
            return HealthStatus.UNHEALTHY
        if rate >= self.config.degraded_threshold:
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY

    def snapshot(self) -> ScraperHealth:
        return ScraperHealth(
            status=self.status(),
            consecutive_failures=self._consecutive_failures,
            window_size=len(self._window),
            window_failure_rate=self.window_failure_rate,
            last_success_at=self._last_success_at,
            last_failure_at=self._last_failure_at,
            rate_limited_total=self._rate_limited_total,
            last_rate_limited_at=self._last_rate_limited_at,
        )

    def _refresh(self) -> HealthStatus:
        status = self.status()
        if status != self._last_status:
            log = logger.warning if status != HealthStatus.HEALTHY else logger.info
            log(
                "scraper_health_changed",
                old_status=self._last_status.value,
                new_status=status.value,
                consecutive_failures=self._consecutive_failures,
                window_failure_rate=round(self.window_failure_rate, 4),
            )
            self._last_status = status
            MetricsCollector.update_health_status(status.value)
        return status
