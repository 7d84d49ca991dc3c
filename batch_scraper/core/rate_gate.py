"""Request pacing for the batch scraper.

This module decides how long to wait before each fetch and between batches,
and how much concurrency a batch may use given the current upstream health.
An optional hourly budget is enforced with a token bucket, and an optional
daily budget pauses fetching until the next daily reset.
"""

import random
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Optional

import structlog

from batch_scraper.core.cancellation import CancellationToken
from batch_scraper.core.config import HealthConfig, ScraperConfig
from batch_scraper.core.health import HealthStatus

logger = structlog.get_logger(__name__)


@dataclass
class TokenBucket:
    """Token bucket for rate limiting.

    Attributes:
        capacity: Maximum number of tokens (burst capacity)
        refill_rate: Tokens added per second
        tokens: Current token count
        last_refill: Timestamp of last refill
    """

    capacity: int
    refill_rate: float
    tokens: float = field(default=0.0)
    last_refill: float = field(default_factory=time.monotonic)

    def __post_init__(self) -> None:
        """Initialize tokens to capacity if not set."""
        if self.tokens == 0.0:
            self.tokens = float(self.capacity)

    def refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def try_consume(self) -> float:
        """Take one token if available.

        Returns:
            0.0 if a token was taken, otherwise seconds until one is available.
        """
        self.refill()
        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return 0.0
        return (1.0 - self.tokens) / self.refill_rate


@dataclass
class DailyBudget:
    """Fixed daily request allowance that resets at a set UTC hour.

    Attributes:
        limit: Requests allowed per day
        reset_hour_utc: Hour (UTC) at which the count starts over
        count: Requests taken in the current window
        window: First day of the current window (shifted by reset_hour_utc)
    """

    limit: int
    reset_hour_utc: int = 5
    count: int = 0
    window: Optional[date] = None

    def _window_for(self, now: datetime) -> date:
        return (now - timedelta(hours=self.reset_hour_utc)).date()

    def next_reset(self, now: datetime) -> datetime:
        window = self._window_for(now)
        start = datetime(
            window.year, window.month, window.day, self.reset_hour_utc, tzinfo=timezone.utc
        )
        return start + timedelta(days=1)

    def used(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        if self.window != self._window_for(now):
            return 0
        return self.count

    def try_consume(self, now: Optional[datetime] = None) -> float:
        """Take one request from today's allowance.

        Returns:
            0.0 if the request fits, otherwise seconds until the next reset.
        """
        now = now or datetime.now(timezone.utc)
        window = self._window_for(now)
        if window != self.window:
            self.window = window
            self.count = 0
        if self.count < self.limit:
            self.count += 1
            return 0.0
        return max((self.next_reset(now) - now).total_seconds(), 0.0)


class RateGate:
    """Pacing decisions for fetches and batches.

    Inter-item and inter-batch delays are randomized so request timing does
    not look automated. Degraded health stretches the inter-batch delay;
    unhealthy stretches it further and drops concurrency to one worker.
    The gate never stops a job on its own.
    """

    def __init__(
        self,
        scraper_config: Optional[ScraperConfig] = None,
        health_config: Optional[HealthConfig] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.scraper_config = scraper_config or ScraperConfig()
        self.health_config = health_config or HealthConfig()
        self._rng = rng or random.Random()
        self._hourly_bucket: Optional[TokenBucket] = None
        if self.scraper_config.max_per_hour > 0:
            self._hourly_bucket = TokenBucket(
                capacity=self.scraper_config.max_per_hour,
                refill_rate=self.scraper_config.max_per_hour / 3600.0,
            )
        self._daily_budget: Optional[DailyBudget] = None
        if self.scraper_config.max_per_day > 0:
            self._daily_budget = DailyBudget(
                limit=self.scraper_config.max_per_day,
                reset_hour_utc=self.scraper_config.daily_reset_hour_utc,
            )

    @property
    def requests_today(self) -> int:
        """Requests counted against the daily budget in the current window."""
        if self._daily_budget is None:
            return 0
        return self._daily_budget.used()

    def item_delay(self) -> float:
        """Seconds to wait before a single fetch."""
        low = self.scraper_config.item_delay_min_ms
        high = self.scraper_config.item_delay_max_ms
        return self._rng.uniform(low, high) / 1000.0

    def backoff_factor(self, status: HealthStatus) -> float:
        if status == HealthStatus.UNHEALTHY:
            return self.health_config.unhealthy_backoff_factor
        if status == HealthStatus.DEGRADED:
            return self.health_config.degraded_backoff_factor
        return 1.0

    def batch_delay(self, status: HealthStatus) -> float:
        """Seconds to wait between batches for the given health status."""
        base = self.scraper_config.batch_pause_ms / 1000.0
        jitter = self.scraper_config.batch_pause_jitter
        spread = self._rng.uniform(1.0 - jitter, 1.0 + jitter)
        return base * spread * self.backoff_factor(status)

    def concurrency_for(self, status: HealthStatus) -> int:
        if status == HealthStatus.UNHEALTHY:
            return 1
        return self.scraper_config.concurrency_per_batch

    async def wait_before_fetch(self, token: CancellationToken) -> bool:
        """Apply the daily and hourly budgets and the inter-item delay.

        Returns:
            True if the wait was interrupted by a pause/stop signal.
        """
        if self._daily_budget is not None:
            while True:
                wait = self._daily_budget.try_consume()
                if wait <= 0:
                    break
                logger.warning(
                    "daily_budget_exhausted",
                    limit=self._daily_budget.limit,
                    retry_after=round(wait, 1),
                )
                if await token.sleep(wait):
                    return True

        if self._hourly_bucket is not None:
            while True:
                wait = self._hourly_bucket.try_consume()
                if wait <= 0:
                    break
                logger.info("hourly_budget_exhausted", retry_after=round(wait, 1))
                if await token.sleep(wait):
                    return True

        return await token.sleep(self.item_delay())

    async def wait_between_batches(
        self, status: HealthStatus, token: CancellationToken
    ) -> bool:
        """Sleep the inter-batch delay.

        Returns:
            True if the wait was interrupted by a pause/stop signal.
        """
        delay = self.batch_delay(status)
        if status != HealthStatus.HEALTHY:
            logger.warning(
                "batch_backoff",
                health_status=status.value,
                delay_seconds=round(delay, 2),
                factor=self.backoff_factor(status),
            )
        else:
            logger.debug("batch_pause", delay_seconds=round(delay, 2))
        return await token.sleep(delay)
