"""Tests for request pacing and the cancellation token."""

import asyncio
import random
import time
from datetime import datetime, timezone

import pytest

from batch_scraper.core.cancellation import CancellationToken, ControlSignal
from batch_scraper.core.config import HealthConfig, ScraperConfig
from batch_scraper.core.health import HealthStatus
from batch_scraper.core.rate_gate import DailyBudget, RateGate, TokenBucket


def _gate(**overrides) -> RateGate:
    config = {
        "batch_size": 4,
        "concurrency_per_batch": 3,
        "batch_pause_ms": 1000,
        "batch_pause_jitter": 0.0,
        "item_delay_min_ms": 100,
        "item_delay_max_ms": 200,
        "max_per_hour": 0,
    }
    config.update(overrides)
    return RateGate(
        ScraperConfig(**config),
        HealthConfig(degraded_backoff_factor=2.0, unhealthy_backoff_factor=4.0),
        rng=random.Random(42),
    )


class TestRateGateDelays:
    """Tests for delay and concurrency decisions."""

    def test_item_delay_in_range(self) -> None:
        gate = _gate()

        for _ in range(50):
            assert 0.1 <= gate.item_delay() <= 0.2

    def test_batch_delay_scaled_by_health(self) -> None:
        gate = _gate()

        assert gate.batch_delay(HealthStatus.HEALTHY) == pytest.approx(1.0)
        assert gate.batch_delay(HealthStatus.DEGRADED) == pytest.approx(2.0)
        assert gate.batch_delay(HealthStatus.UNHEALTHY) == pytest.approx(4.0)

    def test_batch_delay_jitter_bounds(self) -> None:
        gate = _gate(batch_pause_jitter=0.2)

        for _ in range(50):
            assert 0.8 <= gate.batch_delay(HealthStatus.HEALTHY) <= 1.2

    def test_unhealthy_forces_single_worker(self) -> None:
        gate = _gate()

        assert gate.concurrency_for(HealthStatus.HEALTHY) == 3
        assert gate.concurrency_for(HealthStatus.DEGRADED) == 3
        assert gate.concurrency_for(HealthStatus.UNHEALTHY) == 1


class TestRateGateWaits:
    """Tests for interruptible waits."""

    @pytest.mark.asyncio
    async def test_wait_before_fetch_completes(self) -> None:
        gate = _gate(item_delay_min_ms=0, item_delay_max_ms=0)

        assert await gate.wait_before_fetch(CancellationToken()) is False

    @pytest.mark.asyncio
    async def test_wait_between_batches_interrupted_by_stop(self) -> None:
        gate = _gate(batch_pause_ms=60000)
        token = CancellationToken()

        async def stop_soon() -> None:
            await asyncio.sleep(0.01)
            token.request(ControlSignal.STOP)

        started = time.monotonic()
        stopper = asyncio.create_task(stop_soon())
        interrupted = await gate.wait_between_batches(HealthStatus.HEALTHY, token)
        await stopper

        assert interrupted is True
        assert time.monotonic() - started < 5

    @pytest.mark.asyncio
    async def test_hourly_budget_blocks_until_signal(self) -> None:
        gate = _gate(item_delay_min_ms=0, item_delay_max_ms=0, max_per_hour=1)
        token = CancellationToken()

        assert await gate.wait_before_fetch(token) is False

        async def pause_soon() -> None:
            await asyncio.sleep(0.01)
            token.request(ControlSignal.PAUSE)

        pauser = asyncio.create_task(pause_soon())
        # Second fetch would wait about an hour for a new token
        assert await gate.wait_before_fetch(token) is True
        await pauser

    @pytest.mark.asyncio
    async def test_daily_budget_blocks_until_signal(self) -> None:
        gate = _gate(item_delay_min_ms=0, item_delay_max_ms=0, max_per_day=1)
        token = CancellationToken()

        assert await gate.wait_before_fetch(token) is False
        assert gate.requests_today == 1

        async def stop_soon() -> None:
            await asyncio.sleep(0.01)
            token.request(ControlSignal.STOP)

        stopper = asyncio.create_task(stop_soon())
        # Second fetch would wait for the next daily reset
        assert await gate.wait_before_fetch(token) is True
        await stopper
        assert gate.requests_today == 1

    def test_daily_budget_disabled(self) -> None:
        gate = _gate(max_per_day=0)

        assert gate.requests_today == 0


class TestDailyBudget:
    """Tests for the daily request allowance."""

    def test_consume_until_limit(self) -> None:
        budget = DailyBudget(limit=2, reset_hour_utc=5)
        now = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)

        assert budget.try_consume(now) == 0.0
        assert budget.try_consume(now) == 0.0
        # Next reset is 05:00 UTC the following day
        assert budget.try_consume(now) == 17 * 3600
        assert budget.used(now) == 2

    def test_before_reset_hour_belongs_to_previous_window(self) -> None:
        budget = DailyBudget(limit=1, reset_hour_utc=5)
        evening = datetime(2025, 3, 10, 23, 0, tzinfo=timezone.utc)
        early = datetime(2025, 3, 11, 4, 30, tzinfo=timezone.utc)

        assert budget.try_consume(evening) == 0.0
        assert budget.try_consume(early) == 30 * 60

    def test_count_starts_over_after_reset(self) -> None:
        budget = DailyBudget(limit=1, reset_hour_utc=5)
        before = datetime(2025, 3, 11, 4, 59, tzinfo=timezone.utc)
        after = datetime(2025, 3, 11, 5, 0, tzinfo=timezone.utc)

        assert budget.try_consume(before) == 0.0
        assert budget.used(after) == 0
        assert budget.try_consume(after) == 0.0
        assert budget.used(after) == 1


class TestTokenBucket:
    """Tests for the hourly token bucket."""

    def test_consume_until_empty(self) -> None:
        bucket = TokenBucket(capacity=2, refill_rate=1 / 3600)

        assert bucket.try_consume() == 0.0
        assert bucket.try_consume() == 0.0
        wait = bucket.try_consume()

        assert 3000 < wait <= 3600


class TestCancellationToken:
    """Tests for cooperative cancellation."""

    def test_stop_wins_over_pause(self) -> None:
        token = CancellationToken()
        token.request(ControlSignal.STOP)
        token.request(ControlSignal.PAUSE)

        assert token.signal == ControlSignal.STOP

    def test_pause_upgrades_to_stop(self) -> None:
        token = CancellationToken()
        token.request(ControlSignal.PAUSE)
        token.request(ControlSignal.STOP)

        assert token.signal == ControlSignal.STOP

    def test_child_inherits_parent_signal(self) -> None:
        parent = CancellationToken()
        child = parent.child()

        parent.request(ControlSignal.PAUSE)

        assert child.cancelled
        assert child.signal == ControlSignal.PAUSE

    def test_child_signal_does_not_reach_parent(self) -> None:
        parent = CancellationToken()
        child = parent.child()

        child.request(ControlSignal.STOP)

        assert child.cancelled
        assert not parent.cancelled

    @pytest.mark.asyncio
    async def test_sleep_returns_immediately_when_cancelled(self) -> None:
        token = CancellationToken()
        token.request(ControlSignal.STOP)

        assert await token.sleep(60) is True

    @pytest.mark.asyncio
    async def test_sleep_runs_to_completion(self) -> None:
        token = CancellationToken()

        assert await token.sleep(0.01) is False
        assert await token.sleep(0) is False

    @pytest.mark.asyncio
    async def test_child_sleep_woken_by_parent(self) -> None:
        parent = CancellationToken()
        child = parent.child()

        async def stop_soon() -> None:
            await asyncio.sleep(0.01)
            parent.request(ControlSignal.STOP)

        stopper = asyncio.create_task(stop_soon())
        assert await child.sleep(60) is True
        await stopper
