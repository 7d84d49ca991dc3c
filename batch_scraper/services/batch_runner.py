"""Batch execution for the scraping job.

A batch claims up to ``batch_size`` pending items, fetches them with a
bounded worker pool and applies every outcome from a single aggregation
loop. Workers never touch the queue or the health monitor directly.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog

from batch_scraper.core.cancellation import CancellationToken, ControlSignal
from batch_scraper.core.config import ScraperConfig
from batch_scraper.core.health import HealthMonitor, HealthStatus
from batch_scraper.core.metrics import MetricsCollector
from batch_scraper.core.rate_gate import RateGate
from batch_scraper.models.product import ProductData
from batch_scraper.providers.base import Fetcher
from batch_scraper.providers.exceptions import FetchError, FetchErrorKind, NetworkError
from batch_scraper.services.exceptions import StoreError
from batch_scraper.services.item_queue import ItemQueue
from batch_scraper.services.job_store import JobStore

logger = structlog.get_logger(__name__)

OUT_OF_STOCK_REASON = "out of stock"


@dataclass
class BatchSummary:
    """Outcome of one batch."""

    batch_index: int
    claimed: int = 0
    succeeded: int = 0
    failed: int = 0
    retried: int = 0
    skipped: int = 0
    released: int = 0
    health_status: HealthStatus = HealthStatus.HEALTHY
    backoff_requested: bool = False
    systemic_error: Optional[FetchError] = None
    duration: float = 0.0
    # "ASIN: message" for every failed fetch or save, in completion order
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_index": self.batch_index,
            "claimed": self.claimed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "retried": self.retried,
            "skipped": self.skipped,
            "released": self.released,
            "health_status": self.health_status.value,
            "backoff_requested": self.backoff_requested,
            "systemic_error": str(self.systemic_error) if self.systemic_error else None,
            "duration": round(self.duration, 3),
            "errors": list(self.errors),
        }


@dataclass
class _FetchOutcome:
    asin: str
    started: bool = True
    product: Optional[ProductData] = None
    error: Optional[FetchError] = None
    duration: float = 0.0


class BatchRunner:
    """Runs single batches against a Fetcher.

    Handles the batch lifecycle:
    - Claim pending items in FIFO order
    - Fetch with at most ``concurrency_per_batch`` workers (1 while unhealthy)
    - Persist product results through the JobStore
    - Record each outcome to the HealthMonitor
    - Hand back unstarted items when a pause/stop signal arrives
    """

    def __init__(
        self,
        config: ScraperConfig,
        fetcher: Fetcher,
        store: JobStore,
        health: HealthMonitor,
        rate_gate: RateGate,
    ) -> None:
        self.config = config
        self.fetcher = fetcher
        self.store = store
        self.health = health
        self.rate_gate = rate_gate

    async def run_batch(
        self,
        queue: ItemQueue,
        token: CancellationToken,
        batch_index: int = 0,
    ) -> BatchSummary:
        """Run one batch.

        Args:
            queue: Queue over the job's items.
            token: Job-level cancellation token.
            batch_index: Index recorded in the summary and logs.

        Returns:
            BatchSummary describing what happened to the claimed items.
        """
        summary = BatchSummary(batch_index=batch_index)
        started = time.monotonic()

        claimed = queue.claim(self.config.batch_size)
        summary.claimed = len(claimed)
        if not claimed:
            summary.health_status = self.health.status()
            return summary

        concurrency = min(self.rate_gate.concurrency_for(self.health.status()), len(claimed))
        semaphore = asyncio.Semaphore(concurrency)
        batch_token = token.child()

        logger.info(
            "batch_started",
            batch_index=batch_index,
            claimed=len(claimed),
            concurrency=concurrency,
        )

        tasks: List[asyncio.Task] = [
            asyncio.create_task(self._fetch_one(item.asin, semaphore, batch_token))
            for item in claimed
        ]
        try:
            for next_done in asyncio.as_completed(tasks):
                outcome = await next_done
                await self._apply(queue, outcome, summary, batch_token)
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        summary.health_status = self.health.status()
        summary.backoff_requested = summary.health_status == HealthStatus.UNHEALTHY
        summary.duration = time.monotonic() - started
        MetricsCollector.record_batch(summary.duration)

        logger.info("batch_completed", **summary.to_dict())
        return summary

    async def _fetch_one(
        self,
        asin: str,
        semaphore: asyncio.Semaphore,
        token: CancellationToken,
    ) -> _FetchOutcome:
        async with semaphore:
            if token.cancelled:
                return _FetchOutcome(asin=asin, started=False)
            if await self.rate_gate.wait_before_fetch(token):
                return _FetchOutcome(asin=asin, started=False)

            timeout = self.config.fetch_timeout
            start_time = time.monotonic()
            try:
                product = await asyncio.wait_for(self.fetcher.fetch(asin, timeout), timeout)
                return _FetchOutcome(
                    asin=asin,
                    product=product,
                    duration=time.monotonic() - start_time,
                )
            except FetchError as e:
                error = e
            except asyncio.TimeoutError:
                error = NetworkError(f"Fetch timed out after {timeout}s")
            except Exception as e:
                logger.error(
                    "fetch_unexpected_error",
                    asin=asin,
                    error=str(e),
                    exc_info=True,
                )
                error = NetworkError(f"Unexpected error: {e}")

            return _FetchOutcome(
                asin=asin,
                error=error,
                duration=time.monotonic() - start_time,
            )

    async def _apply(
        self,
        queue: ItemQueue,
        outcome: _FetchOutcome,
        summary: BatchSummary,
        batch_token: CancellationToken,
    ) -> None:
        """Apply one worker outcome to the queue, health and metrics."""
        asin = outcome.asin
        elapsed_ms = int(outcome.duration * 1000)

        if not outcome.started:
            queue.release(asin)
            summary.released += 1
            return

        if outcome.error is not None:
            self._apply_failure(queue, outcome, summary, batch_token)
            return

        product = outcome.product
        self.health.record_success()

        if self.config.skip_out_of_stock and not product.in_stock:
            queue.mark_skipped(asin, OUT_OF_STOCK_REASON, processing_time_ms=elapsed_ms)
            summary.skipped += 1
            MetricsCollector.record_fetch(self.fetcher.name, "skipped", outcome.duration)
            logger.info("item_skipped", asin=asin, reason=OUT_OF_STOCK_REASON)
            return

        try:
            result_ref = await self.store.save_product(product)
        except StoreError as e:
            logger.warning("product_save_failed", asin=asin, error=str(e))
            summary.errors.append(f"{asin}: Failed to save product: {e}")
            retried = queue.mark_failure(
                asin,
                f"Failed to save product: {e}",
                max_attempts=self.config.max_attempts_per_item,
                retryable=True,
                processing_time_ms=elapsed_ms,
            )
            if retried:
                summary.retried += 1
            else:
                summary.failed += 1
            return

        queue.mark_success(asin, result_ref, processing_time_ms=elapsed_ms)
        summary.succeeded += 1
        MetricsCollector.record_fetch(self.fetcher.name, "success", outcome.duration)
        logger.debug("item_succeeded", asin=asin, result_ref=result_ref, duration_ms=elapsed_ms)

    def _apply_failure(
        self,
        queue: ItemQueue,
        outcome: _FetchOutcome,
        summary: BatchSummary,
        batch_token: CancellationToken,
    ) -> None:
        asin = outcome.asin
        error = outcome.error
        self.health.record_failure(rate_limited=error.kind == FetchErrorKind.RATE_LIMITED)
        MetricsCollector.record_fetch(self.fetcher.name, error.kind.value, outcome.duration)
        summary.errors.append(f"{asin}: {error}")

        if error.systemic:
            # The ASIN itself is not at fault; keep it for a later run
            item = queue.release(asin)
            item.last_error = str(error)
            summary.released += 1
            if summary.systemic_error is None:
                summary.systemic_error = error
                batch_token.request(ControlSignal.STOP)
                logger.error(
                    "systemic_fetch_error",
                    asin=asin,
                    kind=error.kind.value,
                    error=str(error),
                )
            return

        retried = queue.mark_failure(
            asin,
            str(error),
            max_attempts=self.config.max_attempts_per_item,
            retryable=error.retryable,
            processing_time_ms=int(outcome.duration * 1000),
        )
        if retried:
            summary.retried += 1
            logger.warning(
                "item_retry_scheduled",
                asin=asin,
                kind=error.kind.value,
                attempts=queue.get(asin).attempts,
                error=str(error),
            )
        else:
            summary.failed += 1
            logger.warning(
                "item_failed",
                asin=asin,
                kind=error.kind.value,
                attempts=queue.get(asin).attempts,
                error=str(error),
            )
