"""Job controller for the batch scraper.

The controller owns the single active job. It exposes the control surface
(start, pause, stop, resume and status reads) and drives the batch loop as a
background asyncio task.

Control calls are serialized by one asyncio.Lock. The batch loop never takes
it: checkpoints are written from a snapshot of the job, so a slow or failing
store delays only the loop and never a pause or stop. Item state is mutated
only by the BatchRunner's aggregation loop, which runs on the same event loop.
"""

import asyncio
import contextlib
import dataclasses
import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional

import structlog

from batch_scraper.core.cancellation import CancellationToken, ControlSignal
from batch_scraper.core.config import Config
from batch_scraper.core.health import HealthMonitor, ScraperHealth
from batch_scraper.core.logging import bind_job_context, clear_job_context
from batch_scraper.core.metrics import MetricsCollector
from batch_scraper.core.rate_gate import RateGate
from batch_scraper.core.validation import validate_asins
from batch_scraper.models.job import Job, JobStatus
from batch_scraper.providers.base import Fetcher
from batch_scraper.services.batch_runner import BatchRunner
from batch_scraper.services.exceptions import (
    ConflictError,
    JobNotFoundError,
    JobNotResumableError,
    PersistenceError,
    StoreError,
    ValidationError,
)
from batch_scraper.services.item_queue import ItemQueue
from batch_scraper.services.job_store import JobStore

logger = structlog.get_logger(__name__)


class JobController:
    """Single-job controller.

    One instance exists per process. It is built at application startup and
    injected wherever the control surface is needed.
    """

    def __init__(
        self,
        config: Config,
        fetcher: Fetcher,
        store: JobStore,
        health: Optional[HealthMonitor] = None,
        rate_gate: Optional[RateGate] = None,
        runner: Optional[BatchRunner] = None,
    ) -> None:
        """Initialize the controller.

        Args:
            config: Application configuration.
            fetcher: Fetcher used for every item.
            store: Job and product store.
            health: Health monitor (built from config if None).
            rate_gate: Pacing policy (built from config if None).
            runner: Batch runner (built from the other collaborators if None).
        """
        self.config = config
        self.store = store
        self.health_monitor = health or HealthMonitor(config.health)
        self.rate_gate = rate_gate or RateGate(config.scraper, config.health)
        self.runner = runner or BatchRunner(
            config=config.scraper,
            fetcher=fetcher,
            store=store,
            health=self.health_monitor,
            rate_gate=self.rate_gate,
        )

        self._lock = asyncio.Lock()
        self._job: Optional[Job] = None
        self._queue: Optional[ItemQueue] = None
        self._token: Optional[CancellationToken] = None
        self._task: Optional[asyncio.Task] = None

        logger.debug(
            "job_controller_initialized",
            batch_size=config.scraper.batch_size,
            concurrency_per_batch=config.scraper.concurrency_per_batch,
            max_attempts_per_item=config.scraper.max_attempts_per_item,
        )

    @property
    def is_running(self) -> bool:
        """Check if a job currently holds the active slot."""
        return self._job is not None and self._job.is_active()

    async def start(self, asins: Iterable[str]) -> Job:
        """Create a job from ``asins`` and begin processing it.

        Args:
            asins: ASIN candidates in priority order.

        Returns:
            Snapshot of the new job.

        Raises:
            ValidationError: If no candidate is a valid ASIN.
            ConflictError: If another job is active.
            PersistenceError: If the initial checkpoint could not be written.
        """
        batch = validate_asins(asins)
        if not batch.valid:
            raise ValidationError("No valid ASINs provided", rejected=batch.rejected)

        async with self._lock:
            self._ensure_idle()

            queue = ItemQueue.from_asins(batch.valid)
            now = datetime.now(timezone.utc)
            job = Job(
                job_id=str(uuid.uuid4()),
                status=JobStatus.RUNNING,
                items=queue.items,
                batch_size=self.config.scraper.batch_size,
                rejected=batch.rejected,
                created_at=now,
                started_at=now,
            )

            await self._checkpoint(job)
            self._launch(job, queue)

            logger.info(
                "job_started",
                job_id=job.job_id,
                total_items=len(queue),
                rejected=len(batch.rejected),
                duplicates=batch.duplicates,
                total_batches=job.total_batches,
            )
            MetricsCollector.record_job_transition(JobStatus.RUNNING.value)
            return job.snapshot()

    async def pause(self) -> Optional[Job]:
        """Ask the running job to pause after its in-flight batch.

        Returns:
            Snapshot of the current job, or None if there is none.
        """
        async with self._lock:
            job = self._job
            if job is None:
                return None
            if job.status == JobStatus.RUNNING:
                self._set_status(job, JobStatus.PAUSING)
                self._token.request(ControlSignal.PAUSE)
            return job.snapshot()

    async def stop(self) -> Optional[Job]:
        """Ask the active job to stop; in-flight fetches are allowed to finish.

        Returns:
            Snapshot of the current job, or None if there is none.
        """
        async with self._lock:
            job = self._job
            if job is None:
                return None
            if job.status in (JobStatus.RUNNING, JobStatus.PAUSING):
                self._set_status(job, JobStatus.STOPPING)
                self._token.request(ControlSignal.STOP)
            return job.snapshot()

    async def resume(self, job_id: Optional[str] = None) -> Job:
        """Resume a paused or stopped job from its last checkpoint.

        A checkpoint still marked running, pausing or stopping was left by a
        process that died mid-run. It is resumed as if it had been stopped,
        and its in-flight items go back to pending.

        Args:
            job_id: Job to resume; the most recently paused or stopped job if None.

        Returns:
            Snapshot of the resumed job.

        Raises:
            ConflictError: If another job is active.
            JobNotFoundError: If there is no matching job to resume.
            JobNotResumableError: If the job is completed or failed.
            PersistenceError: If the store could not be read or written.
        """
        async with self._lock:
            self._ensure_idle()

            try:
                if job_id:
                    job = await self.store.load_job(job_id)
                else:
                    job = await self.store.load_most_recent_paused()
            except StoreError as e:
                raise PersistenceError(f"Failed to load checkpoint: {e}") from e

            if job is None:
                if job_id:
                    raise JobNotFoundError(f"Job not found: {job_id}")
                raise JobNotFoundError("No paused or stopped job to resume")

            interrupted = job.was_interrupted()
            if not interrupted and not job.is_resumable():
                raise JobNotResumableError(
                    f"Job {job.job_id} is {job.status.value} and cannot be resumed"
                )

            try:
                queue = ItemQueue(job.items)
            except ValueError as e:
                raise PersistenceError(f"Checkpoint for job {job.job_id} is corrupt: {e}") from e
            reset = queue.reset_in_progress()
            previous = job.status
            job.status = JobStatus.RUNNING
            job.last_error = None

            await self._checkpoint(job)
            self._launch(job, queue)

            logger.info(
                "job_resumed",
                job_id=job.job_id,
                previous_status=previous.value,
                interrupted=interrupted,
                current_batch_index=job.current_batch_index,
                pending=job.counts.pending,
                reset_items=reset,
            )
            MetricsCollector.record_job_transition(JobStatus.RUNNING.value)
            return job.snapshot()

    def get_current_job(self) -> Optional[Job]:
        """Return a snapshot of the most recent job known to this process."""
        if self._job is None:
            return None
        return self._job.snapshot()

    async def get_job(self, job_id: str) -> Job:
        """Read a job from the store.

        Raises:
            JobNotFoundError: If no checkpoint exists for ``job_id``.
            PersistenceError: If the store could not be read.
        """
        try:
            job = await self.store.load_job(job_id)
        except StoreError as e:
            raise PersistenceError(f"Failed to load job: {e}") from e
        if job is None:
            raise JobNotFoundError(f"Job not found: {job_id}")
        return job

    async def list_jobs(self, limit: int = 20) -> List[Job]:
        try:
            return await self.store.list_jobs(limit=limit)
        except StoreError as e:
            raise PersistenceError(f"Failed to list jobs: {e}") from e

    def health(self) -> ScraperHealth:
        return dataclasses.replace(
            self.health_monitor.snapshot(),
            requests_today=self.rate_gate.requests_today,
            max_per_day=self.config.scraper.max_per_day,
        )

    async def wait(self) -> Optional[Job]:
        """Wait for the batch loop to exit and return the final job snapshot."""
        task = self._task
        if task is not None:
            await asyncio.shield(task)
        return self.get_current_job()

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop any active job and wait for its final checkpoint.

        Args:
            timeout: Seconds to wait for in-flight fetches before cancelling.
        """
        if self.is_running:
            await self.stop()

        task = self._task
        if task is None or task.done():
            return

        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("job_loop_shutdown_timeout", timeout=timeout)
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        logger.info("job_controller_shutdown")

    def _ensure_idle(self) -> None:
        job = self._job
        if job is None:
            return
        if job.is_active():
            raise ConflictError(
                f"Job {job.job_id} is {job.status.value}",
                active_job_id=job.job_id,
            )
        if self._task is not None and not self._task.done():
            raise ConflictError(
                f"Job {job.job_id} is still writing its final checkpoint",
                active_job_id=job.job_id,
            )

    def _launch(self, job: Job, queue: ItemQueue) -> None:
        self._job = job
        self._queue = queue
        self._token = CancellationToken()
        self._task = asyncio.create_task(self._run(job, queue, self._token))
        MetricsCollector.update_job_items(queue.counts().to_dict())

    def _set_status(self, job: Job, status: JobStatus) -> None:
        old_status = job.status
        job.status = status
        logger.info(
            "job_status_changed",
            job_id=job.job_id,
            old_status=old_status.value,
            new_status=status.value,
        )
        MetricsCollector.record_job_transition(status.value)

    async def _checkpoint(self, job: Job) -> None:
        """Persist a snapshot of the job, retrying with the configured backoff.

        The snapshot is taken once, before the first attempt. Control calls
        may change the live job while writes and backoff sleeps are pending.

        Raises:
            PersistenceError: If every attempt failed.
        """
        store_config = self.config.store
        backoff = store_config.checkpoint_backoff
        attempts = store_config.checkpoint_retries + 1
        last_error: Optional[Exception] = None

        job.updated_at = datetime.now(timezone.utc)
        snapshot = job.snapshot()

        for attempt in range(attempts):
            try:
                await self.store.save_checkpoint(snapshot)
                return
            except StoreError as e:
                last_error = e
                MetricsCollector.record_checkpoint_failure()
                logger.warning(
                    "checkpoint_failed",
                    job_id=job.job_id,
                    attempt=attempt + 1,
                    max_attempts=attempts,
                    error=str(e),
                )
                if attempt + 1 < attempts and backoff:
                    await asyncio.sleep(backoff[min(attempt, len(backoff) - 1)])

        raise PersistenceError(
            f"Checkpoint failed after {attempts} attempts: {last_error}"
        ) from last_error

    async def _run(self, job: Job, queue: ItemQueue, token: CancellationToken) -> None:
        """Batch loop for one job."""
        bind_job_context(job.job_id)
        logger.info("job_loop_started", current_batch_index=job.current_batch_index)

        try:
            while True:
                signal = token.signal
                if signal is not None:
                    await self._finish_interrupted(job, signal)
                    return

                if not queue.has_pending():
                    await self._finish(job, JobStatus.COMPLETED)
                    return

                summary = await self.runner.run_batch(queue, token, job.current_batch_index)
                if summary.claimed > summary.released:
                    job.current_batch_index += 1
                job.record_errors(summary.errors)
                MetricsCollector.update_job_items(queue.counts().to_dict())

                if summary.systemic_error is not None:
                    await self._fail(job, f"Systemic fetch error: {summary.systemic_error}")
                    return

                try:
                    await self._checkpoint(job)
                except PersistenceError as e:
                    await self._fail(job, str(e), persist=False)
                    return

                if token.cancelled or not queue.has_pending():
                    continue

                await self.rate_gate.wait_between_batches(summary.health_status, token)

        except asyncio.CancelledError:
            # The stored checkpoint keeps its active status and resumes as interrupted
            queue.reset_in_progress()
            if job.is_active():
                self._set_status(job, JobStatus.STOPPED)
            logger.warning("job_loop_cancelled", pending=job.counts.pending)
            raise
        except Exception as e:
            logger.error("job_loop_error", error=str(e), exc_info=True)
            await self._fail(job, f"Unexpected error: {e}")
        finally:
            clear_job_context()

    async def _finish_interrupted(self, job: Job, signal: ControlSignal) -> None:
        if signal == ControlSignal.STOP:
            await self._finish(job, JobStatus.STOPPED)
        else:
            await self._finish(job, JobStatus.PAUSED)

    async def _finish(self, job: Job, status: JobStatus) -> None:
        """Move the job to a resting state and write the final checkpoint."""
        now = datetime.now(timezone.utc)
        self._set_status(job, status)
        if status == JobStatus.PAUSED:
            job.paused_at = now
        elif status == JobStatus.COMPLETED:
            job.completed_at = now

        try:
            await self._checkpoint(job)
        except PersistenceError as e:
            self._mark_failed(job, str(e))
            return

        counts = job.counts
        logger.info(
            "job_finished",
            status=status.value,
            succeeded=counts.succeeded,
            failed=counts.failed,
            skipped=counts.skipped,
            pending=counts.pending,
            batches=job.current_batch_index,
        )

    async def _fail(self, job: Job, reason: str, persist: bool = True) -> None:
        self._mark_failed(job, reason)
        if not persist:
            return
        try:
            await self._checkpoint(job)
        except PersistenceError as e:
            logger.error("failed_job_checkpoint_lost", error=str(e))

    def _mark_failed(self, job: Job, reason: str) -> None:
        self._set_status(job, JobStatus.FAILED)
        job.last_error = reason
        job.completed_at = datetime.now(timezone.utc)
        logger.error("job_failed", reason=reason)
