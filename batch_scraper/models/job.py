"""Job and item data models for batch scraping.

Counts are always derived from item states; nothing increments them
independently.
"""

import copy
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class JobStatus(str, Enum):
    """Status of a batch scraping job.

    State transitions:
    - IDLE -> RUNNING: start()
    - RUNNING -> PAUSING: pause()
    - PAUSING -> PAUSED: batch loop observes the pause signal
    - RUNNING/PAUSING -> STOPPING: stop()
    - STOPPING -> STOPPED: batch loop exits
    - PAUSED/STOPPED -> RUNNING: resume()
    - RUNNING -> COMPLETED: no pending items remain
    - RUNNING/PAUSING/STOPPING -> FAILED: systemic or persistence failure

    A stored checkpoint still in RUNNING/PAUSING/STOPPING belongs to a run
    that ended without writing its final state and is resumed like STOPPED.
    """

    IDLE = "idle"
    RUNNING = "running"
    PAUSING = "pausing"
    PAUSED = "paused"
    STOPPING = "stopping"
    STOPPED = "stopped"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_STATUSES = frozenset({JobStatus.RUNNING, JobStatus.PAUSING, JobStatus.STOPPING})
RESUMABLE_STATUSES = frozenset({JobStatus.PAUSED, JobStatus.STOPPED})
TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})

# Error messages kept on the job, newest first
RECENT_ERRORS_LIMIT = 10


class ItemStatus(str, Enum):
    """Status of a single ASIN within a job."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


FINAL_ITEM_STATUSES = frozenset({ItemStatus.SUCCESS, ItemStatus.FAILED, ItemStatus.SKIPPED})


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class Item:
    """One unit of scrape work."""

    asin: str
    status: ItemStatus = ItemStatus.PENDING
    attempts: int = 0
    last_error: Optional[str] = None
    result_ref: Optional[str] = None
    processing_time_ms: Optional[int] = None
    scraped_at: Optional[datetime] = None

    def is_final(self) -> bool:
        """Check if the item reached success, failed or skipped."""
        return self.status in FINAL_ITEM_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asin": self.asin,
            "status": self.status.value,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "result_ref": self.result_ref,
            "processing_time_ms": self.processing_time_ms,
            "scraped_at": _iso(self.scraped_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Item":
        return cls(
            asin=data["asin"],
            status=ItemStatus(data.get("status", ItemStatus.PENDING.value)),
            attempts=data.get("attempts", 0),
            last_error=data.get("last_error"),
            result_ref=data.get("result_ref"),
            processing_time_ms=data.get("processing_time_ms"),
            scraped_at=_parse(data.get("scraped_at")),
        )


@dataclass(frozen=True)
class JobCounts:
    """Per-status item counts, derived from a job's items."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    pending: int = 0
    in_progress: int = 0

    @classmethod
    def from_items(cls, items: List[Item]) -> "JobCounts":
        tally = {status: 0 for status in ItemStatus}
        for item in items:
            tally[item.status] += 1
        return cls(
            total=len(items),
            succeeded=tally[ItemStatus.SUCCESS],
            failed=tally[ItemStatus.FAILED],
            skipped=tally[ItemStatus.SKIPPED],
            pending=tally[ItemStatus.PENDING],
            in_progress=tally[ItemStatus.IN_PROGRESS],
        )

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed + self.skipped

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "pending": self.pending,
            "in_progress": self.in_progress,
        }


@dataclass
class Job:
    """A batch scraping job and the items it owns.

    Item order is processing priority. Timestamps stay None until the
    corresponding transition happens.
    """

    job_id: str
    status: JobStatus = JobStatus.IDLE
    items: List[Item] = field(default_factory=list)
    batch_size: int = 1
    current_batch_index: int = 0
    rejected: List[str] = field(default_factory=list)
    last_error: Optional[str] = None
    recent_errors: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: Optional[datetime] = None
    paused_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def counts(self) -> JobCounts:
        return JobCounts.from_items(self.items)

    @property
    def total_batches(self) -> int:
        """Estimated batch count for a run with no retries."""
        return math.ceil(len(self.items) / self.batch_size) if self.items else 0

    @property
    def progress_percent(self) -> float:
        counts = self.counts
        if counts.total == 0:
            return 0.0
        return round(counts.processed / counts.total * 100, 1)

    @property
    def avg_processing_time_ms(self) -> int:
        """Mean fetch time over items that have been attempted."""
        times = [
            item.processing_time_ms for item in self.items if item.processing_time_ms is not None
        ]
        if not times:
            return 0
        return round(sum(times) / len(times))

    def estimated_completion_at(self, now: Optional[datetime] = None) -> Optional[datetime]:
        """Projected finish time for a running job, from the mean fetch time.

        Returns None unless the job is running and at least one item has a
        recorded processing time.
        """
        avg_ms = self.avg_processing_time_ms
        if self.status != JobStatus.RUNNING or avg_ms <= 0:
            return None
        counts = self.counts
        remaining = counts.pending + counts.in_progress
        now = now or datetime.now(timezone.utc)
        return now + timedelta(milliseconds=remaining * avg_ms)

    def record_errors(self, errors: List[str]) -> None:
        """Prepend new error messages, keeping the most recent ones."""
        if errors:
            self.recent_errors = (list(reversed(errors)) + self.recent_errors)[:RECENT_ERRORS_LIMIT]

    def is_active(self) -> bool:
        """Check if the job holds the single active-job slot."""
        return self.status in ACTIVE_STATUSES

    def is_resumable(self) -> bool:
        return self.status in RESUMABLE_STATUSES

    def was_interrupted(self) -> bool:
        """Check if a stored checkpoint was left behind by a run that never finished."""
        return self.status in ACTIVE_STATUSES

    def is_terminal(self) -> bool:
        """Check if the job is completed or failed."""
        return self.status in TERMINAL_STATUSES

    def snapshot(self) -> "Job":
        """Return a deep copy that callers may hold without seeing later mutation."""
        return copy.deepcopy(self)

    def to_dict(self, include_items: bool = True) -> Dict[str, Any]:
        """Convert job to dictionary for checkpoints and API responses."""
        data: Dict[str, Any] = {
            "job_id": self.job_id,
            "status": self.status.value,
            "batch_size": self.batch_size,
            "current_batch_index": self.current_batch_index,
            "total_batches": self.total_batches,
            "progress_percent": self.progress_percent,
            "counts": self.counts.to_dict(),
            "rejected": list(self.rejected),
            "last_error": self.last_error,
            "recent_errors": list(self.recent_errors),
            "avg_processing_time_ms": self.avg_processing_time_ms,
            "estimated_completion_at": _iso(self.estimated_completion_at()),
            "created_at": _iso(self.created_at),
            "started_at": _iso(self.started_at),
            "paused_at": _iso(self.paused_at),
            "completed_at": _iso(self.completed_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        """Rebuild a job from a checkpoint produced by to_dict()."""
        return cls(
            job_id=data["job_id"],
            status=JobStatus(data["status"]),
            items=[Item.from_dict(item) for item in data.get("items", [])],
            batch_size=data.get("batch_size", 1),
            current_batch_index=data.get("current_batch_index", 0),
            rejected=list(data.get("rejected", [])),
            last_error=data.get("last_error"),
            recent_errors=list(data.get("recent_errors", [])),
            created_at=_parse(data.get("created_at")) or datetime.now(timezone.utc),
            started_at=_parse(data.get("started_at")),
            paused_at=_parse(data.get("paused_at")),
            completed_at=_parse(data.get("completed_at")),
            updated_at=_parse(data.get("updated_at")),
        )
