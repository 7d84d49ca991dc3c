"""Ordered work queue over a job's items.

Items keep their insertion order for the life of the job; claiming always
takes the earliest pending items first. The queue operates on the job's own
item list, so job counts and queue state cannot diverge.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import structlog

from batch_scraper.models.job import Item, ItemStatus, JobCounts

logger = structlog.get_logger(__name__)


class ItemQueue:
    """FIFO queue of ASIN work items with per-item status.

    Features:
    - Duplicate ASINs collapse at construction
    - Exclusive claim step (pending -> in_progress)
    - Retry bookkeeping bounded by a max attempt count
    - Snapshot/restore for checkpointing
    """

    def __init__(self, items: Optional[List[Item]] = None) -> None:
        """Initialize the queue.

        Args:
            items: Existing item list to operate on (shared, not copied).
        """
        self._items: List[Item] = items if items is not None else []
        self._index: Dict[str, Item] = {}
        for item in self._items:
            if item.asin in self._index:
                raise ValueError(f"Duplicate ASIN in queue: {item.asin}")
            self._index[item.asin] = item

    @classmethod
    def from_asins(cls, asins: Iterable[str]) -> "ItemQueue":
        """Build a queue of pending items, keeping the first occurrence of each ASIN."""
        items: List[Item] = []
        seen = set()
        for asin in asins:
            if asin in seen:
                continue
            seen.add(asin)
            items.append(Item(asin=asin))
        return cls(items)

    @property
    def items(self) -> List[Item]:
        return self._items

    def __len__(self) -> int:
        return len(self._items)

    def get(self, asin: str) -> Item:
        return self._index[asin]

    def counts(self) -> JobCounts:
        return JobCounts.from_items(self._items)

    def has_pending(self) -> bool:
        return any(item.status == ItemStatus.PENDING for item in self._items)

    def claim(self, limit: int) -> List[Item]:
        """Claim up to ``limit`` pending items in insertion order.

        Claimed items move to in_progress and cannot be claimed again until
        released or retried.
        """
        claimed: List[Item] = []
        for item in self._items:
            if len(claimed) >= limit:
                break
            if item.status == ItemStatus.PENDING:
                item.status = ItemStatus.IN_PROGRESS
                claimed.append(item)

        logger.debug(
            "items_claimed",
            count=len(claimed),
            asins=[item.asin for item in claimed],
        )
        return claimed

    def release(self, asin: str) -> Item:
        """Return a claimed item to pending without counting an attempt."""
        item = self._require_in_progress(asin)
        item.status = ItemStatus.PENDING
        return item

    def mark_success(
        self,
        asin: str,
        result_ref: str,
        processing_time_ms: Optional[int] = None,
    ) -> Item:
        item = self._require_in_progress(asin)
        item.attempts += 1
        item.status = ItemStatus.SUCCESS
        item.result_ref = result_ref
        item.last_error = None
        item.processing_time_ms = processing_time_ms
        item.scraped_at = datetime.now(timezone.utc)
        return item

    def mark_skipped(
        self,
        asin: str,
        reason: str,
        processing_time_ms: Optional[int] = None,
    ) -> Item:
        item = self._require_in_progress(asin)
        item.attempts += 1
        item.status = ItemStatus.SKIPPED
        item.last_error = reason
        item.processing_time_ms = processing_time_ms
        return item

    def mark_failure(
        self,
        asin: str,
        error: str,
        max_attempts: int,
        retryable: bool = True,
        processing_time_ms: Optional[int] = None,
    ) -> bool:
        """Record a failed attempt.

        The item returns to pending when the failure is retryable and attempts
        remain; otherwise it becomes failed.

        Returns:
            True if the item will be retried in a later batch.
        """
        item = self._require_in_progress(asin)
        item.attempts += 1
        item.last_error = error
        item.processing_time_ms = processing_time_ms

        if retryable and item.attempts < max_attempts:
            item.status = ItemStatus.PENDING
            return True

        item.status = ItemStatus.FAILED
        return False

    def reset_in_progress(self) -> int:
        """Move interrupted in_progress items back to pending.

        Returns:
            Number of items reset.
        """
        reset = 0
        for item in self._items:
            if item.status == ItemStatus.IN_PROGRESS:
                item.status = ItemStatus.PENDING
                reset += 1
        if reset:
            logger.info("in_progress_items_reset", count=reset)
        return reset

    def snapshot(self) -> List[Dict[str, Any]]:
        return [item.to_dict() for item in self._items]

    def restore(self, snapshot: List[Dict[str, Any]]) -> None:
        """Replace item state in place from a snapshot() result."""
        self._items[:] = [Item.from_dict(data) for data in snapshot]
        self._index = {item.asin: item for item in self._items}

    def _require_in_progress(self, asin: str) -> Item:
        item = self._index.get(asin)
        if item is None:
            raise KeyError(f"Unknown ASIN: {asin}")
        if item.status != ItemStatus.IN_PROGRESS:
            raise ValueError(f"Item {asin} is {item.status.value}, expected in_progress")
        return item
