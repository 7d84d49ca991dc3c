"""Data models for the application."""

from batch_scraper.models.job import (
    ACTIVE_STATUSES,
    RESUMABLE_STATUSES,
    Item,
    ItemStatus,
    Job,
    JobCounts,
    JobStatus,
)
from batch_scraper.models.product import ProductData

__all__ = [
    "ACTIVE_STATUSES",
    "RESUMABLE_STATUSES",
    "Item",
    "ItemStatus",
    "Job",
    "JobCounts",
    "JobStatus",
    "ProductData",
]
