"""Service layer implementations."""

from batch_scraper.services.batch_runner import BatchRunner, BatchSummary
from batch_scraper.services.exceptions import (
    ConflictError,
    ControllerError,
    JobNotFoundError,
    JobNotResumableError,
    PersistenceError,
    StoreError,
    ValidationError,
)
from batch_scraper.services.item_queue import ItemQueue
from batch_scraper.services.job_controller import JobController
from batch_scraper.services.job_store import (
    FileJobStore,
    InMemoryJobStore,
    JobStore,
    create_job_store,
)

__all__ = [
    # Controller
    "JobController",
    # Batch execution
    "BatchRunner",
    "BatchSummary",
    "ItemQueue",
    # Store
    "JobStore",
    "InMemoryJobStore",
    "FileJobStore",
    "create_job_store",
    # Errors
    "ControllerError",
    "ValidationError",
    "ConflictError",
    "JobNotResumableError",
    "JobNotFoundError",
    "PersistenceError",
    "StoreError",
]
