"""Exceptions raised by the job controller and job store."""

from typing import List, Optional


class ControllerError(Exception):
    """Base exception for control surface errors."""

    pass


class ValidationError(ControllerError):
    """Raised when start() receives no valid ASINs."""

    def __init__(self, message: str, rejected: Optional[List[str]] = None):
        self.rejected = rejected or []
        super().__init__(message)


class ConflictError(ControllerError):
    """Raised when a job is already running, pausing or stopping."""

    def __init__(self, message: str, active_job_id: Optional[str] = None):
        self.active_job_id = active_job_id
        super().__init__(message)


class JobNotResumableError(ConflictError):
    """Raised when resume() targets a job that is not paused or stopped."""

    pass


class JobNotFoundError(ControllerError):
    """Raised when a job is not found."""

    pass


class StoreError(Exception):
    """Raised when the job store cannot read or write."""

    pass


class PersistenceError(ControllerError):
    """Raised when a checkpoint could not be written after all retries."""

    pass
