"""Centralized error handling for the API.

This module provides standardized error codes, exception-to-response mapping,
and a global exception handler for FastAPI.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Type

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_405_METHOD_NOT_ALLOWED,
    HTTP_409_CONFLICT,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from batch_scraper.core.logging import get_request_id
from batch_scraper.services.exceptions import (
    ConflictError,
    ControllerError,
    JobNotFoundError,
    JobNotResumableError,
    PersistenceError,
    ValidationError,
)

logger = structlog.get_logger(__name__)


class ErrorCode:
    """Standardized error codes for API responses.

    These codes provide machine-readable identifiers for error conditions
    that clients can use to implement error handling logic.
    """

    # Client Errors (4xx)
    INVALID_ASIN = "INVALID_ASIN"
    JOB_CONFLICT = "JOB_CONFLICT"
    JOB_NOT_RESUMABLE = "JOB_NOT_RESUMABLE"
    JOB_NOT_FOUND = "JOB_NOT_FOUND"
    ROUTE_NOT_FOUND = "ROUTE_NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    BAD_REQUEST = "BAD_REQUEST"

    # Server Errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"

    # Service Unavailable (503)
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"


# Error code to HTTP status code mapping
ERROR_CODE_TO_STATUS: Dict[str, int] = {
    # 400 Bad Request
    ErrorCode.INVALID_ASIN: HTTP_400_BAD_REQUEST,
    ErrorCode.BAD_REQUEST: HTTP_400_BAD_REQUEST,
    # 404 Not Found
    ErrorCode.JOB_NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorCode.ROUTE_NOT_FOUND: HTTP_404_NOT_FOUND,
    # 405 Method Not Allowed
    ErrorCode.METHOD_NOT_ALLOWED: HTTP_405_METHOD_NOT_ALLOWED,
    # 409 Conflict
    ErrorCode.JOB_CONFLICT: HTTP_409_CONFLICT,
    ErrorCode.JOB_NOT_RESUMABLE: HTTP_409_CONFLICT,
    # 500 Internal Server Error
    ErrorCode.INTERNAL_ERROR: HTTP_500_INTERNAL_SERVER_ERROR,
    # 503 Service Unavailable
    ErrorCode.PERSISTENCE_FAILED: HTTP_503_SERVICE_UNAVAILABLE,
}


# User-friendly suggestions for error resolution
ERROR_SUGGESTIONS: Dict[str, str] = {
    ErrorCode.INVALID_ASIN: "ASINs must be 'B' followed by 9 letters or digits (e.g. B08N5WRWNW)",
    ErrorCode.JOB_CONFLICT: (
        "A job is already active. Stop or pause it with POST /api/v1/scraper/stop "
        "or POST /api/v1/scraper/pause first"
    ),
    ErrorCode.JOB_NOT_RESUMABLE: "Only paused or stopped jobs can be resumed. Start a new job instead",
    ErrorCode.JOB_NOT_FOUND: "The job ID does not exist or no paused job is available",
    ErrorCode.ROUTE_NOT_FOUND: "Check the URL. Available endpoints are listed at /docs",
    ErrorCode.METHOD_NOT_ALLOWED: "Check the HTTP method. Control endpoints under /api/v1/scraper use POST",
    ErrorCode.BAD_REQUEST: "Check the request format and try again",
    ErrorCode.INTERNAL_ERROR: "An unexpected error occurred. Contact administrator if the issue persists",
    ErrorCode.PERSISTENCE_FAILED: "The job store is unavailable. Check the data directory and try again",
}


# Exception type to error code mapping
# Order matters: subclasses must come before their base classes
EXCEPTION_TO_ERROR_CODE: Dict[Type[Exception], str] = {
    ValidationError: ErrorCode.INVALID_ASIN,
    JobNotResumableError: ErrorCode.JOB_NOT_RESUMABLE,
    ConflictError: ErrorCode.JOB_CONFLICT,
    JobNotFoundError: ErrorCode.JOB_NOT_FOUND,
    PersistenceError: ErrorCode.PERSISTENCE_FAILED,
}


@dataclass
class APIError:
    """Structured API error rendered as an ErrorDetail body.

    Attributes:
        error_code: Machine-readable code from ErrorCode.
        message: Human-readable message.
        details: Extra context, e.g. the rejected ASINs.
        suggestion: Resolution hint; defaults to the code's standard suggestion.
    """

    error_code: str
    message: str
    details: Optional[str] = None
    suggestion: Optional[str] = None

    def __post_init__(self) -> None:
        if self.suggestion is None:
            self.suggestion = ERROR_SUGGESTIONS.get(self.error_code)

    @property
    def status_code(self) -> int:
        return ERROR_CODE_TO_STATUS.get(self.error_code, HTTP_500_INTERNAL_SERVER_ERROR)

    def to_dict(self) -> Dict[str, Any]:
        """Render as an ErrorDetail dictionary for the current request."""
        body: Dict[str, Any] = {
            "error_code": self.error_code,
            "message": self.message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if self.details:
            body["details"] = self.details
        request_id = get_request_id()
        if request_id:
            body["request_id"] = request_id
        if self.suggestion:
            body["suggestion"] = self.suggestion
        return body


def map_exception_to_api_error(exc: Exception) -> APIError:
    """Map a controller exception to an APIError.

    Unknown exception types become INTERNAL_ERROR without leaking their message.
    """
    for exc_type, error_code in EXCEPTION_TO_ERROR_CODE.items():
        if not isinstance(exc, exc_type):
            continue
        details = None
        if isinstance(exc, ValidationError) and exc.rejected:
            details = f"Rejected: {', '.join(exc.rejected[:20])}"
        return APIError(error_code, str(exc), details=details)
    return APIError(ErrorCode.INTERNAL_ERROR, "An unexpected error occurred")


def _status_to_error_code(status_code: int) -> str:
    if status_code == HTTP_404_NOT_FOUND:
        return ErrorCode.ROUTE_NOT_FOUND
    if status_code == HTTP_405_METHOD_NOT_ALLOWED:
        return ErrorCode.METHOD_NOT_ALLOWED
    if status_code < HTTP_500_INTERNAL_SERVER_ERROR:
        return ErrorCode.BAD_REQUEST
    return ErrorCode.INTERNAL_ERROR


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Convert any exception raised while routing into an ErrorDetail response.

    Controller errors keep their own message. Routing errors (unknown path,
    wrong method) keep their status code. Anything unexpected is logged with
    a traceback and reported as INTERNAL_ERROR.
    """
    path = request.url.path
    headers: Optional[Dict[str, str]] = None

    if isinstance(exc, StarletteHTTPException):
        api_error = APIError(_status_to_error_code(exc.status_code), str(exc.detail))
        status_code = exc.status_code
        headers = getattr(exc, "headers", None)
        logger.warning(
            "http_exception",
            status_code=status_code,
            error_code=api_error.error_code,
            path=path,
        )
    elif isinstance(exc, ControllerError):
        api_error = map_exception_to_api_error(exc)
        status_code = api_error.status_code
        logger.warning(
            "controller_error",
            error_code=api_error.error_code,
            error_type=type(exc).__name__,
            message=str(exc),
            path=path,
        )
    else:
        api_error = APIError(ErrorCode.INTERNAL_ERROR, "An unexpected error occurred")
        status_code = api_error.status_code
        logger.error(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error=str(exc),
            path=path,
            exc_info=True,
        )

    return JSONResponse(status_code=status_code, content=api_error.to_dict(), headers=headers)
