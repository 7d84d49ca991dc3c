"""Request and response schemas for API endpoints.

This module provides Pydantic models for API request validation
and response serialization with OpenAPI examples.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from batch_scraper.core.health import ScraperHealth
from batch_scraper.models.job import Job


class StartRequest(BaseModel):
    """Request body for starting a scraping job."""

    asins: List[str] = Field(
        ...,
        description="ASINs in processing order; duplicates are collapsed",
        examples=[["B08N5WRWNW", "B07FZ8S74R"]],
    )


class ResumeRequest(BaseModel):
    """Request body for resuming a job."""

    job_id: Optional[str] = Field(
        None,
        description="Job to resume; defaults to the most recently paused or stopped job",
        examples=["550e8400-e29b-41d4-a716-446655440000"],
    )


class JobCountsResponse(BaseModel):
    """Per-status item counts."""

    total: int = Field(..., examples=[50])
    succeeded: int = Field(..., examples=[18])
    failed: int = Field(..., examples=[1])
    skipped: int = Field(..., examples=[1])
    pending: int = Field(..., examples=[30])
    in_progress: int = Field(..., examples=[0])


class ItemResponse(BaseModel):
    """State of a single ASIN within a job."""

    asin: str = Field(..., examples=["B08N5WRWNW"])
    status: str = Field(
        ..., examples=["pending", "in_progress", "success", "failed", "skipped"]
    )
    attempts: int = Field(..., examples=[1])
    last_error: Optional[str] = Field(None, examples=["Rate limited"])
    result_ref: Optional[str] = Field(None, examples=["/app/data/products/B08N5WRWNW.json"])
    processing_time_ms: Optional[int] = Field(None, examples=[1840])
    scraped_at: Optional[str] = Field(None, examples=["2025-12-25T10:31:00+00:00"])


class JobResponse(BaseModel):
    """Job status response."""

    job_id: str = Field(..., examples=["550e8400-e29b-41d4-a716-446655440000"])
    status: str = Field(
        ...,
        description="Job status",
        examples=["running", "pausing", "paused", "stopping", "stopped", "completed", "failed"],
    )
    batch_size: int = Field(..., examples=[5])
    current_batch_index: int = Field(..., examples=[2])
    total_batches: int = Field(..., examples=[10])
    progress_percent: float = Field(..., examples=[40.0])
    counts: JobCountsResponse
    rejected: List[str] = Field(default_factory=list, examples=[["not-an-asin"]])
    last_error: Optional[str] = Field(None, examples=["Systemic fetch error: Authentication failed"])
    recent_errors: List[str] = Field(
        default_factory=list,
        description="Latest item errors, newest first",
        examples=[["B07FZ8S74R: Rate limited"]],
    )
    avg_processing_time_ms: int = Field(0, examples=[6250])
    estimated_completion_at: Optional[str] = Field(
        None,
        description="Projected from the average processing time while running",
        examples=["2025-12-25T11:05:00+00:00"],
    )
    created_at: str = Field(..., examples=["2025-12-25T10:30:00+00:00"])
    started_at: Optional[str] = Field(None, examples=["2025-12-25T10:30:00+00:00"])
    paused_at: Optional[str] = Field(None, examples=[None])
    completed_at: Optional[str] = Field(None, examples=[None])
    updated_at: Optional[str] = Field(None, examples=["2025-12-25T10:35:00+00:00"])
    items: Optional[List[ItemResponse]] = None

    @classmethod
    def from_job(cls, job: Job, include_items: bool = False) -> "JobResponse":
        return cls(**job.to_dict(include_items=include_items))


class ControlResponse(BaseModel):
    """Response for pause/stop calls, which may find no job."""

    job: Optional[JobResponse] = None
    message: str = Field(..., examples=["Pause requested", "No job"])


class ScraperHealthResponse(BaseModel):
    """Upstream health snapshot."""

    status: Literal["healthy", "degraded", "unhealthy"] = Field(..., examples=["healthy"])
    consecutive_failures: int = Field(..., examples=[0])
    window_size: int = Field(..., examples=[20])
    window_failure_rate: float = Field(..., examples=[0.05])
    last_success_at: Optional[str] = Field(None, examples=["2025-12-25T10:31:00+00:00"])
    last_failure_at: Optional[str] = Field(None, examples=[None])
    rate_limited_total: int = Field(..., examples=[0])
    last_rate_limited_at: Optional[str] = Field(None, examples=[None])
    requests_today: int = Field(0, examples=[212])
    max_per_day: int = Field(0, description="0 when the daily budget is disabled", examples=[500])

    @classmethod
    def from_health(cls, health: ScraperHealth) -> "ScraperHealthResponse":
        return cls(**health.to_dict())


class ComponentHealth(BaseModel):
    """Health status of a single component."""

    status: Literal["healthy", "degraded", "unhealthy"] = Field(..., examples=["healthy"])
    details: Optional[Dict[str, Any]] = Field(default=None, examples=[{"backend": "file"}])


class HealthResponse(BaseModel):
    """Detailed health check response."""

    status: Literal["healthy", "degraded", "unhealthy"] = Field(..., examples=["healthy"])
    timestamp: str = Field(..., examples=["2025-12-25T10:30:00Z"])
    version: str = Field(..., examples=["0.1.0"])
    uptime_seconds: float = Field(..., examples=[3600.5])
    components: Dict[str, ComponentHealth]


class LivenessResponse(BaseModel):
    """Simple liveness check response for container orchestration."""

    status: Literal["alive"] = Field(..., examples=["alive"])


class ReadinessResponse(BaseModel):
    """Readiness check response for load balancer integration."""

    status: Literal["ready", "not_ready"] = Field(..., examples=["ready"])
    ready: bool = Field(..., examples=[True])
    message: Optional[str] = Field(default=None, examples=["Job controller not configured"])


class ErrorDetail(BaseModel):
    """Structured error response.

    All API errors follow this format with machine-readable error codes
    and optional suggestions for resolution.
    """

    error_code: str = Field(
        ...,
        description="Machine-readable error code",
        examples=["INVALID_ASIN", "JOB_CONFLICT", "JOB_NOT_FOUND"],
    )
    message: str = Field(
        ...,
        description="Human-readable error message",
        examples=["No valid ASINs provided"],
    )
    details: Optional[str] = Field(
        None,
        description="Additional error context",
        examples=["Rejected: not-an-asin"],
    )
    timestamp: str = Field(..., examples=["2025-12-25T10:30:00Z"])
    request_id: Optional[str] = Field(
        None,
        description="Request ID for tracing",
        examples=["req_550e8400e29b"],
    )
    suggestion: Optional[str] = Field(
        None,
        description="Suggested action to resolve the error",
        examples=["Only paused or stopped jobs can be resumed. Start a new job instead"],
    )
