"""Scraper control endpoints.

Thin HTTP wrapper over the JobController:
- POST /api/v1/scraper/start
- POST /api/v1/scraper/pause
- POST /api/v1/scraper/stop
- POST /api/v1/scraper/resume
- GET /api/v1/scraper/jobs/current
- GET /api/v1/scraper/jobs/{job_id}
- GET /api/v1/scraper/health

Controller errors propagate to the global exception handler.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Body, Depends, Query, status

from batch_scraper.api.schemas import (
    ControlResponse,
    JobResponse,
    ResumeRequest,
    ScraperHealthResponse,
    StartRequest,
)
from batch_scraper.services.job_controller import JobController

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/scraper", tags=["scraper"])

CONTROL_RESPONSES = {
    409: {"description": "Another job is active or the job cannot be resumed"},
    503: {"description": "Job store unavailable"},
}


# Dependency placeholder (to be configured in main app)
async def get_job_controller() -> JobController:
    """Get job controller instance."""
    raise NotImplementedError("Job controller dependency not configured")


@router.post(
    "/start",
    response_model=JobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={400: {"description": "No valid ASINs"}, **CONTROL_RESPONSES},
)
async def start_job(
    request: StartRequest,
    controller: JobController = Depends(get_job_controller),  # noqa: B008
) -> JobResponse:
    """
    Start a scraping job.

    ASINs are validated, normalized to uppercase and deduplicated. Invalid
    entries are reported in ``rejected``; the job starts as long as at
    least one ASIN is valid.
    """
    job = await controller.start(request.asins)
    logger.info("scrape_job_start_requested", job_id=job.job_id, total=job.counts.total)
    return JobResponse.from_job(job)


@router.post("/pause", response_model=ControlResponse)
async def pause_job(
    controller: JobController = Depends(get_job_controller),  # noqa: B008
) -> ControlResponse:
    """Pause the running job after its in-flight batch."""
    job = await controller.pause()
    if job is None:
        return ControlResponse(message="No job")
    return ControlResponse(job=JobResponse.from_job(job), message=f"Job is {job.status.value}")


@router.post("/stop", response_model=ControlResponse)
async def stop_job(
    controller: JobController = Depends(get_job_controller),  # noqa: B008
) -> ControlResponse:
    """Stop the active job; in-flight fetches finish and the job stays resumable."""
    job = await controller.stop()
    if job is None:
        return ControlResponse(message="No job")
    return ControlResponse(job=JobResponse.from_job(job), message=f"Job is {job.status.value}")


@router.post(
    "/resume",
    response_model=JobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={404: {"description": "No job to resume"}, **CONTROL_RESPONSES},
)
async def resume_job(
    request: Optional[ResumeRequest] = Body(None),  # noqa: B008
    controller: JobController = Depends(get_job_controller),  # noqa: B008
) -> JobResponse:
    """Resume a paused or stopped job, by id or the most recent one."""
    job_id = request.job_id if request else None
    job = await controller.resume(job_id)
    return JobResponse.from_job(job)


@router.get(
    "/jobs/current",
    response_model=Optional[JobResponse],
)
async def get_current_job(
    include_items: bool = Query(False, description="Include per-item state"),
    controller: JobController = Depends(get_job_controller),  # noqa: B008
) -> Optional[JobResponse]:
    """Get the most recent job known to this process, or null."""
    job = controller.get_current_job()
    if job is None:
        return None
    return JobResponse.from_job(job, include_items=include_items)


@router.get(
    "/jobs/{job_id}",
    response_model=JobResponse,
    responses={404: {"description": "Job not found"}, 503: {"description": "Job store unavailable"}},
)
async def get_job(
    job_id: str,
    include_items: bool = Query(False, description="Include per-item state"),
    controller: JobController = Depends(get_job_controller),  # noqa: B008
) -> JobResponse:
    """Get a job from the store."""
    logger.debug("job_status_requested", job_id=job_id)
    job = await controller.get_job(job_id)
    return JobResponse.from_job(job, include_items=include_items)


@router.get("/health", response_model=ScraperHealthResponse)
async def scraper_health(
    controller: JobController = Depends(get_job_controller),  # noqa: B008
) -> ScraperHealthResponse:
    """Upstream health as seen by the batch runner."""
    return ScraperHealthResponse.from_health(controller.health())
