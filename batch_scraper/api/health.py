"""Health check endpoints.

- /health: controller, job store and upstream health
- /liveness and /readiness: container health checks
"""

import time
from datetime import datetime, timezone
from typing import Dict, Literal, Optional

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from batch_scraper import __version__
from batch_scraper.api.schemas import (
    ComponentHealth,
    HealthResponse,
    LivenessResponse,
    ReadinessResponse,
)
from batch_scraper.core.health import HealthStatus
from batch_scraper.services.exceptions import StoreError
from batch_scraper.services.job_controller import JobController
from batch_scraper.services.job_store import FileJobStore

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["health"])

# Track application start time for uptime calculation
_start_time: float = time.time()


# Dependency placeholder (to be configured in main app); None means not ready
async def get_optional_job_controller() -> Optional[JobController]:
    return None


def _check_controller(controller: JobController) -> ComponentHealth:
    job = controller.get_current_job()
    details = {"job_status": job.status.value if job else None}
    if job is not None:
        details["job_id"] = job.job_id
        details["progress_percent"] = job.progress_percent
    return ComponentHealth(status="healthy", details=details)


async def _check_store(controller: JobController) -> ComponentHealth:
    store = controller.store
    backend = "file" if isinstance(store, FileJobStore) else "memory"
    try:
        await store.list_jobs(limit=1)
    except StoreError as e:
        return ComponentHealth(status="unhealthy", details={"backend": backend, "error": str(e)})
    return ComponentHealth(status="healthy", details={"backend": backend})


def _check_upstream(controller: JobController) -> ComponentHealth:
    snapshot = controller.health()
    return ComponentHealth(
        status=snapshot.status.value,
        details={
            "consecutive_failures": snapshot.consecutive_failures,
            "window_failure_rate": round(snapshot.window_failure_rate, 4),
            "rate_limited_total": snapshot.rate_limited_total,
        },
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={
        200: {"description": "Healthy or degraded"},
        503: {"description": "A component is unhealthy"},
    },
)
async def health_check(
    controller: Optional[JobController] = Depends(get_optional_job_controller),  # noqa: B008
) -> JSONResponse:
    """
    Detailed health check endpoint.

    Components:
    - controller: current job status
    - store: job store reachable
    - upstream: rolling fetch health (degraded does not fail the check)
    """
    if controller is None:
        components: Dict[str, ComponentHealth] = {
            "controller": ComponentHealth(
                status="unhealthy", details={"error": "Job controller not configured"}
            )
        }
    else:
        components = {
            "controller": _check_controller(controller),
            "store": await _check_store(controller),
            "upstream": _check_upstream(controller),
        }

    statuses = {c.status for c in components.values()}
    overall_status: Literal["healthy", "degraded", "unhealthy"]
    if HealthStatus.UNHEALTHY.value in statuses:
        overall_status = "unhealthy"
    elif HealthStatus.DEGRADED.value in statuses:
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    response = HealthResponse(
        status=overall_status,
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
        uptime_seconds=round(time.time() - _start_time, 2),
        components=components,
    )

    status_code = (
        status.HTTP_503_SERVICE_UNAVAILABLE
        if overall_status == "unhealthy"
        else status.HTTP_200_OK
    )

    logger.info(
        "health_check_completed",
        status=overall_status,
        components={k: v.status for k, v in components.items()},
    )

    return JSONResponse(content=response.model_dump(), status_code=status_code)


@router.get("/liveness", response_model=LivenessResponse)
async def liveness_check() -> LivenessResponse:
    """
    Liveness check endpoint.

    Returns HTTP 200 if the process is alive.
    """
    return LivenessResponse(status="alive")


@router.get(
    "/readiness",
    response_model=ReadinessResponse,
    responses={
        200: {"description": "Service is ready to accept traffic"},
        503: {"description": "Service is not ready"},
    },
)
async def readiness_check(
    controller: Optional[JobController] = Depends(get_optional_job_controller),  # noqa: B008
) -> JSONResponse:
    """
    Readiness check endpoint.

    Ready once the job controller is configured and the store answers.
    """
    issues = []

    if controller is None:
        issues.append("Job controller not configured")
    else:
        store_health = await _check_store(controller)
        if store_health.status != "healthy":
            issues.append("Job store not ready")

    if issues:
        response = ReadinessResponse(
            status="not_ready",
            ready=False,
            message="; ".join(issues),
        )
        return JSONResponse(
            content=response.model_dump(),
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    return JSONResponse(
        content=ReadinessResponse(status="ready", ready=True).model_dump(),
        status_code=status.HTTP_200_OK,
    )
