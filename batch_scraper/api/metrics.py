"""Prometheus metrics endpoint."""

from fastapi import APIRouter, Request, status
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["monitoring"])


@router.get(
    "/metrics",
    response_class=Response,
    summary="Prometheus metrics endpoint",
    description="Returns metrics in Prometheus text format for scraping. "
    "Returns 404 when monitoring.metrics_enabled is false.",
)
async def metrics(request: Request) -> Response:
    """Expose scraper, batch and HTTP metrics.

    Returns:
        Response with Prometheus metrics in text format.
    """
    config = getattr(request.app.state, "config", None)
    if config is not None and not config.monitoring.metrics_enabled:
        return Response(status_code=status.HTTP_404_NOT_FOUND)

    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
