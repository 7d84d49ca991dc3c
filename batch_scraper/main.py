"""FastAPI application entry point.

This module assembles all components and creates the main application.
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from batch_scraper import __version__
from batch_scraper.api import health, metrics, scraper
from batch_scraper.core.config import ConfigService, FetcherConfig
from batch_scraper.core.errors import global_exception_handler
from batch_scraper.core.logging import clear_request_id, configure_logging, set_request_id
from batch_scraper.core.metrics import MetricsCollector, initialize_metrics
from batch_scraper.providers.amazon import AmazonFetcher
from batch_scraper.providers.base import Fetcher
from batch_scraper.services.exceptions import ControllerError
from batch_scraper.services.job_controller import JobController
from batch_scraper.services.job_store import create_job_store
from batch_scraper.testing.mock_fetcher import MockFetcher

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to track HTTP request metrics.

    Records request count and duration for all endpoints,
    using FastAPI route templates to normalize paths.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time

        # Fixed label for unmatched routes keeps cardinality bounded
        route = request.scope.get("route")
        endpoint = route.path if route else "/unmatched"

        MetricsCollector.record_request(
            method=request.method,
            endpoint=endpoint,
            status=response.status_code,
            duration=duration,
        )

        return response


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Bind a request_id for logs and error bodies, echoing it in the response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
        try:
            response = await call_next(request)
        finally:
            clear_request_id()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def build_fetcher(config: FetcherConfig) -> Fetcher:
    """Build the fetcher selected by configuration."""
    if config.mock:
        logger.warning("mock_fetcher_enabled")
        return MockFetcher()
    return AmazonFetcher(base_url=config.base_url, user_agents=config.user_agents)


def get_job_controller(request: Request) -> JobController:
    """Get the job controller built during startup."""
    controller = getattr(request.app.state, "job_controller", None)
    if controller is None:
        raise RuntimeError("Job controller not configured")
    return controller


def get_optional_job_controller(request: Request) -> Optional[JobController]:
    return getattr(request.app.state, "job_controller", None)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown."""
    logger.info("Application starting", version=__version__)

    initialize_metrics(__version__)

    # Load configuration
    config_service = ConfigService()
    config = config_service.load()
    config_service.validate()

    configure_logging(config.logging.level, config.logging.format)

    logger.info(
        "Configuration loaded",
        server_port=config.server.port,
        store_backend=config.store.backend,
        batch_size=config.scraper.batch_size,
        fetcher_mock=config.fetcher.mock,
    )

    store = create_job_store(config.store)
    fetcher = build_fetcher(config.fetcher)
    controller = JobController(config=config, fetcher=fetcher, store=store)

    app.state.config = config
    app.state.job_controller = controller

    logger.info("Application startup complete", version=__version__)

    yield

    logger.info("Application shutting down")

    # Stopping writes the final checkpoint so the job can be resumed
    await controller.shutdown(timeout=config.scraper.fetch_timeout)
    await fetcher.close()
    app.state.job_controller = None

    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Batch Scraper API",
        description="Control surface for the batch ASIN scraping job",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Register global exception handlers
    app.add_exception_handler(Exception, global_exception_handler)
    app.add_exception_handler(StarletteHTTPException, global_exception_handler)
    app.add_exception_handler(ControllerError, global_exception_handler)

    # Override dependency injection for routers
    app.dependency_overrides[scraper.get_job_controller] = get_job_controller
    app.dependency_overrides[health.get_optional_job_controller] = get_optional_job_controller

    # Register routers
    app.include_router(health.router)
    app.include_router(scraper.router)
    app.include_router(metrics.router)

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    server_config = ConfigService().load().server
    uvicorn.run(app, host=server_config.host, port=server_config.port)
