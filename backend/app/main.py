"""Commerce Automation Engine - FastAPI Application."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from api.routes import health
from api.v1.router import api_v1_router
from app.config import get_settings
from app.runtime import AutomationRuntime, build_runtime
from core.logging_config import setup_logging
from core.metrics import MetricsMiddleware, metrics_router
from core.middleware import RequestTrackingMiddleware, setup_exception_handlers
from db.database import close_db, get_session_factory, init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    setup_logging()

    owns_runtime = getattr(app.state, "runtime", None) is None
    if owns_runtime:
        await init_db()
        app.state.runtime = build_runtime(get_session_factory(), settings)
    runtime: AutomationRuntime = app.state.runtime
    logger.info("Automation runtime ready")

    poller: Optional[asyncio.Task] = None
    if settings.INPROCESS_RESUME_POLLER:
        poller = asyncio.create_task(_resume_poller(runtime), name="resume-poller")
        logger.info(f"In-process resume poller started ({settings.RESUME_POLL_INTERVAL_SECONDS}s interval)")

    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} started ({settings.ENVIRONMENT})")
    yield

    if poller is not None:
        poller.cancel()
        try:
            await poller
        except asyncio.CancelledError:
            pass
    if owns_runtime:
        await runtime.aclose()
        await close_db()
    logger.info("Application shutting down")


async def _resume_poller(runtime: AutomationRuntime) -> None:
    """Resume due executions and recover stale ones on a fixed interval.

    Runs inside the API process for deployments without Celery beat.
    """
    interval = runtime.settings.RESUME_POLL_INTERVAL_SECONDS
    while True:
        try:
            await runtime.recovery.recover_stale()
            resumed = await runtime.scheduler.resume_due()
            if resumed:
                logger.info(f"[resume-poller] resumed {len(resumed)} execution(s)")
        except Exception as e:
            logger.error(f"[resume-poller] Error: {e}", exc_info=True)
        await asyncio.sleep(interval)


def create_app(runtime: Optional[AutomationRuntime] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Passing a ``runtime`` skips database setup in the lifespan; tests use
    this to serve a pre-wired engine.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Event-driven marketing automation for commerce stores.",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )
    app.state.runtime = runtime

    # Prometheus metrics middleware (outermost, measures all requests)
    app.add_middleware(MetricsMiddleware)

    # Request tracking middleware
    app.add_middleware(RequestTrackingMiddleware)

    # Global exception handlers
    setup_exception_handlers(app)

    # Root health check (unversioned, for load balancers / k8s probes)
    app.include_router(health.router, prefix="/api", tags=["Health"])

    # Versioned API, all business endpoints under /api/v1
    app.include_router(api_v1_router, prefix=settings.API_V1_PREFIX)

    # Prometheus metrics (unauthenticated, for scrapers)
    app.include_router(metrics_router)

    return app


app = create_app()
