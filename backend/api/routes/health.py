"""Health check endpoints.

Provides:
- Basic liveness probe (/health/)
- Dependency check (/health/health): database plus circuit breaker states
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.config import get_settings
from app.dependencies import get_runtime
from app.runtime import AutomationRuntime

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

_start_time = time.monotonic()
_start_datetime = datetime.now(timezone.utc).isoformat()


@router.get("/", response_model=dict[str, Any])
async def root() -> dict[str, Any]:
    """
    Get API root information and version.
    Used as a simple liveness probe.
    """
    settings = get_settings()
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "ok",
    }


@router.get("/health")
async def health_check(runtime: AutomationRuntime = Depends(get_runtime)):
    """
    Health check with dependency verification.
    Returns 503 if the database is unreachable. Open breakers degrade the
    status but do not fail the probe.
    """
    checks: dict[str, str] = {}

    try:
        async with runtime.session_factory() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        checks["database"] = "unavailable"

    breakers = runtime.breakers.get_status()
    open_channels = [name for name, status in breakers.items() if status["state"] != "closed"]

    if checks["database"] != "ok":
        overall = "unhealthy"
    elif open_channels:
        overall = "degraded"
    else:
        overall = "healthy"

    body = {
        "status": overall,
        "checks": checks,
        "circuit_breakers": breakers,
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
        "started_at": _start_datetime,
    }
    return JSONResponse(status_code=503 if overall == "unhealthy" else 200, content=body)
