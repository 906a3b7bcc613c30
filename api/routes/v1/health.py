"""
api/routes/v1/health.py -- Liveness, readiness and dependency health probes.

Routes (all under /api/v1, no auth):
  GET /health           -- ping: status, timestamp, uptime in seconds
  GET /health/live      -- process is up
  GET /health/ready     -- 200 when the user store answers, 503 otherwise
  GET /health/detailed  -- per-dependency checks with response times

The probes fall under the default rate limit only. Load balancers poll them,
so they carry no per-route limit of their own.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.models import (
    DependencyCheck,
    DetailedHealthResponse,
    LivenessResponse,
    PingResponse,
    ReadinessResponse,
)
from core.config import get_settings

logger = logging.getLogger("accounts.health")

HEALTHY = "healthy"
DEGRADED = "degraded"
UNHEALTHY = "unhealthy"

# Database probes slower than this are reported as degraded.
SLOW_PROBE_MS = 1000

router = APIRouter()


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _uptime(request: Request) -> int:
    return int(time.monotonic() - request.app.state.started_at)


def check_database(request: Request) -> DependencyCheck:
    """Run a trivial query against the user store and time it."""
    start = time.perf_counter()
    try:
        request.app.state.store.ping()
    except Exception as exc:
        elapsed = int((time.perf_counter() - start) * 1000)
        logger.warning("Database health check failed: %s", exc)
        return DependencyCheck(status=UNHEALTHY, response_time=elapsed, message=str(exc) or "Error unknown.")
    elapsed = int((time.perf_counter() - start) * 1000)
    if elapsed > SLOW_PROBE_MS:
        return DependencyCheck(status=DEGRADED, response_time=elapsed, message="Slow response time.")
    return DependencyCheck(status=HEALTHY, response_time=elapsed, message="Connection successful.")


def overall_status(checks: dict[str, DependencyCheck]) -> str:
    """Worst status across all checks."""
    statuses = {c.status for c in checks.values()}
    if UNHEALTHY in statuses:
        return UNHEALTHY
    if DEGRADED in statuses:
        return DEGRADED
    return HEALTHY


@router.get("/health", response_model=PingResponse)
def ping(request: Request) -> PingResponse:
    return PingResponse(timestamp=_timestamp(), uptime=_uptime(request))


@router.get("/health/live", response_model=LivenessResponse)
def live() -> LivenessResponse:
    return LivenessResponse(timestamp=_timestamp())


@router.get("/health/ready", response_model=ReadinessResponse)
def ready(request: Request) -> JSONResponse:
    """Ready only when the database check is fully healthy; a degraded store is not ready."""
    db_ready = check_database(request).status == HEALTHY
    body = ReadinessResponse(
        status="ready" if db_ready else "not_ready",
        timestamp=_timestamp(),
        dependencies={"database": db_ready},
    )
    return JSONResponse(status_code=200 if db_ready else 503, content=body.model_dump())


@router.get("/health/detailed", response_model=DetailedHealthResponse)
def detailed(request: Request) -> JSONResponse:
    settings = get_settings()
    checks = {"database": check_database(request)}
    status = overall_status(checks)
    body = DetailedHealthResponse(
        status=status,
        timestamp=_timestamp(),
        uptime=_uptime(request),
        checks=checks,
        version=settings.app_version,
        environment=settings.environment,
    )
    return JSONResponse(
        status_code=503 if status == UNHEALTHY else 200,
        content=body.model_dump(by_alias=True),
    )
