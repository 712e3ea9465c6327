"""
Health Check Endpoints

Provides:
1. /health - Service and database status
2. /health/live - Simple liveness check (for k8s)
3. /health/ready - Readiness check (for k8s)
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from database.async_engine import check_database_connection

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

# Application start time for uptime calculation
_start_time = datetime.utcnow()


async def _database_ok(request: Request) -> bool:
    return await check_database_connection(getattr(request.app.state, "engine", None))


@router.get("/health")
async def health_check(request: Request) -> JSONResponse:
    """Overall service health with permission cache statistics."""
    database_ok = await _database_ok(request)
    cache = getattr(request.app.state, "permission_cache", None)

    body = {
        "status": "healthy" if database_ok else "degraded",
        "timestamp": datetime.utcnow().isoformat(),
        "uptime_seconds": int((datetime.utcnow() - _start_time).total_seconds()),
        "database": "connected" if database_ok else "unavailable",
        "permission_cache": cache.stats() if cache is not None else None,
    }
    return JSONResponse(content=body, status_code=200 if database_ok else 503)


@router.get("/health/live")
async def liveness_check() -> Response:
    """
    Kubernetes liveness check.

    If the server responds, it's alive.
    """
    return Response(content="OK", media_type="text/plain")


@router.get("/health/ready")
async def readiness_check(request: Request) -> JSONResponse:
    """Kubernetes readiness check. 200 if the database answers, else 503."""
    if await _database_ok(request):
        return JSONResponse(content={"status": "ready", "database": "connected"}, status_code=200)
    return JSONResponse(content={"status": "not_ready", "database": "unavailable"}, status_code=503)
