"""
Health check endpoints for monitoring application status.

Provides:
- Basic health check
- Readiness check (database, Redis role cache)
- Liveness check
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Dict, Any

from fastapi import APIRouter, status, Response

from bi_portal.cache.redis_cache import get_role_cache
from bi_portal.database.connection import check_connection
from bi_portal.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/", status_code=status.HTTP_200_OK)
async def health_check() -> Dict[str, Any]:
    """
    Basic health check endpoint.

    Returns 200 if application is running.
    """
    return {
        "status": "healthy",
        "timestamp": _now(),
        "service": "bi-portal-access",
    }


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check(response: Response) -> Dict[str, Any]:
    """
    Readiness check endpoint.

    Verifies connectivity to the database and, when configured, Redis.
    """
    checks = {
        "database": await _check_database(),
        "redis": await _check_redis(),
    }

    all_healthy = all(check["status"] in ("healthy", "disabled") for check in checks.values())

    if not all_healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return {
        "status": "healthy" if all_healthy else "unhealthy",
        "timestamp": _now(),
        "checks": checks,
    }


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> Dict[str, str]:
    """
    Liveness check endpoint.

    Returns 200 if process is running, even if dependencies are down.
    """
    return {
        "status": "alive",
        "timestamp": _now(),
    }


async def _check_database() -> Dict[str, Any]:
    start_time = time.time()
    healthy = await asyncio.to_thread(check_connection)
    result = {
        "status": "healthy" if healthy else "unhealthy",
        "response_time_ms": round((time.time() - start_time) * 1000, 2),
    }
    if not healthy:
        result["error"] = "SELECT 1 failed"
    return result


async def _check_redis() -> Dict[str, Any]:
    cache = get_role_cache()
    if cache is None:
        return {"status": "disabled"}

    start_time = time.time()
    healthy = await cache.ping()
    result = {
        "status": "healthy" if healthy else "unhealthy",
        "response_time_ms": round((time.time() - start_time) * 1000, 2),
    }
    if not healthy:
        result["error"] = "PING failed"
    return result
