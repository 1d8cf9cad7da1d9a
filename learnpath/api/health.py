"""Health and readiness endpoints.

  /health (liveness):  "is this process alive?"  Always 200; the body
                       reports each dependency as ok / degraded /
                       not_configured.
  /ready (readiness):  "can this instance take traffic?"  503 when the
                       document store is configured but unreachable.

Redis is never critical: the cache, change feed and task queue all have
in-memory fallbacks, and a cache miss just goes to the store.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Response, status

from learnpath.db.engine import check_connection
from learnpath.db.redis import redis_pool

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _check_redis() -> str:
    if redis_pool is None:
        return "not_configured"
    try:
        await redis_pool.ping()  # type: ignore[misc]
    except Exception:
        logger.exception("Redis health check failed")
        return "degraded"
    return "ok"


@router.get("/health")
async def health() -> dict:
    """Liveness probe + dependency status.

    Returns 200 even when degraded; the status field carries the health.
    A 503 here would make the orchestrator restart a process that is
    only waiting on a dependency.
    """
    checks = {
        "database": await check_connection(),
        "redis": await _check_redis(),
    }
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    """Readiness probe: 503 takes this instance out of rotation, no restart."""
    if await check_connection() == "degraded":
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
