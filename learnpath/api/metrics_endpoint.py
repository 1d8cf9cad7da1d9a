"""Prometheus metrics endpoint.

Scraped by Prometheus every N seconds; plain text exposition format,
not JSON:

  # HELP progress_cache_operations_total Progress cache operations by result
  # TYPE progress_cache_operations_total counter
  progress_cache_operations_total{operation="hit"} 1432.0
  progress_cache_operations_total{operation="miss"} 17.0

Metric data reveals request rates and error patterns: expose /metrics
only to the Prometheus server (network policy or a separate port).
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Expose all Prometheus metrics in text exposition format."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
