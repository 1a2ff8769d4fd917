"""Prometheus exposition endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Response

from chatrelay.observability.metrics import get_content_type, get_metrics

router = APIRouter()


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Lifecycle, relay, roster and broadcast counters in text format."""
    return Response(content=get_metrics(), media_type=get_content_type())
