"""
Monitoring Router
=================

Handles health and monitoring endpoints:
- GET /health/ping - Liveness probe
- GET /metrics     - Prometheus metrics
"""

from fastapi import APIRouter, Response
from fastapi.responses import PlainTextResponse

from src.api.metrics import get_metrics_response

router = APIRouter(tags=["Monitoring"])


@router.get("/health/ping", response_class=PlainTextResponse)
def ping():
    """Liveness only; says nothing about loaded models."""
    return "success"


@router.get("/metrics")
def metrics():
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    content, media_type = get_metrics_response()
    return Response(content=content, media_type=media_type)
