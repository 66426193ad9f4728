"""
Liveness and Prometheus endpoints.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import Response
from pydantic import BaseModel

from pagebinder import __version__
from pagebinder.monitoring.metrics import get_metrics_text, get_metrics_content_type

router = APIRouter()
metrics_router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str
    renderer: str


@router.get("/health", response_model=HealthResponse, summary="Liveness check")
async def health_check(request: Request):
    """Liveness only; the renderer starts per batch and is not probed here."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
        renderer=type(request.app.state.renderer).__name__
    )


@metrics_router.get("/metrics", include_in_schema=False)
async def metrics():
    return Response(content=get_metrics_text(), media_type=get_metrics_content_type())
