# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Controller: System endpoints — health, readiness, metrics.
Pure HTTP layer — no business logic.
"""

from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from triage_rotation.core.config import settings
from triage_rotation.core.dependencies import (
    get_period_repo,
    get_roster_repo,
    get_store,
)

router = APIRouter(tags=["System"])


@router.get("/health")
def health_check():
    """Liveness probe for Docker and orchestration."""
    return {
        "status": "ok",
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "periods_count": get_period_repo().count(),
        "roster_members": get_roster_repo().count(),
    }


@router.get("/health/ready")
def readiness_check():
    """Readiness probe — the rotation store must answer."""
    store_ok = get_store().ping()
    body = {
        "status": "ready" if store_ok else "not_ready",
        "service": settings.SERVICE_NAME,
        "store": "ok" if store_ok else "unreachable",
        "periods_loaded": get_period_repo().count() > 0,
    }
    return JSONResponse(status_code=200 if store_ok else 503, content=body)


@router.get("/metrics")
def prometheus_metrics():
    """Expose Prometheus metrics in OpenMetrics format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
