# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Triage Rotation Service
=======================
Computes who holds each triage role for the active period, tells people
when their duty changes, and keeps the triage group and channel topic
in sync. Scheduled ticks are idempotent per trigger id; weekend ticks
are deferred to the next business day.

Port: 8005
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from triage_rotation.controllers import rotation_controller, system_controller
from triage_rotation.core.config import settings
from triage_rotation.core.dependencies import get_period_repo, get_roster_repo, get_store
from triage_rotation.core.errors import UnauthorizedTriggerError
from triage_rotation.core.logging import get_logger
from triage_rotation.middleware import MetricsMiddleware, RequestIDMiddleware

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Log data and store health at startup."""
    logger.info(
        "%s v%s starting: periods=%d, roster_members=%d, store_ok=%s, tz=%s",
        settings.SERVICE_NAME,
        settings.SERVICE_VERSION,
        get_period_repo().count(),
        get_roster_repo().count(),
        get_store().ping(),
        settings.REFERENCE_TIMEZONE,
    )
    if not settings.CRON_SECRET:
        logger.warning("CRON_SECRET is not set; job endpoints accept unsigned calls")
    yield
    logger.info("%s shutting down", settings.SERVICE_NAME)


app = FastAPI(
    title="Triage Rotation Service",
    description="Role rotation, change notifications, and weekend-aware delivery.",
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestIDMiddleware)


@app.exception_handler(UnauthorizedTriggerError)
async def unauthorized_trigger_handler(request: Request, exc: UnauthorizedTriggerError):
    return JSONResponse(status_code=401, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    req_id = getattr(request.state, "request_id", None)
    logger.exception("Unhandled exception", extra={"request_id": req_id})
    return JSONResponse(
        status_code=500,
        content={"error": "internal_server_error", "detail": str(exc), "request_id": req_id},
    )


app.include_router(system_controller.router)
app.include_router(rotation_controller.jobs_router)
app.include_router(rotation_controller.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.SERVICE_PORT, log_level="info")
