# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Controller: Scheduled jobs and read-only rotation endpoints.
Thin HTTP layer — delegates ALL logic to the coordinator / state machine.
"""

import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from triage_rotation.core.config import settings
from triage_rotation.core.dependencies import (
    get_coordinator,
    get_period_repo,
    get_snapshot_service,
    get_state_machine,
    get_store,
)
from triage_rotation.core.errors import UnauthorizedTriggerError
from triage_rotation.core.logging import get_logger
from triage_rotation.models.domain import Period, Snapshot
from triage_rotation.repositories.period_repository import PeriodRepository
from triage_rotation.repositories.rotation_store import RotationStore
from triage_rotation.schemas.rotation import (
    CurrentRotationResponse,
    PeriodResponse,
    SnapshotResponse,
    TriggerRequest,
    TriggerResponse,
    UpcomingPeriodResponse,
)
from triage_rotation.services import weekday_policy
from triage_rotation.services.snapshot_service import SnapshotService
from triage_rotation.services.state_machine import RotationStateMachine
from triage_rotation.services.trigger_coordinator import TriggerCoordinator

logger = get_logger(__name__)

jobs_router = APIRouter(prefix="/jobs/rotation", tags=["Jobs"])
router = APIRouter(prefix="/api/v1/rotation", tags=["Rotation"])


def verify_cron_signature(
    request: Request,
    x_cron_signature: Optional[str] = Header(default=None),
) -> None:
    """Reject the call before any audit row exists when the signature is wrong."""
    secret = settings.CRON_SECRET
    if not secret:
        return
    if not x_cron_signature or not hmac.compare_digest(
        x_cron_signature.encode("utf-8"), secret.encode("utf-8")
    ):
        logger.warning(
            "Cron request unauthorized: %s",
            request.url.path,
            extra={"request_id": getattr(request.state, "request_id", None)},
        )
        raise UnauthorizedTriggerError("Invalid cron signature")


def _period_response(period: Period) -> PeriodResponse:
    return PeriodResponse(index=period.index, name=period.name, start=period.start, end=period.end)


def _snapshot_response(snapshot: Snapshot) -> SnapshotResponse:
    return SnapshotResponse(
        id=snapshot.id,
        captured_at=snapshot.captured_at,
        assignment=snapshot.assignment,
        hash=snapshot.hash,
        delivery_status=snapshot.delivery_status.value,
        delivery_reason=snapshot.delivery_reason,
        trigger_id=snapshot.trigger_id,
        next_delivery=snapshot.next_delivery,
    )


def _check_response(outcome: dict) -> JSONResponse:
    status_code = 500 if outcome.get("state") == "error" else 200
    return JSONResponse(status_code=status_code, content=jsonable_encoder(outcome))


# ── Scheduled jobs ──

@jobs_router.post(
    "/notify",
    status_code=202,
    response_model=TriggerResponse,
    dependencies=[Depends(verify_cron_signature)],
)
async def notify_rotation(
    payload: Optional[TriggerRequest] = None,
    coordinator: TriggerCoordinator = Depends(get_coordinator),
):
    """Run one scheduled notification tick. Safe to retry with the same trigger_id."""
    payload = payload or TriggerRequest()
    outcome = await coordinator.handle(
        trigger_id=payload.trigger_id, scheduled_at=payload.scheduled_at
    )
    status_code = 500 if outcome["result"] == "error" else 202
    return JSONResponse(
        status_code=status_code,
        content={"status": "accepted" if status_code == 202 else "error", **outcome},
    )


@jobs_router.post("/boundary-check", dependencies=[Depends(verify_cron_signature)])
async def boundary_check(
    machine: RotationStateMachine = Depends(get_state_machine),
):
    """Morning check: period transitions and mid-cycle override changes."""
    return _check_response(await machine.run_boundary_check())


@jobs_router.post("/eve-check", dependencies=[Depends(verify_cron_signature)])
async def eve_check(
    machine: RotationStateMachine = Depends(get_state_machine),
):
    """Afternoon check: heads-up on the last day of a period."""
    return _check_response(await machine.run_eve_check())


# ── Read-only rotation views ──

@router.get("/current", response_model=CurrentRotationResponse)
async def get_current_rotation(
    store: RotationStore = Depends(get_store),
    snapshots: SnapshotService = Depends(get_snapshot_service),
):
    """Persisted rotation state plus the period containing today."""
    state = await run_in_threadpool(store.get_current_state)
    period = await snapshots.active_period()
    return CurrentRotationResponse(
        period=_period_response(period) if period else None,
        state_period_index=state.period_index if state else None,
        assignment=state.assignment if state else {},
        updated_at=state.updated_at if state else None,
    )


@router.get("/snapshots", response_model=list[SnapshotResponse])
async def list_snapshots(
    limit: Optional[int] = Query(default=None, ge=1, le=100, description="Max rows"),
    snapshots: SnapshotService = Depends(get_snapshot_service),
):
    """Most recent notification snapshots, newest first."""
    return [_snapshot_response(s) for s in await snapshots.recent_snapshots(limit)]


@router.get("/upcoming", response_model=list[UpcomingPeriodResponse])
async def list_upcoming(
    limit: int = Query(default=3, ge=1, le=20, description="Max periods"),
    period_repo: PeriodRepository = Depends(get_period_repo),
    snapshots: SnapshotService = Depends(get_snapshot_service),
):
    """Future periods with their computed assignments."""
    periods = await run_in_threadpool(period_repo.upcoming_periods, weekday_policy.today())
    return [
        UpcomingPeriodResponse(
            period=_period_response(p),
            assignment=await snapshots.assignment_for(p.index),
        )
        for p in periods[:limit]
    ]
