# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Request / Response schemas — API contract definitions.
These are Pydantic models used ONLY at the controller (HTTP) boundary.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field


# ── Trigger Schemas ──

class TriggerRequest(BaseModel):
    trigger_id: Optional[str] = Field(
        default=None, min_length=1, max_length=255, description="Scheduler correlation id"
    )
    scheduled_at: Optional[datetime] = Field(
        default=None, description="Scheduled tick; defaults to now"
    )


class TriggerResponse(BaseModel):
    trigger_id: str
    result: str
    notifications_sent: int = 0
    snapshot_id: Optional[str] = None
    next_delivery: Optional[str] = None
    message: Optional[str] = None


# ── Rotation Schemas ──

class PeriodResponse(BaseModel):
    index: int
    name: str
    start: date
    end: date


class CurrentRotationResponse(BaseModel):
    period: Optional[PeriodResponse] = None
    state_period_index: Optional[int] = None
    assignment: dict[str, Optional[str]] = Field(default_factory=dict)
    updated_at: Optional[datetime] = None


class SnapshotResponse(BaseModel):
    id: str
    captured_at: datetime
    assignment: dict[str, Optional[str]]
    hash: str
    delivery_status: str
    delivery_reason: Optional[str] = None
    trigger_id: Optional[str] = None
    next_delivery: Optional[datetime] = None


class UpcomingPeriodResponse(BaseModel):
    period: PeriodResponse
    assignment: dict[str, Optional[str]]
