# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Domain models — pure data structures, NO FastAPI dependency.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """Fixed triage roles, in rotation order."""
    ACCOUNT = "account"
    PRODUCER = "producer"
    PO = "po"
    UI_ENG = "uiEng"
    BE_ENG = "beEng"


ROLES: tuple[str, ...] = tuple(r.value for r in Role)

# role -> user id (None when nobody can be assigned)
Assignment = dict[str, Optional[str]]


class DeliveryStatus(str, Enum):
    DELIVERED = "delivered"
    SKIPPED = "skipped"
    DEFERRED = "deferred"


class TriggerResult(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    SKIPPED = "skipped"
    DEFERRED = "deferred"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not TriggerResult.PENDING


class MessageKind(str, Enum):
    ON_DUTY = "on_duty"
    OFF_DUTY = "off_duty"
    ADDED = "added"
    REMOVED = "removed"
    ROLE_CHANGED = "role_changed"
    HEADS_UP_END = "heads_up_end"
    HEADS_UP_START = "heads_up_start"


class RosterMember(BaseModel):
    """A single user eligible for a role."""
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1, max_length=64, description="Chat user id")
    name: str = Field(default="", max_length=255, description="Display name")


class Override(BaseModel):
    """A requested substitution for one (period, role) pair."""
    period_index: int = Field(..., ge=0)
    role: str
    replacement_user_id: str = Field(..., min_length=1)
    requested_by: Optional[str] = None
    approved: bool = False
    approved_by: Optional[str] = None
    approval_timestamp: Optional[datetime] = None


class Period(BaseModel):
    """A scheduling period; both bounds inclusive."""
    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0)
    name: str = ""
    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


class RoleChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: str
    old_user: Optional[str] = None
    new_user: Optional[str] = None


class CurrentState(BaseModel):
    period_index: Optional[int] = None
    assignment: Assignment = Field(default_factory=dict)
    updated_at: Optional[datetime] = None


class Snapshot(BaseModel):
    """Immutable capture of one assignment set and its delivery outcome."""
    model_config = ConfigDict(frozen=True)

    id: str
    captured_at: datetime
    assignment: Assignment
    hash: str
    delivery_status: DeliveryStatus
    delivery_reason: Optional[str] = None
    trigger_id: Optional[str] = None
    next_delivery: Optional[datetime] = None


class TriggerAudit(BaseModel):
    """Idempotency ledger row for one externally scheduled invocation."""
    trigger_id: str
    triggered_at: datetime
    scheduled_at: Optional[datetime] = None
    result: TriggerResult = TriggerResult.PENDING
    details: dict[str, Any] = Field(default_factory=dict)


class DirectMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    text: str
    kind: MessageKind
