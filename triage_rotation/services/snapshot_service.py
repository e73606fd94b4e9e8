# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Notification snapshots — capture, hash, diff, and persist
assignment sets so each trigger can tell whether anything changed.
"""

import hashlib
import json
import uuid
from datetime import date, datetime, timezone
from typing import Mapping, Optional

from fastapi.concurrency import run_in_threadpool

from triage_rotation.core.config import settings
from triage_rotation.core.errors import NoActivePeriodError
from triage_rotation.core.logging import get_logger
from triage_rotation.metrics.prometheus import SNAPSHOTS_SAVED
from triage_rotation.models.domain import (
    Assignment,
    DeliveryStatus,
    Period,
    RoleChange,
    Snapshot,
)
from triage_rotation.repositories.override_repository import OverrideRepository
from triage_rotation.repositories.period_repository import PeriodRepository
from triage_rotation.repositories.roster_repository import RosterRepository
from triage_rotation.repositories.rotation_store import RotationStore
from triage_rotation.services import weekday_policy
from triage_rotation.services.rotation import compute_assignment

logger = get_logger(__name__)


def compute_hash(assignment: Mapping[str, Optional[str]]) -> str:
    """SHA-256 of the assignment serialized with sorted role keys."""
    serialized = json.dumps(
        dict(assignment), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def diff(
    previous: Optional[Mapping[str, Optional[str]]],
    current: Optional[Mapping[str, Optional[str]]],
) -> list[RoleChange]:
    """Roles whose user differs, over the sorted union of both key sets."""
    previous = previous or {}
    current = current or {}
    roles = sorted(set(previous) | set(current))
    return [
        RoleChange(role=role, old_user=previous.get(role), new_user=current.get(role))
        for role in roles
        if previous.get(role) != current.get(role)
    ]


def carryover(
    deferred: Optional[Mapping[str, Optional[str]]],
    current: Optional[Mapping[str, Optional[str]]],
) -> Optional[list[RoleChange]]:
    """Changes between a deferred snapshot and now; None when nothing moved."""
    if deferred is None or current is None:
        return None
    changes = diff(deferred, current)
    return changes or None


class SnapshotService:
    """Business logic around notification snapshots."""

    def __init__(
        self,
        roster_repo: RosterRepository,
        override_repo: OverrideRepository,
        period_repo: PeriodRepository,
        store: RotationStore,
        fallback_users: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._rosters = roster_repo
        self._overrides = override_repo
        self._periods = period_repo
        self._store = store
        self._fallback_users = (
            fallback_users if fallback_users is not None else settings.FALLBACK_USERS
        )

    compute_hash = staticmethod(compute_hash)
    diff = staticmethod(diff)
    carryover = staticmethod(carryover)

    # ── Assignments ──

    async def assignment_for(self, period_index: int) -> Assignment:
        rosters = await run_in_threadpool(self._rosters.get_rosters)
        overrides = await run_in_threadpool(self._overrides.get_approved_overrides)
        return compute_assignment(
            period_index, rosters, overrides, fallback_users=self._fallback_users
        )

    async def active_period(self, day: Optional[date] = None) -> Optional[Period]:
        day = day or weekday_policy.today()
        return await run_in_threadpool(self._periods.find_period_containing, day)

    async def next_period(self, index: int) -> Optional[Period]:
        return await run_in_threadpool(self._periods.find_period_after, index)

    async def current_assignments(self, day: Optional[date] = None) -> tuple[Period, Assignment]:
        """Resolve the active period and its assignment. Raises NoActivePeriodError."""
        day = day or weekday_policy.today()
        period = await self.active_period(day)
        if period is None:
            raise NoActivePeriodError(day)
        return period, await self.assignment_for(period.index)

    # ── Persistence ──

    async def latest_snapshot(self) -> Optional[Snapshot]:
        return await run_in_threadpool(self._store.get_latest_snapshot)

    async def recent_snapshots(self, limit: Optional[int] = None) -> list[Snapshot]:
        return await run_in_threadpool(
            self._store.list_snapshots, limit or settings.SNAPSHOT_LIST_LIMIT
        )

    async def save_snapshot(
        self,
        assignment: Assignment,
        snapshot_hash: str,
        status: DeliveryStatus,
        reason: Optional[str] = None,
        trigger_id: Optional[str] = None,
        next_delivery: Optional[datetime] = None,
    ) -> Snapshot:
        """Append an immutable snapshot row."""
        snapshot = Snapshot(
            id=str(uuid.uuid4()),
            captured_at=datetime.now(timezone.utc),
            assignment=dict(assignment),
            hash=snapshot_hash,
            delivery_status=status,
            delivery_reason=reason,
            trigger_id=trigger_id,
            next_delivery=next_delivery,
        )
        saved = await run_in_threadpool(self._store.insert_snapshot, snapshot)
        SNAPSHOTS_SAVED.labels(status=status.value).inc()
        logger.info(
            "Snapshot saved: id=%s, status=%s, reason=%s", saved.id, status.value, reason
        )
        return saved
