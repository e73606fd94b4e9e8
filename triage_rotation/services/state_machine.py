# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Rotation state machine.

States:
    NoActivePeriod             no period contains today; nothing happens
    Active(index, assignment)  persisted CurrentState

Boundary check (daily, morning):
    index changed   → period transition: off/on-duty DMs, group sync, persist
    same index      → mid-cycle check: diff recomputed assignment, DM changes
Eve check (daily, afternoon):
    today == period end and a next period exists → heads-up DMs, no mutation
"""

import asyncio
from datetime import date, datetime, timezone
from typing import Any, Optional, Sequence

from fastapi.concurrency import run_in_threadpool

from triage_rotation.core.logging import get_logger
from triage_rotation.metrics.prometheus import ROTATION_EVENTS
from triage_rotation.models.domain import (
    Assignment,
    CurrentState,
    DirectMessage,
    RoleChange,
)
from triage_rotation.repositories.rotation_store import RotationStore
from triage_rotation.services import weekday_policy
from triage_rotation.services.group_topic_client import GroupTopicClient
from triage_rotation.services.notification_client import NotificationClient
from triage_rotation.services.rotation import assigned_users
from triage_rotation.services.rotation_messages import (
    plan_change_messages,
    plan_heads_up_messages,
    plan_transition_messages,
)
from triage_rotation.services.snapshot_service import SnapshotService, diff

logger = get_logger(__name__)


class RotationStateMachine:
    """Detects period transitions and mid-cycle changes, and tells people."""

    def __init__(
        self,
        snapshot_service: SnapshotService,
        store: RotationStore,
        notification_client: NotificationClient,
        group_topic_client: GroupTopicClient,
    ) -> None:
        self._snapshots = snapshot_service
        self._store = store
        self._notifications = notification_client
        self._group_topic = group_topic_client

    # ── Checks ──

    async def run_boundary_check(self, day: Optional[date] = None) -> dict[str, Any]:
        """Morning check: period transition or mid-cycle change. Never raises."""
        try:
            return await self._boundary_check(day or weekday_policy.today())
        except Exception as exc:
            return await self._report_failure("Boundary Check", exc)

    async def run_eve_check(self, day: Optional[date] = None) -> dict[str, Any]:
        """Afternoon check: heads-up on the last day of a period. Never raises."""
        try:
            return await self._eve_check(day or weekday_policy.today())
        except Exception as exc:
            return await self._report_failure("Eve Check", exc)

    # ── Building blocks (also used by the trigger coordinator) ──

    async def load_state(self) -> CurrentState:
        state = await run_in_threadpool(self._store.get_current_state)
        return state or CurrentState()

    async def notify_changes(self, changes: Sequence[RoleChange]) -> int:
        return await self.dispatch(plan_change_messages(changes))

    async def publish_members(self, assignment: Assignment) -> bool:
        return await self._group_topic.set_active_members(assigned_users(assignment))

    async def dispatch(self, messages: Sequence[DirectMessage]) -> int:
        """Send DMs concurrently; one failed recipient never blocks the rest."""
        if not messages:
            return 0
        results = await asyncio.gather(
            *(
                self._notifications.send_direct(m.user_id, m.text, kind=m.kind.value)
                for m in messages
            ),
            return_exceptions=True,
        )
        sent = 0
        for message, result in zip(messages, results):
            if isinstance(result, BaseException):
                logger.error("Failed to DM user %s: %s", message.user_id, result)
            elif result:
                sent += 1
        return sent

    # ── Internal ──

    async def _boundary_check(self, day: date) -> dict[str, Any]:
        period = await self._snapshots.active_period(day)
        if period is None:
            ROTATION_EVENTS.labels(event="no_active_period").inc()
            logger.info("Boundary check: no active period for %s", day)
            return {"state": "no_active_period", "notifications_sent": 0}

        state = await self.load_state()
        if period.index != state.period_index:
            return await self._transition(state, period.index)
        return await self._mid_cycle(state)

    async def _transition(self, state: CurrentState, new_index: int) -> dict[str, Any]:
        logger.info("Period transition detected: %s -> %s", state.period_index, new_index)
        new_assignment = await self._snapshots.assignment_for(new_index)

        sent = await self.dispatch(plan_transition_messages(state.assignment, new_assignment))
        await self.publish_members(new_assignment)
        await self._save_state(new_index, new_assignment)

        ROTATION_EVENTS.labels(event="transition").inc()
        return {
            "state": "transition",
            "from_period": state.period_index,
            "period_index": new_index,
            "assignment": new_assignment,
            "notifications_sent": sent,
        }

    async def _mid_cycle(self, state: CurrentState) -> dict[str, Any]:
        new_assignment = await self._snapshots.assignment_for(state.period_index)
        changes = diff(state.assignment, new_assignment)
        if not changes:
            logger.info("No mid-cycle changes for period %s", state.period_index)
            return {
                "state": "unchanged",
                "period_index": state.period_index,
                "notifications_sent": 0,
            }

        logger.info(
            "Mid-cycle changes detected: %s", [c.model_dump() for c in changes]
        )
        sent = await self.notify_changes(changes)
        await self.publish_members(new_assignment)
        await self._save_state(state.period_index, new_assignment)

        ROTATION_EVENTS.labels(event="mid_cycle_change").inc()
        return {
            "state": "mid_cycle_change",
            "period_index": state.period_index,
            "assignment": new_assignment,
            "changes": [c.model_dump() for c in changes],
            "notifications_sent": sent,
        }

    async def _eve_check(self, day: date) -> dict[str, Any]:
        period = await self._snapshots.active_period(day)
        if period is None:
            logger.info("Eve check: no active period for %s", day)
            return {"state": "no_active_period", "notifications_sent": 0}
        if day != period.end:
            return {"state": "not_eve", "period_index": period.index, "notifications_sent": 0}

        upcoming = await self._snapshots.next_period(period.index)
        if upcoming is None:
            logger.info("Eve check: no period after %d; schedule might end here", period.index)
            return {"state": "no_next_period", "period_index": period.index, "notifications_sent": 0}

        current = await self._snapshots.assignment_for(period.index)
        following = await self._snapshots.assignment_for(upcoming.index)
        sent = await self.dispatch(plan_heads_up_messages(current, following))

        ROTATION_EVENTS.labels(event="eve_heads_up").inc()
        return {
            "state": "eve",
            "period_index": period.index,
            "next_period_index": upcoming.index,
            "notifications_sent": sent,
        }

    async def _save_state(self, period_index: int, assignment: Assignment) -> None:
        state = CurrentState(
            period_index=period_index,
            assignment=dict(assignment),
            updated_at=datetime.now(timezone.utc),
        )
        await run_in_threadpool(self._store.save_current_state, state)

    async def _report_failure(self, check: str, exc: Exception) -> dict[str, Any]:
        ROTATION_EVENTS.labels(event="error").inc()
        logger.exception("[%s] Error: %s", check, exc)
        await self._notifications.send_admin_summary(f"[{check}] Error: {exc}")
        return {"state": "error", "message": str(exc), "notifications_sent": 0}
