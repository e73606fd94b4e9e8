# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Trigger coordinator — one externally scheduled invocation.

Flow:
    idempotency gate → pending audit → compute assignment + hash
    → weekend?            deferred snapshot, no messages
    → hash unchanged?     skipped snapshot, no messages
    → otherwise           DM the diffed roles, delivered snapshot,
                          admin carryover summary after a deferral
    → terminal audit result (delivered | skipped | deferred | error)

CurrentState is only read here. The boundary check owns persisting it and
messaging its changes; when it lags the computed rotation, deferred and
skipped ticks still refresh the group members.
"""

import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Sequence

from fastapi.concurrency import run_in_threadpool

from triage_rotation.core.config import settings
from triage_rotation.core.errors import DuplicateTriggerError
from triage_rotation.core.logging import get_logger
from triage_rotation.metrics.prometheus import (
    TRIGGER_DURATION,
    TRIGGER_REPLAYS,
    TRIGGERS_TOTAL,
)
from triage_rotation.models.domain import (
    Assignment,
    DeliveryStatus,
    RoleChange,
    Snapshot,
    TriggerAudit,
    TriggerResult,
)
from triage_rotation.repositories.rotation_store import RotationStore
from triage_rotation.services import weekday_policy
from triage_rotation.services.notification_client import NotificationClient
from triage_rotation.services.snapshot_service import (
    SnapshotService,
    carryover,
    compute_hash,
    diff,
)
from triage_rotation.services.state_machine import RotationStateMachine

logger = get_logger(__name__)

REASON_DEFERRED = "weekend defer"
REASON_UNCHANGED = "rotation unchanged"
MESSAGE_NO_PERIOD = "no active period"
MESSAGE_IN_PROGRESS = "trigger already in progress"


def _mention(user_id: Optional[str]) -> str:
    return f"<@{user_id}>" if user_id else "nobody"


def summarize_changes(changes: Sequence[RoleChange]) -> str:
    """Human-readable one-liner, e.g. `producer: <@U2> -> <@U3>`."""
    if not changes:
        return "no role changes"
    return "; ".join(
        f"{c.role}: {_mention(c.old_user)} -> {_mention(c.new_user)}" for c in changes
    )


def build_outcome(
    trigger_id: str, result: TriggerResult, details: dict[str, Any]
) -> dict[str, Any]:
    return {
        "trigger_id": trigger_id,
        "result": result.value,
        "notifications_sent": int(details.get("notifications_sent", 0)),
        "snapshot_id": details.get("snapshot_id"),
        "next_delivery": details.get("next_delivery"),
        "message": details.get("message"),
    }


class TriggerCoordinator:
    """Runs one scheduled invocation at most once per trigger id."""

    def __init__(
        self,
        snapshot_service: SnapshotService,
        state_machine: RotationStateMachine,
        store: RotationStore,
        notification_client: NotificationClient,
        pending_stale_seconds: int = settings.TRIGGER_PENDING_STALE_SECONDS,
    ) -> None:
        self._snapshots = snapshot_service
        self._machine = state_machine
        self._store = store
        self._notifications = notification_client
        self._pending_stale_seconds = pending_stale_seconds

    async def handle(
        self,
        trigger_id: Optional[str] = None,
        scheduled_at: Optional[datetime] = None,
    ) -> dict[str, Any]:
        trigger_id = trigger_id or str(uuid.uuid4())
        scheduled_at = scheduled_at or datetime.now(timezone.utc)

        start = time.perf_counter()
        try:
            outcome = await self._handle(trigger_id, scheduled_at)
        finally:
            TRIGGER_DURATION.observe(time.perf_counter() - start)

        TRIGGERS_TOTAL.labels(result=outcome["result"]).inc()
        logger.info(
            "Trigger %s finished: result=%s, notifications_sent=%d",
            trigger_id, outcome["result"], outcome["notifications_sent"],
            extra={"trigger_id": trigger_id},
        )
        return outcome

    # ── Idempotency gate ──

    async def _handle(self, trigger_id: str, scheduled_at: datetime) -> dict[str, Any]:
        try:
            existing = await run_in_threadpool(self._store.get_audit, trigger_id)
            if existing is not None and existing.result.is_terminal:
                return self._replay(existing)

            if existing is None:
                audit = TriggerAudit(
                    trigger_id=trigger_id,
                    triggered_at=datetime.now(timezone.utc),
                    scheduled_at=scheduled_at,
                )
                try:
                    await run_in_threadpool(self._store.insert_audit, audit)
                except DuplicateTriggerError:
                    return await self._lost_race(trigger_id)
            elif self._still_running(existing):
                return await self._lost_race(trigger_id)
            else:
                logger.warning(
                    "Resuming pending trigger %s from an earlier attempt", trigger_id,
                    extra={"trigger_id": trigger_id},
                )

            return await self._run(trigger_id, scheduled_at)
        except Exception as exc:
            return await self._fail(trigger_id, exc)

    def _still_running(self, audit: TriggerAudit) -> bool:
        """A pending audit younger than the stale window belongs to a live attempt."""
        started = audit.triggered_at
        if started.tzinfo is None:
            started = started.replace(tzinfo=timezone.utc)
        age = datetime.now(timezone.utc) - started
        return age < timedelta(seconds=self._pending_stale_seconds)

    def _replay(self, audit: TriggerAudit) -> dict[str, Any]:
        TRIGGER_REPLAYS.inc()
        logger.info(
            "Trigger %s already processed (%s); returning stored outcome",
            audit.trigger_id, audit.result.value,
            extra={"trigger_id": audit.trigger_id},
        )
        return build_outcome(audit.trigger_id, audit.result, audit.details)

    async def _lost_race(self, trigger_id: str) -> dict[str, Any]:
        audit = await run_in_threadpool(self._store.get_audit, trigger_id)
        if audit is not None and audit.result.is_terminal:
            return self._replay(audit)
        logger.warning(
            "Trigger %s is being handled by another invocation", trigger_id,
            extra={"trigger_id": trigger_id},
        )
        return build_outcome(
            trigger_id, TriggerResult.SKIPPED, {"message": MESSAGE_IN_PROGRESS}
        )

    # ── Decision ──

    async def _run(self, trigger_id: str, scheduled_at: datetime) -> dict[str, Any]:
        period = await self._snapshots.active_period(weekday_policy.local_date(scheduled_at))
        if period is None:
            logger.info("No active period; nothing to announce", extra={"trigger_id": trigger_id})
            return await self._finalize(
                trigger_id, TriggerResult.SKIPPED, {"message": MESSAGE_NO_PERIOD}
            )

        assignment = await self._snapshots.assignment_for(period.index)
        current_hash = compute_hash(assignment)
        latest = await self._snapshots.latest_snapshot()
        state = await self._machine.load_state()
        state_differs = state.period_index != period.index or state.assignment != assignment

        if weekday_policy.should_defer(scheduled_at):
            return await self._defer(trigger_id, scheduled_at, assignment, current_hash, state_differs)

        if latest is not None and latest.hash == current_hash:
            if state_differs:
                await self._machine.publish_members(assignment)
            snapshot = await self._snapshots.save_snapshot(
                assignment, current_hash, DeliveryStatus.SKIPPED,
                reason=REASON_UNCHANGED, trigger_id=trigger_id,
            )
            return await self._finalize(
                trigger_id,
                TriggerResult.SKIPPED,
                {"snapshot_id": snapshot.id, "notifications_sent": 0, "message": REASON_UNCHANGED},
            )

        return await self._deliver(trigger_id, assignment, current_hash, latest)

    async def _defer(
        self,
        trigger_id: str,
        scheduled_at: datetime,
        assignment: Assignment,
        current_hash: str,
        state_differs: bool,
    ) -> dict[str, Any]:
        next_delivery = weekday_policy.next_business_day(scheduled_at)
        if state_differs:
            await self._machine.publish_members(assignment)
        snapshot = await self._snapshots.save_snapshot(
            assignment, current_hash, DeliveryStatus.DEFERRED,
            reason=REASON_DEFERRED, trigger_id=trigger_id, next_delivery=next_delivery,
        )
        logger.info(
            "Weekend trigger deferred until %s", next_delivery.isoformat(),
            extra={"trigger_id": trigger_id},
        )
        return await self._finalize(
            trigger_id,
            TriggerResult.DEFERRED,
            {
                "snapshot_id": snapshot.id,
                "notifications_sent": 0,
                "next_delivery": next_delivery.isoformat(),
                "message": REASON_DEFERRED,
            },
        )

    async def _deliver(
        self,
        trigger_id: str,
        assignment: Assignment,
        current_hash: str,
        latest: Optional[Snapshot],
    ) -> dict[str, Any]:
        changes = diff(latest.assignment if latest else {}, assignment)
        sent = await self._machine.notify_changes(changes)
        await self._machine.publish_members(assignment)

        summary = summarize_changes(changes)
        snapshot = await self._snapshots.save_snapshot(
            assignment, current_hash, DeliveryStatus.DELIVERED,
            reason=summary, trigger_id=trigger_id,
        )

        if latest is not None and latest.delivery_status is DeliveryStatus.DEFERRED:
            carried = carryover(latest.assignment, assignment)
            if carried:
                await self._notifications.send_admin_summary(
                    f"[Rotation] Weekend changes summarized: {summarize_changes(carried)}"
                )

        return await self._finalize(
            trigger_id,
            TriggerResult.DELIVERED,
            {"snapshot_id": snapshot.id, "notifications_sent": sent, "message": summary},
        )

    # ── Audit ──

    async def _finalize(
        self, trigger_id: str, result: TriggerResult, details: dict[str, Any]
    ) -> dict[str, Any]:
        details = {"notifications_sent": 0, **details}
        updated = await run_in_threadpool(
            self._store.update_audit_result, trigger_id, result, details
        )
        if updated is None:
            logger.warning(
                "Audit for trigger %s was no longer pending", trigger_id,
                extra={"trigger_id": trigger_id},
            )
        return build_outcome(trigger_id, result, details)

    async def _fail(self, trigger_id: str, exc: Exception) -> dict[str, Any]:
        logger.exception(
            "Trigger %s failed: %s", trigger_id, exc, extra={"trigger_id": trigger_id}
        )
        details = {"notifications_sent": 0, "message": str(exc)}
        try:
            await run_in_threadpool(
                self._store.update_audit_result, trigger_id, TriggerResult.ERROR, details
            )
        except Exception as mark_exc:
            logger.error("Could not record error for trigger %s: %s", trigger_id, mark_exc)
        await self._notifications.send_admin_summary(
            f"[Rotation] Trigger {trigger_id} failed: {exc}"
        )
        return build_outcome(trigger_id, TriggerResult.ERROR, details)
