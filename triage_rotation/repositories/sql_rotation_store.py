# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Data-access layer for rotation state, notification snapshots, and trigger audits."""
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from triage_rotation.core.errors import DuplicateTriggerError, PersistenceError
from triage_rotation.core.logging import get_logger
from triage_rotation.models.domain import (
    CurrentState,
    DeliveryStatus,
    Snapshot,
    TriggerAudit,
    TriggerResult,
)

logger = get_logger(__name__)

# Timestamps are fixed-width UTC text so ORDER BY sorts chronologically on
# every backend.
_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS rotation_state (
        id INTEGER PRIMARY KEY,
        period_index INTEGER,
        assignment TEXT NOT NULL,
        updated_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS trigger_audits (
        trigger_id VARCHAR(255) PRIMARY KEY,
        triggered_at TEXT NOT NULL,
        scheduled_at TEXT,
        result VARCHAR(16) NOT NULL
            CHECK (result IN ('pending', 'delivered', 'skipped', 'deferred', 'error')),
        details TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notification_snapshots (
        id VARCHAR(64) PRIMARY KEY,
        seq INTEGER NOT NULL,
        captured_at TEXT NOT NULL,
        assignment TEXT NOT NULL,
        hash VARCHAR(64) NOT NULL,
        delivery_status VARCHAR(16) NOT NULL
            CHECK (delivery_status IN ('delivered', 'skipped', 'deferred')),
        delivery_reason TEXT,
        trigger_id VARCHAR(255),
        next_delivery TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_notification_snapshots_captured_at "
    "ON notification_snapshots (captured_at)",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_notification_snapshots_seq "
    "ON notification_snapshots (seq)",
    "CREATE INDEX IF NOT EXISTS idx_trigger_audits_triggered_at "
    "ON trigger_audits (triggered_at)",
)

SNAPSHOT_COLS = (
    "id, captured_at, assignment, hash, delivery_status, "
    "delivery_reason, trigger_id, next_delivery"
)
AUDIT_COLS = "trigger_id, triggered_at, scheduled_at, result, details"


def _ts(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(_TS_FORMAT)


def _parse_ts(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _json(value: Any) -> Any:
    if value is None:
        return None
    return value if isinstance(value, (dict, list)) else json.loads(value)


def _row_to_snapshot(row) -> Snapshot:
    return Snapshot(
        id=str(row["id"]),
        captured_at=_parse_ts(row["captured_at"]),
        assignment=_json(row["assignment"]) or {},
        hash=row["hash"],
        delivery_status=DeliveryStatus(row["delivery_status"]),
        delivery_reason=row["delivery_reason"],
        trigger_id=row["trigger_id"],
        next_delivery=_parse_ts(row["next_delivery"]),
    )


def _row_to_audit(row) -> TriggerAudit:
    return TriggerAudit(
        trigger_id=row["trigger_id"],
        triggered_at=_parse_ts(row["triggered_at"]),
        scheduled_at=_parse_ts(row["scheduled_at"]),
        result=TriggerResult(row["result"]),
        details=_json(row["details"]) or {},
    )


class SqlRotationStore:
    def __init__(self, engine: Engine):
        self._engine = engine

    def ensure_schema(self) -> None:
        try:
            with self._engine.begin() as conn:
                for statement in SCHEMA_STATEMENTS:
                    conn.execute(text(statement))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Schema setup failed: {exc}") from exc

    def ping(self) -> bool:
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as exc:
            logger.warning("Rotation store ping failed: %s", exc)
            return False

    # ── Current state ──────────────────────────────────────────────────

    def get_current_state(self) -> Optional[CurrentState]:
        try:
            with self._engine.connect() as conn:
                row = conn.execute(
                    text("SELECT period_index, assignment, updated_at FROM rotation_state WHERE id = 1")
                ).mappings().first()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to read rotation state: {exc}") from exc
        if not row:
            return None
        return CurrentState(
            period_index=row["period_index"],
            assignment=_json(row["assignment"]) or {},
            updated_at=_parse_ts(row["updated_at"]),
        )

    def save_current_state(self, state: CurrentState) -> CurrentState:
        try:
            with self._engine.begin() as conn:
                conn.execute(
                    text("""
                        INSERT INTO rotation_state (id, period_index, assignment, updated_at)
                        VALUES (1, :period_index, :assignment, :updated_at)
                        ON CONFLICT (id) DO UPDATE SET
                            period_index = excluded.period_index,
                            assignment = excluded.assignment,
                            updated_at = excluded.updated_at
                    """),
                    {
                        "period_index": state.period_index,
                        "assignment": json.dumps(state.assignment, sort_keys=True),
                        "updated_at": _ts(state.updated_at or datetime.now(timezone.utc)),
                    },
                )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to save rotation state: {exc}") from exc
        return state

    # ── Snapshots (append-only) ────────────────────────────────────────

    def insert_snapshot(self, snapshot: Snapshot) -> Snapshot:
        try:
            with self._engine.begin() as conn:
                conn.execute(
                    text(f"""
                        INSERT INTO notification_snapshots ({SNAPSHOT_COLS}, seq)
                        VALUES (:id, :captured_at, :assignment, :hash, :delivery_status,
                                :delivery_reason, :trigger_id, :next_delivery,
                                (SELECT COALESCE(MAX(seq), 0) + 1 FROM notification_snapshots))
                    """),
                    {
                        "id": snapshot.id,
                        "captured_at": _ts(snapshot.captured_at),
                        "assignment": json.dumps(snapshot.assignment, sort_keys=True),
                        "hash": snapshot.hash,
                        "delivery_status": snapshot.delivery_status.value,
                        "delivery_reason": snapshot.delivery_reason,
                        "trigger_id": snapshot.trigger_id,
                        "next_delivery": _ts(snapshot.next_delivery),
                    },
                )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to insert snapshot {snapshot.id}: {exc}") from exc
        return snapshot

    def get_latest_snapshot(self) -> Optional[Snapshot]:
        snapshots = self.list_snapshots(1)
        return snapshots[0] if snapshots else None

    def list_snapshots(self, limit: int) -> List[Snapshot]:
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(
                    text(f"""
                        SELECT {SNAPSHOT_COLS} FROM notification_snapshots
                        ORDER BY captured_at DESC, seq DESC
                        LIMIT :limit
                    """),
                    {"limit": limit},
                ).mappings().all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to read snapshots: {exc}") from exc
        return [_row_to_snapshot(r) for r in rows]

    # ── Trigger audits ─────────────────────────────────────────────────

    def get_audit(self, trigger_id: str) -> Optional[TriggerAudit]:
        try:
            with self._engine.connect() as conn:
                row = conn.execute(
                    text(f"SELECT {AUDIT_COLS} FROM trigger_audits WHERE trigger_id = :id"),
                    {"id": trigger_id},
                ).mappings().first()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to read audit {trigger_id}: {exc}") from exc
        return _row_to_audit(row) if row else None

    def insert_audit(self, audit: TriggerAudit) -> TriggerAudit:
        try:
            with self._engine.begin() as conn:
                conn.execute(
                    text(f"""
                        INSERT INTO trigger_audits ({AUDIT_COLS})
                        VALUES (:trigger_id, :triggered_at, :scheduled_at, :result, :details)
                    """),
                    {
                        "trigger_id": audit.trigger_id,
                        "triggered_at": _ts(audit.triggered_at),
                        "scheduled_at": _ts(audit.scheduled_at),
                        "result": audit.result.value,
                        "details": json.dumps(audit.details, default=str),
                    },
                )
        except IntegrityError as exc:
            raise DuplicateTriggerError(audit.trigger_id) from exc
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to insert audit {audit.trigger_id}: {exc}") from exc
        return audit

    def update_audit_result(
        self, trigger_id: str, result: TriggerResult, details: Dict[str, Any]
    ) -> Optional[TriggerAudit]:
        try:
            with self._engine.begin() as conn:
                row = conn.execute(
                    text(f"""
                        SELECT {AUDIT_COLS} FROM trigger_audits
                        WHERE trigger_id = :id AND result = 'pending'
                    """),
                    {"id": trigger_id},
                ).mappings().first()
                if not row:
                    return None
                merged = {**(_json(row["details"]) or {}), **details}
                updated = conn.execute(
                    text("""
                        UPDATE trigger_audits SET result = :result, details = :details
                        WHERE trigger_id = :id AND result = 'pending'
                    """),
                    {
                        "id": trigger_id,
                        "result": result.value,
                        "details": json.dumps(merged, default=str),
                    },
                )
                if updated.rowcount == 0:
                    return None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to update audit {trigger_id}: {exc}") from exc
        audit = _row_to_audit(row)
        return audit.model_copy(update={"result": result, "details": merged})

    def get_latest_audit(self) -> Optional[TriggerAudit]:
        try:
            with self._engine.connect() as conn:
                row = conn.execute(
                    text(f"""
                        SELECT {AUDIT_COLS} FROM trigger_audits
                        ORDER BY triggered_at DESC
                        LIMIT 1
                    """)
                ).mappings().first()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to read latest audit: {exc}") from exc
        return _row_to_audit(row) if row else None
