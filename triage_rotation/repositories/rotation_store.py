# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Repository: Rotation persistence contract and the in-memory implementation.
One implementation is chosen at startup; services only see RotationStore.
"""

import threading
from typing import Any, Optional, Protocol

from triage_rotation.core.errors import DuplicateTriggerError
from triage_rotation.models.domain import (
    CurrentState,
    Snapshot,
    TriggerAudit,
    TriggerResult,
)


class RotationStore(Protocol):
    """Persisted rotation state, append-only snapshots, and trigger audits."""

    def get_current_state(self) -> Optional[CurrentState]:
        ...

    def save_current_state(self, state: CurrentState) -> CurrentState:
        ...

    def insert_snapshot(self, snapshot: Snapshot) -> Snapshot:
        ...

    def get_latest_snapshot(self) -> Optional[Snapshot]:
        ...

    def list_snapshots(self, limit: int) -> list[Snapshot]:
        ...

    def get_audit(self, trigger_id: str) -> Optional[TriggerAudit]:
        ...

    def insert_audit(self, audit: TriggerAudit) -> TriggerAudit:
        """Raise DuplicateTriggerError when the trigger id already exists."""
        ...

    def update_audit_result(
        self, trigger_id: str, result: TriggerResult, details: dict[str, Any]
    ) -> Optional[TriggerAudit]:
        """Move a pending audit to `result`; None when no pending row matched."""
        ...

    def get_latest_audit(self) -> Optional[TriggerAudit]:
        ...

    def ping(self) -> bool:
        ...


class InMemoryRotationStore:
    """Process-local store for development and tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state: Optional[CurrentState] = None
        self._snapshots: list[Snapshot] = []
        self._audits: dict[str, TriggerAudit] = {}

    # ── Current state ──

    def get_current_state(self) -> Optional[CurrentState]:
        with self._lock:
            return self._state.model_copy(deep=True) if self._state else None

    def save_current_state(self, state: CurrentState) -> CurrentState:
        with self._lock:
            self._state = state.model_copy(deep=True)
        return state

    # ── Snapshots (append-only) ──

    def insert_snapshot(self, snapshot: Snapshot) -> Snapshot:
        with self._lock:
            self._snapshots.append(snapshot)
        return snapshot

    def get_latest_snapshot(self) -> Optional[Snapshot]:
        with self._lock:
            return self._snapshots[-1] if self._snapshots else None

    def list_snapshots(self, limit: int) -> list[Snapshot]:
        with self._lock:
            return list(reversed(self._snapshots[-limit:])) if limit > 0 else []

    # ── Trigger audits ──

    def get_audit(self, trigger_id: str) -> Optional[TriggerAudit]:
        with self._lock:
            audit = self._audits.get(trigger_id)
            return audit.model_copy(deep=True) if audit else None

    def insert_audit(self, audit: TriggerAudit) -> TriggerAudit:
        with self._lock:
            if audit.trigger_id in self._audits:
                raise DuplicateTriggerError(audit.trigger_id)
            self._audits[audit.trigger_id] = audit.model_copy(deep=True)
        return audit

    def update_audit_result(
        self, trigger_id: str, result: TriggerResult, details: dict[str, Any]
    ) -> Optional[TriggerAudit]:
        with self._lock:
            audit = self._audits.get(trigger_id)
            if audit is None or audit.result is not TriggerResult.PENDING:
                return None
            updated = audit.model_copy(
                update={"result": result, "details": {**audit.details, **details}},
                deep=True,
            )
            self._audits[trigger_id] = updated
            return updated.model_copy(deep=True)

    def get_latest_audit(self) -> Optional[TriggerAudit]:
        with self._lock:
            if not self._audits:
                return None
            return max(self._audits.values(), key=lambda a: a.triggered_at)

    def ping(self) -> bool:
        return True

    # ── Bulk / internal ──

    def clear(self) -> None:
        with self._lock:
            self._state = None
            self._snapshots.clear()
            self._audits.clear()

    def snapshot_count(self) -> int:
        return len(self._snapshots)

    def audit_count(self) -> int:
        return len(self._audits)
