# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false

"""
Tests for the Triage Rotation HTTP surface: job endpoints (signature guard,
status codes, idempotent replays), read-only rotation views, and ops
endpoints (health, readiness, metrics, request ids).
"""

from datetime import date, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from main import app
from triage_rotation.core.config import settings
from triage_rotation.core.dependencies import (
    get_coordinator,
    get_period_repo,
    get_snapshot_service,
    get_state_machine,
    get_store,
)
from triage_rotation.repositories.override_repository import OverrideRepository
from triage_rotation.repositories.period_repository import PeriodRepository
from triage_rotation.repositories.roster_repository import RosterRepository
from triage_rotation.repositories.rotation_store import InMemoryRotationStore
from triage_rotation.services import weekday_policy
from triage_rotation.services.group_topic_client import GroupTopicClient
from triage_rotation.services.notification_client import NotificationClient
from triage_rotation.services.snapshot_service import SnapshotService
from triage_rotation.services.state_machine import RotationStateMachine
from triage_rotation.services.trigger_coordinator import TriggerCoordinator

client = TestClient(app, raise_server_exceptions=False)

WEDNESDAY = "2026-10-14T16:00:00Z"
SATURDAY = "2026-10-17T16:00:00Z"
PERIODS = [
    {"sprintName": "Sp0", "startDate": "2026-10-05", "endDate": "2026-10-18"},
    {"sprintName": "Sp1", "startDate": "2026-10-19", "endDate": "2026-11-01"},
]


# ============================================
# Fixtures
# ============================================
def _wire(periods):
    store = InMemoryRotationStore()
    notifications = AsyncMock(spec=NotificationClient)
    notifications.send_direct.return_value = True
    notifications.send_admin_summary.return_value = True
    group = AsyncMock(spec=GroupTopicClient)
    group.set_active_members.return_value = True
    period_repo = PeriodRepository(data=periods)

    snapshots = SnapshotService(
        roster_repo=RosterRepository(data={"po": ["A", "B"], "producer": ["P1", "P2"]}),
        override_repo=OverrideRepository(data=[]),
        period_repo=period_repo,
        store=store,
        fallback_users={},
    )
    machine = RotationStateMachine(snapshots, store, notifications, group)
    coordinator = TriggerCoordinator(snapshots, machine, store, notifications)

    app.dependency_overrides.update({
        get_coordinator: lambda: coordinator,
        get_state_machine: lambda: machine,
        get_snapshot_service: lambda: snapshots,
        get_store: lambda: store,
        get_period_repo: lambda: period_repo,
    })
    return SimpleNamespace(store=store, notifications=notifications, machine=machine)


@pytest.fixture(autouse=True)
def reset_overrides():
    """Every test starts without dependency overrides."""
    app.dependency_overrides.clear()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def wired():
    return _wire(PERIODS)


# ============================================
# Ops endpoints
# ============================================
class TestHealthEndpoints:
    def test_health(self):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["service"] == settings.SERVICE_NAME
        assert "periods_count" in data

    def test_readiness(self):
        resp = client.get("/health/ready")
        assert resp.status_code == 200
        assert resp.json()["store"] == "ok"

    def test_metrics(self):
        resp = client.get("/metrics")
        assert resp.status_code == 200
        assert "rotation_triggers_total" in resp.text

    def test_request_id_is_echoed(self):
        resp = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert resp.headers["X-Request-ID"] == "req-123"

    def test_request_id_is_generated(self):
        resp = client.get("/health")
        assert resp.headers["X-Request-ID"]


# ============================================
# POST /jobs/rotation/notify
# ============================================
class TestNotifyEndpoint:
    def test_delivered(self, wired):
        resp = client.post("/jobs/rotation/notify", json={"trigger_id": "t1", "scheduled_at": WEDNESDAY})
        assert resp.status_code == 202
        data = resp.json()
        assert data["status"] == "accepted"
        assert data["trigger_id"] == "t1"
        assert data["result"] == "delivered"
        assert data["notifications_sent"] == 2
        assert data["snapshot_id"]

    def test_replay_is_identical(self, wired):
        body = {"trigger_id": "t1", "scheduled_at": WEDNESDAY}
        first = client.post("/jobs/rotation/notify", json=body).json()
        second = client.post("/jobs/rotation/notify", json=body).json()
        assert first == second
        assert wired.store.snapshot_count() == 1
        assert wired.store.audit_count() == 1

    def test_weekend_is_deferred(self, wired):
        resp = client.post("/jobs/rotation/notify", json={"trigger_id": "sat", "scheduled_at": SATURDAY})
        assert resp.status_code == 202
        data = resp.json()
        assert data["result"] == "deferred"
        assert data["next_delivery"].startswith("2026-10-19")
        wired.notifications.send_direct.assert_not_awaited()

    def test_empty_body_generates_trigger_id(self, wired):
        resp = client.post("/jobs/rotation/notify")
        assert resp.status_code == 202
        assert resp.json()["trigger_id"]
        assert wired.store.audit_count() == 1

    def test_error_outcome_is_500(self):
        coordinator = AsyncMock(spec=TriggerCoordinator)
        coordinator.handle.return_value = {
            "trigger_id": "t1", "result": "error", "notifications_sent": 0,
            "snapshot_id": None, "next_delivery": None, "message": "db down",
        }
        app.dependency_overrides[get_coordinator] = lambda: coordinator
        resp = client.post("/jobs/rotation/notify", json={"trigger_id": "t1"})
        assert resp.status_code == 500
        assert resp.json()["status"] == "error"
        assert resp.json()["message"] == "db down"

    def test_invalid_scheduled_at(self, wired):
        resp = client.post("/jobs/rotation/notify", json={"scheduled_at": "not-a-date"})
        assert resp.status_code == 422
        assert wired.store.audit_count() == 0


class TestCronSignature:
    def test_missing_signature_rejected_before_audit(self, wired):
        with patch.object(settings, "CRON_SECRET", "s3cret"):
            resp = client.post("/jobs/rotation/notify", json={"trigger_id": "t1", "scheduled_at": WEDNESDAY})
        assert resp.status_code == 401
        assert resp.json() == {"detail": "Invalid cron signature"}
        assert wired.store.audit_count() == 0
        assert wired.store.snapshot_count() == 0

    def test_wrong_signature_rejected(self, wired):
        with patch.object(settings, "CRON_SECRET", "s3cret"):
            resp = client.post(
                "/jobs/rotation/notify",
                json={"trigger_id": "t1"},
                headers={"X-Cron-Signature": "guess"},
            )
        assert resp.status_code == 401
        assert wired.store.audit_count() == 0

    def test_valid_signature_accepted(self, wired):
        with patch.object(settings, "CRON_SECRET", "s3cret"):
            resp = client.post(
                "/jobs/rotation/notify",
                json={"trigger_id": "t1", "scheduled_at": WEDNESDAY},
                headers={"X-Cron-Signature": "s3cret"},
            )
        assert resp.status_code == 202
        assert wired.store.audit_count() == 1

    def test_checks_are_guarded_too(self, wired):
        with patch.object(settings, "CRON_SECRET", "s3cret"):
            assert client.post("/jobs/rotation/boundary-check").status_code == 401
            assert client.post("/jobs/rotation/eve-check").status_code == 401


# ============================================
# Boundary / eve checks
# ============================================
class TestCheckEndpoints:
    def test_boundary_check(self, wired):
        resp = client.post("/jobs/rotation/boundary-check")
        assert resp.status_code == 200
        assert "state" in resp.json()

    def test_eve_check(self, wired):
        resp = client.post("/jobs/rotation/eve-check")
        assert resp.status_code == 200
        assert "state" in resp.json()

    def test_check_error_is_500(self):
        machine = AsyncMock(spec=RotationStateMachine)
        machine.run_boundary_check.return_value = {"state": "error", "message": "boom", "notifications_sent": 0}
        app.dependency_overrides[get_state_machine] = lambda: machine
        resp = client.post("/jobs/rotation/boundary-check")
        assert resp.status_code == 500
        assert resp.json()["message"] == "boom"


# ============================================
# Read-only rotation views
# ============================================
class TestRotationViews:
    def test_current_before_any_run(self, wired):
        resp = client.get("/api/v1/rotation/current")
        assert resp.status_code == 200
        data = resp.json()
        assert data["state_period_index"] is None
        assert data["assignment"] == {}

    def test_notify_does_not_move_current_state(self, wired):
        client.post("/jobs/rotation/notify", json={"trigger_id": "t1", "scheduled_at": WEDNESDAY})
        data = client.get("/api/v1/rotation/current").json()
        assert data["state_period_index"] is None

    def test_current_after_boundary_check(self, wired):
        with patch.object(weekday_policy, "today", return_value=date(2026, 10, 14)):
            client.post("/jobs/rotation/boundary-check")
            data = client.get("/api/v1/rotation/current").json()
        assert data["period"]["name"] == "Sp0"
        assert data["state_period_index"] == 0
        assert data["assignment"]["po"] == "A"
        assert data["assignment"]["producer"] == "P1"

    def test_snapshots_newest_first(self, wired):
        client.post("/jobs/rotation/notify", json={"trigger_id": "t1", "scheduled_at": WEDNESDAY})
        client.post("/jobs/rotation/notify", json={"trigger_id": "t2", "scheduled_at": WEDNESDAY})
        resp = client.get("/api/v1/rotation/snapshots", params={"limit": 5})
        assert resp.status_code == 200
        data = resp.json()
        assert [s["delivery_status"] for s in data] == ["skipped", "delivered"]
        assert data[1]["trigger_id"] == "t1"

    def test_snapshots_limit_validation(self, wired):
        assert client.get("/api/v1/rotation/snapshots", params={"limit": 0}).status_code == 422

    def test_upcoming(self):
        start = weekday_policy.today() + timedelta(days=3)
        _wire([
            {"sprintName": "Past", "startDate": "2020-01-01", "endDate": "2020-01-14"},
            {"sprintName": "Next", "startDate": start.isoformat(),
             "endDate": (start + timedelta(days=13)).isoformat()},
        ])
        resp = client.get("/api/v1/rotation/upcoming")
        assert resp.status_code == 200
        data = resp.json()
        assert len(data) == 1
        assert data[0]["period"]["name"] == "Next"
        assert data[0]["assignment"]["po"] == "B"
