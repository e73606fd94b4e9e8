# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
FastAPI dependency injection — wire repositories, the rotation store, and services.
The store implementation is chosen here, once, at startup.
"""

from pathlib import Path

from triage_rotation.core.config import settings
from triage_rotation.core.database import build_engine
from triage_rotation.core.logging import get_logger
from triage_rotation.repositories.override_repository import OverrideRepository
from triage_rotation.repositories.period_repository import PeriodRepository
from triage_rotation.repositories.roster_repository import RosterRepository
from triage_rotation.repositories.rotation_store import InMemoryRotationStore, RotationStore
from triage_rotation.repositories.sql_rotation_store import SqlRotationStore
from triage_rotation.services.group_topic_client import GroupTopicClient
from triage_rotation.services.notification_client import NotificationClient
from triage_rotation.services.snapshot_service import SnapshotService
from triage_rotation.services.state_machine import RotationStateMachine
from triage_rotation.services.trigger_coordinator import TriggerCoordinator

logger = get_logger(__name__)


def build_store() -> RotationStore:
    if not settings.DATABASE_URL:
        logger.info("DATABASE_URL not set, using in-memory rotation store")
        return InMemoryRotationStore()
    store = SqlRotationStore(build_engine())
    store.ensure_schema()
    logger.info("Using SQL rotation store")
    return store


# ── Singleton repository instances ──
_data_dir = Path(settings.DATA_DIR)
_roster_repo = RosterRepository(path=_data_dir / settings.ROSTER_FILE)
_override_repo = OverrideRepository(path=_data_dir / settings.OVERRIDES_FILE)
_period_repo = PeriodRepository(path=_data_dir / settings.PERIODS_FILE)
_store = build_store()

# ── Outbound clients ──
_notification_client = NotificationClient()
_group_topic_client = GroupTopicClient(notifications=_notification_client)

# ── Service instances (with injected dependencies) ──
_snapshot_service = SnapshotService(
    roster_repo=_roster_repo,
    override_repo=_override_repo,
    period_repo=_period_repo,
    store=_store,
)
_state_machine = RotationStateMachine(
    snapshot_service=_snapshot_service,
    store=_store,
    notification_client=_notification_client,
    group_topic_client=_group_topic_client,
)
_coordinator = TriggerCoordinator(
    snapshot_service=_snapshot_service,
    state_machine=_state_machine,
    store=_store,
    notification_client=_notification_client,
)


# ── FastAPI dependency functions ──
def get_coordinator() -> TriggerCoordinator:
    return _coordinator


def get_state_machine() -> RotationStateMachine:
    return _state_machine


def get_snapshot_service() -> SnapshotService:
    return _snapshot_service


def get_store() -> RotationStore:
    return _store


def get_roster_repo() -> RosterRepository:
    return _roster_repo


def get_override_repo() -> OverrideRepository:
    return _override_repo


def get_period_repo() -> PeriodRepository:
    return _period_repo
