# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Error taxonomy for the rotation core.
Expected absences (no period, no override) are None results, not errors.
"""


class RotationError(Exception):
    """Base class for rotation service errors."""


class NoActivePeriodError(RotationError):
    """No scheduling period contains the requested day."""

    def __init__(self, day) -> None:
        super().__init__(f"No active period for {day}")
        self.day = day


class PersistenceError(RotationError):
    """A snapshot, audit, or state read/write failed in the backing store."""


class DuplicateTriggerError(PersistenceError):
    """An audit row for this trigger id already exists."""

    def __init__(self, trigger_id: str) -> None:
        super().__init__(f"Trigger '{trigger_id}' already recorded")
        self.trigger_id = trigger_id


class UnauthorizedTriggerError(RotationError):
    """Invocation signature missing or mismatched."""
