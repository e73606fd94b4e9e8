# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Repository: Period calendar lookups.
Periods are an ordered list; the list position is the period index.
"""

from datetime import date
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from triage_rotation.core.logging import get_logger
from triage_rotation.models.domain import Period
from triage_rotation.repositories.roster_repository import load_json

logger = get_logger(__name__)


def _to_period(index: int, raw: Any) -> Optional[Period]:
    if isinstance(raw, Period):
        return raw
    if not isinstance(raw, dict):
        return None
    try:
        return Period(
            index=index,
            name=raw.get("name") or raw.get("sprintName") or f"Period {index}",
            start=raw.get("start") or raw.get("start_date") or raw.get("startDate"),
            end=raw.get("end") or raw.get("end_date") or raw.get("endDate"),
        )
    except ValidationError as exc:
        logger.warning("Skipping malformed period at index %d: %s", index, exc)
        return None


class PeriodRepository:
    """Period calendar backed by a JSON file or preloaded list."""

    def __init__(
        self,
        path: Optional[Path] = None,
        data: Optional[list[Any]] = None,
    ) -> None:
        self._path = path
        self._data = data

    # ── Read ──

    def get_all(self) -> list[Period]:
        raw = self._data if self._data is not None else self._read_file()
        if not isinstance(raw, list):
            logger.error("Invalid period data: not a list")
            return []
        periods = (_to_period(i, item) for i, item in enumerate(raw))
        return [p for p in periods if p is not None]

    def find_period_containing(self, day: date) -> Optional[Period]:
        for period in self.get_all():
            if period.contains(day):
                return period
        return None

    def find_period_after(self, index: int) -> Optional[Period]:
        for period in self.get_all():
            if period.index == index + 1:
                return period
        return None

    def upcoming_periods(self, day: date) -> list[Period]:
        return [p for p in self.get_all() if p.start >= day]

    def count(self) -> int:
        return len(self.get_all())

    # ── Internal ──

    def _read_file(self) -> Any:
        if self._path is None:
            return []
        return load_json(self._path)
