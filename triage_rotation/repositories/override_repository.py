# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Repository: Override data access (read-only).
Requests and approvals are written by an external tool; only approved
overrides feed the rotation.
"""

from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from triage_rotation.core.logging import get_logger
from triage_rotation.models.domain import Override
from triage_rotation.repositories.roster_repository import load_json

logger = get_logger(__name__)

# Legacy camelCase keys written by the request tooling
_LEGACY_KEYS: dict[str, str] = {
    "sprintIndex": "period_index",
    "newSlackId": "replacement_user_id",
    "requestedBy": "requested_by",
    "approvedBy": "approved_by",
    "approvalTimestamp": "approval_timestamp",
}


def _normalize(raw: dict[str, Any]) -> dict[str, Any]:
    return {_LEGACY_KEYS.get(k, k): v for k, v in raw.items()}


class OverrideRepository:
    """Override storage backed by a JSON file or preloaded records."""

    def __init__(
        self,
        path: Optional[Path] = None,
        data: Optional[list[Any]] = None,
    ) -> None:
        self._path = path
        self._data = data

    # ── Read ──

    def get_all(self) -> list[Override]:
        raw = self._data if self._data is not None else self._read_file()
        if not isinstance(raw, list):
            return []

        overrides: list[Override] = []
        for item in raw:
            if isinstance(item, Override):
                overrides.append(item)
                continue
            if not isinstance(item, dict):
                continue
            try:
                overrides.append(Override(**_normalize(item)))
            except ValidationError as exc:
                logger.warning("Skipping malformed override %s: %s", item, exc)
        return overrides

    def get_approved_overrides(self) -> list[Override]:
        return [o for o in self.get_all() if o.approved]

    def count(self) -> int:
        return len(self.get_all())

    # ── Internal ──

    def _read_file(self) -> Any:
        if self._path is None:
            return []
        return load_json(self._path)
