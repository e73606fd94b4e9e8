# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Repository: Roster data access (read-only).
Role -> ordered list of eligible users, maintained by an external admin tool.
"""

import json
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from triage_rotation.core.logging import get_logger
from triage_rotation.models.domain import RosterMember

logger = get_logger(__name__)


def load_json(path: Path) -> Any:
    """Read a JSON file; None when missing or malformed."""
    try:
        with path.open("r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError:
        logger.warning("Data file not found: %s", path)
    except (OSError, ValueError) as exc:
        logger.error("Error loading %s: %s", path, exc)
    return None


def _to_member(raw: Any) -> Optional[RosterMember]:
    if isinstance(raw, str):
        return RosterMember(user_id=raw)
    if isinstance(raw, dict):
        user_id = raw.get("user_id") or raw.get("slackId")
        try:
            return RosterMember(user_id=user_id, name=raw.get("name") or "")
        except ValidationError:
            return None
    return None


class RosterRepository:
    """Roster storage backed by a JSON file or preloaded data."""

    def __init__(
        self,
        path: Optional[Path] = None,
        data: Optional[dict[str, list[Any]]] = None,
    ) -> None:
        self._path = path
        self._data = data

    # ── Read ──

    def get_rosters(self) -> dict[str, list[RosterMember]]:
        raw = self._data if self._data is not None else self._read_file()
        if not isinstance(raw, dict):
            return {}

        rosters: dict[str, list[RosterMember]] = {}
        for role, users in raw.items():
            if not isinstance(users, list):
                logger.warning("Roster for role=%s is not a list, ignoring", role)
                continue
            rosters[role] = [m for m in (_to_member(u) for u in users) if m is not None]

        self._warn_cross_role_members(rosters)
        return rosters

    def count(self) -> int:
        return sum(len(users) for users in self.get_rosters().values())

    # ── Internal ──

    def _read_file(self) -> Any:
        if self._path is None:
            return {}
        return load_json(self._path)

    @staticmethod
    def _warn_cross_role_members(rosters: dict[str, list[RosterMember]]) -> None:
        seen: dict[str, str] = {}
        duplicates: list[dict[str, Any]] = []
        for role, members in rosters.items():
            for member in members:
                if member.user_id in seen and seen[member.user_id] != role:
                    duplicates.append({
                        "user_id": member.user_id,
                        "roles": [seen[member.user_id], role],
                    })
                else:
                    seen.setdefault(member.user_id, role)
        if duplicates:
            logger.warning("Users found in multiple rosters: %s", duplicates)
