# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Rotation logic — pure computation, no side effects beyond warnings.
"""

from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Sequence

from triage_rotation.core.logging import get_logger
from triage_rotation.models.domain import ROLES, Assignment, Override, RosterMember

logger = get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _member_id(member: Any) -> Optional[str]:
    if isinstance(member, RosterMember):
        return member.user_id
    if isinstance(member, Mapping):
        return member.get("user_id") or member.get("slackId")
    return str(member) if member else None


def _approval_key(override: Override) -> datetime:
    ts = override.approval_timestamp
    if ts is None:
        return _EPOCH
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def resolve_override(
    period_index: int,
    role: str,
    overrides: Iterable[Override],
) -> Optional[Override]:
    """
    Return the approved override for (period_index, role), or None.
    Several approved overrides for the same pair: latest approval wins.
    """
    matches = [
        o for o in overrides
        if o.approved and o.period_index == period_index and o.role == role
    ]
    if not matches:
        return None
    if len(matches) > 1:
        logger.warning(
            "Multiple approved overrides for period=%d role=%s: %s; using most recent",
            period_index, role, [o.replacement_user_id for o in matches],
        )
    # max() keeps the first of equal keys, so scan reversed to favour later entries
    return max(reversed(matches), key=_approval_key)


def compute_assignment(
    period_index: int,
    rosters: Mapping[str, Sequence[Any]],
    overrides: Iterable[Override],
    roles: Sequence[str] = ROLES,
    fallback_users: Optional[Mapping[str, str]] = None,
) -> Assignment:
    """
    Return role -> user id for one period.
    Approved override > roster[period_index % len] > fallback user > None.
    Deterministic: no clock, no I/O, no hidden state.
    """
    overrides = list(overrides)
    fallback_users = fallback_users or {}
    assignment: Assignment = {}

    for role in roles:
        override = resolve_override(period_index, role, overrides)
        if override is not None:
            assignment[role] = override.replacement_user_id
            continue

        roster = list(rosters.get(role) or [])
        if roster:
            assignment[role] = _member_id(roster[period_index % len(roster)])
        else:
            assignment[role] = fallback_users.get(role)
            logger.warning(
                "Empty roster for role=%s, using fallback=%s", role, assignment[role]
            )

    duplicates = find_duplicate_users(assignment)
    if duplicates:
        logger.warning(
            "Duplicate users in assignment for period=%d: %s", period_index, duplicates
        )
    return assignment


def find_duplicate_users(assignment: Mapping[str, Optional[str]]) -> dict[str, list[str]]:
    """Return user id -> roles for users holding more than one role."""
    holders: dict[str, list[str]] = {}
    for role, user in assignment.items():
        if user:
            holders.setdefault(user, []).append(role)
    return {user: roles for user, roles in holders.items() if len(roles) > 1}


def assigned_users(assignment: Mapping[str, Optional[str]]) -> list[str]:
    """Deduplicated, non-null users in role order."""
    seen: list[str] = []
    for user in assignment.values():
        if user and user not in seen:
            seen.append(user)
    return seen
