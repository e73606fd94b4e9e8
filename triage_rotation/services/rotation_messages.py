# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Message planning — decides who hears what, one message per user.
Pure functions; sending happens in the state machine.
"""

from typing import Mapping, Optional, Sequence

from triage_rotation.models.domain import DirectMessage, MessageKind, RoleChange
from triage_rotation.services.rotation import assigned_users

CHANNEL_NAME = "#lcom-bug-triage"

TEMPLATES: dict[MessageKind, str] = {
    MessageKind.ON_DUTY: "You are now on {channel} duty. Good luck!",
    MessageKind.OFF_DUTY: "Your {channel} rotation is now complete. Thank you!",
    MessageKind.ADDED: "You have been assigned to {roles} triage duty starting now.",
    MessageKind.REMOVED: "You have been removed from {roles} triage duty.",
    MessageKind.ROLE_CHANGED: "Your triage role changed from {old_roles} to {roles}.",
    MessageKind.HEADS_UP_END: "Heads up: your {channel} shift ends tomorrow at 8AM.",
    MessageKind.HEADS_UP_START: "You start {channel} duty tomorrow at 8AM. Good luck!",
}


def _render(kind: MessageKind, **fields: str) -> str:
    return TEMPLATES[kind].format(channel=CHANNEL_NAME, **fields)


def plan_change_messages(changes: Sequence[RoleChange]) -> list[DirectMessage]:
    """
    One message per affected user for a set of role changes.
    A user leaving one role and picking up another gets a single
    role-changed message instead of a removal plus an addition.
    """
    removed: dict[str, list[str]] = {}
    added: dict[str, list[str]] = {}
    order: list[str] = []

    for change in changes:
        if change.old_user:
            removed.setdefault(change.old_user, []).append(change.role)
            if change.old_user not in order:
                order.append(change.old_user)
        if change.new_user:
            added.setdefault(change.new_user, []).append(change.role)
            if change.new_user not in order:
                order.append(change.new_user)

    messages: list[DirectMessage] = []
    for user in order:
        old_roles = ", ".join(removed.get(user, []))
        new_roles = ", ".join(added.get(user, []))
        if old_roles and new_roles:
            kind = MessageKind.ROLE_CHANGED
            text = _render(kind, old_roles=old_roles, roles=new_roles)
        elif new_roles:
            kind = MessageKind.ADDED
            text = _render(kind, roles=new_roles)
        else:
            kind = MessageKind.REMOVED
            text = _render(kind, roles=old_roles)
        messages.append(DirectMessage(user_id=user, text=text, kind=kind))
    return messages


def plan_transition_messages(
    old: Optional[Mapping[str, Optional[str]]],
    new: Mapping[str, Optional[str]],
) -> list[DirectMessage]:
    """Off-duty for users only in `old`, on-duty for users only in `new`."""
    old_users = assigned_users(old or {})
    new_users = assigned_users(new)
    messages = [
        DirectMessage(user_id=u, text=_render(MessageKind.OFF_DUTY), kind=MessageKind.OFF_DUTY)
        for u in old_users if u not in new_users
    ]
    messages += [
        DirectMessage(user_id=u, text=_render(MessageKind.ON_DUTY), kind=MessageKind.ON_DUTY)
        for u in new_users if u not in old_users
    ]
    return messages


def plan_heads_up_messages(
    current: Mapping[str, Optional[str]],
    upcoming: Mapping[str, Optional[str]],
) -> list[DirectMessage]:
    """Eve-of-transition notices; users on both sides only hear the start notice."""
    upcoming_users = assigned_users(upcoming)
    messages = [
        DirectMessage(
            user_id=u, text=_render(MessageKind.HEADS_UP_END), kind=MessageKind.HEADS_UP_END
        )
        for u in assigned_users(current) if u not in upcoming_users
    ]
    messages += [
        DirectMessage(
            user_id=u, text=_render(MessageKind.HEADS_UP_START), kind=MessageKind.HEADS_UP_START
        )
        for u in upcoming_users
    ]
    return messages
