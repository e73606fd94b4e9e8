# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false

"""
Tests for the pure rotation core: assignment computation, message planning,
weekday policy, and snapshot hashing / diffing.
"""

from datetime import date, datetime, timezone

from triage_rotation.models.domain import MessageKind, Override, RoleChange, RosterMember
from triage_rotation.services import weekday_policy
from triage_rotation.services.group_topic_client import render_topic
from triage_rotation.services.rotation import (
    assigned_users,
    compute_assignment,
    find_duplicate_users,
    resolve_override,
)
from triage_rotation.services.rotation_messages import (
    plan_change_messages,
    plan_heads_up_messages,
    plan_transition_messages,
)
from triage_rotation.services.snapshot_service import carryover, compute_hash, diff
from triage_rotation.services.trigger_coordinator import summarize_changes


# ============================================
# Helpers
# ============================================
def _override(period_index=3, role="po", user="C", approved=True, approved_at=None):
    return Override(
        period_index=period_index,
        role=role,
        replacement_user_id=user,
        requested_by="U-requester",
        approved=approved,
        approval_timestamp=approved_at,
    )


ROSTERS = {
    "account": [RosterMember(user_id="ACC1"), RosterMember(user_id="ACC2")],
    "producer": [RosterMember(user_id="P1"), RosterMember(user_id="P2"), RosterMember(user_id="P3")],
    "po": [RosterMember(user_id="A"), RosterMember(user_id="B")],
    "uiEng": [RosterMember(user_id="UI1")],
    "beEng": [RosterMember(user_id="BE1"), RosterMember(user_id="BE2")],
}


# ============================================
# compute_assignment
# ============================================
class TestComputeAssignment:
    def test_modulo_rotation(self):
        result = compute_assignment(3, ROSTERS, [])
        assert result == {
            "account": "ACC2",
            "producer": "P1",
            "po": "B",
            "uiEng": "UI1",
            "beEng": "BE2",
        }

    def test_roster_index_wraps_for_every_length(self):
        for index in range(10):
            result = compute_assignment(index, ROSTERS, [])
            for role, roster in ROSTERS.items():
                assert result[role] == roster[index % len(roster)].user_id

    def test_po_scenario_with_override(self):
        rosters = {"po": ["A", "B"]}
        assert compute_assignment(3, rosters, [], roles=("po",)) == {"po": "B"}
        assert compute_assignment(3, rosters, [_override()], roles=("po",)) == {"po": "C"}

    def test_unapproved_override_is_ignored(self):
        rosters = {"po": ["A", "B"]}
        result = compute_assignment(3, rosters, [_override(approved=False)], roles=("po",))
        assert result == {"po": "B"}

    def test_override_for_other_period_is_ignored(self):
        rosters = {"po": ["A", "B"]}
        result = compute_assignment(2, rosters, [_override(period_index=3)], roles=("po",))
        assert result == {"po": "A"}

    def test_override_wins_even_with_empty_roster(self):
        result = compute_assignment(0, {}, [_override(period_index=0)], roles=("po",))
        assert result == {"po": "C"}

    def test_deterministic_and_order_independent(self):
        overrides = [_override(), _override(role="beEng", user="Z")]
        first = compute_assignment(3, ROSTERS, overrides)
        second = compute_assignment(3, dict(reversed(list(ROSTERS.items()))), list(reversed(overrides)))
        assert first == second
        assert compute_assignment(3, ROSTERS, overrides) == first

    def test_empty_roster_uses_fallback(self):
        result = compute_assignment(1, {"po": []}, [], roles=("po",), fallback_users={"po": "FALLBACK"})
        assert result == {"po": "FALLBACK"}

    def test_empty_roster_without_fallback_is_none(self):
        result = compute_assignment(1, {}, [], roles=("po", "uiEng"))
        assert result == {"po": None, "uiEng": None}

    def test_duplicate_user_is_kept(self):
        rosters = {"po": ["SAME"], "uiEng": ["SAME"]}
        result = compute_assignment(0, rosters, [], roles=("po", "uiEng"))
        assert result == {"po": "SAME", "uiEng": "SAME"}

    def test_accepts_legacy_dict_members(self):
        rosters = {"po": [{"name": "Ann", "slackId": "U1"}, {"name": "Bo", "slackId": "U2"}]}
        assert compute_assignment(1, rosters, [], roles=("po",)) == {"po": "U2"}


class TestResolveOverride:
    def test_none_when_nothing_matches(self):
        assert resolve_override(3, "po", []) is None
        assert resolve_override(3, "po", [_override(role="uiEng")]) is None

    def test_most_recent_approval_wins(self):
        older = _override(user="OLD", approved_at=datetime(2026, 1, 1, tzinfo=timezone.utc))
        newer = _override(user="NEW", approved_at=datetime(2026, 2, 1, tzinfo=timezone.utc))
        assert resolve_override(3, "po", [newer, older]).replacement_user_id == "NEW"
        assert resolve_override(3, "po", [older, newer]).replacement_user_id == "NEW"

    def test_missing_timestamp_counts_as_oldest(self):
        stamped = _override(user="STAMPED", approved_at=datetime(2026, 1, 1, tzinfo=timezone.utc))
        unstamped = _override(user="UNSTAMPED")
        assert resolve_override(3, "po", [stamped, unstamped]).replacement_user_id == "STAMPED"

    def test_ties_go_to_later_entry(self):
        first = _override(user="FIRST")
        second = _override(user="SECOND")
        assert resolve_override(3, "po", [first, second]).replacement_user_id == "SECOND"

    def test_naive_timestamp_compares_as_utc(self):
        naive = _override(user="NAIVE", approved_at=datetime(2026, 3, 1))
        aware = _override(user="AWARE", approved_at=datetime(2026, 2, 1, tzinfo=timezone.utc))
        assert resolve_override(3, "po", [naive, aware]).replacement_user_id == "NAIVE"


class TestAssignmentHelpers:
    def test_assigned_users_dedupes_in_role_order(self):
        assert assigned_users({"a": "U1", "b": None, "c": "U2", "d": "U1"}) == ["U1", "U2"]

    def test_assigned_users_empty(self):
        assert assigned_users({}) == []

    def test_find_duplicate_users(self):
        assert find_duplicate_users({"a": "U1", "b": "U2", "c": "U1"}) == {"U1": ["a", "c"]}
        assert find_duplicate_users({"a": "U1", "b": None, "c": None}) == {}


# ============================================
# Snapshot hashing / diffing
# ============================================
class TestSnapshotMath:
    def test_hash_ignores_key_order(self):
        a = {"po": "A", "producer": "P1", "uiEng": None}
        b = {"uiEng": None, "producer": "P1", "po": "A"}
        assert compute_hash(a) == compute_hash(b)

    def test_hash_changes_with_content(self):
        assert compute_hash({"po": "A"}) != compute_hash({"po": "B"})
        assert len(compute_hash({})) == 64

    def test_diff_equal_maps_is_empty(self):
        a = {"po": "A", "producer": "P1"}
        assert diff(a, dict(a)) == []

    def test_diff_producer_scenario(self):
        changes = diff({"producer": "U2"}, {"producer": "U3"})
        assert changes == [RoleChange(role="producer", old_user="U2", new_user="U3")]

    def test_diff_covers_union_of_keys(self):
        changes = diff({"po": "A"}, {"uiEng": "X"})
        assert changes == [
            RoleChange(role="po", old_user="A", new_user=None),
            RoleChange(role="uiEng", old_user=None, new_user="X"),
        ]

    def test_diff_orders_roles_by_name(self):
        changes = diff({"po": "A", "account": "X"}, {"po": "B", "account": "Y"})
        assert [c.role for c in changes] == ["account", "po"]

    def test_diff_order_ignores_insertion_order(self):
        forward = diff({"po": "A", "account": "X"}, {"po": "B", "account": "Y"})
        backward = diff({"account": "X", "po": "A"}, {"account": "Y", "po": "B"})
        assert summarize_changes(forward) == summarize_changes(backward)
        assert summarize_changes(forward) == "account: <@X> -> <@Y>; po: <@A> -> <@B>"

    def test_diff_against_nothing(self):
        changes = diff(None, {"po": "A", "uiEng": None})
        assert changes == [RoleChange(role="po", old_user=None, new_user="A")]

    def test_carryover(self):
        assert carryover({"po": "A"}, {"po": "A"}) is None
        assert carryover(None, {"po": "A"}) is None
        assert carryover({"po": "A"}, {"po": "B"}) == [
            RoleChange(role="po", old_user="A", new_user="B")
        ]


# ============================================
# Message planning
# ============================================
class TestMessagePlanning:
    def test_producer_change_notifies_two_users(self):
        messages = plan_change_messages(diff({"producer": "U2"}, {"producer": "U3"}))
        assert [(m.user_id, m.kind) for m in messages] == [
            ("U2", MessageKind.REMOVED),
            ("U3", MessageKind.ADDED),
        ]
        assert "producer" in messages[0].text
        assert messages[1].text == "You have been assigned to producer triage duty starting now."

    def test_role_swap_is_single_message(self):
        changes = diff({"po": "U2", "uiEng": "U9"}, {"po": "U7", "uiEng": "U2"})
        messages = plan_change_messages(changes)
        by_user = {m.user_id: m for m in messages}
        assert len(messages) == 3
        assert by_user["U2"].kind == MessageKind.ROLE_CHANGED
        assert "po" in by_user["U2"].text and "uiEng" in by_user["U2"].text
        assert by_user["U7"].kind == MessageKind.ADDED
        assert by_user["U9"].kind == MessageKind.REMOVED

    def test_one_message_per_user_with_many_roles(self):
        messages = plan_change_messages(diff({}, {"po": "U1", "uiEng": "U1"}))
        assert len(messages) == 1
        assert messages[0].text == "You have been assigned to po, uiEng triage duty starting now."

    def test_no_changes_no_messages(self):
        assert plan_change_messages([]) == []

    def test_transition_messages(self):
        old = {"po": "A", "uiEng": "B", "beEng": "KEEP"}
        new = {"po": "C", "uiEng": "C", "beEng": "KEEP"}
        messages = plan_transition_messages(old, new)
        assert [(m.user_id, m.kind) for m in messages] == [
            ("A", MessageKind.OFF_DUTY),
            ("B", MessageKind.OFF_DUTY),
            ("C", MessageKind.ON_DUTY),
        ]

    def test_first_transition_only_on_duty(self):
        messages = plan_transition_messages({}, {"po": "A"})
        assert [(m.user_id, m.kind) for m in messages] == [("A", MessageKind.ON_DUTY)]

    def test_heads_up_user_on_both_sides_gets_start_only(self):
        messages = plan_heads_up_messages({"po": "A", "uiEng": "B"}, {"po": "B", "uiEng": "C"})
        assert [(m.user_id, m.kind) for m in messages] == [
            ("A", MessageKind.HEADS_UP_END),
            ("B", MessageKind.HEADS_UP_START),
            ("C", MessageKind.HEADS_UP_START),
        ]

    def test_render_topic(self):
        topic = render_topic(["U1", "U2"], prefix="Bug Link Only")
        assert topic == "Bug Link Only\nTriage Team: <@U1>, <@U2>"


# ============================================
# Weekday policy
# ============================================
class TestWeekdayPolicy:
    TZ = "America/Los_Angeles"

    def test_saturday_defers(self):
        assert weekday_policy.should_defer(datetime(2026, 10, 17, 18, 0, tzinfo=timezone.utc), self.TZ)

    def test_sunday_defers(self):
        assert weekday_policy.should_defer(datetime(2026, 10, 18, 18, 0, tzinfo=timezone.utc), self.TZ)

    def test_wednesday_does_not_defer(self):
        assert not weekday_policy.should_defer(datetime(2026, 10, 14, 18, 0, tzinfo=timezone.utc), self.TZ)

    def test_weekday_is_judged_in_reference_zone(self):
        # 03:00 UTC Saturday is still Friday evening in Los Angeles
        friday_evening = datetime(2026, 10, 17, 3, 0, tzinfo=timezone.utc)
        assert not weekday_policy.should_defer(friday_evening, self.TZ)
        assert weekday_policy.should_defer(friday_evening, "UTC")

    def test_naive_instant_is_utc(self):
        assert weekday_policy.should_defer(datetime(2026, 10, 17, 18, 0), self.TZ)

    def test_next_business_day_from_friday(self):
        result = weekday_policy.next_business_day(datetime(2026, 10, 16, 18, 0, tzinfo=timezone.utc), self.TZ)
        assert result.date() == date(2026, 10, 19)
        assert (result.hour, result.minute) == (0, 0)
        assert result.utcoffset() is not None

    def test_next_business_day_from_saturday(self):
        result = weekday_policy.next_business_day(datetime(2026, 10, 17, 18, 0, tzinfo=timezone.utc), self.TZ)
        assert result.date() == date(2026, 10, 19)

    def test_next_business_day_from_wednesday(self):
        result = weekday_policy.next_business_day(datetime(2026, 10, 14, 18, 0, tzinfo=timezone.utc), self.TZ)
        assert result.date() == date(2026, 10, 15)

    def test_is_business_day(self):
        assert weekday_policy.is_business_day(date(2026, 10, 19))
        assert not weekday_policy.is_business_day(date(2026, 10, 18))
