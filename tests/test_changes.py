"""Tests for staffhub.core.changes — field and selection diffs."""

from staffhub.core.changes import (
    close_selection_diff,
    diff_fields,
    diff_selection,
    update_recipient_ids,
)
from staffhub.data.models import Event, EventStatus


def _event(**overrides):
    fields = {
        "id": "e1", "name": "Gala", "date": "2025-11-15", "time": "18:00",
        "location": "Hall", "required_level": "Level 1", "points": 50,
        "status": EventStatus.OPEN,
    }
    fields.update(overrides)
    return Event(**fields)


class TestDiffFields:
    def test_identical_events_have_no_changes(self):
        assert diff_fields(_event(), _event()) == []

    def test_location_only(self):
        assert diff_fields(_event(), _event(location="Roof")) == ["Location: Hall → Roof"]

    def test_date_uses_long_format(self):
        changes = diff_fields(_event(), _event(date="2025-11-16"))
        assert changes == ["Date: Saturday, November 15, 2025 → Sunday, November 16, 2025"]

    def test_free_text_not_echoed(self):
        changes = diff_fields(_event(), _event(description="secret", notes="n"))
        assert changes == ["Description updated", "Notes updated"]

    def test_fixed_order(self):
        changes = diff_fields(_event(), _event(points=80, name="Ball", time="19:30"))
        assert changes == ["Name: Gala → Ball", "Time: 18:00 → 19:30", "Points: 50 → 80"]

    def test_membership_changes_are_ignored(self):
        assert diff_fields(_event(), _event(signed_up_staff=["a"])) == []


class TestSelection:
    def test_diff_selection(self):
        diff = diff_selection(["a", "b"], ["a", "c"])
        assert diff.added == ["c"]
        assert diff.removed == ["b"]

    def test_first_close_notifies_everyone(self):
        event = _event(signed_up_staff=["a", "b", "c"])
        diff = close_selection_diff(event, ["a", "b"])
        assert diff.added == ["a", "b"]
        assert diff.removed == ["c"]

    def test_reclose_notifies_only_changes(self):
        event = _event(
            signed_up_staff=["a", "b", "c"], confirmed_staff=["a", "b"],
            status=EventStatus.CLOSED, close_generation=1,
        )
        diff = close_selection_diff(event, ["a", "c"])
        assert diff.added == ["c"]
        assert diff.removed == ["b"]

    def test_reclose_with_same_selection_is_empty(self):
        event = _event(
            signed_up_staff=["a", "b"], confirmed_staff=["a"],
            status=EventStatus.CLOSED, close_generation=1,
        )
        assert close_selection_diff(event, ["a"]).empty


class TestUpdateRecipients:
    def test_open_event_notifies_signed_up(self):
        event = _event(signed_up_staff=["a", "b"], confirmed_staff=["a"])
        assert update_recipient_ids(event) == ["a", "b"]

    def test_closed_event_notifies_confirmed(self):
        event = _event(status=EventStatus.CLOSED, signed_up_staff=["a", "b"], confirmed_staff=["a"])
        assert update_recipient_ids(event) == ["a"]

    def test_draft_and_cancelled_notify_nobody(self):
        assert update_recipient_ids(_event(status=EventStatus.DRAFT, signed_up_staff=["a"])) == []
        assert update_recipient_ids(_event(status=EventStatus.CANCELLED, signed_up_staff=["a"])) == []
