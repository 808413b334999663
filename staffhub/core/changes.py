"""
StaffHub — Change Detector.

Computes the minimal difference between two snapshots of an event: which
user-visible fields changed, and whose selection changed. The result drives
both the content and the recipient list of notifications, so staff whose
situation did not change are never re-notified.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from staffhub.core.messages import long_date
from staffhub.data.models import Event, EventStatus


@dataclass
class SelectionDiff:
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.added and not self.removed


def diff_fields(old: Event, new: Event) -> list[str]:
    """One human-readable line per changed field, in a fixed order.

    Free-text fields (description, notes) are reported as "updated"
    without echoing their content.
    """
    changes: list[str] = []
    if old.name != new.name:
        changes.append(f"Name: {old.name} → {new.name}")
    if old.date != new.date:
        changes.append(f"Date: {long_date(old.date)} → {long_date(new.date)}")
    if old.time != new.time:
        changes.append(f"Time: {old.time} → {new.time}")
    if old.location != new.location:
        changes.append(f"Location: {old.location} → {new.location}")
    if old.duration != new.duration:
        changes.append(f"Duration: {old.duration} → {new.duration}")
    if old.points != new.points:
        changes.append(f"Points: {old.points} → {new.points}")
    if old.required_level != new.required_level:
        changes.append(f"Required Level: {old.required_level} → {new.required_level}")
    if old.description != new.description:
        changes.append("Description updated")
    if old.notes != new.notes:
        changes.append("Notes updated")
    return changes


def diff_selection(old_confirmed: list[str], new_confirmed: list[str]) -> SelectionDiff:
    """Ids added to / removed from the confirmed list, order preserved."""
    old_set, new_set = set(old_confirmed), set(new_confirmed)
    return SelectionDiff(
        added=[sid for sid in new_confirmed if sid not in old_set],
        removed=[sid for sid in old_confirmed if sid not in new_set],
    )


def close_selection_diff(event: Event, approved: list[str]) -> SelectionDiff:
    """Who must hear about a close of event (in its pre-close state).

    First close: everyone approved is selected and every other signed-up
    staff member is deselected. Later closes: only staff whose confirmed
    membership changed since the previous close.
    """
    approved_set = set(approved)
    if event.close_generation == 0:
        return SelectionDiff(
            added=list(approved),
            removed=[sid for sid in event.signed_up_staff if sid not in approved_set],
        )

    previous = set(event.confirmed_staff)
    return SelectionDiff(
        added=[sid for sid in approved if sid not in previous],
        removed=[
            sid for sid in event.signed_up_staff
            if sid in previous and sid not in approved_set
        ],
    )


def update_recipient_ids(event: Event) -> list[str]:
    """Who hears about edits: signed-up staff while open, confirmed staff once closed."""
    if event.status == EventStatus.OPEN:
        return list(event.signed_up_staff)
    if event.status == EventStatus.CLOSED:
        return list(event.confirmed_staff)
    return []
