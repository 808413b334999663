"""
StaffHub — Event Lifecycle.

The state machine for an event's status (draft → open → closed, any →
cancelled, cancelled → open) and the sign-up / selection sets that hang off
it. Every transition persists first and notifies second; notification
failures never undo or fail a transition.

Provider-agnostic: notifications go through NotificationService, storage
through Repository.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable
from zoneinfo import ZoneInfo

import pydantic

from staffhub.config import settings
from staffhub.core.auth import Principal, require_admin
from staffhub.core.changes import (
    SelectionDiff,
    close_selection_diff,
    diff_fields,
    update_recipient_ids,
)
from staffhub.core.errors import NotFoundError, PreconditionError, ValidationError
from staffhub.core.levels import can_access
from staffhub.core.notifications import NotificationService
from staffhub.data.models import Event, EventStatus, utcnow_iso
from staffhub.data.repository import new_id

if TYPE_CHECKING:
    from staffhub.data.repository import Repository

logger = logging.getLogger(__name__)

# Fields an admin may set through create/update; everything else on an
# Event is owned by the lifecycle operations below.
EDITABLE_FIELDS = (
    "name", "date", "end_date", "time", "duration", "location",
    "description", "notes", "points", "required_level", "status",
)
_WIRE_NAMES = {
    name: (Event.model_fields[name].alias or name) for name in EDITABLE_FIELDS
}
_EDITABLE_KEYS = {**{alias: alias for alias in _WIRE_NAMES.values()}, **_WIRE_NAMES}


def _local_now() -> datetime:
    return datetime.now(ZoneInfo(settings.TIMEZONE)).replace(tzinfo=None)


def _editable(data: dict[str, Any]) -> dict[str, Any]:
    """Keep only editable keys, normalised to their wire (camelCase) names."""
    return {_EDITABLE_KEYS[k]: v for k, v in data.items() if k in _EDITABLE_KEYS}


def _validated(raw: dict[str, Any]) -> Event:
    try:
        return Event.model_validate(raw)
    except pydantic.ValidationError as exc:
        raise ValidationError(str(exc)) from exc


@dataclass
class CloseResult:
    event: Event
    selection: SelectionDiff


@dataclass
class AdminSignUpResult:
    event: Event
    added: list[str] = field(default_factory=list)


class EventService:
    """Admin and staff operations on events."""

    def __init__(
        self,
        repo: Repository,
        notifier: NotificationService | None = None,
        clock: Callable[[], datetime] = _local_now,
    ) -> None:
        self._repo = repo
        self._notifier = notifier or NotificationService(repo)
        self._clock = clock

    def _load(self, event_id: str) -> Event:
        event = self._repo.get_event(event_id)
        if event is None:
            raise NotFoundError(f"Event {event_id} not found")
        return event

    def _update(self, event_id: str, mutate: Callable[[Event], Event | None]) -> Event:
        event = self._repo.update_event(event_id, mutate)
        if event is None:
            raise NotFoundError(f"Event {event_id} not found")
        return event

    # -- queries ---------------------------------------------------------

    def get_event(self, event_id: str) -> Event:
        return self._load(event_id)

    def list_events(self, principal: Principal) -> list[Event]:
        """Admins see everything; staff see open/closed events they can access
        or are signed up for. Drafts are never visible to staff."""
        events = sorted(self._repo.list_events(), key=lambda e: (e.date, e.time))
        if principal.is_admin:
            return events

        staff = self._repo.get_staff(principal.id)
        if staff is None:
            raise NotFoundError(f"Staff member {principal.id} not found")
        levels = self._repo.list_levels()
        return [
            e for e in events
            if e.status in (EventStatus.OPEN, EventStatus.CLOSED)
            and (principal.id in e.signed_up_staff or can_access(staff.level, e.required_level, levels))
        ]

    # -- admin: create / edit / delete -----------------------------------

    async def create_event(self, principal: Principal, data: dict[str, Any]) -> Event:
        """Create an event (draft unless created directly as open)."""
        require_admin(principal)
        payload = _editable(data)
        payload.setdefault("status", EventStatus.DRAFT.value)
        event = _validated({**payload, "id": new_id(), "createdAt": utcnow_iso()})
        if event.status not in (EventStatus.DRAFT, EventStatus.OPEN):
            raise ValidationError("New events must be draft or open")

        self._repo.save_event(event)
        logger.info("Event created: %s %r (%s)", event.id, event.name, event.status.value)

        if event.status == EventStatus.OPEN:
            await self._notifier.submit(self._notifier.notify_new_event(event))
        else:
            logger.info("Event status is %r, skipping notifications", event.status.value)
        return event

    async def update_event(self, principal: Principal, event_id: str, data: dict[str, Any]) -> Event:
        """Edit an event in place.

        Sign-ups, selection, awards, close history and createdAt are
        preserved. Publishing a draft sends "new event" notifications;
        editing an open or closed event notifies the affected staff of the
        changed fields only.
        """
        require_admin(principal)
        changes = _editable(data)
        seen: dict[str, Event] = {}

        def apply(current: Event) -> Event:
            seen["before"] = current
            updated = _validated({**current.to_record(), **changes})
            if updated.status != current.status and EventStatus.CANCELLED in (updated.status, current.status):
                raise PreconditionError("Use cancel / reinstate to change a cancelled status")
            return updated

        updated = self._update(event_id, apply)
        before = seen["before"]
        logger.info("Event updated: %s %r", updated.id, updated.name)

        if before.status == EventStatus.DRAFT and updated.status == EventStatus.OPEN:
            await self._notifier.submit(self._notifier.notify_new_event(updated))
            return updated

        if updated.status not in (EventStatus.OPEN, EventStatus.CLOSED):
            logger.info("Event status is %r, skipping update notifications", updated.status.value)
            return updated

        field_changes = diff_fields(before, updated)
        if not field_changes:
            logger.info("No event detail changes detected, nobody to notify")
            return updated

        recipients = update_recipient_ids(updated)
        if recipients:
            await self._notifier.submit(
                self._notifier.notify_update(updated, field_changes, recipients)
            )
        else:
            logger.info("No staff to notify (event status: %s)", updated.status.value)
        return updated

    async def publish_event(self, principal: Principal, event_id: str) -> Event:
        """draft → open."""
        require_admin(principal)
        if self._load(event_id).status != EventStatus.DRAFT:
            raise PreconditionError("Only draft events can be published")
        return await self.update_event(principal, event_id, {"status": EventStatus.OPEN.value})

    def delete_event(self, principal: Principal, event_id: str) -> None:
        require_admin(principal)
        if not self._repo.delete_event(event_id):
            raise NotFoundError(f"Event {event_id} not found")
        logger.info("Event %s deleted", event_id)

    # -- admin: close / cancel / reinstate -------------------------------

    async def close_event(self, principal: Principal, event_id: str, approved_ids: list[str]) -> CloseResult:
        """Select the confirmed staff for an open or closed event.

        Only staff whose selection changed since the previous close are
        notified; the first close notifies every signed-up staff member.
        """
        require_admin(principal)
        if approved_ids is None or not isinstance(approved_ids, list):
            raise ValidationError("approvedStaffIds must be a list")
        approved = list(dict.fromkeys(approved_ids))
        seen: dict[str, SelectionDiff] = {}

        def close(current: Event) -> Event:
            if current.status not in (EventStatus.OPEN, EventStatus.CLOSED):
                raise PreconditionError(f"Cannot close an event that is {current.status.value}")
            unknown = [sid for sid in approved if sid not in current.signed_up_staff]
            if unknown:
                raise ValidationError(f"Approved staff are not signed up: {', '.join(unknown)}")
            seen["diff"] = close_selection_diff(current, approved)
            return current.model_copy(update={
                "confirmed_staff": approved,
                "status": EventStatus.CLOSED,
                "close_generation": current.close_generation + 1,
                "has_been_closed_before": True,
            })

        closed = self._update(event_id, close)
        diff = seen["diff"]
        logger.info(
            "📋 Event %r closed (close #%d): %d approved, %d to notify",
            closed.name, closed.close_generation, len(approved), len(diff.added) + len(diff.removed),
        )
        await self._notifier.submit(self._notifier.notify_close(closed, diff))
        return CloseResult(event=closed, selection=diff)

    async def cancel_event(self, principal: Principal, event_id: str) -> Event:
        """Cancel, notify every signed-up staff member, then purge sign-ups.

        The purge happens only after all delivery attempts have finished.
        """
        require_admin(principal)

        def cancel(current: Event) -> Event:
            if current.status == EventStatus.CANCELLED:
                raise PreconditionError("Event is already cancelled")
            return current.model_copy(update={"status": EventStatus.CANCELLED})

        cancelled = self._update(event_id, cancel)
        participants = list(cancelled.signed_up_staff)
        logger.info("Event %r cancelled, %d participants to notify", cancelled.name, len(participants))
        if not participants:
            return cancelled

        await self._notifier.notify_cancellation(cancelled, participants)

        purged = self._update(event_id, lambda e: e.model_copy(update={
            "signed_up_staff": [],
            "sign_up_timestamps": {},
        }))
        logger.info("Removed all %d participants from cancelled event %s", len(participants), event_id)
        return purged

    def reinstate_event(self, principal: Principal, event_id: str) -> Event:
        """cancelled → open. Sign-ups purged by the cancellation stay purged."""
        require_admin(principal)

        def reinstate(current: Event) -> Event:
            if current.status != EventStatus.CANCELLED:
                raise PreconditionError("Only cancelled events can be reinstated")
            return current.model_copy(update={"status": EventStatus.OPEN})

        event = self._update(event_id, reinstate)
        logger.info("Event %r has been reinstated", event.name)
        return event

    # -- sign-ups --------------------------------------------------------

    def sign_up(self, principal: Principal, event_id: str) -> Event:
        """Staff self sign-up for an open, future, accessible event."""
        if not event_id:
            raise ValidationError("Event ID is required")
        staff = self._repo.get_staff(principal.id)
        if staff is None:
            raise NotFoundError(f"Staff member {principal.id} not found")
        levels = self._repo.list_levels()
        now = self._clock()

        def add(current: Event) -> Event:
            if current.status == EventStatus.CANCELLED:
                raise PreconditionError("Cannot sign up for a cancelled event")
            if current.status != EventStatus.OPEN:
                raise PreconditionError("Event is not open for sign-up")
            if principal.id in current.signed_up_staff:
                raise PreconditionError("Already signed up for this event")
            if current.starts_at() < now:
                raise PreconditionError("Cannot sign up for past events")
            if not can_access(staff.level, current.required_level, levels):
                raise PreconditionError("Your level does not give access to this event")
            return current.model_copy(update={
                "signed_up_staff": [*current.signed_up_staff, principal.id],
                "sign_up_timestamps": {**current.sign_up_timestamps, principal.id: utcnow_iso()},
            })

        event = self._update(event_id, add)
        logger.info("%s signed up for %r", staff.name, event.name)
        return event

    def cancel_sign_up(self, principal: Principal, event_id: str) -> Event:
        """Staff withdraws their own sign-up."""

        def remove(current: Event) -> Event:
            if principal.id not in current.signed_up_staff:
                raise PreconditionError("Not signed up for this event")
            timestamps = dict(current.sign_up_timestamps)
            timestamps.pop(principal.id, None)
            return current.model_copy(update={
                "signed_up_staff": [s for s in current.signed_up_staff if s != principal.id],
                "sign_up_timestamps": timestamps,
            })

        event = self._update(event_id, remove)
        logger.info("Staff %s withdrew from %r", principal.id, event.name)
        return event

    def admin_sign_up(self, principal: Principal, event_id: str, staff_ids: list[str]) -> AdminSignUpResult:
        """Admin adds staff directly, bypassing level and date checks."""
        require_admin(principal)
        if not event_id or not staff_ids or not isinstance(staff_ids, list):
            raise ValidationError("Event ID and staff IDs are required")

        members = {}
        for staff_id in staff_ids:
            member = self._repo.get_staff(staff_id)
            if member is None:
                raise NotFoundError(f"Staff member {staff_id} not found")
            members[staff_id] = member
        seen: dict[str, list[str]] = {}

        def add(current: Event) -> Event:
            if current.status == EventStatus.CANCELLED:
                raise PreconditionError("Cannot sign up staff for cancelled events")
            new_ids = [sid for sid in dict.fromkeys(staff_ids) if sid not in current.signed_up_staff]
            if not new_ids:
                raise PreconditionError("All selected staff are already signed up")
            seen["added"] = new_ids
            stamp = utcnow_iso()
            return current.model_copy(update={
                "signed_up_staff": [*current.signed_up_staff, *new_ids],
                "sign_up_timestamps": {**current.sign_up_timestamps, **{sid: stamp for sid in new_ids}},
            })

        event = self._update(event_id, add)
        added = seen["added"]
        levels = self._repo.list_levels()
        for sid in added:
            member = members[sid]
            if not can_access(member.level, event.required_level, levels):
                logger.warning(
                    "Admin override: %s signed up %s (%s) for %r requiring %s",
                    principal.id, member.name, member.level or "no level",
                    event.name, event.required_level,
                )
        logger.info("Admin %s signed up %d staff for %r", principal.id, len(added), event.name)
        return AdminSignUpResult(event=event, added=added)
