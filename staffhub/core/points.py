"""
StaffHub — Points Ledger.

Credits and debits staff points, re-levels staff after every change, and
keeps the append-only adjustment log. Event awards are idempotent per
(event, staff) pair: the pair is claimed in the event's ``pointsAwarded``
list with a compare-and-set before any points are credited, so concurrent
award requests can never double-award.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from staffhub.core.auth import Principal, require_admin
from staffhub.core.errors import NotFoundError, PreconditionError, ValidationError
from staffhub.core.levels import resolve_level
from staffhub.data.models import Event, PointAdjustment, StaffMember
from staffhub.data.repository import new_id

if TYPE_CHECKING:
    from staffhub.core.notifications import NotificationService
    from staffhub.data.repository import Repository

logger = logging.getLogger(__name__)


@dataclass
class AdjustmentOutcome:
    staff: StaffMember
    adjustment: PointAdjustment
    old_level: str
    leveled_up: bool

    @property
    def new_points(self) -> int:
        return self.staff.points

    @property
    def new_level(self) -> str:
        return self.staff.level


@dataclass
class LevelUp:
    staff_id: str
    name: str
    old_level: str
    new_level: str


@dataclass
class AwardOutcome:
    event: Event
    staff: StaffMember
    adjustment: PointAdjustment
    old_level: str
    leveled_up: bool


@dataclass
class ConfirmAllOutcome:
    event: Event
    awards: list[AwardOutcome] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def level_ups(self) -> list[LevelUp]:
        return [
            LevelUp(a.staff.id, a.staff.name, a.old_level, a.staff.level)
            for a in self.awards if a.leveled_up
        ]


@dataclass
class AdjustmentView:
    """An adjustment joined with the staff member's display name."""

    adjustment: PointAdjustment
    staff_name: str


class PointsLedger:
    """Point adjustments and event-completion awards."""

    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    # -- internals -------------------------------------------------------

    def _credit(self, staff_id: str, delta: int) -> tuple[StaffMember, str, bool] | None:
        """Apply delta (floored at zero) and re-level.

        Returns (staff, old_level, leveled_up); leveled_up is True whenever
        the level name changed.
        """
        levels = self._repo.list_levels()
        seen: dict[str, str] = {}

        def apply(current: StaffMember) -> StaffMember:
            seen["old_level"] = current.level
            new_points = max(0, current.points + delta)
            return current.model_copy(update={
                "points": new_points,
                "level": resolve_level(new_points, levels),
            })

        updated = self._repo.update_staff(staff_id, apply)
        if updated is None:
            return None
        old_level = seen["old_level"]
        return updated, old_level, updated.level != old_level

    def _award(self, principal: Principal, event_id: str, staff_id: str) -> AwardOutcome | None:
        """Claim and credit one award. Returns None if the staff member is gone."""
        if self._repo.get_staff(staff_id) is None:
            return None

        def claim(current: Event) -> Event:
            if staff_id not in current.confirmed_staff:
                raise PreconditionError("Staff member was not selected for this event")
            if staff_id in current.points_awarded:
                raise PreconditionError("Points already awarded to this staff member")
            return current.model_copy(update={
                "points_awarded": [*current.points_awarded, staff_id],
            })

        event = self._repo.update_event(event_id, claim)
        if event is None:
            raise NotFoundError(f"Event {event_id} not found")

        credited = self._credit(staff_id, event.points)
        if credited is None:
            # Staff deleted between the check and the credit: release the claim
            self._repo.update_event(event_id, lambda e: e.model_copy(update={
                "points_awarded": [s for s in e.points_awarded if s != staff_id],
            }))
            return None
        staff, old_level, leveled_up = credited

        adjustment = PointAdjustment(
            id=new_id(),
            staff_id=staff_id,
            points=event.points,
            reason=f"Completed Event: {event.name}",
            admin_id=principal.id,
            event_id=event_id,
        )
        self._repo.add_adjustment(adjustment)
        logger.info(
            "Awarded %d points to %s for %r (total %d, level %s%s)",
            event.points, staff.name, event.name, staff.points, staff.level,
            ", level up" if leveled_up else "",
        )
        return AwardOutcome(event, staff, adjustment, old_level, leveled_up)

    # -- public operations -----------------------------------------------

    def adjust(self, principal: Principal, staff_id: str, delta: int, reason: str) -> AdjustmentOutcome:
        """Manual admin adjustment. Points never drop below zero."""
        require_admin(principal)
        if not staff_id:
            raise ValidationError("Staff ID is required")
        if not isinstance(delta, int) or isinstance(delta, bool):
            raise ValidationError("points must be an integer")
        if not reason or not reason.strip():
            raise ValidationError("A reason is required")

        credited = self._credit(staff_id, delta)
        if credited is None:
            raise NotFoundError(f"Staff member {staff_id} not found")
        staff, old_level, leveled_up = credited

        adjustment = PointAdjustment(
            id=new_id(), staff_id=staff_id, points=delta,
            reason=reason.strip(), admin_id=principal.id,
        )
        self._repo.add_adjustment(adjustment)
        logger.info(
            "Adjusted %s by %+d (%s): total %d, level %s",
            staff.name, delta, adjustment.reason, staff.points, staff.level,
        )
        return AdjustmentOutcome(staff, adjustment, old_level, leveled_up)

    def confirm_one(self, principal: Principal, event_id: str, staff_id: str) -> AwardOutcome:
        """Award an event's points to one confirmed staff member, at most once."""
        require_admin(principal)
        if not event_id or not staff_id:
            raise ValidationError("Event ID and staff ID are required")
        if self._repo.get_event(event_id) is None:
            raise NotFoundError(f"Event {event_id} not found")

        outcome = self._award(principal, event_id, staff_id)
        if outcome is None:
            raise NotFoundError(f"Staff member {staff_id} not found")
        return outcome

    def confirm_all(self, principal: Principal, event_id: str) -> ConfirmAllOutcome:
        """Award every confirmed staff member who has not been awarded yet.

        Ids that no longer resolve to a staff member are skipped and left
        unawarded.
        """
        require_admin(principal)
        if not event_id:
            raise ValidationError("Event ID is required")
        event = self._repo.get_event(event_id)
        if event is None:
            raise NotFoundError(f"Event {event_id} not found")

        awarded = set(event.points_awarded)
        pending = [sid for sid in event.confirmed_staff if sid not in awarded]
        if not pending:
            raise PreconditionError("No staff members awaiting point confirmation")

        result = ConfirmAllOutcome(event=event)
        for staff_id in pending:
            try:
                outcome = self._award(principal, event_id, staff_id)
            except PreconditionError as exc:
                # Awarded by a concurrent request in the meantime
                logger.info("Skipping %s on %s: %s", staff_id, event_id, exc)
                continue
            if outcome is None:
                logger.warning("Staff member %s not found, skipping award", staff_id)
                result.skipped.append(staff_id)
                continue
            result.awards.append(outcome)

        result.event = self._repo.get_event(event_id) or event
        logger.info(
            "Confirmed %d participants for %r (%d skipped, %d level-ups)",
            len(result.awards), event.name, len(result.skipped), len(result.level_ups),
        )
        return result

    def list_adjustments(self, principal: Principal) -> list[AdjustmentView]:
        """All adjustments, newest first, with staff names."""
        require_admin(principal)
        names = {member.id: member.name for member in self._repo.list_staff()}
        views = [
            AdjustmentView(adj, names.get(adj.staff_id, "Unknown Staff"))
            for adj in self._repo.list_adjustments()
        ]
        views.sort(key=lambda v: v.adjustment.timestamp, reverse=True)
        return views


class PointsService:
    """Ledger operations followed by the points emails.

    The ledger commits first; notification failures are logged by the
    NotificationService and never undo a credit.
    """

    def __init__(self, ledger: PointsLedger, notifier: NotificationService) -> None:
        self.ledger = ledger
        self._notifier = notifier

    async def adjust(self, principal: Principal, staff_id: str, delta: int, reason: str) -> AdjustmentOutcome:
        outcome = self.ledger.adjust(principal, staff_id, delta, reason)
        await self._notifier.submit(self._notifier.notify_points_adjusted(
            outcome.staff, delta, outcome.adjustment.reason, outcome.leveled_up,
        ))
        return outcome

    async def confirm_one(self, principal: Principal, event_id: str, staff_id: str) -> AwardOutcome:
        outcome = self.ledger.confirm_one(principal, event_id, staff_id)
        await self._notifier.submit(self._notifier.notify_points_awarded(
            outcome.event, outcome.staff, outcome.leveled_up,
        ))
        return outcome

    async def confirm_all(self, principal: Principal, event_id: str) -> ConfirmAllOutcome:
        result = self.ledger.confirm_all(principal, event_id)
        for award in result.awards:
            await self._notifier.submit(self._notifier.notify_points_awarded(
                award.event, award.staff, award.leveled_up,
            ))
        return result
