"""
StaffHub — Staff management.

Invitation, activation, admin edits and deletion of staff records.
Credentials live upstream; this module only owns the profile record.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from staffhub.core.auth import Principal, require_admin
from staffhub.core.errors import NotFoundError, PreconditionError, ValidationError
from staffhub.core.levels import resolve_level
from staffhub.data.models import Event, Role, StaffMember, StaffStatus
from staffhub.data.repository import new_id

if TYPE_CHECKING:
    from staffhub.data.repository import Repository

logger = logging.getLogger(__name__)


def _clean_email(email: str) -> str:
    email = (email or "").strip().lower()
    local, _, domain = email.partition("@")
    if not local or not domain:
        raise ValidationError("A valid email is required")
    return email


class StaffService:
    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    def _load(self, staff_id: str) -> StaffMember:
        member = self._repo.get_staff(staff_id)
        if member is None:
            raise NotFoundError(f"Staff member {staff_id} not found")
        return member

    def list_staff(self, principal: Principal) -> list[StaffMember]:
        require_admin(principal)
        return sorted(self._repo.list_staff(), key=lambda m: m.name.lower())

    def get_profile(self, principal: Principal) -> StaffMember:
        """The caller's own record."""
        return self._load(principal.id)

    def invite_staff(
        self,
        principal: Principal,
        email: str,
        name: str,
        phone: str = "",
        telegram_chat_id: str = "",
        staff_id: str | None = None,
    ) -> StaffMember:
        """Create a pending staff record with zero points at the entry level."""
        require_admin(principal)
        email = _clean_email(email)
        if not name or not name.strip():
            raise ValidationError("Name is required")
        if any(m.email.lower() == email for m in self._repo.list_staff()):
            raise ValidationError(f"A staff member with email {email} already exists")

        member = StaffMember(
            id=staff_id or new_id(),
            email=email,
            name=name.strip(),
            phone=phone.strip(),
            telegram_chat_id=telegram_chat_id.strip(),
            points=0,
            level=resolve_level(0, self._repo.list_levels()),
            status=StaffStatus.PENDING,
        )
        self._repo.save_staff(member)
        logger.info("Invited %s <%s> at %s", member.name, member.email, member.level or "no level")
        return member

    def activate(self, staff_id: str) -> StaffMember:
        """pending → active, once the invitee has set up their account."""

        def activate(current: StaffMember) -> StaffMember | None:
            if current.status == StaffStatus.ACTIVE:
                return None
            return current.model_copy(update={"status": StaffStatus.ACTIVE})

        member = self._repo.update_staff(staff_id, activate)
        if member is None:
            raise NotFoundError(f"Staff member {staff_id} not found")
        logger.info("Staff member %s is active", member.name)
        return member

    def update_staff(
        self,
        principal: Principal,
        staff_id: str,
        *,
        name: str | None = None,
        email: str | None = None,
        phone: str | None = None,
        telegram_chat_id: str | None = None,
        level: str | None = None,
    ) -> StaffMember:
        """Admin edit. Setting ``level`` overrides the resolved level until the
        next points change."""
        require_admin(principal)
        changes: dict[str, str] = {}
        if name is not None:
            if not name.strip():
                raise ValidationError("Name cannot be empty")
            changes["name"] = name.strip()
        if email is not None:
            changes["email"] = _clean_email(email)
        if phone is not None:
            changes["phone"] = phone.strip()
        if telegram_chat_id is not None:
            changes["telegram_chat_id"] = telegram_chat_id.strip()
        if level is not None:
            if not any(lvl.name == level for lvl in self._repo.list_levels()):
                raise ValidationError(f"Unknown level {level!r}")
            changes["level"] = level

        if "email" in changes:
            taken = any(
                m.email.lower() == changes["email"] and m.id != staff_id
                for m in self._repo.list_staff()
            )
            if taken:
                raise ValidationError(f"A staff member with email {changes['email']} already exists")

        seen: dict[str, str] = {}

        def apply(current: StaffMember) -> StaffMember:
            seen["level"] = current.level
            return current.model_copy(update=changes)

        member = self._repo.update_staff(staff_id, apply)
        if member is None:
            raise NotFoundError(f"Staff member {staff_id} not found")
        if level is not None and seen["level"] != level:
            logger.info("Level override for %s: %s → %s", member.name, seen["level"] or "-", level)
        return member

    def delete_staff(self, principal: Principal, staff_id: str) -> int:
        """Delete a staff member and withdraw them from every event's sign-ups.

        Returns the number of events they were removed from. Admin accounts
        cannot be deleted.
        """
        require_admin(principal)
        member = self._load(staff_id)
        if member.role == Role.ADMIN:
            raise PreconditionError("Cannot delete admin users")

        def withdraw(current: Event) -> Event | None:
            if staff_id not in current.signed_up_staff:
                return None
            timestamps = dict(current.sign_up_timestamps)
            timestamps.pop(staff_id, None)
            return current.model_copy(update={
                "signed_up_staff": [s for s in current.signed_up_staff if s != staff_id],
                "sign_up_timestamps": timestamps,
            })

        removed = 0
        for event in self._repo.list_events():
            if staff_id in event.signed_up_staff:
                self._repo.update_event(event.id, withdraw)
                removed += 1

        self._repo.delete_staff(staff_id)
        logger.info("Deleted staff member %s, removed from %d events", member.name, removed)
        return removed
