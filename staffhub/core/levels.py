"""
StaffHub — Levels.

Maps point totals to level names and decides which events a staff member
may see. A level's ``order`` is its access rank: staff at rank R can access
every event whose required level has rank <= R.

Also holds the admin level-management operations (add, edit, delete,
reorder).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from staffhub.core.auth import Principal, require_admin
from staffhub.core.errors import NotFoundError, PreconditionError, ValidationError
from staffhub.data.models import Level, StaffMember, utcnow_iso
from staffhub.data.repository import new_id

if TYPE_CHECKING:
    from staffhub.data.repository import Repository

logger = logging.getLogger(__name__)

NO_LEVEL = ""


# ---------------------------------------------------------------------------
# Level resolution
# ---------------------------------------------------------------------------


def resolve_level(points: int, levels: list[Level]) -> str:
    """Return the name of the level a point total qualifies for.

    Picks the level with the greatest ``min_points <= points``; ties go to
    the lowest ``order``. If nothing qualifies, falls back to the level with
    the smallest ``order``. Returns NO_LEVEL when no levels exist.
    """
    if not levels:
        return NO_LEVEL

    qualifying = [lvl for lvl in levels if lvl.min_points <= points]
    if qualifying:
        best = max(qualifying, key=lambda lvl: (lvl.min_points, -lvl.order))
        return best.name

    return min(levels, key=lambda lvl: lvl.order).name


# ---------------------------------------------------------------------------
# Eligibility
# ---------------------------------------------------------------------------


def can_access(staff_level: str | None, required_level: str, levels: list[Level]) -> bool:
    """True if a staff member at staff_level may see an event requiring required_level.

    Unknown or deleted level names on either side deny access.
    """
    if not staff_level:
        return False
    ranks = {lvl.name: lvl.order for lvl in levels}
    staff_rank = ranks.get(staff_level)
    required_rank = ranks.get(required_level)
    if staff_rank is None or required_rank is None:
        return False
    return staff_rank >= required_rank


def eligible_staff(
    staff: list[StaffMember], required_level: str, levels: list[Level],
) -> list[StaffMember]:
    """Active staff (not admins) whose rank lets them access the event."""
    eligible = []
    for member in staff:
        if not member.is_active_staff:
            continue
        if can_access(member.level, required_level, levels):
            eligible.append(member)
        else:
            logger.debug("%s (%s) not eligible for level %s", member.name, member.level or "-", required_level)
    return eligible


# ---------------------------------------------------------------------------
# Level management (admin)
# ---------------------------------------------------------------------------


class LevelService:
    """Admin operations on the level table."""

    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    def list_levels(self) -> list[Level]:
        # No auth: levels are needed before login
        return self._repo.list_levels()

    def add_level(self, principal: Principal, name: str, min_points: int) -> Level:
        require_admin(principal)
        name = _validate_level_fields(name, min_points)
        levels = self._repo.list_levels()
        if any(lvl.name == name for lvl in levels):
            raise ValidationError(f"A level named {name!r} already exists")
        next_order = max((lvl.order for lvl in levels), default=-1) + 1
        level = Level(id=new_id(), name=name, min_points=min_points, order=next_order)
        self._repo.save_level(level)
        logger.info("Level added: %s (min %d, order %d)", name, min_points, next_order)
        return level

    def update_level(self, principal: Principal, level_id: str, name: str, min_points: int) -> Level:
        """Rename or re-threshold a level. Staff levels are not recomputed."""
        require_admin(principal)
        name = _validate_level_fields(name, min_points)
        level = self._repo.get_level(level_id)
        if level is None:
            raise NotFoundError(f"Level {level_id} not found")
        if any(lvl.name == name and lvl.id != level_id for lvl in self._repo.list_levels()):
            raise ValidationError(f"A level named {name!r} already exists")
        updated = level.model_copy(update={"name": name, "min_points": min_points})
        self._repo.save_level(updated)
        logger.info("Level %s updated: %s (min %d)", level_id, name, min_points)
        return updated

    def delete_level(self, principal: Principal, level_id: str) -> None:
        """Delete a level. Staff and events keep the now-dangling name."""
        require_admin(principal)
        if not self._repo.delete_level(level_id):
            raise NotFoundError(f"Level {level_id} not found")
        logger.info("Level %s deleted", level_id)

    def reorder_level(self, principal: Principal, level_id: str, direction: str) -> list[Level]:
        """Swap a level's order with its neighbour ("up" or "down").

        Both levels are written in one atomic unit, so no reader sees two
        levels sharing an order.
        """
        require_admin(principal)
        if direction not in ("up", "down"):
            raise ValidationError("direction must be 'up' or 'down'")

        levels = self._repo.list_levels()
        index = next((i for i, lvl in enumerate(levels) if lvl.id == level_id), None)
        if index is None:
            raise NotFoundError(f"Level {level_id} not found")

        swap_index = index - 1 if direction == "up" else index + 1
        if swap_index < 0 or swap_index >= len(levels):
            raise PreconditionError("Cannot move level in that direction")

        current, neighbour = levels[index], levels[swap_index]
        self._repo.save_levels([
            current.model_copy(update={"order": neighbour.order}),
            neighbour.model_copy(update={"order": current.order}),
        ])
        logger.info("Level %s moved %s (swapped with %s)", current.name, direction, neighbour.name)
        return self._repo.list_levels()


def _validate_level_fields(name: str, min_points: int) -> str:
    if not name or not name.strip():
        raise ValidationError("Level name is required")
    if not isinstance(min_points, int) or isinstance(min_points, bool) or min_points < 0:
        raise ValidationError("minPoints must be a non-negative integer")
    return name.strip()


def default_levels() -> list[Level]:
    """The starter ladder used when a store is first initialised."""
    now = utcnow_iso()
    return [
        Level(id="level-1", name="Level 1", min_points=0, order=0, created_at=now),
        Level(id="level-2", name="Level 2", min_points=1000, order=1, created_at=now),
    ]
