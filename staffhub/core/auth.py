"""Authenticated principal and role gating.

Credentials are verified upstream; the engine only sees the resulting
principal and enforces admin-only operations.
"""

from __future__ import annotations

from dataclasses import dataclass

from staffhub.core.errors import AuthorizationError
from staffhub.data.models import Role


@dataclass(frozen=True)
class Principal:
    """An already-authenticated caller."""

    id: str
    role: Role = Role.STAFF

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def require_admin(principal: Principal) -> None:
    """Raise AuthorizationError unless the principal is an admin."""
    if not principal.is_admin:
        raise AuthorizationError("Admin access required")
