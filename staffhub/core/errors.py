"""Error taxonomy shared by every StaffHub service.

ValidationError, NotFoundError, PreconditionError and AuthorizationError are
raised before any mutation is persisted. ChannelError is raised only for a
channel that is not connected at all; per-recipient delivery failures are
reported as results, never raised.
"""

from __future__ import annotations


class StaffHubError(Exception):
    """Base class for all StaffHub errors."""


class ValidationError(StaffHubError):
    """Missing or malformed required fields."""


class NotFoundError(StaffHubError):
    """An event, staff member or level id does not resolve."""


class PreconditionError(StaffHubError):
    """The record is in the wrong state for the requested operation."""


class AuthorizationError(StaffHubError):
    """A non-admin attempted an admin-only operation."""


class ChannelError(StaffHubError):
    """A notification channel is unconfigured or a send failed."""
