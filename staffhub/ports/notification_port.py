"""Notification port — abstract interface for sending messages to staff.

Core modules depend on this protocol, never on a specific messaging provider.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from staffhub.data.models import StaffMember


@dataclass(frozen=True)
class Message:
    """A rendered notification. Email uses subject/html, chat channels use text."""

    text: str
    subject: str = ""
    html: str = ""


@dataclass(frozen=True)
class SendResult:
    success: bool
    error: str = ""


class MessagingChannel(Protocol):
    """Abstract messaging channel used by the dispatcher."""

    name: str

    @property
    def connected(self) -> bool: ...

    def address_for(self, staff: StaffMember) -> str: ...

    def normalize_address(self, address: str | None) -> str | None: ...

    async def send(self, address: str, message: Message) -> SendResult: ...

    async def verify(self) -> str: ...

    async def aclose(self) -> None: ...
