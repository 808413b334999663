"""Shared test fixtures and configuration.

Sets up environment variables before any staffhub imports and provides a
temp-file store, a repository, recording fake channels and factories for
staff and events.
"""

import os
import tempfile
from pathlib import Path

# Patch env vars BEFORE any staffhub imports
os.environ.setdefault("DATABASE_PATH", str(Path(tempfile.gettempdir()) / "staffhub-tests.db"))
os.environ.setdefault("NOTIFICATION_DELAY_SECONDS", "0")
os.environ.setdefault("CHANNEL_TIMEOUT_SECONDS", "2")
os.environ.setdefault("NOTIFY_IN_BACKGROUND", "false")
os.environ.setdefault("RESEND_API_KEY", "")

import pytest

from staffhub.core.auth import Principal
from staffhub.core.dispatcher import NotificationDispatcher
from staffhub.core.levels import default_levels
from staffhub.core.notifications import NotificationService
from staffhub.data.models import Event, EventStatus, Role, StaffMember, StaffStatus
from staffhub.data.repository import Repository, new_id
from staffhub.data.store import SQLiteStore
from staffhub.ports.notification_port import SendResult

_ADDRESS_FIELDS = {"telegram": "telegram_chat_id", "whatsapp": "phone", "email": "email"}


class FakeChannel:
    """MessagingChannel that records every send instead of delivering it."""

    def __init__(self, name, connected=True, fail_for=(), verify_result="fake_bot"):
        self.name = name
        self.connected = connected
        self.fail_for = set(fail_for)
        self.verify_result = verify_result
        self.sent = []
        self.closed = 0

    def address_for(self, staff):
        return getattr(staff, _ADDRESS_FIELDS[self.name])

    def normalize_address(self, address):
        if not address or not address.strip():
            return None
        return address.strip()

    async def send(self, address, message):
        self.sent.append((address, message))
        if address in self.fail_for:
            return SendResult(success=False, error="boom")
        return SendResult(success=True)

    async def verify(self):
        if isinstance(self.verify_result, Exception):
            raise self.verify_result
        return self.verify_result

    async def aclose(self):
        self.closed += 1

    @property
    def addresses(self):
        return [address for address, _ in self.sent]


@pytest.fixture
def store(tmp_path):
    """Return a SQLiteStore backed by a temp file."""
    return SQLiteStore(db_path=str(tmp_path / "staffhub.db"))


@pytest.fixture
def repo(store):
    """Repository with the default level ladder seeded."""
    repository = Repository(store)
    repository.save_levels(default_levels())
    return repository


@pytest.fixture
def channels():
    return {name: FakeChannel(name) for name in ("telegram", "whatsapp", "email")}


@pytest.fixture
def notifier(repo, channels):
    """NotificationService over the fake channels, with no send delay."""
    return NotificationService(
        repo,
        dispatcher=NotificationDispatcher(delay_seconds=0, timeout_seconds=2),
        channel_factory=lambda name, config: channels[name],
        background=False,
    )


@pytest.fixture
def admin():
    return Principal(id="admin-1", role=Role.ADMIN)


@pytest.fixture
def make_staff(repo):
    """Factory: save an active staff member. Chat id / phone derive from the id."""
    counter = {"n": 0}

    def _make(name="Staff", level="Level 1", points=0, **kwargs):
        counter["n"] += 1
        n = counter["n"]
        member = StaffMember(
            id=kwargs.pop("id", f"staff-{n}"),
            email=kwargs.pop("email", f"{name.lower().replace(' ', '.')}{n}@example.com"),
            name=name,
            phone=kwargs.pop("phone", f"+97250000{n:04d}"),
            telegram_chat_id=kwargs.pop("telegram_chat_id", f"{1000 + n}"),
            points=points,
            level=level,
            status=kwargs.pop("status", StaffStatus.ACTIVE),
            **kwargs,
        )
        repo.save_staff(member)
        return member

    return _make


@pytest.fixture
def make_event(repo):
    """Factory: save an event directly (bypassing the lifecycle service)."""

    def _make(**overrides):
        fields = {
            "id": new_id(),
            "name": "Gala Dinner",
            "date": "2099-06-01",
            "time": "18:00",
            "duration": "3 hours",
            "location": "Main Hall",
            "points": 100,
            "required_level": "Level 1",
            "status": EventStatus.OPEN,
        }
        fields.update(overrides)
        event = Event(**fields)
        repo.save_event(event)
        return event

    return _make
