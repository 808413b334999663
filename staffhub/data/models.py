"""
StaffHub — Data Models.

Every record persisted in the key-value store has a model here. Field names
on the wire are camelCase (``signedUpStaff``, ``minPoints``...) and are the
storage contract shared with the rest of the system; Python code uses the
snake_case attribute names.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date as date_cls
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class EventStatus(str, Enum):
    DRAFT = "draft"
    OPEN = "open"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class StaffStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"


class Role(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"


class Record(BaseModel):
    """Base for stored records: camelCase aliases, unknown keys ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_record(self) -> dict[str, Any]:
        """Serialize to the JSON shape stored under this record's key."""
        return self.model_dump(by_alias=True, mode="json")


class Level(Record):
    """A rung of the level ladder. ``order`` is the access rank."""

    id: str
    name: str = Field(min_length=1)
    min_points: int = Field(ge=0)
    order: int
    created_at: str = Field(default_factory=utcnow_iso)


class StaffMember(Record):
    """A staff member or administrator.

    ``level`` normally equals the level resolved from ``points``; an admin
    may override it until the next points change.
    """

    id: str
    email: str
    name: str
    phone: str = ""
    telegram_chat_id: str = ""
    points: int = Field(default=0, ge=0)
    level: str = ""
    status: StaffStatus = StaffStatus.PENDING
    role: Role = Role.STAFF
    created_at: str = Field(default_factory=utcnow_iso)

    @model_validator(mode="before")
    @classmethod
    def legacy_telegram_username(cls, data: Any) -> Any:
        # Older records stored the chat id under telegramUsername
        if isinstance(data, dict):
            chat_id = data.get("telegramChatId") or data.get("telegram_chat_id")
            if not chat_id and data.get("telegramUsername"):
                data = {**data, "telegramChatId": data["telegramUsername"]}
            for key in ("phone", "telegramChatId", "level"):
                if key in data and data[key] is None:
                    data = {**data, key: ""}
        return data

    @property
    def is_active_staff(self) -> bool:
        return self.role == Role.STAFF and self.status == StaffStatus.ACTIVE


class Event(Record):
    """A scheduled event and its staffing state.

    The membership "sets" are kept as ordered, de-duplicated lists so that
    notifications go out in sign-up order.
    """

    id: str
    name: str = Field(min_length=1)
    date: str
    end_date: str | None = None
    time: str
    duration: str = ""
    location: str = Field(min_length=1)
    description: str = ""
    notes: str = ""
    points: int = Field(default=0, ge=0)
    required_level: str = Field(min_length=1)
    status: EventStatus = EventStatus.DRAFT
    signed_up_staff: list[str] = Field(default_factory=list)
    sign_up_timestamps: dict[str, str] = Field(default_factory=dict)
    confirmed_staff: list[str] = Field(default_factory=list)
    points_awarded: list[str] = Field(default_factory=list)
    has_been_closed_before: bool = False
    close_generation: int = Field(default=0, ge=0)
    created_at: str = Field(default_factory=utcnow_iso)

    @field_validator("status", mode="before")
    @classmethod
    def legacy_upcoming(cls, v: Any) -> Any:
        # Reinstated events used to be stored as "upcoming"
        if v == "upcoming":
            return EventStatus.OPEN
        return v

    @field_validator("date")
    @classmethod
    def iso_date(cls, v: str) -> str:
        if not v:
            raise ValueError("date is required")
        date_cls.fromisoformat(v)
        return v

    @field_validator("end_date")
    @classmethod
    def optional_iso_date(cls, v: str | None) -> str | None:
        if not v:
            return None
        date_cls.fromisoformat(v)
        return v

    @field_validator("time")
    @classmethod
    def hh_mm(cls, v: str) -> str:
        if not _TIME_RE.match(v):
            raise ValueError("time must be HH:MM (24h)")
        return v

    @field_validator("description", "notes", "duration", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("signed_up_staff", "confirmed_staff", "points_awarded")
    @classmethod
    def dedupe(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))

    @model_validator(mode="after")
    def sync_close_history(self) -> Event:
        if self.has_been_closed_before and self.close_generation == 0:
            self.close_generation = 1
        elif self.close_generation > 0 and not self.has_been_closed_before:
            self.has_been_closed_before = True
        return self

    def starts_at(self) -> datetime:
        """Naive start datetime built from ``date`` and ``time``."""
        return datetime.fromisoformat(f"{self.date}T{self.time}")


class PointAdjustment(Record):
    """Append-only record of a signed point delta."""

    id: str
    staff_id: str
    points: int
    reason: str
    timestamp: str = Field(default_factory=utcnow_iso)
    admin_id: str
    event_id: str | None = None


class TelegramSettings(Record):
    connected: bool = False
    bot_token: str = ""
    bot_name: str = ""
    connected_at: str = ""


class WhatsAppSettings(Record):
    connected: bool = False
    phone_number_id: str = ""
    access_token: str = ""
    phone_number: str = ""
    connected_at: str = ""


@dataclass(frozen=True)
class NotificationChannelConfig:
    """Channel configuration for one dispatch batch.

    Loaded once per batch and handed to the channel factory, so tests can
    inject a fake config instead of touching process-wide state.
    """

    telegram: TelegramSettings = field(default_factory=TelegramSettings)
    whatsapp: WhatsAppSettings = field(default_factory=WhatsAppSettings)
    email_api_key: str = ""
    email_from: str = "onboarding@resend.dev"

    @property
    def email_connected(self) -> bool:
        return bool(self.email_api_key)
