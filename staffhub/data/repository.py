"""
StaffHub — Typed repository over the key-value store.

This is the schema-validation boundary: raw JSON read from the store is
parsed into the record models of ``staffhub.data.models`` and malformed
records are rejected here instead of leaking half-filled dicts into the
services. Read-modify-write updates go through a compare-and-set loop.
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable, TypeVar

import pydantic

from staffhub.core.errors import ValidationError
from staffhub.data.models import (
    Event,
    Level,
    PointAdjustment,
    Record,
    StaffMember,
    TelegramSettings,
    WhatsAppSettings,
)
from staffhub.ports.store_port import KeyValueStore, VersionConflict

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=Record)

_MAX_CAS_RETRIES = 20

TELEGRAM_SETTINGS_KEY = "telegram:settings"
WHATSAPP_SETTINGS_KEY = "whatsapp:settings"


def new_id() -> str:
    return uuid.uuid4().hex


class Repository:
    """Typed access to events, staff, levels, adjustments and channel settings."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    # -- generic helpers -------------------------------------------------

    @staticmethod
    def _parse(model: type[R], raw: object, key: str) -> R:
        try:
            return model.model_validate(raw)
        except pydantic.ValidationError as exc:
            raise ValidationError(f"Malformed record at {key!r}: {exc}") from exc

    def _get(self, model: type[R], key: str) -> R | None:
        raw = self._store.get(key)
        if raw is None:
            return None
        return self._parse(model, raw, key)

    def _list(self, model: type[R], prefix: str) -> list[R]:
        return [self._parse(model, raw, prefix) for raw in self._store.list_by_prefix(prefix)]

    def _update(
        self,
        model: type[R],
        key: str,
        mutate: Callable[[R], R | None],
    ) -> R | None:
        """Atomically apply mutate to the record stored at key.

        mutate receives a freshly-read record and returns the new record, or
        None to leave it untouched. Exceptions raised by mutate abort the
        update. On a concurrent write the record is re-read and mutate runs
        again, so every check inside mutate is re-evaluated.
        Returns None when the key does not exist.
        """
        for attempt in range(1, _MAX_CAS_RETRIES + 1):
            raw, version = self._store.get_versioned(key)
            if raw is None:
                return None
            current = self._parse(model, raw, key)
            updated = mutate(current)
            if updated is None:
                return current
            if self._store.compare_and_set(key, updated.to_record(), version):
                return updated
            logger.info("Version conflict on %s, retrying (attempt %d)", key, attempt)
        raise VersionConflict(f"Could not update {key!r} after {_MAX_CAS_RETRIES} attempts")

    # -- levels ----------------------------------------------------------

    def list_levels(self) -> list[Level]:
        """All levels sorted by access rank (``order``)."""
        return sorted(self._list(Level, "level:"), key=lambda lvl: lvl.order)

    def get_level(self, level_id: str) -> Level | None:
        return self._get(Level, f"level:{level_id}")

    def save_level(self, level: Level) -> None:
        self._store.set(f"level:{level.id}", level.to_record())

    def save_levels(self, levels: list[Level]) -> None:
        """Write several levels in one atomic unit."""
        self._store.set_many({f"level:{lvl.id}": lvl.to_record() for lvl in levels})

    def delete_level(self, level_id: str) -> bool:
        return self._store.delete(f"level:{level_id}")

    # -- staff -----------------------------------------------------------

    def get_staff(self, staff_id: str) -> StaffMember | None:
        return self._get(StaffMember, f"user:{staff_id}")

    def list_staff(self) -> list[StaffMember]:
        return self._list(StaffMember, "user:")

    def save_staff(self, staff: StaffMember) -> None:
        self._store.set(f"user:{staff.id}", staff.to_record())

    def update_staff(
        self, staff_id: str, mutate: Callable[[StaffMember], StaffMember | None],
    ) -> StaffMember | None:
        return self._update(StaffMember, f"user:{staff_id}", mutate)

    def delete_staff(self, staff_id: str) -> bool:
        return self._store.delete(f"user:{staff_id}")

    # -- events ----------------------------------------------------------

    def get_event(self, event_id: str) -> Event | None:
        return self._get(Event, f"event:{event_id}")

    def list_events(self) -> list[Event]:
        return self._list(Event, "event:")

    def save_event(self, event: Event) -> None:
        self._store.set(f"event:{event.id}", event.to_record())

    def update_event(
        self, event_id: str, mutate: Callable[[Event], Event | None],
    ) -> Event | None:
        return self._update(Event, f"event:{event_id}", mutate)

    def delete_event(self, event_id: str) -> bool:
        return self._store.delete(f"event:{event_id}")

    # -- point adjustments (append-only) ---------------------------------

    def add_adjustment(self, adjustment: PointAdjustment) -> None:
        key = f"adjustment:{adjustment.id}"
        if not self._store.compare_and_set(key, adjustment.to_record(), 0):
            raise ValidationError(f"Adjustment {adjustment.id} already exists")

    def list_adjustments(self) -> list[PointAdjustment]:
        return self._list(PointAdjustment, "adjustment:")

    # -- channel settings ------------------------------------------------

    def get_telegram_settings(self) -> TelegramSettings:
        return self._get(TelegramSettings, TELEGRAM_SETTINGS_KEY) or TelegramSettings()

    def save_telegram_settings(self, settings: TelegramSettings) -> None:
        self._store.set(TELEGRAM_SETTINGS_KEY, settings.to_record())

    def get_whatsapp_settings(self) -> WhatsAppSettings:
        return self._get(WhatsAppSettings, WHATSAPP_SETTINGS_KEY) or WhatsAppSettings()

    def save_whatsapp_settings(self, settings: WhatsAppSettings) -> None:
        self._store.set(WHATSAPP_SETTINGS_KEY, settings.to_record())
