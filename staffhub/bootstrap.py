"""
StaffHub — Service wiring.

Builds the store, repository and services from settings and seeds the
default level ladder on an empty store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from staffhub.config import settings
from staffhub.core.channel_settings import ChannelSettingsService
from staffhub.core.events import EventService
from staffhub.core.levels import LevelService, default_levels
from staffhub.core.notifications import NotificationService
from staffhub.core.points import PointsLedger, PointsService
from staffhub.core.staff import StaffService
from staffhub.data.repository import Repository
from staffhub.data.store import SQLiteStore
from staffhub.ports.store_port import KeyValueStore

logger = logging.getLogger(__name__)


@dataclass
class StaffHub:
    repo: Repository
    notifications: NotificationService
    events: EventService
    points: PointsService
    levels: LevelService
    staff: StaffService
    channels: ChannelSettingsService


def seed_levels(repo: Repository) -> bool:
    """Write the default levels if none exist. Returns True if seeded."""
    if repo.list_levels():
        return False
    repo.save_levels(default_levels())
    logger.info("Seeded default levels")
    return True


def build(store: KeyValueStore | None = None) -> StaffHub:
    repo = Repository(store if store is not None else SQLiteStore())
    seed_levels(repo)
    notifications = NotificationService(repo)
    return StaffHub(
        repo=repo,
        notifications=notifications,
        events=EventService(repo, notifications),
        points=PointsService(PointsLedger(repo), notifications),
        levels=LevelService(repo),
        staff=StaffService(repo),
        channels=ChannelSettingsService(repo),
    )


def main() -> None:
    hub = build()
    config = hub.notifications.load_config()
    logger.info("%s ready (store: %s)", settings.APP_NAME, settings.DATABASE_PATH)
    logger.info(
        "Levels: %s", ", ".join(f"{lvl.name} ({lvl.min_points}+)" for lvl in hub.repo.list_levels()),
    )
    logger.info(
        "Channels: telegram=%s whatsapp=%s email=%s",
        config.telegram.connected, config.whatsapp.connected, config.email_connected,
    )
