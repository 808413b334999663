"""
StaffHub — Notification fan-out.

Turns a lifecycle trigger into dispatch batches: resolves recipients,
renders per-recipient messages, and runs the dispatcher once per channel.
Channel configuration is loaded fresh for every batch. Nothing in here
ever raises into the caller: the triggering mutation is already committed,
so failures are logged and reported, never propagated.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Callable, Coroutine

from staffhub.adapters.channel_factory import EMAIL, TELEGRAM, WHATSAPP, create_channel
from staffhub.config import settings
from staffhub.core import messages
from staffhub.core.dispatcher import DispatchSummary, NotificationDispatcher, Recipient
from staffhub.core.errors import ChannelError
from staffhub.core.levels import eligible_staff
from staffhub.data.models import NotificationChannelConfig

if TYPE_CHECKING:
    from staffhub.core.changes import SelectionDiff
    from staffhub.data.models import Event, StaffMember
    from staffhub.data.repository import Repository
    from staffhub.ports.notification_port import Message, MessagingChannel

logger = logging.getLogger(__name__)

ChannelFactory = Callable[[str, NotificationChannelConfig], "MessagingChannel"]

# Channels used per trigger
NEW_EVENT_CHANNELS = (WHATSAPP, TELEGRAM)
SELECTION_CHANNELS = (TELEGRAM,)
UPDATE_CHANNELS = (TELEGRAM,)
CANCEL_CHANNELS = (EMAIL, TELEGRAM, WHATSAPP)
POINTS_CHANNELS = (EMAIL,)


class NotificationService:
    """Per-trigger notification fan-out over the configured channels."""

    def __init__(
        self,
        repo: Repository,
        dispatcher: NotificationDispatcher | None = None,
        channel_factory: ChannelFactory = create_channel,
        background: bool | None = None,
    ) -> None:
        self._repo = repo
        self._dispatcher = dispatcher or NotificationDispatcher(
            delay_seconds=settings.NOTIFICATION_DELAY_SECONDS,
            timeout_seconds=settings.CHANNEL_TIMEOUT_SECONDS,
        )
        self._channel_factory = channel_factory
        self._background = settings.NOTIFY_IN_BACKGROUND if background is None else background
        self._tasks: set[asyncio.Task] = set()

    def load_config(self) -> NotificationChannelConfig:
        """Snapshot of every channel's configuration for one batch."""
        return NotificationChannelConfig(
            telegram=self._repo.get_telegram_settings(),
            whatsapp=self._repo.get_whatsapp_settings(),
            email_api_key=settings.RESEND_API_KEY,
            email_from=settings.EMAIL_FROM,
        )

    # -- scheduling ------------------------------------------------------

    async def submit(self, coro: Coroutine) -> None:
        """Run a fan-out inline, or as a best-effort task in background mode."""
        if not self._background:
            await coro
            return
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background notification task failed: %s", task.exception())

    async def drain(self) -> None:
        """Wait for all background fan-outs to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # -- core fan-out ----------------------------------------------------

    async def fan_out(
        self,
        trigger: str,
        staff: list[StaffMember],
        render: Callable[[StaffMember], Message],
        channels: tuple[str, ...],
    ) -> list[DispatchSummary]:
        """Deliver render(member) to every member over each channel in turn."""
        if not staff:
            logger.info("%s: no recipients", trigger)
            return []

        config = self.load_config()
        by_id = {member.id: member for member in staff}
        summaries: list[DispatchSummary] = []

        for name in channels:
            channel = self._channel_factory(name, config)
            try:
                recipients = [
                    Recipient(id=m.id, name=m.name, address=channel.address_for(m)) for m in staff
                ]
                results = await self._dispatcher.dispatch(
                    recipients, lambda r: render(by_id[r.id]), channel,
                )
            except ChannelError as exc:
                logger.info("%s: %s, skipping %s notifications", trigger, exc, name)
                continue
            except Exception as exc:
                logger.error("%s: %s notifications aborted: %s", trigger, name, exc)
                continue
            finally:
                await _close_quietly(channel)

            summary = DispatchSummary(channel=name, results=results)
            logger.info("✅ %s finished: %s", trigger, summary)
            summaries.append(summary)
        return summaries

    def _resolve(self, staff_ids: list[str]) -> list[StaffMember]:
        members = []
        for staff_id in staff_ids:
            member = self._repo.get_staff(staff_id)
            if member is None:
                logger.warning("Staff %s not found, skipping notification", staff_id)
                continue
            members.append(member)
        return members

    # -- triggers --------------------------------------------------------

    async def notify_new_event(self, event: Event) -> list[DispatchSummary]:
        """Tell every eligible active staff member about a newly opened event."""
        try:
            levels = self._repo.list_levels()
            if not any(lvl.name == event.required_level for lvl in levels):
                logger.warning("Event level %r not found, nobody is eligible", event.required_level)
                return []
            staff = eligible_staff(self._repo.list_staff(), event.required_level, levels)
            logger.info("New event %r: %d eligible staff", event.name, len(staff))
            return await self.fan_out(
                f"new event {event.id}", staff,
                lambda m: messages.new_event_message(event, m.name), NEW_EVENT_CHANNELS,
            )
        except Exception as exc:
            logger.error("New event notifications for %s failed: %s", event.id, exc)
            return []

    async def notify_close(self, event: Event, diff: SelectionDiff) -> list[DispatchSummary]:
        """Selected / not-selected messages for staff whose selection changed."""
        try:
            logger.info(
                "Closing %r: %d newly selected, %d newly deselected",
                event.name, len(diff.added), len(diff.removed),
            )
            summaries = await self.fan_out(
                f"selection {event.id}", self._resolve(diff.added),
                lambda m: messages.selected_message(event, m.name), SELECTION_CHANNELS,
            )
            summaries += await self.fan_out(
                f"non-selection {event.id}", self._resolve(diff.removed),
                lambda m: messages.not_selected_message(event, m.name), SELECTION_CHANNELS,
            )
            return summaries
        except Exception as exc:
            logger.error("Close notifications for %s failed: %s", event.id, exc)
            return []

    async def notify_update(
        self, event: Event, changes: list[str], staff_ids: list[str],
    ) -> list[DispatchSummary]:
        try:
            logger.info("✏️ %r changed (%d): %s", event.name, len(changes), changes)
            return await self.fan_out(
                f"update {event.id}", self._resolve(staff_ids),
                lambda m: messages.event_updated_message(event, m.name, changes), UPDATE_CHANNELS,
            )
        except Exception as exc:
            logger.error("Update notifications for %s failed: %s", event.id, exc)
            return []

    async def notify_cancellation(self, event: Event, staff_ids: list[str]) -> list[DispatchSummary]:
        try:
            return await self.fan_out(
                f"cancellation {event.id}", self._resolve(staff_ids),
                lambda m: messages.cancelled_message(event, m.name), CANCEL_CHANNELS,
            )
        except Exception as exc:
            logger.error("Cancellation notifications for %s failed: %s", event.id, exc)
            return []

    async def notify_points_awarded(
        self, event: Event, staff: StaffMember, leveled_up: bool,
    ) -> list[DispatchSummary]:
        try:
            return await self.fan_out(
                f"award {event.id}/{staff.id}", [staff],
                lambda m: messages.points_awarded_message(
                    event, m.name, m.points, m.level, leveled_up,
                ),
                POINTS_CHANNELS,
            )
        except Exception as exc:
            logger.error("Award notification for %s failed: %s", staff.id, exc)
            return []

    async def notify_points_adjusted(
        self, staff: StaffMember, delta: int, reason: str, leveled_up: bool,
    ) -> list[DispatchSummary]:
        try:
            return await self.fan_out(
                f"adjustment {staff.id}", [staff],
                lambda m: messages.points_adjusted_message(
                    m.name, delta, m.points, m.level, leveled_up, reason,
                ),
                POINTS_CHANNELS,
            )
        except Exception as exc:
            logger.error("Adjustment notification for %s failed: %s", staff.id, exc)
            return []


async def _close_quietly(channel: MessagingChannel) -> None:
    try:
        await channel.aclose()
    except Exception as exc:
        logger.debug("Closing %s channel failed: %s", channel.name, exc)
