"""Telegram notification adapter — implements MessagingChannel.

Wraps a telegram.Bot instance built from the stored bot token.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from telegram import Bot
from telegram.constants import ParseMode
from telegram.error import TelegramError

from staffhub.ports.notification_port import Message, SendResult

if TYPE_CHECKING:
    from staffhub.data.models import StaffMember

logger = logging.getLogger(__name__)

_CHAT_ID_RE = re.compile(r"^\d+$")


def _friendly_error(chat_id: str, exc: TelegramError) -> str:
    desc = str(exc.message or exc).lower()
    if "chat not found" in desc:
        return f"Chat not found for ID: {chat_id}. The user must start a conversation with your bot first."
    if "bot was blocked" in desc:
        return "User has blocked the bot. Ask them to unblock it in Telegram."
    if "user is deactivated" in desc:
        return "This Telegram account is deactivated."
    return str(exc.message or exc)


class TelegramNotifier:
    """Telegram implementation of MessagingChannel."""

    name = "telegram"

    def __init__(self, bot_token: str, connected: bool = True, bot: Bot | None = None) -> None:
        self._connected = connected and bool(bot_token)
        self._bot = bot if bot is not None else (Bot(bot_token) if bot_token else None)
        self._initialized = False

    @property
    def connected(self) -> bool:
        return self._connected

    def address_for(self, staff: StaffMember) -> str:
        return staff.telegram_chat_id

    def normalize_address(self, address: str | None) -> str | None:
        """Chat ids must be numeric; usernames are rejected."""
        if not address:
            return None
        address = address.strip()
        if not _CHAT_ID_RE.match(address):
            return None
        return address

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self._bot.initialize()
            self._initialized = True

    async def send(self, address: str, message: Message) -> SendResult:
        try:
            await self._ensure_initialized()
            sent = await self._bot.send_message(
                chat_id=address, text=message.text, parse_mode=ParseMode.MARKDOWN,
            )
        except TelegramError as exc:
            logger.error("Telegram API error for chat %s: %s", address, exc)
            return SendResult(success=False, error=_friendly_error(address, exc))
        logger.debug("Telegram message %s sent to chat %s", sent.message_id, address)
        return SendResult(success=True)

    async def verify(self) -> str:
        """Check the token against the Bot API; returns the bot username."""
        me = await self._bot.get_me()
        return me.username or ""

    async def aclose(self) -> None:
        if self._initialized:
            await self._bot.shutdown()
            self._initialized = False
