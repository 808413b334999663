"""
StaffHub — Channel settings.

Connect and disconnect the Telegram bot and the WhatsApp Business number.
Credentials are verified against the provider before they are stored; the
stored records are what NotificationService reads for every batch.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from staffhub.adapters.channel_factory import TELEGRAM, WHATSAPP, create_channel
from staffhub.config import settings
from staffhub.core.auth import Principal, require_admin
from staffhub.core.errors import ChannelError, ValidationError
from staffhub.data.models import (
    NotificationChannelConfig,
    TelegramSettings,
    WhatsAppSettings,
    utcnow_iso,
)
from staffhub.ports.notification_port import Message, SendResult

if TYPE_CHECKING:
    from staffhub.core.notifications import ChannelFactory
    from staffhub.data.repository import Repository

logger = logging.getLogger(__name__)


class ChannelSettingsService:
    def __init__(self, repo: Repository, channel_factory: ChannelFactory = create_channel) -> None:
        self._repo = repo
        self._channel_factory = channel_factory

    async def _verify(self, name: str, config: NotificationChannelConfig) -> str:
        channel = self._channel_factory(name, config)
        try:
            return await channel.verify()
        except Exception as exc:
            logger.warning("%s credentials rejected: %s", name, exc)
            raise ValidationError(f"Could not verify {name} credentials: {exc}") from exc
        finally:
            await channel.aclose()

    # -- Telegram --------------------------------------------------------

    async def connect_telegram(self, principal: Principal, bot_token: str) -> TelegramSettings:
        require_admin(principal)
        bot_token = (bot_token or "").strip()
        if not bot_token:
            raise ValidationError("Bot token is required")

        candidate = TelegramSettings(connected=True, bot_token=bot_token)
        bot_name = await self._verify(TELEGRAM, NotificationChannelConfig(telegram=candidate))
        stored = candidate.model_copy(update={"bot_name": bot_name, "connected_at": utcnow_iso()})
        self._repo.save_telegram_settings(stored)
        logger.info("Telegram bot @%s connected", bot_name)
        return stored

    def disconnect_telegram(self, principal: Principal) -> None:
        require_admin(principal)
        self._repo.save_telegram_settings(TelegramSettings())
        logger.info("Telegram bot disconnected")

    async def send_telegram_test(self, principal: Principal, chat_id: str) -> SendResult:
        """Send a test message to one chat id through the stored bot."""
        require_admin(principal)
        config = NotificationChannelConfig(telegram=self._repo.get_telegram_settings())
        channel = self._channel_factory(TELEGRAM, config)
        try:
            if not channel.connected:
                raise ChannelError("Telegram bot is not connected")
            address = channel.normalize_address(chat_id)
            if address is None:
                raise ValidationError("Chat ID must be numeric")
            return await channel.send(address, Message(
                text=f"✅ *Test message*\n\nYour {settings.APP_NAME} Telegram notifications are working!",
            ))
        finally:
            await channel.aclose()

    # -- WhatsApp --------------------------------------------------------

    async def connect_whatsapp(
        self, principal: Principal, phone_number_id: str, access_token: str,
    ) -> WhatsAppSettings:
        require_admin(principal)
        phone_number_id = (phone_number_id or "").strip()
        access_token = (access_token or "").strip()
        if not phone_number_id or not access_token:
            raise ValidationError("Phone number ID and access token are required")

        candidate = WhatsAppSettings(
            connected=True, phone_number_id=phone_number_id, access_token=access_token,
        )
        phone = await self._verify(WHATSAPP, NotificationChannelConfig(whatsapp=candidate))
        stored = candidate.model_copy(update={"phone_number": phone, "connected_at": utcnow_iso()})
        self._repo.save_whatsapp_settings(stored)
        logger.info("WhatsApp number %s connected", phone or phone_number_id)
        return stored

    def disconnect_whatsapp(self, principal: Principal) -> None:
        require_admin(principal)
        self._repo.save_whatsapp_settings(WhatsAppSettings())
        logger.info("WhatsApp disconnected")

    # -- status ----------------------------------------------------------

    def status(self, principal: Principal) -> dict[str, Any]:
        """Connection state of every channel. Secrets are never returned."""
        require_admin(principal)
        telegram = self._repo.get_telegram_settings()
        whatsapp = self._repo.get_whatsapp_settings()
        return {
            "telegram": {
                "connected": telegram.connected,
                "botName": telegram.bot_name,
                "connectedAt": telegram.connected_at,
            },
            "whatsapp": {
                "connected": whatsapp.connected,
                "phoneNumber": whatsapp.phone_number,
                "connectedAt": whatsapp.connected_at,
            },
            "email": {
                "connected": bool(settings.RESEND_API_KEY),
                "from": settings.EMAIL_FROM,
            },
        }
