"""Channel adapter factory — builds messaging channels from a channel config."""

from __future__ import annotations

from staffhub.config import settings
from staffhub.data.models import NotificationChannelConfig
from staffhub.ports.notification_port import MessagingChannel

TELEGRAM = "telegram"
WHATSAPP = "whatsapp"
EMAIL = "email"


def create_channel(name: str, config: NotificationChannelConfig) -> MessagingChannel:
    """Return the channel adapter for name, configured from config.

    Adapters for channels that are not connected are still returned; the
    dispatcher refuses to use them.
    """
    if name == TELEGRAM:
        from staffhub.adapters.telegram_notifier import TelegramNotifier

        return TelegramNotifier(
            bot_token=config.telegram.bot_token,
            connected=config.telegram.connected,
        )

    if name == WHATSAPP:
        from staffhub.adapters.whatsapp_notifier import WhatsAppNotifier

        return WhatsAppNotifier(
            phone_number_id=config.whatsapp.phone_number_id,
            access_token=config.whatsapp.access_token,
            connected=config.whatsapp.connected,
            api_version=settings.WHATSAPP_API_VERSION,
            timeout=settings.CHANNEL_TIMEOUT_SECONDS,
        )

    if name == EMAIL:
        from staffhub.adapters.email_notifier import EmailNotifier

        return EmailNotifier(
            api_key=config.email_api_key,
            from_email=config.email_from,
            timeout=settings.CHANNEL_TIMEOUT_SECONDS,
        )

    raise ValueError(f"Unknown notification channel: {name!r}")
