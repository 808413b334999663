"""WhatsApp notification adapter — implements MessagingChannel.

Sends plain text messages through the WhatsApp Business Cloud API
(graph.facebook.com). Phone numbers must carry a country code.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

import httpx

from staffhub.ports.notification_port import Message, SendResult

if TYPE_CHECKING:
    from staffhub.data.models import StaffMember

logger = logging.getLogger(__name__)

_GRAPH_URL = "https://graph.facebook.com"
_NON_PHONE_CHARS = re.compile(r"[^\d+]")


def clean_phone(phone: str) -> str:
    """Strip spaces, dashes and other formatting, keeping digits and '+'."""
    return _NON_PHONE_CHARS.sub("", phone)


class WhatsAppNotifier:
    """WhatsApp Cloud API implementation of MessagingChannel."""

    name = "whatsapp"

    def __init__(
        self,
        phone_number_id: str,
        access_token: str,
        connected: bool = True,
        api_version: str = "v18.0",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._phone_number_id = phone_number_id
        self._access_token = access_token
        self._connected = connected and bool(phone_number_id and access_token)
        self._base_url = f"{_GRAPH_URL}/{api_version}"
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def connected(self) -> bool:
        return self._connected

    def address_for(self, staff: StaffMember) -> str:
        return staff.phone

    def normalize_address(self, address: str | None) -> str | None:
        if not address or not address.strip():
            return None
        cleaned = clean_phone(address)
        if not cleaned.startswith("+") or len(cleaned) < 2:
            return None
        return cleaned

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._access_token}"}

    async def send(self, address: str, message: Message) -> SendResult:
        try:
            resp = await self._client.post(
                f"{self._base_url}/{self._phone_number_id}/messages",
                json={
                    "messaging_product": "whatsapp",
                    "to": address,
                    "type": "text",
                    "text": {"body": message.text},
                },
                headers=self._headers(),
            )
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("WhatsApp request to %s failed: %s", address, exc)
            return SendResult(success=False, error=str(exc))

        if resp.is_error:
            error = (data.get("error") or {}).get("message") or "Failed to send WhatsApp message"
            logger.error("WhatsApp API error for %s: %s", address, error)
            return SendResult(success=False, error=error)

        logger.debug("WhatsApp message sent to %s", address)
        return SendResult(success=True)

    async def verify(self) -> str:
        """Check credentials; returns the display phone number."""
        resp = await self._client.get(
            f"{self._base_url}/{self._phone_number_id}", headers=self._headers(),
        )
        resp.raise_for_status()
        data = resp.json()
        return data.get("display_phone_number") or data.get("verified_name") or ""

    async def aclose(self) -> None:
        await self._client.aclose()
