"""Email notification adapter — implements MessagingChannel via Resend.

Until a sending domain is verified, Resend only accepts mail from its
onboarding sender to its sandbox inbox; in that mode every message is
redirected to the sandbox and the intended recipient is logged.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from staffhub.ports.notification_port import Message, SendResult

if TYPE_CHECKING:
    from staffhub.data.models import StaffMember

logger = logging.getLogger(__name__)

_RESEND_API = "https://api.resend.com"
_RESEND_URL = f"{_RESEND_API}/emails"
_RESEND_TEST_SENDER = "onboarding@resend.dev"
_RESEND_TEST_INBOX = "delivered@resend.dev"


class EmailNotifier:
    """Resend implementation of MessagingChannel."""

    name = "email"

    def __init__(
        self,
        api_key: str,
        from_email: str = _RESEND_TEST_SENDER,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._from_email = from_email
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def connected(self) -> bool:
        return bool(self._api_key)

    @property
    def test_mode(self) -> bool:
        return self._from_email == _RESEND_TEST_SENDER

    def address_for(self, staff: StaffMember) -> str:
        return staff.email

    def normalize_address(self, address: str | None) -> str | None:
        if not address:
            return None
        address = address.strip()
        local, _, domain = address.partition("@")
        if not local or not domain:
            return None
        return address

    async def send(self, address: str, message: Message) -> SendResult:
        recipient = address
        if self.test_mode:
            recipient = _RESEND_TEST_INBOX
            logger.info("Email test mode: sending to %s (intended for %s)", recipient, address)

        try:
            resp = await self._client.post(
                _RESEND_URL,
                json={
                    "from": self._from_email,
                    "to": [recipient],
                    "subject": message.subject,
                    "html": message.html or message.text,
                },
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Email request for %s failed: %s", address, exc)
            return SendResult(success=False, error=str(exc))

        if resp.is_error:
            error = data.get("message") or "Failed to send email"
            logger.error("Resend API error for %s: %s", address, error)
            return SendResult(success=False, error=error)

        logger.debug("Email %s sent to %s", data.get("id"), address)
        return SendResult(success=True)

    async def verify(self) -> str:
        """Check the API key against Resend; returns the sender address."""
        resp = await self._client.get(
            f"{_RESEND_API}/domains", headers={"Authorization": f"Bearer {self._api_key}"},
        )
        resp.raise_for_status()
        return self._from_email

    async def aclose(self) -> None:
        await self._client.aclose()
