"""
StaffHub — Notification Dispatcher.

Delivers one rendered message per recipient over a single channel.
Sends are sequential with a fixed gap between them to respect channel rate
limits; each send is bounded by a timeout. A bad address or a failed send
never aborts the batch. The only error raised is ChannelError for a channel
that is not connected, before anything is sent.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from staffhub.core.errors import ChannelError
from staffhub.ports.notification_port import Message, MessagingChannel, SendResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Recipient:
    id: str
    name: str
    address: str | None


@dataclass
class DeliveryResult:
    recipient_id: str
    success: bool
    skipped: bool = False
    error: str = ""


@dataclass
class DispatchSummary:
    """Aggregate outcome of one batch on one channel."""

    channel: str
    results: list[DeliveryResult] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return sum(1 for r in self.results if not r.skipped)

    @property
    def sent(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.skipped)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success and not r.skipped)

    def __str__(self) -> str:
        return (
            f"{self.channel}: attempted={self.attempted} sent={self.sent} "
            f"skipped={self.skipped} failed={self.failed}"
        )


class NotificationDispatcher:
    """Sequential, rate-limited delivery of a batch over one channel."""

    def __init__(
        self,
        delay_seconds: float = 0.6,
        timeout_seconds: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._delay = delay_seconds
        self._timeout = timeout_seconds
        self._sleep = sleep

    async def dispatch(
        self,
        recipients: list[Recipient],
        render: Callable[[Recipient], Message],
        channel: MessagingChannel,
    ) -> list[DeliveryResult]:
        """Send render(recipient) to every recipient over channel.

        Raises:
            ChannelError: the channel is not connected (nothing is sent).
        """
        if not channel.connected:
            raise ChannelError(f"{channel.name} channel is not connected")

        results: list[DeliveryResult] = []
        sent_any = False
        for recipient in recipients:
            address = channel.normalize_address(recipient.address)
            if address is None:
                logger.warning(
                    "%s: no valid %s address for %s (%r), skipping",
                    channel.name, channel.name, recipient.name, recipient.address,
                )
                results.append(DeliveryResult(
                    recipient_id=recipient.id, success=False, skipped=True,
                    error="missing or invalid address",
                ))
                continue

            if sent_any and self._delay > 0:
                await self._sleep(self._delay)
            sent_any = True

            result = await self._send_one(channel, address, render(recipient))
            if result.success:
                logger.info("  ✓ %s sent to %s (%s)", channel.name, recipient.name, address)
            else:
                logger.warning(
                    "  ✗ %s failed for %s (%s): %s",
                    channel.name, recipient.name, address, result.error,
                )
            results.append(DeliveryResult(
                recipient_id=recipient.id, success=result.success, error=result.error,
            ))
        return results

    async def _send_one(
        self, channel: MessagingChannel, address: str, message: Message,
    ) -> SendResult:
        try:
            return await asyncio.wait_for(channel.send(address, message), timeout=self._timeout)
        except asyncio.TimeoutError:
            return SendResult(success=False, error=f"timed out after {self._timeout:g}s")
        except Exception as exc:
            logger.error("%s send to %s raised: %s", channel.name, address, exc)
            return SendResult(success=False, error=str(exc))
