"""
Notification dispatchers.

A dispatcher delivers one `NotificationMessage` or raises `NotificationError`.
Callers own retries and timeouts (see `send_with_retry`); dispatchers make exactly
one attempt.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from storefinder.config.settings import NotificationSettings
from storefinder.core.errors import NotificationError
from storefinder.core.http import build_async_client, error_message
from storefinder.domain.models import NotificationMessage

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    async def send(self, message: NotificationMessage) -> None: ...


class ResendDispatcher:
    """Sends HTML email through the Resend HTTP API."""

    def __init__(
        self,
        settings: NotificationSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._settings = settings
        self._transport = transport

    async def send(self, message: NotificationMessage) -> None:
        if not self._settings.api_key:
            raise NotificationError("notifications.api_key is not configured")
        payload = {
            "from": self._settings.sender_email,
            "to": message.to,
            "subject": message.subject,
            "html": message.body,
        }
        try:
            async with build_async_client(
                headers={"Authorization": f"Bearer {self._settings.api_key}"},
                timeout_seconds=self._settings.timeout_seconds,
                transport=self._transport,
            ) as client:
                resp = await client.post(self._settings.provider_url, json=payload)
        except httpx.HTTPError as exc:
            raise NotificationError(f"email provider unreachable: {exc}") from exc
        if not resp.is_success:
            raise NotificationError(error_message(resp))


class RecordingDispatcher:
    """Keeps messages in memory instead of sending them (local runs, tests)."""

    def __init__(self) -> None:
        self.sent: list[NotificationMessage] = []

    async def send(self, message: NotificationMessage) -> None:
        self.sent.append(message)


@dataclass
class DeliveryReport:
    """Outcome of a best-effort delivery."""

    recipient: str | None = None
    attempted: bool = False
    delivered: bool = False
    attempts: int = 0
    queued: bool = False
    error: str | None = None

    def as_dict(self) -> dict:
        return {
            "recipient": self.recipient,
            "attempted": self.attempted,
            "delivered": self.delivered,
            "attempts": self.attempts,
            "queued": self.queued,
            "error": self.error,
        }


async def send_with_retry(
    dispatcher: NotificationDispatcher,
    message: NotificationMessage,
    *,
    timeout_seconds: float,
    max_retries: int = 1,
) -> DeliveryReport:
    """Try to deliver `message`, retrying at most `max_retries` times.

    Never raises for delivery problems: timeouts and dispatcher errors are recorded
    on the returned report.
    """
    report = DeliveryReport(recipient=message.to, attempted=True)
    for attempt in range(1, max_retries + 2):
        report.attempts = attempt
        try:
            await asyncio.wait_for(dispatcher.send(message), timeout=timeout_seconds)
        except asyncio.TimeoutError:
            report.error = f"delivery timed out after {timeout_seconds:g}s"
        except NotificationError as exc:
            report.error = str(exc)
        except Exception as exc:
            # Any other dispatcher failure counts as a failed delivery too.
            report.error = f"{type(exc).__name__}: {exc}"
        else:
            report.delivered = True
            report.error = None
            return report
        logger.warning("Notification to %s failed (attempt %d): %s", message.to, attempt, report.error)
    return report
