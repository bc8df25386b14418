"""Webhook implementation of the NotificationChannel protocol.

POSTs each notification as JSON to the downstream delivery service, which
owns the push/email/in-app transports.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from cohort_scheduler.notifications.models import Notification

logger = logging.getLogger(__name__)


class WebhookChannel:
    """Sends notifications to an HTTP delivery endpoint."""

    def __init__(self, url: str, secret: str = "", timeout: float = 10.0) -> None:
        self._url = url
        self._secret = secret
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "webhook"

    async def send(self, notification: Notification) -> bool:
        """POST the payload. Any 2xx response counts as confirmed delivery."""
        headers = {"Content-Type": "application/json"}
        if self._secret:
            headers["X-Webhook-Secret"] = self._secret

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(
                    self._url, json=notification.to_payload(), headers=headers
                )
        except httpx.TimeoutException:
            logger.warning(
                "WebhookChannel timed out for recipient_id=%s", notification.recipient_id
            )
            return False
        except httpx.HTTPError:
            logger.exception(
                "WebhookChannel.send failed for recipient_id=%s", notification.recipient_id
            )
            return False

        if not resp.is_success:
            logger.warning(
                "WebhookChannel: delivery service returned %d for %s: %s",
                resp.status_code,
                notification.type,
                resp.text[:200],
            )
            return False
        return True
