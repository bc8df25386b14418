"""Notification payload and dispatch failure types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class DispatchError(Exception):
    """A notification could not be delivered (channel failure or timeout)."""


@dataclass
class Notification:
    """One outbound notification handed to the delivery service.

    Attributes:
        recipient_id: Learner ID, or a cohort ID when ``audience`` is
            ``"cohort"``; each channel expands a cohort to its learners
            (in-app) or leaves that to the downstream service (webhook).
        type: Machine-readable tag (``content_deployed``,
            ``live_session_reminder``, ``live_session_starting``).
        title: Short human title.
        message: Human message body.
        metadata: Referenced content ID, session ID, meeting link, etc.
        audience: ``"user"`` or ``"cohort"``.
    """

    recipient_id: str
    type: str
    title: str
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)
    audience: str = "user"

    def to_payload(self) -> dict[str, Any]:
        return {
            "recipient_id": self.recipient_id,
            "audience": self.audience,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "metadata": self.metadata,
        }
