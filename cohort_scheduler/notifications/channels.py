"""NotificationChannel protocol — interface for all notification delivery channels."""

from typing import Protocol, runtime_checkable

from cohort_scheduler.notifications.models import Notification


@runtime_checkable
class NotificationChannel(Protocol):
    """Protocol that all notification channels must satisfy."""

    @property
    def name(self) -> str:
        """Unique channel identifier (e.g. 'in_app', 'webhook')."""
        ...

    async def send(self, notification: Notification) -> bool:
        """Hand a notification to the transport. Returns True on confirmed success."""
        ...
