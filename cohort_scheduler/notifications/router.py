"""NotificationRouter — singleton that dispatches notifications to registered channels."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from cohort_scheduler.config import settings
from cohort_scheduler.notifications.models import DispatchError

if TYPE_CHECKING:
    from cohort_scheduler.notifications.channels import NotificationChannel
    from cohort_scheduler.notifications.models import Notification

logger = logging.getLogger(__name__)


class NotificationRouter:
    """Routes outbound notifications to the appropriate channel.

    Singleton accessed via ``NotificationRouter.get()``.  Every dispatch is
    bounded by *timeout* seconds (default ``settings.dispatch_timeout_seconds``);
    a timeout counts as a failed dispatch.
    """

    _instance: NotificationRouter | None = None

    def __init__(self, timeout: float | None = None) -> None:
        self._channels: dict[str, NotificationChannel] = {}
        self._default: str = ""
        self._timeout = timeout if timeout is not None else settings.dispatch_timeout_seconds

    @classmethod
    def get(cls) -> NotificationRouter:
        """Return the singleton instance, creating it if needed."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset singleton — for tests only."""
        cls._instance = None

    def register_channel(self, channel: NotificationChannel) -> None:
        """Register a notification channel. Raises ValueError on duplicate name."""
        if channel.name in self._channels:
            msg = f"Channel '{channel.name}' is already registered"
            raise ValueError(msg)
        self._channels[channel.name] = channel

    def set_default_channel(self, name: str) -> None:
        """Set the default channel by name. Raises KeyError if not registered."""
        if name not in self._channels:
            msg = f"Channel '{name}' is not registered"
            raise KeyError(msg)
        self._default = name

    def get_channel(self, name: str) -> NotificationChannel | None:
        """Look up a channel by name."""
        return self._channels.get(name)

    def list_channels(self) -> list[str]:
        """Return names of all registered channels."""
        return list(self._channels.keys())

    @property
    def default_channel_name(self) -> str:
        """The name of the current default channel."""
        return self._default

    def _resolve_channel(self, name: str | None) -> NotificationChannel | None:
        """Resolve a channel: explicit name → default → only registered channel."""
        if name:
            return self._channels.get(name)
        if self._default:
            return self._channels.get(self._default)
        if len(self._channels) == 1:
            return next(iter(self._channels.values()))
        return None

    async def deliver(
        self,
        notification: Notification,
        *,
        channel: str | None = None,
    ) -> None:
        """Dispatch and wait for confirmation. Raises DispatchError on any failure."""
        ch = self._resolve_channel(channel)
        if ch is None:
            msg = f"No channel resolved for dispatch (requested={channel})"
            raise DispatchError(msg)

        try:
            ok = await asyncio.wait_for(ch.send(notification), timeout=self._timeout)
        except TimeoutError as exc:
            msg = f"Channel '{ch.name}' timed out after {self._timeout:g}s"
            raise DispatchError(msg) from exc
        except DispatchError:
            raise
        except Exception as exc:
            msg = f"Channel '{ch.name}' raised {type(exc).__name__}: {exc}"
            raise DispatchError(msg) from exc

        if not ok:
            msg = (
                f"Channel '{ch.name}' rejected {notification.type} "
                f"for {notification.recipient_id}"
            )
            raise DispatchError(msg)

    async def send(
        self,
        notification: Notification,
        *,
        channel: str | None = None,
    ) -> bool:
        """Dispatch a notification, returning False instead of raising on failure."""
        try:
            await self.deliver(notification, channel=channel)
        except DispatchError as exc:
            logger.warning("Notification dispatch failed: %s", exc)
            return False
        return True
