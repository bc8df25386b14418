"""DripProcessor — deploys cohort content once its drip date arrives."""

from __future__ import annotations

import logging
import zoneinfo
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from cohort_scheduler.config import settings
from cohort_scheduler.notifications.models import DispatchError, Notification
from cohort_scheduler.timeline.models import parse_day

if TYPE_CHECKING:
    from collections.abc import Callable

    from cohort_scheduler.notifications.router import NotificationRouter
    from cohort_scheduler.timeline.models import TimelineItem
    from cohort_scheduler.timeline.store import TimelineStore

logger = logging.getLogger(__name__)

_DEPLOY_TITLES = {
    "RECORDING": "New Recording Available: {title}",
    "LIVE_SESSION": "Live Session Scheduled: {title}",
    "ASSIGNMENT": "New Assignment Available: {title}",
}


@dataclass
class DripResult:
    processed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"processed": self.processed, "skipped": self.skipped}
        if self.errors:
            data["errors"] = self.errors
        return data


class DripProcessor:
    """Sends exactly one deployment notification per due timeline item.

    An item is due once ``cohort.start_date + drip_offset_days`` has been
    reached.  The ``deployed_notified_at`` marker is written only after the
    router confirms delivery, so failed dispatches are retried on the next
    run.

    Args:
        store: TimelineStore for reads and marker writes.
        router: NotificationRouter used to reach the delivery service.
        channel: Channel override (None → router default).
        timezone: IANA timezone that defines "today" (default from settings).
        ignore_time_of_day: Compare whole calendar days (default from settings).
        lms_url: Link attached to each notification (default from settings).
        clock: Callable returning the current aware datetime.
    """

    def __init__(
        self,
        store: TimelineStore,
        router: NotificationRouter,
        *,
        channel: str | None = None,
        timezone: str | None = None,
        ignore_time_of_day: bool | None = None,
        lms_url: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._router = router
        self._channel = channel or settings.drip_notification_channel or None
        self._tz = zoneinfo.ZoneInfo(timezone or settings.scheduler_timezone)
        self._ignore_time_of_day = (
            settings.drip_ignore_time_of_day if ignore_time_of_day is None else ignore_time_of_day
        )
        self._lms_url = lms_url if lms_url is not None else settings.lms_url
        self._clock = clock or (lambda: datetime.now(UTC))

    async def process_pending_drip(self) -> DripResult:
        """Check every undeployed item and dispatch the ones that are due."""
        result = DripResult()
        try:
            items = await self._store.list_undeployed_items()
        except Exception as exc:
            logger.exception("Failed to fetch pending timeline items")
            result.errors.append(f"fetch: {exc}")
            return result

        if not items:
            logger.info("No pending items to process")
            return result

        now = self._clock().astimezone(self._tz)
        logger.info("Found %d pending item(s) to check", len(items))

        for item in items:
            if not item.cohort_start_date:
                logger.info("Skipping item %s: cohort has no start date", item.id)
                result.skipped += 1
                continue

            try:
                due = self._is_due(item, now)
            except (TypeError, ValueError) as exc:
                logger.warning("Skipping item %s: unreadable cohort start date: %s", item.id, exc)
                result.errors.append(f"{item.id}: {exc}")
                continue

            if not due:
                logger.debug("Skipping item %s: deploy date not yet reached", item.id)
                result.skipped += 1
                continue

            try:
                await self._router.deliver(self._build_notification(item), channel=self._channel)
            except DispatchError as exc:
                logger.warning("Deployment dispatch failed for item %s: %s", item.id, exc)
                result.errors.append(f"{item.id}: {exc}")
                continue

            try:
                written = await self._store.set_marker(
                    item.id, "deployed_notified_at", now.astimezone(UTC).isoformat()
                )
            except Exception as exc:
                # Delivery already succeeded; the next run will send it again.
                logger.exception("Marker write failed after dispatch for item %s", item.id)
                result.errors.append(f"{item.id}: dispatched but marker write failed: {exc}")
                continue

            if not written:
                logger.warning("Item %s was marked deployed by a concurrent run", item.id)
                continue

            logger.info("Deployed item %s: %s - %s", item.id, item.kind, item.title)
            result.processed += 1

        logger.info(
            "Drip processor complete: %d processed, %d skipped, %d error(s)",
            result.processed,
            result.skipped,
            len(result.errors),
        )
        return result

    # -- Internal --------------------------------------------------------------

    def deploy_date(self, item: TimelineItem) -> date:
        """Return the calendar day on which *item* becomes available."""
        return parse_day(item.cohort_start_date) + timedelta(days=item.drip_offset_days)

    def _is_due(self, item: TimelineItem, now: datetime) -> bool:
        if self._ignore_time_of_day:
            return self.deploy_date(item) <= now.date()

        # Date-only values parse as local midnight.
        start = datetime.fromisoformat(item.cohort_start_date)
        if start.tzinfo is None:
            start = start.replace(tzinfo=self._tz)
        return start + timedelta(days=item.drip_offset_days) <= now

    def _build_notification(self, item: TimelineItem) -> Notification:
        content_type = item.content_type
        title = _DEPLOY_TITLES.get(content_type, "New Content Available: {title}").format(
            title=item.title
        )
        metadata: dict[str, Any] = {
            "cohort_id": item.cohort_id,
            "item_type": content_type,
            "item_id": item.content_id,
            "timeline_item_id": item.id,
            "title": item.title,
            "description": item.description,
        }
        if item.meeting_link:
            metadata["meeting_link"] = item.meeting_link
        if item.start_datetime:
            metadata["start_datetime"] = item.start_datetime
        if self._lms_url:
            metadata["action_url"] = self._lms_url

        return Notification(
            recipient_id=item.cohort_id,
            audience="cohort",
            type="content_deployed",
            title=title,
            message=item.description or item.title,
            metadata=metadata,
        )
