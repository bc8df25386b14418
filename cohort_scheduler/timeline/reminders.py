"""ReminderEngine — staged reminders before live sessions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from cohort_scheduler.config import settings
from cohort_scheduler.notifications.models import Notification
from cohort_scheduler.timeline.models import ReminderStage

if TYPE_CHECKING:
    from collections.abc import Callable

    from cohort_scheduler.notifications.router import NotificationRouter
    from cohort_scheduler.timeline.models import TimelineItem
    from cohort_scheduler.timeline.store import TimelineStore

logger = logging.getLogger(__name__)

STAGE_WINDOWS: dict[ReminderStage, timedelta] = {
    ReminderStage.DAY_BEFORE: timedelta(hours=24),
    ReminderStage.HOUR_BEFORE: timedelta(hours=1),
    ReminderStage.START: timedelta(minutes=5),
}

_STAGE_COPY = {
    ReminderStage.DAY_BEFORE: (
        "live_session_reminder",
        "Live Session Tomorrow",
        '"{title}" starts tomorrow. Don\'t miss it!',
    ),
    ReminderStage.HOUR_BEFORE: (
        "live_session_reminder",
        "Live Session Starting Soon",
        '"{title}" starts in 1 hour. Get ready!',
    ),
    ReminderStage.START: (
        "live_session_starting",
        "Live Session Starting Now!",
        '"{title}" is starting now. Join now!',
    ),
}


@dataclass
class ReminderResult:
    sent_24h: int = 0
    sent_1h: int = 0
    sent_start: int = 0
    failed_deliveries: int = 0
    errors: list[str] = field(default_factory=list)

    def record(self, stage: ReminderStage) -> None:
        if stage is ReminderStage.DAY_BEFORE:
            self.sent_24h += 1
        elif stage is ReminderStage.HOUR_BEFORE:
            self.sent_1h += 1
        else:
            self.sent_start += 1

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "sent_24h": self.sent_24h,
            "sent_1h": self.sent_1h,
            "sent_start": self.sent_start,
            "failed_deliveries": self.failed_deliveries,
        }
        if self.errors:
            data["errors"] = self.errors
        return data


def due_stages(session: TimelineItem, now: datetime) -> list[ReminderStage]:
    """Return every stage whose window contains the session start and whose marker is unset.

    Stages are independent: a session five minutes out on a first run is due
    for all three.
    """
    start = session.start_time()
    if start is None or start <= now:
        return []
    return [
        stage
        for stage, window in STAGE_WINDOWS.items()
        if start <= now + window and session.marker(stage) is None
    ]


class ReminderEngine:
    """Sends at most one reminder per stage per live session.

    Each satisfied stage fans out one notification per active enrollment,
    then sets that stage's marker whatever the per-recipient outcome.
    Sessions whose cohort has no resolvable learners are left unmarked so
    they are picked up once someone enrolls.

    Args:
        store: TimelineStore for reads and marker writes.
        router: NotificationRouter used for per-learner delivery.
        channel: Channel override (None → router default).
        clock: Callable returning the current aware datetime.
    """

    def __init__(
        self,
        store: TimelineStore,
        router: NotificationRouter,
        *,
        channel: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._router = router
        self._channel = channel or settings.reminder_notification_channel or None
        self._clock = clock or (lambda: datetime.now(UTC))

    async def process_reminders(self) -> ReminderResult:
        """Evaluate every scheduled live session against the three reminder windows."""
        result = ReminderResult()
        try:
            sessions = await self._store.list_scheduled_sessions()
        except Exception as exc:
            logger.exception("Failed to fetch scheduled live sessions")
            result.errors.append(f"fetch: {exc}")
            return result

        now = self._clock().astimezone(UTC)
        for session in sessions:
            try:
                stages = due_stages(session, now)
                if not stages:
                    continue
                await self._process_session(session, stages, now, result)
            except Exception as exc:
                logger.exception("Reminder processing failed for session %s", session.id)
                result.errors.append(f"{session.id}: {exc}")

        logger.info(
            "Reminders complete: 24h=%d 1h=%d start=%d failed_deliveries=%d",
            result.sent_24h,
            result.sent_1h,
            result.sent_start,
            result.failed_deliveries,
        )
        return result

    async def _process_session(
        self,
        session: TimelineItem,
        stages: list[ReminderStage],
        now: datetime,
        result: ReminderResult,
    ) -> None:
        recipients = await self._store.list_active_recipients(session.cohort_id)
        if not recipients:
            logger.info(
                "Session %s: no active learners in cohort %s", session.id, session.cohort_id
            )
            return

        for stage in stages:
            delivered = 0
            for user_id in recipients:
                ok = await self._router.send(
                    self._build_notification(session, stage, user_id), channel=self._channel
                )
                if ok:
                    delivered += 1
                else:
                    result.failed_deliveries += 1

            written = await self._store.set_marker(
                session.id, stage.marker_column, now.isoformat()
            )
            if not written:
                logger.warning(
                    "Session %s stage %s was marked by a concurrent run", session.id, stage
                )
                continue

            result.record(stage)
            logger.info(
                "Sent %s reminder for session %s to %d/%d learner(s)",
                stage,
                session.id,
                delivered,
                len(recipients),
            )

    def _build_notification(
        self, session: TimelineItem, stage: ReminderStage, user_id: str
    ) -> Notification:
        notification_type, title, message = _STAGE_COPY[stage]
        metadata: dict[str, Any] = {
            "session_id": session.id,
            "cohort_id": session.cohort_id,
            "stage": str(stage),
            "start_datetime": session.start_datetime,
        }
        if session.meeting_link:
            metadata["meeting_link"] = session.meeting_link
        return Notification(
            recipient_id=user_id,
            type=notification_type,
            title=title,
            message=message.format(title=session.title),
            metadata=metadata,
        )
