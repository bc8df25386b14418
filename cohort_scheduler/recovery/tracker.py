"""RecoveryTracker — daily inactivity detection and recovery bookkeeping."""

from __future__ import annotations

import logging
import zoneinfo
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from cohort_scheduler.config import settings
from cohort_scheduler.recovery.models import (
    MESSAGE_OUTCOMES,
    DailyCheckSummary,
    RecoveryRecord,
    RecoveryStatus,
    RecoveryStatusError,
    make_record_id,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from cohort_scheduler.recovery.store import RecoveryStore

logger = logging.getLogger(__name__)


@dataclass
class RecoveryResult:
    checked: int = 0
    recovered: int = 0
    still_inactive: int = 0
    newly_tracked: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "checked": self.checked,
            "recovered": self.recovered,
            "still_inactive": self.still_inactive,
            "newly_tracked": self.newly_tracked,
        }
        if self.errors:
            data["errors"] = self.errors
        return data


class RecoveryTracker:
    """Runs the daily recovery check.

    Phase A re-checks open cycles for a returning login, phase B opens
    cycles for newly inactive learners, phase C appends the day's summary.
    A failure for one learner leaves that learner untouched and the run
    continues.

    Args:
        store: RecoveryStore for records, learner activity and summaries.
        threshold_days: Days without a login before a learner is tracked
            (default from settings).
        timezone: IANA timezone that defines "today" (default from settings).
        clock: Callable returning the current aware datetime.
    """

    def __init__(
        self,
        store: RecoveryStore,
        *,
        threshold_days: int | None = None,
        timezone: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._threshold_days = (
            settings.inactivity_threshold_days if threshold_days is None else threshold_days
        )
        self._tz = zoneinfo.ZoneInfo(timezone or settings.scheduler_timezone)
        self._clock = clock or (lambda: datetime.now(UTC))

    async def run_daily_recovery_check(self) -> RecoveryResult:
        """Re-check tracked learners, open new cycles, and log the summary."""
        result = RecoveryResult()
        now = self._clock().astimezone(UTC)
        today = now.astimezone(self._tz).date().isoformat()

        recovered_today = await self._recheck_tracked(result, now, today)
        await self._track_newly_inactive(result, now, skip=recovered_today)

        summary = DailyCheckSummary(
            check_date=today,
            students_checked=result.checked,
            newly_inactive=result.newly_tracked,
            recovered=result.recovered,
            still_inactive=result.still_inactive,
            check_completed_at=self._clock().astimezone(UTC).isoformat(),
        )
        try:
            await self._store.add_summary(summary)
        except Exception as exc:
            logger.exception("Failed to persist daily check summary")
            result.errors.append(f"summary: {exc}")

        logger.info(
            "Daily recovery check completed: checked=%d recovered=%d still_inactive=%d "
            "newly_tracked=%d",
            result.checked,
            result.recovered,
            result.still_inactive,
            result.newly_tracked,
        )
        return result

    # -- Phase A ---------------------------------------------------------------

    async def _recheck_tracked(
        self, result: RecoveryResult, now: datetime, today: str
    ) -> set[str]:
        """Return the IDs of learners whose cycle this run closed."""
        recovered: set[str] = set()
        try:
            tracked = await self._store.list_tracked()
        except Exception as exc:
            logger.exception("Failed to fetch tracked learners")
            result.errors.append(f"tracked: {exc}")
            return recovered

        result.checked = len(tracked)
        logger.info("Found %d tracked learner(s) to check", len(tracked))

        for record in tracked:
            try:
                returned = await self._store.has_logged_in_since(
                    record.user_id, record.activity_since
                )
                if returned:
                    if await self._store.mark_recovered(record.id, now.isoformat()):
                        logger.info(
                            "User %s logged in, cycle %d recovered",
                            record.user_id,
                            record.recovery_cycle,
                        )
                        result.recovered += 1
                        recovered.add(record.user_id)
                else:
                    await self._store.touch_still_inactive(record.id, today, now.isoformat())
                    result.still_inactive += 1
            except Exception as exc:
                logger.exception("Login check failed for user %s", record.user_id)
                result.errors.append(f"{record.user_id}: {exc}")
        return recovered

    # -- Phase B ---------------------------------------------------------------

    async def _track_newly_inactive(
        self, result: RecoveryResult, now: datetime, *, skip: set[str]
    ) -> None:
        try:
            inactive = await self._store.list_inactive_learners(self._threshold_days, now)
        except Exception as exc:
            logger.exception("Failed to fetch inactive learners")
            result.errors.append(f"inactive: {exc}")
            return

        logger.info(
            "Found %d learner(s) inactive for %d+ days", len(inactive), self._threshold_days
        )

        for learner in inactive:
            if learner.user_id in skip:
                continue
            try:
                latest = await self._store.get_latest_record(learner.user_id)
                if latest is not None and latest.is_open:
                    continue
                cycle = latest.recovery_cycle + 1 if latest else 1
                record = RecoveryRecord(
                    id=make_record_id(),
                    user_id=learner.user_id,
                    days_inactive=learner.days_inactive,
                    recovery_cycle=cycle,
                    created_at=now.isoformat(),
                )
                if await self._store.create_record(record):
                    result.newly_tracked += 1
            except Exception as exc:
                logger.exception("Failed to open recovery cycle for user %s", learner.user_id)
                result.errors.append(f"{learner.user_id}: {exc}")

    # -- Message outcome -------------------------------------------------------

    async def record_message_outcome(
        self,
        record_id: str,
        status: str,
        *,
        message_content: str | None = None,
    ) -> RecoveryRecord | None:
        """Store whether the recovery message reached the learner.

        Only ``sent`` and ``failed`` are accepted.  Returns None when the
        record does not exist.
        """
        try:
            outcome = RecoveryStatus(status)
        except ValueError:
            outcome = None
        if outcome not in MESSAGE_OUTCOMES:
            msg = f'Invalid status {status!r}. Must be "sent" or "failed"'
            raise RecoveryStatusError(msg)

        record = await self._store.update_message_status(
            record_id,
            outcome,
            message_content=message_content,
            timestamp=self._clock().astimezone(UTC).isoformat(),
        )
        if record is not None:
            logger.info("Recovery record %s message status → %s", record_id, outcome)
        return record
