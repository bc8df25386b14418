"""Job registry — binds the three scheduler jobs to their stores and router."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cohort_scheduler.config import settings
from cohort_scheduler.recovery.tracker import RecoveryTracker
from cohort_scheduler.timeline.drip import DripProcessor
from cohort_scheduler.timeline.reminders import ReminderEngine

if TYPE_CHECKING:
    from cohort_scheduler.notifications.router import NotificationRouter
    from cohort_scheduler.recovery.store import RecoveryStore
    from cohort_scheduler.scheduler.audit import JobFunc
    from cohort_scheduler.timeline.store import TimelineStore


def job_schedules() -> dict[str, dict]:
    """Trigger config per job, in the shape ``SchedulerEngine`` understands."""
    return {
        "drip": {"cron": settings.drip_cron},
        "reminders": {"minutes": settings.reminder_interval_minutes},
        "recovery": {"cron": settings.recovery_cron},
    }


def build_jobs(
    timeline_store: TimelineStore,
    recovery_store: RecoveryStore,
    router: NotificationRouter,
    *,
    enabled: list[str] | None = None,
) -> dict[str, JobFunc]:
    """Return ``{name: zero-arg async callable}`` for each enabled job."""
    drip = DripProcessor(timeline_store, router)
    reminders = ReminderEngine(timeline_store, router)
    recovery = RecoveryTracker(recovery_store)

    jobs: dict[str, JobFunc] = {
        "drip": drip.process_pending_drip,
        "reminders": reminders.process_reminders,
        "recovery": recovery.run_daily_recovery_check,
    }
    names = settings.get_enabled_jobs() if enabled is None else enabled
    return {name: jobs[name] for name in names}
