"""SchedulerEngine — APScheduler lifecycle for the periodic jobs."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from cohort_scheduler.config import settings
from cohort_scheduler.scheduler.audit import run_job

if TYPE_CHECKING:
    from cohort_scheduler.scheduler.audit import JobFunc

logger = logging.getLogger(__name__)


class SchedulerEngine:
    """Invokes each job on its own cadence.

    Jobs carry no shared lock; each relies on its own conditional writes.
    A job never overlaps with itself inside one engine (``max_instances=1``)
    and missed runs are coalesced into one.

    Args:
        jobs: ``{name: zero-arg async callable}`` as built by ``build_jobs``.
        schedules: ``{name: {"cron": "..."}}`` or ``{name: {"minutes": n}}``.
        timezone: IANA timezone string (default from settings).
    """

    def __init__(
        self,
        jobs: dict[str, JobFunc],
        schedules: dict[str, dict[str, Any]],
        timezone: str | None = None,
    ) -> None:
        missing = set(jobs) - set(schedules)
        if missing:
            msg = f"No schedule configured for job(s): {', '.join(sorted(missing))}"
            raise ValueError(msg)
        self._jobs = jobs
        self._schedules = schedules
        self._timezone = timezone or settings.scheduler_timezone
        self._scheduler = AsyncIOScheduler(timezone=self._timezone)
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def job_names(self) -> list[str]:
        return list(self._jobs)

    # -- Lifecycle -------------------------------------------------------------

    async def start(self, *, run_immediately: bool = False) -> None:
        """Register every job and start the scheduler.

        With *run_immediately*, each job also fires once right away so work
        missed while the service was down is picked up.
        """
        for name in self._jobs:
            self._add_job(name, run_immediately=run_immediately)
        self._scheduler.start()
        self._running = True
        logger.info(
            "Scheduler started with job(s) %s (tz=%s)",
            ", ".join(self._jobs) or "none",
            self._timezone,
        )

    async def stop(self) -> None:
        """Shut down the scheduler."""
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    # -- Invocation ------------------------------------------------------------

    async def run_now(self, name: str) -> dict[str, Any]:
        """Run one job immediately and return its summary. Raises KeyError if unknown."""
        job = self._jobs[name]
        return await run_job(name, job)

    def next_run_times(self) -> dict[str, str | None]:
        """Return the next planned run per job as ISO strings."""
        times: dict[str, str | None] = {}
        for name in self._jobs:
            job = self._scheduler.get_job(name)
            next_run = job.next_run_time if job else None
            times[name] = next_run.isoformat() if next_run else None
        return times

    # -- Internal --------------------------------------------------------------

    def _add_job(self, name: str, *, run_immediately: bool = False):
        """Create an APScheduler job for the named scheduler job. Returns the Job."""
        kwargs: dict[str, Any] = {}
        if run_immediately:
            kwargs["next_run_time"] = datetime.now(self._scheduler.timezone)
        return self._scheduler.add_job(
            self.run_now,
            trigger=self._build_trigger(name),
            id=name,
            name=name,
            args=[name],
            max_instances=1,
            coalesce=True,
            misfire_grace_time=None,
            replace_existing=True,
            **kwargs,
        )

    def _build_trigger(self, name: str):
        """Convert a job's schedule dict into an APScheduler trigger."""
        schedule = self._schedules[name]

        if "cron" in schedule:
            return CronTrigger.from_crontab(schedule["cron"], timezone=self._timezone)

        if "minutes" in schedule or "seconds" in schedule:
            return IntervalTrigger(
                minutes=schedule.get("minutes", 0),
                seconds=schedule.get("seconds", 0),
                timezone=self._timezone,
            )

        # Individual cron fields (hour, minute, day_of_week, etc.)
        field_names = {"year", "month", "day", "week", "day_of_week", "hour", "minute", "second"}
        cron_kwargs = {k: v for k, v in schedule.items() if k in field_names}
        if not cron_kwargs:
            msg = f"Unrecognised schedule for job '{name}': {schedule}"
            raise ValueError(msg)
        return CronTrigger(timezone=self._timezone, **cron_kwargs)
