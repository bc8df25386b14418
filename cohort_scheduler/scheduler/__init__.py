"""Job scheduling — audit runner, job registry and the APScheduler engine."""

from cohort_scheduler.scheduler.audit import run_job
from cohort_scheduler.scheduler.engine import SchedulerEngine
from cohort_scheduler.scheduler.jobs import build_jobs, job_schedules

__all__ = [
    "SchedulerEngine",
    "build_jobs",
    "job_schedules",
    "run_job",
]
