"""Cohort timelines — content drip deployment and live session reminders."""

from cohort_scheduler.timeline.drip import DripProcessor, DripResult
from cohort_scheduler.timeline.models import (
    Cohort,
    Enrollment,
    ItemKind,
    ReminderStage,
    SessionStatus,
    TimelineItem,
)
from cohort_scheduler.timeline.reminders import ReminderEngine, ReminderResult
from cohort_scheduler.timeline.store import TimelineStore

__all__ = [
    "Cohort",
    "DripProcessor",
    "DripResult",
    "Enrollment",
    "ItemKind",
    "ReminderEngine",
    "ReminderResult",
    "ReminderStage",
    "SessionStatus",
    "TimelineItem",
    "TimelineStore",
]
