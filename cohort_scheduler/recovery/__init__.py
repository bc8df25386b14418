"""Inactive learner recovery tracking."""

from cohort_scheduler.recovery.models import (
    DailyCheckSummary,
    InactiveLearner,
    RecoveryRecord,
    RecoveryStatus,
    RecordAlreadyRecoveredError,
    RecoveryStatusError,
)
from cohort_scheduler.recovery.store import RecoveryStore
from cohort_scheduler.recovery.tracker import RecoveryResult, RecoveryTracker

__all__ = [
    "DailyCheckSummary",
    "InactiveLearner",
    "RecoveryRecord",
    "RecoveryResult",
    "RecoveryStatus",
    "RecordAlreadyRecoveredError",
    "RecoveryStatusError",
    "RecoveryStore",
    "RecoveryTracker",
]
