"""Recovery tracking data models."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from enum import StrEnum


class RecoveryStatus(StrEnum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    RECOVERED = "recovered"


TRACKED_STATUSES = (RecoveryStatus.PENDING, RecoveryStatus.SENT)
MESSAGE_OUTCOMES = (RecoveryStatus.SENT, RecoveryStatus.FAILED)


class RecoveryStatusError(ValueError):
    """An invalid message-status transition was requested."""


class RecordAlreadyRecoveredError(RecoveryStatusError):
    """The cycle is closed; its message status can no longer change."""


@dataclass
class RecoveryRecord:
    """One inactivity cycle for one learner.

    Attributes:
        id: Unique identifier (UUID hex).
        user_id: The learner being tracked.
        days_inactive: Days since last login when the cycle opened.
        recovery_cycle: 1 for the first cycle, +1 for each later one.
        message_status: ``pending`` → ``sent``/``failed`` → ``recovered``.
        message_sent_at: When the recovery message was delivered.
        last_check_date: ISO date of the last daily check that found the
            learner still inactive.
        last_login_check: ISO timestamp of that check.
        recovered_at: When the learner was seen logging in again.
        created_at: ISO 8601 timestamp.
        updated_at: ISO 8601 timestamp of the last write (status change or daily check).
    """

    id: str
    user_id: str
    days_inactive: int
    recovery_cycle: int
    message_status: RecoveryStatus = RecoveryStatus.PENDING
    message_sent_at: str | None = None
    last_check_date: str | None = None
    last_login_check: str | None = None
    recovered_at: str | None = None
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        self.message_status = RecoveryStatus(self.message_status)
        if not self.created_at:
            self.created_at = datetime.now(UTC).isoformat()
        if not self.updated_at:
            self.updated_at = self.created_at

    @property
    def is_open(self) -> bool:
        return self.message_status != RecoveryStatus.RECOVERED

    @property
    def activity_since(self) -> str:
        """Logins after this timestamp count as recovery."""
        return self.message_sent_at or self.created_at

    _COLUMNS = (
        "id",
        "user_id",
        "days_inactive",
        "recovery_cycle",
        "message_status",
        "message_sent_at",
        "last_check_date",
        "last_login_check",
        "recovered_at",
        "created_at",
        "updated_at",
    )

    @classmethod
    def columns(cls) -> tuple[str, ...]:
        return cls._COLUMNS

    def to_row(self) -> tuple:
        return tuple(
            str(self.message_status) if name == "message_status" else getattr(self, name)
            for name in self._COLUMNS
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["message_status"] = str(self.message_status)
        return data

    @classmethod
    def from_row(cls, row: tuple) -> RecoveryRecord:
        return cls(**dict(zip(cls._COLUMNS, row, strict=True)))


@dataclass
class InactiveLearner:
    user_id: str
    full_name: str
    days_inactive: int


@dataclass
class DailyCheckSummary:
    """Append-only audit row written once per daily check."""

    check_date: str
    students_checked: int
    newly_inactive: int
    recovered: int
    still_inactive: int
    check_completed_at: str

    def to_row(self) -> tuple:
        return (
            self.check_date,
            self.students_checked,
            self.newly_inactive,
            self.recovered,
            self.still_inactive,
            self.check_completed_at,
        )

    def to_dict(self) -> dict:
        return asdict(self)


def make_record_id() -> str:
    """Generate a new recovery record ID."""
    return uuid.uuid4().hex
