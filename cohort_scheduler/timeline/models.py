"""Cohort timeline data models — cohorts, enrollments and timeline items."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime
from enum import StrEnum


class ItemKind(StrEnum):
    RECORDING = "RECORDING"
    LIVE_SESSION = "LIVE_SESSION"


class SessionStatus(StrEnum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ReminderStage(StrEnum):
    """Lead-time stages before a live session, each with its own marker column."""

    DAY_BEFORE = "24h"
    HOUR_BEFORE = "1h"
    START = "start"

    @property
    def marker_column(self) -> str:
        return _STAGE_MARKERS[self]


_STAGE_MARKERS = {
    ReminderStage.DAY_BEFORE: "reminder_24h_sent_at",
    ReminderStage.HOUR_BEFORE: "reminder_1h_sent_at",
    ReminderStage.START: "reminder_start_sent_at",
}

MARKER_COLUMNS = frozenset(
    {"deployed_notified_at", *_STAGE_MARKERS.values()}
)


def parse_day(value: str) -> date:
    """Parse an ISO date or datetime string down to its calendar day."""
    if len(value) == 10:
        return date.fromisoformat(value)
    return datetime.fromisoformat(value).date()


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO timestamp, treating naive values as UTC."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass
class Cohort:
    """A group of learners sharing one content calendar.

    Attributes:
        id: Cohort identifier.
        name: Display name.
        start_date: ISO date anchoring every drip offset, or None while the
            cohort is still unscheduled.
    """

    id: str
    name: str
    start_date: str | None = None

    def to_row(self) -> tuple:
        return (self.id, self.name, self.start_date)


@dataclass
class Enrollment:
    id: str
    cohort_id: str
    user_id: str | None
    status: str = "active"

    def to_row(self) -> tuple:
        return (self.id, self.cohort_id, self.user_id, self.status)


@dataclass
class TimelineItem:
    """One unit of cohort content (a recording or a live session).

    Attributes:
        id: Item identifier.
        cohort_id: Owning cohort.
        kind: ``RECORDING`` or ``LIVE_SESSION``.
        title: Human title.
        description: Optional longer text.
        drip_offset_days: Days after the cohort start at which the item deploys.
        recording_id: Referenced recording, if any.
        assignment_id: Referenced assignment, if any.
        meeting_link: Join URL for live sessions.
        start_datetime: ISO start timestamp (live sessions only).
        session_status: ``scheduled``, ``completed`` or ``cancelled``.
        deployed_notified_at: Set once the deployment notification went out.
        reminder_24h_sent_at: Set once the day-before reminder went out.
        reminder_1h_sent_at: Set once the hour-before reminder went out.
        reminder_start_sent_at: Set once the starting-now reminder went out.
        cohort_start_date: Joined from the cohort on reads; not a column.
    """

    id: str
    cohort_id: str
    kind: ItemKind
    title: str
    description: str | None = None
    drip_offset_days: int = 0
    recording_id: str | None = None
    assignment_id: str | None = None
    meeting_link: str | None = None
    start_datetime: str | None = None
    session_status: str = SessionStatus.SCHEDULED
    deployed_notified_at: str | None = None
    reminder_24h_sent_at: str | None = None
    reminder_1h_sent_at: str | None = None
    reminder_start_sent_at: str | None = None
    cohort_start_date: str | None = None

    def __post_init__(self) -> None:
        self.kind = ItemKind(self.kind)
        if self.drip_offset_days < 0:
            msg = f"drip_offset_days must be >= 0, got {self.drip_offset_days}"
            raise ValueError(msg)

    # -- Convenience properties ------------------------------------------------

    @property
    def is_live_session(self) -> bool:
        return self.kind == ItemKind.LIVE_SESSION

    @property
    def content_id(self) -> str:
        """The referenced content: recording, then assignment, then the item itself."""
        return self.recording_id or self.assignment_id or self.id

    @property
    def content_type(self) -> str:
        """``ASSIGNMENT`` for recordings that only reference an assignment."""
        if self.kind == ItemKind.RECORDING and not self.recording_id and self.assignment_id:
            return "ASSIGNMENT"
        return str(self.kind)

    def marker(self, stage: ReminderStage) -> str | None:
        return getattr(self, stage.marker_column)

    def start_time(self) -> datetime | None:
        if not self.start_datetime:
            return None
        return parse_timestamp(self.start_datetime)

    # -- Serialization ---------------------------------------------------------

    _COLUMNS = (
        "id",
        "cohort_id",
        "kind",
        "title",
        "description",
        "drip_offset_days",
        "recording_id",
        "assignment_id",
        "meeting_link",
        "start_datetime",
        "session_status",
        "deployed_notified_at",
        "reminder_24h_sent_at",
        "reminder_1h_sent_at",
        "reminder_start_sent_at",
    )

    @classmethod
    def columns(cls) -> tuple[str, ...]:
        return cls._COLUMNS

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``timeline_items`` column order."""
        return tuple(
            str(self.kind) if name == "kind" else getattr(self, name)
            for name in self._COLUMNS
        )

    @classmethod
    def from_row(cls, row: tuple) -> TimelineItem:
        """Deserialize a row of item columns, optionally followed by the cohort start date."""
        values = dict(zip(cls._COLUMNS, row, strict=False))
        cohort_start = row[len(cls._COLUMNS)] if len(row) > len(cls._COLUMNS) else None
        return cls(**values, cohort_start_date=cohort_start)
