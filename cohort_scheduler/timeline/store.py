"""TimelineStore — libsql persistence for cohorts, enrollments and timeline items."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from cohort_scheduler.db import LEARNER_SCHEMA, SchemaConnector
from cohort_scheduler.timeline.models import (
    MARKER_COLUMNS,
    Cohort,
    Enrollment,
    ItemKind,
    SessionStatus,
    TimelineItem,
)

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLES = LEARNER_SCHEMA + """;
CREATE TABLE IF NOT EXISTS cohorts (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    start_date TEXT
);
CREATE TABLE IF NOT EXISTS timeline_items (
    id TEXT PRIMARY KEY,
    cohort_id TEXT NOT NULL,
    kind TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    drip_offset_days INTEGER NOT NULL DEFAULT 0 CHECK (drip_offset_days >= 0),
    recording_id TEXT,
    assignment_id TEXT,
    meeting_link TEXT,
    start_datetime TEXT,
    session_status TEXT NOT NULL DEFAULT 'scheduled',
    deployed_notified_at TEXT,
    reminder_24h_sent_at TEXT,
    reminder_1h_sent_at TEXT,
    reminder_start_sent_at TEXT
)
"""

_ITEM_SELECT = ", ".join(f"t.{name}" for name in TimelineItem.columns())


class TimelineStore:
    """Persists cohort timelines in SQLite / Turso.

    Singleton accessed via ``TimelineStore.get()``.  Pass an explicit *db_path*
    for test isolation (e.g. ``tmp_path / "test.db"``).

    Marker columns are only ever written through :meth:`set_marker`, which
    refuses to overwrite a non-null value.
    """

    _instance: TimelineStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._connector = SchemaConnector(_CREATE_TABLES, db_path)

    @classmethod
    def get(cls) -> TimelineStore:
        """Return the shared TimelineStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self):  # noqa: ANN201
        return await self._connector.connect()

    # -- Writes used by seeding and tests --------------------------------------

    async def add_cohort(self, cohort: Cohort) -> Cohort:
        db = await self._connect()
        try:
            await db.execute(
                "INSERT INTO cohorts (id, name, start_date) VALUES (?, ?, ?)",
                cohort.to_row(),
            )
            await db.commit()
            return cohort
        finally:
            await db.close()

    async def add_learner(
        self,
        user_id: str,
        full_name: str = "",
        email: str | None = None,
        *,
        last_login_at: str | None = None,
        created_at: str | None = None,
    ) -> None:
        db = await self._connect()
        try:
            await db.execute(
                """
                INSERT INTO learners (id, full_name, email, last_login_at, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    full_name,
                    email,
                    last_login_at,
                    created_at or datetime.now(UTC).isoformat(),
                ),
            )
            await db.commit()
        finally:
            await db.close()

    async def record_login(self, user_id: str, timestamp: str | None = None) -> None:
        """Set a learner's last_login_at (defaults to now UTC)."""
        ts = timestamp or datetime.now(UTC).isoformat()
        db = await self._connect()
        try:
            await db.execute(
                "UPDATE learners SET last_login_at = ? WHERE id = ?", (ts, user_id)
            )
            await db.commit()
        finally:
            await db.close()

    async def add_enrollment(self, enrollment: Enrollment) -> Enrollment:
        db = await self._connect()
        try:
            await db.execute(
                "INSERT INTO enrollments (id, cohort_id, user_id, status) VALUES (?, ?, ?, ?)",
                enrollment.to_row(),
            )
            await db.commit()
            return enrollment
        finally:
            await db.close()

    async def add_item(self, item: TimelineItem) -> TimelineItem:
        """Insert a timeline item. Returns the same item object."""
        columns = TimelineItem.columns()
        placeholders = ", ".join("?" for _ in columns)
        db = await self._connect()
        try:
            await db.execute(
                f"INSERT INTO timeline_items ({', '.join(columns)}) VALUES ({placeholders})",
                item.to_row(),
            )
            await db.commit()
            logger.debug("Added timeline item: %s (%s)", item.title, item.id)
            return item
        finally:
            await db.close()

    # -- Reads -----------------------------------------------------------------

    async def get_item(self, item_id: str) -> TimelineItem | None:
        """Fetch an item by ID (with its cohort start date), or None."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"""
                SELECT {_ITEM_SELECT}, c.start_date
                FROM timeline_items t LEFT JOIN cohorts c ON c.id = t.cohort_id
                WHERE t.id = ?
                """,
                (item_id,),
            )
            row = await cursor.fetchone()
            return TimelineItem.from_row(row) if row else None
        finally:
            await db.close()

    async def list_undeployed_items(self) -> list[TimelineItem]:
        """Return every item whose deployment notification has not gone out."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"""
                SELECT {_ITEM_SELECT}, c.start_date
                FROM timeline_items t LEFT JOIN cohorts c ON c.id = t.cohort_id
                WHERE t.deployed_notified_at IS NULL
                """
            )
            rows = await cursor.fetchall()
            return [TimelineItem.from_row(row) for row in rows]
        finally:
            await db.close()

    async def list_scheduled_sessions(self) -> list[TimelineItem]:
        """Return scheduled live sessions that have a start time."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"""
                SELECT {_ITEM_SELECT}, c.start_date
                FROM timeline_items t LEFT JOIN cohorts c ON c.id = t.cohort_id
                WHERE t.kind = ? AND t.session_status = ?
                  AND t.start_datetime IS NOT NULL
                """,
                (str(ItemKind.LIVE_SESSION), str(SessionStatus.SCHEDULED)),
            )
            rows = await cursor.fetchall()
            return [TimelineItem.from_row(row) for row in rows]
        finally:
            await db.close()

    async def list_active_recipients(self, cohort_id: str) -> list[str]:
        """Return learner IDs of active enrollments in a cohort.

        Enrollments without a user_id, or whose learner row is missing, are
        left out and logged.
        """
        db = await self._connect()
        try:
            cursor = await db.execute(
                """
                SELECT e.id, l.id
                FROM enrollments e LEFT JOIN learners l ON l.id = e.user_id
                WHERE e.cohort_id = ? AND e.status = 'active'
                ORDER BY e.id
                """,
                (cohort_id,),
            )
            rows = await cursor.fetchall()
        finally:
            await db.close()

        recipients = []
        for enrollment_id, learner_id in rows:
            if learner_id is None:
                logger.info(
                    "Skipping enrollment %s in cohort %s: no resolvable learner",
                    enrollment_id,
                    cohort_id,
                )
                continue
            recipients.append(learner_id)
        return recipients

    # -- Conditional marker writes ---------------------------------------------

    async def set_marker(
        self, item_id: str, column: str, timestamp: str | None = None
    ) -> bool:
        """Set a sent-at marker only if it is still NULL.

        Returns True if this call wrote the marker, False if the item does
        not exist or the marker was already set by an earlier run.
        """
        if column not in MARKER_COLUMNS:
            msg = f"Not a marker column: {column}"
            raise ValueError(msg)
        ts = timestamp or datetime.now(UTC).isoformat()
        db = await self._connect()
        try:
            return await db.execute_guarded(
                f"UPDATE timeline_items SET {column} = ? WHERE id = ? AND {column} IS NULL",
                (ts, item_id),
            )
        finally:
            await db.close()

    async def set_session_status(self, item_id: str, status: SessionStatus) -> bool:
        """Change a live session's status (e.g. cancel it). Returns True if updated."""
        db = await self._connect()
        try:
            return await db.execute_guarded(
                "UPDATE timeline_items SET session_status = ? WHERE id = ? AND kind = ?",
                (str(status), item_id, str(ItemKind.LIVE_SESSION)),
            )
        finally:
            await db.close()
