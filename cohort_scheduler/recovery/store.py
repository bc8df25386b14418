"""RecoveryStore — libsql persistence for recovery cycles and daily check summaries."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from cohort_scheduler.db import LEARNER_SCHEMA, SchemaConnector
from cohort_scheduler.recovery.models import (
    TRACKED_STATUSES,
    DailyCheckSummary,
    InactiveLearner,
    RecoveryRecord,
    RecoveryStatus,
    RecordAlreadyRecoveredError,
)
from cohort_scheduler.timeline.models import parse_timestamp

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLES = LEARNER_SCHEMA + """;
CREATE TABLE IF NOT EXISTS recovery_records (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    days_inactive INTEGER NOT NULL,
    recovery_cycle INTEGER NOT NULL,
    message_status TEXT NOT NULL DEFAULT 'pending',
    message_sent_at TEXT,
    last_check_date TEXT,
    last_login_check TEXT,
    recovered_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    message_content TEXT
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_recovery_user_cycle
    ON recovery_records (user_id, recovery_cycle);
CREATE UNIQUE INDEX IF NOT EXISTS idx_recovery_one_open_cycle
    ON recovery_records (user_id) WHERE message_status != 'recovered';
CREATE TABLE IF NOT EXISTS recovery_checks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    check_date TEXT NOT NULL,
    students_checked INTEGER NOT NULL,
    newly_inactive INTEGER NOT NULL,
    recovered INTEGER NOT NULL,
    still_inactive INTEGER NOT NULL,
    check_completed_at TEXT NOT NULL
)
"""

_RECORD_SELECT = ", ".join(RecoveryRecord.columns())
_TRACKED = tuple(str(status) for status in TRACKED_STATUSES)


class RecoveryStore:
    """Persists learner recovery cycles in SQLite / Turso.

    Singleton accessed via ``RecoveryStore.get()``.  Pass an explicit *db_path*
    for test isolation (e.g. ``tmp_path / "test.db"``).

    The one-open-cycle-per-learner invariant is enforced twice: by the
    guarded insert in :meth:`create_record` and by a partial unique index.
    """

    _instance: RecoveryStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._connector = SchemaConnector(_CREATE_TABLES, db_path)

    @classmethod
    def get(cls) -> RecoveryStore:
        """Return the shared RecoveryStore instance."""
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

    # -- Records ---------------------------------------------------------------

    async def get_record(self, record_id: str) -> RecoveryRecord | None:
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {_RECORD_SELECT} FROM recovery_records WHERE id = ?", (record_id,)
            )
            row = await cursor.fetchone()
            return RecoveryRecord.from_row(row) if row else None
        finally:
            await db.close()

    async def list_records(self, user_id: str) -> list[RecoveryRecord]:
        """Return every cycle for a learner, oldest first."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"""
                SELECT {_RECORD_SELECT} FROM recovery_records
                WHERE user_id = ? ORDER BY recovery_cycle
                """,
                (user_id,),
            )
            rows = await cursor.fetchall()
            return [RecoveryRecord.from_row(row) for row in rows]
        finally:
            await db.close()

    async def list_tracked(self) -> list[RecoveryRecord]:
        """Return open records still awaiting a login (pending or sent)."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"""
                SELECT {_RECORD_SELECT} FROM recovery_records
                WHERE message_status IN (?, ?) ORDER BY created_at
                """,
                _TRACKED,
            )
            rows = await cursor.fetchall()
            return [RecoveryRecord.from_row(row) for row in rows]
        finally:
            await db.close()

    async def get_latest_record(self, user_id: str) -> RecoveryRecord | None:
        """Return the learner's highest-cycle record, or None."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"""
                SELECT {_RECORD_SELECT} FROM recovery_records
                WHERE user_id = ? ORDER BY recovery_cycle DESC LIMIT 1
                """,
                (user_id,),
            )
            row = await cursor.fetchone()
            return RecoveryRecord.from_row(row) if row else None
        finally:
            await db.close()

    async def create_record(self, record: RecoveryRecord) -> bool:
        """Insert a new cycle unless the learner already has an open or later one.

        Returns True if the record was inserted.
        """
        columns = RecoveryRecord.columns()
        placeholders = ", ".join("?" for _ in columns)
        db = await self._connect()
        try:
            created = await db.execute_guarded(
                f"""
                INSERT INTO recovery_records ({", ".join(columns)})
                SELECT {placeholders}
                WHERE NOT EXISTS (
                    SELECT 1 FROM recovery_records
                    WHERE user_id = ?
                      AND (message_status != 'recovered' OR recovery_cycle >= ?)
                )
                """,
                (*record.to_row(), record.user_id, record.recovery_cycle),
            )
            if created:
                logger.info(
                    "Opened recovery cycle %d for user %s", record.recovery_cycle, record.user_id
                )
            return created
        finally:
            await db.close()

    async def mark_recovered(self, record_id: str, timestamp: str | None = None) -> bool:
        """Close an open cycle. Returns True if this call made the transition."""
        ts = timestamp or datetime.now(UTC).isoformat()
        db = await self._connect()
        try:
            return await db.execute_guarded(
                """
                UPDATE recovery_records
                SET message_status = 'recovered', recovered_at = ?, updated_at = ?
                WHERE id = ? AND message_status IN (?, ?)
                """,
                (ts, ts, record_id, *_TRACKED),
            )
        finally:
            await db.close()

    async def touch_still_inactive(
        self, record_id: str, check_date: str, timestamp: str | None = None
    ) -> bool:
        """Record that today's check still found the learner inactive."""
        ts = timestamp or datetime.now(UTC).isoformat()
        db = await self._connect()
        try:
            return await db.execute_guarded(
                """
                UPDATE recovery_records
                SET last_check_date = ?, last_login_check = ?, updated_at = ?
                WHERE id = ? AND message_status IN (?, ?)
                """,
                (check_date, ts, ts, record_id, *_TRACKED),
            )
        finally:
            await db.close()

    async def update_message_status(
        self,
        record_id: str,
        status: RecoveryStatus,
        *,
        message_content: str | None = None,
        timestamp: str | None = None,
    ) -> RecoveryRecord | None:
        """Record the outcome of the recovery message for an open cycle.

        Returns the updated record, or None if *record_id* is unknown.
        Raises RecordAlreadyRecoveredError if the cycle is already recovered.
        """
        ts = timestamp or datetime.now(UTC).isoformat()
        sent_at = ts if status == RecoveryStatus.SENT else None
        db = await self._connect()
        try:
            updated = await db.execute_guarded(
                """
                UPDATE recovery_records
                SET message_status = ?,
                    message_sent_at = COALESCE(?, message_sent_at),
                    message_content = COALESCE(?, message_content),
                    updated_at = ?
                WHERE id = ? AND message_status != 'recovered'
                """,
                (str(status), sent_at, message_content, ts, record_id),
            )
        finally:
            await db.close()

        record = await self.get_record(record_id)
        if record is None:
            return None
        if not updated:
            msg = f"Recovery record {record_id} is already recovered"
            raise RecordAlreadyRecoveredError(msg)
        return record

    # -- Learner activity ------------------------------------------------------

    async def has_logged_in_since(self, user_id: str, since: str) -> bool:
        """True if the learner's last login is later than *since*."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT last_login_at FROM learners WHERE id = ?", (user_id,)
            )
            row = await cursor.fetchone()
        finally:
            await db.close()
        if row is None:
            msg = f"Unknown learner: {user_id}"
            raise LookupError(msg)
        if not row[0]:
            return False
        return parse_timestamp(row[0]) > parse_timestamp(since)

    async def list_inactive_learners(
        self, threshold_days: int, now: datetime
    ) -> list[InactiveLearner]:
        """Return actively enrolled learners idle ≥ *threshold_days* with no open cycle.

        Learners who never logged in are measured from their account creation.
        """
        db = await self._connect()
        try:
            cursor = await db.execute(
                """
                SELECT l.id, l.full_name, COALESCE(l.last_login_at, l.created_at)
                FROM learners l
                WHERE EXISTS (
                    SELECT 1 FROM enrollments e
                    WHERE e.user_id = l.id AND e.status = 'active'
                )
                AND NOT EXISTS (
                    SELECT 1 FROM recovery_records r
                    WHERE r.user_id = l.id AND r.message_status != 'recovered'
                )
                ORDER BY l.id
                """
            )
            rows = await cursor.fetchall()
        finally:
            await db.close()

        inactive = []
        for user_id, full_name, last_seen in rows:
            days = (now - parse_timestamp(last_seen)).days
            if days >= threshold_days:
                inactive.append(InactiveLearner(user_id, full_name, days))
        return inactive

    # -- Daily summaries -------------------------------------------------------

    async def add_summary(self, summary: DailyCheckSummary) -> None:
        db = await self._connect()
        try:
            await db.execute(
                """
                INSERT INTO recovery_checks
                    (check_date, students_checked, newly_inactive, recovered,
                     still_inactive, check_completed_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                summary.to_row(),
            )
            await db.commit()
        finally:
            await db.close()

    async def list_summaries(self, limit: int = 30) -> list[DailyCheckSummary]:
        """Return the most recent summaries, newest first."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                """
                SELECT check_date, students_checked, newly_inactive, recovered,
                       still_inactive, check_completed_at
                FROM recovery_checks ORDER BY id DESC LIMIT ?
                """,
                (limit,),
            )
            rows = await cursor.fetchall()
            return [DailyCheckSummary(*row) for row in rows]
        finally:
            await db.close()

    async def recovery_stats(self) -> dict:
        """Return how many cycles were opened and the percentage that recovered."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                """
                SELECT COUNT(*),
                       COALESCE(SUM(CASE WHEN message_status = 'recovered' THEN 1 ELSE 0 END), 0)
                FROM recovery_records
                """
            )
            total, recovered = await cursor.fetchone()
        finally:
            await db.close()
        rate = round(recovered / total * 100, 1) if total else 0.0
        return {"total_cycles": total, "recovered": recovered, "recovery_rate": rate}
