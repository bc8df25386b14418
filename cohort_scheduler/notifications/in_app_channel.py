"""In-app implementation of the NotificationChannel protocol.

Writes each notification into the ``notifications`` table that the LMS
front-end polls for its notification dropdown.  The front-end reads rows by
learner ID, so a cohort-addressed notification is expanded here into one row
per active learner of the cohort.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from cohort_scheduler.db import LEARNER_SCHEMA, SchemaConnector

if TYPE_CHECKING:
    from pathlib import Path

    from cohort_scheduler.db import _AsyncConnection
    from cohort_scheduler.notifications.models import Notification

logger = logging.getLogger(__name__)

_CREATE_TABLES = LEARNER_SCHEMA + """;
CREATE TABLE IF NOT EXISTS notifications (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    audience TEXT NOT NULL DEFAULT 'user',
    type TEXT NOT NULL,
    channel TEXT NOT NULL DEFAULT 'in_app',
    status TEXT NOT NULL DEFAULT 'sent',
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications (user_id, created_at)
"""


class InAppChannel:
    """Stores notifications for in-app display."""

    def __init__(self, db_path: Path | None = None) -> None:
        self._connector = SchemaConnector(_CREATE_TABLES, db_path)

    @property
    def name(self) -> str:
        return "in_app"

    async def send(self, notification: Notification) -> bool:
        """Insert one row per recipient. Returns False if the write fails.

        A cohort notification with no active learners stores nothing and
        still counts as delivered.
        """
        payload = json.dumps(
            {
                "title": notification.title,
                "message": notification.message,
                **notification.metadata,
            }
        )
        try:
            db = await self._connector.connect()
            try:
                if notification.audience == "cohort":
                    user_ids = await self._cohort_learners(db, notification.recipient_id)
                    if not user_ids:
                        logger.info(
                            "No active learners in cohort %s, nothing stored",
                            notification.recipient_id,
                        )
                else:
                    user_ids = [notification.recipient_id]

                created_at = datetime.now(UTC).isoformat()
                for user_id in user_ids:
                    await db.execute(
                        """
                        INSERT INTO notifications
                            (id, user_id, audience, type, channel, status, payload, created_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            uuid.uuid4().hex,
                            user_id,
                            notification.audience,
                            notification.type,
                            self.name,
                            "sent",
                            payload,
                            created_at,
                        ),
                    )
                await db.commit()
            finally:
                await db.close()
        except Exception:
            logger.exception(
                "InAppChannel.send failed for recipient_id=%s", notification.recipient_id
            )
            return False
        return True

    async def list_for_user(self, user_id: str) -> list[dict]:
        """Return stored notifications for a learner, oldest first."""
        db = await self._connector.connect()
        try:
            cursor = await db.execute(
                """
                SELECT type, payload, created_at FROM notifications
                WHERE user_id = ? ORDER BY created_at
                """,
                (user_id,),
            )
            rows = await cursor.fetchall()
        finally:
            await db.close()
        return [
            {"type": row[0], "payload": json.loads(row[1]), "created_at": row[2]}
            for row in rows
        ]

    @staticmethod
    async def _cohort_learners(db: _AsyncConnection, cohort_id: str) -> list[str]:
        cursor = await db.execute(
            """
            SELECT l.id FROM enrollments e
            JOIN learners l ON l.id = e.user_id
            WHERE e.cohort_id = ? AND e.status = 'active'
            ORDER BY l.id
            """,
            (cohort_id,),
        )
        return [row[0] for row in await cursor.fetchall()]
