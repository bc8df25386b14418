"""libsql access for the scheduler jobs.

Every job writes through conditional updates (``... WHERE marker IS NULL``,
``... WHERE message_status IN ('pending', 'sent')``) and learns whether it
won from the affected row count, so :meth:`_AsyncConnection.execute_guarded`
is the one write primitive the stores need.

The synchronous ``libsql`` driver runs in worker threads via
``asyncio.to_thread()``.  Target selection:

- ``local_path_override`` (tests) → that file
- ``TURSO_DATABASE_URL`` + ``TURSO_AUTH_TOKEN`` → hosted Turso
- otherwise → local file at ``database_path``
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import libsql

from cohort_scheduler.config import settings

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

# Learners and enrollments are owned by the LMS; every component that joins
# against them declares them so any store can bootstrap an empty database.
LEARNER_SCHEMA = """
CREATE TABLE IF NOT EXISTS learners (
    id TEXT PRIMARY KEY,
    full_name TEXT NOT NULL DEFAULT '',
    email TEXT,
    last_login_at TEXT,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS enrollments (
    id TEXT PRIMARY KEY,
    cohort_id TEXT NOT NULL,
    user_id TEXT,
    status TEXT NOT NULL DEFAULT 'active'
);
CREATE INDEX IF NOT EXISTS idx_enrollments_cohort ON enrollments (cohort_id, status)
"""


def split_statements(script: str) -> list[str]:
    """Split a ``;``-separated DDL script into non-empty statements."""
    return [stmt.strip() for stmt in script.split(";") if stmt.strip()]


class _AsyncCursor:
    def __init__(self, cursor: Any) -> None:
        self._cursor = cursor

    async def fetchone(self) -> tuple | None:
        return await asyncio.to_thread(self._cursor.fetchone)

    async def fetchall(self) -> list[tuple]:
        return await asyncio.to_thread(self._cursor.fetchall)

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount


class _AsyncConnection:
    """Async facade over one libsql connection."""

    def __init__(self, conn: Any) -> None:
        self._conn = conn

    async def execute(self, sql: str, params: tuple = ()) -> _AsyncCursor:
        cursor = await asyncio.to_thread(self._conn.execute, sql, params)
        return _AsyncCursor(cursor)

    async def executescript(self, script: str) -> None:
        for statement in split_statements(script):
            await asyncio.to_thread(self._conn.execute, statement)

    async def execute_guarded(self, sql: str, params: tuple = ()) -> bool:
        """Run a conditional write and commit it.

        Returns True if at least one row changed, i.e. this caller won the
        transition. False means the guard already failed (row missing or
        another run got there first).
        """
        cursor = await self.execute(sql, params)
        await self.commit()
        return cursor.rowcount > 0

    async def commit(self) -> None:
        await asyncio.to_thread(self._conn.commit)

    async def close(self) -> None:
        await asyncio.to_thread(self._conn.close)


def _open_local(path: str) -> Any:
    """WAL mode plus a busy timeout so overlapping jobs wait instead of failing."""
    conn = libsql.connect(path)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")
    return conn


async def get_connection(local_path_override: Path | None = None) -> _AsyncConnection:
    """Open a raw connection to the configured target (no schema applied)."""
    if local_path_override:
        local_path_override.parent.mkdir(parents=True, exist_ok=True)
        conn = await asyncio.to_thread(_open_local, str(local_path_override))
        return _AsyncConnection(conn)

    if settings.turso_database_url:
        conn = await asyncio.to_thread(
            libsql.connect,
            database=settings.turso_database_url,
            auth_token=settings.turso_auth_token,
        )
        return _AsyncConnection(conn)

    settings.database_path.parent.mkdir(parents=True, exist_ok=True)
    conn = await asyncio.to_thread(_open_local, str(settings.database_path))
    return _AsyncConnection(conn)


class SchemaConnector:
    """Opens connections for one component, applying its DDL on first use.

    Each store (and the in-app channel) owns one connector with its own
    ``CREATE ... IF NOT EXISTS`` script; the script runs once per connector
    and is a no-op against a database that already has the tables.

    Args:
        schema: ``;``-separated DDL statements.
        db_path: Explicit local file (test isolation); None → settings.
    """

    def __init__(self, schema: str, db_path: Path | None = None) -> None:
        self._schema = schema
        self._db_path = db_path
        self._ready = False

    async def connect(self) -> _AsyncConnection:
        db = await get_connection(local_path_override=self._db_path)
        if not self._ready:
            try:
                await db.executescript(self._schema)
                await db.commit()
            except Exception:
                await db.close()
                raise
            self._ready = True
            logger.debug("Schema applied (%d statements)", len(split_statements(self._schema)))
        return db
