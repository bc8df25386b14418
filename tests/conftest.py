"""Shared test fixtures."""

from pathlib import Path

import pytest

from cohort_scheduler.recovery.store import RecoveryStore
from cohort_scheduler.timeline.store import TimelineStore


@pytest.fixture(autouse=False)
def _no_turso(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure tests use local file, not remote Turso."""
    monkeypatch.setattr("cohort_scheduler.config.settings.turso_database_url", "")


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
def timeline_store(db_path: Path, _no_turso) -> TimelineStore:
    return TimelineStore(db_path=db_path)


@pytest.fixture
def recovery_store(db_path: Path, _no_turso) -> RecoveryStore:
    """Shares the database file with ``timeline_store`` (learners and enrollments)."""
    return RecoveryStore(db_path=db_path)
