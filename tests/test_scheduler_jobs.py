"""Tests for the job registry wiring."""

from unittest.mock import MagicMock

import pytest

from cohort_scheduler.scheduler.jobs import build_jobs, job_schedules


def test_build_all_jobs() -> None:
    jobs = build_jobs(MagicMock(), MagicMock(), MagicMock())
    assert list(jobs) == ["drip", "reminders", "recovery"]
    assert jobs["drip"].__name__ == "process_pending_drip"
    assert jobs["reminders"].__name__ == "process_reminders"
    assert jobs["recovery"].__name__ == "run_daily_recovery_check"


def test_build_enabled_subset() -> None:
    jobs = build_jobs(MagicMock(), MagicMock(), MagicMock(), enabled=["recovery"])
    assert list(jobs) == ["recovery"]


def test_enabled_from_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("cohort_scheduler.config.settings.enabled_jobs", "reminders")
    jobs = build_jobs(MagicMock(), MagicMock(), MagicMock())
    assert list(jobs) == ["reminders"]


def test_schedules_follow_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("cohort_scheduler.config.settings.reminder_interval_minutes", 2)
    schedules = job_schedules()
    assert schedules["reminders"] == {"minutes": 2}
    assert schedules["drip"] == {"cron": "0 * * * *"}
    assert schedules["recovery"] == {"cron": "0 6 * * *"}
