"""Tests for the entry point wiring."""

import json
from unittest.mock import AsyncMock, patch

import pytest

from cohort_scheduler import main as entry
from cohort_scheduler.notifications.router import NotificationRouter


@pytest.fixture(autouse=True)
def _reset_router():
    NotificationRouter._reset()
    yield
    NotificationRouter._reset()


def test_build_router_in_app_only() -> None:
    router = entry.build_router()
    assert router.list_channels() == ["in_app"]
    assert router.default_channel_name == "in_app"


def test_build_router_with_webhook(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "cohort_scheduler.config.settings.notification_webhook_url",
        "https://notify.example.com/deliver",
    )
    monkeypatch.setattr("cohort_scheduler.config.settings.default_notification_channel", "webhook")

    router = entry.build_router()

    assert router.list_channels() == ["in_app", "webhook"]
    assert router.default_channel_name == "webhook"


def test_run_once_prints_summary(monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    monkeypatch.setattr("sys.argv", ["cohort-scheduler", "--run-once", "drip"])
    with patch.object(entry, "run_once", AsyncMock(return_value={"processed": 3, "skipped": 0})):
        entry.main()

    assert json.loads(capsys.readouterr().out) == {"processed": 3, "skipped": 0}


def test_run_once_rejects_unknown_job(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("sys.argv", ["cohort-scheduler", "--run-once", "digest"])
    with pytest.raises(SystemExit):
        entry.main()


@pytest.mark.usefixtures("_no_turso")
async def test_run_once_runs_the_job(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("cohort_scheduler.config.settings.database_path", tmp_path / "x.db")
    with (
        patch("cohort_scheduler.main.TimelineStore.get") as timeline_get,
        patch("cohort_scheduler.main.RecoveryStore.get"),
    ):
        timeline_get.return_value.list_undeployed_items = AsyncMock(return_value=[])
        summary = await entry.run_once("drip")

    assert summary == {"processed": 0, "skipped": 0}
