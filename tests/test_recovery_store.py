"""Tests for RecoveryStore — recovery cycles, learner activity and summaries."""

from datetime import UTC, datetime, timedelta

import pytest

from cohort_scheduler.recovery.models import (
    DailyCheckSummary,
    RecordAlreadyRecoveredError,
    RecoveryRecord,
    RecoveryStatus,
)
from cohort_scheduler.recovery.store import RecoveryStore
from cohort_scheduler.timeline.models import Enrollment
from cohort_scheduler.timeline.store import TimelineStore

NOW = datetime(2024, 3, 10, 6, 0, tzinfo=UTC)


def _ago(days: int) -> str:
    return (NOW - timedelta(days=days)).isoformat()


def _record(record_id: str, user_id: str = "u1", cycle: int = 1, **kwargs) -> RecoveryRecord:
    defaults = {"days_inactive": 4, "created_at": _ago(1)}
    defaults.update(kwargs)
    return RecoveryRecord(id=record_id, user_id=user_id, recovery_cycle=cycle, **defaults)


# -- Records -----------------------------------------------------------------


async def test_create_and_get_record(recovery_store: RecoveryStore) -> None:
    assert await recovery_store.create_record(_record("r1"))

    record = await recovery_store.get_record("r1")
    assert record is not None
    assert record.message_status is RecoveryStatus.PENDING
    assert record.recovery_cycle == 1


async def test_second_open_cycle_refused(recovery_store: RecoveryStore) -> None:
    assert await recovery_store.create_record(_record("r1"))
    assert not await recovery_store.create_record(_record("r2", cycle=2))

    assert [r.id for r in await recovery_store.list_records("u1")] == ["r1"]


async def test_failed_record_blocks_new_cycle(recovery_store: RecoveryStore) -> None:
    await recovery_store.create_record(_record("r1"))
    await recovery_store.update_message_status("r1", RecoveryStatus.FAILED)

    assert not await recovery_store.create_record(_record("r2", cycle=2))


async def test_new_cycle_after_recovery(recovery_store: RecoveryStore) -> None:
    await recovery_store.create_record(_record("r1"))
    await recovery_store.mark_recovered("r1", NOW.isoformat())

    assert await recovery_store.create_record(_record("r2", cycle=2))
    latest = await recovery_store.get_latest_record("u1")
    assert latest.id == "r2"


async def test_cycle_number_cannot_repeat(recovery_store: RecoveryStore) -> None:
    await recovery_store.create_record(_record("r1"))
    await recovery_store.mark_recovered("r1")

    assert not await recovery_store.create_record(_record("r2", cycle=1))


async def test_mark_recovered_only_once(recovery_store: RecoveryStore) -> None:
    await recovery_store.create_record(_record("r1"))

    assert await recovery_store.mark_recovered("r1", NOW.isoformat())
    assert not await recovery_store.mark_recovered("r1", NOW.isoformat())

    record = await recovery_store.get_record("r1")
    assert record.message_status is RecoveryStatus.RECOVERED
    assert record.recovered_at == NOW.isoformat()


async def test_list_tracked_excludes_failed_and_recovered(recovery_store: RecoveryStore) -> None:
    await recovery_store.create_record(_record("pending", user_id="u1"))
    await recovery_store.create_record(_record("sent", user_id="u2"))
    await recovery_store.create_record(_record("failed", user_id="u3"))
    await recovery_store.create_record(_record("done", user_id="u4"))
    await recovery_store.update_message_status("sent", RecoveryStatus.SENT)
    await recovery_store.update_message_status("failed", RecoveryStatus.FAILED)
    await recovery_store.mark_recovered("done")

    tracked = await recovery_store.list_tracked()
    assert sorted(r.id for r in tracked) == ["pending", "sent"]


async def test_touch_still_inactive(recovery_store: RecoveryStore) -> None:
    await recovery_store.create_record(_record("r1"))

    assert await recovery_store.touch_still_inactive("r1", "2024-03-10", NOW.isoformat())
    record = await recovery_store.get_record("r1")
    assert record.last_check_date == "2024-03-10"
    assert record.message_status is RecoveryStatus.PENDING


async def test_touch_still_inactive_bumps_updated_at(recovery_store: RecoveryStore) -> None:
    await recovery_store.create_record(_record("r1", updated_at=_ago(1)))

    await recovery_store.touch_still_inactive("r1", "2024-03-10", NOW.isoformat())

    record = await recovery_store.get_record("r1")
    assert record.last_login_check == NOW.isoformat()
    assert record.updated_at == NOW.isoformat()


async def test_touch_still_inactive_ignores_recovered(recovery_store: RecoveryStore) -> None:
    await recovery_store.create_record(_record("r1", updated_at=_ago(1)))
    await recovery_store.mark_recovered("r1", _ago(0))

    assert not await recovery_store.touch_still_inactive("r1", "2024-03-11", NOW.isoformat())
    assert (await recovery_store.get_record("r1")).last_check_date is None


# -- Message status ----------------------------------------------------------


async def test_update_message_status_sent(recovery_store: RecoveryStore) -> None:
    await recovery_store.create_record(_record("r1"))

    record = await recovery_store.update_message_status(
        "r1", RecoveryStatus.SENT, message_content="We miss you!", timestamp=NOW.isoformat()
    )
    assert record.message_status is RecoveryStatus.SENT
    assert record.message_sent_at == NOW.isoformat()
    assert record.activity_since == NOW.isoformat()


async def test_update_message_status_unknown(recovery_store: RecoveryStore) -> None:
    assert await recovery_store.update_message_status("ghost", RecoveryStatus.SENT) is None


async def test_update_message_status_after_recovery(recovery_store: RecoveryStore) -> None:
    await recovery_store.create_record(_record("r1"))
    await recovery_store.mark_recovered("r1")

    with pytest.raises(RecordAlreadyRecoveredError):
        await recovery_store.update_message_status("r1", RecoveryStatus.SENT)


# -- Learner activity --------------------------------------------------------


async def test_has_logged_in_since(
    timeline_store: TimelineStore, recovery_store: RecoveryStore
) -> None:
    await timeline_store.add_learner("u1", "Ada", last_login_at=_ago(2), created_at=_ago(30))

    assert await recovery_store.has_logged_in_since("u1", _ago(3))
    assert not await recovery_store.has_logged_in_since("u1", _ago(1))


async def test_has_logged_in_since_never_logged_in(
    timeline_store: TimelineStore, recovery_store: RecoveryStore
) -> None:
    await timeline_store.add_learner("u1", "Ada", created_at=_ago(30))
    assert not await recovery_store.has_logged_in_since("u1", _ago(3))


async def test_has_logged_in_since_unknown_learner(recovery_store: RecoveryStore) -> None:
    with pytest.raises(LookupError):
        await recovery_store.has_logged_in_since("ghost", _ago(3))


async def test_list_inactive_learners(
    timeline_store: TimelineStore, recovery_store: RecoveryStore
) -> None:
    await timeline_store.add_learner("idle", "Idle", last_login_at=_ago(5), created_at=_ago(60))
    await timeline_store.add_learner("busy", "Busy", last_login_at=_ago(1), created_at=_ago(60))
    await timeline_store.add_learner("never", "Never", created_at=_ago(4))
    await timeline_store.add_learner("gone", "Gone", last_login_at=_ago(9), created_at=_ago(60))
    await timeline_store.add_learner("open", "Open", last_login_at=_ago(9), created_at=_ago(60))
    for user_id in ("idle", "busy", "never", "open"):
        await timeline_store.add_enrollment(Enrollment(f"e_{user_id}", "c1", user_id))
    await timeline_store.add_enrollment(Enrollment("e_gone", "c1", "gone", status="dropped"))
    await recovery_store.create_record(_record("r_open", user_id="open"))

    inactive = await recovery_store.list_inactive_learners(3, NOW)

    assert [(i.user_id, i.days_inactive) for i in inactive] == [("idle", 5), ("never", 4)]


# -- Summaries and stats -----------------------------------------------------


async def test_summaries_newest_first(recovery_store: RecoveryStore) -> None:
    for day in ("2024-03-08", "2024-03-09"):
        await recovery_store.add_summary(
            DailyCheckSummary(day, 3, 1, 1, 1, f"{day}T06:00:05+00:00")
        )

    summaries = await recovery_store.list_summaries()
    assert [s.check_date for s in summaries] == ["2024-03-09", "2024-03-08"]


async def test_recovery_stats(recovery_store: RecoveryStore) -> None:
    await recovery_store.create_record(_record("r1", user_id="u1"))
    await recovery_store.create_record(_record("r2", user_id="u2"))
    await recovery_store.create_record(_record("r3", user_id="u3"))
    await recovery_store.mark_recovered("r1")

    stats = await recovery_store.recovery_stats()
    assert stats == {"total_cycles": 3, "recovered": 1, "recovery_rate": 33.3}


async def test_recovery_stats_empty(recovery_store: RecoveryStore) -> None:
    stats = await recovery_store.recovery_stats()
    assert stats == {"total_cycles": 0, "recovered": 0, "recovery_rate": 0.0}
