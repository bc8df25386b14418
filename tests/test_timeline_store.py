"""Tests for TimelineStore — libsql persistence and conditional marker writes."""

import pytest

from cohort_scheduler.timeline.models import (
    Cohort,
    Enrollment,
    ItemKind,
    SessionStatus,
    TimelineItem,
)
from cohort_scheduler.timeline.store import TimelineStore


def _make_item(item_id: str = "item1", **kwargs) -> TimelineItem:
    defaults = {
        "cohort_id": "c1",
        "kind": ItemKind.RECORDING,
        "title": "Lesson",
    }
    defaults.update(kwargs)
    return TimelineItem(id=item_id, **defaults)


def _make_session(item_id: str = "s1", **kwargs) -> TimelineItem:
    return _make_item(
        item_id,
        kind=ItemKind.LIVE_SESSION,
        start_datetime="2024-03-01T15:00:00+00:00",
        meeting_link="https://meet.example.com/abc",
        **kwargs,
    )


# -- Items -------------------------------------------------------------------


async def test_add_and_get_item(timeline_store: TimelineStore) -> None:
    await timeline_store.add_cohort(Cohort("c1", "Spring", "2024-01-01"))
    await timeline_store.add_item(_make_item(drip_offset_days=2))

    item = await timeline_store.get_item("item1")
    assert item is not None
    assert item.drip_offset_days == 2
    assert item.cohort_start_date == "2024-01-01"


async def test_get_missing_item(timeline_store: TimelineStore) -> None:
    assert await timeline_store.get_item("nope") is None


async def test_item_without_cohort_has_no_start(timeline_store: TimelineStore) -> None:
    await timeline_store.add_item(_make_item(cohort_id="orphan"))
    items = await timeline_store.list_undeployed_items()
    assert [i.cohort_start_date for i in items] == [None]


async def test_list_undeployed_excludes_marked(timeline_store: TimelineStore) -> None:
    await timeline_store.add_item(_make_item("a"))
    await timeline_store.add_item(_make_item("b"))
    await timeline_store.set_marker("a", "deployed_notified_at")

    items = await timeline_store.list_undeployed_items()
    assert [i.id for i in items] == ["b"]


async def test_list_scheduled_sessions(timeline_store: TimelineStore) -> None:
    await timeline_store.add_item(_make_item("rec"))
    await timeline_store.add_item(_make_session("live"))
    await timeline_store.add_item(_make_session("cancelled"))
    await timeline_store.add_item(_make_item("no_start", kind=ItemKind.LIVE_SESSION))
    await timeline_store.set_session_status("cancelled", SessionStatus.CANCELLED)

    sessions = await timeline_store.list_scheduled_sessions()
    assert [s.id for s in sessions] == ["live"]


async def test_set_session_status_ignores_recordings(timeline_store: TimelineStore) -> None:
    await timeline_store.add_item(_make_item("rec"))
    assert await timeline_store.set_session_status("rec", SessionStatus.CANCELLED) is False


# -- Conditional marker writes -----------------------------------------------


async def test_set_marker_first_write_wins(timeline_store: TimelineStore) -> None:
    await timeline_store.add_item(_make_session())

    assert await timeline_store.set_marker("s1", "reminder_24h_sent_at", "2024-02-29T15:00:00")
    assert not await timeline_store.set_marker(
        "s1", "reminder_24h_sent_at", "2024-02-29T15:05:00"
    )

    item = await timeline_store.get_item("s1")
    assert item.reminder_24h_sent_at == "2024-02-29T15:00:00"


async def test_set_marker_columns_are_independent(timeline_store: TimelineStore) -> None:
    await timeline_store.add_item(_make_session())
    await timeline_store.set_marker("s1", "reminder_24h_sent_at")

    assert await timeline_store.set_marker("s1", "reminder_1h_sent_at")
    item = await timeline_store.get_item("s1")
    assert item.reminder_start_sent_at is None


async def test_set_marker_unknown_item(timeline_store: TimelineStore) -> None:
    assert await timeline_store.set_marker("ghost", "deployed_notified_at") is False


async def test_set_marker_rejects_other_columns(timeline_store: TimelineStore) -> None:
    with pytest.raises(ValueError, match="Not a marker column"):
        await timeline_store.set_marker("s1", "title")


# -- Recipients --------------------------------------------------------------


async def test_active_recipients(timeline_store: TimelineStore) -> None:
    await timeline_store.add_learner("u1", "Ada")
    await timeline_store.add_learner("u2", "Grace")
    await timeline_store.add_learner("u3", "Linus")
    await timeline_store.add_enrollment(Enrollment("e1", "c1", "u1"))
    await timeline_store.add_enrollment(Enrollment("e2", "c1", "u2", status="dropped"))
    await timeline_store.add_enrollment(Enrollment("e3", "c2", "u3"))

    assert await timeline_store.list_active_recipients("c1") == ["u1"]


async def test_active_recipients_skips_unresolvable(timeline_store: TimelineStore) -> None:
    await timeline_store.add_learner("u1", "Ada")
    await timeline_store.add_enrollment(Enrollment("e1", "c1", "u1"))
    await timeline_store.add_enrollment(Enrollment("e2", "c1", None))
    await timeline_store.add_enrollment(Enrollment("e3", "c1", "deleted_user"))

    assert await timeline_store.list_active_recipients("c1") == ["u1"]


async def test_record_login(timeline_store: TimelineStore, db_path) -> None:
    from cohort_scheduler.db import get_connection

    await timeline_store.add_learner("u1", "Ada")
    await timeline_store.record_login("u1", "2024-03-01T09:00:00+00:00")

    db = await get_connection(local_path_override=db_path)
    try:
        cursor = await db.execute("SELECT last_login_at FROM learners WHERE id = 'u1'")
        assert await cursor.fetchone() == ("2024-03-01T09:00:00+00:00",)
    finally:
        await db.close()


# -- Singleton ---------------------------------------------------------------


def test_singleton_reset() -> None:
    TimelineStore._reset()
    first = TimelineStore.get()
    assert TimelineStore.get() is first
    TimelineStore._reset()
    assert TimelineStore.get() is not first
    TimelineStore._reset()
