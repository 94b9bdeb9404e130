"""SqlScheduleStore against SQLite, in memory and on disk."""
import threading
from datetime import datetime, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from signage.db import init_db, make_engine
from signage.errors import ConflictError, NotFoundError
from signage.models.playlist import Playlist
from signage.models.schedule import ScheduleScreen, ScheduleWindow, ScheduleWindowException
from signage.models.screen import Screen
from signage.scheduling.recurrence import build_draft
from signage.scheduling.resolver import ScheduleResolver
from signage.scheduling.store import ScheduleLocks
from signage.scheduling.types import Recurrence
from signage.services.schedule_store import SqlScheduleStore, from_db_time, to_db_time


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture()
def store(db_session):
    return SqlScheduleStore(db_session)


@pytest.fixture()
def sql_resolver(store):
    return ScheduleResolver(store)


@pytest.fixture()
def content(db_session):
    playlist = Playlist(name="Morning", owner_account="acct-1")
    other_playlist = Playlist(name="Evening", owner_account="acct-1")
    screen = Screen(name="Lobby", owner_account="acct-1", device_id="dev-1")
    db_session.add_all([playlist, other_playlist, screen])
    db_session.commit()
    return {"playlist": playlist.id, "other_playlist": other_playlist.id, "screen": screen.id}


def test_db_time_round_trip():
    aware = utc(2025, 1, 6, 9)
    stored = to_db_time(aware)
    assert stored.tzinfo is None
    assert from_db_time(stored) == aware
    assert to_db_time(None) is None


def test_schedule_round_trip(store):
    created = store.create_schedule("Office", "acct-1")
    fetched = store.get_schedule(created.id)
    assert fetched == created
    assert fetched.created_at.tzinfo is not None
    assert store.get_schedule("missing") is None
    assert [s.id for s in store.list_schedules_for_owner("acct-1")] == [created.id]
    assert store.list_schedules_for_owner("acct-2") == []


def test_ownership_lookups(store, content):
    assert store.get_playlist_owner(content["playlist"]) == "acct-1"
    assert store.get_screen_owner(content["screen"]) == "acct-1"
    assert store.get_playlist_owner("missing") is None


def test_bind_screen_is_idempotent(store, content, db_session):
    schedule = store.create_schedule("Office", "acct-1")
    store.bind_screen(schedule.id, content["screen"])
    store.bind_screen(schedule.id, content["screen"])
    assert db_session.query(ScheduleScreen).count() == 1
    assert store.list_screens_for_schedule(schedule.id) == [content["screen"]]
    assert [s.id for s in store.list_schedules_for_screen(content["screen"])] == [schedule.id]

    store.unbind_screen(schedule.id, content["screen"])
    assert store.list_schedules_for_screen(content["screen"]) == []


def test_window_round_trip(sql_resolver, content):
    schedule = sql_resolver.create_schedule("Office", "acct-1")
    created = sql_resolver.create_window(
        schedule.id,
        content["playlist"],
        utc(2025, 1, 6, 9),
        utc(2025, 1, 6, 17),
        recurrence="weekly",
        recur_until=utc(2025, 6, 30),
        priority=4,
    )
    fetched = sql_resolver.get_window(created.id)
    assert fetched == created
    assert fetched.start == utc(2025, 1, 6, 9)
    assert fetched.recurrence == Recurrence.WEEKLY
    assert fetched.priority == 4
    assert fetched.exceptions == frozenset()


def test_conflicting_window_is_not_written(sql_resolver, content, db_session):
    schedule = sql_resolver.create_schedule("Office", "acct-1")
    first = sql_resolver.create_window(schedule.id, content["playlist"], utc(2025, 1, 6, 9), utc(2025, 1, 6, 12))
    with pytest.raises(ConflictError) as excinfo:
        sql_resolver.create_window(schedule.id, content["other_playlist"], utc(2025, 1, 6, 11), utc(2025, 1, 6, 13))
    assert excinfo.value.conflicting_window_id == first.id
    assert db_session.query(ScheduleWindow).count() == 1


def test_create_window_on_missing_schedule(store, content):
    draft = build_draft("missing", content["playlist"], utc(2025, 1, 6, 9), utc(2025, 1, 6, 10))
    with pytest.raises(NotFoundError):
        store.create_window(draft, lambda existing: None)


def test_exceptions_are_idempotent_and_aware(sql_resolver, content, db_session):
    schedule = sql_resolver.create_schedule("Office", "acct-1")
    window = sql_resolver.create_window(
        schedule.id,
        content["playlist"],
        utc(2025, 1, 6, 9),
        utc(2025, 1, 6, 10),
        recurrence="daily",
        recur_until=utc(2025, 1, 31),
    )
    sql_resolver.delete_window(window.id, "one", utc(2025, 1, 8, 9))
    sql_resolver.delete_window(window.id, "one", utc(2025, 1, 8, 9))

    assert db_session.query(ScheduleWindowException).count() == 1
    assert sql_resolver.get_window(window.id).exceptions == frozenset({utc(2025, 1, 8, 9)})
    starts = [o.start for o in sql_resolver.list_occurrences(schedule.id, utc(2025, 1, 7), utc(2025, 1, 10))]
    assert starts == [utc(2025, 1, 7, 9), utc(2025, 1, 9, 9)]


def test_set_window_enabled_rechecks_overlap(sql_resolver, content):
    schedule = sql_resolver.create_schedule("Office", "acct-1")
    active = sql_resolver.create_window(schedule.id, content["playlist"], utc(2025, 1, 6, 9), utc(2025, 1, 6, 12))
    parked = sql_resolver.create_window(
        schedule.id, content["other_playlist"], utc(2025, 1, 6, 10), utc(2025, 1, 6, 11), enabled=False
    )
    with pytest.raises(ConflictError):
        sql_resolver.set_window_enabled(parked.id, True)
    assert sql_resolver.get_window(parked.id).enabled is False

    sql_resolver.set_window_enabled(active.id, False)
    assert sql_resolver.set_window_enabled(parked.id, True).enabled is True
    assert [w.id for w in sql_resolver.list_windows(schedule.id, include_disabled=False)] == [parked.id]


def test_set_window_enabled_unknown_window(store):
    with pytest.raises(NotFoundError):
        store.set_window_enabled("missing", True, None)


def test_delete_schedule_cascades(sql_resolver, content, db_session):
    schedule = sql_resolver.create_schedule("Office", "acct-1")
    sql_resolver.bind_screen(schedule.id, content["screen"])
    window = sql_resolver.create_window(
        schedule.id,
        content["playlist"],
        utc(2025, 1, 6, 9),
        utc(2025, 1, 6, 10),
        recurrence="daily",
        recur_until=utc(2025, 1, 31),
    )
    sql_resolver.delete_window(window.id, "one", utc(2025, 1, 7, 9))

    sql_resolver.delete_schedule(schedule.id)

    assert db_session.query(ScheduleWindow).count() == 0
    assert db_session.query(ScheduleWindowException).count() == 0
    assert db_session.query(ScheduleScreen).count() == 0
    assert sql_resolver.store.get_schedule(schedule.id) is None


def test_resolution_through_the_database(sql_resolver, content):
    low = sql_resolver.create_schedule("Low", "acct-1")
    high = sql_resolver.create_schedule("High", "acct-1")
    for schedule in (low, high):
        sql_resolver.bind_screen(schedule.id, content["screen"])
    sql_resolver.create_window(
        low.id,
        content["playlist"],
        utc(2025, 1, 6, 9),
        utc(2025, 1, 6, 17),
        recurrence="weekly",
        recur_until=utc(2025, 12, 29),
        priority=5,
    )
    sql_resolver.create_window(
        high.id, content["other_playlist"], utc(2025, 3, 3, 12), utc(2025, 3, 3, 13), priority=10
    )

    assert sql_resolver.resolve_playlist_for_screen_at(content["screen"], utc(2025, 3, 3, 12, 30)) == content["other_playlist"]
    assert sql_resolver.resolve_playlist_for_screen_at(content["screen"], utc(2025, 3, 3, 14)) == content["playlist"]
    assert sql_resolver.resolve_playlist_for_screen_at(content["screen"], utc(2025, 3, 4, 14)) is None


def test_concurrent_sessions_create_only_one_overlapping_window(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'signage.db'}")
    init_db(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    setup = factory()
    try:
        playlist = Playlist(name="Morning", owner_account="acct-1")
        setup.add(playlist)
        setup.commit()
        playlist_id = playlist.id
        schedule_id = SqlScheduleStore(setup).create_schedule("Office", "acct-1").id
    finally:
        setup.close()

    locks = ScheduleLocks()
    barrier = threading.Barrier(8)
    created, conflicts, errors = [], [], []

    def create():
        db = factory()
        try:
            resolver = ScheduleResolver(SqlScheduleStore(db, locks=locks))
            barrier.wait()
            created.append(resolver.create_window(schedule_id, playlist_id, utc(2025, 1, 6, 9), utc(2025, 1, 6, 10)))
        except ConflictError as exc:
            conflicts.append(exc.conflicting_window_id)
        except Exception as exc:
            errors.append(exc)
        finally:
            db.close()

    threads = [threading.Thread(target=create) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    try:
        assert errors == []
        assert len(created) == 1
        assert conflicts == [created[0].id] * 7
        check = factory()
        try:
            assert check.query(ScheduleWindow).count() == 1
        finally:
            check.close()
    finally:
        engine.dispose()
