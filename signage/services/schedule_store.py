import logging
from collections import defaultdict
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from signage.errors import NotFoundError
from signage.models.playlist import Playlist
from signage.models.schedule import Schedule, ScheduleScreen, ScheduleWindow, ScheduleWindowException
from signage.models.screen import Screen
from signage.scheduling.recurrence import ensure_utc, parse_recurrence
from signage.scheduling.store import OverlapGuard, ScheduleLocks
from signage.scheduling.types import ScheduleInfo, Window, WindowDraft

logger = logging.getLogger(__name__)


def to_db_time(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return ensure_utc(value).replace(tzinfo=None)


def from_db_time(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return ensure_utc(value)


def _schedule_info(row: Schedule) -> ScheduleInfo:
    return ScheduleInfo(
        id=str(row.id),
        name=row.name,
        owner_account=row.owner_account,
        created_at=from_db_time(row.created_at),
        updated_at=from_db_time(row.updated_at),
    )


def _window(row: ScheduleWindow, exceptions: frozenset[datetime]) -> Window:
    return Window(
        id=str(row.id),
        schedule_id=str(row.schedule_id),
        playlist_id=str(row.playlist_id),
        start=from_db_time(row.start_ts),
        end=from_db_time(row.end_ts),
        recurrence=parse_recurrence(row.recurrence),
        recur_until=from_db_time(row.recur_until),
        priority=row.priority or 0,
        enabled=bool(row.enabled),
        exceptions=exceptions,
    )


class SqlScheduleStore:
    """SchedulingStore on top of a SQLAlchemy session.

    Window writes hold the process-local lock for the schedule and a
    ``SELECT ... FOR UPDATE`` on the schedule row for the whole
    check-then-insert, so two creators on one schedule never both pass the
    overlap check. Pass the same ``ScheduleLocks`` to every store in a process.
    """

    def __init__(self, db: Session, locks: ScheduleLocks | None = None) -> None:
        self.db = db
        self.locks = locks or ScheduleLocks()

    # -- ownership lookups ---------------------------------------------------

    def get_playlist_owner(self, playlist_id: str) -> str | None:
        return self.db.query(Playlist.owner_account).filter(Playlist.id == playlist_id).scalar()

    def get_screen_owner(self, screen_id: str) -> str | None:
        return self.db.query(Screen.owner_account).filter(Screen.id == screen_id).scalar()

    # -- schedules -----------------------------------------------------------

    def create_schedule(self, name: str, owner_account: str) -> ScheduleInfo:
        schedule = Schedule(name=name, owner_account=owner_account)
        self.db.add(schedule)
        self.db.commit()
        self.db.refresh(schedule)
        return _schedule_info(schedule)

    def delete_schedule(self, schedule_id: str) -> None:
        with self.locks.hold(schedule_id):
            try:
                window_ids = select(ScheduleWindow.id).where(ScheduleWindow.schedule_id == schedule_id)
                self.db.query(ScheduleWindowException).filter(
                    ScheduleWindowException.window_id.in_(window_ids)
                ).delete(synchronize_session=False)
                self.db.query(ScheduleWindow).filter(ScheduleWindow.schedule_id == schedule_id).delete(
                    synchronize_session=False
                )
                self.db.query(ScheduleScreen).filter(ScheduleScreen.schedule_id == schedule_id).delete(
                    synchronize_session=False
                )
                self.db.query(Schedule).filter(Schedule.id == schedule_id).delete(synchronize_session=False)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
        self.locks.forget(schedule_id)

    def list_schedules_for_owner(self, owner_account: str) -> list[ScheduleInfo]:
        rows = (
            self.db.query(Schedule)
            .filter(Schedule.owner_account == owner_account)
            .order_by(Schedule.created_at.asc(), Schedule.id.asc())
            .all()
        )
        return [_schedule_info(row) for row in rows]

    def get_schedule(self, schedule_id: str) -> ScheduleInfo | None:
        row = self.db.get(Schedule, schedule_id)
        return _schedule_info(row) if row else None

    def bind_screen(self, schedule_id: str, screen_id: str) -> None:
        if self.db.get(ScheduleScreen, (schedule_id, screen_id)) is not None:
            return
        self.db.add(ScheduleScreen(schedule_id=schedule_id, screen_id=screen_id))
        try:
            self.db.commit()
        except IntegrityError:
            # A concurrent bind won the insert; the row exists either way.
            self.db.rollback()
            if self.db.get(ScheduleScreen, (schedule_id, screen_id)) is None:
                raise

    def unbind_screen(self, schedule_id: str, screen_id: str) -> None:
        self.db.query(ScheduleScreen).filter(
            ScheduleScreen.schedule_id == schedule_id,
            ScheduleScreen.screen_id == screen_id,
        ).delete(synchronize_session=False)
        self.db.commit()

    def list_schedules_for_screen(self, screen_id: str) -> list[ScheduleInfo]:
        rows = (
            self.db.query(Schedule)
            .join(ScheduleScreen, ScheduleScreen.schedule_id == Schedule.id)
            .filter(ScheduleScreen.screen_id == screen_id)
            .order_by(Schedule.id.asc())
            .all()
        )
        return [_schedule_info(row) for row in rows]

    def list_screens_for_schedule(self, schedule_id: str) -> list[str]:
        rows = (
            self.db.query(ScheduleScreen.screen_id)
            .filter(ScheduleScreen.schedule_id == schedule_id)
            .order_by(ScheduleScreen.screen_id.asc())
            .all()
        )
        return [str(row[0]) for row in rows]

    # -- windows -------------------------------------------------------------

    def _lock_schedule_row(self, schedule_id: str) -> Schedule:
        schedule = (
            self.db.query(Schedule)
            .filter(Schedule.id == schedule_id)
            .with_for_update()
            .one_or_none()
        )
        if schedule is None:
            raise NotFoundError("schedule", schedule_id)
        return schedule

    def create_window(self, draft: WindowDraft, guard: OverlapGuard) -> Window:
        with self.locks.hold(draft.schedule_id):
            try:
                self._lock_schedule_row(draft.schedule_id)
                if draft.enabled:
                    guard(self.list_enabled_windows(draft.schedule_id))
                row = ScheduleWindow(
                    schedule_id=draft.schedule_id,
                    playlist_id=draft.playlist_id,
                    start_ts=to_db_time(draft.start),
                    end_ts=to_db_time(draft.end),
                    recurrence=draft.recurrence.value,
                    recur_until=to_db_time(draft.recur_until),
                    priority=draft.priority,
                    enabled=draft.enabled,
                )
                self.db.add(row)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
        self.db.refresh(row)
        return _window(row, frozenset())

    def set_window_enabled(self, window_id: str, enabled: bool, guard: OverlapGuard | None) -> Window:
        row = self.db.get(ScheduleWindow, window_id)
        if row is None:
            raise NotFoundError("window", window_id)
        schedule_id = str(row.schedule_id)
        with self.locks.hold(schedule_id):
            try:
                self._lock_schedule_row(schedule_id)
                if enabled and guard is not None:
                    guard(self.list_enabled_windows(schedule_id))
                row.enabled = enabled
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
        return self.get_window(window_id)

    def delete_window(self, window_id: str) -> None:
        self.db.query(ScheduleWindowException).filter(
            ScheduleWindowException.window_id == window_id
        ).delete(synchronize_session=False)
        self.db.query(ScheduleWindow).filter(ScheduleWindow.id == window_id).delete(synchronize_session=False)
        self.db.commit()

    def add_occurrence_exception(self, window_id: str, occurrence_start: datetime) -> None:
        key = (window_id, to_db_time(occurrence_start))
        if self.db.get(ScheduleWindowException, key) is not None:
            return
        self.db.add(ScheduleWindowException(window_id=key[0], occur_start=key[1]))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if self.db.get(ScheduleWindowException, key) is None:
                raise

    def get_window(self, window_id: str) -> Window | None:
        row = self.db.get(ScheduleWindow, window_id)
        if row is None:
            return None
        return _window(row, self._exceptions_for([str(row.id)]).get(str(row.id), frozenset()))

    def list_enabled_windows(self, schedule_id: str) -> list[Window]:
        return self._windows(schedule_id, enabled_only=True)

    def list_windows(self, schedule_id: str) -> list[Window]:
        return self._windows(schedule_id, enabled_only=False)

    def get_schedule_owning_window(self, window_id: str) -> ScheduleInfo | None:
        row = (
            self.db.query(Schedule)
            .join(ScheduleWindow, ScheduleWindow.schedule_id == Schedule.id)
            .filter(ScheduleWindow.id == window_id)
            .one_or_none()
        )
        return _schedule_info(row) if row else None

    def _windows(self, schedule_id: str, enabled_only: bool) -> list[Window]:
        query = self.db.query(ScheduleWindow).filter(ScheduleWindow.schedule_id == schedule_id)
        if enabled_only:
            query = query.filter(ScheduleWindow.enabled.is_(True))
        rows = query.order_by(ScheduleWindow.start_ts.asc(), ScheduleWindow.id.asc()).all()
        exceptions = self._exceptions_for([str(row.id) for row in rows])
        return [_window(row, exceptions.get(str(row.id), frozenset())) for row in rows]

    def _exceptions_for(self, window_ids: list[str]) -> dict[str, frozenset[datetime]]:
        if not window_ids:
            return {}
        grouped: dict[str, set[datetime]] = defaultdict(set)
        rows = (
            self.db.query(ScheduleWindowException.window_id, ScheduleWindowException.occur_start)
            .filter(ScheduleWindowException.window_id.in_(window_ids))
            .all()
        )
        for window_id, occur_start in rows:
            grouped[str(window_id)].add(from_db_time(occur_start))
        return {window_id: frozenset(starts) for window_id, starts in grouped.items()}
