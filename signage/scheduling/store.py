"""
Storage interfaces the scheduling core depends on, plus an in-memory
implementation used by tests and by anything that wants the core without a
database.
"""
import threading
import uuid
from abc import abstractmethod
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Iterator, Protocol

from signage.errors import NotFoundError
from signage.scheduling.recurrence import ensure_utc
from signage.scheduling.types import ScheduleInfo, Window, WindowDraft

# Called with the enabled windows of a schedule while its creation lock is held;
# raises ConflictError to veto the write.
OverlapGuard = Callable[[list[Window]], None]


class ScheduleStore(Protocol):
    @abstractmethod
    def create_schedule(self, name: str, owner_account: str) -> ScheduleInfo: ...

    @abstractmethod
    def delete_schedule(self, schedule_id: str) -> None:
        """Delete a schedule with its windows, their exceptions and its screen bindings."""
        ...

    @abstractmethod
    def list_schedules_for_owner(self, owner_account: str) -> list[ScheduleInfo]: ...

    @abstractmethod
    def get_schedule(self, schedule_id: str) -> ScheduleInfo | None: ...

    @abstractmethod
    def bind_screen(self, schedule_id: str, screen_id: str) -> None:
        """Idempotent: binding an already bound screen is a no-op."""
        ...

    @abstractmethod
    def unbind_screen(self, schedule_id: str, screen_id: str) -> None: ...

    @abstractmethod
    def list_schedules_for_screen(self, screen_id: str) -> list[ScheduleInfo]: ...

    @abstractmethod
    def list_screens_for_schedule(self, schedule_id: str) -> list[str]: ...


class WindowStore(Protocol):
    @abstractmethod
    def create_window(self, draft: WindowDraft, guard: OverlapGuard) -> Window:
        """Insert a window after ``guard`` accepted the schedule's enabled windows.

        The guard call and the insert must be atomic with respect to other
        window writes on the same schedule.
        """
        ...

    @abstractmethod
    def set_window_enabled(self, window_id: str, enabled: bool, guard: OverlapGuard | None) -> Window: ...

    @abstractmethod
    def delete_window(self, window_id: str) -> None: ...

    @abstractmethod
    def add_occurrence_exception(self, window_id: str, occurrence_start: datetime) -> None:
        """Idempotent: recording the same exception twice is a no-op."""
        ...

    @abstractmethod
    def get_window(self, window_id: str) -> Window | None: ...

    @abstractmethod
    def list_enabled_windows(self, schedule_id: str) -> list[Window]: ...

    @abstractmethod
    def list_windows(self, schedule_id: str) -> list[Window]: ...

    @abstractmethod
    def get_schedule_owning_window(self, window_id: str) -> ScheduleInfo | None: ...


class OwnershipStore(Protocol):
    @abstractmethod
    def get_playlist_owner(self, playlist_id: str) -> str | None: ...

    @abstractmethod
    def get_screen_owner(self, screen_id: str) -> str | None: ...


class SchedulingStore(ScheduleStore, WindowStore, OwnershipStore, Protocol):
    pass


class ScheduleLocks:
    """Process-local mutexes keyed by schedule id."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, schedule_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(schedule_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[schedule_id] = lock
            return lock

    @contextmanager
    def hold(self, schedule_id: str) -> Iterator[None]:
        lock = self._lock_for(schedule_id)
        with lock:
            yield

    def forget(self, schedule_id: str) -> None:
        with self._guard:
            self._locks.pop(schedule_id, None)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryScheduleStore:
    """Dict-backed SchedulingStore. Thread safe."""

    def __init__(self, locks: ScheduleLocks | None = None) -> None:
        self.locks = locks or ScheduleLocks()
        self._data_lock = threading.RLock()
        self._schedules: dict[str, ScheduleInfo] = {}
        self._bindings: set[tuple[str, str]] = set()
        self._windows: dict[str, Window] = {}
        self._playlist_owners: dict[str, str] = {}
        self._screen_owners: dict[str, str] = {}

    def register_playlist(self, playlist_id: str, owner_account: str) -> None:
        with self._data_lock:
            self._playlist_owners[playlist_id] = owner_account

    def register_screen(self, screen_id: str, owner_account: str) -> None:
        with self._data_lock:
            self._screen_owners[screen_id] = owner_account

    def get_playlist_owner(self, playlist_id: str) -> str | None:
        return self._playlist_owners.get(playlist_id)

    def get_screen_owner(self, screen_id: str) -> str | None:
        return self._screen_owners.get(screen_id)

    def create_schedule(self, name: str, owner_account: str) -> ScheduleInfo:
        now = _utcnow()
        schedule = ScheduleInfo(
            id=str(uuid.uuid4()),
            name=name,
            owner_account=owner_account,
            created_at=now,
            updated_at=now,
        )
        with self._data_lock:
            self._schedules[schedule.id] = schedule
        return schedule

    def delete_schedule(self, schedule_id: str) -> None:
        with self.locks.hold(schedule_id), self._data_lock:
            self._schedules.pop(schedule_id, None)
            self._bindings = {pair for pair in self._bindings if pair[0] != schedule_id}
            for window_id in [w.id for w in self._windows.values() if w.schedule_id == schedule_id]:
                del self._windows[window_id]
        self.locks.forget(schedule_id)

    def list_schedules_for_owner(self, owner_account: str) -> list[ScheduleInfo]:
        with self._data_lock:
            found = [s for s in self._schedules.values() if s.owner_account == owner_account]
        return sorted(found, key=lambda s: (s.created_at, s.id))

    def get_schedule(self, schedule_id: str) -> ScheduleInfo | None:
        return self._schedules.get(schedule_id)

    def bind_screen(self, schedule_id: str, screen_id: str) -> None:
        with self._data_lock:
            self._bindings.add((schedule_id, screen_id))

    def unbind_screen(self, schedule_id: str, screen_id: str) -> None:
        with self._data_lock:
            self._bindings.discard((schedule_id, screen_id))

    def list_schedules_for_screen(self, screen_id: str) -> list[ScheduleInfo]:
        with self._data_lock:
            ids = sorted(schedule_id for schedule_id, bound in self._bindings if bound == screen_id)
            return [self._schedules[i] for i in ids if i in self._schedules]

    def list_screens_for_schedule(self, schedule_id: str) -> list[str]:
        with self._data_lock:
            return sorted(screen_id for bound, screen_id in self._bindings if bound == schedule_id)

    def create_window(self, draft: WindowDraft, guard: OverlapGuard) -> Window:
        with self.locks.hold(draft.schedule_id):
            if draft.enabled:
                guard(self.list_enabled_windows(draft.schedule_id))
            window = Window.from_draft(str(uuid.uuid4()), draft)
            with self._data_lock:
                self._windows[window.id] = window
            return window

    def set_window_enabled(self, window_id: str, enabled: bool, guard: OverlapGuard | None) -> Window:
        window = self._windows.get(window_id)
        if window is None:
            raise NotFoundError("window", window_id)
        with self.locks.hold(window.schedule_id):
            if enabled and guard is not None:
                guard(self.list_enabled_windows(window.schedule_id))
            with self._data_lock:
                updated = replace(self._windows[window_id], enabled=enabled)
                self._windows[window_id] = updated
            return updated

    def delete_window(self, window_id: str) -> None:
        with self._data_lock:
            self._windows.pop(window_id, None)

    def add_occurrence_exception(self, window_id: str, occurrence_start: datetime) -> None:
        with self._data_lock:
            window = self._windows.get(window_id)
            if window is None:
                return
            self._windows[window_id] = replace(
                window, exceptions=window.exceptions | {ensure_utc(occurrence_start)}
            )

    def get_window(self, window_id: str) -> Window | None:
        return self._windows.get(window_id)

    def list_enabled_windows(self, schedule_id: str) -> list[Window]:
        return [w for w in self.list_windows(schedule_id) if w.enabled]

    def list_windows(self, schedule_id: str) -> list[Window]:
        with self._data_lock:
            found = [w for w in self._windows.values() if w.schedule_id == schedule_id]
        return sorted(found, key=lambda w: (w.start, w.id))

    def get_schedule_owning_window(self, window_id: str) -> ScheduleInfo | None:
        window = self._windows.get(window_id)
        if window is None:
            return None
        return self._schedules.get(window.schedule_id)
