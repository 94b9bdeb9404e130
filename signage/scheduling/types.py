from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum


class Recurrence(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class DeleteScope(str, Enum):
    ALL = "all"
    ONE = "one"


@dataclass(frozen=True)
class ScheduleInfo:
    id: str
    name: str
    owner_account: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class WindowDraft:
    """A validated window that has not been stored yet."""

    schedule_id: str
    playlist_id: str
    start: datetime
    end: datetime
    recurrence: Recurrence = Recurrence.NONE
    recur_until: datetime | None = None
    priority: int = 0
    enabled: bool = True

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


@dataclass(frozen=True)
class Window:
    id: str
    schedule_id: str
    playlist_id: str
    start: datetime
    end: datetime
    recurrence: Recurrence = Recurrence.NONE
    recur_until: datetime | None = None
    priority: int = 0
    enabled: bool = True
    exceptions: frozenset[datetime] = field(default_factory=frozenset)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def recurring(self) -> bool:
        return self.recurrence != Recurrence.NONE

    @classmethod
    def from_draft(cls, window_id: str, draft: WindowDraft) -> "Window":
        return cls(
            id=window_id,
            schedule_id=draft.schedule_id,
            playlist_id=draft.playlist_id,
            start=draft.start,
            end=draft.end,
            recurrence=draft.recurrence,
            recur_until=draft.recur_until,
            priority=draft.priority,
            enabled=draft.enabled,
        )


@dataclass(frozen=True)
class Occurrence:
    window_id: str
    start: datetime
    end: datetime
    playlist_id: str
    priority: int
    recurring: bool

    def covers(self, instant: datetime) -> bool:
        return self.start <= instant < self.end
