from datetime import datetime

from pydantic import BaseModel, Field

from signage.scheduling.types import Recurrence, Window


class ScheduleIn(BaseModel):
    name: str = Field(..., min_length=1)


class ScheduleOut(BaseModel):
    id: str
    name: str
    owner_account: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BindScreenIn(BaseModel):
    screen_id: str = Field(..., min_length=1)


class WindowIn(BaseModel):
    playlist_id: str = Field(..., min_length=1)
    start: datetime
    end: datetime
    recurrence: str = "none"
    recur_until: datetime | None = None
    priority: int = 0
    enabled: bool = True


class WindowOut(BaseModel):
    id: str
    schedule_id: str
    playlist_id: str
    start: datetime
    end: datetime
    recurrence: Recurrence
    recur_until: datetime | None = None
    priority: int
    enabled: bool
    exceptions: list[datetime] = []

    @classmethod
    def from_window(cls, window: Window) -> "WindowOut":
        return cls(
            id=window.id,
            schedule_id=window.schedule_id,
            playlist_id=window.playlist_id,
            start=window.start,
            end=window.end,
            recurrence=window.recurrence,
            recur_until=window.recur_until,
            priority=window.priority,
            enabled=window.enabled,
            exceptions=sorted(window.exceptions),
        )


class OccurrenceOut(BaseModel):
    window_id: str
    start: datetime
    end: datetime
    playlist_id: str
    priority: int
    recurring: bool

    class Config:
        from_attributes = True


class ResolvedPlaylistOut(BaseModel):
    screen_id: str
    at: datetime
    playlist_id: str | None = None
    source: str | None = None
    window_id: str | None = None
