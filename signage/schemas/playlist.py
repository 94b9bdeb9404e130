from datetime import datetime

from pydantic import BaseModel


class PlaylistItemOut(BaseModel):
    id: str
    playlist_id: str
    media_id: str
    order: int
    duration_sec: int | None = None
    enabled: bool

    class Config:
        from_attributes = True


class PlaylistOut(BaseModel):
    id: str
    name: str
    owner_account: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True
