from pydantic import BaseModel, Field
from datetime import datetime

class ScreenIn(BaseModel):
    name: str = Field(..., min_length=1)
    location: str = ""
    device_id: str | None = None
    active_playlist_id: str | None = None

class ScreenOut(BaseModel):
    id: str
    name: str
    owner_account: str
    location: str | None = None
    device_id: str | None = None
    active_playlist_id: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True
