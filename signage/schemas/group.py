from pydantic import BaseModel, Field
from datetime import datetime

class ScreenGroupIn(BaseModel):
    name: str = Field(..., min_length=1)
    description: str | None = None

class ScreenGroupMemberIn(BaseModel):
    screen_id: str

class ScreenGroupOut(BaseModel):
    id: str
    name: str
    description: str | None = None
    owner_account: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True
