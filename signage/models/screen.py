import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String

from signage.db import Base


class Screen(Base):
    __tablename__ = "screen"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    owner_account = Column(String, nullable=False, index=True)
    location = Column(String, nullable=True)
    device_id = Column(String, nullable=True, unique=True)
    active_playlist_id = Column(String(36), ForeignKey("playlist.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
