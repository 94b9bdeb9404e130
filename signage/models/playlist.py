import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String

from signage.db import Base


class Playlist(Base):
    __tablename__ = "playlist"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    owner_account = Column(String, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class PlaylistItem(Base):
    __tablename__ = "playlist_item"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    playlist_id = Column(String(36), ForeignKey("playlist.id"), nullable=False)
    media_id = Column(String(36), ForeignKey("media.id"), nullable=False)
    order = Column(Integer, nullable=False)
    duration_sec = Column(Integer)
    enabled = Column(Boolean, default=True)
