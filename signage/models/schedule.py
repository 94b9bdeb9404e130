import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String

from signage.db import Base


class Schedule(Base):
    __tablename__ = "schedule"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    owner_account = Column(String, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ScheduleScreen(Base):
    __tablename__ = "schedule_screen"
    schedule_id = Column(String(36), ForeignKey("schedule.id"), primary_key=True)
    screen_id = Column(String(36), ForeignKey("screen.id"), primary_key=True, index=True)


class ScheduleWindow(Base):
    __tablename__ = "schedule_window"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    schedule_id = Column(String(36), ForeignKey("schedule.id"), nullable=False, index=True)
    playlist_id = Column(String(36), ForeignKey("playlist.id"), nullable=False)
    start_ts = Column(DateTime, nullable=False)  # naive UTC, inclusive
    end_ts = Column(DateTime, nullable=False)  # naive UTC, exclusive
    recurrence = Column(String(16), nullable=False, default="none")
    recur_until = Column(DateTime, nullable=True)
    priority = Column(Integer, nullable=False, default=0)
    enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ScheduleWindowException(Base):
    __tablename__ = "schedule_window_exception"
    window_id = Column(String(36), ForeignKey("schedule_window.id"), primary_key=True)
    occur_start = Column(DateTime, primary_key=True)
