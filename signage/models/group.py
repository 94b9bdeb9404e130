import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint

from signage.db import Base


class ScreenGroup(Base):
    __tablename__ = "screen_group"
    __table_args__ = (UniqueConstraint("owner_account", "name", name="uq_screen_group_owner_name"),)
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    owner_account = Column(String, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ScreenGroupMember(Base):
    __tablename__ = "screen_group_member"
    group_id = Column(String(36), ForeignKey("screen_group.id"), primary_key=True)
    screen_id = Column(String(36), ForeignKey("screen.id"), primary_key=True, index=True)
