"""
Announcement Model - director notices shown on the member dashboard
"""
from sqlalchemy import Boolean, Column, Integer, String, DateTime, ForeignKey, Text

from app.core.time_utils import utcnow
from app.db.database import Base


class Announcement(Base):
    __tablename__ = "announcements"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    # only active announcements reach the dashboard
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    created_by_id = Column(Integer, ForeignKey("members.id"), nullable=True)
    created_by_name = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
