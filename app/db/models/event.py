"""
Event Model - calendar entries; operating nights spawn an NDR
"""
import enum
from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum, ForeignKey, Text
from sqlalchemy.types import JSON

from app.core.time_utils import utcnow
from app.db.database import Base


class EventType(str, enum.Enum):
    OPERATING_NIGHT = "operating_night"
    MEETING = "meeting"
    SOCIAL = "social"
    OTHER = "other"


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    event_type = Column(
        SQLEnum(
            EventType,
            name="event_type",
            native_enum=False,
            values_callable=lambda x: [e.value for e in x]
        ),
        default=EventType.OTHER,
        nullable=False
    )
    starts_at = Column(DateTime, nullable=False, index=True)
    ends_at = Column(DateTime, nullable=True)
    location = Column(String(300), nullable=True)
    notes = Column(Text, nullable=True)
    signed_up_members = Column(JSON, default=list, nullable=False)

    # set for operating nights; no FK to avoid a cycle with ndrs.event_id
    ndr_id = Column(Integer, nullable=True, index=True)

    created_by_id = Column(Integer, ForeignKey("members.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
