"""
Couch Message Model - chat between the dispatch couch and a car's navigator
"""
import enum
from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum, ForeignKey, Text

from app.core.time_utils import utcnow
from app.db.database import Base


class MessageSender(str, enum.Enum):
    COUCH = "couch"
    NAVIGATOR = "navigator"


class CouchMessage(Base):
    __tablename__ = "couch_messages"

    id = Column(Integer, primary_key=True, index=True)
    ndr_id = Column(Integer, ForeignKey("ndrs.id"), nullable=False, index=True)
    car_number = Column(Integer, nullable=False, index=True)

    sender = Column(
        SQLEnum(
            MessageSender,
            name="message_sender",
            native_enum=False,
            values_callable=lambda x: [e.value for e in x]
        ),
        nullable=False
    )
    # null for messages the system posts, e.g. ride assignment notices
    sender_id = Column(Integer, ForeignKey("members.id"), nullable=True)
    sender_name = Column(String(100), nullable=False)
    message = Column(Text, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
