"""
Ride Model - phone-room ride requests
"""
import enum
from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum, ForeignKey, Float, Text

from app.core.time_utils import utcnow
from app.db.database import Base


class RideStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    TERMINATED = "terminated"


class Ride(Base):
    __tablename__ = "rides"

    id = Column(Integer, primary_key=True, index=True)
    ndr_id = Column(Integer, ForeignKey("ndrs.id"), nullable=False, index=True)

    patron_name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=False)

    pickup = Column(String(500), nullable=False)
    pickup_lat = Column(Float, nullable=True)
    pickup_lng = Column(Float, nullable=True)
    dropoff = Column(String(500), nullable=False)
    dropoff_lat = Column(Float, nullable=True)
    dropoff_lng = Column(Float, nullable=True)

    # missing counts as one rider
    riders = Column(Integer, nullable=True, default=1)

    status = Column(
        SQLEnum(
            RideStatus,
            name="ride_status",
            native_enum=False,
            values_callable=lambda x: [e.value for e in x]
        ),
        default=RideStatus.PENDING,
        nullable=False,
        index=True
    )
    car_number = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    cancellation_reason = Column(String(500), nullable=True)
    termination_reason = Column(String(500), nullable=True)

    created_by_id = Column(Integer, ForeignKey("members.id"), nullable=True)
    requested_at = Column(DateTime, default=utcnow, nullable=False)
    assigned_at = Column(DateTime, nullable=True)
    picked_up_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
