"""
Car Location Model - last reported GPS fix of each car during an NDR
"""
from sqlalchemy import Column, Integer, DateTime, Float, ForeignKey, UniqueConstraint

from app.core.time_utils import utcnow
from app.db.database import Base


class CarLocation(Base):
    __tablename__ = "car_locations"

    id = Column(Integer, primary_key=True, index=True)
    ndr_id = Column(Integer, ForeignKey("ndrs.id"), nullable=False, index=True)
    car_number = Column(Integer, nullable=False)

    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    # meters, as reported by the device
    accuracy = Column(Float, nullable=True)

    reported_by_id = Column(Integer, ForeignKey("members.id"), nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # one row per car, overwritten on each report
    __table_args__ = (
        UniqueConstraint("ndr_id", "car_number", name="uq_car_locations_ndr_car"),
    )
