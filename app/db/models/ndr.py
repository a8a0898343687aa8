"""
NDR Model - Night Duty Runs

At most one row may have status 'active'; the partial unique index below
enforces it in the database and the ``version`` column guards every ORM
update against lost writes.
"""
import enum
from sqlalchemy import (
    Column, Integer, String, DateTime, Enum as SQLEnum, ForeignKey, Index, Text, text
)
from sqlalchemy.types import JSON

from app.core.time_utils import utcnow
from app.db.database import Base


class NDRStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


def default_assignments() -> dict:
    return {
        "cars": {},
        "couch": [],
        "phones": [],
        "doc": None,
        "duc": None,
        "don": None,
        "northgate": [],
    }


def default_notes() -> dict:
    return {
        "leadership": {"don": "", "doc": "", "duc": "", "execs": "", "directors": ""},
        "car_roles": {},
        "couch_phone_roles": {"couch": "", "phones": ""},
        "updates": [],
        "summary": "",
    }


class NDR(Base):
    """A single operating night"""

    __tablename__ = "ndrs"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=True, index=True)

    event_name = Column(String(200), nullable=False)
    event_date = Column(DateTime, nullable=False)
    location = Column(String(300), nullable=True)

    status = Column(
        SQLEnum(
            NDRStatus,
            name="ndr_status",
            native_enum=False,
            length=20,
            values_callable=lambda x: [e.value for e in x]
        ),
        default=NDRStatus.PENDING,
        nullable=False,
        index=True
    )

    available_cars = Column(Integer, default=0, nullable=False)
    signed_up_members = Column(JSON, default=list, nullable=False)

    # editable working state, see the assignment editor
    assignments = Column(JSON, default=default_assignments, nullable=False)
    cars = Column(JSON, default=list, nullable=False)
    notes = Column(JSON, default=default_notes, nullable=False)

    # final ride tallies written when the run ends
    completed_rides = Column(Integer, default=0, nullable=False)
    completed_riders = Column(Integer, default=0, nullable=False)
    cancelled_rides = Column(Integer, default=0, nullable=False)
    cancelled_riders = Column(Integer, default=0, nullable=False)
    terminated_rides = Column(Integer, default=0, nullable=False)
    terminated_riders = Column(Integer, default=0, nullable=False)

    activated_at = Column(DateTime, nullable=True)
    activated_by_id = Column(Integer, ForeignKey("members.id"), nullable=True)
    ended_at = Column(DateTime, nullable=True)
    ended_by_id = Column(Integer, ForeignKey("members.id"), nullable=True)
    archived_at = Column(DateTime, nullable=True)
    archived_by_id = Column(Integer, ForeignKey("members.id"), nullable=True)
    archived_summary = Column(Text, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index(
            "uq_ndrs_single_active",
            "status",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status == NDRStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<NDR {self.id} {self.status.value if self.status else None}>"
