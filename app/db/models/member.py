"""
Member Model - volunteers, deputies and directors
"""
import enum
from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum, Boolean

from app.core.time_utils import utcnow
from app.db.database import Base


class MemberRole(str, enum.Enum):
    MEMBER = "member"
    DEPUTY = "deputy"
    DIRECTOR = "director"


class ApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Member(Base):
    """A registered volunteer"""

    __tablename__ = "members"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(20), nullable=True)
    # free text; classified male/female by the assignment editor
    gender = Column(String(30), nullable=True)
    role = Column(
        SQLEnum(
            MemberRole,
            name="member_role",
            native_enum=False,
            values_callable=lambda x: [e.value for e in x]
        ),
        default=MemberRole.MEMBER,
        nullable=False
    )
    approval_status = Column(
        SQLEnum(
            ApprovalStatus,
            name="member_approval_status",
            native_enum=False,
            values_callable=lambda x: [e.value for e in x]
        ),
        default=ApprovalStatus.PENDING,
        nullable=False,
        index=True
    )
    is_active = Column(Boolean, default=True)
    approved_by_id = Column(Integer, nullable=True)
    approved_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def is_approved(self) -> bool:
        return self.approval_status == ApprovalStatus.APPROVED and bool(self.is_active)

    @property
    def is_director(self) -> bool:
        return self.role == MemberRole.DIRECTOR

    def __repr__(self) -> str:
        return f"<Member {self.id} {self.role.value if self.role else None}>"
