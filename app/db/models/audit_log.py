"""
Audit Log Model - append-only record of director decisions
"""
import enum
from sqlalchemy import Column, Integer, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.types import JSON

from app.core.time_utils import utcnow
from app.db.database import Base


class AuditAction(str, enum.Enum):
    NDR_ACTIVATED = "ndr_activated"
    NDR_FORCE_COMPLETED = "ndr_force_completed"
    NDR_ENDED = "ndr_ended"
    NDR_ARCHIVED = "ndr_archived"
    NDR_REACTIVATED = "ndr_reactivated"
    BLACKLIST_APPROVED = "blacklist_approved"
    BLACKLIST_REMOVED = "blacklist_removed"
    MEMBER_APPROVED = "member_approved"
    MEMBER_REJECTED = "member_rejected"


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor_member_id = Column(Integer, ForeignKey("members.id"), nullable=True, index=True)
    action = Column(
        SQLEnum(
            AuditAction,
            name="audit_action",
            native_enum=False,
            values_callable=lambda x: [e.value for e in x]
        ),
        nullable=False,
        index=True
    )
    ndr_id = Column(Integer, nullable=True, index=True)
    # what changed, e.g. {"from": "pending", "to": "active"}
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)
