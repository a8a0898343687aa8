"""
Blacklist Models - blocked addresses and phone numbers

Temporary entries belong to one NDR and are deleted when it ends.
"""
import enum
from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum, ForeignKey
from sqlalchemy.orm import declared_attr

from app.core.time_utils import utcnow
from app.db.database import Base


class BlacklistKind(str, enum.Enum):
    ADDRESS = "address"
    PHONE = "phone"


class BlacklistStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"


class BlacklistScope(str, enum.Enum):
    PERMANENT = "permanent"
    TEMPORARY = "temporary"


class BlacklistEntryMixin:
    id = Column(Integer, primary_key=True, index=True)
    value = Column(String(500), nullable=False)
    # normalized form used for lookups (digits for phones, folded text for addresses)
    lookup_key = Column(String(500), nullable=False, index=True)
    reason = Column(String(500), nullable=True)
    status = Column(
        SQLEnum(
            BlacklistStatus,
            name="blacklist_status",
            native_enum=False,
            values_callable=lambda x: [e.value for e in x]
        ),
        default=BlacklistStatus.PENDING,
        nullable=False
    )
    scope = Column(
        SQLEnum(
            BlacklistScope,
            name="blacklist_scope",
            native_enum=False,
            values_callable=lambda x: [e.value for e in x]
        ),
        default=BlacklistScope.PERMANENT,
        nullable=False
    )
    requested_at = Column(DateTime, default=utcnow)
    approved_at = Column(DateTime, nullable=True)

    # foreign keys on a mixin have to be declared per table
    @declared_attr
    def ndr_id(cls):
        return Column(Integer, ForeignKey("ndrs.id"), nullable=True, index=True)

    @declared_attr
    def requested_by_id(cls):
        return Column(Integer, ForeignKey("members.id"), nullable=True)

    @declared_attr
    def approved_by_id(cls):
        return Column(Integer, ForeignKey("members.id"), nullable=True)


class AddressBlacklist(BlacklistEntryMixin, Base):
    __tablename__ = "address_blacklist"


class PhoneBlacklist(BlacklistEntryMixin, Base):
    __tablename__ = "phone_blacklist"


BLACKLIST_MODELS = {
    BlacklistKind.ADDRESS: AddressBlacklist,
    BlacklistKind.PHONE: PhoneBlacklist,
}
