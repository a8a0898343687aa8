"""
Database Models
"""
from app.db.models.member import Member, MemberRole, ApprovalStatus
from app.db.models.event import Event, EventType
from app.db.models.ndr import NDR, NDRStatus
from app.db.models.ride import Ride, RideStatus
from app.db.models.blacklist import (
    AddressBlacklist,
    PhoneBlacklist,
    BlacklistKind,
    BlacklistScope,
    BlacklistStatus,
)
from app.db.models.audit_log import AuditLog, AuditAction
from app.db.models.car_location import CarLocation
from app.db.models.couch_message import CouchMessage, MessageSender
from app.db.models.announcement import Announcement

__all__ = [
    "Member",
    "MemberRole",
    "ApprovalStatus",
    "Event",
    "EventType",
    "NDR",
    "NDRStatus",
    "Ride",
    "RideStatus",
    "AddressBlacklist",
    "PhoneBlacklist",
    "BlacklistKind",
    "BlacklistScope",
    "BlacklistStatus",
    "AuditLog",
    "AuditAction",
    "CarLocation",
    "CouchMessage",
    "MessageSender",
    "Announcement",
]
