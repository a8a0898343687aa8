"""
Shared response models for the dispatch API
"""
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel

from app.db.models.blacklist import BlacklistScope, BlacklistStatus
from app.db.models.couch_message import MessageSender
from app.db.models.event import EventType
from app.db.models.member import ApprovalStatus, MemberRole
from app.db.models.ndr import NDRStatus
from app.db.models.ride import RideStatus


class ActionResponse(BaseModel):
    success: bool
    message: str


class MemberResponse(BaseModel):
    id: int
    name: str
    email: str
    phone: Optional[str]
    gender: Optional[str]
    role: MemberRole
    approval_status: ApprovalStatus
    is_active: bool

    model_config = {"from_attributes": True}


class EventResponse(BaseModel):
    id: int
    name: str
    event_type: EventType
    starts_at: datetime
    ends_at: Optional[datetime]
    location: Optional[str]
    notes: Optional[str]
    signed_up_members: List[int]
    ndr_id: Optional[int]

    model_config = {"from_attributes": True}


class NDRResponse(BaseModel):
    """An NDR row; the counters are final once the NDR is completed"""
    id: int
    event_id: Optional[int]
    event_name: str
    event_date: datetime
    location: Optional[str]
    status: NDRStatus
    available_cars: int
    signed_up_members: List[int]
    assignments: dict[str, Any]
    cars: List[dict[str, Any]]
    notes: dict[str, Any]
    completed_rides: int
    completed_riders: int
    cancelled_rides: int
    cancelled_riders: int
    terminated_rides: int
    terminated_riders: int
    activated_at: Optional[datetime]
    ended_at: Optional[datetime]
    archived_at: Optional[datetime]
    version: int

    model_config = {"from_attributes": True}


class NDRListItem(BaseModel):
    id: int
    event_name: str
    event_date: datetime
    status: NDRStatus
    available_cars: int
    completed_rides: int
    completed_riders: int

    model_config = {"from_attributes": True}


class RideResponse(BaseModel):
    id: int
    ndr_id: int
    patron_name: str
    phone: str
    pickup: str
    dropoff: str
    riders: Optional[int]
    status: RideStatus
    car_number: Optional[int]
    notes: Optional[str]
    cancellation_reason: Optional[str]
    termination_reason: Optional[str]
    requested_at: datetime
    assigned_at: Optional[datetime]
    picked_up_at: Optional[datetime]
    completed_at: Optional[datetime]

    model_config = {"from_attributes": True}


class BlacklistEntryResponse(BaseModel):
    id: int
    value: str
    reason: Optional[str]
    status: BlacklistStatus
    scope: BlacklistScope
    ndr_id: Optional[int]
    requested_by_id: Optional[int]
    requested_at: Optional[datetime]
    approved_at: Optional[datetime]

    model_config = {"from_attributes": True}


class VersionedRequest(BaseModel):
    """Optional optimistic-concurrency guard for lifecycle actions"""
    expected_version: Optional[int] = None


class CarPositionResponse(BaseModel):
    car_number: int
    latitude: float
    longitude: float
    accuracy: Optional[float]
    updated_at: datetime
    stale: bool

    model_config = {"from_attributes": True}


class CouchMessageResponse(BaseModel):
    id: int
    ndr_id: int
    car_number: int
    sender: MessageSender
    sender_id: Optional[int]
    sender_name: str
    message: str
    created_at: datetime

    model_config = {"from_attributes": True}


class AnnouncementResponse(BaseModel):
    id: int
    title: str
    message: str
    is_active: bool
    created_by_id: Optional[int]
    created_by_name: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]

    model_config = {"from_attributes": True}
