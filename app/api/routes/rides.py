"""
Ride API Routes - phone-room intake and dispatch against the active NDR
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.auth import get_current_member
from app.api.dependencies.ndr import require_active_ndr
from app.api.routes.schemas import RideResponse
from app.core.validation import (
    address_validator,
    name_validator,
    phone_validator,
    sanitized_text_validator,
)
from app.db.database import get_db
from app.db.models.member import Member
from app.db.models.ndr import NDR
from app.db.models.ride import Ride, RideStatus
from app.domain.services.couch_message_service import CouchMessageService
from app.domain.services.ride_service import RideService

router = APIRouter()


class RideCreate(BaseModel):
    patron_name: str
    phone: str
    pickup: str
    dropoff: str
    riders: int = Field(1, ge=1, le=20)
    pickup_lat: Optional[float] = Field(None, ge=-90, le=90)
    pickup_lng: Optional[float] = Field(None, ge=-180, le=180)
    dropoff_lat: Optional[float] = Field(None, ge=-90, le=90)
    dropoff_lng: Optional[float] = Field(None, ge=-180, le=180)
    notes: Optional[str] = None

    @field_validator("patron_name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return name_validator(v)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        return phone_validator(v)

    @field_validator("pickup", "dropoff")
    @classmethod
    def validate_address(cls, v: str) -> str:
        return address_validator(v)

    @field_validator("notes")
    @classmethod
    def sanitize_notes(cls, v: Optional[str]) -> Optional[str]:
        return sanitized_text_validator(v, max_length=500)


class CarAssignRequest(BaseModel):
    car_number: int


class ReasonRequest(BaseModel):
    reason: Optional[str] = None

    @field_validator("reason")
    @classmethod
    def sanitize_reason(cls, v: Optional[str]) -> Optional[str]:
        return sanitized_text_validator(v, max_length=500)


@router.post("", response_model=RideResponse, status_code=201)
async def request_ride(
    body: RideCreate,
    member: Member = Depends(get_current_member),
    ndr: NDR = Depends(require_active_ndr),
    db: AsyncSession = Depends(get_db),
) -> Ride:
    return await RideService(db).request_ride(
        ndr,
        patron_name=body.patron_name,
        phone=body.phone,
        pickup=body.pickup,
        dropoff=body.dropoff,
        riders=body.riders,
        pickup_lat=body.pickup_lat,
        pickup_lng=body.pickup_lng,
        dropoff_lat=body.dropoff_lat,
        dropoff_lng=body.dropoff_lng,
        notes=body.notes,
        created_by_id=member.id,
    )


@router.get("", response_model=List[RideResponse])
async def list_rides(
    status: Optional[RideStatus] = Query(None),
    member: Member = Depends(get_current_member),
    ndr: NDR = Depends(require_active_ndr),
    db: AsyncSession = Depends(get_db),
) -> List[Ride]:
    return await RideService(db).list_rides(ndr.id, status)


@router.post("/{ride_id}/assign", response_model=RideResponse)
async def assign_car(
    ride_id: int,
    body: CarAssignRequest,
    member: Member = Depends(get_current_member),
    ndr: NDR = Depends(require_active_ndr),
    db: AsyncSession = Depends(get_db),
) -> Ride:
    """Assign the ride and notify the car's navigator over the couch channel"""
    ride = await RideService(db).assign_car(ndr, ride_id, body.car_number)
    await CouchMessageService(db).post_system(
        ndr, body.car_number, f"New ride assigned: {ride.pickup} to {ride.dropoff}"
    )
    return ride


@router.post("/{ride_id}/unassign", response_model=RideResponse)
async def unassign_car(
    ride_id: int,
    member: Member = Depends(get_current_member),
    ndr: NDR = Depends(require_active_ndr),
    db: AsyncSession = Depends(get_db),
) -> Ride:
    return await RideService(db).unassign_car(ndr, ride_id)


@router.post("/{ride_id}/pickup", response_model=RideResponse)
async def mark_picked_up(
    ride_id: int,
    member: Member = Depends(get_current_member),
    ndr: NDR = Depends(require_active_ndr),
    db: AsyncSession = Depends(get_db),
) -> Ride:
    return await RideService(db).mark_picked_up(ndr, ride_id)


@router.post("/{ride_id}/complete", response_model=RideResponse)
async def complete_ride(
    ride_id: int,
    member: Member = Depends(get_current_member),
    ndr: NDR = Depends(require_active_ndr),
    db: AsyncSession = Depends(get_db),
) -> Ride:
    return await RideService(db).complete(ndr, ride_id)


@router.post("/{ride_id}/cancel", response_model=RideResponse)
async def cancel_ride(
    ride_id: int,
    body: Optional[ReasonRequest] = None,
    member: Member = Depends(get_current_member),
    ndr: NDR = Depends(require_active_ndr),
    db: AsyncSession = Depends(get_db),
) -> Ride:
    return await RideService(db).cancel(ndr, ride_id, body.reason if body else None)


@router.post("/{ride_id}/terminate", response_model=RideResponse)
async def terminate_ride(
    ride_id: int,
    body: ReasonRequest,
    member: Member = Depends(get_current_member),
    ndr: NDR = Depends(require_active_ndr),
    db: AsyncSession = Depends(get_db),
) -> Ride:
    """The crew refused or ended the ride; a reason is required"""
    return await RideService(db).terminate(ndr, ride_id, body.reason or "")
