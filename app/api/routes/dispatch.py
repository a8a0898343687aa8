"""
Dispatch API Routes - car locations and the couch/navigator channel

Everything here is scoped to the active NDR.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.auth import get_current_member
from app.api.dependencies.ndr import require_active_ndr
from app.api.routes.schemas import CarPositionResponse, CouchMessageResponse, RideResponse
from app.db.database import get_db
from app.db.models.couch_message import CouchMessage, MessageSender
from app.db.models.member import Member
from app.db.models.ndr import NDR
from app.db.models.ride import Ride, RideStatus
from app.domain.services.car_location_service import CarLocationService, CarPosition
from app.domain.services.couch_message_service import CouchMessageService
from app.domain.services.ride_service import RideService, check_car_available

router = APIRouter()


class LocationReport(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(None, ge=0)


class MessageCreate(BaseModel):
    message: str = Field(..., min_length=1, max_length=1000)
    sender: MessageSender = MessageSender.NAVIGATOR


@router.put("/cars/{car_number}/location", response_model=CarPositionResponse)
async def report_location(
    car_number: int,
    body: LocationReport,
    member: Member = Depends(get_current_member),
    ndr: NDR = Depends(require_active_ndr),
    db: AsyncSession = Depends(get_db),
) -> CarPosition:
    return await CarLocationService(db).report(
        ndr,
        car_number,
        latitude=body.latitude,
        longitude=body.longitude,
        accuracy=body.accuracy,
        reported_by_id=member.id,
    )


@router.get("/locations", response_model=List[CarPositionResponse])
async def list_locations(
    member: Member = Depends(get_current_member),
    ndr: NDR = Depends(require_active_ndr),
    db: AsyncSession = Depends(get_db),
) -> List[CarPosition]:
    """Latest fix of every car that has reported; stale ones are flagged"""
    return await CarLocationService(db).list_positions(ndr.id)


@router.get("/cars/{car_number}/messages", response_model=List[CouchMessageResponse])
async def list_messages(
    car_number: int,
    after_id: Optional[int] = Query(None, ge=0),
    member: Member = Depends(get_current_member),
    ndr: NDR = Depends(require_active_ndr),
    db: AsyncSession = Depends(get_db),
) -> List[CouchMessage]:
    check_car_available(ndr, car_number)
    return await CouchMessageService(db).list_for_car(ndr.id, car_number, after_id)


@router.post("/cars/{car_number}/messages", response_model=CouchMessageResponse, status_code=201)
async def send_message(
    car_number: int,
    body: MessageCreate,
    member: Member = Depends(get_current_member),
    ndr: NDR = Depends(require_active_ndr),
    db: AsyncSession = Depends(get_db),
) -> CouchMessage:
    return await CouchMessageService(db).send(ndr, car_number, body.sender, member, body.message)


@router.get("/cars/{car_number}/rides", response_model=List[RideResponse])
async def list_car_rides(
    car_number: int,
    member: Member = Depends(get_current_member),
    ndr: NDR = Depends(require_active_ndr),
    db: AsyncSession = Depends(get_db),
) -> List[Ride]:
    """Rides the car is currently carrying or heading to"""
    check_car_available(ndr, car_number)
    return await RideService(db).list_rides(ndr.id, RideStatus.ACTIVE, car_number=car_number)
