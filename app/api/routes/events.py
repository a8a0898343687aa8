"""
Event API Routes - calendar events and signups

Creating an operating night also creates its pending NDR.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.auth import get_current_member, require_deputy
from app.api.routes.schemas import EventResponse
from app.core.exceptions import ForbiddenException, ValidationException
from app.core.validation import sanitized_text_validator
from app.db.database import get_db
from app.db.models.event import Event, EventType
from app.db.models.member import Member, MemberRole
from app.domain.services.event_service import EventService

router = APIRouter()


class EventCreate(BaseModel):
    name: str
    event_type: EventType = EventType.OPERATING_NIGHT
    starts_at: datetime
    ends_at: Optional[datetime] = None
    location: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = sanitized_text_validator(v, max_length=200)
        if not v:
            raise ValueError("Event name is required")
        return v

    @field_validator("location")
    @classmethod
    def validate_location(cls, v: Optional[str]) -> Optional[str]:
        return sanitized_text_validator(v, max_length=300)

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, v: Optional[str]) -> Optional[str]:
        return sanitized_text_validator(v, max_length=2000)


class EventUpdate(BaseModel):
    name: Optional[str] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    location: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("name", "location")
    @classmethod
    def validate_short_text(cls, v: Optional[str]) -> Optional[str]:
        return sanitized_text_validator(v, max_length=300)

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, v: Optional[str]) -> Optional[str]:
        return sanitized_text_validator(v, max_length=2000)


class SignupRequest(BaseModel):
    # defaults to the caller; deputies and directors may sign up others
    member_id: Optional[int] = None


@router.post("", response_model=EventResponse, status_code=201)
async def create_event(
    body: EventCreate,
    member: Member = Depends(require_deputy),
    db: AsyncSession = Depends(get_db),
) -> Event:
    return await EventService(db).create_event(
        name=body.name,
        event_type=body.event_type,
        starts_at=body.starts_at,
        ends_at=body.ends_at,
        location=body.location,
        notes=body.notes,
        created_by_id=member.id,
    )


@router.get("", response_model=List[EventResponse])
async def list_events(
    starts_after: Optional[datetime] = Query(None),
    event_type: Optional[EventType] = Query(None),
    member: Member = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
) -> List[Event]:
    return await EventService(db).list_events(starts_after=starts_after, event_type=event_type)


@router.patch("/{event_id}", response_model=EventResponse)
async def update_event(
    event_id: int,
    body: EventUpdate,
    member: Member = Depends(require_deputy),
    db: AsyncSession = Depends(get_db),
) -> Event:
    changes = body.model_dump(exclude_unset=True)
    if any(field in changes and not changes[field] for field in ("name", "starts_at")):
        raise ValidationException("name and starts_at cannot be cleared")
    return await EventService(db).update_event(event_id, **changes)


@router.post("/{event_id}/signup", response_model=EventResponse)
async def sign_up(
    event_id: int,
    body: Optional[SignupRequest] = None,
    member: Member = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
) -> Event:
    target_id = body.member_id if body and body.member_id is not None else member.id
    if target_id != member.id and member.role == MemberRole.MEMBER:
        raise ForbiddenException("Only deputies and directors can sign up other members")
    return await EventService(db).sign_up(event_id, target_id)
