"""
Member API Routes - registration and director approval
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.auth import get_current_member, require_director
from app.api.routes.schemas import MemberResponse
from app.core.validation import email_validator, name_validator, phone_validator
from app.db.database import get_db
from app.db.models.member import ApprovalStatus, Member, MemberRole
from app.domain.services.member_service import MemberService

router = APIRouter()


class MemberCreate(BaseModel):
    name: str
    email: str
    phone: Optional[str] = None
    gender: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return name_validator(v)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return email_validator(v)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return phone_validator(v)

    @field_validator("gender")
    @classmethod
    def validate_gender(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if len(v) > 30:
            raise ValueError("Gender must be at most 30 characters")
        return v or None


class ApprovalRequest(BaseModel):
    role: Optional[MemberRole] = None


@router.post("", response_model=MemberResponse, status_code=201)
async def register_member(
    body: MemberCreate,
    db: AsyncSession = Depends(get_db),
) -> Member:
    """Self-registration; the member waits for director approval"""
    return await MemberService(db).register(
        name=body.name,
        email=body.email,
        phone=body.phone,
        gender=body.gender,
    )


@router.get("", response_model=List[MemberResponse])
async def list_members(
    approval_status: Optional[ApprovalStatus] = Query(None),
    member: Member = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
) -> List[Member]:
    return await MemberService(db).list_members(approval_status)


@router.get("/{member_id}", response_model=MemberResponse)
async def get_member(
    member_id: int,
    member: Member = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
) -> Member:
    return await MemberService(db).get(member_id)


@router.post("/{member_id}/approve", response_model=MemberResponse)
async def approve_member(
    member_id: int,
    body: Optional[ApprovalRequest] = None,
    director: Member = Depends(require_director),
    db: AsyncSession = Depends(get_db),
) -> Member:
    role = body.role if body else None
    return await MemberService(db).decide(member_id, True, director.id, role=role)


@router.post("/{member_id}/reject", response_model=MemberResponse)
async def reject_member(
    member_id: int,
    director: Member = Depends(require_director),
    db: AsyncSession = Depends(get_db),
) -> Member:
    return await MemberService(db).decide(member_id, False, director.id)
