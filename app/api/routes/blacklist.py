"""
Blacklist API Routes - address and phone blocks

Members request entries; directors approve, reject or lift them. A director
adding an entry directly approves it in the same step.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.auth import get_current_member, require_director
from app.api.routes.schemas import ActionResponse, BlacklistEntryResponse
from app.core.validation import sanitized_text_validator
from app.db.database import get_db
from app.db.models.blacklist import BlacklistKind, BlacklistScope, BlacklistStatus
from app.db.models.member import Member, MemberRole
from app.domain.services.blacklist_service import BlacklistEntry, BlacklistService

router = APIRouter()


class BlacklistRequest(BaseModel):
    value: str
    reason: Optional[str] = None
    scope: BlacklistScope = BlacklistScope.PERMANENT
    ndr_id: Optional[int] = None

    @field_validator("reason")
    @classmethod
    def sanitize_reason(cls, v: Optional[str]) -> Optional[str]:
        return sanitized_text_validator(v, max_length=500)


@router.get("/{kind}", response_model=List[BlacklistEntryResponse])
async def list_entries(
    kind: BlacklistKind,
    status: Optional[BlacklistStatus] = Query(None),
    ndr_id: Optional[int] = Query(None),
    member: Member = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
) -> List[BlacklistEntry]:
    return await BlacklistService(db).list_entries(kind, status=status, ndr_id=ndr_id)


@router.post("/{kind}", response_model=BlacklistEntryResponse, status_code=201)
async def request_entry(
    kind: BlacklistKind,
    body: BlacklistRequest,
    member: Member = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
) -> BlacklistEntry:
    return await BlacklistService(db).request_entry(
        kind,
        body.value,
        body.reason,
        body.scope,
        body.ndr_id,
        requested_by_id=member.id,
        approve_immediately=member.role == MemberRole.DIRECTOR,
    )


@router.post("/{kind}/{entry_id}/approve", response_model=BlacklistEntryResponse)
async def approve_entry(
    kind: BlacklistKind,
    entry_id: int,
    director: Member = Depends(require_director),
    db: AsyncSession = Depends(get_db),
) -> BlacklistEntry:
    return await BlacklistService(db).approve(kind, entry_id, director.id)


@router.delete("/{kind}/{entry_id}", response_model=ActionResponse)
async def remove_entry(
    kind: BlacklistKind,
    entry_id: int,
    director: Member = Depends(require_director),
    db: AsyncSession = Depends(get_db),
) -> ActionResponse:
    """Reject a pending request or lift an approved block"""
    await BlacklistService(db).remove(kind, entry_id, director.id)
    return ActionResponse(success=True, message=f"{kind.value} blacklist entry {entry_id} removed")
