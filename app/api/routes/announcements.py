"""
Announcement API Routes
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.auth import get_current_member, require_director
from app.api.routes.schemas import AnnouncementResponse
from app.db.database import get_db
from app.db.models.announcement import Announcement
from app.db.models.member import Member
from app.domain.services.announcement_service import AnnouncementService

router = APIRouter()


class AnnouncementCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=2000)
    is_active: bool = True


class AnnouncementUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    message: Optional[str] = Field(None, min_length=1, max_length=2000)
    is_active: Optional[bool] = None


@router.get("", response_model=List[AnnouncementResponse])
async def list_announcements(
    include_inactive: bool = Query(False, description="Directors only"),
    member: Member = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
) -> List[Announcement]:
    active_only = not (include_inactive and member.is_director)
    return await AnnouncementService(db).list(active_only=active_only)


@router.post("", response_model=AnnouncementResponse, status_code=201)
async def create_announcement(
    body: AnnouncementCreate,
    director: Member = Depends(require_director),
    db: AsyncSession = Depends(get_db),
) -> Announcement:
    return await AnnouncementService(db).create(
        body.title, body.message, director, is_active=body.is_active
    )


@router.patch("/{announcement_id}", response_model=AnnouncementResponse)
async def update_announcement(
    announcement_id: int,
    body: AnnouncementUpdate,
    director: Member = Depends(require_director),
    db: AsyncSession = Depends(get_db),
) -> Announcement:
    return await AnnouncementService(db).update(
        announcement_id,
        title=body.title,
        message=body.message,
        is_active=body.is_active,
    )


@router.delete("/{announcement_id}", status_code=204)
async def delete_announcement(
    announcement_id: int,
    director: Member = Depends(require_director),
    db: AsyncSession = Depends(get_db),
) -> Response:
    await AnnouncementService(db).delete(announcement_id)
    return Response(status_code=204)
