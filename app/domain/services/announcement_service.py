"""
Announcement Service - director notices for the member dashboard

Announcements are not tied to an NDR. Members only ever see active ones;
an announcement that becomes active is pushed on the NDR event channel so
open dashboards pick it up without polling.
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AnnouncementNotFoundError, ValidationException
from app.core.logging import get_logger
from app.core.validation import TextSanitizer
from app.db.database import commit_or_rollback
from app.db.models.announcement import Announcement
from app.db.models.member import Member
from app.domain.services.ndr_events import NDREventType, publish_ndr_event

logger = get_logger(__name__)

MAX_TITLE_LENGTH = 200
MAX_MESSAGE_LENGTH = 2000


def _clean(field: str, value: str, max_length: int) -> str:
    cleaned = TextSanitizer.sanitize(value, max_length=max_length)
    if not cleaned:
        raise ValidationException(f"{field.capitalize()} cannot be empty", field=field)
    return cleaned


class AnnouncementService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, announcement_id: int) -> Announcement:
        announcement = await self.db.get(Announcement, announcement_id)
        if announcement is None:
            raise AnnouncementNotFoundError(announcement_id)
        return announcement

    async def list(self, active_only: bool = True) -> list[Announcement]:
        """Newest first"""
        query = select(Announcement).order_by(Announcement.created_at.desc(), Announcement.id.desc())
        if active_only:
            query = query.where(Announcement.is_active.is_(True))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def _publish(self, announcement: Announcement) -> None:
        await publish_ndr_event(
            NDREventType.ANNOUNCEMENT_PUBLISHED,
            {"announcement_id": announcement.id, "title": announcement.title},
        )

    async def create(
        self,
        title: str,
        message: str,
        director: Member,
        is_active: bool = True,
    ) -> Announcement:
        announcement = Announcement(
            title=_clean("title", title, MAX_TITLE_LENGTH),
            message=_clean("message", message, MAX_MESSAGE_LENGTH),
            is_active=is_active,
            created_by_id=director.id,
            created_by_name=director.name,
        )
        self.db.add(announcement)
        await commit_or_rollback(self.db, "announcement.create")

        logger.info(
            "Announcement created",
            extra_data={"announcement_id": announcement.id, "director_id": director.id, "active": is_active},
        )
        if is_active:
            await self._publish(announcement)
        return announcement

    async def update(
        self,
        announcement_id: int,
        title: Optional[str] = None,
        message: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Announcement:
        """Partial update; switching an announcement on publishes it again"""
        announcement = await self.get(announcement_id)
        was_active = announcement.is_active

        if title is not None:
            announcement.title = _clean("title", title, MAX_TITLE_LENGTH)
        if message is not None:
            announcement.message = _clean("message", message, MAX_MESSAGE_LENGTH)
        if is_active is not None:
            announcement.is_active = is_active
        await commit_or_rollback(self.db, "announcement.update")

        logger.info(
            "Announcement updated",
            extra_data={"announcement_id": announcement_id, "active": announcement.is_active},
        )
        if announcement.is_active and not was_active:
            await self._publish(announcement)
        return announcement

    async def delete(self, announcement_id: int) -> None:
        announcement = await self.get(announcement_id)
        await self.db.delete(announcement)
        await commit_or_rollback(self.db, "announcement.delete")
        logger.info("Announcement deleted", extra_data={"announcement_id": announcement_id})
