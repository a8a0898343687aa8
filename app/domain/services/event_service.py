"""
Event Service - calendar events; an operating night owns exactly one NDR
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import EventNotFoundError, ValidationException
from app.core.logging import get_logger
from app.db.database import commit_or_rollback
from app.db.models.event import Event, EventType
from app.db.models.ndr import NDR, NDRStatus, default_assignments, default_notes
from app.domain.services.member_service import MemberService

logger = get_logger(__name__)

# fields mirrored onto the NDR when an operating night is edited
_SYNCED_FIELDS = {"name": "event_name", "starts_at": "event_date", "location": "location"}


class EventService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, event_id: int) -> Event:
        event = await self.db.get(Event, event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        return event

    async def list_events(
        self,
        starts_after: Optional[datetime] = None,
        event_type: Optional[EventType] = None,
    ) -> list[Event]:
        query = select(Event).order_by(Event.starts_at)
        if starts_after is not None:
            query = query.where(Event.starts_at >= starts_after)
        if event_type is not None:
            query = query.where(Event.event_type == event_type)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def create_event(
        self,
        name: str,
        event_type: EventType,
        starts_at: datetime,
        ends_at: Optional[datetime] = None,
        location: Optional[str] = None,
        notes: Optional[str] = None,
        created_by_id: Optional[int] = None,
    ) -> Event:
        """Create an event; operating nights also get a pending NDR linked both ways"""
        if ends_at is not None and ends_at < starts_at:
            raise ValidationException("Event cannot end before it starts", field="ends_at")

        event = Event(
            name=name,
            event_type=event_type,
            starts_at=starts_at,
            ends_at=ends_at,
            location=location,
            notes=notes,
            signed_up_members=[],
            created_by_id=created_by_id,
        )
        self.db.add(event)
        await self.db.flush()

        if event_type == EventType.OPERATING_NIGHT:
            ndr = NDR(
                event_id=event.id,
                event_name=name,
                event_date=starts_at,
                location=location,
                status=NDRStatus.PENDING,
                available_cars=0,
                signed_up_members=[],
                assignments=default_assignments(),
                cars=[],
                notes=default_notes(),
            )
            self.db.add(ndr)
            await self.db.flush()
            event.ndr_id = ndr.id

        await commit_or_rollback(self.db, "event.create")
        logger.info(
            "Event created",
            extra_data={
                "event_id": event.id,
                "event_type": event_type.value,
                "ndr_id": event.ndr_id,
            },
        )
        return event

    async def _linked_ndr(self, event: Event) -> Optional[NDR]:
        if event.ndr_id is None:
            return None
        return await self.db.get(NDR, event.ndr_id)

    async def update_event(self, event_id: int, **changes) -> Event:
        event = await self.get(event_id)
        for name, value in changes.items():
            setattr(event, name, value)
        if event.ends_at is not None and event.ends_at < event.starts_at:
            raise ValidationException("Event cannot end before it starts", field="ends_at")

        ndr = await self._linked_ndr(event)
        if ndr is not None:
            for event_field, ndr_field in _SYNCED_FIELDS.items():
                if event_field in changes:
                    setattr(ndr, ndr_field, changes[event_field])

        await commit_or_rollback(self.db, "event.update")
        logger.info(
            "Event updated",
            extra_data={"event_id": event_id, "fields": sorted(changes), "ndr_id": event.ndr_id},
        )
        return event

    async def sign_up(self, event_id: int, member_id: int) -> Event:
        """Add the member to the event and, for operating nights, to its NDR"""
        event = await self.get(event_id)
        await MemberService(self.db).get(member_id)

        if member_id not in (event.signed_up_members or []):
            event.signed_up_members = list(event.signed_up_members or []) + [member_id]

        ndr = await self._linked_ndr(event)
        if ndr is not None and member_id not in (ndr.signed_up_members or []):
            ndr.signed_up_members = list(ndr.signed_up_members or []) + [member_id]

        await commit_or_rollback(self.db, "event.sign_up")
        logger.info("Member signed up", extra_data={"event_id": event_id, "member_id": member_id})
        return event
