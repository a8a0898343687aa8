"""
Couch Message Service - per-car chat between dispatch and the navigator

Messages are scoped to one car of one NDR. The couch side also posts system
notices (sender_id is null) when a ride is assigned to the car.
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ValidationException
from app.core.logging import get_logger
from app.core.validation import TextSanitizer
from app.db.database import commit_or_rollback
from app.db.models.couch_message import CouchMessage, MessageSender
from app.db.models.member import Member
from app.db.models.ndr import NDR
from app.domain.services.ndr_events import NDREventType, publish_ndr_event
from app.domain.services.ride_service import check_car_available

logger = get_logger(__name__)

MAX_MESSAGE_LENGTH = 1000
SYSTEM_SENDER_NAME = "Couch"


class CouchMessageService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _post(
        self,
        ndr: NDR,
        car_number: int,
        sender: MessageSender,
        sender_id: Optional[int],
        sender_name: str,
        text: str,
    ) -> CouchMessage:
        check_car_available(ndr, car_number)
        text = TextSanitizer.sanitize(text, max_length=MAX_MESSAGE_LENGTH)
        if not text:
            raise ValidationException("Message cannot be empty", field="message")

        message = CouchMessage(
            ndr_id=ndr.id,
            car_number=car_number,
            sender=sender,
            sender_id=sender_id,
            sender_name=sender_name,
            message=text,
        )
        self.db.add(message)
        await commit_or_rollback(self.db, "couch_message.send")

        await publish_ndr_event(
            NDREventType.COUCH_MESSAGE_SENT,
            {"message_id": message.id, "car_number": car_number, "sender": sender.value},
            ndr_id=message.ndr_id,
        )
        return message

    async def send(
        self,
        ndr: NDR,
        car_number: int,
        sender: MessageSender,
        member: Member,
        text: str,
    ) -> CouchMessage:
        message = await self._post(ndr, car_number, sender, member.id, member.name, text)
        logger.info(
            "Couch message sent",
            extra_data={
                "ndr_id": message.ndr_id,
                "car_number": car_number,
                "sender": sender.value,
                "member_id": member.id,
            },
        )
        return message

    async def post_system(self, ndr: NDR, car_number: int, text: str) -> CouchMessage:
        return await self._post(ndr, car_number, MessageSender.COUCH, None, SYSTEM_SENDER_NAME, text)

    async def list_for_car(
        self,
        ndr_id: int,
        car_number: int,
        after_id: Optional[int] = None,
    ) -> list[CouchMessage]:
        """Oldest first; after_id lets a client fetch only what it has not seen"""
        query = (
            select(CouchMessage)
            .where(CouchMessage.ndr_id == ndr_id, CouchMessage.car_number == car_number)
            .order_by(CouchMessage.created_at, CouchMessage.id)
        )
        if after_id is not None:
            query = query.where(CouchMessage.id > after_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())
