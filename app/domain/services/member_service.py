"""
Member Service - registration and director approval
"""
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import MemberAlreadyExistsError, MemberNotFoundError
from app.core.logging import get_logger
from app.core.time_utils import utcnow
from app.db.database import commit_or_rollback
from app.db.models.audit_log import AuditAction
from app.db.models.member import ApprovalStatus, Member, MemberRole
from app.domain.services.audit_service import record_audit

logger = get_logger(__name__)


class MemberService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def register(
        self,
        name: str,
        email: str,
        phone: Optional[str] = None,
        gender: Optional[str] = None,
    ) -> Member:
        """New members start pending with the plain member role"""
        email = email.strip().lower()
        existing = await self.db.execute(select(Member.id).where(Member.email == email))
        if existing.first() is not None:
            raise MemberAlreadyExistsError(email)

        member = Member(
            name=name,
            email=email,
            phone=phone,
            gender=gender.strip() if gender else None,
            role=MemberRole.MEMBER,
            approval_status=ApprovalStatus.PENDING,
        )
        self.db.add(member)
        try:
            await self.db.commit()
        except IntegrityError as e:
            # lost a race with a concurrent registration for the same email
            await self.db.rollback()
            raise MemberAlreadyExistsError(email) from e

        logger.info("Member registered", extra_data={"member_id": member.id})
        return member

    async def get(self, member_id: int) -> Member:
        member = await self.db.get(Member, member_id)
        if member is None:
            raise MemberNotFoundError(member_id)
        return member

    async def list_members(
        self,
        approval_status: Optional[ApprovalStatus] = None,
    ) -> list[Member]:
        query = select(Member).order_by(Member.name, Member.id)
        if approval_status is not None:
            query = query.where(Member.approval_status == approval_status)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_many(self, member_ids: Iterable[int]) -> dict[int, Member]:
        ids = set(member_ids)
        if not ids:
            return {}
        result = await self.db.execute(select(Member).where(Member.id.in_(ids)))
        return {m.id: m for m in result.scalars().all()}

    async def names_for(self, member_ids: Iterable[int]) -> dict[int, str]:
        return {member_id: m.name for member_id, m in (await self.get_many(member_ids)).items()}

    async def genders_for(self, member_ids: Iterable[int]) -> dict[int, Optional[str]]:
        return {member_id: m.gender for member_id, m in (await self.get_many(member_ids)).items()}

    async def decide(
        self,
        member_id: int,
        approve: bool,
        director_id: int,
        role: Optional[MemberRole] = None,
    ) -> Member:
        """Approve (optionally with a role) or reject a registration"""
        member = await self.get(member_id)
        member.approval_status = ApprovalStatus.APPROVED if approve else ApprovalStatus.REJECTED
        member.approved_by_id = director_id
        member.approved_at = utcnow()
        if approve and role is not None:
            member.role = role

        record_audit(
            self.db,
            AuditAction.MEMBER_APPROVED if approve else AuditAction.MEMBER_REJECTED,
            director_id,
            details={"member_id": member_id, "role": member.role.value},
        )
        await commit_or_rollback(self.db, "member.decide")

        logger.info(
            "Member approval decided",
            extra_data={
                "member_id": member_id,
                "approved": approve,
                "role": member.role.value,
                "director_id": director_id,
            },
        )
        return member
