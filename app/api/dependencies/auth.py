"""
FastAPI auth dependencies

    @router.post("/{ndr_id}/activate")
    async def activate(director: Member = Depends(require_director), ...):
"""
from typing import Optional

from fastapi import Depends, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import verify_token
from app.core.exceptions import ForbiddenException, MemberNotApprovedError, UnauthorizedException
from app.core.logging import get_logger
from app.db.database import get_db
from app.db.models.member import Member, MemberRole

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)


async def _member_from_token(token: Optional[str], db: AsyncSession) -> Member:
    if not token:
        raise UnauthorizedException()
    token_data = verify_token(token)
    if token_data is None:
        raise UnauthorizedException("Invalid or expired token")

    member = await db.get(Member, token_data.member_id)
    if member is None:
        logger.warning("Access denied: unknown member", extra_data={"member_id": token_data.member_id})
        raise ForbiddenException("Member account not found")
    if not member.is_approved:
        logger.warning(
            "Access denied: member inactive or unapproved",
            extra_data={"member_id": member.id, "approval_status": member.approval_status.value},
        )
        raise MemberNotApprovedError(member.id)
    return member


async def get_current_member(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> Member:
    """Any approved member"""
    return await _member_from_token(credentials.credentials if credentials else None, db)


async def get_stream_member(
    token: Optional[str] = Query(None, description="JWT, for EventSource clients that cannot set headers"),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> Member:
    return await _member_from_token(credentials.credentials if credentials else token, db)


async def require_deputy(member: Member = Depends(get_current_member)) -> Member:
    """Deputy or director"""
    if member.role not in (MemberRole.DEPUTY, MemberRole.DIRECTOR):
        raise ForbiddenException("Deputy or director role required")
    return member


async def require_director(member: Member = Depends(get_current_member)) -> Member:
    if member.role != MemberRole.DIRECTOR:
        logger.warning(
            "Director action denied",
            extra_data={"member_id": member.id, "role": member.role.value},
        )
        raise ForbiddenException("Director role required")
    return member
