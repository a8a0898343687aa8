"""
Audit trail writer. Rows are added to the caller's session and commit with
the change they describe.
"""
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.audit_log import AuditAction, AuditLog


def record_audit(
    db: AsyncSession,
    action: AuditAction,
    actor_member_id: Optional[int],
    ndr_id: Optional[int] = None,
    details: Optional[dict[str, Any]] = None,
) -> AuditLog:
    entry = AuditLog(
        action=action,
        actor_member_id=actor_member_id,
        ndr_id=ndr_id,
        details=details or {},
    )
    db.add(entry)
    return entry


async def list_audit_entries(
    db: AsyncSession,
    ndr_id: Optional[int] = None,
    limit: int = 100,
) -> list[AuditLog]:
    query = select(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit)
    if ndr_id is not None:
        query = query.where(AuditLog.ndr_id == ndr_id)
    result = await db.execute(query)
    return list(result.scalars().all())
