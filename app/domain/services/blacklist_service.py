"""
Blacklist Service - blocked addresses and phone numbers

Entries start as pending requests and only block rides once a director
approves them. Temporary entries belong to a single NDR and are removed by
``cleanup_temporary`` when that NDR ends.
"""
from typing import Optional, Union

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    BlacklistDuplicateError,
    BlacklistEntryNotFoundError,
    NDRNotFoundError,
    ValidationException,
)
from app.core.logging import get_logger, mask_phone
from app.core.time_utils import utcnow
from app.core.validation import AddressValidator, PhoneNumberValidator, TextSanitizer
from app.db.database import commit_or_rollback
from app.db.models.audit_log import AuditAction
from app.db.models.blacklist import (
    BLACKLIST_MODELS,
    AddressBlacklist,
    BlacklistKind,
    BlacklistScope,
    BlacklistStatus,
    PhoneBlacklist,
)
from app.db.models.ndr import NDR, NDRStatus
from app.domain.services.audit_service import record_audit

logger = get_logger(__name__)

BlacklistEntry = Union[AddressBlacklist, PhoneBlacklist]


def blacklist_lookup_key(kind: BlacklistKind, value: str) -> str:
    if kind == BlacklistKind.PHONE:
        return PhoneNumberValidator.lookup_key(value)
    return AddressValidator.lookup_key(value)


def _loggable(kind: BlacklistKind, value: str) -> str:
    return mask_phone(value) if kind == BlacklistKind.PHONE else value


class BlacklistService:
    def __init__(self, db: AsyncSession):
        self.db = db

    def _clean_value(self, kind: BlacklistKind, value: str) -> str:
        if kind == BlacklistKind.PHONE:
            if not PhoneNumberValidator.validate(value):
                raise ValidationException("Invalid phone number format", field="value")
            return PhoneNumberValidator.normalize(value)

        is_valid, error = AddressValidator.validate(value)
        if not is_valid:
            raise ValidationException(error or "Invalid address", field="value")
        return AddressValidator.normalize(value)

    async def _require_open_ndr(self, ndr_id: int) -> None:
        """Temporary entries may only belong to a pending or active NDR"""
        result = await self.db.execute(
            select(NDR.status).where(NDR.id == ndr_id).with_for_update()
        )
        status = result.scalar_one_or_none()
        if status is None:
            raise NDRNotFoundError(ndr_id)
        if status not in (NDRStatus.PENDING, NDRStatus.ACTIVE):
            raise ValidationException(
                f"NDR {ndr_id} is {status.value}; temporary entries need a pending or active NDR",
                field="ndr_id",
                details={"ndr_status": status.value},
            )

    async def request_entry(
        self,
        kind: BlacklistKind,
        value: str,
        reason: Optional[str],
        scope: BlacklistScope,
        ndr_id: Optional[int],
        requested_by_id: Optional[int],
        approve_immediately: bool = False,
    ) -> BlacklistEntry:
        """Create a pending entry, or an approved one when a director adds it directly"""
        if scope == BlacklistScope.TEMPORARY and ndr_id is None:
            raise ValidationException("A temporary entry needs the NDR it belongs to", field="ndr_id")
        if scope == BlacklistScope.PERMANENT and ndr_id is not None:
            raise ValidationException("A permanent entry cannot belong to an NDR", field="ndr_id")
        if scope == BlacklistScope.TEMPORARY:
            await self._require_open_ndr(ndr_id)

        value = self._clean_value(kind, value)
        lookup_key = blacklist_lookup_key(kind, value)
        model = BLACKLIST_MODELS[kind]

        existing = await self.db.execute(
            select(model.id).where(model.lookup_key == lookup_key)
        )
        if existing.first() is not None:
            raise BlacklistDuplicateError(kind.value)

        now = utcnow()
        entry = model(
            value=value,
            lookup_key=lookup_key,
            reason=TextSanitizer.sanitize(reason, max_length=500) if reason else None,
            scope=scope,
            ndr_id=ndr_id,
            status=BlacklistStatus.APPROVED if approve_immediately else BlacklistStatus.PENDING,
            requested_by_id=requested_by_id,
            requested_at=now,
            approved_by_id=requested_by_id if approve_immediately else None,
            approved_at=now if approve_immediately else None,
        )
        self.db.add(entry)
        await self.db.flush()
        if approve_immediately:
            record_audit(
                self.db,
                AuditAction.BLACKLIST_APPROVED,
                requested_by_id,
                ndr_id=ndr_id,
                details={"kind": kind.value, "entry_id": entry.id, "scope": scope.value},
            )
        await commit_or_rollback(self.db, "blacklist.request_entry")

        logger.info(
            "Blacklist entry created",
            extra_data={
                "kind": kind.value,
                "value": _loggable(kind, value),
                "scope": scope.value,
                "status": entry.status.value,
                "ndr_id": ndr_id,
            },
        )
        return entry

    async def get_entry(self, kind: BlacklistKind, entry_id: int) -> BlacklistEntry:
        model = BLACKLIST_MODELS[kind]
        entry = await self.db.get(model, entry_id)
        if entry is None:
            raise BlacklistEntryNotFoundError(kind.value, entry_id)
        return entry

    async def list_entries(
        self,
        kind: BlacklistKind,
        status: Optional[BlacklistStatus] = None,
        ndr_id: Optional[int] = None,
    ) -> list[BlacklistEntry]:
        model = BLACKLIST_MODELS[kind]
        query = select(model).order_by(model.requested_at.desc(), model.id.desc())
        if status is not None:
            query = query.where(model.status == status)
        if ndr_id is not None:
            query = query.where(model.ndr_id == ndr_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def approve(
        self,
        kind: BlacklistKind,
        entry_id: int,
        approver_id: int,
    ) -> BlacklistEntry:
        entry = await self.get_entry(kind, entry_id)
        if entry.status == BlacklistStatus.APPROVED:
            return entry

        entry.status = BlacklistStatus.APPROVED
        entry.approved_by_id = approver_id
        entry.approved_at = utcnow()
        record_audit(
            self.db,
            AuditAction.BLACKLIST_APPROVED,
            approver_id,
            ndr_id=entry.ndr_id,
            details={"kind": kind.value, "entry_id": entry.id, "scope": entry.scope.value},
        )
        await commit_or_rollback(self.db, "blacklist.approve")
        logger.info(
            "Blacklist entry approved",
            extra_data={"kind": kind.value, "entry_id": entry_id, "approver_id": approver_id},
        )
        return entry

    async def remove(
        self,
        kind: BlacklistKind,
        entry_id: int,
        actor_id: int,
    ) -> None:
        """Reject a pending request or lift an approved block"""
        entry = await self.get_entry(kind, entry_id)
        previous_status = entry.status.value
        await self.db.delete(entry)
        record_audit(
            self.db,
            AuditAction.BLACKLIST_REMOVED,
            actor_id,
            ndr_id=entry.ndr_id,
            details={"kind": kind.value, "entry_id": entry_id, "previous_status": previous_status},
        )
        await commit_or_rollback(self.db, "blacklist.remove")
        logger.info(
            "Blacklist entry removed",
            extra_data={"kind": kind.value, "entry_id": entry_id, "previous_status": previous_status},
        )

    async def find_block(self, kind: BlacklistKind, value: str) -> Optional[BlacklistEntry]:
        """Approved entry matching the value, if any. Pending requests never block."""
        if not value:
            return None
        model = BLACKLIST_MODELS[kind]
        result = await self.db.execute(
            select(model)
            .where(
                model.lookup_key == blacklist_lookup_key(kind, value),
                model.status == BlacklistStatus.APPROVED,
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def is_blocked(self, kind: BlacklistKind, value: str) -> bool:
        return await self.find_block(kind, value) is not None

    async def cleanup_temporary(self, ndr_id: int) -> int:
        """Delete every temporary entry owned by the NDR from both blacklists.

        Runs inside the caller's transaction; the caller commits.
        """
        removed = 0
        for kind, model in BLACKLIST_MODELS.items():
            result = await self.db.execute(
                delete(model).where(
                    model.scope == BlacklistScope.TEMPORARY,
                    model.ndr_id == ndr_id,
                )
            )
            count = result.rowcount or 0
            removed += count
            logger.debug(
                "Temporary blacklist entries deleted",
                extra_data={"kind": kind.value, "ndr_id": ndr_id, "count": count},
            )
        return removed
