"""
NDR Lifecycle Service - activate, end, archive and reactivate night duty runs

Status flow (see NDR_TRANSITIONS):

    pending --activate--> active --end--> completed --archive--> archived
    archived --reactivate--> active

At most one NDR is active. Each operation runs as a single transaction:
1. Lock the target row (SELECT ... FOR UPDATE)
2. Check the transition against the table
3. Activation finalizes every other active NDR first and flushes
4. Update the target; the ORM version column rejects lost updates
5. Commit; the partial unique index on status='active' rejects a second
   activation that raced past step 3
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.core.exceptions import (
    ActivationConflictError,
    AppException,
    ConcurrentModificationError,
    InvalidNDRTransitionError,
    NDRNotFoundError,
    StoreError,
    ValidationException,
)
from app.core.logging import get_logger, log_async_operation
from app.core.time_utils import utcnow
from app.db.models.audit_log import AuditAction
from app.db.models.ndr import NDR, NDRStatus
from app.domain.services.assignment_editor import AssignmentMap
from app.domain.services.audit_service import record_audit
from app.domain.services.blacklist_service import BlacklistService
from app.domain.services.member_service import MemberService
from app.domain.services.ndr_events import NDREventType, publish_ndr_event
from app.domain.services.ndr_summary import NDRSnapshot, generate_ndr_summary
from app.domain.services.ride_stats_service import RideStatsService, RideTally
from app.state_machine.states import NDR_TRANSITIONS, is_valid_transition

logger = get_logger(__name__)


@dataclass
class EndResult:
    ndr: NDR
    tally: RideTally
    removed_blacklist_entries: int


class NDRLifecycleService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.stats = RideStatsService(db)
        self.blacklist = BlacklistService(db)

    # ==================== queries ====================

    async def get(self, ndr_id: int, lock: bool = False) -> NDR:
        query = select(NDR).where(NDR.id == ndr_id)
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query)
        ndr = result.scalar_one_or_none()
        if ndr is None:
            raise NDRNotFoundError(ndr_id)
        return ndr

    async def get_active(self) -> Optional[NDR]:
        result = await self.db.execute(
            select(NDR).where(NDR.status == NDRStatus.ACTIVE).order_by(NDR.activated_at.desc()).limit(1)
        )
        return result.scalar_one_or_none()

    async def list_ndrs(self, status: Optional[NDRStatus] = None) -> list[NDR]:
        query = select(NDR).order_by(NDR.event_date.desc(), NDR.id.desc())
        if status is not None:
            query = query.where(NDR.status == status)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ==================== helpers ====================

    @staticmethod
    def _require_transition(ndr: NDR, target: NDRStatus) -> None:
        if not is_valid_transition(NDR_TRANSITIONS, ndr.status, target):
            raise InvalidNDRTransitionError(ndr.id, ndr.status.value, target.value)

    @staticmethod
    def _check_version(ndr: NDR, expected_version: Optional[int]) -> None:
        if expected_version is not None and ndr.version != expected_version:
            raise ConcurrentModificationError(ndr.id)

    async def _finalize(self, ndr: NDR, actor_id: Optional[int]) -> tuple[RideTally, int]:
        """Write final tallies, mark completed and drop the NDR's temporary blacklist entries"""
        tally = await self.stats.tally_for_ndr(ndr.id)
        for name, value in tally.final_counters().items():
            setattr(ndr, name, value)
        ndr.status = NDRStatus.COMPLETED
        ndr.ended_at = utcnow()
        ndr.ended_by_id = actor_id
        removed = await self.blacklist.cleanup_temporary(ndr.id)
        return tally, removed

    async def _commit(self, ndr_id: int, operation: str) -> None:
        try:
            await self.db.commit()
        except StaleDataError as e:
            await self.db.rollback()
            raise ConcurrentModificationError(ndr_id) from e
        except IntegrityError as e:
            await self.db.rollback()
            raise ActivationConflictError(ndr_id) from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreError(operation, e) from e

    async def _run(self, ndr_id: int, operation: str, step):
        """Run a transactional step; any failure rolls the whole step back"""
        try:
            result = await step()
            await self.db.flush()
        except AppException:
            await self.db.rollback()
            raise
        except StaleDataError as e:
            await self.db.rollback()
            raise ConcurrentModificationError(ndr_id) from e
        except IntegrityError as e:
            await self.db.rollback()
            raise ActivationConflictError(ndr_id) from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreError(operation, e) from e
        await self._commit(ndr_id, operation)
        return result

    # ==================== transitions ====================

    @log_async_operation("ndr.activate")
    async def activate(
        self,
        ndr_id: int,
        actor_id: int,
        expected_version: Optional[int] = None,
    ) -> NDR:
        """Make the NDR the active one, completing whichever NDR was active before"""
        displaced_ids: list[int] = []

        async def step() -> NDR:
            ndr = await self.get(ndr_id, lock=True)
            self._require_transition(ndr, NDRStatus.ACTIVE)
            self._check_version(ndr, expected_version)
            reactivation = ndr.status == NDRStatus.ARCHIVED

            result = await self.db.execute(
                select(NDR)
                .where(NDR.status == NDRStatus.ACTIVE, NDR.id != ndr_id)
                .with_for_update()
            )
            for other in result.scalars().all():
                tally, removed = await self._finalize(other, actor_id)
                displaced_ids.append(other.id)
                record_audit(
                    self.db,
                    AuditAction.NDR_FORCE_COMPLETED,
                    actor_id,
                    ndr_id=other.id,
                    details={
                        "replaced_by": ndr_id,
                        "counters": tally.final_counters(),
                        "removed_blacklist_entries": removed,
                    },
                )
            # the displaced rows must leave 'active' before the target enters it
            await self.db.flush()

            previous = ndr.status
            ndr.status = NDRStatus.ACTIVE
            ndr.activated_at = utcnow()
            ndr.activated_by_id = actor_id
            if reactivation:
                ndr.ended_at = None
                ndr.ended_by_id = None
                ndr.archived_at = None
                ndr.archived_by_id = None
                ndr.archived_summary = None

            record_audit(
                self.db,
                AuditAction.NDR_REACTIVATED if reactivation else AuditAction.NDR_ACTIVATED,
                actor_id,
                ndr_id=ndr_id,
                details={"from": previous.value, "to": NDRStatus.ACTIVE.value, "displaced": displaced_ids},
            )
            return ndr

        ndr = await self._run(ndr_id, "ndr.activate", step)

        logger.info(
            "NDR activated",
            extra_data={"ndr_id": ndr_id, "actor_id": actor_id, "displaced": displaced_ids},
        )
        for other_id in displaced_ids:
            await publish_ndr_event(
                NDREventType.NDR_ENDED,
                {"forced": True, "replaced_by": ndr_id},
                ndr_id=other_id,
            )
        await publish_ndr_event(
            NDREventType.NDR_ACTIVATED,
            {"event_name": ndr.event_name, "activated_by": actor_id},
            ndr_id=ndr_id,
        )
        return ndr

    async def reactivate(
        self,
        ndr_id: int,
        actor_id: int,
        expected_version: Optional[int] = None,
    ) -> NDR:
        """Activate an archived NDR"""
        ndr = await self.get(ndr_id)
        if ndr.status != NDRStatus.ARCHIVED:
            raise InvalidNDRTransitionError(ndr_id, ndr.status.value, NDRStatus.ACTIVE.value)
        return await self.activate(ndr_id, actor_id, expected_version)

    @log_async_operation("ndr.end")
    async def end(
        self,
        ndr_id: int,
        actor_id: int,
        expected_version: Optional[int] = None,
    ) -> EndResult:
        """Complete the active NDR: final ride tallies and temporary blacklist cleanup commit together"""

        async def step() -> EndResult:
            ndr = await self.get(ndr_id, lock=True)
            self._require_transition(ndr, NDRStatus.COMPLETED)
            self._check_version(ndr, expected_version)

            tally, removed = await self._finalize(ndr, actor_id)
            record_audit(
                self.db,
                AuditAction.NDR_ENDED,
                actor_id,
                ndr_id=ndr_id,
                details={"counters": tally.final_counters(), "removed_blacklist_entries": removed},
            )
            return EndResult(ndr=ndr, tally=tally, removed_blacklist_entries=removed)

        result = await self._run(ndr_id, "ndr.end", step)

        logger.info(
            "NDR ended",
            extra_data={
                "ndr_id": ndr_id,
                "actor_id": actor_id,
                "counters": result.tally.final_counters(),
                "removed_blacklist_entries": result.removed_blacklist_entries,
            },
        )
        await publish_ndr_event(
            NDREventType.NDR_ENDED,
            {"forced": False, "counters": result.tally.final_counters()},
            ndr_id=ndr_id,
        )
        return result

    async def build_summary(self, ndr: NDR) -> str:
        assignment_map = AssignmentMap.from_dict(ndr.assignments)
        member_ids = set(ndr.signed_up_members or []) | assignment_map.assigned_member_ids()
        names = await MemberService(self.db).names_for(member_ids)
        return generate_ndr_summary(NDRSnapshot.from_ndr(ndr), names)

    @log_async_operation("ndr.archive")
    async def archive(
        self,
        ndr_id: int,
        actor_id: int,
        expected_version: Optional[int] = None,
    ) -> NDR:
        """Archive a completed NDR with its generated summary"""

        async def step() -> NDR:
            ndr = await self.get(ndr_id, lock=True)
            self._require_transition(ndr, NDRStatus.ARCHIVED)
            self._check_version(ndr, expected_version)

            ndr.archived_summary = await self.build_summary(ndr)
            ndr.status = NDRStatus.ARCHIVED
            ndr.archived_at = utcnow()
            ndr.archived_by_id = actor_id
            record_audit(
                self.db,
                AuditAction.NDR_ARCHIVED,
                actor_id,
                ndr_id=ndr_id,
                details={"summary_length": len(ndr.archived_summary)},
            )
            return ndr

        ndr = await self._run(ndr_id, "ndr.archive", step)

        logger.info("NDR archived", extra_data={"ndr_id": ndr_id, "actor_id": actor_id})
        await publish_ndr_event(NDREventType.NDR_ARCHIVED, {"archived_by": actor_id}, ndr_id=ndr_id)
        return ndr

    async def set_available_cars(self, ndr_id: int, available_cars: int) -> NDR:
        if not 0 <= available_cars <= settings.NDR_MAX_CARS:
            raise ValidationException(
                f"available_cars must be between 0 and {settings.NDR_MAX_CARS}",
                field="available_cars",
            )

        async def step() -> NDR:
            ndr = await self.get(ndr_id, lock=True)
            ndr.available_cars = available_cars
            return ndr

        ndr = await self._run(ndr_id, "ndr.set_available_cars", step)
        await publish_ndr_event(
            NDREventType.NDR_UPDATED,
            {"available_cars": available_cars},
            ndr_id=ndr_id,
        )
        return ndr
