"""
Working Copy Service - debounced autosave of NDR assignments, cars and notes

Edits never write the NDR row directly. Each edit:
1. Loads the working copy (the Redis draft if one exists, else the NDR row)
2. Applies the change
3. Stages the result as a new draft revision (INCR ndr:draft:{id}:rev)
4. Schedules ``flush_ndr_draft(ndr_id, revision)`` after the debounce window

A scheduled flush only writes when its revision is still the latest, so a
burst of edits collapses into one database write. ``flush(revision=None)`` is
the explicit final flush a client sends when it closes the editor. Edits are
only accepted while the NDR is active.
"""
import json
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional

import redis.asyncio as aioredis
from kombu.exceptions import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core.exceptions import (
    AssignmentConfirmationRequired,
    ConcurrentModificationError,
    InvalidAssignmentTargetError,
    NDRReadOnlyError,
    StoreError,
    ValidationException,
)
from app.core.logging import get_logger
from app.core.time_utils import utcnow
from app.core.validation import TextSanitizer
from app.db.models.ndr import NDR, NDRStatus, default_assignments, default_notes
from app.domain.services.assignment_editor import (
    AssignOutcome,
    AssignmentEditor,
    AssignmentMap,
    AssignmentTarget,
    Car1Compliance,
    Role,
    check_car_roster,
    COMPLIANCE_CAR,
)
from app.domain.services.member_service import MemberService
from app.domain.services.ndr_events import NDREventType, publish_ndr_event

logger = get_logger(__name__)

_NOTE_SECTIONS = ("leadership", "car_roles", "couch_phone_roles", "summary")


def draft_key(ndr_id: int) -> str:
    return f"ndr:draft:{ndr_id}"


def revision_key(ndr_id: int) -> str:
    return f"ndr:draft:{ndr_id}:rev"


def flushed_key(ndr_id: int) -> str:
    return f"ndr:draft:{ndr_id}:flushed"


@dataclass
class WorkingCopy:
    ndr_id: int
    assignments: dict
    cars: list
    notes: dict
    revision: int = 0
    flushed_revision: int = 0
    editable: bool = True
    updated_by: Optional[int] = None

    @property
    def dirty(self) -> bool:
        return self.revision > self.flushed_revision

    @classmethod
    def from_ndr(cls, ndr: NDR) -> "WorkingCopy":
        return cls(
            ndr_id=ndr.id,
            assignments=dict(ndr.assignments or default_assignments()),
            cars=list(ndr.cars or []),
            notes=dict(ndr.notes or default_notes()),
            editable=ndr.status == NDRStatus.ACTIVE,
        )

    def to_json(self) -> str:
        return json.dumps({
            "ndr_id": self.ndr_id,
            "assignments": self.assignments,
            "cars": self.cars,
            "notes": self.notes,
            "revision": self.revision,
            "updated_by": self.updated_by,
        }, default=str)

    @classmethod
    def from_json(cls, raw: str) -> "WorkingCopy":
        data = json.loads(raw)
        return cls(
            ndr_id=data["ndr_id"],
            assignments=data["assignments"],
            cars=data["cars"],
            notes=data["notes"],
            revision=data.get("revision", 0),
            updated_by=data.get("updated_by"),
        )

    def assignment_map(self) -> AssignmentMap:
        return AssignmentMap.from_dict(self.assignments)


def _schedule_with_celery(ndr_id: int, revision: int) -> None:
    from app.workers.tasks import flush_ndr_draft

    flush_ndr_draft.apply_async(
        args=[ndr_id, revision],
        countdown=settings.ASSIGNMENT_AUTOSAVE_DEBOUNCE_SECONDS,
    )


class WorkingCopyService:
    def __init__(
        self,
        db: AsyncSession,
        redis: aioredis.Redis,
        schedule_flush: Optional[Callable[[int, int], None]] = None,
    ):
        self.db = db
        self.redis = redis
        self.schedule_flush = schedule_flush or _schedule_with_celery

    async def _get_ndr(self, ndr_id: int, lock: bool = False) -> NDR:
        from app.domain.services.ndr_lifecycle_service import NDRLifecycleService

        return await NDRLifecycleService(self.db).get(ndr_id, lock=lock)

    async def _revision(self, ndr_id: int, key: Callable[[int], str]) -> int:
        return int(await self.redis.get(key(ndr_id)) or 0)

    # ==================== read ====================

    async def load(self, ndr_id: int) -> WorkingCopy:
        """Latest staged draft for an active NDR, otherwise the stored row"""
        ndr = await self._get_ndr(ndr_id)
        if ndr.status != NDRStatus.ACTIVE:
            return WorkingCopy.from_ndr(ndr)

        raw = await self.redis.get(draft_key(ndr_id))
        if raw is None:
            working = WorkingCopy.from_ndr(ndr)
            working.revision = await self._revision(ndr_id, revision_key)
        else:
            working = WorkingCopy.from_json(raw)
        working.flushed_revision = await self._revision(ndr_id, flushed_key)
        if raw is None:
            working.flushed_revision = working.revision
        return working

    async def car1_compliance(self, working: WorkingCopy) -> Car1Compliance:
        roster = working.assignment_map().cars.get(COMPLIANCE_CAR, [])
        genders = await MemberService(self.db).genders_for(roster)
        return check_car_roster(roster, genders)

    # ==================== staging ====================

    async def stage(self, working: WorkingCopy, actor_id: Optional[int]) -> int:
        """Store the working copy as the next draft revision and schedule its flush"""
        ndr = await self._get_ndr(working.ndr_id)
        if ndr.status != NDRStatus.ACTIVE:
            raise NDRReadOnlyError(ndr.id, ndr.status.value)

        revision = await self.redis.incr(revision_key(working.ndr_id))
        await self.redis.expire(revision_key(working.ndr_id), settings.ASSIGNMENT_DRAFT_TTL_SECONDS)
        working.revision = revision
        working.updated_by = actor_id
        await self.redis.set(
            draft_key(working.ndr_id),
            working.to_json(),
            ex=settings.ASSIGNMENT_DRAFT_TTL_SECONDS,
        )

        try:
            self.schedule_flush(working.ndr_id, revision)
        except OperationalError as e:
            # the draft stays staged; the editor's final flush still writes it
            logger.error(
                "Could not schedule draft flush",
                extra_data={"ndr_id": working.ndr_id, "revision": revision, "error": str(e)},
            )

        logger.debug(
            "NDR draft staged",
            extra_data={"ndr_id": working.ndr_id, "revision": revision, "actor_id": actor_id},
        )
        return revision

    # ==================== edits ====================

    async def assign(
        self,
        ndr_id: int,
        member_id: int,
        target: AssignmentTarget,
        actor_id: int,
        confirm_duplicate: bool = False,
        confirm_car1_imbalance: bool = False,
    ) -> AssignOutcome:
        if target.role == Role.CAR and target.car > settings.NDR_MAX_CARS:
            raise InvalidAssignmentTargetError(str(target))

        working = await self.load(ndr_id)
        if not working.editable:
            ndr = await self._get_ndr(ndr_id)
            raise NDRReadOnlyError(ndr_id, ndr.status.value)

        members = MemberService(self.db)
        await members.get(member_id)
        assignment_map = working.assignment_map()
        relevant = assignment_map.cars.get(COMPLIANCE_CAR, []) + [member_id]
        editor = AssignmentEditor(assignment_map, await members.genders_for(relevant))

        outcome = editor.assign(
            member_id,
            target,
            confirm_duplicate=confirm_duplicate,
            confirm_car1_imbalance=confirm_car1_imbalance,
        )
        if outcome.needs_confirmation:
            raise AssignmentConfirmationRequired(
                "Assignment needs confirmation",
                [w.to_dict() for w in outcome.warnings],
            )
        if outcome.applied:
            working.assignments = assignment_map.to_dict()
            await self.stage(working, actor_id)
        return outcome

    async def unassign(
        self,
        ndr_id: int,
        member_id: int,
        target: AssignmentTarget,
        actor_id: int,
    ) -> tuple[bool, Car1Compliance]:
        working = await self.load(ndr_id)
        if not working.editable:
            ndr = await self._get_ndr(ndr_id)
            raise NDRReadOnlyError(ndr_id, ndr.status.value)

        assignment_map = working.assignment_map()
        genders = await MemberService(self.db).genders_for(assignment_map.cars.get(COMPLIANCE_CAR, []))
        editor = AssignmentEditor(assignment_map, genders)
        removed = editor.unassign(member_id, target)
        if removed:
            working.assignments = assignment_map.to_dict()
            await self.stage(working, actor_id)
        return removed, editor.check_car1()

    async def replace_cars(self, ndr_id: int, cars: list[dict[str, Any]], actor_id: int) -> WorkingCopy:
        numbers = [car["car_number"] for car in cars]
        if len(set(numbers)) != len(numbers):
            raise ValidationException("Car numbers must be unique", field="cars")
        if any(not 1 <= n <= settings.NDR_MAX_CARS for n in numbers):
            raise ValidationException(
                f"Car numbers must be between 1 and {settings.NDR_MAX_CARS}", field="cars"
            )

        working = await self.load(ndr_id)
        working.cars = sorted(cars, key=lambda car: car["car_number"])
        await self.stage(working, actor_id)
        return working

    async def replace_notes(self, ndr_id: int, notes: dict[str, Any], actor_id: int) -> WorkingCopy:
        """Replace the editable note sections; progress updates are append-only"""
        working = await self.load(ndr_id)
        merged = dict(working.notes)
        for section in _NOTE_SECTIONS:
            if section in notes:
                merged[section] = notes[section]
        working.notes = merged
        await self.stage(working, actor_id)
        return working

    async def add_progress_update(self, ndr_id: int, text: str, actor_id: int) -> dict[str, Any]:
        text = TextSanitizer.sanitize(text, max_length=1000)
        if not text:
            raise ValidationException("Update text is required", field="text")

        working = await self.load(ndr_id)
        update = {
            "id": uuid.uuid4().hex[:12],
            "text": text,
            "timestamp": utcnow().isoformat(),
            "author_id": actor_id,
        }
        notes = dict(working.notes)
        notes["updates"] = list(notes.get("updates") or []) + [update]
        working.notes = notes
        await self.stage(working, actor_id)
        return update

    # ==================== flush ====================

    async def flush(self, ndr_id: int, revision: Optional[int] = None) -> bool:
        """Write the staged draft to the NDR.

        With a revision, writes only if it is still the newest staged one.
        Without one, writes whatever is staged. Returns True when a write happened.
        """
        latest = await self._revision(ndr_id, revision_key)
        if revision is not None and revision != latest:
            logger.debug(
                "Draft flush superseded",
                extra_data={"ndr_id": ndr_id, "revision": revision, "latest": latest},
            )
            return False

        raw = await self.redis.get(draft_key(ndr_id))
        if raw is None:
            return False
        working = WorkingCopy.from_json(raw)
        if working.revision <= await self._revision(ndr_id, flushed_key):
            return False

        ndr = await self._get_ndr(ndr_id, lock=True)
        if ndr.status != NDRStatus.ACTIVE:
            await self.discard(ndr_id)
            logger.info(
                "Dropped draft for inactive NDR",
                extra_data={"ndr_id": ndr_id, "status": ndr.status.value},
            )
            return False

        ndr.assignments = working.assignments
        ndr.cars = working.cars
        ndr.notes = working.notes
        try:
            await self.db.commit()
        except StaleDataError as e:
            await self.db.rollback()
            raise ConcurrentModificationError(ndr_id) from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreError("ndr.flush_draft", e) from e

        await self.redis.set(
            flushed_key(ndr_id),
            working.revision,
            ex=settings.ASSIGNMENT_DRAFT_TTL_SECONDS,
        )
        logger.info(
            "NDR draft flushed",
            extra_data={"ndr_id": ndr_id, "revision": working.revision, "updated_by": working.updated_by},
        )
        await publish_ndr_event(
            NDREventType.NDR_UPDATED,
            {"revision": working.revision, "updated_by": working.updated_by},
            ndr_id=ndr_id,
            redis=self.redis,
        )
        return True

    async def discard(self, ndr_id: int) -> None:
        await self.redis.delete(draft_key(ndr_id), revision_key(ndr_id), flushed_key(ndr_id))
