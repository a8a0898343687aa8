"""
Assignment editor API Routes - working copy of the active NDR

Edits are staged as Redis drafts and written to the NDR after the autosave
debounce window; the client sends POST /draft/flush when it closes the editor.
"""
from typing import Any, List, Optional

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.auth import get_current_member, require_deputy
from app.core.redis_client import get_redis
from app.core.validation import sanitized_text_validator
from app.db.database import get_db
from app.db.models.member import Member
from app.domain.services.assignment_editor import AssignmentTarget
from app.domain.services.working_copy_service import WorkingCopy, WorkingCopyService

router = APIRouter()


# ==================== schemas ====================


class AssignRequest(BaseModel):
    member_id: int
    target: str
    confirm_duplicate: bool = False
    confirm_car1_imbalance: bool = False


class UnassignRequest(BaseModel):
    member_id: int
    target: str


class CarEntry(BaseModel):
    car_number: int
    color: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    license_plate: Optional[str] = None

    @field_validator("color", "make", "model", "license_plate")
    @classmethod
    def sanitize(cls, v: Optional[str]) -> Optional[str]:
        return sanitized_text_validator(v, max_length=50)


class CarsRequest(BaseModel):
    cars: List[CarEntry]


class NotesRequest(BaseModel):
    leadership: Optional[dict[str, Any]] = None
    car_roles: Optional[dict[str, Any]] = None
    couch_phone_roles: Optional[dict[str, Any]] = None
    summary: Optional[str] = None

    @field_validator("summary")
    @classmethod
    def sanitize_summary(cls, v: Optional[str]) -> Optional[str]:
        return sanitized_text_validator(v, max_length=5000)


class ProgressUpdateRequest(BaseModel):
    text: str


class WorkingCopyResponse(BaseModel):
    ndr_id: int
    assignments: dict[str, Any]
    cars: List[dict[str, Any]]
    notes: dict[str, Any]
    revision: int
    flushed_revision: int
    dirty: bool
    editable: bool
    car1: dict[str, Any]


class FlushResponse(BaseModel):
    ndr_id: int
    flushed: bool


def get_working_copy_service(
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
) -> WorkingCopyService:
    return WorkingCopyService(db, redis)


async def _working_copy_response(service: WorkingCopyService, working: WorkingCopy) -> WorkingCopyResponse:
    car1 = await service.car1_compliance(working)
    return WorkingCopyResponse(
        ndr_id=working.ndr_id,
        assignments=working.assignments,
        cars=working.cars,
        notes=working.notes,
        revision=working.revision,
        flushed_revision=working.flushed_revision,
        dirty=working.dirty,
        editable=working.editable,
        car1=car1.to_dict(),
    )


# ==================== endpoints ====================


@router.get("/{ndr_id}/working-copy", response_model=WorkingCopyResponse)
async def get_working_copy(
    ndr_id: int,
    member: Member = Depends(get_current_member),
    service: WorkingCopyService = Depends(get_working_copy_service),
) -> WorkingCopyResponse:
    working = await service.load(ndr_id)
    return await _working_copy_response(service, working)


@router.post("/{ndr_id}/assignments/assign")
async def assign_member(
    ndr_id: int,
    body: AssignRequest,
    member: Member = Depends(require_deputy),
    service: WorkingCopyService = Depends(get_working_copy_service),
) -> dict[str, Any]:
    """409 with the warnings when the assignment needs confirmation"""
    outcome = await service.assign(
        ndr_id,
        body.member_id,
        AssignmentTarget.parse(body.target),
        member.id,
        confirm_duplicate=body.confirm_duplicate,
        confirm_car1_imbalance=body.confirm_car1_imbalance,
    )
    return outcome.to_dict()


@router.post("/{ndr_id}/assignments/unassign")
async def unassign_member(
    ndr_id: int,
    body: UnassignRequest,
    member: Member = Depends(require_deputy),
    service: WorkingCopyService = Depends(get_working_copy_service),
) -> dict[str, Any]:
    removed, car1 = await service.unassign(
        ndr_id,
        body.member_id,
        AssignmentTarget.parse(body.target),
        member.id,
    )
    return {"removed": removed, "car1": car1.to_dict()}


@router.put("/{ndr_id}/cars", response_model=WorkingCopyResponse)
async def replace_cars(
    ndr_id: int,
    body: CarsRequest,
    member: Member = Depends(require_deputy),
    service: WorkingCopyService = Depends(get_working_copy_service),
) -> WorkingCopyResponse:
    cars = [car.model_dump() for car in body.cars]
    working = await service.replace_cars(ndr_id, cars, member.id)
    return await _working_copy_response(service, working)


@router.put("/{ndr_id}/notes", response_model=WorkingCopyResponse)
async def replace_notes(
    ndr_id: int,
    body: NotesRequest,
    member: Member = Depends(require_deputy),
    service: WorkingCopyService = Depends(get_working_copy_service),
) -> WorkingCopyResponse:
    working = await service.replace_notes(ndr_id, body.model_dump(exclude_unset=True), member.id)
    return await _working_copy_response(service, working)


@router.post("/{ndr_id}/updates", status_code=201)
async def add_progress_update(
    ndr_id: int,
    body: ProgressUpdateRequest,
    member: Member = Depends(get_current_member),
    service: WorkingCopyService = Depends(get_working_copy_service),
) -> dict[str, Any]:
    return await service.add_progress_update(ndr_id, body.text, member.id)


@router.post("/{ndr_id}/draft/flush", response_model=FlushResponse)
async def flush_draft(
    ndr_id: int,
    member: Member = Depends(get_current_member),
    service: WorkingCopyService = Depends(get_working_copy_service),
) -> FlushResponse:
    """Final flush when the editor closes; writes the latest staged revision"""
    flushed = await service.flush(ndr_id)
    return FlushResponse(ndr_id=ndr_id, flushed=flushed)
