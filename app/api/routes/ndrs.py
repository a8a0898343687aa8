"""
NDR API Routes - lifecycle, live stats, summary and report export

Lifecycle actions (activate, end, archive, reactivate) require a director.
"""
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.auth import get_current_member, require_director
from app.api.routes.schemas import NDRListItem, NDRResponse, VersionedRequest
from app.core.exceptions import ConcurrentModificationError
from app.core.logging import get_logger
from app.core.redis_client import get_redis
from app.core.time_utils import utcnow
from app.db.database import get_db
from app.db.models.member import Member
from app.db.models.ndr import NDR, NDRStatus
from app.domain.services.export_service import generate_ndr_report_excel
from app.domain.services.ndr_lifecycle_service import NDRLifecycleService
from app.domain.services.ride_stats_service import RideStatsService
from app.domain.services.working_copy_service import WorkingCopyService

logger = get_logger(__name__)

router = APIRouter()

_XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class EndResponse(BaseModel):
    ndr: NDRResponse
    counters: dict[str, int]
    removed_blacklist_entries: int


class StatsResponse(BaseModel):
    ndr_id: int
    by_status: dict[str, dict[str, int]]
    total_rides: int
    total_riders: int


class SummaryResponse(BaseModel):
    ndr_id: int
    status: NDRStatus
    archived: bool
    summary: str


class AvailableCarsRequest(BaseModel):
    available_cars: int


def _expected_version(body: Optional[VersionedRequest]) -> Optional[int]:
    return body.expected_version if body else None


async def _activate_displacing(
    lifecycle: NDRLifecycleService,
    working_copies: WorkingCopyService,
    ndr_id: int,
    activate: Callable[[], Awaitable[NDR]],
) -> NDR:
    """Final flush of the currently active NDR's draft, then the activation that completes it"""
    displaced = await lifecycle.get_active()
    if displaced is None or displaced.id == ndr_id:
        return await activate()

    await working_copies.flush(displaced.id)
    ndr = await activate()
    await working_copies.discard(displaced.id)
    logger.info(
        "Displaced NDR draft flushed",
        extra_data={"ndr_id": ndr_id, "displaced_ndr_id": displaced.id},
    )
    return ndr


@router.get("", response_model=List[NDRListItem])
async def list_ndrs(
    status: Optional[NDRStatus] = Query(None),
    member: Member = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
) -> List[NDR]:
    return await NDRLifecycleService(db).list_ndrs(status)


@router.get("/active", response_model=Optional[NDRResponse])
async def get_active_ndr(
    member: Member = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
) -> Optional[NDR]:
    """The single active NDR, or null when none is running"""
    return await NDRLifecycleService(db).get_active()


@router.get("/reports/export")
async def export_report(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    director: Member = Depends(require_director),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """XLSX report of finished NDRs with their ride and rider counters"""
    lifecycle = NDRLifecycleService(db)
    ndrs = []
    for status in (NDRStatus.COMPLETED, NDRStatus.ARCHIVED):
        ndrs.extend(await lifecycle.list_ndrs(status))
    ndrs = [
        ndr for ndr in ndrs
        if (start_date is None or ndr.event_date >= start_date)
        and (end_date is None or ndr.event_date <= end_date)
    ]
    ndrs.sort(key=lambda n: (n.event_date, n.id))

    generated_at = utcnow()
    content = generate_ndr_report_excel(ndrs, generated_at)
    filename = f"ndr_report_{generated_at:%Y%m%d}.xlsx"
    logger.info(
        "NDR report exported",
        extra_data={"director_id": director.id, "ndr_count": len(ndrs)},
    )
    return Response(
        content=content,
        media_type=_XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{ndr_id}", response_model=NDRResponse)
async def get_ndr(
    ndr_id: int,
    member: Member = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
) -> NDR:
    return await NDRLifecycleService(db).get(ndr_id)


@router.post("/{ndr_id}/activate", response_model=NDRResponse)
async def activate_ndr(
    ndr_id: int,
    body: Optional[VersionedRequest] = None,
    director: Member = Depends(require_director),
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
) -> NDR:
    lifecycle = NDRLifecycleService(db)
    return await _activate_displacing(
        lifecycle,
        WorkingCopyService(db, redis),
        ndr_id,
        lambda: lifecycle.activate(ndr_id, director.id, _expected_version(body)),
    )


@router.post("/{ndr_id}/end", response_model=EndResponse)
async def end_ndr(
    ndr_id: int,
    body: Optional[VersionedRequest] = None,
    director: Member = Depends(require_director),
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
) -> dict[str, Any]:
    """Flush the pending editor draft, then complete the NDR"""
    lifecycle = NDRLifecycleService(db)
    expected_version = _expected_version(body)
    if expected_version is not None:
        # checked before the flush, which bumps the version itself
        ndr = await lifecycle.get(ndr_id)
        if ndr.version != expected_version:
            raise ConcurrentModificationError(ndr_id)
    await WorkingCopyService(db, redis).flush(ndr_id)
    result = await lifecycle.end(ndr_id, director.id)
    await WorkingCopyService(db, redis).discard(ndr_id)
    return {
        "ndr": result.ndr,
        "counters": result.tally.final_counters(),
        "removed_blacklist_entries": result.removed_blacklist_entries,
    }


@router.post("/{ndr_id}/archive", response_model=NDRResponse)
async def archive_ndr(
    ndr_id: int,
    body: Optional[VersionedRequest] = None,
    director: Member = Depends(require_director),
    db: AsyncSession = Depends(get_db),
) -> NDR:
    return await NDRLifecycleService(db).archive(ndr_id, director.id, _expected_version(body))


@router.post("/{ndr_id}/reactivate", response_model=NDRResponse)
async def reactivate_ndr(
    ndr_id: int,
    body: Optional[VersionedRequest] = None,
    director: Member = Depends(require_director),
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
) -> NDR:
    lifecycle = NDRLifecycleService(db)
    return await _activate_displacing(
        lifecycle,
        WorkingCopyService(db, redis),
        ndr_id,
        lambda: lifecycle.reactivate(ndr_id, director.id, _expected_version(body)),
    )


@router.patch("/{ndr_id}/cars-available", response_model=NDRResponse)
async def set_available_cars(
    ndr_id: int,
    body: AvailableCarsRequest,
    director: Member = Depends(require_director),
    db: AsyncSession = Depends(get_db),
) -> NDR:
    return await NDRLifecycleService(db).set_available_cars(ndr_id, body.available_cars)


@router.get("/{ndr_id}/stats", response_model=StatsResponse)
async def get_ndr_stats(
    ndr_id: int,
    member: Member = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
) -> StatsResponse:
    """Live per-status ride and rider counts"""
    await NDRLifecycleService(db).get(ndr_id)
    tally = await RideStatsService(db).tally_for_ndr(ndr_id)
    return StatsResponse(
        ndr_id=ndr_id,
        by_status=tally.to_dict(),
        total_rides=tally.total_rides,
        total_riders=tally.total_riders,
    )


@router.get("/{ndr_id}/summary", response_model=SummaryResponse)
async def get_ndr_summary(
    ndr_id: int,
    member: Member = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
) -> SummaryResponse:
    """Stored summary for archived NDRs, a freshly generated one otherwise"""
    lifecycle = NDRLifecycleService(db)
    ndr = await lifecycle.get(ndr_id)
    archived = ndr.status == NDRStatus.ARCHIVED and bool(ndr.archived_summary)
    summary = ndr.archived_summary if archived else await lifecycle.build_summary(ndr)
    return SummaryResponse(ndr_id=ndr_id, status=ndr.status, archived=archived, summary=summary)
