"""
Progress-update reminder

While an NDR is active, leadership posts a progress update every
PROGRESS_UPDATE_INTERVAL_MINUTES. When the newest update (or the activation
itself) is older than that, a progress_update_due event goes out, at most once
per interval.
"""
from datetime import datetime
from typing import Any, Optional

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.logging import get_logger
from app.core.time_utils import minutes_since, utcnow
from app.domain.services.ndr_events import NDREventType, publish_ndr_event
from app.domain.services.ndr_lifecycle_service import NDRLifecycleService
from app.domain.services.working_copy_service import WorkingCopyService

logger = get_logger(__name__)


def _reminder_key(ndr_id: int) -> str:
    return f"ndr:progress_reminder:{ndr_id}"


def last_progress_at(notes: dict[str, Any], activated_at: Optional[datetime]) -> Optional[datetime]:
    """Newest progress update timestamp, falling back to the activation time"""
    latest = activated_at
    for update in notes.get("updates") or []:
        try:
            stamp = datetime.fromisoformat(update["timestamp"])
        except (KeyError, TypeError, ValueError):
            continue
        if latest is None or stamp > latest:
            latest = stamp
    return latest


async def check_progress_update_due(
    db: AsyncSession,
    redis: aioredis.Redis,
    now: Optional[datetime] = None,
) -> bool:
    """Publish a reminder for the active NDR if one is due; True when published"""
    ndr = await NDRLifecycleService(db).get_active()
    if ndr is None:
        return False

    working = await WorkingCopyService(db, redis).load(ndr.id)
    last = last_progress_at(working.notes, ndr.activated_at)
    if last is None:
        return False

    now = now or utcnow()
    elapsed = minutes_since(last, now)
    interval = settings.PROGRESS_UPDATE_INTERVAL_MINUTES
    if elapsed < interval:
        return False

    # one reminder per interval even though the check runs every minute
    if not await redis.set(_reminder_key(ndr.id), now.isoformat(), nx=True, ex=interval * 60):
        return False

    await publish_ndr_event(
        NDREventType.PROGRESS_UPDATE_DUE,
        {"minutes_since_last_update": round(elapsed), "interval_minutes": interval},
        ndr_id=ndr.id,
        redis=redis,
    )
    logger.info(
        "Progress update reminder sent",
        extra_data={"ndr_id": ndr.id, "minutes_since_last_update": round(elapsed)},
    )
    return True
