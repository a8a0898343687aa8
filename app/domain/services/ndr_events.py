"""
NDR event feed - real-time notifications for dispatch screens

Events are published on one Redis Pub/Sub channel and appended to a capped
history list. The SSE endpoint relays the channel to connected clients, so a
screen that depends on "the active NDR" listens here instead of polling.
"""
import enum
import json
from typing import Any, Optional

import redis.asyncio as aioredis

from app.core.config import settings
from app.core.logging import get_logger
from app.core.redis_client import get_redis
from app.core.time_utils import utcnow

logger = get_logger(__name__)

CHANNEL = "ndr_events"
_HISTORY_KEY = "ndr_event_history"


class NDREventType(str, enum.Enum):
    NDR_ACTIVATED = "ndr_activated"
    NDR_ENDED = "ndr_ended"
    NDR_ARCHIVED = "ndr_archived"
    NDR_UPDATED = "ndr_updated"
    RIDE_CREATED = "ride_created"
    RIDE_UPDATED = "ride_updated"
    PROGRESS_UPDATE_DUE = "progress_update_due"
    CAR_LOCATION_UPDATED = "car_location_updated"
    COUCH_MESSAGE_SENT = "couch_message_sent"
    ANNOUNCEMENT_PUBLISHED = "announcement_published"


def build_event(
    event_type: NDREventType,
    data: dict[str, Any],
    ndr_id: Optional[int] = None,
) -> dict[str, Any]:
    return {
        "type": event_type.value,
        "ndr_id": ndr_id,
        "data": data,
        "timestamp": utcnow().isoformat() + "Z",
    }


async def publish_ndr_event(
    event_type: NDREventType,
    data: dict[str, Any],
    ndr_id: Optional[int] = None,
    redis: Optional[aioredis.Redis] = None,
    keep_history: bool = True,
) -> None:
    """Publish an event and, unless keep_history is off, keep it in the history list.

    Publishing is fire-and-forget: the state change it reports is already
    committed, so a Redis failure is logged and not raised.
    """
    message = json.dumps(build_event(event_type, data, ndr_id), ensure_ascii=False, default=str)
    try:
        client = redis or await get_redis()
        await client.publish(CHANNEL, message)
        if keep_history:
            await client.lpush(_HISTORY_KEY, message)
            await client.ltrim(_HISTORY_KEY, 0, settings.NDR_EVENT_HISTORY_SIZE - 1)
        logger.info(
            "NDR event published",
            extra_data={"event_type": event_type.value, "ndr_id": ndr_id},
        )
    except Exception as e:
        logger.error(
            "Failed to publish NDR event",
            extra_data={"event_type": event_type.value, "ndr_id": ndr_id, "error": str(e)},
            exc_info=True,
        )


async def get_event_history(limit: int = 50) -> list[dict[str, Any]]:
    """Most recent events first"""
    redis = await get_redis()
    raw_items = await redis.lrange(_HISTORY_KEY, 0, limit - 1)
    return [json.loads(item) for item in raw_items]
