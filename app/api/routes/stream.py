"""
NDR event stream - Server-Sent Events relay of the Redis ndr_events channel

Clients connect to /stream with a JWT (header or `token` query param, since
EventSource cannot set headers) and receive every published NDR event.
"""
import asyncio
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from app.api.dependencies.auth import get_current_member, get_stream_member
from app.core.logging import get_logger
from app.core.redis_client import get_redis
from app.db.models.member import Member
from app.domain.services.ndr_events import CHANNEL, get_event_history

logger = get_logger(__name__)

router = APIRouter()

# seconds between heartbeat comments; keeps proxies from closing the connection
_SSE_HEARTBEAT_INTERVAL = 30


class EventHistoryResponse(BaseModel):
    events: list[dict]
    count: int


async def _sse_event_generator(
    member_id: int,
    request: Request,
) -> AsyncGenerator[str, None]:
    redis = await get_redis()
    pubsub = redis.pubsub()

    try:
        await pubsub.subscribe(CHANNEL)
        logger.info("SSE client connected", extra_data={"member_id": member_id})

        while True:
            if await request.is_disconnected():
                logger.info("SSE client disconnected", extra_data={"member_id": member_id})
                break

            message = await pubsub.get_message(
                ignore_subscribe_messages=True,
                timeout=_SSE_HEARTBEAT_INTERVAL,
            )

            if message and message["type"] == "message":
                data = message["data"]
                if isinstance(data, bytes):
                    data = data.decode("utf-8")
                yield f"data: {data}\n\n"
            else:
                yield ": heartbeat\n\n"

    except asyncio.CancelledError:
        logger.info("SSE connection cancelled", extra_data={"member_id": member_id})
    except Exception as e:
        logger.error(
            "SSE stream failed",
            extra_data={"member_id": member_id, "error": str(e)},
            exc_info=True,
        )
    finally:
        try:
            await pubsub.unsubscribe(CHANNEL)
            await pubsub.aclose()
        except Exception as e:
            logger.warning("SSE pubsub cleanup failed", extra_data={"error": str(e)})
        logger.info("SSE resources released", extra_data={"member_id": member_id})


@router.get(
    "/stream",
    summary="Live NDR events (SSE)",
    description=(
        "Server-Sent Events stream of NDR and ride changes.\n\n"
        "Event types: `ndr_activated`, `ndr_ended`, `ndr_archived`, `ndr_updated`, "
        "`ride_created`, `ride_updated`, `progress_update_due`.\n\n"
        "```js\n"
        "const es = new EventSource('/api/stream?token=JWT_TOKEN');\n"
        "es.onmessage = (e) => console.log(JSON.parse(e.data));\n"
        "```"
    ),
    responses={
        200: {"content": {"text/event-stream": {}}},
        401: {"description": "Missing, invalid or expired token"},
        403: {"description": "Member not approved"},
    },
)
async def event_stream(
    request: Request,
    member: Member = Depends(get_stream_member),
) -> StreamingResponse:
    return StreamingResponse(
        _sse_event_generator(member.id, request),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/stream/history", response_model=EventHistoryResponse)
async def event_history(
    limit: int = Query(50, ge=1, le=100),
    member: Member = Depends(get_current_member),
) -> EventHistoryResponse:
    """Most recent events first, for screens that reconnect"""
    events = await get_event_history(limit=limit)
    return EventHistoryResponse(events=events, count=len(events))
