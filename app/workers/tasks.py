"""
Celery Tasks

- flush_ndr_draft: debounced write of an assignment-editor draft to its NDR
- check_progress_updates: periodic progress-update reminder for the active NDR
"""
import asyncio
from contextlib import contextmanager

from app.workers.celery_app import celery_app
from app.db.database import get_task_session
from app.core.exceptions import AppException
from app.core.logging import get_logger, set_correlation_id
from app.core.redis_client import redis_for_task

logger = get_logger(__name__)


@contextmanager
def get_event_loop():
    """
    Context manager for proper event loop handling in Celery tasks.
    Creates a new event loop and ensures proper cleanup to prevent resource leaks.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        yield loop
    finally:
        try:
            # the shared client would otherwise stay bound to the closed loop
            from app.core.redis_client import close_redis
            loop.run_until_complete(close_redis())
        except Exception as e:
            logger.warning(
                "Failed to close Redis at task end",
                extra_data={"error": str(e)},
            )
        try:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        finally:
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()


def run_async(coro):
    """Helper to run async code in sync Celery task with proper cleanup"""
    set_correlation_id()

    with get_event_loop() as loop:
        return loop.run_until_complete(coro)


async def _flush_draft(ndr_id: int, revision: int) -> bool:
    from app.domain.services.working_copy_service import WorkingCopyService

    async with get_task_session() as db, redis_for_task() as redis:
        return await WorkingCopyService(db, redis).flush(ndr_id, revision)


@celery_app.task(name="app.workers.tasks.flush_ndr_draft")
def flush_ndr_draft(ndr_id: int, revision: int) -> dict:
    """
    Write the staged draft if `revision` is still the newest one.

    Superseded revisions return without touching the database; the newest
    edit's own task does the write.
    """
    try:
        flushed = run_async(_flush_draft(ndr_id, revision))
    except AppException as e:
        # a concurrent write or a store outage; the draft stays staged for the next flush
        logger.warning(
            "Draft flush failed",
            extra_data={"ndr_id": ndr_id, "revision": revision, "error_code": e.error_code.value},
        )
        return {"ndr_id": ndr_id, "revision": revision, "flushed": False, "error": e.error_code.value}

    logger.info(
        "Draft flush task finished",
        extra_data={"ndr_id": ndr_id, "revision": revision, "flushed": flushed},
    )
    return {"ndr_id": ndr_id, "revision": revision, "flushed": flushed}


async def _check_progress() -> bool:
    from app.domain.services.progress_reminder import check_progress_update_due

    async with get_task_session() as db, redis_for_task() as redis:
        return await check_progress_update_due(db, redis)


@celery_app.task(name="app.workers.tasks.check_progress_updates")
def check_progress_updates() -> dict:
    """Runs every minute from beat; publishes at most one reminder per interval"""
    reminded = run_async(_check_progress())
    return {"reminded": reminded}
