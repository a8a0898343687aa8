"""
Tests for the Celery workers - app/workers/tasks.py

Covers:
- debounced draft flush (newest revision, superseded revision, failure)
- periodic progress-update reminder
- event loop handling inside tasks
- beat schedule
"""
from contextlib import asynccontextmanager, contextmanager
from unittest.mock import AsyncMock, patch

import pytest

from app.core.exceptions import ConcurrentModificationError
from app.db.models.ndr import NDRStatus
from app.domain.services.working_copy_service import WorkingCopyService, _schedule_with_celery
from app.workers import tasks
from app.workers.celery_app import celery_app
from tests.conftest import published_events


@contextmanager
def _task_resources(db_session, fake_redis):
    """Route the task's own session and Redis client to the test fixtures"""
    @asynccontextmanager
    async def _session():
        yield db_session

    @asynccontextmanager
    async def _redis():
        yield fake_redis

    with patch("app.workers.tasks.get_task_session", _session), \
         patch("app.workers.tasks.redis_for_task", _redis):
        yield


class TestFlushDraft:

    @pytest.mark.unit
    async def test_newest_revision_is_written(self, db_session, fake_redis, ndr_factory, member):
        ndr = await ndr_factory(status=NDRStatus.ACTIVE)
        await WorkingCopyService(db_session, fake_redis).replace_notes(ndr.id, {"summary": "saved"}, member.id)

        with _task_resources(db_session, fake_redis):
            assert await tasks._flush_draft(ndr.id, 1) is True

        await db_session.refresh(ndr)
        assert ndr.notes["summary"] == "saved"

    @pytest.mark.unit
    async def test_burst_of_edits_writes_once(self, db_session, fake_redis, ndr_factory, member, scheduled_flushes):
        ndr = await ndr_factory(status=NDRStatus.ACTIVE)
        service = WorkingCopyService(db_session, fake_redis)
        for text in ("a", "ab", "abc"):
            await service.replace_notes(ndr.id, {"summary": text}, member.id)

        with _task_resources(db_session, fake_redis):
            results = [await tasks._flush_draft(ndr_id, rev) for ndr_id, rev in scheduled_flushes]

        assert results == [False, False, True]
        assert len(published_events(fake_redis, "ndr_updated")) == 1

    @pytest.mark.unit
    def test_task_reports_result(self):
        with patch("app.workers.tasks.run_async", side_effect=lambda coro: (coro.close(), True)[1]):
            result = tasks.flush_ndr_draft(5, 3)
        assert result == {"ndr_id": 5, "revision": 3, "flushed": True}

    @pytest.mark.unit
    def test_task_swallows_app_errors_and_reports_code(self):
        def _fail(coro):
            coro.close()
            raise ConcurrentModificationError(5)

        with patch("app.workers.tasks.run_async", side_effect=_fail):
            result = tasks.flush_ndr_draft(5, 3)

        assert result["flushed"] is False
        assert result["error"] == "ERR_2004"

    @pytest.mark.unit
    def test_scheduler_uses_debounce_countdown(self):
        from app.core.config import settings

        with patch.object(tasks.flush_ndr_draft, "apply_async") as apply_async:
            _schedule_with_celery(7, 2)

        apply_async.assert_called_once_with(
            args=[7, 2], countdown=settings.ASSIGNMENT_AUTOSAVE_DEBOUNCE_SECONDS,
        )


class TestCheckProgressUpdates:

    @pytest.mark.unit
    async def test_reminder_through_task_helper(self, db_session, fake_redis, ndr_factory, minutes_ago):
        await ndr_factory(status=NDRStatus.ACTIVE, activated_at=minutes_ago(30))

        with _task_resources(db_session, fake_redis):
            assert await tasks._check_progress() is True

        assert published_events(fake_redis, "progress_update_due")

    @pytest.mark.unit
    def test_task_wraps_result(self):
        with patch("app.workers.tasks.run_async", side_effect=lambda coro: (coro.close(), False)[1]):
            assert tasks.check_progress_updates() == {"reminded": False}


class TestEventLoop:

    @pytest.mark.unit
    def test_run_async_returns_value_and_closes_loop(self):
        async def _value():
            return 42

        with patch("app.core.redis_client.close_redis", AsyncMock()):
            assert tasks.run_async(_value()) == 42

    @pytest.mark.unit
    def test_event_loop_is_closed_after_use(self):
        with patch("app.core.redis_client.close_redis", AsyncMock()):
            with tasks.get_event_loop() as loop:
                assert not loop.is_closed()
        assert loop.is_closed()


class TestBeatSchedule:

    @pytest.mark.unit
    def test_progress_check_runs_every_minute(self):
        entry = celery_app.conf.beat_schedule["check-progress-updates-every-minute"]
        assert entry["task"] == "app.workers.tasks.check_progress_updates"
        assert entry["schedule"] == 60.0

    @pytest.mark.unit
    def test_tasks_are_registered(self):
        assert "app.workers.tasks.flush_ndr_draft" in celery_app.tasks
        assert "app.workers.tasks.check_progress_updates" in celery_app.tasks
