"""
Tests for the progress-update reminder
"""
from datetime import datetime, timedelta

import pytest

from app.core.time_utils import utcnow
from app.db.models.ndr import NDRStatus, default_notes
from app.domain.services.progress_reminder import check_progress_update_due, last_progress_at
from app.domain.services.working_copy_service import WorkingCopyService
from tests.conftest import published_events


class TestLastProgressAt:

    @pytest.mark.unit
    def test_falls_back_to_activation(self):
        activated = datetime(2026, 3, 7, 4, 0)
        assert last_progress_at({"updates": []}, activated) == activated

    @pytest.mark.unit
    def test_newest_update_wins_and_bad_stamps_are_skipped(self):
        notes = {"updates": [
            {"text": "a", "timestamp": "2026-03-07T04:30:00"},
            {"text": "b", "timestamp": "2026-03-07T05:10:00"},
            {"text": "c", "timestamp": "not a time"},
            {"text": "d"},
        ]}
        assert last_progress_at(notes, datetime(2026, 3, 7, 4, 0)) == datetime(2026, 3, 7, 5, 10)

    @pytest.mark.unit
    def test_nothing_known(self):
        assert last_progress_at({}, None) is None


class TestCheckProgressUpdateDue:

    @pytest.mark.unit
    async def test_no_active_ndr(self, db_session, fake_redis):
        assert await check_progress_update_due(db_session, fake_redis) is False
        assert fake_redis.published == []

    @pytest.mark.unit
    async def test_recent_activation_is_not_due(self, db_session, fake_redis, ndr_factory, minutes_ago):
        await ndr_factory(status=NDRStatus.ACTIVE, activated_at=minutes_ago(5))
        assert await check_progress_update_due(db_session, fake_redis) is False

    @pytest.mark.unit
    async def test_overdue_publishes_once_per_interval(self, db_session, fake_redis, ndr_factory, minutes_ago):
        ndr = await ndr_factory(status=NDRStatus.ACTIVE, activated_at=minutes_ago(20))

        assert await check_progress_update_due(db_session, fake_redis) is True
        assert await check_progress_update_due(db_session, fake_redis) is False

        events = published_events(fake_redis, "progress_update_due")
        assert len(events) == 1
        assert events[0]["ndr_id"] == ndr.id
        assert events[0]["data"]["interval_minutes"] == 15
        assert events[0]["data"]["minutes_since_last_update"] >= 20
        assert fake_redis.ttl_of(f"ndr:progress_reminder:{ndr.id}") == 15 * 60

    @pytest.mark.unit
    async def test_stored_update_resets_the_clock(self, db_session, fake_redis, ndr_factory, minutes_ago):
        notes = default_notes()
        notes["updates"] = [{"id": "x", "text": "fine", "timestamp": minutes_ago(3).isoformat()}]
        await ndr_factory(status=NDRStatus.ACTIVE, activated_at=minutes_ago(60), notes=notes)

        assert await check_progress_update_due(db_session, fake_redis) is False

    @pytest.mark.unit
    async def test_staged_update_counts_before_flush(
        self, db_session, fake_redis, ndr_factory, member, minutes_ago
    ):
        ndr = await ndr_factory(status=NDRStatus.ACTIVE, activated_at=minutes_ago(40))
        await WorkingCopyService(db_session, fake_redis).add_progress_update(ndr.id, "Two cars out", member.id)

        assert await check_progress_update_due(db_session, fake_redis) is False

    @pytest.mark.unit
    async def test_explicit_now(self, db_session, fake_redis, ndr_factory):
        activated = utcnow()
        await ndr_factory(status=NDRStatus.ACTIVE, activated_at=activated)

        later = activated + timedelta(minutes=16)
        assert await check_progress_update_due(db_session, fake_redis, now=later) is True
