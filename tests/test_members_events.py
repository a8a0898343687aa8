"""
Tests for member registration/approval and calendar events
"""
from datetime import datetime

import pytest
from sqlalchemy import select

from app.core.exceptions import (
    EventNotFoundError,
    MemberAlreadyExistsError,
    MemberNotFoundError,
    ValidationException,
)
from app.db.models.audit_log import AuditAction, AuditLog
from app.db.models.event import EventType
from app.db.models.member import ApprovalStatus, MemberRole
from app.db.models.ndr import NDR, NDRStatus
from app.domain.services.event_service import EventService
from app.domain.services.member_service import MemberService


class TestMemberService:

    @pytest.mark.unit
    async def test_register_starts_pending(self, db_session):
        member = await MemberService(db_session).register(
            "Jamie Fox", " Jamie@Example.edu ", gender=" female ",
        )
        assert member.approval_status == ApprovalStatus.PENDING
        assert member.role == MemberRole.MEMBER
        assert member.email == "jamie@example.edu"
        assert member.gender == "female"
        assert member.is_approved is False

    @pytest.mark.unit
    async def test_duplicate_email(self, db_session, member):
        with pytest.raises(MemberAlreadyExistsError):
            await MemberService(db_session).register("Other", "MEMBER@example.edu")

    @pytest.mark.unit
    async def test_approve_with_role(self, db_session, member_factory, director):
        pending = await member_factory(approval_status=ApprovalStatus.PENDING)
        approved = await MemberService(db_session).decide(
            pending.id, approve=True, director_id=director.id, role=MemberRole.DEPUTY,
        )
        assert approved.is_approved is True
        assert approved.role == MemberRole.DEPUTY
        assert approved.approved_by_id == director.id
        audit = (await db_session.scalars(select(AuditLog))).one()
        assert audit.action == AuditAction.MEMBER_APPROVED
        assert audit.details == {"member_id": pending.id, "role": "deputy"}

    @pytest.mark.unit
    async def test_reject_keeps_role(self, db_session, member_factory, director):
        pending = await member_factory(approval_status=ApprovalStatus.PENDING)
        rejected = await MemberService(db_session).decide(
            pending.id, approve=False, director_id=director.id, role=MemberRole.DIRECTOR,
        )
        assert rejected.approval_status == ApprovalStatus.REJECTED
        assert rejected.role == MemberRole.MEMBER

    @pytest.mark.unit
    async def test_decide_unknown_member(self, db_session, director):
        with pytest.raises(MemberNotFoundError):
            await MemberService(db_session).decide(999, True, director.id)

    @pytest.mark.unit
    async def test_list_by_approval_status(self, db_session, member_factory):
        pending = await member_factory(name="Pending Person", approval_status=ApprovalStatus.PENDING)
        await member_factory(name="Approved Person")
        listed = await MemberService(db_session).list_members(ApprovalStatus.PENDING)
        assert [m.id for m in listed] == [pending.id]

    @pytest.mark.unit
    async def test_names_and_genders_for(self, db_session, member, director):
        service = MemberService(db_session)
        assert await service.names_for([member.id, 404]) == {member.id: "Morgan Member"}
        assert await service.genders_for([director.id]) == {director.id: "female"}
        assert await service.get_many([]) == {}


class TestEventService:

    @pytest.mark.unit
    async def test_operating_night_gets_pending_ndr(self, db_session, director):
        event = await EventService(db_session).create_event(
            "Friday Ops", EventType.OPERATING_NIGHT, datetime(2026, 3, 6, 22, 0),
            location="Student Center", created_by_id=director.id,
        )
        assert event.ndr_id is not None
        ndr = await db_session.get(NDR, event.ndr_id)
        assert ndr.status == NDRStatus.PENDING
        assert ndr.event_id == event.id
        assert ndr.event_name == "Friday Ops"
        assert ndr.location == "Student Center"

    @pytest.mark.unit
    async def test_meeting_has_no_ndr(self, db_session):
        event = await EventService(db_session).create_event(
            "Chapter Meeting", EventType.MEETING, datetime(2026, 3, 2, 19, 0),
        )
        assert event.ndr_id is None

    @pytest.mark.unit
    async def test_end_before_start_is_rejected(self, db_session):
        with pytest.raises(ValidationException):
            await EventService(db_session).create_event(
                "Backwards", EventType.SOCIAL, datetime(2026, 3, 2, 19, 0),
                ends_at=datetime(2026, 3, 2, 18, 0),
            )

    @pytest.mark.unit
    async def test_update_syncs_linked_ndr(self, db_session):
        service = EventService(db_session)
        event = await service.create_event("Ops", EventType.OPERATING_NIGHT, datetime(2026, 3, 6, 22, 0))

        await service.update_event(event.id, name="Late Ops", starts_at=datetime(2026, 3, 6, 23, 0))

        ndr = await db_session.get(NDR, event.ndr_id)
        assert ndr.event_name == "Late Ops"
        assert ndr.event_date == datetime(2026, 3, 6, 23, 0)

    @pytest.mark.unit
    async def test_sign_up_adds_member_to_event_and_ndr_once(self, db_session, member):
        service = EventService(db_session)
        event = await service.create_event("Ops", EventType.OPERATING_NIGHT, datetime(2026, 3, 6, 22, 0))

        await service.sign_up(event.id, member.id)
        await service.sign_up(event.id, member.id)

        assert event.signed_up_members == [member.id]
        ndr = await db_session.get(NDR, event.ndr_id)
        assert ndr.signed_up_members == [member.id]

    @pytest.mark.unit
    async def test_sign_up_unknown_event(self, db_session, member):
        with pytest.raises(EventNotFoundError):
            await EventService(db_session).sign_up(77, member.id)

    @pytest.mark.unit
    async def test_list_filters(self, db_session, event_factory):
        await event_factory(name="Old", starts_at=datetime(2026, 1, 1, 19, 0))
        upcoming = await event_factory(name="New", starts_at=datetime(2026, 4, 1, 19, 0))
        await event_factory(name="Party", event_type=EventType.SOCIAL, starts_at=datetime(2026, 4, 2, 19, 0))

        listed = await EventService(db_session).list_events(
            starts_after=datetime(2026, 3, 1), event_type=EventType.MEETING,
        )
        assert [e.id for e in listed] == [upcoming.id]
