"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async, in-memory SQLite)
- In-memory Redis and a recorded Celery scheduler
- Test data factories and auth headers
"""
# settings are read at import time, so the environment is set before importing app
import os
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-for-testing-only-do-not-use-in-production")

import pytest
from datetime import datetime, timedelta
from typing import Any, AsyncGenerator, Optional
from unittest.mock import patch

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.auth import create_access_token
from app.core.config import settings
from app.core.redis_client import get_redis
from app.core.time_utils import utcnow
from app.db.database import Base, get_db
from app.db.models.blacklist import BLACKLIST_MODELS, BlacklistKind, BlacklistScope, BlacklistStatus
from app.db.models.event import Event, EventType
from app.db.models.member import ApprovalStatus, Member, MemberRole
from app.db.models.ndr import NDR, NDRStatus, default_assignments, default_notes
from app.db.models.ride import Ride, RideStatus
from app.domain.services.blacklist_service import blacklist_lookup_key
from app.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
async def test_client(db_session: AsyncSession, fake_redis):
    """Create test client with database and Redis overrides"""
    from httpx import AsyncClient, ASGITransport

    async def override_get_db():
        yield db_session

    async def override_get_redis():
        return fake_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Redis and Celery
# ============================================================================


class FakeRedis:
    """In-memory stand-in for redis.asyncio with TTL bookkeeping and a publish log"""

    def __init__(self) -> None:
        self._store: dict[str, Any] = {}
        self._lists: dict[str, list[str]] = {}
        self._ttls: dict[str, int] = {}
        self.published: list[tuple[str, str]] = []

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> Optional[str]:
        return self._store.get(key)

    async def set(self, key: str, value: Any, nx: bool = False, ex: Optional[int] = None) -> Optional[bool]:
        if nx and key in self._store:
            return None
        self._store[key] = str(value)
        if ex is not None:
            self._ttls[key] = ex
        return True

    async def incr(self, key: str) -> int:
        current = self._store.get(key)
        new_val = int(current) + 1 if current is not None else 1
        self._store[key] = str(new_val)
        return new_val

    async def expire(self, key: str, seconds: int) -> bool:
        if key not in self._store and key not in self._lists:
            return False
        self._ttls[key] = seconds
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._store.pop(key, None) is not None or self._lists.pop(key, None) is not None:
                removed += 1
            self._ttls.pop(key, None)
        return removed

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return 0

    async def lpush(self, key: str, *values: str) -> int:
        items = self._lists.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    async def ltrim(self, key: str, start: int, end: int) -> None:
        items = self._lists.get(key, [])
        self._lists[key] = items[start:end + 1]

    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        items = self._lists.get(key, [])
        return items[start:] if end == -1 else items[start:end + 1]

    def ttl_of(self, key: str) -> Optional[int]:
        return self._ttls.get(key)

    async def aclose(self) -> None:
        self._store.clear()
        self._lists.clear()
        self._ttls.clear()


@pytest.fixture(autouse=True)
def fake_redis():
    """Replace every get_redis lookup with one FakeRedis per test"""
    _fake = FakeRedis()

    async def _get_fake_redis():
        return _fake

    with patch("app.core.redis_client.get_redis", _get_fake_redis), \
         patch("app.domain.services.ndr_events.get_redis", _get_fake_redis), \
         patch("app.domain.services.health_service.get_redis", _get_fake_redis), \
         patch("app.api.routes.stream.get_redis", _get_fake_redis):
        yield _fake


@pytest.fixture(autouse=True)
def scheduled_flushes():
    """Record debounced flush scheduling instead of talking to a Celery broker"""
    calls: list[tuple[int, int]] = []

    def _record(ndr_id: int, revision: int) -> None:
        calls.append((ndr_id, revision))

    with patch("app.domain.services.working_copy_service._schedule_with_celery", _record):
        yield calls


def published_events(fake: FakeRedis, event_type: Optional[str] = None) -> list[dict]:
    import json

    events = [json.loads(message) for _, message in fake.published]
    if event_type is None:
        return events
    return [e for e in events if e["type"] == event_type]


# ============================================================================
# Test Data Factories
# ============================================================================


@pytest.fixture
def member_factory(db_session: AsyncSession):
    """Factory for creating approved members"""
    counter = {"n": 0}

    async def _create_member(
        name: str = "Test Member",
        email: Optional[str] = None,
        gender: Optional[str] = None,
        role: MemberRole = MemberRole.MEMBER,
        approval_status: ApprovalStatus = ApprovalStatus.APPROVED,
        phone: Optional[str] = None,
        is_active: bool = True,
    ) -> Member:
        counter["n"] += 1
        member = Member(
            name=name,
            email=email or f"member{counter['n']}@example.edu",
            phone=phone,
            gender=gender,
            role=role,
            approval_status=approval_status,
            is_active=is_active,
        )
        db_session.add(member)
        await db_session.commit()
        await db_session.refresh(member)
        return member

    return _create_member


@pytest.fixture
def ndr_factory(db_session: AsyncSession):
    """Factory for creating NDRs in any status"""
    async def _create_ndr(
        event_name: str = "Friday Night Ops",
        status: NDRStatus = NDRStatus.PENDING,
        available_cars: int = 3,
        event_date: Optional[datetime] = None,
        assignments: Optional[dict] = None,
        cars: Optional[list] = None,
        notes: Optional[dict] = None,
        signed_up_members: Optional[list] = None,
        activated_at: Optional[datetime] = None,
    ) -> NDR:
        ndr = NDR(
            event_name=event_name,
            event_date=event_date or datetime(2026, 3, 6, 22, 0),
            location="Student Center",
            status=status,
            available_cars=available_cars,
            signed_up_members=signed_up_members or [],
            assignments=assignments or default_assignments(),
            cars=cars or [],
            notes=notes or default_notes(),
            activated_at=activated_at or (utcnow() if status == NDRStatus.ACTIVE else None),
        )
        db_session.add(ndr)
        await db_session.commit()
        await db_session.refresh(ndr)
        return ndr

    return _create_ndr


@pytest.fixture
def ride_factory(db_session: AsyncSession):
    """Factory for creating rides"""
    async def _create_ride(
        ndr_id: int,
        status: RideStatus = RideStatus.PENDING,
        riders: Optional[int] = 1,
        patron_name: str = "Pat Patron",
        phone: str = "+19795550100",
        pickup: str = "100 Main St",
        dropoff: str = "200 College Ave",
        car_number: Optional[int] = None,
    ) -> Ride:
        ride = Ride(
            ndr_id=ndr_id,
            patron_name=patron_name,
            phone=phone,
            pickup=pickup,
            dropoff=dropoff,
            riders=riders,
            status=status,
            car_number=car_number,
            requested_at=utcnow(),
        )
        db_session.add(ride)
        await db_session.commit()
        await db_session.refresh(ride)
        return ride

    return _create_ride


@pytest.fixture
def blacklist_factory(db_session: AsyncSession):
    """Factory for creating blacklist entries directly"""
    async def _create_entry(
        kind: BlacklistKind,
        value: str,
        scope: BlacklistScope = BlacklistScope.PERMANENT,
        status: BlacklistStatus = BlacklistStatus.APPROVED,
        ndr_id: Optional[int] = None,
        reason: Optional[str] = "test",
    ):
        model = BLACKLIST_MODELS[kind]
        entry = model(
            value=value,
            lookup_key=blacklist_lookup_key(kind, value),
            reason=reason,
            scope=scope,
            status=status,
            ndr_id=ndr_id,
        )
        db_session.add(entry)
        await db_session.commit()
        await db_session.refresh(entry)
        return entry

    return _create_entry


@pytest.fixture
def event_factory(db_session: AsyncSession):
    async def _create_event(
        name: str = "Chapter Meeting",
        event_type: EventType = EventType.MEETING,
        starts_at: Optional[datetime] = None,
    ) -> Event:
        event = Event(
            name=name,
            event_type=event_type,
            starts_at=starts_at or datetime(2026, 3, 2, 19, 0),
            signed_up_members=[],
        )
        db_session.add(event)
        await db_session.commit()
        await db_session.refresh(event)
        return event

    return _create_event


# ============================================================================
# Sample Test Data
# ============================================================================


@pytest.fixture
async def director(member_factory) -> Member:
    return await member_factory(
        name="Dana Director",
        email="director@example.edu",
        role=MemberRole.DIRECTOR,
        gender="female",
    )


@pytest.fixture
async def member(member_factory) -> Member:
    return await member_factory(name="Morgan Member", email="member@example.edu", gender="male")


def auth_headers_for(member: Member) -> dict[str, str]:
    token = create_access_token(member.id, member.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def director_headers(director: Member) -> dict[str, str]:
    return auth_headers_for(director)


@pytest.fixture
def member_headers(member: Member) -> dict[str, str]:
    return auth_headers_for(member)


@pytest.fixture
def minutes_ago():
    def _minutes_ago(minutes: float) -> datetime:
        return utcnow() - timedelta(minutes=minutes)
    return _minutes_ago


@pytest.fixture(autouse=True)
def set_jwt_secret():
    """Fixed JWT settings regardless of the developer's .env"""
    with patch.object(settings, "JWT_SECRET_KEY", "test-jwt-secret-key-for-testing-only-do-not-use-in-production"), \
         patch.object(settings, "JWT_ALGORITHM", "HS256"), \
         patch.object(settings, "JWT_ACCESS_TOKEN_EXPIRE_MINUTES", 60):
        yield
