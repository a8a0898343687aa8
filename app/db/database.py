"""
Database Connection and Session Management
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

from app.core.config import settings


def _engine_kwargs() -> dict:
    kwargs: dict = {"echo": settings.DEBUG, "pool_pre_ping": True}
    if not settings.DATABASE_URL.startswith("sqlite"):
        kwargs.update(pool_size=5, max_overflow=10)
    return kwargs


engine = create_async_engine(settings.DATABASE_URL, **_engine_kwargs())

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)

Base = declarative_base()


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a request-scoped session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def create_tables() -> None:
    """Create missing tables; used for local development and first deploys"""
    import app.db.models  # noqa: F401  registers every model on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def get_task_session() -> AsyncIterator[AsyncSession]:
    """
    Fresh engine and session for a Celery task.

    Each task runs on its own event loop, and pooled connections from the
    module-level engine are bound to the loop that created them.
    """
    task_engine = create_async_engine(settings.DATABASE_URL, **_engine_kwargs())
    task_session_maker = async_sessionmaker(
        bind=task_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    try:
        async with task_session_maker() as session:
            yield session
    finally:
        await task_engine.dispose()


async def commit_or_rollback(session: AsyncSession, operation: str) -> None:
    """Commit, or roll back and raise StoreError so the caller sees one error type"""
    from sqlalchemy.exc import SQLAlchemyError

    from app.core.exceptions import StoreError

    try:
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        raise StoreError(operation, e) from e
