"""
Carpool NDR Service - Main FastAPI Application
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api.routes import router as api_router
from app.core.config import settings
from app.core.logging import get_logger, setup_logging
from app.core.middleware import setup_exception_handlers, setup_middleware
from app.core.redis_client import close_redis
from app.db.database import create_tables, engine

# Setup logging before anything else
setup_logging(
    level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL,
    json_format=settings.LOG_JSON and not settings.DEBUG,
    app_name=settings.APP_NAME,
)

logger = get_logger(__name__)


_OPENAPI_TAGS = [
    {"name": "ndrs", "description": "Night duty runs: lifecycle, live stats, summaries and reports."},
    {"name": "assignments", "description": "Assignment editor for the active NDR (autosaved drafts)."},
    {"name": "rides", "description": "Phone-room ride intake and dispatch."},
    {"name": "blacklist", "description": "Address and phone blacklists."},
    {"name": "members", "description": "Member registration and approval."},
    {"name": "events", "description": "Calendar events and signups."},
    {"name": "stream", "description": "Server-Sent Events feed of NDR changes."},
    {"name": "health", "description": "Liveness and readiness checks."},
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info(
        "Starting application",
        extra_data={"app_name": settings.APP_NAME, "environment": settings.ENVIRONMENT},
    )
    await create_tables()
    logger.info("Database tables initialized")
    try:
        yield
    finally:
        logger.info("Shutting down application")
        await close_redis()
        # release pooled connections
        await engine.dispose()
        logger.info("Database connections disposed")


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Dispatch backend for a student safe-ride organization's night duty runs.",
    openapi_tags=_OPENAPI_TAGS,
    lifespan=lifespan,
)

setup_middleware(app)
setup_exception_handlers(app)

app.include_router(api_router, prefix="/api")
