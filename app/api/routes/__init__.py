"""
API Routes
"""
from fastapi import APIRouter

from app.api.routes.announcements import router as announcements_router
from app.api.routes.assignments import router as assignments_router
from app.api.routes.blacklist import router as blacklist_router
from app.api.routes.dispatch import router as dispatch_router
from app.api.routes.events import router as events_router
from app.api.routes.health import router as health_router
from app.api.routes.members import router as members_router
from app.api.routes.ndrs import router as ndrs_router
from app.api.routes.rides import router as rides_router
from app.api.routes.stream import router as stream_router

router = APIRouter()

router.include_router(health_router, tags=["health"])
router.include_router(members_router, prefix="/members", tags=["members"])
router.include_router(events_router, prefix="/events", tags=["events"])
router.include_router(ndrs_router, prefix="/ndrs", tags=["ndrs"])
router.include_router(assignments_router, prefix="/ndrs", tags=["assignments"])
router.include_router(rides_router, prefix="/rides", tags=["rides"])
router.include_router(dispatch_router, prefix="/dispatch", tags=["dispatch"])
router.include_router(blacklist_router, prefix="/blacklist", tags=["blacklist"])
router.include_router(announcements_router, prefix="/announcements", tags=["announcements"])
router.include_router(stream_router, tags=["stream"])
