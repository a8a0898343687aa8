"""
Domain Services
"""
from app.domain.services.blacklist_service import BlacklistService
from app.domain.services.event_service import EventService
from app.domain.services.member_service import MemberService
from app.domain.services.ndr_lifecycle_service import NDRLifecycleService
from app.domain.services.ride_service import RideService
from app.domain.services.ride_stats_service import RideStatsService
from app.domain.services.working_copy_service import WorkingCopyService

__all__ = [
    "BlacklistService",
    "EventService",
    "MemberService",
    "NDRLifecycleService",
    "RideService",
    "RideStatsService",
    "WorkingCopyService",
]
