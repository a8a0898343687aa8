"""
Ride statistics - per-status ride and rider counts for one NDR
"""
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.ride import Ride, RideStatus


class RideLike(Protocol):
    status: Any
    riders: Optional[int]


@dataclass(frozen=True)
class StatusCount:
    rides: int = 0
    riders: int = 0


@dataclass
class RideTally:
    by_status: dict[RideStatus, StatusCount] = field(
        default_factory=lambda: {status: StatusCount() for status in RideStatus}
    )

    def count(self, status: RideStatus) -> StatusCount:
        return self.by_status[status]

    @property
    def completed_rides(self) -> int:
        return self.by_status[RideStatus.COMPLETED].rides

    @property
    def completed_riders(self) -> int:
        return self.by_status[RideStatus.COMPLETED].riders

    @property
    def cancelled_rides(self) -> int:
        return self.by_status[RideStatus.CANCELLED].rides

    @property
    def cancelled_riders(self) -> int:
        return self.by_status[RideStatus.CANCELLED].riders

    @property
    def terminated_rides(self) -> int:
        return self.by_status[RideStatus.TERMINATED].rides

    @property
    def terminated_riders(self) -> int:
        return self.by_status[RideStatus.TERMINATED].riders

    @property
    def total_rides(self) -> int:
        return sum(c.rides for c in self.by_status.values())

    @property
    def total_riders(self) -> int:
        return sum(c.riders for c in self.by_status.values())

    def final_counters(self) -> dict[str, int]:
        """Counters persisted on the NDR when it ends"""
        return {
            "completed_rides": self.completed_rides,
            "completed_riders": self.completed_riders,
            "cancelled_rides": self.cancelled_rides,
            "cancelled_riders": self.cancelled_riders,
            "terminated_rides": self.terminated_rides,
            "terminated_riders": self.terminated_riders,
        }

    def to_dict(self) -> dict[str, dict[str, int]]:
        return {
            status.value: {"rides": c.rides, "riders": c.riders}
            for status, c in self.by_status.items()
        }


def rider_count(riders: Optional[int]) -> int:
    return 1 if riders is None else riders


def tally_rides(rides: Iterable[RideLike]) -> RideTally:
    """Count rides and riders per status. A ride without a rider count is one rider."""
    rides_by_status = {status: 0 for status in RideStatus}
    riders_by_status = {status: 0 for status in RideStatus}
    for ride in rides:
        status = RideStatus(ride.status)
        rides_by_status[status] += 1
        riders_by_status[status] += rider_count(ride.riders)

    return RideTally(by_status={
        status: StatusCount(rides=rides_by_status[status], riders=riders_by_status[status])
        for status in RideStatus
    })


class RideStatsService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def tally_for_ndr(self, ndr_id: int) -> RideTally:
        result = await self.db.execute(
            select(Ride.status, Ride.riders).where(Ride.ndr_id == ndr_id)
        )
        return tally_rides(result.all())
