"""
Car Location Service - live positions reported by car navigators

Each car of the active NDR keeps a single row holding its latest fix. The
couch map reads all rows for the NDR; a row older than
CAR_LOCATION_STALE_SECONDS is shown as stale rather than hidden.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.logging import get_logger
from app.core.time_utils import utcnow
from app.db.database import commit_or_rollback
from app.db.models.car_location import CarLocation
from app.db.models.ndr import NDR
from app.domain.services.ndr_events import NDREventType, publish_ndr_event
from app.domain.services.ride_service import check_car_available

logger = get_logger(__name__)


@dataclass
class CarPosition:
    car_number: int
    latitude: float
    longitude: float
    accuracy: Optional[float]
    updated_at: datetime
    stale: bool

    @classmethod
    def from_row(cls, row: CarLocation, now: datetime) -> "CarPosition":
        age = now - row.updated_at
        return cls(
            car_number=row.car_number,
            latitude=row.latitude,
            longitude=row.longitude,
            accuracy=row.accuracy,
            updated_at=row.updated_at,
            stale=age > timedelta(seconds=settings.CAR_LOCATION_STALE_SECONDS),
        )


class CarLocationService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_row(self, ndr_id: int, car_number: int) -> Optional[CarLocation]:
        result = await self.db.execute(
            select(CarLocation).where(
                CarLocation.ndr_id == ndr_id,
                CarLocation.car_number == car_number,
            )
        )
        return result.scalar_one_or_none()

    async def report(
        self,
        ndr: NDR,
        car_number: int,
        latitude: float,
        longitude: float,
        accuracy: Optional[float] = None,
        reported_by_id: Optional[int] = None,
    ) -> CarPosition:
        """Store the car's latest fix, replacing the previous one"""
        check_car_available(ndr, car_number)
        ndr_id = ndr.id
        now = utcnow()

        def _apply(row: CarLocation) -> CarLocation:
            row.latitude = latitude
            row.longitude = longitude
            row.accuracy = accuracy
            row.reported_by_id = reported_by_id
            row.updated_at = now
            return row

        row = await self._get_row(ndr_id, car_number)
        if row is None:
            row = _apply(CarLocation(ndr_id=ndr_id, car_number=car_number))
            self.db.add(row)
            try:
                await self.db.flush()
            except IntegrityError:
                # a concurrent first report for the same car created the row
                await self.db.rollback()
                row = _apply(await self._get_row(ndr_id, car_number))
        else:
            _apply(row)
        await commit_or_rollback(self.db, "car_location.report")

        logger.debug(
            "Car location reported",
            extra_data={"ndr_id": ndr_id, "car_number": car_number, "reported_by": reported_by_id},
        )
        await publish_ndr_event(
            NDREventType.CAR_LOCATION_UPDATED,
            {"car_number": car_number, "latitude": latitude, "longitude": longitude},
            ndr_id=ndr_id,
            keep_history=False,
        )
        return CarPosition.from_row(row, now)

    async def list_positions(self, ndr_id: int) -> list[CarPosition]:
        result = await self.db.execute(
            select(CarLocation)
            .where(CarLocation.ndr_id == ndr_id)
            .order_by(CarLocation.car_number)
        )
        now = utcnow()
        return [CarPosition.from_row(row, now) for row in result.scalars().all()]
