"""
Ride Service - phone-room intake and ride status updates

Rides always belong to the active NDR. Intake rejects approved-blacklisted
phone numbers and addresses and, when a service area is configured, pickup or
dropoff coordinates outside it.
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    CarUnavailableError,
    InvalidRideTransitionError,
    NoActiveNDRError,
    OutsideServiceAreaError,
    RideBlockedError,
    RideNotFoundError,
    ValidationException,
)
from app.core.logging import get_logger, mask_phone
from app.core.time_utils import utcnow
from app.core.validation import configured_service_area
from app.db.database import commit_or_rollback
from app.db.models.blacklist import BlacklistKind
from app.db.models.ndr import NDR, NDRStatus
from app.db.models.ride import Ride, RideStatus
from app.domain.services.blacklist_service import BlacklistService
from app.domain.services.ndr_events import NDREventType, publish_ndr_event
from app.state_machine.states import RIDE_TRANSITIONS, is_valid_transition

logger = get_logger(__name__)


def _check_coordinates(field: str, lat: Optional[float], lng: Optional[float]) -> None:
    if lat is None and lng is None:
        return
    if lat is None or lng is None:
        raise ValidationException(f"{field} needs both latitude and longitude", field=field)
    area = configured_service_area()
    if area is None:
        return
    distance = area.distance_from_center(lat, lng)
    if distance > area.radius_miles:
        raise OutsideServiceAreaError(field, distance, area.radius_miles)


def check_car_available(ndr: NDR, car_number: int) -> None:
    """Cars are numbered 1..available_cars for the run"""
    available = ndr.available_cars or 0
    if not 1 <= car_number <= available:
        raise CarUnavailableError(car_number, available)


class RideService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.blacklist = BlacklistService(db)

    async def get(self, ride_id: int, lock: bool = False) -> Ride:
        query = select(Ride).where(Ride.id == ride_id)
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query)
        ride = result.scalar_one_or_none()
        if ride is None:
            raise RideNotFoundError(ride_id)
        return ride

    async def list_rides(
        self,
        ndr_id: int,
        status: Optional[RideStatus] = None,
        car_number: Optional[int] = None,
    ) -> list[Ride]:
        query = select(Ride).where(Ride.ndr_id == ndr_id).order_by(Ride.requested_at, Ride.id)
        if status is not None:
            query = query.where(Ride.status == status)
        if car_number is not None:
            query = query.where(Ride.car_number == car_number)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def _get_for_ndr(self, ndr: NDR, ride_id: int) -> Ride:
        """Locked ride row; rides of other NDRs cannot be changed through this one"""
        ride = await self.get(ride_id, lock=True)
        if ride.ndr_id != ndr.id:
            raise ValidationException("Ride does not belong to the active NDR", field="ride_id")
        return ride

    async def _require_still_active(self, ndr: NDR) -> None:
        """Lock the NDR row so an end cannot commit between this check and the insert"""
        result = await self.db.execute(
            select(NDR.status).where(NDR.id == ndr.id).with_for_update()
        )
        if result.scalar_one_or_none() != NDRStatus.ACTIVE:
            raise NoActiveNDRError()

    async def request_ride(
        self,
        ndr: NDR,
        patron_name: str,
        phone: str,
        pickup: str,
        dropoff: str,
        riders: int = 1,
        pickup_lat: Optional[float] = None,
        pickup_lng: Optional[float] = None,
        dropoff_lat: Optional[float] = None,
        dropoff_lng: Optional[float] = None,
        notes: Optional[str] = None,
        created_by_id: Optional[int] = None,
    ) -> Ride:
        """Log a phone-in request against the active NDR"""
        await self._require_still_active(ndr)

        blocked_phone = await self.blacklist.find_block(BlacklistKind.PHONE, phone)
        if blocked_phone is not None:
            logger.warning(
                "Ride request from blacklisted phone",
                extra_data={"phone": mask_phone(phone), "ndr_id": ndr.id},
            )
            raise RideBlockedError("phone", blocked_phone.reason)

        for address in (pickup, dropoff):
            blocked_address = await self.blacklist.find_block(BlacklistKind.ADDRESS, address)
            if blocked_address is not None:
                logger.warning(
                    "Ride request for blacklisted address",
                    extra_data={"address": address, "ndr_id": ndr.id},
                )
                raise RideBlockedError("address", blocked_address.reason)

        _check_coordinates("pickup", pickup_lat, pickup_lng)
        _check_coordinates("dropoff", dropoff_lat, dropoff_lng)

        ride = Ride(
            ndr_id=ndr.id,
            patron_name=patron_name,
            phone=phone,
            pickup=pickup,
            pickup_lat=pickup_lat,
            pickup_lng=pickup_lng,
            dropoff=dropoff,
            dropoff_lat=dropoff_lat,
            dropoff_lng=dropoff_lng,
            riders=riders,
            notes=notes,
            status=RideStatus.PENDING,
            requested_at=utcnow(),
            created_by_id=created_by_id,
        )
        self.db.add(ride)
        await commit_or_rollback(self.db, "ride.request")

        logger.info(
            "Ride requested",
            extra_data={"ride_id": ride.id, "ndr_id": ndr.id, "riders": riders},
        )
        await publish_ndr_event(
            NDREventType.RIDE_CREATED,
            {"ride_id": ride.id, "riders": riders},
            ndr_id=ndr.id,
        )
        return ride

    async def _transition(self, ride: Ride, target: RideStatus) -> RideStatus:
        if not is_valid_transition(RIDE_TRANSITIONS, ride.status, target):
            raise InvalidRideTransitionError(ride.id, ride.status.value, target.value)
        previous = ride.status
        ride.status = target
        return previous

    async def _save(self, ride: Ride, previous: RideStatus, operation: str) -> Ride:
        await commit_or_rollback(self.db, operation)
        logger.info(
            "Ride status changed",
            extra_data={
                "ride_id": ride.id,
                "ndr_id": ride.ndr_id,
                "from": previous.value,
                "to": ride.status.value,
                "car_number": ride.car_number,
            },
        )
        await publish_ndr_event(
            NDREventType.RIDE_UPDATED,
            {"ride_id": ride.id, "status": ride.status.value, "car_number": ride.car_number},
            ndr_id=ride.ndr_id,
        )
        return ride

    async def assign_car(self, ndr: NDR, ride_id: int, car_number: int) -> Ride:
        """Dispatch a pending ride to one of the NDR's available cars"""
        check_car_available(ndr, car_number)

        ride = await self._get_for_ndr(ndr, ride_id)
        previous = await self._transition(ride, RideStatus.ACTIVE)
        ride.car_number = car_number
        ride.assigned_at = utcnow()
        return await self._save(ride, previous, "ride.assign_car")

    async def unassign_car(self, ndr: NDR, ride_id: int) -> Ride:
        """Put an active ride back in the queue"""
        ride = await self._get_for_ndr(ndr, ride_id)
        previous = await self._transition(ride, RideStatus.PENDING)
        ride.car_number = None
        ride.assigned_at = None
        ride.picked_up_at = None
        return await self._save(ride, previous, "ride.unassign_car")

    async def mark_picked_up(self, ndr: NDR, ride_id: int) -> Ride:
        ride = await self._get_for_ndr(ndr, ride_id)
        if ride.status != RideStatus.ACTIVE:
            raise InvalidRideTransitionError(ride.id, ride.status.value, "picked_up")
        ride.picked_up_at = utcnow()
        return await self._save(ride, RideStatus.ACTIVE, "ride.pickup")

    async def complete(self, ndr: NDR, ride_id: int) -> Ride:
        ride = await self._get_for_ndr(ndr, ride_id)
        previous = await self._transition(ride, RideStatus.COMPLETED)
        ride.completed_at = utcnow()
        return await self._save(ride, previous, "ride.complete")

    async def cancel(self, ndr: NDR, ride_id: int, reason: Optional[str]) -> Ride:
        """Patron no longer needs the ride"""
        ride = await self._get_for_ndr(ndr, ride_id)
        previous = await self._transition(ride, RideStatus.CANCELLED)
        ride.cancellation_reason = reason
        ride.completed_at = utcnow()
        return await self._save(ride, previous, "ride.cancel")

    async def terminate(self, ndr: NDR, ride_id: int, reason: str) -> Ride:
        """Ride refused or ended by the crew"""
        if not reason or not reason.strip():
            raise ValidationException("A termination reason is required", field="reason")
        ride = await self._get_for_ndr(ndr, ride_id)
        previous = await self._transition(ride, RideStatus.TERMINATED)
        ride.termination_reason = reason.strip()
        ride.completed_at = utcnow()
        return await self._save(ride, previous, "ride.terminate")
