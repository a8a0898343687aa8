"""
Custom Exception Hierarchy

Structured exceptions rendered uniformly by the API exception handlers.
"""
from typing import Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"
    NOT_FOUND = "ERR_1002"
    ALREADY_EXISTS = "ERR_1003"
    UNAUTHORIZED = "ERR_1004"
    FORBIDDEN = "ERR_1005"
    STORE_UNAVAILABLE = "ERR_1006"

    # NDR errors (2xxx)
    NDR_NOT_FOUND = "ERR_2001"
    NDR_INVALID_TRANSITION = "ERR_2002"
    NDR_ACTIVATION_CONFLICT = "ERR_2003"
    NDR_CONCURRENT_MODIFICATION = "ERR_2004"
    NDR_NONE_ACTIVE = "ERR_2005"
    NDR_READ_ONLY = "ERR_2006"

    # Assignment errors (3xxx)
    ASSIGNMENT_CONFIRMATION_REQUIRED = "ERR_3001"
    ASSIGNMENT_INVALID_TARGET = "ERR_3002"

    # Ride errors (4xxx)
    RIDE_NOT_FOUND = "ERR_4001"
    RIDE_INVALID_TRANSITION = "ERR_4002"
    RIDE_BLOCKED = "ERR_4003"
    CAR_UNAVAILABLE = "ERR_4004"
    OUTSIDE_SERVICE_AREA = "ERR_4005"

    # Member / event / blacklist errors (5xxx)
    MEMBER_NOT_FOUND = "ERR_5001"
    MEMBER_NOT_APPROVED = "ERR_5002"
    MEMBER_ALREADY_EXISTS = "ERR_5003"
    EVENT_NOT_FOUND = "ERR_5004"
    BLACKLIST_ENTRY_NOT_FOUND = "ERR_5005"
    BLACKLIST_DUPLICATE = "ERR_5006"
    ANNOUNCEMENT_NOT_FOUND = "ERR_5007"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details
            }
        }


class ValidationException(AppException):
    """Raised when input validation fails"""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=details
        )
        if field:
            self.details["field"] = field


class NotFoundException(AppException):
    """Raised when a requested resource is not found"""

    def __init__(
        self,
        resource: str,
        identifier: Any,
        error_code: ErrorCode = ErrorCode.NOT_FOUND
    ):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            error_code=error_code,
            status_code=404,
            details={"resource": resource, "identifier": str(identifier)}
        )


class UnauthorizedException(AppException):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, ErrorCode.UNAUTHORIZED, status_code=401)


class ForbiddenException(AppException):
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message, ErrorCode.FORBIDDEN, status_code=403)


class StoreError(AppException):
    """A database read or write failed; the transaction was rolled back"""

    def __init__(self, operation: str, cause: Exception):
        super().__init__(
            message=f"Store operation '{operation}' failed: {cause}",
            error_code=ErrorCode.STORE_UNAVAILABLE,
            status_code=503,
            details={"operation": operation, "cause": type(cause).__name__}
        )


# ==================== NDR ====================


class NDRException(AppException):
    """Base exception for night duty run errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        ndr_id: int | None = None,
        status_code: int = 409,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status_code,
            details=details
        )
        if ndr_id is not None:
            self.details["ndr_id"] = ndr_id


class NDRNotFoundError(NDRException):
    def __init__(self, ndr_id: int):
        super().__init__(
            message=f"NDR not found: {ndr_id}",
            error_code=ErrorCode.NDR_NOT_FOUND,
            ndr_id=ndr_id,
            status_code=404
        )


class InvalidNDRTransitionError(NDRException):
    """The NDR is not in a status that allows the requested operation"""

    def __init__(self, ndr_id: int, current_status: str, requested_status: str):
        super().__init__(
            message=(
                f"NDR {ndr_id} cannot move from '{current_status}' "
                f"to '{requested_status}'"
            ),
            error_code=ErrorCode.NDR_INVALID_TRANSITION,
            ndr_id=ndr_id,
            details={
                "current_status": current_status,
                "requested_status": requested_status,
            }
        )


class ActivationConflictError(NDRException):
    """Another NDR became active concurrently"""

    def __init__(self, ndr_id: int):
        super().__init__(
            message=f"NDR {ndr_id} could not be activated: another NDR was activated concurrently",
            error_code=ErrorCode.NDR_ACTIVATION_CONFLICT,
            ndr_id=ndr_id
        )


class ConcurrentModificationError(NDRException):
    def __init__(self, ndr_id: int):
        super().__init__(
            message=f"NDR {ndr_id} was modified by someone else; reload and retry",
            error_code=ErrorCode.NDR_CONCURRENT_MODIFICATION,
            ndr_id=ndr_id
        )


class NoActiveNDRError(NDRException):
    def __init__(self):
        super().__init__(
            message="No night duty run is currently active",
            error_code=ErrorCode.NDR_NONE_ACTIVE
        )


class NDRReadOnlyError(NDRException):
    """Edits are only accepted while the NDR is active"""

    def __init__(self, ndr_id: int, status: str):
        super().__init__(
            message=f"NDR {ndr_id} is {status}; assignments are view-only",
            error_code=ErrorCode.NDR_READ_ONLY,
            ndr_id=ndr_id,
            details={"status": status}
        )


# ==================== Assignments ====================


class AssignmentConfirmationRequired(AppException):
    """The assignment needs an explicit override before it is applied"""

    def __init__(self, message: str, warnings: list[dict[str, Any]]):
        super().__init__(
            message=message,
            error_code=ErrorCode.ASSIGNMENT_CONFIRMATION_REQUIRED,
            status_code=409,
            details={"warnings": warnings}
        )


class InvalidAssignmentTargetError(ValidationException):
    def __init__(self, target: str):
        super().__init__(
            message=f"Unknown assignment target: {target}",
            field="target",
        )
        self.error_code = ErrorCode.ASSIGNMENT_INVALID_TARGET


# ==================== Rides ====================


class RideException(AppException):
    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        ride_id: int | None = None,
        status_code: int = 400,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status_code,
            details=details
        )
        if ride_id is not None:
            self.details["ride_id"] = ride_id


class RideNotFoundError(RideException):
    def __init__(self, ride_id: int):
        super().__init__(
            message=f"Ride not found: {ride_id}",
            error_code=ErrorCode.RIDE_NOT_FOUND,
            ride_id=ride_id,
            status_code=404
        )


class InvalidRideTransitionError(RideException):
    def __init__(self, ride_id: int, current_status: str, requested_status: str):
        super().__init__(
            message=f"Ride {ride_id} cannot move from '{current_status}' to '{requested_status}'",
            error_code=ErrorCode.RIDE_INVALID_TRANSITION,
            ride_id=ride_id,
            status_code=409,
            details={
                "current_status": current_status,
                "requested_status": requested_status,
            }
        )


class RideBlockedError(RideException):
    """Phone number or address is on the approved blacklist"""

    def __init__(self, kind: str, reason: str | None = None):
        super().__init__(
            message=f"Ride request blocked: {kind} is blacklisted",
            error_code=ErrorCode.RIDE_BLOCKED,
            status_code=403,
            details={"kind": kind, "reason": reason}
        )


class CarUnavailableError(RideException):
    def __init__(self, car_number: int, available_cars: int):
        message = (
            "No cars are available for this run"
            if available_cars == 0
            else f"Car {car_number} is not available (cars 1-{available_cars})"
        )
        super().__init__(
            message=message,
            error_code=ErrorCode.CAR_UNAVAILABLE,
            status_code=409,
            details={"car_number": car_number, "available_cars": available_cars}
        )


class OutsideServiceAreaError(RideException):
    def __init__(self, field: str, distance_miles: float, radius_miles: float):
        super().__init__(
            message=f"{field} is {distance_miles:.1f} miles from the service area center",
            error_code=ErrorCode.OUTSIDE_SERVICE_AREA,
            details={
                "field": field,
                "distance_miles": round(distance_miles, 2),
                "radius_miles": radius_miles,
            }
        )


# ==================== Members / events / blacklist ====================


class MemberNotFoundError(NotFoundException):
    def __init__(self, member_id: int):
        super().__init__("Member", member_id, ErrorCode.MEMBER_NOT_FOUND)


class MemberNotApprovedError(AppException):
    def __init__(self, member_id: int):
        super().__init__(
            message=f"Member {member_id} is not approved",
            error_code=ErrorCode.MEMBER_NOT_APPROVED,
            status_code=403,
            details={"member_id": member_id}
        )


class MemberAlreadyExistsError(AppException):
    def __init__(self, email: str):
        super().__init__(
            message="A member with this email already exists",
            error_code=ErrorCode.MEMBER_ALREADY_EXISTS,
            status_code=409,
            details={"email": email}
        )


class EventNotFoundError(NotFoundException):
    def __init__(self, event_id: int):
        super().__init__("Event", event_id, ErrorCode.EVENT_NOT_FOUND)


class BlacklistEntryNotFoundError(NotFoundException):
    def __init__(self, kind: str, entry_id: int):
        super().__init__(f"{kind.capitalize()} blacklist entry", entry_id,
                         ErrorCode.BLACKLIST_ENTRY_NOT_FOUND)


class BlacklistDuplicateError(AppException):
    def __init__(self, kind: str):
        super().__init__(
            message=f"This {kind} is already on the blacklist",
            error_code=ErrorCode.BLACKLIST_DUPLICATE,
            status_code=409,
            details={"kind": kind}
        )


class AnnouncementNotFoundError(NotFoundException):
    def __init__(self, announcement_id: int):
        super().__init__("Announcement", announcement_id, ErrorCode.ANNOUNCEMENT_NOT_FOUND)
