"""
Input Validation Utilities

- Phone numbers (North American format, stored as E.164)
- Address normalization and blacklist lookup keys
- Text sanitization
- Service-area geofence
"""
import math
import re
from dataclasses import dataclass
from typing import Optional


class ValidationPatterns:
    """Regex patterns for validation"""

    # 10 digits with an optional leading 1
    PHONE_NANP = re.compile(r"^1?[2-9]\d{2}[2-9]\d{6}$")

    NAME = re.compile(r"^[A-Za-zÀ-ɏ\s\-\'\.]{2,100}$")

    ADDRESS = re.compile(r"^[A-Za-z0-9À-ɏ\s\,\.\-\/\'\#\&]+$")

    EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[A-Za-z]{2,}$")

    XSS_PATTERNS = [
        re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL),
        re.compile(r"javascript:", re.IGNORECASE),
        re.compile(r"\bon\w+=", re.IGNORECASE),
        re.compile(r"<iframe", re.IGNORECASE),
    ]


class PhoneNumberValidator:
    """Phone number validation and normalization"""

    @staticmethod
    def digits(phone: str) -> str:
        return re.sub(r"\D", "", phone or "")

    @staticmethod
    def validate(phone: str) -> bool:
        if not phone:
            return False
        return bool(ValidationPatterns.PHONE_NANP.match(PhoneNumberValidator.digits(phone)))

    @staticmethod
    def normalize(phone: str) -> str:
        """(979) 555-0123 -> +19795550123"""
        digits = PhoneNumberValidator.digits(phone)
        if len(digits) == 10:
            digits = "1" + digits
        return "+" + digits

    @staticmethod
    def lookup_key(phone: str) -> str:
        """Last ten digits, so +1 and local spellings match the same entry"""
        return PhoneNumberValidator.digits(phone)[-10:]


class TextSanitizer:

    @staticmethod
    def sanitize(text: str, max_length: int = 1000) -> str:
        """Trim, cap length, drop NUL bytes and collapse runs of spaces.

        HTML escaping is left to whoever renders the text.
        """
        if not text:
            return ""
        sanitized = text.strip()[:max_length].replace("\x00", "")
        return re.sub(r" +", " ", sanitized)

    @staticmethod
    def check_for_injection(text: str) -> tuple[bool, str | None]:
        if not text:
            return True, None
        for pattern in ValidationPatterns.XSS_PATTERNS:
            if pattern.search(text):
                return False, "script pattern detected"
        return True, None


_ADDRESS_ABBREVIATIONS = {
    "street": "st",
    "avenue": "ave",
    "boulevard": "blvd",
    "drive": "dr",
    "road": "rd",
    "lane": "ln",
    "court": "ct",
    "parkway": "pkwy",
    "apartment": "apt",
    "north": "n",
    "south": "s",
    "east": "e",
    "west": "w",
}


class AddressValidator:
    MIN_LENGTH = 3
    MAX_LENGTH = 300

    @staticmethod
    def validate(address: str) -> tuple[bool, str | None]:
        if not address or not address.strip():
            return False, "Address is required"

        address = address.strip()
        if len(address) < AddressValidator.MIN_LENGTH:
            return False, f"Address too short (minimum {AddressValidator.MIN_LENGTH} characters)"
        if len(address) > AddressValidator.MAX_LENGTH:
            return False, f"Address too long (maximum {AddressValidator.MAX_LENGTH} characters)"
        if not ValidationPatterns.ADDRESS.match(address):
            return False, "Address contains invalid characters"

        is_safe, pattern = TextSanitizer.check_for_injection(address)
        if not is_safe:
            return False, f"Invalid address: {pattern}"
        return True, None

    @staticmethod
    def normalize(address: str) -> str:
        if not address:
            return ""
        return re.sub(r"\s+", " ", address.strip())

    @staticmethod
    def lookup_key(address: str) -> str:
        """Case-folded, punctuation-free, abbreviated form used for blacklist matching.

        "123 North Main Street, Apt. 4" -> "123 n main st apt 4"
        """
        words = re.sub(r"[^\w\s]", " ", address.casefold()).split()
        return " ".join(_ADDRESS_ABBREVIATIONS.get(word, word) for word in words)


class NameValidator:
    MIN_LENGTH = 2
    MAX_LENGTH = 100

    @staticmethod
    def validate(name: str) -> tuple[bool, str | None]:
        if not name:
            return False, "Name is required"
        name = name.strip()
        if len(name) < NameValidator.MIN_LENGTH:
            return False, f"Name too short (minimum {NameValidator.MIN_LENGTH} characters)"
        if len(name) > NameValidator.MAX_LENGTH:
            return False, f"Name too long (maximum {NameValidator.MAX_LENGTH} characters)"
        if not ValidationPatterns.NAME.match(name):
            return False, "Name contains invalid characters"
        return True, None


# ==================== Service area ====================

EARTH_RADIUS_MILES = 3958.8


def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in miles"""
    lat1_r = math.radians(lat1)
    lat2_r = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (math.sin(dlat / 2) ** 2 +
         math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2)
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


@dataclass(frozen=True)
class ServiceArea:
    center_lat: float
    center_lng: float
    radius_miles: float

    def distance_from_center(self, lat: float, lng: float) -> float:
        return haversine_miles(self.center_lat, self.center_lng, lat, lng)

    def contains(self, lat: float, lng: float) -> bool:
        return self.distance_from_center(lat, lng) <= self.radius_miles


def configured_service_area() -> Optional[ServiceArea]:
    from app.core.config import settings

    if not settings.service_area_enabled:
        return None
    return ServiceArea(
        center_lat=settings.SERVICE_AREA_CENTER_LAT,
        center_lng=settings.SERVICE_AREA_CENTER_LNG,
        radius_miles=settings.SERVICE_AREA_RADIUS_MILES,
    )


# ==================== Pydantic field validators ====================


def phone_validator(v: str | None) -> str | None:
    if v is None:
        return None
    if not PhoneNumberValidator.validate(v):
        raise ValueError("Invalid phone number format")
    return PhoneNumberValidator.normalize(v)


def address_validator(v: str | None) -> str | None:
    if v is None:
        return None
    is_valid, error = AddressValidator.validate(v)
    if not is_valid:
        raise ValueError(error)
    return AddressValidator.normalize(v)


def name_validator(v: str | None) -> str | None:
    if v is None:
        return None
    is_valid, error = NameValidator.validate(v)
    if not is_valid:
        raise ValueError(error)
    return TextSanitizer.sanitize(v, max_length=NameValidator.MAX_LENGTH)


def email_validator(v: str) -> str:
    v = (v or "").strip().lower()
    if len(v) > 255 or not ValidationPatterns.EMAIL.match(v):
        raise ValueError("Invalid email address")
    return v


def sanitized_text_validator(v: str | None, max_length: int = 1000) -> str | None:
    if v is None:
        return None
    is_safe, pattern = TextSanitizer.check_for_injection(v)
    if not is_safe:
        raise ValueError(f"Invalid input: {pattern}")
    return TextSanitizer.sanitize(v, max_length)
