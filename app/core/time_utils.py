"""Time helpers. Timestamps are stored as naive UTC."""
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from app.core.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_local(value: datetime) -> datetime:
    """Convert a naive UTC timestamp to the organization's timezone"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(ZoneInfo(settings.CELERY_TIMEZONE))


def format_clock(value: datetime) -> str:
    """e.g. '11:05 PM'"""
    return to_local(value).strftime("%I:%M %p").lstrip("0")


def format_date(value: datetime) -> str:
    """e.g. 'Friday, March 6, 2026'"""
    local = to_local(value)
    return f"{local.strftime('%A, %B')} {local.day}, {local.year}"


def minutes_since(value: datetime, now: datetime | None = None) -> float:
    return ((now or utcnow()) - value).total_seconds() / 60
