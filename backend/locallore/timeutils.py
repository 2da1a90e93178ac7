from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from .config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_dt(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize datetimes to timezone-aware UTC instances."""
    if not value:
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def display_tz() -> ZoneInfo:
    return ZoneInfo(settings.display_timezone)


def format_display(value: Optional[datetime]) -> str:
    """Render a stored UTC timestamp in the campus timezone, e.g. ``Oct 3, 6:30 PM EDT``."""
    value = normalize_dt(value)
    if not value:
        return ""
    local = value.astimezone(display_tz())
    hour = local.hour % 12 or 12
    return f"{local:%b} {local.day}, {hour}:{local:%M %p %Z}"


def local_to_utc(value: datetime) -> datetime:
    """Interpret a naive wall-clock value as campus time and convert it to UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=display_tz())
    return value.astimezone(timezone.utc)
