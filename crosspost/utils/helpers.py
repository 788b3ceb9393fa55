"""General-purpose utility helpers."""
import re
from datetime import datetime, timedelta, timezone

_ISO_DURATION = re.compile(r"PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?")


def utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_count(value) -> int:
    """Coerce a platform-reported counter to a non-negative int."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        number = int(float(value))
    except (ValueError, TypeError):
        return 0
    return max(number, 0)


def parse_iso_duration(duration: str | None) -> int:
    """Parse an ISO 8601 duration (PT1H2M3S) to seconds."""
    if not duration:
        return 0
    match = _ISO_DURATION.match(duration)
    if not match:
        return 0
    hours, minutes, seconds = (int(g) if g else 0 for g in match.groups())
    return hours * 3600 + minutes * 60 + seconds


def to_seconds(delay: float | int | timedelta | None) -> float | None:
    """Normalise a delay given as seconds or timedelta."""
    if delay is None:
        return None
    if isinstance(delay, timedelta):
        return delay.total_seconds()
    return float(delay)
