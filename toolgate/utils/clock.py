from datetime import datetime, timezone
from typing import Callable


# Time source used for call and history timestamps
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps; aware ones are returned unchanged."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_rfc3339(value: datetime) -> str:
    """Format a timestamp as RFC 3339, treating naive values as UTC."""
    return as_utc(value).isoformat().replace("+00:00", "Z")
