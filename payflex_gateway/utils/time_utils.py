"""Time helpers"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalise to aware UTC; naive values are taken to already be UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
