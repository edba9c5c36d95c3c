from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are taken to be UTC"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_db(dt: Optional[datetime]) -> Optional[datetime]:
    """Columns hold naive UTC so comparisons behave the same on every backend"""
    if dt is None:
        return None
    return ensure_utc(dt).replace(tzinfo=None)
