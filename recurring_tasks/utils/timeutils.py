"""Timezone helpers. Naive datetimes are always treated as UTC."""
from datetime import datetime

import pytz


def utc_now() -> datetime:
    return datetime.now(pytz.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime."""
    if value.tzinfo is None:
        return pytz.utc.localize(value)
    return value.astimezone(pytz.utc)


def ensure_aware(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, leave aware ones in their own zone."""
    if value.tzinfo is None:
        return pytz.utc.localize(value)
    return value
