"""Column types shared by the SQLModel tables."""
from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator

from recurring_tasks.utils.timeutils import ensure_utc


class UTCDateTime(TypeDecorator):
    """Stores datetimes as UTC and always loads them back timezone-aware.

    SQLite drops tzinfo on the way in, so the value is normalized to UTC
    before binding and UTC is re-attached on load.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = ensure_utc(value)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return ensure_utc(value)
