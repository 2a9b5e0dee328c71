"""UTC time helpers.

SQLite hands back naive datetimes for ``DateTime(timezone=True)`` columns, so
values read from the database are passed through ``as_utc`` before any
comparison with an aware timestamp.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
