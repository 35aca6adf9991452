"""Time utilities for database models."""

from datetime import UTC, date, datetime, tzinfo


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    SQLite hands back naive datetimes even for timezone-aware columns; those
    are stored in UTC, so naive values are tagged rather than converted.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def calendar_day(value: datetime, zone: tzinfo) -> date:
    """Return the calendar date of ``value`` as seen in ``zone``."""
    return as_utc(value).astimezone(zone).date()
