# pricesync/utils/clock.py

"""Wall-clock and calendar-day helpers with an explicit timezone policy."""

from datetime import UTC, date, datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def resolve_timezone(name: str | None) -> tzinfo:
    """Map a timezone name to a tzinfo; empty or "UTC" means UTC."""
    if not name or name.upper() == "UTC":
        return UTC
    return ZoneInfo(name)


def ensure_aware(ts: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts


def day_bucket(ts: datetime, tz: tzinfo = UTC) -> date:
    """Return the calendar day *ts* falls on in timezone *tz*."""
    return ensure_aware(ts).astimezone(tz).date()


def day_bounds(day: date, tz: tzinfo = UTC) -> tuple[datetime, datetime]:
    """Return the UTC [start, end) instants of *day* in timezone *tz*."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = start + timedelta(days=1)
    return start.astimezone(UTC), end.astimezone(UTC)
