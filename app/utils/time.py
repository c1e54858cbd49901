"""Time utilities."""
from datetime import UTC, datetime, timedelta, timezone


def utcnow() -> datetime:
    """Return current UTC time with timezone awareness."""

    return datetime.now(tz=UTC)


def from_epoch(seconds: int | float | None) -> datetime | None:
    """Convert a vendor epoch timestamp (seconds) to an aware UTC datetime."""

    if seconds in (None, 0):
        return None
    return datetime.fromtimestamp(float(seconds), tz=UTC)


def parse_iso_utc(value: str | None) -> datetime | None:
    """Parse an ISO 8601 string and normalize it to UTC."""

    if not value:
        return None
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def ensure_aware(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on read; treat naive values as UTC."""

    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def in_minutes(minutes: int) -> datetime:
    return utcnow() + timedelta(minutes=minutes)


__all__ = ["utcnow", "from_epoch", "parse_iso_utc", "ensure_aware", "in_minutes"]
