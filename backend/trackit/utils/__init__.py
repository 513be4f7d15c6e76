from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Make a naive datetime timezone-aware (UTC). Already-aware datetimes pass through.

    MongoDB hands datetimes back without tzinfo. Wrap them before comparing
    with utcnow() to avoid mixing naive and aware values.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def as_utc(dt: datetime | None) -> datetime | None:
    """None-safe UTC conversion for JSON serialization at API boundaries."""
    if dt is None:
        return None
    return ensure_utc(dt)


def parse_utc(value: str | int | float | datetime | None) -> datetime | None:
    """Parse an upstream timestamp into a tz-aware UTC datetime.

    Accepts ISO 8601 strings (with or without Z/offset), epoch values in
    seconds or milliseconds, and datetimes. Unparseable input returns None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)):
        # Epoch milliseconds are > 1e11 for any date after 1973
        seconds = value / 1000 if value > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    text = str(value).strip()
    if not text:
        return None
    if text.isdigit():
        return parse_utc(int(text))
    try:
        return ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        return None


def age_seconds(dt: datetime | None) -> float | None:
    """Seconds elapsed since dt, or None when dt is missing."""
    if dt is None:
        return None
    return round((utcnow() - ensure_utc(dt)).total_seconds(), 1)
