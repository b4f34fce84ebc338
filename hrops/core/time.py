from datetime import datetime, timedelta, timezone

DATE_RANGES = {
    "7days": 7,
    "30days": 30,
    "90days": 90,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def range_start(date_range: str, now: datetime = None) -> datetime:
    """Start of a named look-back window. Unknown names fall back to 30 days."""
    now = now or utc_now()
    return now - timedelta(days=DATE_RANGES.get(date_range, 30))


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return value
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
