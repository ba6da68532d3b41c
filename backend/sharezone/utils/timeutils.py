from datetime import datetime, timedelta, timezone

HOUR = timedelta(hours=1)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def hours(value: float) -> timedelta:
    return timedelta(hours=value)
