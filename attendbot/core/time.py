import math
from datetime import datetime, timezone, timedelta


IST = timezone(timedelta(hours=5, minutes=30))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware_utc(dt: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone=True columns
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def fmt_dt_ist(dt: datetime | None) -> str:
    if not dt:
        return "—"
    return ensure_aware_utc(dt).astimezone(IST).strftime("%d.%m.%Y %H:%M IST")


def days_left(end_at: datetime | None, now: datetime | None = None) -> int:
    """Whole days until end_at, rounded up. 0 once it has passed."""
    if not end_at:
        return 0
    now = now or utcnow()
    seconds = (ensure_aware_utc(end_at) - now).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / 86400)


def today_local() -> str:
    return datetime.now(IST).strftime("%Y-%m-%d")
