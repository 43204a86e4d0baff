from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Tuple
from zoneinfo import ZoneInfo

from flask import current_app, has_app_context

DEFAULT_TZ = "Asia/Karachi"


def local_tz() -> ZoneInfo:
    """Timezone that defines the institution's calendar day."""
    name = DEFAULT_TZ
    if has_app_context():
        name = current_app.config.get("TIMEZONE") or DEFAULT_TZ
    return ZoneInfo(name)


def utc_now() -> datetime:
    """Naive UTC timestamp, the form stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def local_now() -> datetime:
    return datetime.now(local_tz())


def local_today() -> date:
    return local_now().date()


def local_day_bounds(day: date | None = None) -> Tuple[datetime, datetime]:
    """Return the [start, end) of a local calendar day as naive UTC datetimes."""
    tz = local_tz()
    day = day or local_today()
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = start + timedelta(days=1)
    return (
        start.astimezone(timezone.utc).replace(tzinfo=None),
        end.astimezone(timezone.utc).replace(tzinfo=None),
    )


def parse_date(value: Any) -> date | None:
    """Accept a date, datetime or ISO string (YYYY-MM-DD[...]) and return a date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def to_local_date(value: datetime | None) -> date | None:
    """Local calendar date of a stored (naive UTC) timestamp."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(local_tz()).date()
