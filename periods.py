from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings


@dataclass(frozen=True)
class Period:
    slug: str
    start: datetime
    end: datetime


def local_now() -> datetime:
    """Current wall-clock time as a naive datetime in the configured zone.

    Falls back to the server's local time when no zone is configured.
    """
    tz_name = get_settings().timezone
    if tz_name:
        return datetime.now(ZoneInfo(tz_name)).replace(tzinfo=None)
    return datetime.now()


def to_local_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    tz_name = get_settings().timezone
    target = ZoneInfo(tz_name) if tz_name else None
    return value.astimezone(target).replace(tzinfo=None)


def _last_day_of_month(first: date) -> date:
    if first.month == 12:
        next_month = first.replace(year=first.year + 1, month=1)
    else:
        next_month = first.replace(month=first.month + 1)
    return next_month - date.resolution


def month_window(now: Optional[datetime] = None) -> Period:
    now = now or local_now()
    first = now.date().replace(day=1)
    last = _last_day_of_month(first)
    return Period(
        "this_month",
        datetime.combine(first, time.min),
        datetime.combine(last, time(23, 59, 59)),
    )
