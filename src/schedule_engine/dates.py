"""
Date/range calculation for the daily, weekly and monthly views.

All functions are pure.  Ranges are expressed as timezone-aware datetimes in
the viewer's zone; date keys are always derived from local dates, never by
truncating an ISO-UTC string.
"""

from datetime import date
from datetime import datetime
from datetime import time
from datetime import timedelta
from datetime import tzinfo

from dateutil.tz import gettz

from schedule_engine.models import DateRange
from schedule_engine.models import ScheduleEngineError
from schedule_engine.models import ViewMode

MONTH_GRID_CELLS = 42

_END_OF_DAY = time(23, 59, 59, 999000)


def viewer_tz(name: str | None = None) -> tzinfo:
    """Return the viewer's time zone, with its daylight-saving rules.

    An empty *name* selects the system local zone.  Either way the result
    resolves the UTC offset per instant, so dates in the other DST season
    keep their local wall-clock time.
    """
    zone = gettz(name or None)
    if zone is None:
        raise ScheduleEngineError(f"Unknown time zone: {name}")
    return zone


def local_date(value: date | datetime, tz: tzinfo | None = None) -> date:
    """Calendar date of *value* as seen by the viewer."""
    if isinstance(value, datetime):
        if value.tzinfo is not None and tz is not None:
            value = value.astimezone(tz)
        return value.date()
    return value


def date_key(value: date | datetime, tz: tzinfo | None = None) -> str:
    """Canonical YYYY-MM-DD key for *value* in the viewer's zone."""
    d = local_date(value, tz)
    return f"{d.year:04d}-{d.month:02d}-{d.day:02d}"


def start_of_day(d: date, tz: tzinfo | None = None) -> datetime:
    return datetime.combine(d, time.min, tzinfo=tz)


def end_of_day(d: date, tz: tzinfo | None = None) -> datetime:
    return datetime.combine(d, _END_OF_DAY, tzinfo=tz)


def week_start(d: date) -> date:
    """Monday on or before *d*; a Sunday maps to the preceding Monday."""
    return d - timedelta(days=d.weekday())


def week_cells(reference: date | datetime, tz: tzinfo | None = None) -> list[date]:
    monday = week_start(local_date(reference, tz))
    return [monday + timedelta(days=i) for i in range(7)]


def month_cells(reference: date | datetime, tz: tzinfo | None = None) -> list[date]:
    """42 consecutive days starting on the Sunday on/before the 1st of the month."""
    first = local_date(reference, tz).replace(day=1)
    # date.weekday(): Monday=0 .. Sunday=6
    grid_start = first - timedelta(days=(first.weekday() + 1) % 7)
    return [grid_start + timedelta(days=i) for i in range(MONTH_GRID_CELLS)]


def _last_day_of_month(d: date) -> date:
    if d.month == 12:
        return date(d.year, 12, 31)
    return date(d.year, d.month + 1, 1) - timedelta(days=1)


def day_range(reference: date | datetime, tz: tzinfo | None = None) -> DateRange:
    d = local_date(reference, tz)
    return DateRange(start_of_day(d, tz), end_of_day(d, tz))


def week_range(reference: date | datetime, tz: tzinfo | None = None) -> DateRange:
    monday = week_start(local_date(reference, tz))
    return DateRange(start_of_day(monday, tz), end_of_day(monday + timedelta(days=6), tz))


def month_range(reference: date | datetime, tz: tzinfo | None = None) -> DateRange:
    d = local_date(reference, tz)
    return DateRange(start_of_day(d.replace(day=1), tz), end_of_day(_last_day_of_month(d), tz))


def compute_range(
    reference: date | datetime, mode: ViewMode, tz: tzinfo | None = None
) -> DateRange:
    """Canonical range for *reference* at granularity *mode*."""
    mode = ViewMode(mode)
    if mode is ViewMode.DAILY:
        return day_range(reference, tz)
    if mode is ViewMode.WEEKLY:
        return week_range(reference, tz)
    return month_range(reference, tz)


def compute_cells(
    reference: date | datetime, mode: ViewMode, tz: tzinfo | None = None
) -> list[date]:
    """Per-cell dates for grid views (a single cell for the daily view)."""
    mode = ViewMode(mode)
    if mode is ViewMode.WEEKLY:
        return week_cells(reference, tz)
    if mode is ViewMode.MONTHLY:
        return month_cells(reference, tz)
    return [local_date(reference, tz)]


def parse_date_key(value: str | None) -> date | None:
    """Parse a strict YYYY-MM-DD key; return None for anything else."""
    if not value or not isinstance(value, str) or len(value) != 10:
        return None
    if value[4] != "-" or value[7] != "-" or not value.replace("-", "").isdigit():
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None
