"""
Stateless event-inspection helpers.
"""

from datetime import date
from datetime import datetime
from datetime import tzinfo
from typing import Any

from schedule_engine.dates import end_of_day
from schedule_engine.dates import start_of_day
from schedule_engine.models import NOISE_PHRASES
from schedule_engine.models import CalendarEvent


def parse_timestamp(value: str | datetime, tz: tzinfo | None = None) -> datetime:
    """Parse an ISO-8601 timestamp into the viewer's zone.

    Naive values are interpreted as local wall-clock time; offset-aware values
    (including a trailing ``Z``) are converted.
    """
    if isinstance(value, datetime):
        dt = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz) if tz is not None else dt
    return dt.astimezone(tz) if tz is not None else dt


def event_from_dict(data: dict[str, Any], source: str, tz: tzinfo | None = None) -> CalendarEvent:
    """Build a CalendarEvent from a collaborator's raw record."""
    start = parse_timestamp(data["start"], tz)
    end = parse_timestamp(data.get("end") or data["start"], tz)
    return CalendarEvent(
        id=str(data["id"]),
        title=data.get("title") or "Untitled",
        start=start,
        end=end,
        type=data.get("type") or "meeting",
        source=data.get("source") or source,
        google_event_id=data.get("googleEventId") or None,
        recurring_event_id=data.get("recurringEventId") or None,
        html_link=data.get("htmlLink") or None,
    )


def is_recurring_noise(event: CalendarEvent, phrases: tuple[str, ...] = NOISE_PHRASES) -> bool:
    """Return True for recurring placeholder events (office hours, lunch, ...).

    Only events that belong to a recurring series are candidates; the title
    check is a plain substring match on the lower-cased, trimmed title.
    """
    if not event.recurring_event_id:
        return False
    title = (event.title or "").strip().lower()
    return any(phrase in title for phrase in phrases)


def dedup_key(event: CalendarEvent) -> str:
    """Cross-source identity: the provider event id if present, else the local id."""
    return event.google_event_id or event.id


def overlaps_day(event: CalendarEvent, day: date, tz: tzinfo | None = None) -> bool:
    """True when the event interval touches *day* (events spanning midnight hit both days)."""
    day_start = start_of_day(day, tz)
    day_end = end_of_day(day, tz)
    start, end = event.start, event.end
    if tz is None and start.tzinfo is not None:
        day_start = day_start.replace(tzinfo=start.tzinfo)
        day_end = day_end.replace(tzinfo=start.tzinfo)
    return start <= day_end and end >= day_start


def events_for_day(
    events: list[CalendarEvent], day: date, tz: tzinfo | None = None
) -> list[CalendarEvent]:
    return [e for e in events if overlaps_day(e, day, tz)]
