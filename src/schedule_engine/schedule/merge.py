"""
Event source merging: concurrent fetch, recurring-noise filter, dedup.
"""

import asyncio
import logging
from datetime import tzinfo

from schedule_engine.dates import date_key
from schedule_engine.models import NOISE_PHRASES
from schedule_engine.models import CalendarEvent
from schedule_engine.models import DateRange
from schedule_engine.models import Session
from schedule_engine.models import SourceUnavailableError
from schedule_engine.schedule.utils import dedup_key
from schedule_engine.schedule.utils import event_from_dict
from schedule_engine.schedule.utils import is_recurring_noise

logger = logging.getLogger(__name__)


async def fetch_source(
    name: str,
    client,
    session: Session,
    date_range: DateRange,
    tz: tzinfo | None = None,
) -> list[CalendarEvent]:
    """Read one source, raising SourceUnavailableError on any failure.

    ``client`` is duck-typed: any object exposing
    ``async list_events(user_id, start_key, end_key) -> list[dict]``.
    A ``None`` client means the source is not connected.
    """
    if client is None:
        logger.debug("Source %s not connected, skipping", name)
        return []
    start_key = date_key(date_range.start, tz)
    end_key = date_key(date_range.end, tz)
    try:
        raw = await client.list_events(session.user_id, start_key, end_key)
        return [event_from_dict(item, name, tz) for item in raw or []]
    except Exception as e:
        raise SourceUnavailableError(f"{name} source failed: {e}") from e


async def _fetch_or_empty(name, client, session, date_range, tz) -> list[CalendarEvent]:
    try:
        return await fetch_source(name, client, session, date_range, tz)
    except SourceUnavailableError as e:
        logger.warning("%s", e)
        return []


def filter_recurring_noise(
    events: list[CalendarEvent], phrases: tuple[str, ...] = NOISE_PHRASES
) -> list[CalendarEvent]:
    kept = [e for e in events if not is_recurring_noise(e, phrases)]
    dropped = len(events) - len(kept)
    if dropped:
        logger.debug("Dropped %d recurring placeholder event(s)", dropped)
    return kept


def deduplicate(events: list[CalendarEvent]) -> list[CalendarEvent]:
    """First-seen-wins on the cross-source identity key, order preserved."""
    seen: set[str] = set()
    result = []
    for event in events:
        key = dedup_key(event)
        if key in seen:
            continue
        seen.add(key)
        result.append(event)
    return result


def merge_events(
    provider_events: list[CalendarEvent],
    store_events: list[CalendarEvent],
    phrases: tuple[str, ...] = NOISE_PHRASES,
) -> list[CalendarEvent]:
    """Provider events come first so provider identity wins on conflict."""
    return deduplicate(filter_recurring_noise(list(provider_events) + list(store_events), phrases))


async def fetch_merged_events(
    provider,
    store,
    session: Session,
    date_range: DateRange,
    tz: tzinfo | None = None,
    phrases: tuple[str, ...] = NOISE_PHRASES,
) -> list[CalendarEvent]:
    """Fan out to both sources, fan in once both have resolved or failed."""
    provider_events, store_events = await asyncio.gather(
        _fetch_or_empty("google", provider, session, date_range, tz),
        _fetch_or_empty("firestore", store, session, date_range, tz),
    )
    merged = merge_events(provider_events, store_events, phrases)
    logger.debug(
        "Merged %d provider + %d store event(s) into %d",
        len(provider_events),
        len(store_events),
        len(merged),
    )
    return merged
