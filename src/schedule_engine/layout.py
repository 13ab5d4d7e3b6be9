"""
Layout projection for the daily time-grid and the week/month cell grids.
"""

from dataclasses import dataclass
from dataclasses import field
from datetime import date
from datetime import datetime
from datetime import tzinfo

from schedule_engine.dates import date_key
from schedule_engine.dates import end_of_day
from schedule_engine.dates import local_date
from schedule_engine.dates import start_of_day
from schedule_engine.models import CalendarEvent
from schedule_engine.models import EngineConfig
from schedule_engine.models import Task
from schedule_engine.models import ViewMode


@dataclass(frozen=True)
class EventBox:
    """Absolute position of an event on the daily grid, in layout units."""

    event: CalendarEvent
    top: float
    height: float


@dataclass
class CellLayout:
    day: date
    key: str
    tasks: list[Task] = field(default_factory=list)
    events: list[CalendarEvent] = field(default_factory=list)
    overflow: int = 0

    @property
    def has_more(self) -> bool:
        return self.overflow > 0


# ---------------------------------------------------------------------------
# Daily grid
# ---------------------------------------------------------------------------


def _minutes_from_midnight(dt: datetime) -> float:
    return dt.hour * 60 + dt.minute + dt.second / 60


def position_event(
    event: CalendarEvent,
    day: date,
    config: EngineConfig | None = None,
    tz: tzinfo | None = None,
) -> EventBox:
    """Compute ``top``/``height`` for one event on *day*.

    Overlapping events are not packed into lanes; they share the same column.
    Events reaching outside *day* are clipped to its bounds.
    """
    config = config or EngineConfig()
    start, end = event.start, event.end
    if tz is not None:
        if start.tzinfo is not None:
            start = start.astimezone(tz)
        if end.tzinfo is not None:
            end = end.astimezone(tz)

    day_start = start_of_day(day, start.tzinfo)
    day_end = end_of_day(day, start.tzinfo)
    if start < day_start:
        start = day_start
    if end > day_end:
        end = day_end

    duration = (end - start).total_seconds() / 60
    top = _minutes_from_midnight(start) * config.hour_height / 60 + config.grid_offset
    height = max(duration * config.hour_height / 60, config.min_event_height)
    return EventBox(event=event, top=top, height=height)


def layout_day(
    events: list[CalendarEvent],
    day: date,
    config: EngineConfig | None = None,
    tz: tzinfo | None = None,
) -> list[EventBox]:
    return [position_event(e, day, config, tz) for e in events_for_day(events, day, tz)]


# ---------------------------------------------------------------------------
# Week / month cells
# ---------------------------------------------------------------------------


def cell_budget(mode: ViewMode, config: EngineConfig | None = None) -> int:
    config = config or EngineConfig()
    if ViewMode(mode) is ViewMode.MONTHLY:
        return config.month_cell_budget
    return config.week_cell_budget


def allocate_cell(
    tasks: list[Task],
    events: list[CalendarEvent],
    budget: int,
    show_tasks: bool = True,
    show_events: bool = True,
) -> tuple[list[Task], list[CalendarEvent], int]:
    """Pick the visible subset of one cell and the "+N more" count.

    When both kinds are shown and present, exactly one of each is visible.
    A hidden kind is excluded from both the visible subset and the count.
    """
    tasks = list(tasks) if show_tasks else []
    events = list(events) if show_events else []

    if tasks and events:
        visible_tasks, visible_events = tasks[:1], events[:1]
    elif tasks:
        visible_tasks, visible_events = tasks[:budget], []
    else:
        visible_tasks, visible_events = [], events[:budget]

    overflow = (len(tasks) + len(events)) - (len(visible_tasks) + len(visible_events))
    return visible_tasks, visible_events, overflow


def layout_cells(
    days: list[date],
    tasks_for_key,
    events: list[CalendarEvent],
    mode: ViewMode,
    config: EngineConfig | None = None,
    tz: tzinfo | None = None,
    show_tasks: bool = True,
    show_events: bool = True,
) -> list[CellLayout]:
    """Lay out every cell of a week or month grid.

    ``tasks_for_key`` maps a date key to its task subset (see TaskIndex.for_key).
    """
    budget = cell_budget(mode, config)
    cells = []
    for day in days:
        day = local_date(day, tz)
        key = date_key(day)
        visible_tasks, visible_events, overflow = allocate_cell(
            tasks_for_key(key),
            events_for_day(events, day, tz),
            budget,
            show_tasks=show_tasks,
            show_events=show_events,
        )
        cells.append(CellLayout(day, key, visible_tasks, visible_events, overflow))
    return cells


# Imported last: schedule/__init__ imports this module, so its names must exist first.
from schedule_engine.schedule.utils import events_for_day
