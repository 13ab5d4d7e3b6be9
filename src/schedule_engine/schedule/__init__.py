"""
ScheduleAggregator: orchestrates range computation, source merge and layout.
"""

import logging
from dataclasses import dataclass
from dataclasses import field
from datetime import date
from datetime import datetime

from schedule_engine.dates import compute_cells
from schedule_engine.dates import compute_range
from schedule_engine.dates import local_date
from schedule_engine.dates import viewer_tz
from schedule_engine.layout import CellLayout
from schedule_engine.layout import EventBox
from schedule_engine.layout import layout_cells
from schedule_engine.layout import layout_day
from schedule_engine.models import CalendarEvent
from schedule_engine.models import DateRange
from schedule_engine.models import EngineConfig
from schedule_engine.models import RefreshTrigger
from schedule_engine.models import Session
from schedule_engine.models import ViewMode
from schedule_engine.schedule.merge import fetch_merged_events
from schedule_engine.tasks import TaskIndex


@dataclass
class ScheduleSnapshot:
    """Merged events for one (user, reference date, view mode) request."""

    generation: int
    session: Session
    reference: date
    mode: ViewMode
    range: DateRange
    cells: list[date]
    events: list[CalendarEvent] = field(default_factory=list)


class ScheduleAggregator:
    """Main aggregation engine.

    Every refresh takes a new generation number; a response whose generation
    has been superseded by the time it lands is dropped instead of applied.
    """

    def __init__(self, provider, store, config: EngineConfig | None = None):
        self.provider = provider
        self.store = store
        self.config = config or EngineConfig()
        self.tz = viewer_tz(self.config.timezone)
        self.logger = logging.getLogger(__name__)
        self.snapshot: ScheduleSnapshot | None = None
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def set_provider(self, provider):
        """Connect (or with None, disconnect) the external provider."""
        self.provider = provider

    async def refresh(
        self,
        session: Session,
        reference: date | datetime,
        mode: ViewMode,
        trigger: RefreshTrigger = RefreshTrigger.RANGE,
    ) -> ScheduleSnapshot | None:
        """Fetch and merge events; return the snapshot, or None if superseded."""
        self._generation += 1
        generation = self._generation
        mode = ViewMode(mode)
        reference = local_date(reference, self.tz)
        date_range = compute_range(reference, mode, self.tz)

        self.logger.debug(
            "Refresh #%d (%s): %s view for %s, user %s",
            generation,
            trigger.value,
            mode.value,
            reference.isoformat(),
            session.user_id,
        )
        events = await fetch_merged_events(
            self.provider,
            self.store,
            session,
            date_range,
            self.tz,
            self.config.noise_phrases,
        )

        if generation != self._generation:
            self.logger.debug(
                "Dropping stale refresh #%d (latest is #%d)", generation, self._generation
            )
            return None

        self.snapshot = ScheduleSnapshot(
            generation=generation,
            session=session,
            reference=reference,
            mode=mode,
            range=date_range,
            cells=compute_cells(reference, mode, self.tz),
            events=events,
        )
        return self.snapshot

    # ------------------------------------------------------------------ #
    # Projections of the current snapshot                                  #
    # ------------------------------------------------------------------ #

    def daily_layout(self, day: date | None = None) -> list[EventBox]:
        if self.snapshot is None:
            return []
        return layout_day(
            self.snapshot.events, day or self.snapshot.reference, self.config, self.tz
        )

    def grid_layout(
        self, index: TaskIndex, show_tasks: bool = True, show_events: bool = True
    ) -> list[CellLayout]:
        if self.snapshot is None:
            return []
        return layout_cells(
            self.snapshot.cells,
            index.for_key,
            self.snapshot.events,
            self.snapshot.mode,
            self.config,
            self.tz,
            show_tasks=show_tasks,
            show_events=show_events,
        )
