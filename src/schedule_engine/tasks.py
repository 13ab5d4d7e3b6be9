"""
Task correlation: joins tasks to calendar cells by due-date key.
"""

import logging
from collections import defaultdict
from datetime import date

from schedule_engine.dates import date_key
from schedule_engine.dates import parse_date_key
from schedule_engine.models import Project
from schedule_engine.models import Task
from schedule_engine.models import User

logger = logging.getLogger(__name__)


def is_schedulable(task: Task) -> bool:
    """A task joins date-keyed views only when live and carrying a real due date.

    Empty, missing and "ongoing" (any case) due dates are excluded, as are
    malformed strings.
    """
    if task.archived:
        return False
    return parse_date_key(task.due_date) is not None


class TaskIndex:
    """Owns the fetched task collection and its date-key lookup.

    The exclusion rule is applied once when the index is (re)built, so the
    daily panel and the grid cells always agree.
    """

    def __init__(self, tasks: list[Task] | None = None):
        self._tasks: list[Task] = []
        self._by_key: dict[str, list[Task]] = {}
        self.load(tasks or [])

    def load(self, tasks: list[Task]):
        self._tasks = list(tasks)
        self._rebuild()

    def _rebuild(self):
        by_key: dict[str, list[Task]] = defaultdict(list)
        skipped = 0
        for task in self._tasks:
            if not is_schedulable(task):
                skipped += 1
                continue
            by_key[task.due_date].append(task)
        self._by_key = dict(by_key)
        logger.debug(
            "Indexed %d task(s) over %d day(s), %d without a schedulable due date",
            len(self._tasks) - skipped,
            len(self._by_key),
            skipped,
        )

    # ------------------------------------------------------------------ #
    # Lookups                                                              #
    # ------------------------------------------------------------------ #

    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks)

    def get(self, task_id: str) -> Task | None:
        for task in self._tasks:
            if task.id == task_id:
                return task
        return None

    def for_key(self, key: str) -> list[Task]:
        return list(self._by_key.get(key, []))

    def for_date(self, day: date) -> list[Task]:
        return self.for_key(date_key(day))

    def deliverables(self, active_date: date) -> list[Task]:
        """Tasks due on the active date (the daily "deliverables" panel)."""
        return self.for_date(active_date)

    # ------------------------------------------------------------------ #
    # Write-back from edits / notes                                        #
    # ------------------------------------------------------------------ #

    def replace(self, task: Task) -> bool:
        """Swap in an updated record by id; return False when the id is unknown."""
        for i, existing in enumerate(self._tasks):
            if existing.id == task.id:
                self._tasks[i] = task
                self._rebuild()
                return True
        return False

    def remove(self, task_id: str) -> bool:
        before = len(self._tasks)
        self._tasks = [t for t in self._tasks if t.id != task_id]
        if len(self._tasks) == before:
            return False
        self._rebuild()
        return True


def project_label(task: Task, projects: list[Project]) -> str | None:
    """Title of the task's linked project, if any."""
    if not task.project_id:
        return None
    for project in projects:
        if project.id == task.project_id:
            return project.title
    return None


# ---------------------------------------------------------------------------
# Collaborator reads
# ---------------------------------------------------------------------------


async def fetch_task_index(task_store, user_id: str) -> TaskIndex:
    """Fetch the user's tasks and build the date-key index."""
    raw = await task_store.list_tasks(user_id)
    return TaskIndex([Task.from_dict(item) for item in raw or []])


async def fetch_users(directory) -> list[User]:
    return [User.from_dict(item) for item in await directory.list_users() or []]


async def fetch_projects(directory, user_id: str) -> list[Project]:
    return [Project.from_dict(item) for item in await directory.list_projects(user_id) or []]
