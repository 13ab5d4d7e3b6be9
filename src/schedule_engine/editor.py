"""
Task edit state machine: VIEWING <-> EDITING, plus task deletion.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from datetime import timezone
from enum import Enum

from schedule_engine.bus import RefreshBus
from schedule_engine.models import MutationResult
from schedule_engine.models import Resource
from schedule_engine.models import Task
from schedule_engine.models import ValidationError
from schedule_engine.mutations import run_mutation
from schedule_engine.tasks import TaskIndex

logger = logging.getLogger(__name__)

NEW_CATEGORY = "__new__"

DEFAULT_CATEGORIES = ("General", "Sales", "Operations", "Finance", "Marketing", "Support")


class EditState(str, Enum):
    VIEWING = "viewing"
    EDITING = "editing"
    SAVING = "saving"


@dataclass
class TaskDraft:
    """Snapshot of every editable field, taken on entry to EDITING."""

    title: str = ""
    category: str = ""
    description: str = ""
    due_date: str = ""
    priority: str = "Medium"
    status: str = "Todo"
    assignee_id: str = ""
    project_id: str = ""
    custom_category: bool = False

    @classmethod
    def from_task(cls, task: Task, categories: tuple[str, ...]) -> "TaskDraft":
        category = task.category or ""
        return cls(
            title=task.title,
            category=category,
            description=task.description or "",
            due_date=task.due_date or "",
            priority=task.priority,
            status=task.status,
            assignee_id=task.assignee_id or "",
            project_id=task.project_id or "",
            # Unknown categories open in free-text mode so they are not dropped.
            custom_category=bool(category) and category not in categories,
        )

    def fields(self) -> dict:
        """Store-facing field set (camelCase, as the task store expects)."""
        return {
            "title": self.title.strip(),
            "category": self.category.strip() or None,
            "description": self.description,
            "dueDate": self.due_date or None,
            "priority": self.priority,
            "status": self.status,
            "assigneeId": self.assignee_id,
            "projectId": self.project_id or None,
        }


@dataclass
class TaskEditor:
    """Holds the canonical task for the detail view and its edit draft."""

    task: Task
    task_store: object
    index: TaskIndex | None = None
    bus: RefreshBus | None = None
    categories: tuple[str, ...] = DEFAULT_CATEGORIES
    clock: Callable[[], datetime] = field(default=lambda: datetime.now(timezone.utc))

    state: EditState = EditState.VIEWING
    draft: TaskDraft | None = None
    errors: dict[str, str] = field(default_factory=dict)
    notice: str | None = None

    # ------------------------------------------------------------------ #
    # Transitions                                                          #
    # ------------------------------------------------------------------ #

    def begin_edit(self) -> TaskDraft:
        self.draft = TaskDraft.from_task(self.task, self.categories)
        self.errors = {}
        self.notice = None
        self.state = EditState.EDITING
        return self.draft

    def cancel(self):
        """Discard the draft and reload it from the canonical task."""
        self.draft = TaskDraft.from_task(self.task, self.categories)
        self.errors = {}
        self.state = EditState.VIEWING

    def select_category(self, value: str):
        """Pick a known category, or NEW_CATEGORY to switch to free text."""
        if self.draft is None:
            return
        if value == NEW_CATEGORY:
            self.draft.custom_category = True
            self.draft.category = ""
        else:
            self.draft.custom_category = False
            self.draft.category = value

    def update(self, **changes):
        if self.draft is None:
            raise ValueError("Not editing")
        for name, value in changes.items():
            if not hasattr(self.draft, name):
                raise ValueError(f"Unknown draft field: {name}")
            setattr(self.draft, name, value)

    def validate(self) -> dict[str, str]:
        errors = {}
        if not self.draft.title.strip():
            errors["title"] = "Title is required"
        if not self.draft.assignee_id:
            errors["assignee_id"] = "Select an assignee"
        return errors

    # ------------------------------------------------------------------ #
    # Persistence                                                          #
    # ------------------------------------------------------------------ #

    def _apply(self, fields: dict, updated_at: str) -> Task:
        return self.task.copy(
            title=fields["title"],
            category=fields["category"],
            description=fields["description"],
            due_date=fields["dueDate"],
            priority=fields["priority"],
            status=fields["status"],
            assignee_id=fields["assigneeId"],
            project_id=fields["projectId"],
            updated_at=updated_at,
        )

    async def save(self) -> MutationResult:
        if self.state is not EditState.EDITING or self.draft is None:
            return MutationResult.failure("Task is not being edited")

        def compute() -> Task:
            errors = self.validate()
            if errors:
                self.errors = errors
                first = next(iter(errors))
                raise ValidationError(errors[first], field=first)
            return self._apply(self.draft.fields(), self.clock().isoformat())

        async def remote(updated: Task):
            fields = self.draft.fields()
            fields["updatedAt"] = updated.updated_at
            await self.task_store.update_task(updated.id, fields)

        def commit(updated: Task):
            self.task = updated
            if self.index is not None:
                self.index.replace(updated)
            if self.bus is not None:
                self.bus.publish(Resource.TASKS)

        self.errors = {}
        self.state = EditState.SAVING
        result = await run_mutation(compute, remote, commit, "update task")
        if result.ok:
            self.state = EditState.VIEWING
            self.draft = None
            self.notice = "Task updated"
        else:
            self.state = EditState.EDITING
            if result.field is None:
                self.notice = result.error
        return result

    async def delete(self) -> MutationResult:
        task_id = self.task.id

        async def remote(_):
            await self.task_store.delete_task(task_id)

        def commit(_):
            if self.index is not None:
                self.index.remove(task_id)
            if self.bus is not None:
                self.bus.publish(Resource.TASKS)

        result = await run_mutation(lambda: task_id, remote, commit, "delete task")
        if not result.ok:
            self.notice = result.error
        return result
