"""
Pure data models; no store or CLI imports.
"""

from dataclasses import dataclass
from dataclasses import field
from dataclasses import replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

DEFAULT_STATE_DB = Path.home() / ".local/share/schedule-engine.db"
DEFAULT_CONFIG = Path.home() / ".config/schedule-engine.conf"

NOISE_PHRASES = (
    "office",
    "working hours",
    "work hours",
    "availability",
    "busy",
    "out of office",
    "lunch",
    "break",
)

EVENT_TYPES = ("meeting", "task", "deadline", "reminder")
PRIORITIES = ("Low", "Medium", "High")
STATUSES = ("Todo", "In Progress", "Review", "Done")


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ScheduleEngineError(Exception):
    """Base exception for schedule engine errors."""

    pass


class SourceUnavailableError(ScheduleEngineError):
    """An aggregation source could not be read."""

    pass


class ValidationError(ScheduleEngineError):
    """A local precondition failed; no remote call was attempted."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class MutationError(ScheduleEngineError):
    """The remote store rejected or failed a write."""

    pass


class ImageProcessingError(ScheduleEngineError):
    """An attached image was rejected or could not be compressed."""

    pass


class NotAuthorizedError(ScheduleEngineError):
    """The current user may not perform the requested note operation."""

    pass


class BusyError(ScheduleEngineError):
    """A note mutation for this task is already in flight."""

    pass


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ViewMode(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class Resource(str, Enum):
    """Logical resources that can be refreshed independently."""

    TASKS = "tasks"
    SCHEDULE = "schedule"


class RefreshTrigger(str, Enum):
    RANGE = "range"
    VIEW_MODE = "view-mode"
    PROVIDER_STATUS = "provider-status"
    USER = "user"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass
class CalendarEvent:
    """A single already-expanded event instance from either source."""

    id: str
    title: str
    start: datetime
    end: datetime
    type: str = "meeting"
    source: str = "firestore"  # 'google' or 'firestore'
    google_event_id: str | None = None
    recurring_event_id: str | None = None
    html_link: str | None = None


@dataclass
class TaskNote:
    id: str
    user_id: str
    user_name: str
    text: str
    created_at: str
    image_url: str | None = None
    image_name: str | None = None
    image_mime_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "id": self.id,
            "userId": self.user_id,
            "userName": self.user_name,
            "text": self.text,
            "createdAt": self.created_at,
        }
        if self.image_url:
            data["imageUrl"] = self.image_url
            data["imageName"] = self.image_name
            data["imageMimeType"] = self.image_mime_type
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskNote":
        return cls(
            id=str(data["id"]),
            user_id=data.get("userId", ""),
            user_name=data.get("userName", ""),
            text=data.get("text", ""),
            created_at=data.get("createdAt", ""),
            image_url=data.get("imageUrl"),
            image_name=data.get("imageName"),
            image_mime_type=data.get("imageMimeType"),
        )


@dataclass
class Task:
    id: str
    title: str
    assignee_id: str = ""
    due_date: str | None = None  # 'YYYY-MM-DD', empty/None/'ongoing' = no deadline
    priority: str = "Medium"
    status: str = "Todo"
    description: str = ""
    project_id: str | None = None
    category: str | None = None
    notes: list[TaskNote] = field(default_factory=list)
    archived: bool = False
    created_at: str | None = None
    updated_at: str | None = None

    def copy(self, **changes) -> "Task":
        """Return a copy with its own notes list (notes themselves are immutable)."""
        clone = replace(self, **changes)
        if "notes" not in changes:
            clone.notes = list(self.notes)
        return clone

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "assigneeId": self.assignee_id,
            "dueDate": self.due_date,
            "priority": self.priority,
            "status": self.status,
            "description": self.description,
            "projectId": self.project_id,
            "category": self.category,
            "notes": [n.to_dict() for n in self.notes],
            "archived": self.archived,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            assignee_id=data.get("assigneeId") or "",
            due_date=data.get("dueDate"),
            priority=data.get("priority") or "Medium",
            status=data.get("status") or "Todo",
            description=data.get("description") or "",
            project_id=data.get("projectId") or None,
            category=data.get("category") or None,
            notes=[TaskNote.from_dict(n) for n in data.get("notes") or []],
            archived=bool(data.get("archived", False)),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class User:
    id: str
    name: str
    email: str = ""
    role: str = "User"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "User":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            email=data.get("email") or "",
            role=data.get("role") or "User",
        )


@dataclass
class Project:
    id: str
    title: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Project":
        return cls(id=str(data["id"]), title=data.get("title", ""))


@dataclass(frozen=True)
class DateRange:
    """Inclusive start, inclusive end-of-day (23:59:59.999) bound."""

    start: datetime
    end: datetime


@dataclass(frozen=True)
class Session:
    """Explicit viewer context passed into every operation."""

    user_id: str
    user_name: str
    role: str = "User"


# ---------------------------------------------------------------------------
# Configuration / results
# ---------------------------------------------------------------------------


@dataclass
class EngineConfig:
    """Configuration for layout, filtering and annotation behaviour."""

    timezone: str | None = None  # IANA name; None = system local time
    hour_height: int = 80
    grid_offset: int = 20
    min_event_height: int = 50
    week_cell_budget: int = 2
    month_cell_budget: int = 1
    mention_limit: int = 5
    noise_phrases: tuple[str, ...] = NOISE_PHRASES
    max_image_bytes: int = 5 * 1024 * 1024
    max_image_dimension: int = 1920
    image_quality: int = 80
    admin_roles: tuple[str, ...] = ("Admin",)
    state_db_path: Path = DEFAULT_STATE_DB


@dataclass
class MutationResult:
    """Outcome of a two-phase local/remote mutation."""

    ok: bool
    value: Any = None
    error: str | None = None
    field: str | None = None

    @classmethod
    def success(cls, value: Any = None) -> "MutationResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str, field: str | None = None) -> "MutationResult":
        return cls(ok=False, error=error, field=field)
