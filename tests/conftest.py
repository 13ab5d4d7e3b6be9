"""
Shared pytest fixtures and record helpers.
"""

from datetime import datetime
from datetime import timezone

import pytest

from schedule_engine.db import LocalStore
from schedule_engine.models import CalendarEvent
from schedule_engine.models import EngineConfig
from schedule_engine.models import Session
from schedule_engine.models import Task
from schedule_engine.models import TaskNote
from schedule_engine.models import User

UTC = timezone.utc

ALICE = User(id="u-alice", name="Alice Smith", email="alice@example.com", role="User")
JANE = User(id="u-jane", name="Jane Doe", email="jane@example.com", role="User")
BOB = User(id="u-bob", name="Bob", email="bob@example.com", role="Admin")


def make_event(
    event_id: str,
    title: str = "Client Sync",
    start: str = "2024-05-16T10:00:00+00:00",
    end: str = "2024-05-16T11:00:00+00:00",
    **extra,
) -> CalendarEvent:
    """Return a CalendarEvent with aware UTC datetimes."""
    return CalendarEvent(
        id=event_id,
        title=title,
        start=datetime.fromisoformat(start),
        end=datetime.fromisoformat(end),
        **extra,
    )


def raw_event(event_id: str, title: str = "Client Sync", **extra) -> dict:
    """Return a collaborator-shaped event record."""
    return {
        "id": event_id,
        "title": title,
        "start": "2024-05-16T10:00:00Z",
        "end": "2024-05-16T11:00:00Z",
        **extra,
    }


def make_task(task_id: str, due_date: str | None = "2024-05-16", **extra) -> Task:
    return Task(
        id=task_id,
        title=extra.pop("title", f"Task {task_id}"),
        assignee_id=extra.pop("assignee_id", ALICE.id),
        due_date=due_date,
        **extra,
    )


def make_note(note_id: str, author: User = ALICE, text: str = "Looks good") -> TaskNote:
    return TaskNote(
        id=note_id,
        user_id=author.id,
        user_name=author.name,
        text=text,
        created_at="2024-05-16T09:00:00+00:00",
    )


@pytest.fixture
def users():
    return [ALICE, JANE, BOB]


@pytest.fixture
def session():
    return Session(user_id=ALICE.id, user_name=ALICE.name, role=ALICE.role)


@pytest.fixture
def admin_session():
    return Session(user_id=BOB.id, user_name=BOB.name, role=BOB.role)


@pytest.fixture
def config(tmp_path):
    return EngineConfig(timezone="UTC", state_db_path=tmp_path / "test_store.db")


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "test_store.db"


@pytest.fixture
def store(db_path):
    with LocalStore(db_path) as s:
        yield s


@pytest.fixture
def fixed_clock():
    return lambda: datetime(2024, 5, 16, 12, 0, tzinfo=UTC)
