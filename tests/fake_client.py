"""
In-memory fake collaborators for testing.

Duck-type-compatible stand-ins for the event sources, task store, notifier,
directory and image compressor.  No database is required; every call is
recorded so tests can assert on what was (or was not) sent.
"""

import asyncio

from schedule_engine.annotations import ImageAttachment
from schedule_engine.models import ImageProcessingError
from schedule_engine.models import MutationError


class FakeEventSource:
    """Serves a fixed list of raw events, optionally failing or blocking."""

    def __init__(self, events: list[dict] | None = None, fail: bool = False):
        self.events = list(events or [])
        self.fail = fail
        self.calls: list[tuple[str, str, str]] = []
        self.gate: asyncio.Event | None = None

    async def list_events(self, user_id: str, start_key: str, end_key: str) -> list[dict]:
        self.calls.append((user_id, start_key, end_key))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise ConnectionError("source offline")
        return list(self.events)


class FakeTaskStore:
    """Records update/delete calls; ``fail`` makes every write raise."""

    def __init__(self, tasks: list[dict] | None = None, fail: bool = False):
        self.tasks = {t["id"]: dict(t) for t in tasks or []}
        self.fail = fail
        self.updates: list[tuple[str, dict]] = []
        self.deletes: list[str] = []
        self.gate: asyncio.Event | None = None

    async def list_tasks(self, user_id: str) -> list[dict]:
        return [t for t in self.tasks.values() if t.get("assigneeId") == user_id]

    async def update_task(self, task_id: str, fields: dict) -> dict:
        self.updates.append((task_id, fields))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise MutationError("permission denied")
        self.tasks[task_id] = {**self.tasks.get(task_id, {"id": task_id}), **fields}
        return self.tasks[task_id]

    async def delete_task(self, task_id: str):
        self.deletes.append(task_id)
        if self.fail:
            raise RuntimeError("backend exploded")
        self.tasks.pop(task_id, None)


class FakeNotifier:
    """Collects notification payloads; user ids in ``failing`` raise instead."""

    def __init__(self, failing: set[str] | None = None):
        self.failing = set(failing or ())
        self.sent: list[dict] = []
        self.attempted: list[str] = []
        self.gate: asyncio.Event | None = None

    async def create_notification(self, payload: dict) -> str:
        self.attempted.append(payload["userId"])
        if self.gate is not None:
            await self.gate.wait()
        if payload["userId"] in self.failing:
            raise ConnectionError("notification service down")
        self.sent.append(payload)
        return f"n-{len(self.sent)}"


class FakeDirectory:
    def __init__(self, users: list[dict] | None = None, projects: list[dict] | None = None):
        self.users = list(users or [])
        self.projects = list(projects or [])

    async def list_users(self) -> list[dict]:
        return list(self.users)

    async def list_projects(self, user_id: str) -> list[dict]:
        return list(self.projects)


class FakeCompressor:
    """Per-name gates let tests finish compressions out of order."""

    def __init__(self):
        self.gates: dict[str, asyncio.Event] = {}

    async def compress(self, data: bytes, name: str, mime_type: str) -> ImageAttachment:
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        if not mime_type.startswith("image/"):
            raise ImageProcessingError(f"{name} is not an image")
        return ImageAttachment(
            url=f"https://cdn.example.com/{name}",
            name=name,
            mime_type=mime_type,
            size=len(data),
            preview_url=f"blob:{name}",
        )
