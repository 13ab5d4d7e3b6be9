"""
SQLite-backed local store implementing the engine's collaborator contracts.

One database serves as task store, internal event store (and cached mirror of
the external provider, distinguished by the ``source`` column), user and
project directory, and notification sink.
"""

import json
import logging
import sqlite3
import time
import uuid
from datetime import date
from datetime import timedelta
from pathlib import Path
from typing import Any

from schedule_engine.models import MutationError
from schedule_engine.models import ScheduleEngineError

logger = logging.getLogger(__name__)

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        data TEXT NOT NULL
    );
    CREATE TABLE IF NOT EXISTS projects (
        id TEXT PRIMARY KEY,
        owner_id TEXT,
        data TEXT NOT NULL
    );
    CREATE TABLE IF NOT EXISTS tasks (
        id TEXT PRIMARY KEY,
        assignee_id TEXT NOT NULL,
        data TEXT NOT NULL,
        updated_at INTEGER NOT NULL
    );
    CREATE TABLE IF NOT EXISTS events (
        id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        source TEXT NOT NULL,
        start_at TEXT NOT NULL,
        end_at TEXT NOT NULL,
        data TEXT NOT NULL,
        PRIMARY KEY (id, source)
    );
    CREATE TABLE IF NOT EXISTS notifications (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        data TEXT NOT NULL,
        created_at INTEGER NOT NULL
    );
"""


class LocalStore:
    """Manages the local SQLite store."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn: sqlite3.Connection | None = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def connect(self):
        """Initialize and connect to the store."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row  # Enable column access by name
        self.conn.executescript(_SCHEMA)
        self.conn.commit()

    def _require(self) -> sqlite3.Connection:
        if not self.conn:
            raise ScheduleEngineError("Store not connected")
        return self.conn

    # ------------------------------------------------------------------ #
    # Seeding                                                              #
    # ------------------------------------------------------------------ #

    def put_user(self, user: dict[str, Any]):
        self._require().execute(
            "INSERT INTO users (id, data) VALUES (?, ?) "
            "ON CONFLICT(id) DO UPDATE SET data = excluded.data",
            (user["id"], json.dumps(user)),
        )

    def put_project(self, project: dict[str, Any]):
        self._require().execute(
            "INSERT INTO projects (id, owner_id, data) VALUES (?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET owner_id = excluded.owner_id, data = excluded.data",
            (project["id"], project.get("ownerId"), json.dumps(project)),
        )

    def put_task(self, task: dict[str, Any]):
        task = {"notes": [], "archived": False, **task}
        self._require().execute(
            "INSERT INTO tasks (id, assignee_id, data, updated_at) VALUES (?, ?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET assignee_id = excluded.assignee_id, "
            "data = excluded.data, updated_at = excluded.updated_at",
            (task["id"], task.get("assigneeId") or "", json.dumps(task), int(time.time())),
        )

    def put_event(self, event: dict[str, Any], user_id: str, source: str = "firestore"):
        self._require().execute(
            "INSERT INTO events (id, user_id, source, start_at, end_at, data) "
            "VALUES (?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(id, source) DO UPDATE SET user_id = excluded.user_id, "
            "start_at = excluded.start_at, end_at = excluded.end_at, data = excluded.data",
            (
                event["id"],
                user_id,
                source,
                event["start"],
                event.get("end") or event["start"],
                json.dumps({**event, "source": source}),
            ),
        )

    def seed_from_json(self, path: Path) -> dict[str, int]:
        """Load users/projects/tasks/events from a JSON fixture file."""
        with open(path) as f:
            payload = json.load(f)
        counts = {}
        for user in payload.get("users", []):
            self.put_user(user)
        counts["users"] = len(payload.get("users", []))
        for project in payload.get("projects", []):
            self.put_project(project)
        counts["projects"] = len(payload.get("projects", []))
        for task in payload.get("tasks", []):
            self.put_task(task)
        counts["tasks"] = len(payload.get("tasks", []))
        for event in payload.get("events", []):
            self.put_event(event, event.get("userId", ""), event.get("source", "firestore"))
        counts["events"] = len(payload.get("events", []))
        self.commit()
        logger.info(
            "Seeded %d user(s), %d project(s), %d task(s), %d event(s)",
            counts["users"],
            counts["projects"],
            counts["tasks"],
            counts["events"],
        )
        return counts

    # ------------------------------------------------------------------ #
    # Task store                                                           #
    # ------------------------------------------------------------------ #

    async def list_tasks(self, user_id: str) -> list[dict[str, Any]]:
        cursor = self._require().execute(
            "SELECT data FROM tasks WHERE assignee_id = ? ORDER BY id", (user_id,)
        )
        return [json.loads(row["data"]) for row in cursor.fetchall()]

    async def get_task(self, task_id: str) -> dict[str, Any] | None:
        row = self._require().execute(
            "SELECT data FROM tasks WHERE id = ?", (task_id,)
        ).fetchone()
        return json.loads(row["data"]) if row else None

    async def update_task(self, task_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        """Merge *fields* into the task; list fields (``notes``) are replaced whole."""
        current = await self.get_task(task_id)
        if current is None:
            raise MutationError(f"Task {task_id} not found")
        updated = {**current, **fields}
        try:
            self._require().execute(
                "UPDATE tasks SET assignee_id = ?, data = ?, updated_at = ? WHERE id = ?",
                (updated.get("assigneeId") or "", json.dumps(updated), int(time.time()), task_id),
            )
            self.commit()
        except sqlite3.Error as e:
            raise MutationError(f"Failed to update task {task_id}: {e}") from e
        return updated

    async def delete_task(self, task_id: str):
        cursor = self._require().execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        self.commit()
        if cursor.rowcount == 0:
            raise MutationError(f"Task {task_id} not found")

    # ------------------------------------------------------------------ #
    # Event store                                                          #
    # ------------------------------------------------------------------ #

    async def list_events(
        self, user_id: str, start_key: str, end_key: str, source: str = "firestore"
    ) -> list[dict[str, Any]]:
        """Events for *user_id* touching [start_key, end_key].

        Timestamps are compared by their date prefix widened by one day on
        each side; the engine applies the exact per-day overlap test.
        """
        lo = (date.fromisoformat(start_key) - timedelta(days=1)).isoformat()
        hi = (date.fromisoformat(end_key) + timedelta(days=1)).isoformat()
        cursor = self._require().execute(
            "SELECT data FROM events WHERE user_id = ? AND source = ? "
            "AND substr(start_at, 1, 10) <= ? AND substr(end_at, 1, 10) >= ? "
            "ORDER BY start_at, id",
            (user_id, source, hi, lo),
        )
        return [json.loads(row["data"]) for row in cursor.fetchall()]

    # ------------------------------------------------------------------ #
    # Directories / notifications                                          #
    # ------------------------------------------------------------------ #

    async def list_users(self) -> list[dict[str, Any]]:
        cursor = self._require().execute("SELECT data FROM users ORDER BY id")
        return [json.loads(row["data"]) for row in cursor.fetchall()]

    async def list_projects(self, user_id: str) -> list[dict[str, Any]]:
        cursor = self._require().execute(
            "SELECT data FROM projects WHERE owner_id = ? OR owner_id IS NULL ORDER BY id",
            (user_id,),
        )
        return [json.loads(row["data"]) for row in cursor.fetchall()]

    async def create_notification(self, payload: dict[str, Any]) -> str:
        notification_id = str(uuid.uuid4())
        record = {"id": notification_id, "read": False, **payload}
        self._require().execute(
            "INSERT INTO notifications (id, user_id, data, created_at) VALUES (?, ?, ?, ?)",
            (notification_id, payload["userId"], json.dumps(record), int(time.time())),
        )
        self.commit()
        return notification_id

    async def list_notifications(self, user_id: str) -> list[dict[str, Any]]:
        cursor = self._require().execute(
            "SELECT data FROM notifications WHERE user_id = ? ORDER BY created_at, id",
            (user_id,),
        )
        return [json.loads(row["data"]) for row in cursor.fetchall()]

    def commit(self):
        """Commit pending transactions."""
        if self.conn:
            self.conn.commit()

    def close(self):
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None


class StoreEventSource:
    """Adapts one ``source`` partition of a LocalStore to ``list_events``."""

    def __init__(self, store: LocalStore, source: str):
        self.store = store
        self.source = source

    async def list_events(self, user_id: str, start_key: str, end_key: str) -> list[dict]:
        return await self.store.list_events(user_id, start_key, end_key, source=self.source)


def query_status(db_path: Path) -> dict[str, int]:
    """Row counts per table; empty when the database file does not exist."""
    if not db_path.exists():
        return {}
    conn = sqlite3.connect(db_path)
    try:
        counts = {}
        for table in ("users", "projects", "tasks", "events", "notifications"):
            try:
                counts[table] = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
            except sqlite3.OperationalError:
                counts[table] = 0
        return counts
    finally:
        conn.close()
