"""
Unit tests for LocalStore. Verify the collaborator read paths return the
correct subsets and that writes merge and replace the way the engine expects.
"""

import asyncio
import json

import pytest

from schedule_engine.db import StoreEventSource
from schedule_engine.db import query_status
from schedule_engine.models import MutationError
from tests.conftest import raw_event


def _seed_tasks(store):
    store.put_task({"id": "t1", "title": "Ship", "assigneeId": "u-alice", "dueDate": "2024-05-16"})
    store.put_task({"id": "t2", "title": "Other", "assigneeId": "u-jane", "dueDate": "2024-05-16"})
    store.commit()


class TestTasks:
    def test_list_tasks_by_assignee(self, store):
        _seed_tasks(store)
        tasks = asyncio.run(store.list_tasks("u-alice"))
        assert [t["id"] for t in tasks] == ["t1"]
        assert tasks[0]["notes"] == []

    def test_update_merges_fields(self, store):
        _seed_tasks(store)
        asyncio.run(store.update_task("t1", {"title": "Ship v2"}))
        task = asyncio.run(store.get_task("t1"))
        assert task["title"] == "Ship v2"
        assert task["dueDate"] == "2024-05-16"

    def test_notes_array_replaced_whole(self, store):
        """A notes write replaces the array; it never appends server-side."""
        _seed_tasks(store)
        asyncio.run(store.update_task("t1", {"notes": [{"id": "n1", "text": "a"}]}))
        asyncio.run(store.update_task("t1", {"notes": [{"id": "n2", "text": "b"}]}))
        task = asyncio.run(store.get_task("t1"))
        assert [n["id"] for n in task["notes"]] == ["n2"]

    def test_reassign_moves_task(self, store):
        _seed_tasks(store)
        asyncio.run(store.update_task("t1", {"assigneeId": "u-jane"}))
        assert asyncio.run(store.list_tasks("u-alice")) == []
        assert {t["id"] for t in asyncio.run(store.list_tasks("u-jane"))} == {"t1", "t2"}

    def test_update_missing_task_raises(self, store):
        with pytest.raises(MutationError):
            asyncio.run(store.update_task("nope", {"title": "x"}))

    def test_delete(self, store):
        _seed_tasks(store)
        asyncio.run(store.delete_task("t1"))
        assert asyncio.run(store.get_task("t1")) is None
        with pytest.raises(MutationError):
            asyncio.run(store.delete_task("t1"))


class TestEvents:
    def test_sources_are_partitioned(self, store):
        """The same id may exist once per source without colliding."""
        store.put_event(raw_event("e1", "Provider copy"), "u-alice", "google")
        store.put_event(raw_event("e1", "Local copy"), "u-alice", "firestore")
        store.commit()

        day = ("u-alice", "2024-05-16", "2024-05-16")
        google = asyncio.run(StoreEventSource(store, "google").list_events(*day))
        local = asyncio.run(StoreEventSource(store, "firestore").list_events(*day))

        assert [e["title"] for e in google] == ["Provider copy"]
        assert [e["title"] for e in local] == ["Local copy"]
        assert google[0]["source"] == "google"

    def test_range_filters_by_user_and_date(self, store):
        store.put_event(raw_event("in"), "u-alice")
        store.put_event(raw_event("other-user"), "u-jane")
        far = {**raw_event("far"), "start": "2024-07-01T10:00:00Z", "end": "2024-07-01T11:00:00Z"}
        store.put_event(far, "u-alice")
        store.commit()

        events = asyncio.run(store.list_events("u-alice", "2024-05-13", "2024-05-19"))
        assert [e["id"] for e in events] == ["in"]

    def test_upsert_on_conflict_updates(self, store):
        store.put_event(raw_event("e1", "Old"), "u-alice")
        store.put_event(raw_event("e1", "New"), "u-alice")
        store.commit()
        events = asyncio.run(store.list_events("u-alice", "2024-05-16", "2024-05-16"))
        assert [e["title"] for e in events] == ["New"]


class TestDirectoryAndNotifications:
    def test_projects_visible_to_owner_or_shared(self, store):
        store.put_project({"id": "p1", "title": "Mine", "ownerId": "u-alice"})
        store.put_project({"id": "p2", "title": "Theirs", "ownerId": "u-jane"})
        store.put_project({"id": "p3", "title": "Shared"})
        store.commit()
        projects = asyncio.run(store.list_projects("u-alice"))
        assert [p["id"] for p in projects] == ["p1", "p3"]

    def test_notifications_round_trip(self, store):
        notification_id = asyncio.run(
            store.create_notification({"userId": "u-jane", "type": "task", "title": "Hi"})
        )
        stored = asyncio.run(store.list_notifications("u-jane"))
        assert stored[0]["id"] == notification_id
        assert stored[0]["read"] is False
        assert asyncio.run(store.list_notifications("u-alice")) == []


class TestSeeding:
    def test_seed_from_json(self, store, tmp_path):
        fixture = tmp_path / "seed.json"
        fixture.write_text(
            json.dumps(
                {
                    "users": [{"id": "u-alice", "name": "Alice Smith"}],
                    "tasks": [{"id": "t1", "title": "Ship", "assigneeId": "u-alice"}],
                    "events": [{**raw_event("e1"), "userId": "u-alice", "source": "google"}],
                }
            )
        )
        counts = store.seed_from_json(fixture)
        assert counts == {"users": 1, "projects": 0, "tasks": 1, "events": 1}
        users = asyncio.run(store.list_users())
        assert users[0]["name"] == "Alice Smith"

    def test_query_status(self, store, db_path):
        _seed_tasks(store)
        counts = query_status(db_path)
        assert counts["tasks"] == 2
        assert counts["events"] == 0

    def test_query_status_missing_file(self, tmp_path):
        assert query_status(tmp_path / "missing.db") == {}
