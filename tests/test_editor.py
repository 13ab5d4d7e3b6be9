"""
Tests for the task edit state machine and task deletion.
"""

import asyncio

from schedule_engine.bus import RefreshBus
from schedule_engine.editor import NEW_CATEGORY
from schedule_engine.editor import EditState
from schedule_engine.editor import TaskEditor
from schedule_engine.models import Resource
from schedule_engine.tasks import TaskIndex
from tests.conftest import make_task
from tests.fake_client import FakeTaskStore


def _editor(task=None, **kwargs) -> TaskEditor:
    task = task or make_task("t1", title="Ship release", category="Sales")
    kwargs.setdefault("task_store", FakeTaskStore())
    return TaskEditor(task, **kwargs)


class TestValidation:
    def test_empty_title_makes_no_store_call(self):
        """An empty title fails locally and the editor stays in EDITING."""
        store = FakeTaskStore()
        editor = _editor(task_store=store)
        editor.begin_edit()
        editor.update(title="   ")

        result = asyncio.run(editor.save())

        assert not result.ok
        assert result.field == "title"
        assert "title" in editor.errors
        assert editor.state is EditState.EDITING
        assert store.updates == []

    def test_missing_assignee(self):
        editor = _editor()
        editor.begin_edit()
        editor.update(assignee_id="")
        result = asyncio.run(editor.save())
        assert result.field == "assignee_id"

    def test_save_when_not_editing(self):
        result = asyncio.run(_editor().save())
        assert not result.ok


class TestSave:
    def test_save_updates_canonical_task_and_index(self, fixed_clock):
        task = make_task("t1", title="Ship release", due_date="2024-05-16")
        index = TaskIndex([task])
        bus = RefreshBus()
        seen = []
        bus.subscribe(Resource.TASKS, seen.append)
        store = FakeTaskStore()
        editor = _editor(task, task_store=store, index=index, bus=bus, clock=fixed_clock)

        editor.begin_edit()
        editor.update(title="Ship v2", due_date="2024-05-20", priority="High")
        result = asyncio.run(editor.save())

        assert result.ok
        assert editor.state is EditState.VIEWING
        assert editor.notice == "Task updated"
        assert editor.task.title == "Ship v2"
        assert editor.task.updated_at == "2024-05-16T12:00:00+00:00"
        assert index.for_key("2024-05-16") == []
        assert [t.title for t in index.for_key("2024-05-20")] == ["Ship v2"]
        assert seen == [Resource.TASKS]

        task_id, fields = store.updates[0]
        assert task_id == "t1"
        assert fields["title"] == "Ship v2"
        assert fields["dueDate"] == "2024-05-20"
        assert fields["updatedAt"] == "2024-05-16T12:00:00+00:00"

    def test_remote_failure_stays_editing(self):
        task = make_task("t1", title="Ship release")
        editor = _editor(task, task_store=FakeTaskStore(fail=True))
        editor.begin_edit()
        editor.update(title="Renamed")

        result = asyncio.run(editor.save())

        assert not result.ok
        assert editor.state is EditState.EDITING
        assert editor.notice == "permission denied"
        assert editor.task.title == "Ship release"
        assert editor.draft.title == "Renamed"


class TestDraft:
    def test_cancel_discards_draft(self):
        editor = _editor()
        editor.begin_edit()
        editor.update(title="Something else")
        editor.cancel()
        assert editor.state is EditState.VIEWING
        assert editor.draft.title == "Ship release"

    def test_unknown_category_opens_in_free_text_mode(self):
        editor = _editor(make_task("t1", category="Partnerships"))
        draft = editor.begin_edit()
        assert draft.custom_category
        assert draft.category == "Partnerships"

    def test_known_category_uses_picker(self):
        draft = _editor().begin_edit()
        assert not draft.custom_category

    def test_new_category_sentinel_switches_to_free_text(self):
        editor = _editor()
        editor.begin_edit()
        editor.select_category(NEW_CATEGORY)
        assert editor.draft.custom_category
        assert editor.draft.category == ""

        editor.update(category="Legal")
        assert editor.draft.fields()["category"] == "Legal"


class TestDelete:
    def test_delete_removes_from_index(self):
        task = make_task("t1")
        index = TaskIndex([task, make_task("t2")])
        store = FakeTaskStore()
        result = asyncio.run(_editor(task, task_store=store, index=index).delete())
        assert result.ok
        assert store.deletes == ["t1"]
        assert index.get("t1") is None

    def test_delete_failure_reports_generic_message(self):
        task = make_task("t1")
        index = TaskIndex([task])
        editor = _editor(task, task_store=FakeTaskStore(fail=True), index=index)
        result = asyncio.run(editor.delete())
        assert not result.ok
        assert result.error == "Failed to delete task"
        assert index.get("t1") is task
