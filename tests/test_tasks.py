"""
Tests for task correlation, permissions and collaborator reads.
"""

import asyncio
from datetime import date

from schedule_engine.models import Project
from schedule_engine.models import Session
from schedule_engine.permissions import can_delete_note
from schedule_engine.permissions import normalize_role
from schedule_engine.tasks import TaskIndex
from schedule_engine.tasks import fetch_projects
from schedule_engine.tasks import fetch_task_index
from schedule_engine.tasks import fetch_users
from schedule_engine.tasks import is_schedulable
from schedule_engine.tasks import project_label
from tests.conftest import ALICE
from tests.conftest import BOB
from tests.conftest import JANE
from tests.conftest import make_note
from tests.conftest import make_task
from tests.fake_client import FakeDirectory
from tests.fake_client import FakeTaskStore


class TestExclusion:
    def test_missing_and_ongoing_due_dates_excluded(self):
        """'', None and 'Ongoing' tasks never appear in date-keyed views."""
        for due in ("", None, "Ongoing", "ongoing", "ONGOING"):
            assert not is_schedulable(make_task("t", due_date=due)), due

    def test_archived_excluded(self):
        assert not is_schedulable(make_task("t", archived=True))

    def test_index_keys_by_due_date(self):
        index = TaskIndex(
            [
                make_task("t1", due_date="2024-05-16"),
                make_task("t2", due_date="Ongoing"),
                make_task("t3", due_date=""),
                make_task("t4", due_date=None),
            ]
        )
        assert [t.id for t in index.for_key("2024-05-16")] == ["t1"]
        assert [t.id for t in index.deliverables(date(2024, 5, 16))] == ["t1"]
        assert index.for_key("2024-05-17") == []
        assert len(index.tasks) == 4


class TestIndexWriteBack:
    def test_replace_moves_task_between_days(self):
        task = make_task("t1", due_date="2024-05-16")
        index = TaskIndex([task])
        assert index.replace(task.copy(due_date="2024-05-20"))
        assert index.for_key("2024-05-16") == []
        assert [t.id for t in index.for_key("2024-05-20")] == ["t1"]

    def test_replace_unknown_id(self):
        index = TaskIndex([make_task("t1")])
        assert not index.replace(make_task("t9"))

    def test_remove(self):
        index = TaskIndex([make_task("t1"), make_task("t2")])
        assert index.remove("t1")
        assert not index.remove("t1")
        assert [t.id for t in index.for_key("2024-05-16")] == ["t2"]


class TestProjectLabel:
    def test_linked_project_title(self):
        projects = [Project("p1", "Website"), Project("p2", "Launch")]
        assert project_label(make_task("t", project_id="p2"), projects) == "Launch"

    def test_unlinked_or_unknown(self):
        projects = [Project("p1", "Website")]
        assert project_label(make_task("t"), projects) is None
        assert project_label(make_task("t", project_id="gone"), projects) is None


class TestPermissions:
    def test_role_normalization(self):
        assert normalize_role("User") == "Collaborator"
        assert normalize_role("collaborator") == "Collaborator"
        assert normalize_role("Admin") == "Admin"
        assert normalize_role("guest") == "Viewer"
        assert normalize_role(None) == "Viewer"

    def test_author_may_delete_own_note(self):
        session = Session(ALICE.id, ALICE.name, "User")
        assert can_delete_note(session, make_note("n1", ALICE))
        assert not can_delete_note(session, make_note("n2", JANE))

    def test_admin_may_delete_any_note(self):
        session = Session(BOB.id, BOB.name, "Admin")
        assert can_delete_note(session, make_note("n2", JANE))


class TestCollaboratorReads:
    def test_fetch_task_index_for_assignee(self):
        store = FakeTaskStore(
            [
                {"id": "t1", "title": "Ship", "assigneeId": ALICE.id, "dueDate": "2024-05-16"},
                {"id": "t2", "title": "Other", "assigneeId": JANE.id, "dueDate": "2024-05-16"},
            ]
        )
        index = asyncio.run(fetch_task_index(store, ALICE.id))
        assert [t.id for t in index.for_key("2024-05-16")] == ["t1"]

    def test_fetch_users_and_projects(self):
        directory = FakeDirectory(
            users=[{"id": "u1", "name": "Jane Doe", "email": "jane@example.com"}],
            projects=[{"id": "p1", "title": "Website"}],
        )
        users = asyncio.run(fetch_users(directory))
        projects = asyncio.run(fetch_projects(directory, "u1"))
        assert users[0].name == "Jane Doe"
        assert users[0].role == "User"
        assert projects[0].title == "Website"
