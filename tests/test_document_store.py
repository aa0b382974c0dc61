"""Tests for the SQLite document store, tagged updates and typed collections."""

from datetime import datetime

import pytest

from taskboard.core.errors import NotFound, StaleState, ValidationError
from taskboard.data.db import apply_changes
from taskboard.data.models import Priority, Task, TaskStatus, User
from taskboard.data.updates import CLEAR, KEEP, SetTo, document_diff, resolve


def _make_task(**overrides) -> Task:
    values = dict(
        id="",
        title="Write report",
        creator_id="alice",
        start_date=datetime(2024, 3, 15, 9, 0),
        end_date=datetime(2024, 3, 15, 17, 0),
    )
    values.update(overrides)
    return Task(**values)


class TestSQLiteDocumentStore:
    def test_create_assigns_id(self, store):
        doc = store.create("tasks", {"title": "A"})
        assert doc["id"]
        assert doc["title"] == "A"
        assert store.get("tasks", doc["id"]) == doc

    def test_create_with_explicit_id(self, store):
        doc = store.create("users", {"name": "Alice"}, doc_id="alice")
        assert doc["id"] == "alice"

    def test_create_duplicate_id_is_stale(self, store):
        store.create("users", {"name": "Alice"}, doc_id="alice")
        with pytest.raises(StaleState):
            store.create("users", {"name": "Again"}, doc_id="alice")

    def test_get_missing_returns_none(self, store):
        assert store.get("tasks", "nope") is None

    def test_collections_are_separate(self, store):
        store.create("tasks", {"title": "A"}, doc_id="x")
        assert store.get("projects", "x") is None

    def test_update_merges_and_clears(self, store):
        doc = store.create("tasks", {"title": "A", "memo": "m", "priority": "low"})
        updated = store.update("tasks", doc["id"], {"title": "B", "memo": CLEAR})
        assert updated["title"] == "B"
        assert updated["priority"] == "low"
        assert "memo" not in updated
        assert store.get("tasks", doc["id"]) == updated

    def test_update_missing_raises(self, store):
        with pytest.raises(NotFound):
            store.update("tasks", "nope", {"title": "B"})

    def test_query_equality(self, store):
        store.create("tasks", {"title": "A", "creator_id": "alice"})
        store.create("tasks", {"title": "B", "creator_id": "bob"})
        store.create("tasks", {"title": "C", "creator_id": "alice"})
        found = store.query("tasks", creator_id="alice")
        assert [d["title"] for d in found] == ["A", "C"]

    def test_query_none_matches_absent_field(self, store):
        store.create("tasks", {"title": "A", "project_id": "p1"})
        store.create("tasks", {"title": "B"})
        found = store.query("tasks", project_id=None)
        assert [d["title"] for d in found] == ["B"]

    def test_query_booleans_and_enums(self, store):
        store.create("tasks", {"title": "A", "is_deleted": False, "status": "completed"})
        store.create("tasks", {"title": "B", "is_deleted": True, "status": "completed"})
        assert len(store.query("tasks", is_deleted=False)) == 1
        assert len(store.query("tasks", status=TaskStatus.COMPLETED)) == 2

    def test_delete(self, store):
        doc = store.create("tasks", {"title": "A"})
        assert store.delete("tasks", doc["id"]) is True
        assert store.get("tasks", doc["id"]) is None
        assert store.delete("tasks", doc["id"]) is False


class TestFieldUpdates:
    def test_resolve(self):
        assert resolve(KEEP, 1) == 1
        assert resolve(SetTo(2), 1) == 2
        assert resolve(SetTo(None), 1) is None
        assert resolve(CLEAR, 1) is None

    def test_resolve_rejects_plain_values(self):
        with pytest.raises(TypeError):
            resolve(5, 1)

    def test_singletons(self):
        from taskboard.data.updates import Clear, Keep
        assert Keep() is KEEP
        assert Clear() is CLEAR

    def test_document_diff(self):
        before = {"id": "1", "a": 1, "b": 2, "c": 3}
        after = {"id": "1", "a": 1, "b": 5, "d": 4}
        assert document_diff(before, after) == {"b": 5, "d": 4, "c": CLEAR}

    def test_apply_changes_resets_cleared_fields_to_default(self):
        task = _make_task(memo="note", priority=Priority.IMPORTANT)
        changed = apply_changes(task, {"memo": CLEAR, "priority": CLEAR, "title": KEEP})
        assert changed.memo is None
        assert changed.priority == Priority.NORMAL
        assert changed.title == task.title

    def test_apply_changes_cannot_clear_required_field(self):
        with pytest.raises(ValidationError, match="Field 'end_date' is required"):
            apply_changes(_make_task(), {"end_date": CLEAR})
        with pytest.raises(ValidationError, match="Field 'start_date' is required"):
            apply_changes(_make_task(), {"start_date": SetTo(None)})

    def test_apply_changes_unknown_field(self):
        with pytest.raises(ValidationError, match="Unknown field 'nope'"):
            apply_changes(_make_task(), {"nope": SetTo(1)})


class TestTypedCollections:
    def test_add_and_get_task(self, task_db):
        task = task_db.add_task(_make_task(priority=Priority.LOW))
        loaded = task_db.get_task(task.id)
        assert loaded == task
        assert loaded.priority == Priority.LOW
        assert loaded.start_date == datetime(2024, 3, 15, 9, 0)

    def test_update_returns_result(self, task_db):
        task = task_db.add_task(_make_task(memo="x"))
        updated = task_db.update(task.id, {"title": SetTo("New"), "memo": CLEAR})
        assert updated.title == "New"
        assert updated.memo is None
        assert "memo" not in task_db._store.get("tasks", task.id)

    def test_update_missing_raises(self, task_db):
        with pytest.raises(NotFound):
            task_db.update("missing", {"title": SetTo("x")})

    def test_save_without_changes_skips_write(self, task_db):
        task = task_db.add_task(_make_task())
        assert task_db.save(task, task) == task

    def test_tasks_for_user_deduplicates(self, task_db):
        own = task_db.add_task(_make_task(assignee_id="alice"))
        assigned = task_db.add_task(_make_task(creator_id="bob", assignee_id="alice"))
        task_db.add_task(_make_task(creator_id="bob"))
        ids = {t.id for t in task_db.tasks_for_user("alice")}
        assert ids == {own.id, assigned.id}

    def test_tasks_for_project_skips_deleted(self, task_db):
        live = task_db.add_task(_make_task(project_id="p1"))
        task_db.add_task(_make_task(project_id="p1", is_deleted=True))
        assert [t.id for t in task_db.tasks_for_project("p1")] == [live.id]
        assert len(task_db.tasks_for_project("p1", include_deleted=True)) == 2

    def test_user_email_is_normalized(self, user_db):
        assert user_db.find_by_email("BOB@example.com").id == "bob"
        assert user_db.get_user("bob").email == "bob@example.com"

    def test_list_users(self, user_db):
        assert {u.id for u in user_db.list_users()} == {"alice", "bob", "carol"}

    def test_teams_for_user(self, team_db, team):
        assert [t.id for t in team_db.teams_for_user("bob")] == [team.id]
        assert team_db.teams_for_user("dave") == []

    def test_notifications_for_user(self, notification_db):
        from taskboard.data.models import Notification, NotificationType
        notification_db.add(Notification("", "alice", NotificationType.TASK_CREATED, "t", "m"))
        notification_db.add(Notification(
            "", "alice", NotificationType.TASK_UPDATED, "t", "m", is_read=True,
        ))
        assert len(notification_db.for_user("alice")) == 2
        assert len(notification_db.for_user("alice", unread_only=True)) == 1

    def test_add_user_with_same_id_is_stale(self, user_db):
        with pytest.raises(StaleState):
            user_db.add_user(User(id="alice", display_name="Other"))
