"""Tests for taskboard.data.models: entities and document mapping."""

from datetime import datetime, timedelta

from taskboard.data.models import (
    Project,
    ProjectMember,
    ProjectRole,
    Recurrence,
    Reminder,
    ReminderKind,
    ReminderUnit,
    Task,
    TaskStatus,
    Team,
    TeamMember,
    TeamRole,
    User,
    from_doc,
    to_doc,
)


def _make_task(**overrides) -> Task:
    values = dict(
        id="t1",
        title="Plan sprint",
        creator_id="alice",
        start_date=datetime(2024, 1, 1, 9, 0),
        end_date=datetime(2024, 1, 1, 11, 30),
    )
    values.update(overrides)
    return Task(**values)


class TestToDoc:
    def test_enums_and_datetimes_are_json_ready(self):
        doc = to_doc(_make_task(recurrence=Recurrence.WEEKLY))
        assert doc["status"] == "not_started"
        assert doc["recurrence"] == "weekly"
        assert doc["start_date"] == "2024-01-01T09:00:00"

    def test_none_fields_are_omitted(self):
        doc = to_doc(_make_task())
        assert "project_id" not in doc
        assert "recurrence_instance" not in doc
        assert doc["is_deleted"] is False

    def test_nested_entities(self):
        reminder = Reminder("r1", ReminderKind.BEFORE_START, 10, ReminderUnit.MINUTE)
        doc = to_doc(_make_task(reminders=[reminder]))
        assert doc["reminders"] == [
            {"id": "r1", "kind": "before_start", "amount": 10, "unit": "minute", "sent": False}
        ]

    def test_from_doc_restores_types(self):
        task = _make_task(status=TaskStatus.IN_PROGRESS, recurrence_instance=0)
        loaded = from_doc(Task, to_doc(task))
        assert loaded == task
        assert isinstance(loaded.start_date, datetime)
        assert loaded.status is TaskStatus.IN_PROGRESS


class TestTask:
    def test_effective_assignee_falls_back_to_creator(self):
        assert _make_task().effective_assignee_id == "alice"
        assert _make_task(assignee_id="bob").effective_assignee_id == "bob"

    def test_duration(self):
        assert _make_task().duration == timedelta(hours=2, minutes=30)

    def test_is_team_task(self):
        assert not _make_task().is_team_task
        assert _make_task(team_id="t").is_team_task


class TestProjectAndTeam:
    def test_project_members(self):
        project = Project(
            id="p", name="P", owner_id="alice",
            members=[ProjectMember("alice", role=ProjectRole.OWNER), ProjectMember("bob")],
        )
        assert project.member("bob").role == ProjectRole.MEMBER
        assert project.member("carol") is None
        assert project.member_ids() == ["alice", "bob"]
        assert project.effective_assignee_id == "alice"

    def test_team_roles(self):
        team = Team(
            id="t", name="T", owner_id="alice",
            members=[TeamMember("alice", role=TeamRole.OWNER), TeamMember("bob", role=TeamRole.ADMIN)],
        )
        assert team.role_of("bob") == TeamRole.ADMIN
        assert team.role_of("carol") is None


class TestUserPreferences:
    def test_missing_key_means_enabled(self):
        user = User(id="u", display_name="U", notification_settings={"task": False})
        assert user.allows("project") is True
        assert user.allows("task") is False
