"""Shared test fixtures and configuration.

Sets fake environment variables before any taskboard import, and
provides a temp-file document store with the typed collections and
services built on top of it.
"""

import os

# Patch env vars BEFORE any taskboard imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "")
os.environ.setdefault("PUSH_PROVIDER", "log")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("COMMENT_DEDUP_SECONDS", "60")
os.environ.setdefault("INVITATION_EXPIRY_DAYS", "7")

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

NOW = datetime(2024, 3, 15, 10, 0)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def store(tmp_path):
    """A SQLiteDocumentStore backed by a temp file."""
    from taskboard.adapters.sqlite_store import SQLiteDocumentStore
    return SQLiteDocumentStore(db_path=str(tmp_path / "taskboard.db"))


@pytest.fixture
def task_db(store):
    from taskboard.data.db import TaskDB
    return TaskDB(store)


@pytest.fixture
def project_db(store):
    from taskboard.data.db import ProjectDB
    return ProjectDB(store)


@pytest.fixture
def team_db(store):
    from taskboard.data.db import TeamDB
    return TeamDB(store)


@pytest.fixture
def invitation_db(store):
    from taskboard.data.db import InvitationDB
    return InvitationDB(store)


@pytest.fixture
def notification_db(store):
    from taskboard.data.db import NotificationDB
    return NotificationDB(store)


@pytest.fixture
def user_db(store):
    """A UserDB holding alice, bob and carol."""
    from taskboard.data.db import UserDB
    from taskboard.data.models import User

    db = UserDB(store)
    db.add_user(User(id="alice", display_name="Alice", email="alice@example.com"))
    db.add_user(User(id="bob", display_name="Bob", email="Bob@Example.com"))
    db.add_user(User(id="carol", display_name="Carol", email="carol@example.com"))
    return db


@pytest.fixture
def alice():
    from taskboard.data.models import Actor
    return Actor("alice", "Alice")


@pytest.fixture
def bob():
    from taskboard.data.models import Actor
    return Actor("bob", "Bob")


@pytest.fixture
def carol():
    from taskboard.data.models import Actor
    return Actor("carol", "Carol")


@pytest.fixture
def notifier():
    """A NotificationPort double recording every notify call."""
    mock = MagicMock()
    mock.notify = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def task_service(task_db, project_db, team_db, notifier):
    from taskboard.core.task_service import TaskService
    return TaskService(task_db, project_db, team_db, notifier, clock=lambda: NOW)


@pytest.fixture
def project_service(project_db, task_db, team_db, notifier):
    from taskboard.core.project_service import ProjectService
    return ProjectService(project_db, task_db, team_db, notifier, clock=lambda: NOW)


@pytest.fixture
def team_service(team_db, invitation_db, user_db, notifier):
    from taskboard.core.team_service import TeamService
    return TeamService(team_db, invitation_db, user_db, notifier, clock=lambda: NOW)


@pytest.fixture
def date_checks(task_db, project_db, team_db, notifier):
    from taskboard.core.date_check_service import DateCheckService
    return DateCheckService(task_db, project_db, team_db, notifier, clock=lambda: NOW)


@pytest.fixture
def team(team_db):
    """Team t1 owned by alice, with bob as member and carol as viewer."""
    from taskboard.data.models import Team, TeamMember, TeamRole

    return team_db.add(Team(
        id="",
        name="Core",
        owner_id="alice",
        members=[
            TeamMember("alice", "Alice", TeamRole.OWNER),
            TeamMember("bob", "Bob", TeamRole.MEMBER),
            TeamMember("carol", "Carol", TeamRole.VIEWER),
        ],
    ))
