"""
Taskboard - Typed collections.

Thin wrappers over a DocumentStore that map documents to the dataclasses
in data/models.py. Writes return the resulting entity, so callers never
re-read after writing.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Generic, Mapping, TypeVar

from taskboard.core.errors import NotFound, ValidationError
from taskboard.data.models import (
    Notification,
    Project,
    Task,
    Team,
    TeamInvitation,
    User,
    from_doc,
    to_doc,
)
from taskboard.data.updates import FieldUpdate, document_diff, is_keep, resolve
from taskboard.ports.document_store import DocumentStore

logger = logging.getLogger(__name__)

E = TypeVar("E")


def apply_changes(entity: E, changes: Mapping[str, FieldUpdate]) -> E:
    """Return a copy of *entity* with the tagged updates applied.

    CLEAR resets a field to its declared default (None for optional fields).
    Clearing a field that has no default raises ValidationError.
    """
    fields = {f.name: f for f in dataclasses.fields(entity)}
    values: dict[str, Any] = {}
    for name, update in changes.items():
        if name not in fields:
            raise ValidationError(f"Unknown field '{name}'")
        if is_keep(update):
            continue
        value = resolve(update, getattr(entity, name))
        if value is None:
            f = fields[name]
            if f.default is not dataclasses.MISSING:
                value = f.default
            elif f.default_factory is not dataclasses.MISSING:
                value = f.default_factory()
            else:
                raise ValidationError(f"Field '{name}' is required")
        values[name] = value
    return dataclasses.replace(entity, **values)


class _Collection(Generic[E]):
    """Shared mapping logic for one collection."""

    collection: str
    model: type

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def _load(self, doc: dict[str, Any]) -> E:
        return from_doc(self.model, doc)

    def get(self, doc_id: str) -> E | None:
        doc = self._store.get(self.collection, doc_id)
        return self._load(doc) if doc is not None else None

    def find(self, **equals: Any) -> list[E]:
        return [self._load(d) for d in self._store.query(self.collection, **equals)]

    def add(self, entity: E, doc_id: str | None = None) -> E:
        doc = to_doc(entity)
        doc.pop("id", None)
        return self._load(self._store.create(self.collection, doc, doc_id=doc_id))

    def update(self, doc_id: str, changes: Mapping[str, FieldUpdate]) -> E:
        """Apply tagged updates to a stored entity and return the result."""
        current = self._store.get(self.collection, doc_id)
        if current is None:
            raise NotFound(f"{self.model.__name__} {doc_id} not found")
        before = self._load(current)
        return self.save(before, apply_changes(before, changes))

    def save(self, before: E, after: E) -> E:
        """Persist only the fields that differ between two versions."""
        changes = document_diff(to_doc(before), to_doc(after))
        doc_id = getattr(before, "id")
        if not changes:
            return after
        return self._load(self._store.update(self.collection, doc_id, changes))

    def remove(self, doc_id: str) -> bool:
        return self._store.delete(self.collection, doc_id)


class TaskDB(_Collection[Task]):
    """Task documents. Also satisfies the TaskLookup port."""

    collection = "tasks"
    model = Task

    def get_task(self, task_id: str) -> Task | None:
        return self.get(task_id)

    def add_task(self, task: Task) -> Task:
        created = self.add(task)
        logger.info("Task stored: %s '%s'", created.id, created.title)
        return created

    def tasks_for_project(self, project_id: str, include_deleted: bool = False) -> list[Task]:
        tasks = self.find(project_id=project_id)
        if include_deleted:
            return tasks
        return [t for t in tasks if not t.is_deleted]

    def children_of(self, parent_task_id: str) -> list[Task]:
        return self.find(parent_task_id=parent_task_id)

    def tasks_for_user(self, user_id: str) -> list[Task]:
        """Tasks the user created or is assigned to, de-duplicated."""
        seen: dict[str, Task] = {}
        for task in self.find(creator_id=user_id) + self.find(assignee_id=user_id):
            seen.setdefault(task.id, task)
        return list(seen.values())


class ProjectDB(_Collection[Project]):
    """Project documents. Also satisfies the ProjectLookup port."""

    collection = "projects"
    model = Project

    def get_project(self, project_id: str) -> Project | None:
        return self.get(project_id)


class TeamDB(_Collection[Team]):
    """Team documents. Also satisfies the TeamLookup port."""

    collection = "teams"
    model = Team

    def get_team(self, team_id: str) -> Team | None:
        return self.get(team_id)

    def teams_for_user(self, user_id: str) -> list[Team]:
        return [
            t for t in self.find(is_deleted=False)
            if t.member(user_id) is not None
        ]


class InvitationDB(_Collection[TeamInvitation]):
    collection = "teamInvitations"
    model = TeamInvitation

    def get_by_token(self, token: str) -> TeamInvitation | None:
        found = self.find(token=token)
        return found[0] if found else None


class NotificationDB(_Collection[Notification]):
    collection = "notifications"
    model = Notification

    def for_user(self, user_id: str, unread_only: bool = False) -> list[Notification]:
        if unread_only:
            return self.find(user_id=user_id, is_read=False)
        return self.find(user_id=user_id)


class UserDB(_Collection[User]):
    collection = "users"
    model = User

    def get_user(self, user_id: str) -> User | None:
        return self.get(user_id)

    def add_user(self, user: User) -> User:
        """Store a user under their auth-provider id."""
        if user.email:
            user = dataclasses.replace(user, email=user.email.strip().lower())
        return self.add(user, doc_id=user.id)

    def find_by_email(self, email: str) -> User | None:
        found = self.find(email=email.strip().lower())
        return found[0] if found else None

    def list_users(self) -> list[User]:
        return self.find()
