"""
Taskboard - Data Models.

Every entity lives as one document in a collection of the document store.
Models are plain dataclasses; pydantic maps them to and from JSON-ready
documents (ISO datetimes, enum values, absent fields for None).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from functools import lru_cache
from typing import Any, TypeVar

from pydantic import TypeAdapter

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class TaskStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    OVERDUE = "overdue"


class ProjectStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Priority(str, Enum):
    IMPORTANT = "important"
    NORMAL = "normal"
    LOW = "low"
    NONE = "none"
    CUSTOM = "custom"


class TaskType(str, Enum):
    NORMAL = "normal"
    MEETING = "meeting"
    REGULAR = "regular"
    PROJECT = "project"
    OTHER = "other"


class Recurrence(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class ReminderKind(str, Enum):
    BEFORE_START = "before_start"
    BEFORE_END = "before_end"


class ReminderUnit(str, Enum):
    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"


class ProjectRole(str, Enum):
    OWNER = "owner"
    MEMBER = "member"
    VIEWER = "viewer"


class TeamRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


class InvitationKind(str, Enum):
    EMAIL = "email"
    LINK = "link"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"


class CheckType(str, Enum):
    """Which date check produced a task_overdue notification."""

    START_DATE = "start_date"
    END_DATE = "end_date"
    COMPLETION = "completion"
    PROJECT_END_DATE = "project_end_date"


class NotificationType(str, Enum):
    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    TASK_DELETED = "task_deleted"
    TASK_RESTORED = "task_restored"
    TASK_COMPLETED = "task_completed"
    TASK_OVERDUE = "task_overdue"
    TASK_REMINDER = "task_reminder"
    PROJECT_CREATED = "project_created"
    PROJECT_UPDATED = "project_updated"
    PROJECT_DELETED = "project_deleted"
    PROJECT_RESTORED = "project_restored"
    PROJECT_COMPLETED = "project_completed"
    PROJECT_MEMBER_ADDED = "project_member_added"
    PROJECT_MEMBER_REMOVED = "project_member_removed"
    PROJECT_MEMBER_ROLE_CHANGED = "project_member_role_changed"
    TEAM_INVITATION = "team_invitation"
    TEAM_INVITATION_ACCEPTED = "team_invitation_accepted"
    TEAM_INVITATION_REJECTED = "team_invitation_rejected"
    TEAM_LEAVE = "team_leave"
    TEAM_PERMISSION_CHANGE = "team_permission_change"
    TEAM_ADMIN_ANNOUNCEMENT = "team_admin_announcement"


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Actor:
    """The acting user, as supplied by the auth/session provider."""

    user_id: str
    display_name: str


@dataclass
class User:
    """A registered user and their notification preferences.

    notification_settings is a flat mapping of preference keys
    (e.g. "task", "task_created", "task_created_push") to booleans;
    a missing key means the preference is enabled.
    """

    id: str
    display_name: str
    email: str | None = None
    role: UserRole = UserRole.USER
    push_token: str | None = None      # Telegram chat id for push delivery
    notification_settings: dict[str, bool] = field(default_factory=dict)
    created_at: datetime | None = None

    def allows(self, key: str) -> bool:
        return self.notification_settings.get(key) is not False


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


@dataclass
class SubTask:
    id: str
    title: str
    completed: bool = False
    completed_at: datetime | None = None
    assignee_id: str | None = None
    assignee_name: str | None = None


@dataclass
class Reminder:
    """A task reminder.

    Relative reminders carry kind/amount/unit and fire that long before the
    task's start or end. Absolute reminders carry scheduled_at only.
    """

    id: str
    kind: ReminderKind | None = None
    amount: int | None = None
    unit: ReminderUnit | None = None
    scheduled_at: datetime | None = None
    sent: bool = False
    sent_at: datetime | None = None


@dataclass
class Comment:
    id: str
    user_id: str
    user_name: str
    content: str
    created_at: datetime
    updated_at: datetime | None = None


@dataclass
class WorkSessionChange:
    """One edited field of a work session (old/new values as ISO text or ints)."""

    id: str
    session_id: str
    changed_by: str
    changed_by_name: str
    changed_at: datetime
    field_name: str                   # "start_time" | "end_time" | "break_minutes"
    old_value: Any = None
    new_value: Any = None


@dataclass
class WorkSession:
    id: str
    start_time: datetime
    end_time: datetime | None = None
    break_minutes: int = 0
    actual_seconds: int = 0
    change_logs: list[WorkSessionChange] = field(default_factory=list)


@dataclass
class Task:
    """A task document.

    recurrence_instance is None for one-off tasks, 0 for a series parent
    and 1, 2, ... for generated children.
    """

    id: str
    title: str
    creator_id: str
    start_date: datetime
    end_date: datetime
    creator_name: str = ""
    description: str | None = None
    project_id: str | None = None
    project_name: str | None = None
    team_id: str | None = None
    team_name: str | None = None
    assignee_id: str | None = None
    assignee_name: str | None = None
    status: TaskStatus = TaskStatus.NOT_STARTED
    priority: Priority = Priority.NORMAL
    custom_priority: str | None = None
    task_type: TaskType = TaskType.NORMAL
    custom_task_type: str | None = None
    memo: str | None = None
    completed_at: datetime | None = None
    subtasks: list[SubTask] = field(default_factory=list)
    reminders: list[Reminder] = field(default_factory=list)
    comments: list[Comment] = field(default_factory=list)
    work_sessions: list[WorkSession] = field(default_factory=list)
    total_work_seconds: int = 0
    progress: int = 0
    recurrence: Recurrence = Recurrence.NONE
    recurrence_end_date: datetime | None = None
    parent_task_id: str | None = None
    recurrence_instance: int | None = None
    is_recurrence_parent: bool = False
    is_deleted: bool = False
    deleted_at: datetime | None = None
    status_before_deletion: TaskStatus | None = None
    date_checked_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_team_task(self) -> bool:
        return self.team_id is not None

    @property
    def effective_assignee_id(self) -> str:
        return self.assignee_id or self.creator_id

    @property
    def duration(self) -> timedelta:
        return self.end_date - self.start_date


# ---------------------------------------------------------------------------
# Projects and teams
# ---------------------------------------------------------------------------


@dataclass
class ProjectMember:
    user_id: str
    user_name: str = ""
    role: ProjectRole = ProjectRole.MEMBER
    joined_at: datetime | None = None


@dataclass
class Project:
    id: str
    name: str
    owner_id: str
    owner_name: str = ""
    description: str | None = None
    team_id: str | None = None
    team_name: str | None = None
    assignee_id: str | None = None
    members: list[ProjectMember] = field(default_factory=list)
    status: ProjectStatus = ProjectStatus.NOT_STARTED
    start_date: datetime | None = None
    end_date: datetime | None = None
    completion_rate: int = 0
    total_tasks: int = 0
    completed_tasks: int = 0
    is_deleted: bool = False
    deleted_at: datetime | None = None
    status_before_deletion: ProjectStatus | None = None
    original_task_ids: list[str] | None = None
    date_checked_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def effective_assignee_id(self) -> str:
        return self.assignee_id or self.owner_id

    def member(self, user_id: str) -> ProjectMember | None:
        for m in self.members:
            if m.user_id == user_id:
                return m
        return None

    def member_ids(self) -> list[str]:
        return [m.user_id for m in self.members]


@dataclass
class TeamMember:
    user_id: str
    user_name: str = ""
    role: TeamRole = TeamRole.MEMBER
    joined_at: datetime | None = None
    invited_by: str | None = None


@dataclass
class Team:
    id: str
    name: str
    owner_id: str
    description: str | None = None
    members: list[TeamMember] = field(default_factory=list)
    is_deleted: bool = False
    deleted_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def member(self, user_id: str) -> TeamMember | None:
        for m in self.members:
            if m.user_id == user_id:
                return m
        return None

    def role_of(self, user_id: str) -> TeamRole | None:
        m = self.member(user_id)
        return m.role if m else None

    def member_ids(self) -> list[str]:
        return [m.user_id for m in self.members]


@dataclass
class TeamInvitation:
    id: str
    team_id: str
    team_name: str
    invited_by: str
    invited_by_name: str
    token: str
    kind: InvitationKind
    expires_at: datetime
    status: InvitationStatus = InvitationStatus.PENDING
    invited_user_id: str | None = None
    invited_email: str | None = None
    created_at: datetime | None = None
    responded_at: datetime | None = None


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


@dataclass
class Notification:
    id: str
    user_id: str
    type: NotificationType
    title: str
    message: str
    task_id: str | None = None
    project_id: str | None = None
    team_id: str | None = None
    invitation_id: str | None = None
    check_type: CheckType | None = None
    is_read: bool = False
    show_in_app: bool = True
    push_sent: bool = False
    created_at: datetime | None = None


# ---------------------------------------------------------------------------
# Document mapping
# ---------------------------------------------------------------------------


@lru_cache(maxsize=None)
def _adapter(model: type) -> TypeAdapter:
    return TypeAdapter(model)


def to_doc(entity: Any) -> dict[str, Any]:
    """Dump an entity to a JSON-ready document, omitting None fields."""
    return _adapter(type(entity)).dump_python(entity, mode="json", exclude_none=True)


def from_doc(model: type[T], doc: dict[str, Any]) -> T:
    """Build an entity of type *model* from a stored document."""
    return _adapter(model).validate_python(doc)
