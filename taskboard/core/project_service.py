"""
Taskboard - Project Service.

Projects group tasks and carry a member list with per-project roles.
Deleting or restoring a project also decides the fate of its tasks:

- all:     every task follows the project
- partial: the selected tasks follow, the rest are detached (delete) or
           left alone (restore)
- none:    tasks are detached on delete and untouched on restore
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Callable, Iterable, Mapping

from taskboard.core.completion import recalculate_completion_rate, recalculate_safely
from taskboard.core.errors import NotFound, PermissionDenied, StaleState, ValidationError
from taskboard.core.notifications import notify_safely
from taskboard.core.permissions import (
    PermissionResolver,
    ScopeMode,
    ViewScope,
    is_team_member,
    project_in_scope,
)
from taskboard.core.task_service import restore_changes, soft_delete_changes
from taskboard.data.db import ProjectDB, TaskDB, TeamDB, apply_changes
from taskboard.data.models import (
    Actor,
    NotificationType,
    Project,
    ProjectMember,
    ProjectRole,
    ProjectStatus,
)
from taskboard.data.updates import CLEAR, FieldUpdate, SetTo
from taskboard.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

_PROTECTED_FIELDS = frozenset({
    "id",
    "owner_id",
    "owner_name",
    "members",
    "completion_rate",
    "total_tasks",
    "completed_tasks",
    "is_deleted",
    "deleted_at",
    "status_before_deletion",
    "original_task_ids",
    "date_checked_at",
    "created_at",
    "updated_at",
})


class TaskMode(str, Enum):
    """What happens to a project's tasks when it is deleted or restored."""

    ALL = "all"
    PARTIAL = "partial"
    NONE = "none"


@dataclass
class ProjectDraft:
    name: str
    description: str | None = None
    team_id: str | None = None
    assignee_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    members: list[ProjectMember] = field(default_factory=list)


def _selected(mode: TaskMode, task_id: str, task_ids: set[str]) -> bool:
    return mode == TaskMode.ALL or (mode == TaskMode.PARTIAL and task_id in task_ids)


class ProjectService:
    def __init__(
        self,
        projects: ProjectDB,
        tasks: TaskDB,
        teams: TeamDB,
        notifier: NotificationPort,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._projects = projects
        self._tasks = tasks
        self._teams = teams
        self._notifier = notifier
        self._clock = clock
        self._permissions = PermissionResolver(projects, teams)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require(self, project_id: str) -> Project:
        project = self._projects.get_project(project_id)
        if project is None:
            raise NotFound("Project not found")
        return project

    def _require_live(self, project_id: str) -> Project:
        project = self._require(project_id)
        if project.is_deleted:
            raise StaleState("Project has been deleted")
        return project

    def _check_team(self, actor: Actor, team_id: str) -> str:
        """Validate a team link and return the team name."""
        team = self._teams.get_team(team_id)
        if team is None or team.is_deleted:
            raise NotFound("Team not found")
        if not is_team_member(team, actor.user_id):
            raise PermissionDenied("You are not a member of this team")
        return team.name

    @staticmethod
    def _validate(project: Project) -> None:
        if not (project.name or "").strip():
            raise ValidationError("Project name is required")
        if project.start_date and project.end_date and project.end_date < project.start_date:
            raise ValidationError("End date must not be before the start date")

    async def _notify_members(
        self,
        actor: Actor,
        project: Project,
        type: NotificationType,
        title: str,
        message: str,
        user_ids: Iterable[str] | None = None,
    ) -> None:
        if user_ids is None:
            user_ids = [project.owner_id, *project.member_ids()]
        for user_id in dict.fromkeys(user_ids):
            if user_id == actor.user_id:
                continue
            await notify_safely(
                self._notifier, user_id, type, title, message,
                project_id=project.id, team_id=project.team_id,
            )

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create_project(self, actor: Actor, draft: ProjectDraft) -> Project:
        now = self._clock()
        members = [ProjectMember(actor.user_id, actor.display_name, ProjectRole.OWNER, now)]
        for m in draft.members:
            if m.user_id != actor.user_id and all(x.user_id != m.user_id for x in members):
                members.append(replace(m, joined_at=m.joined_at or now))

        project = Project(
            id="",
            name=(draft.name or "").strip(),
            owner_id=actor.user_id,
            owner_name=actor.display_name,
            description=draft.description,
            team_id=draft.team_id,
            team_name=self._check_team(actor, draft.team_id) if draft.team_id else None,
            assignee_id=draft.assignee_id,
            members=members,
            start_date=draft.start_date,
            end_date=draft.end_date,
            created_at=now,
            updated_at=now,
        )
        self._validate(project)
        created = self._projects.add(project)
        logger.info("Project created: %s '%s' by %s", created.id, created.name, actor.user_id)

        await self._notify_members(
            actor, created, NotificationType.PROJECT_CREATED,
            "Project created", f'{actor.display_name} created project "{created.name}"',
        )
        return created

    def get_project(self, actor: Actor, project_id: str) -> Project:
        project = self._require(project_id)
        if not self._permissions.can_view_project(project, actor.user_id):
            raise PermissionDenied("You do not have permission to view this project")
        return project

    def _scoped(self, scope: ViewScope) -> list[Project]:
        if scope.mode == ScopeMode.TEAM:
            team = self._teams.get_team(scope.team_id)
            if team is None or not is_team_member(team, scope.user_id):
                raise PermissionDenied("You are not a member of this team")
            candidates = self._projects.find(team_id=scope.team_id)
        else:
            candidates = self._projects.find()
        user_tasks = self._tasks.tasks_for_user(scope.user_id)
        return [p for p in candidates if project_in_scope(p, scope, user_tasks)]

    def list_projects(self, scope: ViewScope) -> list[Project]:
        return [p for p in self._scoped(scope) if not p.is_deleted]

    def list_deleted_projects(self, scope: ViewScope) -> list[Project]:
        return [p for p in self._scoped(scope) if p.is_deleted]

    async def update_project(
        self, actor: Actor, project_id: str, changes: Mapping[str, FieldUpdate],
    ) -> Project:
        now = self._clock()
        project = self._require_live(project_id)
        if not self._permissions.can_edit_project(project, actor.user_id):
            raise PermissionDenied("You do not have permission to edit this project")

        blocked = sorted(set(changes) & _PROTECTED_FIELDS)
        if blocked:
            raise ValidationError(f"Field '{blocked[0]}' cannot be changed directly")

        updated = apply_changes(project, changes)
        updated = replace(updated, name=(updated.name or "").strip())
        self._validate(updated)

        if updated.team_id != project.team_id:
            team_name = self._check_team(actor, updated.team_id) if updated.team_id else None
            updated = replace(updated, team_name=team_name)

        completing = (
            updated.status == ProjectStatus.COMPLETED
            and project.status != ProjectStatus.COMPLETED
        )
        if completing:
            live = self._tasks.tasks_for_project(project.id)
            updated = replace(updated, original_task_ids=[t.id for t in live])
        elif updated.status != ProjectStatus.COMPLETED:
            updated = replace(updated, original_task_ids=None)

        if updated == project:
            return project
        saved = self._projects.save(project, replace(updated, updated_at=now))
        logger.info("Project %s updated by %s", saved.id, actor.user_id)

        if saved.name != project.name:
            for task in self._tasks.tasks_for_project(saved.id, include_deleted=True):
                self._tasks.update(task.id, {"project_name": SetTo(saved.name)})

        if completing:
            await self._notify_members(
                actor, saved, NotificationType.PROJECT_COMPLETED,
                "Project completed", f'{actor.display_name} completed project "{saved.name}"',
            )
        else:
            await self._notify_members(
                actor, saved, NotificationType.PROJECT_UPDATED,
                "Project updated", f'{actor.display_name} updated project "{saved.name}"',
            )
        return saved

    async def complete_project(self, actor: Actor, project_id: str) -> Project:
        return await self.update_project(
            actor, project_id, {"status": SetTo(ProjectStatus.COMPLETED)},
        )

    def recalculate_completion_rate(self, project_id: str) -> Project | None:
        return recalculate_completion_rate(self._projects, self._tasks, project_id)

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def _manageable(self, actor: Actor, project_id: str) -> Project:
        project = self._require_live(project_id)
        if not self._permissions.can_manage_project_members(project, actor.user_id):
            raise PermissionDenied("You do not have permission to manage project members")
        return project

    async def add_member(
        self,
        actor: Actor,
        project_id: str,
        user_id: str,
        user_name: str = "",
        role: ProjectRole = ProjectRole.MEMBER,
    ) -> Project:
        project = self._manageable(actor, project_id)
        if project.member(user_id) is not None:
            raise ValidationError("User is already a member of this project")
        if project.team_id:
            team = self._teams.get_team(project.team_id)
            if not is_team_member(team, user_id):
                raise ValidationError("User is not a member of the project's team")

        member = ProjectMember(user_id, user_name, role, self._clock())
        updated = self._projects.update(project.id, {
            "members": SetTo([*project.members, member]),
            "updated_at": SetTo(self._clock()),
        })
        logger.info("User %s added to project %s as %s", user_id, project.id, role.value)
        await self._notify_members(
            actor, updated, NotificationType.PROJECT_MEMBER_ADDED,
            "Added to project", f'You were added to project "{updated.name}"',
            user_ids=[user_id],
        )
        return updated

    async def remove_member(self, actor: Actor, project_id: str, user_id: str) -> Project:
        project = self._manageable(actor, project_id)
        if user_id == project.owner_id:
            raise ValidationError("The project owner cannot be removed")
        if user_id == actor.user_id:
            raise ValidationError("You cannot remove yourself from the project")
        if project.member(user_id) is None:
            raise NotFound("Member not found")

        updated = self._projects.update(project.id, {
            "members": SetTo([m for m in project.members if m.user_id != user_id]),
            "updated_at": SetTo(self._clock()),
        })
        logger.info("User %s removed from project %s", user_id, project.id)
        await self._notify_members(
            actor, updated, NotificationType.PROJECT_MEMBER_REMOVED,
            "Removed from project", f'You were removed from project "{updated.name}"',
            user_ids=[user_id],
        )
        return updated

    async def update_member_role(
        self, actor: Actor, project_id: str, user_id: str, role: ProjectRole,
    ) -> Project:
        project = self._manageable(actor, project_id)
        if user_id == project.owner_id:
            raise ValidationError("The project owner's role cannot be changed")
        if project.member(user_id) is None:
            raise NotFound("Member not found")

        members = [
            replace(m, role=role) if m.user_id == user_id else m
            for m in project.members
        ]
        updated = self._projects.update(project.id, {
            "members": SetTo(members),
            "updated_at": SetTo(self._clock()),
        })
        await self._notify_members(
            actor, updated, NotificationType.PROJECT_MEMBER_ROLE_CHANGED,
            "Project role changed",
            f'Your role in project "{updated.name}" is now {role.value}',
            user_ids=[user_id],
        )
        return updated

    # ------------------------------------------------------------------
    # Delete / restore
    # ------------------------------------------------------------------

    async def delete_project(
        self,
        actor: Actor,
        project_id: str,
        mode: TaskMode = TaskMode.NONE,
        task_ids: Iterable[str] | None = None,
    ) -> Project:
        now = self._clock()
        project = self._require(project_id)
        if project.is_deleted:
            raise StaleState("Project is already deleted")
        if not self._permissions.can_delete_project(project, actor.user_id):
            raise PermissionDenied("You do not have permission to delete this project")
        if mode == TaskMode.PARTIAL and task_ids is None:
            raise ValidationError("Select the tasks to delete")

        selected = set(task_ids or ())
        live = self._tasks.tasks_for_project(project.id)
        for task in live:
            if _selected(mode, task.id, selected):
                self._tasks.update(task.id, soft_delete_changes(task, now))
            else:
                self._tasks.update(task.id, {
                    "project_id": CLEAR,
                    "project_name": CLEAR,
                    "updated_at": SetTo(now),
                })

        deleted = self._projects.update(project.id, {
            "is_deleted": SetTo(True),
            "deleted_at": SetTo(now),
            "status_before_deletion": SetTo(project.status),
            "original_task_ids": SetTo([t.id for t in live]),
            "updated_at": SetTo(now),
        })
        logger.info(
            "Project %s deleted by %s (%s, %d task(s))",
            project.id, actor.user_id, mode.value, len(live),
        )
        await self._notify_members(
            actor, deleted, NotificationType.PROJECT_DELETED,
            "Project deleted", f'{actor.display_name} deleted project "{deleted.name}"',
        )
        return deleted

    async def restore_project(
        self,
        actor: Actor,
        project_id: str,
        mode: TaskMode = TaskMode.ALL,
        task_ids: Iterable[str] | None = None,
    ) -> Project:
        now = self._clock()
        project = self._require(project_id)
        if not project.is_deleted:
            raise StaleState("Project is not deleted")
        if not self._permissions.can_restore_project(project, actor.user_id):
            raise PermissionDenied("You do not have permission to restore this project")

        selected = set(task_ids or ())
        for task_id in project.original_task_ids or []:
            if not _selected(mode, task_id, selected):
                continue
            task = self._tasks.get_task(task_id)
            if task is None:
                logger.warning("Task %s of project %s no longer exists", task_id, project.id)
                continue
            changes = restore_changes(task, now) if task.is_deleted else {}
            changes["project_id"] = SetTo(project.id)
            changes["project_name"] = SetTo(project.name)
            changes["updated_at"] = SetTo(now)
            try:
                self._tasks.update(task.id, changes)
            except Exception as exc:
                logger.error("Failed to restore task %s: %s", task.id, exc)

        restored = self._projects.update(project.id, {
            "is_deleted": SetTo(False),
            "deleted_at": CLEAR,
            "status": SetTo(project.status_before_deletion or ProjectStatus.NOT_STARTED),
            "status_before_deletion": CLEAR,
            "original_task_ids": CLEAR,
            "updated_at": SetTo(now),
        })
        logger.info("Project %s restored by %s (%s)", project.id, actor.user_id, mode.value)

        recalculate_safely(self._projects, self._tasks, restored.id)
        await self._notify_members(
            actor, restored, NotificationType.PROJECT_RESTORED,
            "Project restored", f'{actor.display_name} restored project "{restored.name}"',
        )
        return restored
