"""
Taskboard - Permission Resolver.

Permission is never stored: it is recomputed on every call from the
task -> project -> team relationships. The resolver never raises; a
missing or deleted project/team simply grants nothing. Services turn a
False answer into PermissionDenied.

Also holds the scope filters that decide which tasks and projects a view
shows, given an explicit (user, mode, team) scope.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from taskboard.core.errors import ValidationError
from taskboard.data.models import Project, ProjectRole, Task, Team, TeamRole
from taskboard.ports.lookups import ProjectLookup, TeamLookup


_TEAM_ADMIN_ROLES = frozenset({TeamRole.OWNER, TeamRole.ADMIN})


# ---------------------------------------------------------------------------
# Team helpers (no lookups needed)
# ---------------------------------------------------------------------------


def is_team_member(team: Team | None, user_id: str) -> bool:
    return team is not None and team.member(user_id) is not None


def is_team_admin(team: Team | None, user_id: str) -> bool:
    """Owner or admin of the team."""
    if team is None:
        return False
    if team.owner_id == user_id:
        return True
    return team.role_of(user_id) in _TEAM_ADMIN_ROLES


def is_team_owner(team: Team | None, user_id: str) -> bool:
    return team is not None and team.owner_id == user_id


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class PermissionResolver:
    """Answers view/edit/delete/restore questions for tasks and projects."""

    def __init__(self, projects: ProjectLookup, teams: TeamLookup) -> None:
        self._projects = projects
        self._teams = teams

    def _team(self, team_id: str | None) -> Team | None:
        if not team_id:
            return None
        team = self._teams.get_team(team_id)
        if team is None or team.is_deleted:
            return None
        return team

    def _project(self, project_id: str | None) -> Project | None:
        if not project_id:
            return None
        project = self._projects.get_project(project_id)
        if project is None or project.is_deleted:
            return None
        return project

    # -- tasks ---------------------------------------------------------------

    def can_view_task(self, task: Task, user_id: str) -> bool:
        if task.creator_id == user_id:
            return True
        if task.is_team_task and task.assignee_id == user_id:
            return True
        if task.team_id and is_team_member(self._team(task.team_id), user_id):
            return True
        if task.project_id:
            project = self._project(task.project_id)
            if project is not None:
                if project.owner_id == user_id or project.member(user_id) is not None:
                    return True
                if is_team_member(self._team(project.team_id), user_id):
                    return True
        return False

    def can_edit_task(self, task: Task, user_id: str) -> bool:
        if task.creator_id == user_id:
            return True
        if task.is_team_task and task.assignee_id == user_id:
            return True
        if is_team_admin(self._team(task.team_id), user_id):
            return True
        if task.project_id:
            project = self._project(task.project_id)
            if project is not None:
                if task.assignee_id == user_id:
                    return True
                if project.owner_id == user_id or project.assignee_id == user_id:
                    return True
        return False

    def can_delete_task(self, task: Task, user_id: str) -> bool:
        if task.creator_id == user_id:
            return True
        if is_team_admin(self._team(task.team_id), user_id):
            return True
        project = self._project(task.project_id)
        return project is not None and project.owner_id == user_id

    def can_restore_task(self, task: Task, user_id: str) -> bool:
        return self.can_delete_task(task, user_id)

    def can_permanently_delete_task(self, task: Task, user_id: str) -> bool:
        if not task.is_team_task:
            return task.creator_id == user_id
        if is_team_admin(self._team(task.team_id), user_id):
            return True
        project = self._project(task.project_id)
        return project is not None and project.owner_id == user_id

    # -- projects ------------------------------------------------------------

    def can_view_project(self, project: Project, user_id: str) -> bool:
        if project.owner_id == user_id or project.member(user_id) is not None:
            return True
        return is_team_member(self._team(project.team_id), user_id)

    def can_edit_project(self, project: Project, user_id: str) -> bool:
        if project.owner_id == user_id or project.effective_assignee_id == user_id:
            return True
        member = project.member(user_id)
        if member is not None and member.role == ProjectRole.OWNER:
            return True
        return is_team_admin(self._team(project.team_id), user_id)

    def can_delete_project(self, project: Project, user_id: str) -> bool:
        if project.owner_id == user_id:
            return True
        return is_team_admin(self._team(project.team_id), user_id)

    def can_restore_project(self, project: Project, user_id: str) -> bool:
        return self.can_delete_project(project, user_id)

    def can_manage_project_members(self, project: Project, user_id: str) -> bool:
        return self.can_delete_project(project, user_id)


# ---------------------------------------------------------------------------
# Scope filters
# ---------------------------------------------------------------------------


class ScopeMode(str, Enum):
    PERSONAL = "personal"
    TEAM = "team"


@dataclass(frozen=True)
class ViewScope:
    """Who is looking, and through which lens (personal or one team)."""

    user_id: str
    mode: ScopeMode = ScopeMode.PERSONAL
    team_id: str | None = None

    def __post_init__(self) -> None:
        if self.mode == ScopeMode.TEAM and not self.team_id:
            raise ValidationError("A team must be selected for team view")

    @classmethod
    def personal(cls, user_id: str) -> ViewScope:
        return cls(user_id=user_id)

    @classmethod
    def team(cls, user_id: str, team_id: str) -> ViewScope:
        return cls(user_id=user_id, mode=ScopeMode.TEAM, team_id=team_id)


def task_in_scope(task: Task, scope: ViewScope, user_team_ids: Iterable[str] = ()) -> bool:
    """Personal view: own personal tasks plus team tasks assigned to the user
    (or unassigned and created by them) in one of their teams. Team view:
    tasks of the selected team."""
    if scope.mode == ScopeMode.TEAM:
        return task.team_id == scope.team_id
    if not task.is_team_task:
        return task.creator_id == scope.user_id
    return task.effective_assignee_id == scope.user_id and task.team_id in set(user_team_ids)


def is_project_visible_personal(project: Project, user_id: str, tasks: Iterable[Task] = ()) -> bool:
    """Effective assignee, or involved through one of the project's tasks."""
    if project.effective_assignee_id == user_id:
        return True
    for task in tasks:
        if task.project_id != project.id or task.is_deleted:
            continue
        if task.assignee_id == user_id:
            return True
        if task.assignee_id is None and task.creator_id == user_id:
            return True
    return False


def project_in_scope(project: Project, scope: ViewScope, user_tasks: Iterable[Task] = ()) -> bool:
    involved = project.owner_id == scope.user_id or project.member(scope.user_id) is not None
    if scope.mode == ScopeMode.TEAM:
        return project.team_id == scope.team_id and involved
    return involved or is_project_visible_personal(project, scope.user_id, user_tasks)
