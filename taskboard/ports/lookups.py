"""Read-only lookup ports.

The permission resolver and the completion-rate recalculation depend on
these narrow interfaces instead of on the task or project services, which
keeps the task and project sides from importing each other.
TaskDB, ProjectDB and TeamDB in data/db.py satisfy them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from taskboard.data.models import Project, Task, Team


class TaskLookup(Protocol):
    def tasks_for_project(self, project_id: str, include_deleted: bool = False) -> list[Task]: ...


class ProjectLookup(Protocol):
    def get_project(self, project_id: str) -> Project | None: ...


class TeamLookup(Protocol):
    def get_team(self, team_id: str) -> Team | None: ...
