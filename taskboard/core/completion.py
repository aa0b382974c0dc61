"""Project completion-rate recalculation.

Shared by the task and project services. Idempotent: running it again
after a crash between steps brings the counters back in line.
"""

from __future__ import annotations

import logging

from taskboard.data.db import ProjectDB
from taskboard.data.models import Project, TaskStatus
from taskboard.data.updates import SetTo
from taskboard.ports.lookups import TaskLookup

logger = logging.getLogger(__name__)


def completion_rate(completed: int, total: int) -> int:
    """Percentage rounded half up; 0 for an empty project."""
    if total <= 0:
        return 0
    return (completed * 200 + total) // (total * 2)


def recalculate_completion_rate(
    projects: ProjectDB, tasks: TaskLookup, project_id: str,
) -> Project | None:
    project = projects.get_project(project_id)
    if project is None:
        return None

    live = tasks.tasks_for_project(project_id)
    total = len(live)
    completed = sum(1 for t in live if t.status == TaskStatus.COMPLETED)
    rate = completion_rate(completed, total)

    updated = projects.update(project_id, {
        "completion_rate": SetTo(rate),
        "total_tasks": SetTo(total),
        "completed_tasks": SetTo(completed),
    })
    logger.debug("Project %s completion %d%% (%d/%d)", project_id, rate, completed, total)
    return updated


def recalculate_safely(projects: ProjectDB, tasks: TaskLookup, project_id: str | None) -> None:
    """Recalculate, logging instead of raising: the triggering write stands."""
    if not project_id:
        return
    try:
        recalculate_completion_rate(projects, tasks, project_id)
    except Exception as exc:
        logger.error("Failed to recalculate completion for project %s: %s", project_id, exc)
