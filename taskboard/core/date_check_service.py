"""
Taskboard - Date-check runner.

Acts on the pure checks in core/date_check.py: notifies the people
concerned, optionally moves the status forward, and stamps
date_checked_at so the same entity is checked at most once per day.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from taskboard.core.date_check import DateCheckResult, check_project_dates, check_task_dates
from taskboard.core.errors import NotFound, PermissionDenied
from taskboard.core.notifications import notify_safely
from taskboard.core.permissions import PermissionResolver
from taskboard.data.db import ProjectDB, TaskDB, TeamDB
from taskboard.data.models import (
    Actor,
    CheckType,
    NotificationType,
    ProjectStatus,
    TaskStatus,
)
from taskboard.data.updates import SetTo
from taskboard.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


class DateCheckService:
    def __init__(
        self,
        tasks: TaskDB,
        projects: ProjectDB,
        teams: TeamDB,
        notifier: NotificationPort,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._tasks = tasks
        self._projects = projects
        self._notifier = notifier
        self._clock = clock
        self._permissions = PermissionResolver(projects, teams)

    async def run_task_check(
        self,
        actor: Actor,
        task_id: str,
        now: datetime | None = None,
        auto_transition: bool = False,
    ) -> DateCheckResult:
        """Check one task's start and end dates.

        With auto_transition, a passed start moves the task to
        in_progress and a passed end moves it to overdue.
        """
        now = now or self._clock()
        task = self._tasks.get_task(task_id)
        if task is None or task.is_deleted:
            raise NotFound("Task not found")
        if not self._permissions.can_view_task(task, actor.user_id):
            raise PermissionDenied("You do not have permission to view this task")

        result = check_task_dates(task, now)
        if not result.needs_action:
            return result

        changes = {"date_checked_at": SetTo(now)}
        if auto_transition:
            if result.needs_end_check:
                changes["status"] = SetTo(TaskStatus.OVERDUE)
            elif result.needs_start_check:
                changes["status"] = SetTo(TaskStatus.IN_PROGRESS)
        self._tasks.update(task.id, changes)
        logger.info(
            "Date check on task %s: start=%s end=%s",
            task.id, result.needs_start_check, result.needs_end_check,
        )

        recipient = task.effective_assignee_id
        refs = {"task_id": task.id, "project_id": task.project_id, "team_id": task.team_id}
        if result.needs_start_check:
            await notify_safely(
                self._notifier, recipient, NotificationType.TASK_OVERDUE,
                "Start date passed",
                f'Task "{task.title}" was scheduled to start on {task.start_date:%Y-%m-%d}',
                check_type=CheckType.START_DATE, **refs,
            )
        if result.needs_end_check:
            await notify_safely(
                self._notifier, recipient, NotificationType.TASK_OVERDUE,
                "End date passed",
                f'Task "{task.title}" was due on {task.end_date:%Y-%m-%d}',
                check_type=CheckType.END_DATE, **refs,
            )
        return result

    async def check_user_tasks(
        self, actor: Actor, now: datetime | None = None, auto_transition: bool = False,
    ) -> dict[str, DateCheckResult]:
        """Run the task check over everything the user created or is assigned."""
        now = now or self._clock()
        results: dict[str, DateCheckResult] = {}
        for task in self._tasks.tasks_for_user(actor.user_id):
            if task.is_deleted:
                continue
            try:
                result = await self.run_task_check(actor, task.id, now, auto_transition)
            except Exception as exc:
                logger.error("Failed date check for task %s: %s", task.id, exc)
                continue
            if result.needs_action:
                results[task.id] = result
        return results

    async def run_project_check(
        self, actor: Actor, project_id: str, now: datetime | None = None,
    ) -> DateCheckResult:
        now = now or self._clock()
        project = self._projects.get_project(project_id)
        if project is None or project.is_deleted:
            raise NotFound("Project not found")
        if not self._permissions.can_view_project(project, actor.user_id):
            raise PermissionDenied("You do not have permission to view this project")

        result = check_project_dates(project, now)
        if not result.needs_start_check:
            return result

        updated = self._projects.update(project.id, {
            "status": SetTo(ProjectStatus.IN_PROGRESS),
            "date_checked_at": SetTo(now),
        })
        logger.info("Project %s started by date check", project.id)

        recipients = dict.fromkeys([updated.owner_id, *updated.member_ids()])
        for user_id in recipients:
            if user_id == actor.user_id:
                continue
            await notify_safely(
                self._notifier, user_id, NotificationType.PROJECT_UPDATED,
                "Project started",
                f'Project "{updated.name}" passed its start date and is now in progress',
                project_id=updated.id, team_id=updated.team_id,
            )
        return result
