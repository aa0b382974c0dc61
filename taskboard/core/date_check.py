"""
Taskboard - Date-Check Engine.

Decides, once per calendar day per entity, whether a task or project has
passed its start date while still not started, or passed its end date
while still open. The "already checked today" marker (date_checked_at)
is compared by calendar date, not by wall-clock distance.

Stored times carry meaning: a start at exactly 00:00:00 and an end at
23:59:59 mean "the whole day", so those compare by date only; any other
time is compared as an exact instant.

No I/O: this module only evaluates. DateCheckService acts on the result.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time

from taskboard.data.models import Project, ProjectStatus, Task, TaskStatus

END_OF_DAY = time(23, 59, 59)


@dataclass(frozen=True)
class DateCheckResult:
    """Which prompts are due for an entity right now."""

    needs_start_check: bool = False
    needs_end_check: bool = False

    @property
    def needs_action(self) -> bool:
        return self.needs_start_check or self.needs_end_check


NO_ACTION = DateCheckResult()


def checked_today(marker: datetime | None, now: datetime) -> bool:
    return marker is not None and marker.date() == now.date()


def start_has_passed(start: datetime, now: datetime) -> bool:
    if start.time() == time.min:
        return start.date() < now.date()
    return start < now


def end_has_passed(end: datetime, now: datetime) -> bool:
    if end.time().replace(microsecond=0) == END_OF_DAY:
        return end.date() < now.date()
    return end < now


def check_task_dates(task: Task, now: datetime) -> DateCheckResult:
    if task.is_deleted or checked_today(task.date_checked_at, now):
        return NO_ACTION

    needs_start = (
        task.status == TaskStatus.NOT_STARTED
        and start_has_passed(task.start_date, now)
    )
    needs_end = (
        task.status in (TaskStatus.NOT_STARTED, TaskStatus.IN_PROGRESS)
        and end_has_passed(task.end_date, now)
    )
    return DateCheckResult(needs_start_check=needs_start, needs_end_check=needs_end)


def check_project_dates(project: Project, now: datetime) -> DateCheckResult:
    """Projects only get the start check."""
    if project.is_deleted or project.start_date is None:
        return NO_ACTION
    if checked_today(project.date_checked_at, now):
        return NO_ACTION
    needs_start = (
        project.status == ProjectStatus.NOT_STARTED
        and start_has_passed(project.start_date, now)
    )
    return DateCheckResult(needs_start_check=needs_start)
