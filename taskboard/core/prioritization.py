"""
Taskboard - Category and "next task" engine.

Scores a user's open tasks to recommend what to work on next, and
partitions tasks into dashboard buckets. Every task lands in at most one
bucket: buckets are tried in order and the first match claims the task.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Callable, Iterable

from taskboard.data.models import Priority, Task, TaskStatus

# ---------------------------------------------------------------------------
# Next-task scoring
# ---------------------------------------------------------------------------

PRIORITY_POINTS: dict[Priority, int] = {
    Priority.IMPORTANT: 10,
    Priority.NORMAL: 5,
    Priority.LOW: 2,
    Priority.NONE: 1,
    Priority.CUSTOM: 5,
}

PRIORITY_WEIGHT = 3
DUE_WEIGHT = 2
SHARED_PROJECT_POINTS = 3
SHARED_PROJECT_WEIGHT = 1.5
ASSIGNEE_BONUS = 2
IN_PROGRESS_BONUS = 5
CANDIDATE_LIMIT = 3


@dataclass(frozen=True)
class ScoredTask:
    task: Task
    score: float


def due_points(end_date: datetime, now: datetime) -> int:
    """Bucket the days left until the end date (partial days round up)."""
    days = math.ceil((end_date - now) / timedelta(days=1))
    if days < 0:
        return 20
    if days <= 1:
        return 15
    if days <= 3:
        return 10
    if days <= 7:
        return 5
    return 1


def is_candidate(task: Task, user_id: str) -> bool:
    if task.is_deleted or task.status == TaskStatus.COMPLETED:
        return False
    if task.assignee_id:
        return task.assignee_id == user_id
    return task.creator_id == user_id


def score_task(task: Task, now: datetime, project_counts: Counter | None = None) -> float:
    score: float = PRIORITY_POINTS.get(task.priority, 1) * PRIORITY_WEIGHT
    score += due_points(task.end_date, now) * DUE_WEIGHT
    if task.project_id and project_counts and project_counts[task.project_id] > 1:
        score += SHARED_PROJECT_POINTS * SHARED_PROJECT_WEIGHT
    if task.assignee_id:
        score += ASSIGNEE_BONUS
    if task.status == TaskStatus.IN_PROGRESS:
        score += IN_PROGRESS_BONUS
    return score


def next_task_candidates(
    tasks: Iterable[Task], user_id: str, now: datetime, limit: int = CANDIDATE_LIMIT,
) -> list[ScoredTask]:
    """Top *limit* open tasks for the user, best first; ties keep input order."""
    candidates = [t for t in tasks if is_candidate(t, user_id)]
    project_counts = Counter(t.project_id for t in candidates if t.project_id)
    scored = [ScoredTask(t, score_task(t, now, project_counts)) for t in candidates]
    scored.sort(key=lambda s: s.score, reverse=True)
    return scored[:limit]


# ---------------------------------------------------------------------------
# Dashboard buckets
# ---------------------------------------------------------------------------


class CategoryKey(str, Enum):
    OVERDUE = "overdue"
    DUE = "due"
    UNSTARTED_LATE = "unstarted_late"
    STARTING = "starting"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass
class TaskCategory:
    key: CategoryKey
    title: str
    tasks: list[Task] = field(default_factory=list)


def _is_open(task: Task) -> bool:
    return task.status != TaskStatus.COMPLETED


def _partition(
    tasks: Iterable[Task],
    rules: list[tuple[CategoryKey, str, Callable[[Task], bool]]],
) -> list[TaskCategory]:
    buckets = [TaskCategory(key, title) for key, title, _ in rules]
    for task in tasks:
        if task.is_deleted:
            continue
        for bucket, (_, _, matches) in zip(buckets, rules):
            if matches(task):
                bucket.tasks.append(task)
                break
    return [b for b in buckets if b.tasks]


def categorize_tasks(tasks: Iterable[Task], now: datetime) -> list[TaskCategory]:
    """Today's dashboard: overdue, due today, late unstarted, starting today,
    in progress, completed today."""
    today = now.date()
    rules = [
        (CategoryKey.OVERDUE, "Overdue",
         lambda t: t.end_date.date() < today and _is_open(t)),
        (CategoryKey.DUE, "Due today",
         lambda t: t.end_date.date() == today and _is_open(t)),
        (CategoryKey.UNSTARTED_LATE, "Should have started",
         lambda t: t.start_date.date() < today and t.status == TaskStatus.NOT_STARTED),
        (CategoryKey.STARTING, "Starts today",
         lambda t: t.start_date.date() == today and t.end_date.date() >= today
         and t.status == TaskStatus.NOT_STARTED),
        (CategoryKey.IN_PROGRESS, "In progress",
         lambda t: t.start_date.date() <= today <= t.end_date.date()
         and t.status == TaskStatus.IN_PROGRESS),
        (CategoryKey.COMPLETED, "Completed today",
         lambda t: t.status == TaskStatus.COMPLETED
         and t.completed_at is not None and t.completed_at.date() == today),
    ]
    return _partition(tasks, rules)


class WeekMode(str, Enum):
    CALENDAR = "calendar"   # Monday to Sunday of the current week
    ROLLING = "rolling"     # today and the next six days


def week_bounds(now: datetime, mode: WeekMode = WeekMode.CALENDAR) -> tuple[date, date]:
    today = now.date()
    if mode == WeekMode.ROLLING:
        return today, today + timedelta(days=6)
    monday = today - timedelta(days=today.weekday())
    return monday, monday + timedelta(days=6)


def categorize_week_tasks(
    tasks: Iterable[Task], now: datetime, mode: WeekMode = WeekMode.CALENDAR,
) -> list[TaskCategory]:
    """Same partitioning as categorize_tasks, over a seven-day window."""
    today = now.date()
    first, last = week_bounds(now, mode)

    def in_week(d: date) -> bool:
        return first <= d <= last

    rules = [
        (CategoryKey.OVERDUE, "Overdue",
         lambda t: t.end_date.date() < today and _is_open(t)),
        (CategoryKey.DUE, "Due this week",
         lambda t: in_week(t.end_date.date()) and _is_open(t)),
        (CategoryKey.UNSTARTED_LATE, "Should have started",
         lambda t: t.start_date.date() < today and t.status == TaskStatus.NOT_STARTED),
        (CategoryKey.STARTING, "Starts this week",
         lambda t: in_week(t.start_date.date()) and t.status == TaskStatus.NOT_STARTED),
        (CategoryKey.IN_PROGRESS, "In progress",
         lambda t: t.start_date.date() <= last and t.end_date.date() >= first
         and t.status == TaskStatus.IN_PROGRESS),
        (CategoryKey.COMPLETED, "Completed this week",
         lambda t: t.status == TaskStatus.COMPLETED
         and t.completed_at is not None and in_week(t.completed_at.date())),
    ]
    return _partition(tasks, rules)
