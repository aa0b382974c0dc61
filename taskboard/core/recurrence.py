"""
Taskboard - Recurrence Engine.

Plans child instances of a recurring parent task. Two strategies share a
single stepping primitive:

- bounded: every instance up to the recurrence end date (or the per-unit
  generation cap when there is none) is planned at once, skipping past
  dates;
- rolling: for a series with no end date, exactly one next instance is
  planned whenever the latest known instance has ended.

Series dates are always computed from the parent's start (the anchor), so
a monthly series anchored on Jan 31 runs Jan 31, Feb 28/29, Mar 31, ...

No I/O: this module only plans. TaskService persists the results.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Iterator

from dateutil.relativedelta import relativedelta

from taskboard.core.errors import ValidationError
from taskboard.data.models import Recurrence, Reminder, Task, TaskStatus

logger = logging.getLogger(__name__)

# Maximum generation window, in months after the parent's start date
MAX_PERIOD_MONTHS: dict[Recurrence, int] = {
    Recurrence.DAILY: 3,
    Recurrence.WEEKLY: 3,
    Recurrence.BIWEEKLY: 6,
    Recurrence.MONTHLY: 12,
    Recurrence.YEARLY: 36,
}

_FIXED_STEPS: dict[Recurrence, timedelta] = {
    Recurrence.DAILY: timedelta(days=1),
    Recurrence.WEEKLY: timedelta(days=7),
    Recurrence.BIWEEKLY: timedelta(days=14),
}


# ---------------------------------------------------------------------------
# Stepping
# ---------------------------------------------------------------------------


def instance_date(unit: Recurrence, anchor: datetime, steps: int) -> datetime:
    """Date of the instance *steps* units after *anchor* (negative steps go back).

    Month and year steps keep the anchor's day, clamped to the target
    month's length; the time of day is preserved.
    """
    if unit in _FIXED_STEPS:
        return anchor + _FIXED_STEPS[unit] * steps
    if unit == Recurrence.MONTHLY:
        return anchor + relativedelta(months=steps)
    if unit == Recurrence.YEARLY:
        return anchor + relativedelta(years=steps)
    raise ValidationError("Task is not recurring")


def next_instance_date(unit: Recurrence, from_date: datetime) -> datetime:
    return instance_date(unit, from_date, 1)


def previous_instance_date(unit: Recurrence, from_date: datetime) -> datetime:
    return instance_date(unit, from_date, -1)


def iter_instance_dates(unit: Recurrence, anchor: datetime) -> Iterator[datetime]:
    """Yield the series dates after *anchor*, forever."""
    step = 1
    while True:
        yield instance_date(unit, anchor, step)
        step += 1


def first_instance_after(unit: Recurrence, anchor: datetime, after: datetime) -> datetime:
    """First series date strictly later than *after*."""
    for candidate in iter_instance_dates(unit, anchor):
        if candidate > after:
            return candidate
    raise AssertionError("unreachable")


# ---------------------------------------------------------------------------
# Window
# ---------------------------------------------------------------------------


def max_recurrence_end(unit: Recurrence, start: datetime) -> datetime:
    if unit not in MAX_PERIOD_MONTHS:
        raise ValidationError("Task is not recurring")
    return start + relativedelta(months=MAX_PERIOD_MONTHS[unit])


def validate_recurrence_window(
    unit: Recurrence, start: datetime, end_date: datetime | None,
) -> None:
    """Raise ValidationError when the series end falls outside the window."""
    if unit == Recurrence.NONE or end_date is None:
        return
    if end_date.date() < start.date():
        raise ValidationError("Recurrence end date must not be before the start date")
    limit = max_recurrence_end(unit, start)
    if end_date.date() > limit.date():
        raise ValidationError(
            "Recurrence end date exceeds the maximum generation period "
            f"({MAX_PERIOD_MONTHS[unit]} months)"
        )


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlannedInstance:
    """One child task to be created."""

    instance: int
    start_date: datetime
    end_date: datetime


def next_instance_number(children: Iterable[Task]) -> int:
    return max((c.recurrence_instance or 0 for c in children), default=0) + 1


def plan_bounded_instances(
    parent: Task,
    now: datetime,
    first_instance: int = 1,
    after: datetime | None = None,
) -> list[PlannedInstance]:
    """Plan every instance from the parent's start up to its end date or cap.

    Steps dated before today are skipped, as are steps at or before
    *after* (the start of the latest instance that already exists).
    """
    unit = parent.recurrence
    validate_recurrence_window(unit, parent.start_date, parent.recurrence_end_date)

    limit = max_recurrence_end(unit, parent.start_date).date()
    if parent.recurrence_end_date is not None:
        limit = min(limit, parent.recurrence_end_date.date())

    today = now.date()
    duration = parent.duration
    number = first_instance
    planned: list[PlannedInstance] = []

    for start in iter_instance_dates(unit, parent.start_date):
        if start.date() > limit:
            break
        if start.date() < today:
            continue
        if after is not None and start <= after:
            continue
        planned.append(PlannedInstance(number, start, start + duration))
        number += 1

    logger.debug(
        "Planned %d %s instance(s) for task %s up to %s",
        len(planned), unit.value, parent.id, limit,
    )
    return planned


def plan_rolling_instance(
    parent: Task, children: Iterable[Task], now: datetime,
) -> PlannedInstance | None:
    """Plan the single next instance of an open-ended series, if it is due.

    Due means the latest instance (or the parent, if there are no
    children yet) has an end date at or before *now*.
    """
    if parent.recurrence == Recurrence.NONE or not parent.is_recurrence_parent:
        return None
    if parent.recurrence_end_date is not None:
        return None

    live = [c for c in children if not c.is_deleted]
    latest = max(live, key=lambda c: c.recurrence_instance or 0, default=None)
    reference = latest or parent
    if reference.end_date > now:
        return None

    start = first_instance_after(parent.recurrence, parent.start_date, reference.start_date)
    return PlannedInstance(next_instance_number(live), start, start + parent.duration)


def build_instance(parent: Task, planned: PlannedInstance, now: datetime) -> Task:
    """Create the child task for *planned*, copied from *parent*.

    Subtasks restart incomplete, reminders get fresh ids and are unsent
    (absolute reminders move with the instance), progress and history
    start empty.
    """
    shift = planned.start_date - parent.start_date
    reminders = [
        Reminder(
            id=uuid.uuid4().hex,
            kind=r.kind,
            amount=r.amount,
            unit=r.unit,
            scheduled_at=r.scheduled_at + shift if r.scheduled_at else None,
        )
        for r in parent.reminders
    ]
    subtasks = [
        replace(s, completed=False, completed_at=None) for s in parent.subtasks
    ]
    return Task(
        id="",
        title=parent.title,
        creator_id=parent.creator_id,
        creator_name=parent.creator_name,
        start_date=planned.start_date,
        end_date=planned.end_date,
        description=parent.description,
        project_id=parent.project_id,
        project_name=parent.project_name,
        team_id=parent.team_id,
        team_name=parent.team_name,
        assignee_id=parent.assignee_id,
        assignee_name=parent.assignee_name,
        status=TaskStatus.NOT_STARTED,
        priority=parent.priority,
        custom_priority=parent.custom_priority,
        task_type=parent.task_type,
        custom_task_type=parent.custom_task_type,
        memo=parent.memo,
        subtasks=subtasks,
        reminders=reminders,
        recurrence=parent.recurrence,
        recurrence_end_date=parent.recurrence_end_date,
        parent_task_id=parent.id,
        recurrence_instance=planned.instance,
        is_recurrence_parent=False,
        created_at=now,
        updated_at=now,
    )


# ---------------------------------------------------------------------------
# Runtime changes to a series
# ---------------------------------------------------------------------------


class RecurrenceChange(Enum):
    NONE = "none"
    STOPPED = "stopped"              # recurring -> none
    STARTED = "started"              # none -> recurring
    UNIT_CHANGED = "unit_changed"    # recurring -> another unit
    END_DATE_CHANGED = "end_date_changed"


def classify_recurrence_change(
    old_unit: Recurrence,
    new_unit: Recurrence,
    old_end: datetime | None,
    new_end: datetime | None,
) -> RecurrenceChange:
    if old_unit == Recurrence.NONE and new_unit == Recurrence.NONE:
        return RecurrenceChange.NONE
    if new_unit == Recurrence.NONE:
        return RecurrenceChange.STOPPED
    if old_unit == Recurrence.NONE:
        return RecurrenceChange.STARTED
    if old_unit != new_unit:
        return RecurrenceChange.UNIT_CHANGED
    if old_end != new_end:
        return RecurrenceChange.END_DATE_CHANGED
    return RecurrenceChange.NONE


def children_to_remove(
    change: RecurrenceChange,
    children: Iterable[Task],
    now: datetime,
    new_end: datetime | None = None,
) -> list[Task]:
    """Children that a recurrence change hard-deletes.

    Stopping or switching unit removes every non-completed instance that
    has not ended yet. Moving the end date removes instances ending after
    the new end date.
    """
    if change in (RecurrenceChange.STOPPED, RecurrenceChange.UNIT_CHANGED):
        return [
            c for c in children
            if c.status != TaskStatus.COMPLETED and c.end_date >= now
        ]
    if change == RecurrenceChange.END_DATE_CHANGED and new_end is not None:
        return [c for c in children if c.end_date.date() > new_end.date()]
    return []
