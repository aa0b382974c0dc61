"""
Taskboard - Reminder triggers.

Computes when a reminder should fire and what it says. A reminder fires
once: within a tolerance window after its trigger instant, and only if it
has not been marked sent.

No I/O: this module only transforms data. The one-minute scan that acts
on it lives in core/scheduler.py.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from taskboard.data.models import Reminder, ReminderKind, ReminderUnit, Task, TaskStatus

_UNIT_DELTAS: dict[ReminderUnit, timedelta] = {
    ReminderUnit.MINUTE: timedelta(minutes=1),
    ReminderUnit.HOUR: timedelta(hours=1),
    ReminderUnit.DAY: timedelta(days=1),
}

_UNIT_LABELS: dict[ReminderUnit, str] = {
    ReminderUnit.MINUTE: "minute",
    ReminderUnit.HOUR: "hour",
    ReminderUnit.DAY: "day",
}


def trigger_time(reminder: Reminder, task: Task) -> datetime | None:
    """Instant at which *reminder* fires, or None if it is incomplete."""
    if reminder.scheduled_at is not None:
        return reminder.scheduled_at
    if reminder.kind is None or reminder.amount is None or reminder.unit is None:
        return None
    base = task.start_date if reminder.kind == ReminderKind.BEFORE_START else task.end_date
    return base - _UNIT_DELTAS[reminder.unit] * reminder.amount


def is_due(
    reminder: Reminder, task: Task, now: datetime, tolerance: timedelta = timedelta(seconds=60),
) -> bool:
    if reminder.sent:
        return False
    fire_at = trigger_time(reminder, task)
    if fire_at is None:
        return False
    elapsed = now - fire_at
    return timedelta(0) <= elapsed <= tolerance


def watches_task(task: Task, user_id: str) -> bool:
    """Whether *user_id* receives reminders for *task*.

    The assignee does; for a team task with nobody assigned, the creator.
    """
    if task.is_deleted or task.status == TaskStatus.COMPLETED:
        return False
    if task.assignee_id:
        return task.assignee_id == user_id
    return task.is_team_task and task.creator_id == user_id


def _amount_text(reminder: Reminder) -> str:
    label = _UNIT_LABELS[reminder.unit]
    if reminder.amount != 1:
        label += "s"
    return f"{reminder.amount} {label}"


def reminder_message(reminder: Reminder, task: Task) -> str:
    if reminder.scheduled_at is None and reminder.amount is not None and reminder.unit is not None:
        if reminder.kind == ReminderKind.BEFORE_START:
            return f'Task "{task.title}" starts in {_amount_text(reminder)}'
        if reminder.kind == ReminderKind.BEFORE_END:
            return f'Task "{task.title}" is due in {_amount_text(reminder)}'
    return f'Reminder for task "{task.title}"'


def notification_id(user_id: str, task_id: str, reminder_id: str, now: datetime) -> str:
    """Deterministic id so overlapping scans write one record per day."""
    return f"{user_id}_{task_id}_{reminder_id}_{now.date().isoformat()}"
