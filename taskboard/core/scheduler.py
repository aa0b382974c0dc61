"""
Taskboard - Reminder scan.

Runs every REMINDER_INTERVAL_SECONDS (see worker.py). For every user it
fires the due reminders of the tasks they watch: marks each reminder
sent, writes one in-app record under a deterministic id, and pushes to
the user's device when their preferences allow.

Safe to run from overlapping schedulers: the sent flag and the
deterministic record id keep each reminder to a single delivery.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from taskboard.config import settings
from taskboard.core.notifications import deliver_push, plan_delivery
from taskboard.core.reminders import is_due, notification_id, reminder_message, watches_task
from taskboard.data.db import NotificationDB, TaskDB, UserDB
from taskboard.data.models import Notification, NotificationType, Reminder, Task, User
from taskboard.data.updates import SetTo
from taskboard.ports.push_port import PushPort

logger = logging.getLogger(__name__)

REMINDER_TITLE = "Task reminder"


async def check_reminders(
    tasks: TaskDB,
    users: UserDB,
    notifications: NotificationDB,
    push: PushPort | None = None,
    now: datetime | None = None,
) -> int:
    """Fire every due reminder. Returns how many fired."""
    now = now or datetime.now()
    tolerance = timedelta(seconds=settings.REMINDER_TOLERANCE_SECONDS)
    fired = 0
    for user in users.list_users():
        try:
            fired += await _check_user(user, tasks, notifications, push, now, tolerance)
        except Exception as exc:
            logger.error("Failed reminder scan for user %s: %s", user.id, exc)
    if fired:
        logger.info("Reminder scan fired %d reminder(s)", fired)
    return fired


async def _check_user(
    user: User,
    tasks: TaskDB,
    notifications: NotificationDB,
    push: PushPort | None,
    now: datetime,
    tolerance: timedelta,
) -> int:
    fired = 0
    for task in tasks.tasks_for_user(user.id):
        if not watches_task(task, user.id):
            continue
        due = [r for r in task.reminders if is_due(r, task, now, tolerance)]
        if not due:
            continue

        due_ids = {r.id for r in due}
        reminders = [
            Reminder(r.id, r.kind, r.amount, r.unit, r.scheduled_at, True, now)
            if r.id in due_ids else r
            for r in task.reminders
        ]
        tasks.update(task.id, {"reminders": SetTo(reminders)})

        for reminder in due:
            await _deliver(user, task, reminder, notifications, push, now)
            fired += 1
    return fired


async def _deliver(
    user: User,
    task: Task,
    reminder: Reminder,
    notifications: NotificationDB,
    push: PushPort | None,
    now: datetime,
) -> None:
    plan = plan_delivery(user, NotificationType.TASK_REMINDER)
    if plan is None:
        logger.debug("User %s has task reminders disabled", user.id)
        return

    record_id = notification_id(user.id, task.id, reminder.id, now)
    if notifications.get(record_id) is not None:
        logger.debug("Reminder %s already delivered today", record_id)
        return

    message = reminder_message(reminder, task)
    record = notifications.add(Notification(
        id=record_id,
        user_id=user.id,
        type=NotificationType.TASK_REMINDER,
        title=REMINDER_TITLE,
        message=message,
        task_id=task.id,
        project_id=task.project_id,
        team_id=task.team_id,
        show_in_app=plan.show_in_app,
        created_at=now,
    ), doc_id=record_id)

    if not plan.push:
        return
    data = {
        "task_id": task.id,
        "type": NotificationType.TASK_REMINDER.value,
        "url": f"/task/{task.id}",
    }
    if await deliver_push(push, user, REMINDER_TITLE, message, data):
        notifications.update(record.id, {"push_sent": SetTo(True)})
