"""
Taskboard - Notification Dispatcher.

Records in-app notification documents and triggers push delivery,
gated by the recipient's preferences at two levels:

- category level ("task", "project", "reminder", "team", "date_check")
- event-type level ("task_created", "start_date_overdue", ...)

Each key also has a push variant with a "_push" suffix. A preference that
was never set counts as enabled. A notification is dropped entirely when
both the in-app and push switches are off at either level.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from taskboard.data.db import NotificationDB, UserDB
from taskboard.data.models import CheckType, Notification, NotificationType, User
from taskboard.data.updates import SetTo
from taskboard.ports.notification_port import NotificationPort
from taskboard.ports.push_port import PushPort

logger = logging.getLogger(__name__)

PUSH_SUFFIX = "_push"

_TASK_TYPES = {
    NotificationType.TASK_CREATED,
    NotificationType.TASK_UPDATED,
    NotificationType.TASK_DELETED,
    NotificationType.TASK_RESTORED,
    NotificationType.TASK_COMPLETED,
}
_PROJECT_TYPES = {
    NotificationType.PROJECT_CREATED,
    NotificationType.PROJECT_UPDATED,
    NotificationType.PROJECT_DELETED,
    NotificationType.PROJECT_RESTORED,
    NotificationType.PROJECT_COMPLETED,
    NotificationType.PROJECT_MEMBER_ADDED,
    NotificationType.PROJECT_MEMBER_REMOVED,
    NotificationType.PROJECT_MEMBER_ROLE_CHANGED,
}
_TEAM_TYPES = {
    NotificationType.TEAM_INVITATION,
    NotificationType.TEAM_INVITATION_ACCEPTED,
    NotificationType.TEAM_INVITATION_REJECTED,
    NotificationType.TEAM_LEAVE,
    NotificationType.TEAM_PERMISSION_CHANGE,
    NotificationType.TEAM_ADMIN_ANNOUNCEMENT,
}


# ---------------------------------------------------------------------------
# Preference keys
# ---------------------------------------------------------------------------


def notification_category(type: NotificationType, check_type: CheckType | None = None) -> str:
    if type in _TASK_TYPES:
        return "task"
    if type in _PROJECT_TYPES:
        return "project"
    if type in _TEAM_TYPES:
        return "team"
    if type == NotificationType.TASK_OVERDUE and check_type is not None:
        return "date_check"
    return "reminder"


def setting_key(type: NotificationType, check_type: CheckType | None = None) -> str:
    """Event-type preference key for a notification."""
    if type == NotificationType.TASK_OVERDUE:
        if check_type == CheckType.START_DATE:
            return "start_date_overdue"
        if check_type == CheckType.END_DATE:
            return "end_date_overdue"
    return type.value


@dataclass(frozen=True)
class DeliveryPlan:
    show_in_app: bool
    push: bool


def plan_delivery(
    user: User, type: NotificationType, check_type: CheckType | None = None,
) -> DeliveryPlan | None:
    """Apply the recipient's preferences; None means do not notify at all."""
    category = notification_category(type, check_type)
    category_in_app = user.allows(category)
    category_push = user.allows(category + PUSH_SUFFIX)
    if not category_in_app and not category_push:
        return None

    key = setting_key(type, check_type)
    type_in_app = user.allows(key)
    type_push = user.allows(key + PUSH_SUFFIX)
    if not type_in_app and not type_push:
        return None

    return DeliveryPlan(
        show_in_app=category_in_app and type_in_app,
        push=category_push and type_push,
    )


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class NotificationDispatcher:
    """Store-backed implementation of NotificationPort."""

    def __init__(
        self,
        notifications: NotificationDB,
        users: UserDB,
        push: PushPort | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._notifications = notifications
        self._users = users
        self._push = push
        self._clock = clock

    async def notify(
        self,
        user_id: str,
        type: NotificationType,
        title: str,
        message: str,
        *,
        task_id: str | None = None,
        project_id: str | None = None,
        team_id: str | None = None,
        invitation_id: str | None = None,
        check_type: CheckType | None = None,
    ) -> Notification | None:
        user = self._users.get_user(user_id)
        if user is None:
            logger.warning("Notification %s skipped: unknown user %s", type.value, user_id)
            return None

        plan = plan_delivery(user, type, check_type)
        if plan is None:
            logger.debug("User %s has %s notifications disabled", user_id, type.value)
            return None

        record = self._notifications.add(Notification(
            id="",
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            task_id=task_id,
            project_id=project_id,
            team_id=team_id,
            invitation_id=invitation_id,
            check_type=check_type,
            show_in_app=plan.show_in_app,
            created_at=self._clock(),
        ))
        logger.info("Notification %s recorded for user %s", type.value, user_id)

        if plan.push:
            data = {"type": type.value, "notification_id": record.id}
            if task_id:
                data["task_id"] = task_id
            if await deliver_push(self._push, user, title, message, data):
                record = self._notifications.update(record.id, {"push_sent": SetTo(True)})
        return record


async def deliver_push(
    push: PushPort | None, user: User, title: str, body: str, data: dict[str, str],
) -> bool:
    """Send a push message if the user has a device; failures are logged."""
    if push is None or not user.push_token:
        return False
    try:
        await push.send(user.push_token, title, body, data)
    except Exception as exc:
        logger.error("Failed to push to user %s: %s", user.id, exc)
        return False
    return True


async def notify_safely(
    notifier: NotificationPort,
    user_id: str,
    type: NotificationType,
    title: str,
    message: str,
    **refs: object,
) -> None:
    """Fire-and-forget wrapper used by services."""
    try:
        await notifier.notify(user_id, type, title, message, **refs)
    except Exception as exc:
        logger.error("Failed to notify user %s (%s): %s", user_id, type.value, exc)
