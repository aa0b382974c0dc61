"""Notification port - abstract interface for recording user notifications.

Core modules depend on this protocol, never on a specific messaging provider.
Callers treat it as fire-and-forget: a failure is logged, never propagated.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from taskboard.data.models import CheckType, Notification, NotificationType


class NotificationPort(Protocol):
    """Abstract notification interface used by core modules."""

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
    ) -> Notification | None: ...
