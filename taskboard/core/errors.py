"""Error taxonomy shared by every service.

The message string is the contract: callers display it as-is.
"""

from __future__ import annotations


class TaskboardError(Exception):
    """Base class for all errors raised to callers."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(TaskboardError):
    """Referenced task, project, team, invitation or user does not exist."""


class PermissionDenied(TaskboardError):
    """The acting user lacks the requested capability."""


class ValidationError(TaskboardError):
    """Input rejected, e.g. end before start or recurrence window exceeded."""


class StaleState(TaskboardError):
    """The entity is no longer in the state the operation expects."""
