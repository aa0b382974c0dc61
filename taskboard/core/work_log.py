"""Work-session arithmetic: actual durations, totals and edit change logs."""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime
from typing import Iterable

from taskboard.core.errors import ValidationError
from taskboard.data.models import Actor, WorkSession, WorkSessionChange


def actual_duration_seconds(
    start: datetime, end: datetime | None, break_minutes: int = 0,
) -> int:
    """Worked seconds: elapsed time minus breaks, never negative."""
    if end is None:
        return 0
    if end < start:
        raise ValidationError("Work session end must not be before its start")
    if break_minutes < 0:
        raise ValidationError("Break duration must not be negative")
    worked = int((end - start).total_seconds()) - break_minutes * 60
    return max(worked, 0)


def total_work_seconds(sessions: Iterable[WorkSession]) -> int:
    return sum(s.actual_seconds for s in sessions)


def new_session(start: datetime, end: datetime | None, break_minutes: int = 0) -> WorkSession:
    return WorkSession(
        id=uuid.uuid4().hex,
        start_time=start,
        end_time=end,
        break_minutes=break_minutes,
        actual_seconds=actual_duration_seconds(start, end, break_minutes),
    )


def _log_value(value: datetime | int | None) -> str | int | None:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def edit_session(
    session: WorkSession,
    actor: Actor,
    now: datetime,
    start: datetime | None = None,
    end: datetime | None = None,
    break_minutes: int | None = None,
) -> WorkSession:
    """Apply edits to a session, recording one change log entry per field."""
    updates = {
        "start_time": start,
        "end_time": end,
        "break_minutes": break_minutes,
    }
    logs = list(session.change_logs)
    values = {}
    for name, new in updates.items():
        old = getattr(session, name)
        if new is None or new == old:
            continue
        values[name] = new
        logs.append(WorkSessionChange(
            id=uuid.uuid4().hex,
            session_id=session.id,
            changed_by=actor.user_id,
            changed_by_name=actor.display_name,
            changed_at=now,
            field_name=name,
            old_value=_log_value(old),
            new_value=_log_value(new),
        ))

    if not values:
        return session

    edited = replace(session, **values, change_logs=logs)
    edited.actual_seconds = actual_duration_seconds(
        edited.start_time, edited.end_time, edited.break_minutes,
    )
    return edited
