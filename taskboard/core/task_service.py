"""
Taskboard - Task Service.

Every task operation: permission check, validation, one document write per
entity, then the side effects that follow (recurrence generation, project
completion recalculation, notifications). Side effects never undo the
write that triggered them; notification and recalculation failures are
only logged.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Callable, Mapping

from taskboard.config import settings
from taskboard.core.completion import recalculate_safely
from taskboard.core.errors import NotFound, PermissionDenied, StaleState, ValidationError
from taskboard.core.notifications import notify_safely
from taskboard.core.permissions import (
    PermissionResolver,
    ScopeMode,
    ViewScope,
    is_team_member,
    task_in_scope,
)
from taskboard.core.prioritization import (
    ScoredTask,
    TaskCategory,
    WeekMode,
    categorize_tasks,
    categorize_week_tasks,
    next_task_candidates,
)
from taskboard.core.recurrence import (
    PlannedInstance,
    RecurrenceChange,
    build_instance,
    children_to_remove,
    classify_recurrence_change,
    next_instance_number,
    plan_bounded_instances,
    plan_rolling_instance,
    validate_recurrence_window,
)
from taskboard.core.work_log import edit_session, new_session, total_work_seconds
from taskboard.data.db import ProjectDB, TaskDB, TeamDB, apply_changes
from taskboard.data.models import (
    Actor,
    Comment,
    NotificationType,
    Priority,
    Project,
    Recurrence,
    Reminder,
    SubTask,
    Task,
    TaskStatus,
    TaskType,
)
from taskboard.data.updates import CLEAR, FieldUpdate, SetTo
from taskboard.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

# Fields callers may not set through update_task; dedicated operations own them.
_PROTECTED_FIELDS = frozenset({
    "id",
    "creator_id",
    "creator_name",
    "created_at",
    "updated_at",
    "is_deleted",
    "deleted_at",
    "status_before_deletion",
    "parent_task_id",
    "recurrence_instance",
    "is_recurrence_parent",
    "comments",
    "work_sessions",
    "total_work_seconds",
    "date_checked_at",
})


@dataclass
class TaskDraft:
    """Input for create_task."""

    title: str
    start_date: datetime
    end_date: datetime
    description: str | None = None
    project_id: str | None = None
    team_id: str | None = None
    assignee_id: str | None = None
    assignee_name: str | None = None
    status: TaskStatus = TaskStatus.NOT_STARTED
    priority: Priority = Priority.NORMAL
    custom_priority: str | None = None
    task_type: TaskType = TaskType.NORMAL
    custom_task_type: str | None = None
    memo: str | None = None
    subtasks: list[SubTask] = field(default_factory=list)
    reminders: list[Reminder] = field(default_factory=list)
    recurrence: Recurrence = Recurrence.NONE
    recurrence_end_date: datetime | None = None


def _status_label(status: TaskStatus) -> str:
    return status.value.replace("_", " ")


def soft_delete_changes(task: Task, now: datetime) -> dict[str, FieldUpdate]:
    """Mark deleted, remembering the status for an exact restore."""
    return {
        "is_deleted": SetTo(True),
        "deleted_at": SetTo(now),
        "status_before_deletion": SetTo(task.status),
        "updated_at": SetTo(now),
    }


def restore_changes(task: Task, now: datetime) -> dict[str, FieldUpdate]:
    return {
        "is_deleted": SetTo(False),
        "deleted_at": CLEAR,
        "status": SetTo(task.status_before_deletion or TaskStatus.NOT_STARTED),
        "status_before_deletion": CLEAR,
        "updated_at": SetTo(now),
    }


class TaskService:
    """Task operations on behalf of an explicit acting user."""

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
        self._teams = teams
        self._notifier = notifier
        self._clock = clock
        self._permissions = PermissionResolver(projects, teams)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _require_task(self, task_id: str) -> Task:
        task = self._tasks.get_task(task_id)
        if task is None:
            raise NotFound("Task not found")
        return task

    def _live_project(self, project_id: str | None) -> Project | None:
        if not project_id:
            return None
        project = self._projects.get_project(project_id)
        if project is None or project.is_deleted:
            return None
        return project

    def get_task(self, actor: Actor, task_id: str) -> Task:
        task = self._require_task(task_id)
        if not self._permissions.can_view_task(task, actor.user_id):
            raise PermissionDenied("You do not have permission to view this task")
        return task

    def _scoped(self, scope: ViewScope) -> list[Task]:
        team_ids = [t.id for t in self._teams.teams_for_user(scope.user_id)]
        if scope.mode == ScopeMode.TEAM:
            if scope.team_id not in team_ids:
                raise PermissionDenied("You are not a member of this team")
            candidates = self._tasks.find(team_id=scope.team_id)
        else:
            candidates = self._tasks.tasks_for_user(scope.user_id)
        return [t for t in candidates if task_in_scope(t, scope, team_ids)]

    def list_tasks(self, scope: ViewScope, include_deleted: bool = False) -> list[Task]:
        tasks = self._scoped(scope)
        if include_deleted:
            return tasks
        return [t for t in tasks if not t.is_deleted]

    def list_deleted_tasks(self, scope: ViewScope) -> list[Task]:
        return [t for t in self._scoped(scope) if t.is_deleted]

    def today_categories(self, scope: ViewScope, now: datetime | None = None) -> list[TaskCategory]:
        return categorize_tasks(self.list_tasks(scope), now or self._clock())

    def week_categories(
        self, scope: ViewScope, now: datetime | None = None, mode: WeekMode = WeekMode.CALENDAR,
    ) -> list[TaskCategory]:
        return categorize_week_tasks(self.list_tasks(scope), now or self._clock(), mode)

    def next_task_candidates(self, user_id: str, now: datetime | None = None) -> list[ScoredTask]:
        return next_task_candidates(
            self._tasks.tasks_for_user(user_id), user_id, now or self._clock(),
        )

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _recipients(self, task: Task, actor_id: str | None) -> list[str]:
        """Assignee and project members, without the acting user."""
        ids = [task.effective_assignee_id]
        project = self._live_project(task.project_id)
        if project is not None:
            ids.extend(project.member_ids())
        return [uid for uid in dict.fromkeys(ids) if uid != actor_id]

    async def _notify_watchers(
        self, actor: Actor | None, task: Task, type: NotificationType, title: str, message: str,
    ) -> None:
        actor_id = actor.user_id if actor else None
        for user_id in self._recipients(task, actor_id):
            await notify_safely(
                self._notifier, user_id, type, title, message,
                task_id=task.id, project_id=task.project_id, team_id=task.team_id,
            )

    # ------------------------------------------------------------------
    # Validation shared by create and update
    # ------------------------------------------------------------------

    def _normalize(self, actor: Actor, before: Task | None, task: Task, now: datetime) -> Task:
        """Validate *task* and fill the fields derived from its links."""
        title = (task.title or "").strip()
        if not title:
            raise ValidationError("Task title is required")
        if task.end_date < task.start_date:
            raise ValidationError("End date must not be before the start date")
        values: dict = {"title": title}

        project_changed = before is None or before.project_id != task.project_id
        if task.project_id and project_changed:
            project = self._live_project(task.project_id)
            if project is None:
                raise NotFound("Project not found")
            if not self._permissions.can_view_project(project, actor.user_id):
                raise PermissionDenied("You cannot add tasks to this project")
            values["project_name"] = project.name
            if project.team_id and not task.team_id:
                task = replace(task, team_id=project.team_id)
        elif not task.project_id:
            values["project_name"] = None

        team_changed = before is None or before.team_id != task.team_id
        if task.team_id and team_changed:
            team = self._teams.get_team(task.team_id)
            if team is None or team.is_deleted:
                raise NotFound("Team not found")
            if not is_team_member(team, actor.user_id):
                raise PermissionDenied("You are not a member of this team")
            values["team_name"] = team.name
        elif not task.team_id:
            values["team_name"] = None

        if not task.team_id:
            # personal tasks always belong to their creator
            values["assignee_id"] = task.creator_id
            values["assignee_name"] = task.creator_name

        was_completed = before is not None and before.status == TaskStatus.COMPLETED
        if task.status == TaskStatus.COMPLETED and not was_completed:
            values["completed_at"] = now
        elif task.status != TaskStatus.COMPLETED:
            values["completed_at"] = None

        return replace(task, **values)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_task(self, actor: Actor, draft: TaskDraft) -> Task:
        now = self._clock()
        recurring = draft.recurrence != Recurrence.NONE
        validate_recurrence_window(draft.recurrence, draft.start_date, draft.recurrence_end_date)

        task = Task(
            id="",
            title=draft.title,
            creator_id=actor.user_id,
            creator_name=actor.display_name,
            start_date=draft.start_date,
            end_date=draft.end_date,
            description=draft.description,
            project_id=draft.project_id,
            team_id=draft.team_id,
            assignee_id=draft.assignee_id,
            assignee_name=draft.assignee_name,
            status=draft.status,
            priority=draft.priority,
            custom_priority=draft.custom_priority,
            task_type=draft.task_type,
            custom_task_type=draft.custom_task_type,
            memo=draft.memo,
            subtasks=list(draft.subtasks),
            reminders=[replace(r, sent=False, sent_at=None) for r in draft.reminders],
            recurrence=draft.recurrence,
            recurrence_end_date=draft.recurrence_end_date if recurring else None,
            recurrence_instance=0 if recurring else None,
            is_recurrence_parent=recurring,
            created_at=now,
            updated_at=now,
        )
        task = self._normalize(actor, None, task, now)
        created = self._tasks.add_task(task)
        logger.info("Task created: %s '%s' by %s", created.id, created.title, actor.user_id)

        recalculate_safely(self._projects, self._tasks, created.project_id)
        await self._notify_watchers(
            actor, created, NotificationType.TASK_CREATED,
            "Task created", f'{actor.display_name} created task "{created.title}"',
        )

        if recurring:
            await self._generate_instances(created, now, existing=[])
        return created

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def _auto_comment(self, actor: Actor, before: Task, after: Task, now: datetime) -> Comment | None:
        if before.status != after.status:
            content = (
                f"{actor.display_name} changed the status from "
                f"{_status_label(before.status)} to {_status_label(after.status)}"
            )
        elif before.end_date != after.end_date:
            content = (
                f"{actor.display_name} moved the end date from "
                f"{before.end_date:%Y-%m-%d %H:%M} to {after.end_date:%Y-%m-%d %H:%M}"
            )
        else:
            content = f"{actor.display_name} edited the task"

        if before.comments:
            last = before.comments[-1]
            window = timedelta(seconds=settings.COMMENT_DEDUP_SECONDS)
            if (
                last.user_id == actor.user_id
                and last.content == content
                and now - last.created_at <= window
            ):
                return None

        return Comment(
            id=uuid.uuid4().hex,
            user_id=actor.user_id,
            user_name=actor.display_name,
            content=content,
            created_at=now,
        )

    async def update_task(
        self, actor: Actor, task_id: str, changes: Mapping[str, FieldUpdate],
    ) -> Task:
        """Merge *changes* into a task and return the stored result."""
        now = self._clock()
        task = self._require_task(task_id)
        if task.is_deleted:
            raise StaleState("Deleted tasks cannot be edited")
        if not self._permissions.can_edit_task(task, actor.user_id):
            raise PermissionDenied("You do not have permission to edit this task")

        blocked = sorted(set(changes) & _PROTECTED_FIELDS)
        if blocked:
            raise ValidationError(f"Field '{blocked[0]}' cannot be changed directly")

        updated = self._normalize(actor, task, apply_changes(task, changes), now)
        if updated == task:
            return task

        change = classify_recurrence_change(
            task.recurrence, updated.recurrence,
            task.recurrence_end_date, updated.recurrence_end_date,
        )
        if change != RecurrenceChange.NONE:
            if task.parent_task_id:
                raise ValidationError(
                    "Recurrence can only be changed on the first task of a series"
                )
            validate_recurrence_window(
                updated.recurrence, updated.start_date, updated.recurrence_end_date,
            )
            if change == RecurrenceChange.STOPPED:
                updated = replace(
                    updated, recurrence_end_date=None,
                    is_recurrence_parent=False, recurrence_instance=None,
                )
            else:
                updated = replace(updated, is_recurrence_parent=True, recurrence_instance=0)

        comment = self._auto_comment(actor, task, updated, now)
        if comment is not None:
            updated = replace(updated, comments=[*updated.comments, comment])
        updated = replace(updated, updated_at=now)

        saved = self._tasks.save(task, updated)
        logger.info("Task %s updated by %s", saved.id, actor.user_id)

        if change != RecurrenceChange.NONE:
            await self._apply_recurrence_change(saved, change, now)

        for project_id in dict.fromkeys([task.project_id, saved.project_id]):
            recalculate_safely(self._projects, self._tasks, project_id)

        if saved.status == TaskStatus.COMPLETED and task.status != TaskStatus.COMPLETED:
            await self._notify_watchers(
                actor, saved, NotificationType.TASK_COMPLETED,
                "Task completed", f'{actor.display_name} completed task "{saved.title}"',
            )
        else:
            await self._notify_watchers(
                actor, saved, NotificationType.TASK_UPDATED,
                "Task updated", f'{actor.display_name} updated task "{saved.title}"',
            )
        return saved

    # ------------------------------------------------------------------
    # Recurrence
    # ------------------------------------------------------------------

    async def _create_instance(self, parent: Task, planned: PlannedInstance, now: datetime) -> Task:
        child = self._tasks.add_task(build_instance(parent, planned, now))
        await notify_safely(
            self._notifier, child.effective_assignee_id, NotificationType.TASK_CREATED,
            "Task created",
            f'Recurring task "{child.title}" scheduled for {child.start_date:%Y-%m-%d}',
            task_id=child.id, project_id=child.project_id, team_id=child.team_id,
        )
        return child

    async def _generate_instances(
        self,
        parent: Task,
        now: datetime,
        existing: list[Task],
        after: datetime | None = None,
    ) -> list[Task]:
        """Bounded generation up to the end date, or the unit's cap when there is none.

        Open-ended series are extended past the cap by check_next_recurrence.
        """
        planned = plan_bounded_instances(
            parent, now, first_instance=next_instance_number(existing), after=after,
        )
        created = []
        for item in planned:
            created.append(await self._create_instance(parent, item, now))
        if created:
            logger.info("Generated %d instance(s) of task %s", len(created), parent.id)
            recalculate_safely(self._projects, self._tasks, parent.project_id)
        return created

    async def _apply_recurrence_change(
        self, parent: Task, change: RecurrenceChange, now: datetime,
    ) -> None:
        children = self._tasks.children_of(parent.id)
        doomed = children_to_remove(change, children, now, parent.recurrence_end_date)
        for child in doomed:
            self._tasks.remove(child.id)
        if doomed:
            logger.info(
                "Removed %d instance(s) of task %s (%s)",
                len(doomed), parent.id, change.value,
            )

        if change == RecurrenceChange.STOPPED:
            return

        doomed_ids = {c.id for c in doomed}
        remaining = [c for c in children if c.id not in doomed_ids and not c.is_deleted]
        after = None
        if change == RecurrenceChange.END_DATE_CHANGED:
            after = max((c.start_date for c in remaining), default=None)
        await self._generate_instances(parent, now, existing=remaining, after=after)

    async def check_next_recurrence(self, parent_id: str, now: datetime | None = None) -> Task | None:
        """Rolling generation: append one instance if the latest one has ended."""
        now = now or self._clock()
        parent = self._tasks.get_task(parent_id)
        if parent is None or parent.is_deleted:
            return None
        planned = plan_rolling_instance(parent, self._tasks.children_of(parent_id), now)
        if planned is None:
            return None
        child = await self._create_instance(parent, planned, now)
        logger.info(
            "Rolling instance #%d of task %s created for %s",
            child.recurrence_instance, parent_id, child.start_date.date(),
        )
        recalculate_safely(self._projects, self._tasks, parent.project_id)
        return child

    async def check_recurring_tasks(self, user_id: str, now: datetime | None = None) -> list[Task]:
        """Run the rolling check for every series parent the user owns or is assigned."""
        now = now or self._clock()
        created: list[Task] = []
        for parent in self._tasks.tasks_for_user(user_id):
            if not parent.is_recurrence_parent or parent.is_deleted:
                continue
            try:
                child = await self.check_next_recurrence(parent.id, now)
            except Exception as exc:
                logger.error("Failed recurrence check for task %s: %s", parent.id, exc)
                continue
            if child is not None:
                created.append(child)
        return created

    # ------------------------------------------------------------------
    # Delete / restore
    # ------------------------------------------------------------------

    async def delete_task(self, actor: Actor, task_id: str) -> Task:
        """Soft delete. Deleting a series parent hard-deletes its instances."""
        now = self._clock()
        task = self._require_task(task_id)
        if task.is_deleted:
            raise StaleState("Task is already deleted")
        if not self._permissions.can_delete_task(task, actor.user_id):
            raise PermissionDenied("You do not have permission to delete this task")

        deleted = self._tasks.update(task.id, soft_delete_changes(task, now))
        logger.info("Task %s soft-deleted by %s", task.id, actor.user_id)

        if task.is_recurrence_parent:
            children = self._tasks.children_of(task.id)
            for child in children:
                self._tasks.remove(child.id)
            logger.info("Removed %d instance(s) of deleted series %s", len(children), task.id)

        recalculate_safely(self._projects, self._tasks, task.project_id)
        await self._notify_watchers(
            actor, deleted, NotificationType.TASK_DELETED,
            "Task deleted", f'{actor.display_name} deleted task "{task.title}"',
        )
        return deleted

    async def restore_task(self, actor: Actor, task_id: str) -> Task:
        now = self._clock()
        task = self._require_task(task_id)
        if not task.is_deleted:
            raise StaleState("Task is not deleted")
        if not self._permissions.can_restore_task(task, actor.user_id):
            raise PermissionDenied("You do not have permission to restore this task")

        restored = self._tasks.update(task.id, restore_changes(task, now))
        logger.info("Task %s restored by %s", task.id, actor.user_id)

        recalculate_safely(self._projects, self._tasks, restored.project_id)
        await self._notify_watchers(
            actor, restored, NotificationType.TASK_RESTORED,
            "Task restored", f'{actor.display_name} restored task "{restored.title}"',
        )
        return restored

    async def permanently_delete_task(self, actor: Actor, task_id: str) -> None:
        task = self._require_task(task_id)
        if not self._permissions.can_permanently_delete_task(task, actor.user_id):
            raise PermissionDenied("You do not have permission to permanently delete this task")
        self._tasks.remove(task.id)
        logger.info("Task %s permanently deleted by %s", task.id, actor.user_id)
        recalculate_safely(self._projects, self._tasks, task.project_id)

    # ------------------------------------------------------------------
    # Copies, comments, subtasks, work sessions
    # ------------------------------------------------------------------

    async def duplicate_task(self, actor: Actor, task_id: str) -> Task:
        """Copy a task as a new one-off task owned by the acting user."""
        now = self._clock()
        source = self.get_task(actor, task_id)
        copy = replace(
            source,
            id="",
            title=f"{source.title} (copy)",
            creator_id=actor.user_id,
            creator_name=actor.display_name,
            status=TaskStatus.NOT_STARTED,
            completed_at=None,
            subtasks=[
                replace(s, id=uuid.uuid4().hex, completed=False, completed_at=None)
                for s in source.subtasks
            ],
            reminders=[
                Reminder(id=uuid.uuid4().hex, kind=r.kind, amount=r.amount,
                         unit=r.unit, scheduled_at=r.scheduled_at)
                for r in source.reminders
            ],
            comments=[],
            work_sessions=[],
            total_work_seconds=0,
            progress=0,
            recurrence=Recurrence.NONE,
            recurrence_end_date=None,
            parent_task_id=None,
            recurrence_instance=None,
            is_recurrence_parent=False,
            date_checked_at=None,
            created_at=now,
            updated_at=now,
        )
        copy = self._normalize(actor, None, copy, now)
        created = self._tasks.add_task(copy)
        logger.info("Task %s duplicated as %s", source.id, created.id)
        recalculate_safely(self._projects, self._tasks, created.project_id)
        await self._notify_watchers(
            actor, created, NotificationType.TASK_CREATED,
            "Task created", f'{actor.display_name} created task "{created.title}"',
        )
        return created

    def add_comment(self, actor: Actor, task_id: str, content: str) -> Task:
        task = self.get_task(actor, task_id)
        content = (content or "").strip()
        if not content:
            raise ValidationError("Comment must not be empty")
        comment = Comment(
            id=uuid.uuid4().hex,
            user_id=actor.user_id,
            user_name=actor.display_name,
            content=content,
            created_at=self._clock(),
        )
        return self._tasks.update(task.id, {"comments": SetTo([*task.comments, comment])})

    def _editable(self, actor: Actor, task_id: str) -> Task:
        task = self._require_task(task_id)
        if task.is_deleted:
            raise StaleState("Deleted tasks cannot be edited")
        if not self._permissions.can_edit_task(task, actor.user_id):
            raise PermissionDenied("You do not have permission to edit this task")
        return task

    def set_subtask_completed(
        self, actor: Actor, task_id: str, subtask_id: str, completed: bool,
    ) -> Task:
        now = self._clock()
        task = self._editable(actor, task_id)
        if not any(s.id == subtask_id for s in task.subtasks):
            raise NotFound("Subtask not found")
        subtasks = [
            replace(s, completed=completed, completed_at=now if completed else None)
            if s.id == subtask_id else s
            for s in task.subtasks
        ]
        done = sum(1 for s in subtasks if s.completed)
        return self._tasks.update(task.id, {
            "subtasks": SetTo(subtasks),
            "progress": SetTo(done * 100 // len(subtasks)),
            "updated_at": SetTo(now),
        })

    def add_work_session(
        self,
        actor: Actor,
        task_id: str,
        start: datetime,
        end: datetime | None = None,
        break_minutes: int = 0,
    ) -> Task:
        task = self._editable(actor, task_id)
        sessions = [*task.work_sessions, new_session(start, end, break_minutes)]
        return self._tasks.update(task.id, {
            "work_sessions": SetTo(sessions),
            "total_work_seconds": SetTo(total_work_seconds(sessions)),
        })

    def edit_work_session(
        self,
        actor: Actor,
        task_id: str,
        session_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        break_minutes: int | None = None,
    ) -> Task:
        task = self._editable(actor, task_id)
        if not any(s.id == session_id for s in task.work_sessions):
            raise NotFound("Work session not found")
        now = self._clock()
        sessions = [
            edit_session(s, actor, now, start=start, end=end, break_minutes=break_minutes)
            if s.id == session_id else s
            for s in task.work_sessions
        ]
        return self._tasks.update(task.id, {
            "work_sessions": SetTo(sessions),
            "total_work_seconds": SetTo(total_work_seconds(sessions)),
        })
