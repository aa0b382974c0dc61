"""
Taskboard - Worker.

Wires the document store, typed collections, push transport and services,
and schedules the reminder scan.

With TELEGRAM_BOT_TOKEN set, the scan runs on the bot's job queue and the
/start command tells a user which chat id to register as their push
token. Without a token the scan runs on a plain asyncio loop and pushes
are only logged.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo

from telegram import Update
from telegram.ext import Application, ApplicationBuilder, CommandHandler, ContextTypes

from taskboard.adapters.push_factory import create_push_adapter
from taskboard.adapters.sqlite_store import SQLiteDocumentStore
from taskboard.config import settings
from taskboard.core.date_check_service import DateCheckService
from taskboard.core.notifications import NotificationDispatcher
from taskboard.core.project_service import ProjectService
from taskboard.core.scheduler import check_reminders
from taskboard.core.task_service import TaskService
from taskboard.core.team_service import TeamService
from taskboard.data.db import InvitationDB, NotificationDB, ProjectDB, TaskDB, TeamDB, UserDB
from taskboard.ports.document_store import DocumentStore
from taskboard.ports.push_port import PushPort

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a caller needs, built over one document store."""

    tasks: TaskDB
    projects: ProjectDB
    teams: TeamDB
    invitations: InvitationDB
    notifications: NotificationDB
    users: UserDB
    push: PushPort
    notifier: NotificationDispatcher
    task_service: TaskService
    project_service: ProjectService
    team_service: TeamService
    date_checks: DateCheckService


def local_now() -> datetime:
    """Wall-clock time in settings.TIMEZONE; stored dates are naive local times."""
    return datetime.now(ZoneInfo(settings.TIMEZONE)).replace(tzinfo=None)


def build_services(store: DocumentStore | None = None, push: PushPort | None = None) -> Services:
    store = store or SQLiteDocumentStore()
    push = push or create_push_adapter()

    tasks = TaskDB(store)
    projects = ProjectDB(store)
    teams = TeamDB(store)
    invitations = InvitationDB(store)
    notifications = NotificationDB(store)
    users = UserDB(store)
    notifier = NotificationDispatcher(notifications, users, push, clock=local_now)

    return Services(
        tasks=tasks,
        projects=projects,
        teams=teams,
        invitations=invitations,
        notifications=notifications,
        users=users,
        push=push,
        notifier=notifier,
        task_service=TaskService(tasks, projects, teams, notifier, clock=local_now),
        project_service=ProjectService(projects, tasks, teams, notifier, clock=local_now),
        team_service=TeamService(teams, invitations, users, notifier, clock=local_now),
        date_checks=DateCheckService(tasks, projects, teams, notifier, clock=local_now),
    )


async def run_reminder_scan(services: Services) -> int:
    return await check_reminders(
        services.tasks, services.users, services.notifications, services.push, local_now(),
    )


# ---------------------------------------------------------------------------
# Telegram application
# ---------------------------------------------------------------------------


async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Reply with the chat id to use as the push token."""
    chat_id = update.effective_chat.id
    await update.message.reply_text(
        "Taskboard reminders can be delivered to this chat.\n"
        f"Your push token is: {chat_id}"
    )


def build_app(services: Services | None = None) -> Application:
    """Build the Telegram Application: /start plus the reminder job."""
    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()

    if services is None:
        services = build_services(push=create_push_adapter(app.bot))
    app.bot_data["services"] = services

    app.add_handler(CommandHandler("start", cmd_start))
    _setup_reminder_scan(app, services)

    logger.info("Telegram application built with %d handlers", len(app.handlers[0]))
    return app


def _setup_reminder_scan(app: Application, services: Services) -> None:
    """Register the repeating reminder scan on the bot's job queue."""

    async def _reminder_job_callback(context: ContextTypes.DEFAULT_TYPE) -> None:
        await run_reminder_scan(services)

    app.job_queue.run_repeating(
        _reminder_job_callback,
        interval=settings.REMINDER_INTERVAL_SECONDS,
        first=0,
        name="reminder_scan",
    )
    logger.info("Reminder scan scheduled every %ds", settings.REMINDER_INTERVAL_SECONDS)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


async def run_without_bot(services: Services, iterations: int | None = None) -> None:
    """Run the reminder scan on a plain loop; *iterations* bounds it for tests."""
    done = 0
    while iterations is None or done < iterations:
        await run_reminder_scan(services)
        done += 1
        if iterations is None or done < iterations:
            await asyncio.sleep(settings.REMINDER_INTERVAL_SECONDS)


def main() -> None:
    """Entry point: start the bot if configured, else the bare scan loop."""
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    if settings.TELEGRAM_BOT_TOKEN:
        logger.info("Starting Taskboard worker with Telegram delivery...")
        build_app().run_polling()
    else:
        logger.info("Starting Taskboard worker without a bot token...")
        asyncio.run(run_without_bot(build_services()))


if __name__ == "__main__":
    main()
