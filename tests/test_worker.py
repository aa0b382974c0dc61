"""Tests for taskboard.worker: service wiring and the reminder loop.

The Telegram application itself is mocked; nothing talks to the network.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from taskboard.adapters.log_push import LogPush
from taskboard.data.models import Actor
from taskboard.worker import (
    _setup_reminder_scan,
    build_services,
    cmd_start,
    local_now,
    run_reminder_scan,
    run_without_bot,
)


@pytest.fixture
def services(store):
    return build_services(store=store, push=LogPush())


class TestBuildServices:
    @pytest.mark.asyncio
    async def test_services_share_one_store(self, services):
        team = await services.team_service.create_team(Actor("alice", "Alice"), "Core")
        assert services.teams.get_team(team.id) == team
        assert services.notifier is not None
        assert isinstance(services.push, LogPush)

    @pytest.mark.asyncio
    async def test_reminder_scan_on_empty_store(self, services):
        assert await run_reminder_scan(services) == 0


class TestReminderLoop:
    @pytest.mark.asyncio
    async def test_bounded_iterations(self, services):
        scan = AsyncMock(return_value=0)
        with patch("taskboard.worker.run_reminder_scan", scan), \
             patch("taskboard.worker.asyncio.sleep", AsyncMock()) as sleep:
            await run_without_bot(services, iterations=3)
        assert scan.await_count == 3
        assert sleep.await_count == 2

    def test_job_queue_registration(self, services):
        app = MagicMock()
        _setup_reminder_scan(app, services)
        app.job_queue.run_repeating.assert_called_once()
        kwargs = app.job_queue.run_repeating.call_args.kwargs
        assert kwargs["name"] == "reminder_scan"
        assert kwargs["interval"] == 60
        assert kwargs["first"] == 0

    @pytest.mark.asyncio
    async def test_job_callback_runs_scan(self, services):
        app = MagicMock()
        _setup_reminder_scan(app, services)
        callback = app.job_queue.run_repeating.call_args.args[0]

        scan = AsyncMock(return_value=1)
        with patch("taskboard.worker.run_reminder_scan", scan):
            await callback(MagicMock())
        scan.assert_awaited_once_with(services)


class TestStartCommand:
    @pytest.mark.asyncio
    async def test_replies_with_chat_id(self):
        update = MagicMock()
        update.effective_chat.id = 4242
        update.message.reply_text = AsyncMock()

        await cmd_start(update, MagicMock())

        text = update.message.reply_text.call_args.args[0]
        assert "4242" in text


class TestClock:
    def test_local_now_is_naive(self):
        assert local_now().tzinfo is None
