"""Push adapter factory - selects the push transport from configuration."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from taskboard.config import settings

if TYPE_CHECKING:
    from telegram import Bot

    from taskboard.ports.push_port import PushPort

logger = logging.getLogger(__name__)


def create_push_adapter(bot: Bot | None = None) -> PushPort:
    """Return the PushPort implementation named by PUSH_PROVIDER.

    The Telegram adapter needs a bot; without one (or without a token)
    delivery falls back to logging.
    """
    provider = settings.PUSH_PROVIDER

    if provider == "telegram":
        if bot is None and settings.TELEGRAM_BOT_TOKEN:
            from telegram import Bot
            bot = Bot(settings.TELEGRAM_BOT_TOKEN)
        if bot is not None:
            from taskboard.adapters.telegram_push import TelegramPush
            logger.info("Push provider: telegram")
            return TelegramPush(bot)
        logger.warning("PUSH_PROVIDER=telegram but TELEGRAM_BOT_TOKEN is empty; logging pushes instead")

    from taskboard.adapters.log_push import LogPush
    logger.info("Push provider: log")
    return LogPush()
