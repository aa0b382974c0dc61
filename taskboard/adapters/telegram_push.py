"""Telegram push adapter - implements PushPort.

Wraps a telegram.Bot instance; a user's push token is their Telegram chat id.
"""

from __future__ import annotations

import logging

from telegram import Bot

logger = logging.getLogger(__name__)


class TelegramPush:
    """Telegram implementation of PushPort."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send(self, token: str, title: str, body: str, data: dict[str, str]) -> None:
        text = f"{title}\n{body}"
        url = data.get("url")
        if url:
            text += f"\n{url}"
        await self._bot.send_message(chat_id=token, text=text)
        logger.debug("Push delivered to chat %s", token)
