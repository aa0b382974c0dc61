"""Logging push adapter - implements PushPort without a transport.

Used when no push provider is configured: messages are only logged.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class LogPush:
    async def send(self, token: str, title: str, body: str, data: dict[str, str]) -> None:
        logger.info("Push to %s: %s | %s %s", token, title, body, data)
