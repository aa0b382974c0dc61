"""Push port - abstract interface for delivering a push message to a device.

Implementations swallow delivery failures after logging them.
"""

from __future__ import annotations

from typing import Protocol


class PushPort(Protocol):
    async def send(self, token: str, title: str, body: str, data: dict[str, str]) -> None: ...
