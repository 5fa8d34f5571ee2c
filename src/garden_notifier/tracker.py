"""Track the latest stock alert posted per guild and category."""

from __future__ import annotations

import asyncio

from .models import SentMessage


class MessageTracker:
    """Single-slot store of the last message per ``(guild, category)``."""

    def __init__(self) -> None:
        self._messages: dict[tuple[str, str], SentMessage] = {}
        self._lock = asyncio.Lock()

    async def take_and_replace(
        self, guild_id: str, category: str, message: SentMessage
    ) -> SentMessage | None:
        """Store ``message`` and return the one it replaces, if any."""

        async with self._lock:
            key = (guild_id, category)
            previous = self._messages.get(key)
            self._messages[key] = message
            return previous

    async def get(self, guild_id: str, category: str) -> SentMessage | None:
        async with self._lock:
            return self._messages.get((guild_id, category))

    async def forget_group(self, guild_id: str) -> int:
        async with self._lock:
            keys = [key for key in self._messages if key[0] == guild_id]
            for key in keys:
                del self._messages[key]
            return len(keys)

    def __len__(self) -> int:
        return len(self._messages)
