"""In-memory registry of notification channels per guild."""

from __future__ import annotations

import asyncio

from .models import Destination


class DestinationRegistry:
    """Map each guild to the single channel that receives its alerts."""

    def __init__(self) -> None:
        self._destinations: dict[str, Destination] = {}
        self._lock = asyncio.Lock()

    async def register(self, guild_id: str, destination: Destination) -> None:
        """Store ``destination`` for ``guild_id``, replacing any previous one."""

        async with self._lock:
            self._destinations[guild_id] = destination

    async def unregister(self, guild_id: str) -> Destination | None:
        async with self._lock:
            return self._destinations.pop(guild_id, None)

    async def get(self, guild_id: str) -> Destination | None:
        async with self._lock:
            return self._destinations.get(guild_id)

    async def all_destinations(self) -> list[tuple[str, Destination]]:
        """Return a snapshot of ``(guild_id, destination)`` pairs.

        The snapshot is safe to iterate while other tasks register guilds;
        guilds added afterwards are picked up by the next pass.
        """

        async with self._lock:
            return list(self._destinations.items())

    async def groups(self) -> set[str]:
        async with self._lock:
            return set(self._destinations)

    def __len__(self) -> int:
        return len(self._destinations)
