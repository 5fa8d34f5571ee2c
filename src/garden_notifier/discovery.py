"""Keep one notifier channel registered for every guild the bot is in."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Mapping, Protocol, Sequence

from .discord import (
    GUILD_TEXT_CHANNEL,
    OVERWRITE_MEMBER,
    OVERWRITE_ROLE,
    SEND_MESSAGES,
    VIEW_CHANNEL,
    DiscordAPIError,
)
from .models import ChannelInfo, Destination, GuildInfo
from .registry import DestinationRegistry
from .tracker import MessageTracker

CHANNEL_NAME = "🌱-grow-a-garden-stock-notifier"

logger = logging.getLogger(__name__)


class GuildAPIProtocol(Protocol):
    async def list_guilds(self) -> list[GuildInfo] | None: ...

    async def fetch_guild_channels(self, guild_id: str) -> list[ChannelInfo] | None: ...

    async def create_text_channel(
        self,
        guild_id: str,
        name: str,
        *,
        permission_overwrites: Sequence[Mapping[str, Any]] = (),
    ) -> ChannelInfo: ...


def notifier_channel_overwrites(guild_id: str, bot_user_id: str | None) -> list[dict[str, Any]]:
    """Everyone can read the channel; only the bot can post in it."""

    overwrites: list[dict[str, Any]] = [
        {
            "id": guild_id,
            "type": OVERWRITE_ROLE,
            "allow": str(VIEW_CHANNEL),
            "deny": str(SEND_MESSAGES),
        }
    ]
    if bot_user_id:
        overwrites.append(
            {
                "id": bot_user_id,
                "type": OVERWRITE_MEMBER,
                "allow": str(VIEW_CHANNEL | SEND_MESSAGES),
                "deny": "0",
            }
        )
    return overwrites


class GuildDiscovery:
    """Discover guilds by polling the bot's guild list.

    The first successful :meth:`sync` plays the role of the "ready" event.
    Guilds appearing in later syncs are treated as freshly joined and get
    catch-up alerts through ``on_joined``; guilds that disappeared are
    dropped from the registry together with their tracked messages.
    """

    def __init__(
        self,
        api: GuildAPIProtocol,
        registry: DestinationRegistry,
        tracker: MessageTracker,
        *,
        bot_user_id: str | None = None,
        on_joined: Callable[[GuildInfo], Awaitable[None]] | None = None,
        channel_name: str = CHANNEL_NAME,
    ):
        self._api = api
        self._registry = registry
        self._tracker = tracker
        self._bot_user_id = bot_user_id
        self._on_joined = on_joined
        self._channel_name = channel_name
        self._known: set[str] = set()
        self._ready = False
        self._lock = asyncio.Lock()

    @property
    def ready(self) -> bool:
        return self._ready

    async def sync(self) -> list[GuildInfo]:
        """Reconcile the registry with the current guild list.

        Returns the guilds that were joined since the previous sync.
        """

        async with self._lock:
            guilds = await self._api.list_guilds()
            if guilds is None:
                return []

            current = {guild.id for guild in guilds}
            for guild_id in sorted(self._known - current):
                await self._forget(guild_id)

            first_sync = not self._ready
            joined: list[GuildInfo] = []
            for guild in guilds:
                destination = await self.ensure_destination(guild)
                if destination is None:
                    continue
                if guild.id not in self._known:
                    self._known.add(guild.id)
                    if not first_sync:
                        logger.info("Joined new guild: %s (%s)", guild.name, guild.id)
                        joined.append(guild)
            self._ready = True

        if self._on_joined is not None:
            for guild in joined:
                await self._on_joined(guild)
        return joined

    async def ensure_destination(self, guild: GuildInfo) -> Destination | None:
        """Return the guild's notifier channel, finding or creating it once."""

        destination = await self._registry.get(guild.id)
        if destination is not None:
            return destination

        channels = await self._api.fetch_guild_channels(guild.id)
        if channels is None:
            return None

        channel = next(
            (
                item
                for item in channels
                if item.name == self._channel_name and item.type == GUILD_TEXT_CHANNEL
            ),
            None,
        )
        if channel is not None:
            logger.info("Found existing notifier channel in %s", guild.name or guild.id)
        else:
            try:
                channel = await self._api.create_text_channel(
                    guild.id,
                    self._channel_name,
                    permission_overwrites=notifier_channel_overwrites(
                        guild.id, self._bot_user_id
                    ),
                )
            except DiscordAPIError as exc:
                logger.warning(
                    "Failed to create notifier channel in %s (%s): %s",
                    guild.name,
                    guild.id,
                    exc,
                )
                return None
            logger.info("Created notifier channel in %s", guild.name or guild.id)

        destination = Destination(guild_id=guild.id, channel_id=channel.id, name=channel.name)
        await self._registry.register(guild.id, destination)
        return destination

    async def _forget(self, guild_id: str) -> None:
        self._known.discard(guild_id)
        removed = await self._registry.unregister(guild_id)
        dropped = await self._tracker.forget_group(guild_id)
        if removed is not None:
            logger.info(
                "Left guild %s, dropped its channel and %d tracked alerts", guild_id, dropped
            )
