"""Fetch upstream snapshots and fan alerts out to every registered guild."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Protocol, Sequence

from .discord import DiscordAPIError
from .formatting import build_stock_embed, build_weather_embed, embed_text
from .models import Category, SentMessage, StockPayload, WeatherPayload
from .registry import DestinationRegistry
from .tracker import MessageTracker

logger = logging.getLogger(__name__)


class UpstreamProtocol(Protocol):
    async def fetch_weather(self) -> WeatherPayload | None: ...

    async def fetch_stock(self, category: Category) -> StockPayload | None: ...


class MessengerProtocol(Protocol):
    async def send_message(
        self, channel_id: str, *, embeds: Sequence[Mapping[str, Any]]
    ) -> SentMessage: ...

    async def delete_message(self, message: SentMessage) -> bool: ...


class Notifier:
    """Turn upstream payloads into Discord alerts.

    Weather alerts are always posted as new messages. Stock alerts replace
    the previous alert of the same category in each guild: the old message
    is deleted (best effort) before the new one is sent, and the new handle
    is remembered in the :class:`MessageTracker`.
    """

    def __init__(
        self,
        upstream: UpstreamProtocol,
        messenger: MessengerProtocol,
        registry: DestinationRegistry,
        tracker: MessageTracker,
        *,
        clock: Callable[[], datetime] | None = None,
    ):
        self._upstream = upstream
        self._messenger = messenger
        self._registry = registry
        self._tracker = tracker
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def notify_weather(self) -> int:
        payload = await self._upstream.fetch_weather()
        if payload is None:
            return 0

        embed = build_weather_embed(payload, now=self._clock())
        logger.debug("Weather alert:\n%s", embed_text(embed))
        sent = 0
        for guild_id, destination in await self._registry.all_destinations():
            try:
                await self._messenger.send_message(destination.channel_id, embeds=[embed])
            except asyncio.CancelledError:
                raise
            except DiscordAPIError as exc:
                logger.warning("[%s] Failed to send weather: %s", guild_id, exc)
                continue
            except Exception:
                logger.exception("[%s] Unexpected error while sending weather", guild_id)
                continue
            sent += 1
        logger.debug("Weather update sent to %d guilds", sent)
        return sent

    async def notify_stock(self, category: Category) -> int:
        payload = await self._upstream.fetch_stock(category)
        if payload is None or not payload.items:
            return 0

        embed = build_stock_embed(category, payload, now=self._clock())
        logger.debug("Stock %s alert:\n%s", category.name, embed_text(embed))
        sent = 0
        for guild_id, destination in await self._registry.all_destinations():
            previous = await self._tracker.get(guild_id, category.name)
            if previous is not None:
                await self._retract(guild_id, category, previous)
            try:
                message = await self._messenger.send_message(
                    destination.channel_id, embeds=[embed]
                )
            except asyncio.CancelledError:
                raise
            except DiscordAPIError as exc:
                logger.warning(
                    "[%s] Failed to send stock for %s: %s", guild_id, category.name, exc
                )
                continue
            except Exception:
                logger.exception(
                    "[%s] Unexpected error while sending stock for %s", guild_id, category.name
                )
                continue
            replaced = await self._tracker.take_and_replace(guild_id, category.name, message)
            if replaced is not None and replaced != previous:
                # Another tick stored a message between our lookup and send.
                await self._retract(guild_id, category, replaced)
            sent += 1
        logger.debug("Stock %s sent to %d guilds", category.name, sent)
        return sent

    async def _retract(self, guild_id: str, category: Category, message: SentMessage) -> None:
        try:
            deleted = await self._messenger.delete_message(message)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[%s] Unexpected error while deleting previous alert", guild_id)
            return
        if not deleted:
            logger.debug(
                "[%s] Previous %s alert %s was not deleted",
                guild_id,
                category.name,
                message.message_id,
            )
