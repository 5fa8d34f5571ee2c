"""Application bootstrap for Garden Notifier."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

import aiohttp

from .config import Settings
from .discord import DiscordClient
from .discovery import GuildDiscovery
from .health import start_health_server
from .models import Category, GuildInfo
from .notifier import Notifier
from .registry import DestinationRegistry
from .scheduler import Scheduler
from .tracker import MessageTracker
from .upstream import UpstreamClient

logger = logging.getLogger(__name__)

WEATHER_JOB = "weather"
GUILDS_JOB = "guilds"


def stock_job_name(category: Category) -> str:
    return f"stock:{category.name}"


class GardenNotifierApp:
    """High level coordinator tying together the stock API, Discord and timers."""

    def __init__(self, settings: Settings):
        if not settings.discord_token:
            raise ValueError("a Discord bot token is required")
        self._settings = settings
        self._registry = DestinationRegistry()
        self._tracker = MessageTracker()
        self._scheduler = Scheduler()

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def registry(self) -> DestinationRegistry:
        return self._registry

    @property
    def tracker(self) -> MessageTracker:
        return self._tracker

    async def run(self) -> None:
        settings = self._settings
        runner = await start_health_server(settings.port)
        try:
            async with aiohttp.ClientSession() as session:
                discord_client = DiscordClient(session, settings.discord_token or "")
                upstream = UpstreamClient(session, base_url=settings.api_base)
                notifier = Notifier(upstream, discord_client, self._registry, self._tracker)

                bot_user = await discord_client.fetch_current_user()
                bot_user_id: str | None = None
                if bot_user is not None:
                    bot_user_id = str(bot_user.get("id") or "") or None
                    logger.info("Logged in as %s", bot_user.get("username") or bot_user_id)
                else:
                    logger.warning("Could not identify the bot user, continuing anyway")

                discovery = GuildDiscovery(
                    discord_client,
                    self._registry,
                    self._tracker,
                    bot_user_id=bot_user_id,
                    on_joined=self._catch_up,
                )
                self.configure_jobs(notifier, discovery)
                await discovery.sync()
                logger.info("Notifier channels ready in %d guilds", len(self._registry))

                await self._supervise("scheduler", self._scheduler.run)
        finally:
            await runner.cleanup()

    def configure_jobs(self, notifier: Notifier, discovery: GuildDiscovery) -> None:
        """Register the weather, per-category stock and guild sync timers."""

        settings = self._settings
        self._scheduler.add(WEATHER_JOB, settings.weather_interval, notifier.notify_weather)
        for category in settings.categories:
            self._scheduler.add(
                stock_job_name(category),
                category.interval,
                _bind_stock(notifier, category),
            )
        self._scheduler.add(
            GUILDS_JOB,
            settings.guild_sync_interval,
            discovery.sync,
            run_immediately=False,
        )

    async def _catch_up(self, guild: GuildInfo) -> None:
        logger.info("Sending catch-up alerts after joining %s", guild.name or guild.id)
        self._scheduler.trigger(WEATHER_JOB)
        for category in self._settings.categories:
            self._scheduler.trigger(stock_job_name(category))

    async def _supervise(
        self,
        name: str,
        factory: Callable[[], Awaitable[None]],
        *,
        retry_delay: float = 5.0,
    ) -> None:
        while True:
            try:
                await factory()
            except asyncio.CancelledError:
                logger.info("Task %s stopped", name)
                raise
            except Exception:
                logger.exception("Task %s crashed", name)
            else:
                logger.warning("Task %s exited unexpectedly, restarting", name)
            await asyncio.sleep(retry_delay)


def _bind_stock(notifier: Notifier, category: Category) -> Callable[[], Awaitable[int]]:
    async def action() -> int:
        return await notifier.notify_stock(category)

    return action
