"""Runtime settings loaded from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from .models import DEFAULT_CATEGORIES, Category
from .upstream import DEFAULT_API_BASE
from .utils import parse_duration, parse_port

DEFAULT_PORT = 3000
DEFAULT_WEATHER_INTERVAL = 2 * 60.0
DEFAULT_GUILD_SYNC_INTERVAL = 60.0


@dataclass(slots=True)
class Settings:
    """Everything the notifier needs to run."""

    discord_token: str | None = None
    port: int = DEFAULT_PORT
    api_base: str = DEFAULT_API_BASE
    weather_interval: float = DEFAULT_WEATHER_INTERVAL
    guild_sync_interval: float = DEFAULT_GUILD_SYNC_INTERVAL
    log_level: str = "INFO"
    categories: tuple[Category, ...] = DEFAULT_CATEGORIES

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        token = (env.get("DISCORD_TOKEN") or "").strip() or None
        api_base = (env.get("STOCK_API_BASE") or "").strip() or DEFAULT_API_BASE
        return cls(
            discord_token=token,
            port=parse_port(env.get("PORT"), DEFAULT_PORT),
            api_base=api_base,
            weather_interval=parse_duration(
                env.get("WEATHER_INTERVAL"), DEFAULT_WEATHER_INTERVAL
            ),
            guild_sync_interval=parse_duration(
                env.get("GUILD_SYNC_INTERVAL"), DEFAULT_GUILD_SYNC_INTERVAL
            ),
            log_level=(env.get("LOG_LEVEL") or "INFO").strip().upper() or "INFO",
        )
