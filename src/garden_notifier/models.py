"""Data models used across the notifier."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence


@dataclass(frozen=True, slots=True)
class Category:
    """Stock category polled on its own cadence."""

    name: str
    interval: float

    @property
    def path(self) -> str:
        return f"/api/stock/{self.name}"


DEFAULT_CATEGORIES: tuple[Category, ...] = (
    Category("gear", 5 * 60.0),
    Category("seeds", 5 * 60.0),
    Category("egg", 30 * 60.0),
    Category("honey", 60 * 60.0),
    Category("cosmetics", 4 * 60 * 60.0),
)


@dataclass(frozen=True, slots=True)
class StockItem:
    name: str


@dataclass(slots=True)
class StockPayload:
    """Items currently in stock for a category."""

    items: Sequence[StockItem] = ()
    countdown: str | None = None


@dataclass(slots=True)
class WeatherPayload:
    """Current weather effects reported by the stock API."""

    effect: str | None = None
    bonus: str | None = None
    mutation: str | None = None


@dataclass(frozen=True, slots=True)
class Destination:
    """Discord text channel that receives alerts for one guild."""

    guild_id: str
    channel_id: str
    name: str | None = None


@dataclass(frozen=True, slots=True)
class SentMessage:
    """Handle of a posted Discord message."""

    channel_id: str
    message_id: str


@dataclass(slots=True)
class GuildInfo:
    id: str
    name: str


@dataclass(slots=True)
class ChannelInfo:
    """Basic channel metadata from Discord API."""

    id: str
    type: int
    guild_id: str | None = None
    name: str | None = None
