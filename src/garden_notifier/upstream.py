"""Grow A Garden stock API client."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

import aiohttp

from .models import Category, StockItem, StockPayload, WeatherPayload

DEFAULT_API_BASE = "https://growagardenstock.vercel.app"

logger = logging.getLogger(__name__)


class UpstreamClient:
    """Fetch weather and stock snapshots from the stock API.

    Every failure (transport error, error status, malformed JSON) is logged
    here and reported to the caller as ``None``.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        base_url: str = DEFAULT_API_BASE,
        timeout: float = 15.0,
    ):
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def fetch_weather(self) -> WeatherPayload | None:
        data = await self._get_json("/api/weather", label="weather")
        if data is None:
            return None
        return parse_weather_payload(data)

    async def fetch_stock(self, category: Category) -> StockPayload | None:
        await self.refresh()
        data = await self._get_json(category.path, label=f"stock {category.name}")
        if data is None:
            return None
        try:
            return parse_stock_payload(data)
        except ValueError as exc:
            logger.warning("Stock API sent unexpected payload for stock %s: %s", category.name, exc)
            return None

    async def refresh(self) -> None:
        """Ask the API to refresh its cache; failures are ignored."""

        url = f"{self._base_url}/api/refresh"
        try:
            timeout_cfg = aiohttp.ClientTimeout(total=self._timeout)
            async with self._session.get(url, timeout=timeout_cfg) as resp:
                await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.debug("Stock API refresh failed: %s", exc)

    async def _get_json(self, path: str, *, label: str) -> Mapping[str, Any] | None:
        url = f"{self._base_url}{path}"
        try:
            timeout_cfg = aiohttp.ClientTimeout(total=self._timeout)
            async with self._session.get(
                url,
                headers={"Accept": "application/json"},
                timeout=timeout_cfg,
            ) as resp:
                if resp.status >= 400:
                    logger.warning(
                        "Stock API returned status %s while fetching %s",
                        resp.status,
                        label,
                    )
                    return None
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("Failed to fetch %s from stock API: %s", label, exc)
            return None
        except ValueError as exc:
            logger.warning("Stock API sent malformed JSON for %s: %s", label, exc)
            return None
        if not isinstance(data, Mapping):
            logger.warning("Stock API sent unexpected payload for %s", label)
            return None
        return data


def parse_stock_payload(data: Mapping[str, Any]) -> StockPayload:
    items: list[StockItem] = []
    raw_items = data.get("items")
    if raw_items is None:
        raw_items = []
    if not isinstance(raw_items, list):
        raise ValueError(f"items must be a list, got {type(raw_items).__name__}")
    for entry in raw_items:
        if not isinstance(entry, Mapping):
            continue
        name = str(entry.get("name") or "").strip()
        if name:
            items.append(StockItem(name=name))

    countdown = data.get("countdown")
    formatted: str | None = None
    if isinstance(countdown, Mapping):
        formatted = str(countdown.get("formatted") or "").strip() or None
    return StockPayload(items=tuple(items), countdown=formatted)


def parse_weather_payload(data: Mapping[str, Any]) -> WeatherPayload:
    def _text(key: str) -> str | None:
        value = data.get(key)
        if value is None:
            return None
        return str(value).strip() or None

    return WeatherPayload(
        effect=_text("effect"),
        bonus=_text("bonus"),
        mutation=_text("mutation"),
    )
