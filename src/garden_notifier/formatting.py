"""Discord embed builders for stock and weather alerts."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from .models import Category, StockPayload, WeatherPayload

EmbedPayload = dict[str, Any]

STOCK_COLOR = 0x00C851
WEATHER_COLOR = 0x3498DB
STOCK_FOOTER = "Grow A Garden Stock Notifier"
WEATHER_FOOTER = "Weather updates every 2 minutes"
UNKNOWN_COUNTDOWN = "Unknown"
MISSING_WEATHER_VALUE = "None"

_DESCRIPTION_LIMIT = 4096
_FIELD_VALUE_LIMIT = 1024
_ELLIPSIS = "…"


def build_stock_embed(
    category: Category,
    payload: StockPayload,
    *,
    now: datetime | None = None,
) -> EmbedPayload:
    """Render a stock alert listing every item of ``payload``."""

    lines = [f"• **{item.name}** is now in stock!" for item in payload.items]
    return {
        "title": f"🪴 {category.name.upper()} STOCK ALERT",
        "color": STOCK_COLOR,
        "description": _truncate_lines(lines, _DESCRIPTION_LIMIT),
        "fields": [
            {
                "name": "⏳ Next Update",
                "value": _truncate(payload.countdown or UNKNOWN_COUNTDOWN),
            }
        ],
        "timestamp": _timestamp(now),
        "footer": {"text": STOCK_FOOTER},
    }


def build_weather_embed(
    payload: WeatherPayload, *, now: datetime | None = None
) -> EmbedPayload:
    fields = [
        ("🌿 Effect", payload.effect),
        ("✨ Bonus", payload.bonus),
        ("🧬 Mutation", payload.mutation),
    ]
    return {
        "title": "⛅ Weather Update",
        "color": WEATHER_COLOR,
        "fields": [
            {
                "name": name,
                "value": _truncate(value or MISSING_WEATHER_VALUE),
                "inline": True,
            }
            for name, value in fields
        ],
        "timestamp": _timestamp(now),
        "footer": {"text": WEATHER_FOOTER},
    }


def embed_text(embed: EmbedPayload) -> str:
    """Flatten the visible text of an embed, mostly for logs and tests."""

    parts = [str(embed.get("title") or ""), str(embed.get("description") or "")]
    for field in embed.get("fields") or []:
        parts.append(f"{field.get('name')}: {field.get('value')}")
    footer = embed.get("footer") or {}
    parts.append(str(footer.get("text") or ""))
    return "\n".join(part for part in parts if part)


def _timestamp(now: datetime | None) -> str:
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.isoformat()


def _truncate(value: str, limit: int = _FIELD_VALUE_LIMIT) -> str:
    if len(value) <= limit:
        return value
    return value[: limit - len(_ELLIPSIS)] + _ELLIPSIS


def _truncate_lines(lines: list[str], limit: int) -> str:
    text = "\n".join(lines)
    if len(text) <= limit:
        return text
    kept: list[str] = []
    size = len(_ELLIPSIS)
    for line in lines:
        extra = len(line) + (1 if kept else 0)
        if size + extra + 1 > limit:
            break
        kept.append(line)
        size += extra
    if not kept:
        return _truncate(text, limit)
    return "\n".join(kept) + "\n" + _ELLIPSIS
