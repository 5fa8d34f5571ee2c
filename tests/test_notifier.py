from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

import pytest

from garden_notifier.discord import DiscordAPIError
from garden_notifier.formatting import embed_text
from garden_notifier.models import (
    Category,
    Destination,
    SentMessage,
    StockItem,
    StockPayload,
    WeatherPayload,
)
from garden_notifier.notifier import Notifier
from garden_notifier.registry import DestinationRegistry
from garden_notifier.tracker import MessageTracker

_GEAR = Category("gear", 300.0)


class FakeUpstream:
    def __init__(
        self,
        *,
        stock: StockPayload | None = None,
        weather: WeatherPayload | None = None,
    ) -> None:
        self.stock = stock
        self.weather = weather
        self.stock_calls: list[str] = []
        self.weather_calls = 0

    async def fetch_weather(self) -> WeatherPayload | None:
        self.weather_calls += 1
        return self.weather

    async def fetch_stock(self, category: Category) -> StockPayload | None:
        self.stock_calls.append(category.name)
        return self.stock


class RecordingMessenger:
    def __init__(
        self,
        *,
        failing_channels: set[str] | None = None,
        failing_deletes: bool = False,
    ) -> None:
        self.sent: list[tuple[str, list[Mapping[str, Any]]]] = []
        self.deleted: list[SentMessage] = []
        self.failing_channels = failing_channels or set()
        self.failing_deletes = failing_deletes
        self._counter = 0

    async def send_message(
        self, channel_id: str, *, embeds: Sequence[Mapping[str, Any]]
    ) -> SentMessage:
        if channel_id in self.failing_channels:
            raise DiscordAPIError("Missing Permissions", status=403)
        self._counter += 1
        self.sent.append((channel_id, list(embeds)))
        return SentMessage(channel_id=channel_id, message_id=f"m{self._counter}")

    async def delete_message(self, message: SentMessage) -> bool:
        if self.failing_deletes:
            return False
        self.deleted.append(message)
        return True


def _clock() -> datetime:
    return datetime(2024, 6, 1, tzinfo=timezone.utc)


async def _registry_with(*guilds: str) -> DestinationRegistry:
    registry = DestinationRegistry()
    for guild_id in guilds:
        await registry.register(
            guild_id, Destination(guild_id=guild_id, channel_id=f"chan-{guild_id}")
        )
    return registry


def test_notify_stock_sends_one_message_per_destination() -> None:
    async def runner() -> None:
        upstream = FakeUpstream(
            stock=StockPayload(items=(StockItem("A"), StockItem("B")), countdown="5m")
        )
        messenger = RecordingMessenger()
        registry = await _registry_with("g1", "g2")
        tracker = MessageTracker()
        notifier = Notifier(upstream, messenger, registry, tracker, clock=_clock)

        sent = await notifier.notify_stock(_GEAR)

        assert sent == 2
        assert [channel for channel, _ in messenger.sent] == ["chan-g1", "chan-g2"]
        for _, embeds in messenger.sent:
            assert len(embeds) == 1
            text = embed_text(embeds[0])
            assert "**A** is now in stock!" in text
            assert "**B** is now in stock!" in text
        assert await tracker.get("g1", "gear") == SentMessage("chan-g1", "m1")
        assert await tracker.get("g2", "gear") == SentMessage("chan-g2", "m2")
        assert len(tracker) == 2
        assert messenger.deleted == []

    asyncio.run(runner())


def test_notify_stock_with_empty_items_sends_nothing() -> None:
    async def runner() -> None:
        upstream = FakeUpstream(stock=StockPayload(items=(), countdown="1m"))
        messenger = RecordingMessenger()
        registry = await _registry_with("g1")
        tracker = MessageTracker()
        previous = SentMessage("chan-g1", "old")
        await tracker.take_and_replace("g1", "gear", previous)
        notifier = Notifier(upstream, messenger, registry, tracker)

        assert await notifier.notify_stock(_GEAR) == 0

        assert messenger.sent == []
        assert messenger.deleted == []
        assert await tracker.get("g1", "gear") == previous

    asyncio.run(runner())


def test_upstream_failure_produces_no_messages() -> None:
    async def runner() -> None:
        upstream = FakeUpstream(stock=None, weather=None)
        messenger = RecordingMessenger()
        registry = await _registry_with("g1", "g2")
        notifier = Notifier(upstream, messenger, registry, MessageTracker())

        assert await notifier.notify_stock(_GEAR) == 0
        assert await notifier.notify_weather() == 0
        assert messenger.sent == []

    asyncio.run(runner())


def test_stock_alert_replaces_previous_message() -> None:
    async def runner() -> None:
        upstream = FakeUpstream(stock=StockPayload(items=(StockItem("A"),)))
        messenger = RecordingMessenger()
        registry = await _registry_with("g1")
        tracker = MessageTracker()
        notifier = Notifier(upstream, messenger, registry, tracker)

        await notifier.notify_stock(_GEAR)
        first = await tracker.get("g1", "gear")
        await notifier.notify_stock(_GEAR)

        assert messenger.deleted == [first]
        assert await tracker.get("g1", "gear") == SentMessage("chan-g1", "m2")
        assert len(tracker) == 1

    asyncio.run(runner())


def test_failed_retraction_does_not_block_new_alert(caplog: pytest.LogCaptureFixture) -> None:
    async def runner() -> None:
        upstream = FakeUpstream(stock=StockPayload(items=(StockItem("A"),)))
        messenger = RecordingMessenger(failing_deletes=True)
        registry = await _registry_with("g1")
        tracker = MessageTracker()
        await tracker.take_and_replace("g1", "gear", SentMessage("chan-g1", "gone"))
        notifier = Notifier(upstream, messenger, registry, tracker)

        assert await notifier.notify_stock(_GEAR) == 1
        assert await tracker.get("g1", "gear") == SentMessage("chan-g1", "m1")

    with caplog.at_level(logging.DEBUG, logger="garden_notifier.notifier"):
        asyncio.run(runner())

    assert any("was not deleted" in record.getMessage() for record in caplog.records)


def test_failing_destination_does_not_block_others(caplog: pytest.LogCaptureFixture) -> None:
    async def runner() -> None:
        upstream = FakeUpstream(
            stock=StockPayload(items=(StockItem("A"),)),
            weather=WeatherPayload(effect="Rain"),
        )
        messenger = RecordingMessenger(failing_channels={"chan-g1"})
        registry = await _registry_with("g1", "g2", "g3")
        tracker = MessageTracker()
        notifier = Notifier(upstream, messenger, registry, tracker)

        assert await notifier.notify_stock(_GEAR) == 2
        assert await notifier.notify_weather() == 2
        assert [channel for channel, _ in messenger.sent] == [
            "chan-g2",
            "chan-g3",
            "chan-g2",
            "chan-g3",
        ]
        assert await tracker.get("g1", "gear") is None

    with caplog.at_level(logging.WARNING, logger="garden_notifier.notifier"):
        asyncio.run(runner())

    messages = [record.getMessage() for record in caplog.records]
    assert any("[g1] Failed to send stock for gear" in message for message in messages)
    assert any("[g1] Failed to send weather" in message for message in messages)


def test_weather_is_never_tracked_or_retracted() -> None:
    async def runner() -> None:
        upstream = FakeUpstream(weather=WeatherPayload(bonus="x2"))
        messenger = RecordingMessenger()
        registry = await _registry_with("g1")
        tracker = MessageTracker()
        notifier = Notifier(upstream, messenger, registry, tracker)

        await notifier.notify_weather()
        await notifier.notify_weather()

        assert len(messenger.sent) == 2
        assert messenger.deleted == []
        assert len(tracker) == 0
        text = embed_text(messenger.sent[0][1][0])
        assert "✨ Bonus: x2" in text
        assert "🌿 Effect: None" in text

    asyncio.run(runner())


def test_no_destinations_still_fetches() -> None:
    async def runner() -> None:
        upstream = FakeUpstream(stock=StockPayload(items=(StockItem("A"),)))
        messenger = RecordingMessenger()
        notifier = Notifier(upstream, messenger, DestinationRegistry(), MessageTracker())

        assert await notifier.notify_stock(_GEAR) == 0
        assert upstream.stock_calls == ["gear"]
        assert messenger.sent == []

    asyncio.run(runner())


class InterleavingMessenger(RecordingMessenger):
    """Stores a competing alert in the tracker while a send is in flight."""

    def __init__(self, tracker: MessageTracker, competing: SentMessage) -> None:
        super().__init__()
        self.tracker = tracker
        self.competing = competing

    async def send_message(
        self, channel_id: str, *, embeds: Sequence[Mapping[str, Any]]
    ) -> SentMessage:
        await self.tracker.take_and_replace("g1", "gear", self.competing)
        return await super().send_message(channel_id, embeds=embeds)


def test_message_stored_during_send_is_retracted() -> None:
    async def runner() -> None:
        upstream = FakeUpstream(stock=StockPayload(items=(StockItem("A"),)))
        registry = await _registry_with("g1")
        tracker = MessageTracker()
        competing = SentMessage("chan-g1", "other")
        messenger = InterleavingMessenger(tracker, competing)
        notifier = Notifier(upstream, messenger, registry, tracker)

        assert await notifier.notify_stock(_GEAR) == 1

        assert messenger.deleted == [competing]
        assert await tracker.get("g1", "gear") == SentMessage("chan-g1", "m1")

    asyncio.run(runner())


def test_alert_text_is_logged_at_debug(caplog: pytest.LogCaptureFixture) -> None:
    async def runner() -> None:
        upstream = FakeUpstream(
            stock=StockPayload(items=(StockItem("Trowel"),)),
            weather=WeatherPayload(effect="Rain"),
        )
        notifier = Notifier(
            upstream, RecordingMessenger(), DestinationRegistry(), MessageTracker()
        )
        await notifier.notify_stock(_GEAR)
        await notifier.notify_weather()

    with caplog.at_level(logging.DEBUG, logger="garden_notifier.notifier"):
        asyncio.run(runner())

    messages = [record.getMessage() for record in caplog.records]
    assert any(
        message.startswith("Stock gear alert:") and "**Trowel** is now in stock!" in message
        for message in messages
    )
    assert any(
        message.startswith("Weather alert:") and "🌿 Effect: Rain" in message
        for message in messages
    )
