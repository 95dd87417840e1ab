"""
Tests for the event bus and subscription groups.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, Mock

from vinyl_tracker.events.event_bus import EventBus, SubscriptionGroup


class TestEventBusSubscribeUnsubscribe:
    """Test event bus subscription management."""

    def test_subscribe_handler(self, event_bus):
        handler = Mock()
        event_bus.subscribe("audio.level", handler)
        assert event_bus.listener_count("audio.level") == 1
        assert event_bus.topics() == ["audio.level"]

    def test_duplicate_subscription_is_ignored(self, event_bus):
        handler = Mock()
        event_bus.subscribe("audio.level", handler)
        event_bus.subscribe("audio.level", handler)
        assert event_bus.listener_count("audio.level") == 1

    def test_same_handler_on_different_topics(self, event_bus):
        handler = Mock()
        event_bus.subscribe("silence.detected", handler)
        event_bus.subscribe("silence.ended", handler)
        assert event_bus.listener_count("silence.detected") == 1
        assert event_bus.listener_count("silence.ended") == 1

    def test_unsubscribe_handler(self, event_bus):
        handler = Mock()
        event_bus.subscribe("audio.level", handler)
        event_bus.unsubscribe("audio.level", handler)
        assert event_bus.listener_count("audio.level") == 0
        assert event_bus.topics() == []

    def test_unsubscribe_unknown_handler_is_noop(self, event_bus):
        event_bus.subscribe("audio.level", Mock())
        event_bus.unsubscribe("audio.level", Mock())
        event_bus.unsubscribe("never.used", Mock())
        assert event_bus.listener_count("audio.level") == 1

    def test_listener_limit(self):
        bus = EventBus(max_listeners_per_topic=3)
        for _ in range(3):
            bus.subscribe("audio.level", Mock())

        with pytest.raises(ValueError):
            bus.subscribe("audio.level", Mock())
        assert bus.listener_count("audio.level") == 3

    def test_clear(self, event_bus):
        event_bus.subscribe("a", Mock())
        event_bus.subscribe("b", Mock())
        event_bus.clear()
        assert event_bus.topics() == []

    def test_debug_report(self, event_bus):
        assert "No listeners registered" in event_bus.debug_report()

        event_bus.subscribe("audio.level", Mock())
        event_bus.subscribe("audio.level", Mock())
        report = event_bus.debug_report()
        assert "audio.level: 2 listener(s)" in report
        assert "Total: 2 listener(s) across 1 topic(s)" in report


class TestEventBusPublish:
    """Test publishing."""

    @pytest.mark.asyncio
    async def test_publish_to_sync_and_async_handlers(self, event_bus):
        sync_handler = Mock()
        async_handler = AsyncMock()
        event_bus.subscribe("session.started", sync_handler)
        event_bus.subscribe("session.started", async_handler)

        payload = {"session_id": "abc"}
        await event_bus.publish("session.started", payload)

        sync_handler.assert_called_once_with(payload)
        async_handler.assert_awaited_once_with(payload)

    @pytest.mark.asyncio
    async def test_publish_without_listeners(self, event_bus):
        await event_bus.publish("nobody.listens", {"x": 1})

    @pytest.mark.asyncio
    async def test_publish_defaults_to_empty_payload(self, event_bus):
        handler = Mock()
        event_bus.subscribe("ping", handler)
        await event_bus.publish("ping")
        handler.assert_called_once_with({})

    @pytest.mark.asyncio
    async def test_handlers_run_in_subscription_order(self, event_bus):
        calls = []

        async def first(payload):
            calls.append("first")

        def second(payload):
            calls.append("second")

        async def third(payload):
            calls.append("third")

        event_bus.subscribe("topic", first)
        event_bus.subscribe("topic", second)
        event_bus.subscribe("topic", third)

        await event_bus.publish("topic", {})
        assert calls == ["first", "second", "third"]

    @pytest.mark.asyncio
    async def test_publish_waits_for_all_handlers(self, event_bus):
        finished = []

        async def slow(payload):
            for _ in range(5):
                await asyncio.sleep(0)
            finished.append(payload["n"])

        event_bus.subscribe("topic", slow)
        await event_bus.publish("topic", {"n": 1})
        assert finished == [1]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_siblings(self, event_bus):
        good = AsyncMock()

        async def bad(payload):
            raise RuntimeError("boom")

        def bad_sync(payload):
            raise ValueError("sync boom")

        event_bus.subscribe("topic", bad)
        event_bus.subscribe("topic", bad_sync)
        event_bus.subscribe("topic", good)

        await event_bus.publish("topic", {"value": 1})
        good.assert_awaited_once_with({"value": 1})

    @pytest.mark.asyncio
    async def test_handler_unsubscribing_during_publish(self, event_bus):
        calls = []

        def once(payload):
            calls.append("once")
            event_bus.unsubscribe("topic", once)

        def other(payload):
            calls.append("other")

        event_bus.subscribe("topic", once)
        event_bus.subscribe("topic", other)

        await event_bus.publish("topic", {})
        await event_bus.publish("topic", {})
        assert calls == ["once", "other", "other"]


class TestSubscriptionGroup:
    """Test grouped subscriptions."""

    def test_cleanup_unsubscribes_everything(self, event_bus):
        group = SubscriptionGroup(event_bus)
        group.subscribe("a", Mock())
        group.subscribe("b", Mock())
        assert group.count == 2

        group.cleanup()
        assert group.count == 0
        assert event_bus.topics() == []

    def test_cleanup_is_idempotent(self, event_bus):
        group = SubscriptionGroup(event_bus)
        group.subscribe("a", Mock())
        group.cleanup()
        group.cleanup()
        assert group.count == 0

    def test_cleanup_leaves_other_subscribers(self, event_bus):
        outsider = Mock()
        event_bus.subscribe("a", outsider)

        group = SubscriptionGroup(event_bus)
        group.subscribe("a", Mock())
        group.cleanup()

        assert event_bus.listener_count("a") == 1

    def test_duplicate_pair_tracked_once(self, event_bus):
        group = SubscriptionGroup(event_bus)
        handler = Mock()
        group.subscribe("a", handler)
        group.subscribe("a", handler)
        assert group.count == 1
        assert event_bus.listener_count("a") == 1
