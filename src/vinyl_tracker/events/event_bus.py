"""
Event Bus - In-process publish/subscribe.

Topics are free-form strings ("audio.level", "session.started", ...) and
payloads are plain dictionaries interpreted only by subscribers.

``publish`` awaits every handler subscribed to the topic, one after another in
subscription order, and returns once all of them have completed or failed.
A failing handler is logged and never stops its siblings or reaches the
publisher.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

Payload = Dict[str, Any]
EventHandler = Callable[[Payload], Union[None, Awaitable[None]]]


class EventBus:
    """
    Central event bus for publishing and subscribing to topics.

    Handlers may be plain functions or coroutine functions.
    """

    def __init__(self, max_listeners_per_topic: int = 50, warn_listeners_at: int = 10):
        self._handlers: Dict[str, List[EventHandler]] = {}
        self.max_listeners_per_topic = max_listeners_per_topic
        self.warn_listeners_at = warn_listeners_at

    def subscribe(self, topic: str, handler: EventHandler) -> None:
        """
        Subscribe a handler to a topic.

        Subscribing the same handler twice to one topic is ignored.

        Raises:
            ValueError: If the topic already has the maximum number of handlers.
        """
        handlers = self._handlers.setdefault(topic, [])

        if handler in handlers:
            logger.warning(f"Handler already registered for '{topic}', ignoring duplicate")
            return

        if len(handlers) >= self.max_listeners_per_topic:
            message = (
                f"Too many listeners ({len(handlers)}) for '{topic}'. "
                f"Maximum allowed: {self.max_listeners_per_topic}. "
                "Check that components unsubscribe when they stop."
            )
            logger.error(message)
            raise ValueError(message)

        if len(handlers) >= self.warn_listeners_at:
            logger.warning(
                f"Topic '{topic}' has {len(handlers)} listeners. "
                "If this keeps growing, subscribers are not being cleaned up."
            )

        handlers.append(handler)
        logger.debug(f"Subscribed to '{topic}' (total: {len(handlers)})")

    def unsubscribe(self, topic: str, handler: EventHandler) -> None:
        """Remove a handler from a topic. Unknown handlers are ignored."""
        handlers = self._handlers.get(topic)
        if not handlers or handler not in handlers:
            logger.warning(f"Handler not found for '{topic}'")
            return

        handlers.remove(handler)
        logger.debug(f"Unsubscribed from '{topic}' (remaining: {len(handlers)})")
        if not handlers:
            del self._handlers[topic]

    async def publish(self, topic: str, payload: Optional[Payload] = None) -> None:
        """
        Publish a payload to every handler of a topic.

        Args:
            topic: Topic name
            payload: Plain dictionary payload
        """
        if payload is None:
            payload = {}

        # Snapshot so handlers may (un)subscribe while we iterate
        handlers = list(self._handlers.get(topic, ()))
        if not handlers:
            logger.debug(f"No listeners for '{topic}'")
            return

        logger.debug(f"Publishing '{topic}' to {len(handlers)} listener(s)")
        for handler in handlers:
            await self._safe_handle(topic, handler, payload)

    async def _safe_handle(self, topic: str, handler: EventHandler, payload: Payload) -> None:
        """Run a handler, logging instead of raising on failure."""
        try:
            result = handler(payload)
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.exception(f"Handler error for '{topic}' in {handler!r}")

    def listener_count(self, topic: str) -> int:
        """Number of handlers subscribed to a topic."""
        return len(self._handlers.get(topic, ()))

    def topics(self) -> List[str]:
        """Topics that currently have handlers."""
        return list(self._handlers)

    def clear(self) -> None:
        """Remove all handlers."""
        self._handlers.clear()
        logger.debug("All listeners cleared")

    def debug_report(self) -> str:
        """Listener counts per topic, for diagnosing leaked subscriptions."""
        lines = ["EventBus listeners:"]
        if not self._handlers:
            lines.append("  No listeners registered")
            return "\n".join(lines)

        for topic, handlers in self._handlers.items():
            lines.append(f"  {topic}: {len(handlers)} listener(s)")
        total = sum(len(handlers) for handlers in self._handlers.values())
        lines.append(f"  Total: {total} listener(s) across {len(self._handlers)} topic(s)")
        return "\n".join(lines)


class SubscriptionGroup:
    """
    Tracks subscriptions made on behalf of one component.

    A single ``cleanup()`` unsubscribes everything the group subscribed,
    so components can stop without keeping handler references themselves.
    """

    def __init__(self, bus: EventBus):
        self._bus = bus
        self._subscriptions: List[Tuple[str, EventHandler]] = []

    def subscribe(self, topic: str, handler: EventHandler) -> None:
        if (topic, handler) in self._subscriptions:
            return
        self._bus.subscribe(topic, handler)
        self._subscriptions.append((topic, handler))

    def cleanup(self) -> None:
        """Unsubscribe all tracked handlers. Idempotent."""
        for topic, handler in self._subscriptions:
            self._bus.unsubscribe(topic, handler)
        self._subscriptions.clear()

    @property
    def count(self) -> int:
        return len(self._subscriptions)
