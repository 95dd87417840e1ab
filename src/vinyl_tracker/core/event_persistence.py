"""Durable log of domain events published on the bus.

Persistence is fire-and-forget: a failed write is logged and counted, never
retried, and never propagated back to the publisher.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple, TYPE_CHECKING

from ..domain.entities import AudioEvent, EventType
from ..domain.repositories import Store
from ..events import topics
from ..events.event_bus import EventBus, SubscriptionGroup

if TYPE_CHECKING:
    from .session_manager import SessionManager

logger = logging.getLogger(__name__)

SILENCE_DETECTED_FIELDS = ("level_db", "duration", "threshold")
SILENCE_ENDED_FIELDS = ("level_db", "silence_duration")
CLIPPING_DETECTED_FIELDS = ("level_db", "threshold", "count")


def _project(payload: Dict[str, Any], keys: Tuple[str, ...]) -> Dict[str, Any]:
    """Keep only ``keys`` from a payload; missing keys are stored as None."""
    return {key: payload.get(key) for key in keys}


class EventPersistence:
    """Subscribes to audio and lifecycle topics and stores them as events.

    Events are tagged with the active session id, taken from an attached
    SessionManager when available and otherwise from the id observed on
    ``session.started`` / ``session.ended``.
    """

    def __init__(
        self,
        event_bus: EventBus,
        store: Store,
        session_manager: Optional["SessionManager"] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.event_bus = event_bus
        self.store = store
        self._session_manager = session_manager
        self._clock = clock
        self._subscriptions = SubscriptionGroup(event_bus)
        self._running = False
        self._current_session_id: Optional[str] = None
        self.persisted_count = 0
        self.error_count = 0

    def start(self) -> None:
        """Subscribe to every persisted topic."""
        if self._running:
            logger.warning("EventPersistence already running")
            return

        self._subscriptions.subscribe(topics.SILENCE_DETECTED, self._handle_silence_detected)
        self._subscriptions.subscribe(topics.SILENCE_ENDED, self._handle_silence_ended)
        self._subscriptions.subscribe(topics.CLIPPING_DETECTED, self._handle_clipping_detected)
        self._subscriptions.subscribe(topics.SESSION_STARTED, self._handle_session_started)
        self._subscriptions.subscribe(topics.SESSION_ENDED, self._handle_session_ended)
        self._subscriptions.subscribe(topics.TRACK_CHANGE_DETECTED, self._handle_track_change)

        self._running = True
        logger.info("EventPersistence started")

    async def stop(self) -> None:
        if not self._running:
            logger.warning("EventPersistence not running")
            return

        self._running = False
        self._subscriptions.cleanup()
        logger.info(
            f"EventPersistence stopped (persisted: {self.persisted_count}, "
            f"errors: {self.error_count})"
        )

    async def destroy(self) -> None:
        await self.stop()

    # Handlers: fixed metadata projection per topic

    async def _handle_silence_detected(self, payload: Dict[str, Any]) -> None:
        await self._persist_event(EventType.SILENCE_DETECTED, _project(payload, SILENCE_DETECTED_FIELDS))

    async def _handle_silence_ended(self, payload: Dict[str, Any]) -> None:
        await self._persist_event(EventType.SILENCE_ENDED, _project(payload, SILENCE_ENDED_FIELDS))

    async def _handle_clipping_detected(self, payload: Dict[str, Any]) -> None:
        await self._persist_event(EventType.CLIPPING_DETECTED, _project(payload, CLIPPING_DETECTED_FIELDS))

    async def _handle_session_started(self, payload: Dict[str, Any]) -> None:
        session_id = payload.get("session_id")
        if session_id:
            self._current_session_id = session_id
            logger.info(f"Session started: {session_id}")
        await self._persist_event(EventType.SESSION_STARTED, dict(payload))

    async def _handle_session_ended(self, payload: Dict[str, Any]) -> None:
        await self._persist_event(EventType.SESSION_ENDED, dict(payload))
        self._current_session_id = None
        logger.info("Session ended")

    async def _handle_track_change(self, payload: Dict[str, Any]) -> None:
        await self._persist_event(EventType.TRACK_CHANGE_DETECTED, dict(payload))

    async def _persist_event(self, event_type: EventType, metadata: Dict[str, Any]) -> None:
        if not self._running:
            return

        session_id = self._resolve_session_id()

        try:
            await self.store.insert_event(AudioEvent(
                event_type=event_type,
                session_id=session_id,
                timestamp=self._clock(),
                metadata=metadata,
            ))
        except Exception as e:
            self.error_count += 1
            logger.error(f"Failed to persist event {event_type.value}: {e}")
            return

        self.persisted_count += 1
        if self._session_manager is not None and session_id:
            self._session_manager.increment_event_count()

        logger.debug(f"Persisted event: {event_type.value} (session: {session_id or 'none'})")

    def _resolve_session_id(self) -> Optional[str]:
        if self._session_manager is not None:
            session_id = self._session_manager.get_current_session_id()
            if session_id is not None:
                return session_id
        return self._current_session_id

    # Public API

    @property
    def is_running(self) -> bool:
        return self._running

    def get_stats(self) -> Dict[str, Any]:
        return {
            "is_running": self._running,
            "persisted_count": self.persisted_count,
            "error_count": self.error_count,
            "current_session_id": self._current_session_id,
            "subscription_count": self._subscriptions.count,
        }

    def get_current_session_id(self) -> Optional[str]:
        return self._current_session_id

    def set_current_session_id(self, session_id: Optional[str]) -> None:
        """Set the fallback session id manually (tests or external session tracking)."""
        self._current_session_id = session_id
        if session_id:
            logger.info(f"Session ID set: {session_id}")
        else:
            logger.info("Session ID cleared")

    def set_session_manager(self, session_manager: "SessionManager") -> None:
        self._session_manager = session_manager
        logger.info("SessionManager connected")
