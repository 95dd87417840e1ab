"""Session lifecycle management.

A session is one continuous period of turntable use:

    idle --[audio.level above threshold]--> active
      ^                                       |
      +---[silence timeout / shutdown]--------+

``silence.detected`` arms a cancelable timeout (default 30 minutes),
``silence.ended`` disarms it. When the timeout fires the session is closed,
persisted and announced with ``session.ended``.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from ..domain.entities import ActiveSessionInfo, SessionState
from ..domain.repositories import Store
from ..events import topics
from ..events.event_bus import EventBus, SubscriptionGroup
from ..events.topics import AudioLevel, SessionEnded, SessionStarted
from ..models.config import SessionConfig

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
Sleep = Callable[[float], Awaitable[Any]]


class SessionManager:
    """Tracks listening sessions from audio-level and silence events.

    The manager is the only writer of its session state. Event persistence
    reads the current session id and bumps the event counter through
    ``get_current_session_id`` and ``increment_event_count``.
    """

    def __init__(
        self,
        event_bus: EventBus,
        store: Store,
        config: Optional[SessionConfig] = None,
        clock: Clock = datetime.now,
        sleep: Sleep = asyncio.sleep,
    ):
        self.event_bus = event_bus
        self.store = store
        self.config = config or SessionConfig()
        self._clock = clock
        self._sleep = sleep
        self._subscriptions = SubscriptionGroup(event_bus)
        self._running = False

        self._state = SessionState.IDLE
        self._current_session_id: Optional[str] = None
        self._session_start_time: Optional[datetime] = None
        self._event_count = 0
        self._opening = False
        self._closing = False

        self._timeout_task: Optional[asyncio.Task] = None

        logger.info(
            f"SessionManager initialized: timeout={self.config.session_timeout}s, "
            f"threshold={self.config.audio_threshold}dB"
        )

    def start(self) -> None:
        """Subscribe to audio and silence events."""
        if self._running:
            logger.warning("SessionManager already running")
            return

        self._subscriptions.subscribe(topics.AUDIO_LEVEL, self._handle_audio_level)
        self._subscriptions.subscribe(topics.SILENCE_DETECTED, self._handle_silence_detected)
        self._subscriptions.subscribe(topics.SILENCE_ENDED, self._handle_silence_ended)

        self._running = True
        logger.info("SessionManager started")

    async def stop(self) -> None:
        """Close any active session and unsubscribe."""
        if not self._running:
            logger.warning("SessionManager not running")
            return

        if self._state is SessionState.ACTIVE:
            await self._end_session("shutdown")

        self._clear_timeout_timer()
        self._subscriptions.cleanup()
        self._running = False
        logger.info("SessionManager stopped")

    async def destroy(self) -> None:
        await self.stop()

    # Event handlers

    async def _handle_audio_level(self, payload: Dict[str, Any]) -> None:
        if not self._running:
            return

        level = AudioLevel.from_payload(payload)
        if self._state is SessionState.IDLE and level.level_db > self.config.audio_threshold:
            await self._start_session()

    async def _handle_silence_detected(self, payload: Dict[str, Any]) -> None:
        if not self._running or self._state is not SessionState.ACTIVE:
            return

        logger.debug("Silence detected, arming session timeout")
        self._arm_timeout_timer()

    async def _handle_silence_ended(self, payload: Dict[str, Any]) -> None:
        if not self._running:
            return

        if self._timeout_task is not None:
            logger.debug("Silence ended, cancelling session timeout")
            self._clear_timeout_timer()

    # Transitions

    async def _start_session(self) -> None:
        if self._state is SessionState.ACTIVE or self._opening:
            return

        self._opening = True
        try:
            session = await self.store.create_session(self._clock())
        except Exception as e:
            logger.error(f"Failed to start session: {e}")
            return
        finally:
            self._opening = False

        self._current_session_id = session.id
        self._session_start_time = session.started_at
        self._event_count = 0
        self._state = SessionState.ACTIVE
        logger.info(f"Session started: {session.id}")

        await self.event_bus.publish(
            topics.SESSION_STARTED,
            SessionStarted(
                session_id=session.id,
                timestamp=session.started_at.isoformat(),
            ).to_payload(),
        )

    async def _end_session(self, reason: str = "timeout") -> None:
        if (
            self._state is not SessionState.ACTIVE
            or self._closing
            or self._current_session_id is None
            or self._session_start_time is None
        ):
            logger.warning("Attempted to end session while not active")
            return

        self._closing = True
        session_id = self._current_session_id
        end_time = self._clock()
        duration_seconds = int((end_time - self._session_start_time).total_seconds())
        event_count = self._event_count

        try:
            await self.store.update_session(
                session_id,
                ended_at=end_time,
                duration_seconds=duration_seconds,
                event_count=event_count,
            )
            logger.info(
                f"Session ended: {session_id} (duration: {duration_seconds}s, "
                f"events: {event_count}, reason: {reason})"
            )
        except Exception as e:
            # The in-memory state still goes idle so a broken store cannot wedge the machine
            logger.error(f"Failed to persist end of session {session_id}: {e}")

        try:
            await self.event_bus.publish(
                topics.SESSION_ENDED,
                SessionEnded(
                    session_id=session_id,
                    timestamp=end_time.isoformat(),
                    duration_seconds=duration_seconds,
                    event_count=event_count,
                ).to_payload(),
            )
        finally:
            self._current_session_id = None
            self._session_start_time = None
            self._event_count = 0
            self._state = SessionState.IDLE
            self._closing = False
            self._clear_timeout_timer()

    # Timeout timer

    def _arm_timeout_timer(self) -> None:
        """(Re)start the silence timeout. Any pending timer is cancelled first."""
        self._clear_timeout_timer()
        timeout = self.config.session_timeout
        self._timeout_task = asyncio.get_running_loop().create_task(self._run_timeout(timeout))

    async def _run_timeout(self, timeout: float) -> None:
        await self._sleep(timeout)
        # Detach before closing so _end_session does not cancel the running task
        self._timeout_task = None
        logger.info(f"Session timeout reached ({timeout}s of silence)")
        await self._end_session("timeout")

    def _clear_timeout_timer(self) -> None:
        """Cancel the pending timeout, if any. Safe to call redundantly."""
        if self._timeout_task is not None:
            self._timeout_task.cancel()
            self._timeout_task = None

    # Public API

    def increment_event_count(self) -> None:
        """Count one persisted event against the active session."""
        if self._state is SessionState.ACTIVE:
            self._event_count += 1

    def get_current_session_id(self) -> Optional[str]:
        return self._current_session_id

    def get_active_session(self) -> Optional[ActiveSessionInfo]:
        """Snapshot of the active session with a live duration, or None when idle."""
        if (
            self._state is not SessionState.ACTIVE
            or self._current_session_id is None
            or self._session_start_time is None
        ):
            return None

        duration = int((self._clock() - self._session_start_time).total_seconds())
        return ActiveSessionInfo(
            id=self._current_session_id,
            started_at=self._session_start_time,
            duration_seconds=duration,
            event_count=self._event_count,
        )

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def has_pending_timeout(self) -> bool:
        return self._timeout_task is not None

    @property
    def session_timeout(self) -> float:
        return self.config.session_timeout

    def set_session_timeout(self, timeout: float) -> None:
        """Change the silence timeout; a pending timer restarts with the new value."""
        self.config.session_timeout = timeout
        logger.info(f"Session timeout updated to {timeout}s")

        if self._timeout_task is not None and self._state is SessionState.ACTIVE:
            self._arm_timeout_timer()

    @property
    def audio_threshold(self) -> float:
        return self.config.audio_threshold

    def set_audio_threshold(self, threshold: float) -> None:
        self.config.audio_threshold = threshold
        logger.info(f"Audio threshold updated to {threshold}dB")

    def get_config(self) -> SessionConfig:
        return SessionConfig(
            session_timeout=self.config.session_timeout,
            audio_threshold=self.config.audio_threshold,
        )

    def get_status(self) -> Dict[str, Any]:
        """Full status for diagnostics."""
        active = self.get_active_session()
        return {
            "is_running": self._running,
            "state": self._state.value,
            "active_session": active.to_dict() if active else None,
            "config": {
                "session_timeout": self.config.session_timeout,
                "audio_threshold": self.config.audio_threshold,
            },
        }
