"""Automatic recognition shortly after a listening session starts.

    session.started -> [enabled and configured?] -> [delay] -> [already recognised?] -> recognize()

The pending recognition is cancelled when its session ends first, and
skipped when a track was already recognised for that session (for example a
manual recognition during the delay).
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from ..events import topics
from ..events.event_bus import EventBus, SubscriptionGroup
from ..models.config import RecognitionConfig
from .recognition import RecognitionOrchestrator, RecognizeOptions

logger = logging.getLogger(__name__)


class AutoRecognitionService:
    """Schedules one automatic recognition per session."""

    def __init__(
        self,
        event_bus: EventBus,
        orchestrator: RecognitionOrchestrator,
        config: Optional[RecognitionConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.event_bus = event_bus
        self.orchestrator = orchestrator
        self.config = config or RecognitionConfig()
        self._sleep = sleep
        self._subscriptions = SubscriptionGroup(event_bus)
        self._running = False

        # Task still waiting out its delay; session changes may cancel it
        self._pending_task: Optional[asyncio.Task] = None
        self._pending_session_id: Optional[str] = None
        # Every scheduled task until it finishes, including running recognitions
        self._tasks: Set[asyncio.Task] = set()
        self._in_progress = 0
        self._recognized_sessions: Set[str] = set()

    def start(self) -> None:
        if self._running:
            logger.warning("AutoRecognitionService already running")
            return

        self._subscriptions.subscribe(topics.SESSION_STARTED, self._handle_session_started)
        self._subscriptions.subscribe(topics.SESSION_ENDED, self._handle_session_ended)
        self._subscriptions.subscribe(topics.TRACK_RECOGNIZED, self._handle_track_recognized)

        self._running = True
        logger.info("AutoRecognitionService started")

    async def stop(self) -> None:
        if not self._running:
            return

        self._cancel_pending()
        self._subscriptions.cleanup()

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            logger.info(f"Waiting for {len(tasks)} auto-recognition task(s) to finish")
            await asyncio.gather(*tasks, return_exceptions=True)

        self._recognized_sessions.clear()
        self._running = False
        logger.info("AutoRecognitionService stopped")

    async def destroy(self) -> None:
        await self.stop()

    async def _handle_session_started(self, payload: Dict[str, Any]) -> None:
        session_id = payload.get("session_id")
        if not session_id:
            return

        if not self.config.auto_on_session_start:
            logger.debug("Auto-recognition disabled, ignoring session start")
            return

        if not self.orchestrator.is_configured:
            logger.warning("Recognition not configured, skipping auto-recognition")
            return

        self._cancel_pending()
        self._recognized_sessions.discard(session_id)

        delay = self.config.auto_delay
        logger.info(f"Scheduling auto-recognition in {delay}s for session {session_id}")

        task = asyncio.get_running_loop().create_task(self._run_after_delay(session_id, delay))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        self._pending_session_id = session_id
        self._pending_task = task

    async def _handle_session_ended(self, payload: Dict[str, Any]) -> None:
        session_id = payload.get("session_id")

        if session_id is not None and session_id == self._pending_session_id:
            logger.info("Session ended before auto-recognition, cancelling")
            self._cancel_pending()

        self._recognized_sessions.discard(session_id)

    async def _handle_track_recognized(self, payload: Dict[str, Any]) -> None:
        session_id = payload.get("session_id")
        if session_id:
            logger.debug(f"Track recognised in session {session_id}")
            self._recognized_sessions.add(session_id)

    async def _run_after_delay(self, session_id: str, delay: float) -> None:
        await self._sleep(delay)

        # Past the delay only stop() cancels this task
        self._pending_task = None
        self._pending_session_id = None

        if session_id in self._recognized_sessions:
            logger.info("Session already has a recognised track, skipping auto-recognition")
            return

        logger.info(f"Running auto-recognition for session {session_id}")
        self._in_progress += 1
        try:
            result = await self.orchestrator.recognize(RecognizeOptions(
                sample_duration=self.config.sample_duration,
                trigger="automatic",
                session_id=session_id,
            ))
        finally:
            self._in_progress -= 1

        if result.is_success():
            track = result.value().track
            self._recognized_sessions.add(session_id)
            logger.info(f"Auto-recognition succeeded: '{track.title}' - {track.artist}")
        else:
            logger.warning(f"Auto-recognition failed: {result.error()}")

    def _cancel_pending(self) -> None:
        if self._pending_task is not None:
            self._pending_task.cancel()
            self._pending_task = None
        self._pending_session_id = None

    @property
    def is_running(self) -> bool:
        return self._running

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_running": self._running,
            "has_pending_recognition": self._pending_task is not None,
            "pending_session_id": self._pending_session_id,
            "recognitions_in_progress": self._in_progress,
        }
