"""Silence and clipping detection from the stream of audio levels.

Consumes ``audio.level`` and produces:

- ``silence.detected`` once per silent period, when the level stays below the
  silence threshold for at least the configured duration
- ``silence.ended`` when audio returns after a confirmed silence
- ``clipping.detected`` for every level above the clipping threshold
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

from ..events import topics
from ..events.event_bus import EventBus, SubscriptionGroup
from ..events.topics import AudioLevel, ClippingDetected, SilenceDetected, SilenceEnded
from ..models.config import DetectionConfig

logger = logging.getLogger(__name__)

SILENT_FLOOR_DB = -100.0


class EventDetector:
    """Turns raw audio levels into silence and clipping events."""

    def __init__(
        self,
        event_bus: EventBus,
        config: Optional[DetectionConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.event_bus = event_bus
        self.config = config or DetectionConfig()
        self._clock = clock
        self._subscriptions = SubscriptionGroup(event_bus)
        self._running = False

        self._is_silent = False
        self._silence_start: Optional[float] = None
        self._silence_emitted = False
        self._last_level_db = SILENT_FLOOR_DB
        self._clipping_count = 0

        logger.info(
            f"EventDetector initialized: silence.threshold={self.config.silence_threshold}dB, "
            f"silence.duration={self.config.silence_duration}s, "
            f"clipping.threshold={self.config.clipping_threshold}dB"
        )

    def start(self) -> None:
        if self._running:
            logger.warning("EventDetector already running")
            return

        self._subscriptions.subscribe(topics.AUDIO_LEVEL, self._handle_audio_level)
        self._running = True
        self._reset_state()
        logger.info("EventDetector started")

    async def stop(self) -> None:
        if not self._running:
            logger.warning("EventDetector not running")
            return

        self._running = False
        self._subscriptions.cleanup()
        self._reset_state()
        logger.info("EventDetector stopped")

    async def destroy(self) -> None:
        await self.stop()

    async def _handle_audio_level(self, payload: Dict[str, Any]) -> None:
        if not self._running:
            return

        level_db = AudioLevel.from_payload(payload).level_db
        now = self._clock()
        self._last_level_db = level_db

        if level_db > self.config.clipping_threshold:
            self._clipping_count += 1
            await self._emit_clipping_detected(level_db)

        if level_db < self.config.silence_threshold:
            if self._silence_start is None:
                self._silence_start = now
                logger.debug(f"Silence started at level {level_db:.1f}dB")

            silence_duration = now - self._silence_start
            if silence_duration >= self.config.silence_duration and not self._silence_emitted:
                self._is_silent = True
                self._silence_emitted = True
                await self._emit_silence_detected(level_db, silence_duration)
        elif self._silence_start is not None:
            silence_duration = now - self._silence_start
            if self._silence_emitted:
                await self._emit_silence_ended(level_db, silence_duration)

            self._silence_start = None
            self._is_silent = False
            self._silence_emitted = False
            logger.debug(f"Audio returned at level {level_db:.1f}dB")

    async def _emit_clipping_detected(self, level_db: float) -> None:
        logger.warning(
            f"Clipping detected: level={level_db:.1f}dB, "
            f"threshold={self.config.clipping_threshold}dB, count={self._clipping_count}"
        )
        await self.event_bus.publish(
            topics.CLIPPING_DETECTED,
            ClippingDetected(
                level_db=level_db,
                threshold=self.config.clipping_threshold,
                count=self._clipping_count,
            ).to_payload(),
        )

    async def _emit_silence_detected(self, level_db: float, duration: float) -> None:
        logger.info(
            f"Silence detected: level={level_db:.1f}dB, duration={duration:.1f}s, "
            f"threshold={self.config.silence_threshold}dB"
        )
        await self.event_bus.publish(
            topics.SILENCE_DETECTED,
            SilenceDetected(
                level_db=level_db,
                duration=duration,
                threshold=self.config.silence_threshold,
            ).to_payload(),
        )

    async def _emit_silence_ended(self, level_db: float, silence_duration: float) -> None:
        logger.info(f"Silence ended: level={level_db:.1f}dB, was silent for {silence_duration:.1f}s")
        await self.event_bus.publish(
            topics.SILENCE_ENDED,
            SilenceEnded(level_db=level_db, silence_duration=silence_duration).to_payload(),
        )

    def _reset_state(self) -> None:
        self._is_silent = False
        self._silence_start = None
        self._silence_emitted = False
        self._last_level_db = SILENT_FLOOR_DB
        self._clipping_count = 0

    # Public API

    @property
    def is_running(self) -> bool:
        return self._running

    def get_silence_status(self) -> bool:
        """True while a confirmed silence is in progress."""
        return self._is_silent

    def get_last_level_db(self) -> float:
        return self._last_level_db

    def get_clipping_count(self) -> int:
        """Clipping events seen since the detector was started."""
        return self._clipping_count

    def set_silence_threshold(self, threshold: float) -> None:
        self.config.silence_threshold = threshold
        logger.info(f"Silence threshold updated to {threshold}dB")

    def set_silence_duration(self, duration: float) -> None:
        self.config.silence_duration = duration
        logger.info(f"Silence duration updated to {duration}s")

    def set_clipping_threshold(self, threshold: float) -> None:
        self.config.clipping_threshold = threshold
        logger.info(f"Clipping threshold updated to {threshold}dB")

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_running": self._running,
            "is_silent": self._is_silent,
            "last_level_db": self._last_level_db,
            "clipping_count": self._clipping_count,
            "config": {
                "silence_threshold": self.config.silence_threshold,
                "silence_duration": self.config.silence_duration,
                "clipping_threshold": self.config.clipping_threshold,
            },
        }
