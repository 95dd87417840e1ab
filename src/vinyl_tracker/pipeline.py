"""Composition root wiring the listening services around one event bus.

One ``ListeningPipeline`` per process replaces module-level singletons: it
owns the bus and every service subscribed to it.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from .core.auto_recognition import AutoRecognitionService
from .core.collection_matcher import CollectionMatcher
from .core.event_detector import EventDetector
from .core.event_persistence import EventPersistence
from .core.recognition import RecognitionOrchestrator, RecognitionOutcome, RecognizeOptions
from .core.session_manager import SessionManager
from .domain.ports import AudioFormat, AudioSource, FingerprintProvider, SampleEncoder
from .domain.repositories import Store
from .domain.result import Result
from .events import topics
from .events.event_bus import EventBus
from .events.topics import AudioLevel
from .infrastructure.audio import AudioRingBuffer, WavSampleEncoder
from .infrastructure.external import ACRCloudAdapter
from .models.config import Config

logger = logging.getLogger(__name__)


class ListeningPipeline:
    """Builds and runs the session, persistence, detection and recognition services.

    Services start in dependency order and stop in reverse, so an open
    session is closed while persistence is still listening and its
    ``session.ended`` is stored.
    """

    def __init__(
        self,
        config: Config,
        store: Store,
        audio_source: Optional[AudioSource] = None,
        provider: Optional[FingerprintProvider] = None,
        encoder: Optional[SampleEncoder] = None,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self.store = store
        self.event_bus = EventBus()

        self.audio_source = audio_source or AudioRingBuffer(
            duration_seconds=config.audio.buffer_seconds,
            audio_format=AudioFormat(
                sample_rate=config.audio.sample_rate,
                channels=config.audio.channels,
                sample_width=config.audio.sample_width,
            ),
        )
        self.provider = provider or ACRCloudAdapter.from_config(config.recognition)
        self.encoder = encoder or WavSampleEncoder(target_sample_rate=config.audio.target_sample_rate)

        self.session_manager = SessionManager(
            self.event_bus, store, config=config.session, clock=clock, sleep=sleep
        )
        self.event_persistence = EventPersistence(
            self.event_bus, store, session_manager=self.session_manager, clock=clock
        )
        self.event_detector = EventDetector(self.event_bus, config=config.detection)
        self.matcher = CollectionMatcher(store)
        self.recognition = RecognitionOrchestrator(
            audio_source=self.audio_source,
            provider=self.provider,
            encoder=self.encoder,
            store=store,
            event_bus=self.event_bus,
            matcher=self.matcher,
            session_manager=self.session_manager,
            config=config.recognition,
        )
        self.auto_recognition = AutoRecognitionService(
            self.event_bus, self.recognition, config=config.recognition, sleep=sleep
        )
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            logger.warning("ListeningPipeline already running")
            return

        self.event_persistence.start()
        self.session_manager.start()
        self.event_detector.start()
        self.auto_recognition.start()

        self._running = True
        logger.info("ListeningPipeline started")

    async def stop(self) -> None:
        if not self._running:
            logger.warning("ListeningPipeline not running")
            return

        await self.auto_recognition.stop()
        await self.event_detector.stop()
        await self.session_manager.stop()
        await self.event_persistence.stop()

        close = getattr(self.provider, "close", None)
        if close is not None:
            await close()

        self._running = False
        logger.info("ListeningPipeline stopped")

    async def publish_level(self, level_db: float) -> None:
        """Feed one measured input level into the bus."""
        await self.event_bus.publish(topics.AUDIO_LEVEL, AudioLevel(level_db=level_db).to_payload())

    async def recognize(
        self,
        sample_duration: Optional[float] = None,
        trigger: str = "manual",
        session_id: Optional[str] = None,
    ) -> Result[RecognitionOutcome, Exception]:
        return await self.recognition.recognize(RecognizeOptions(
            sample_duration=sample_duration or self.config.recognition.sample_duration,
            trigger=trigger,
            session_id=session_id,
        ))

    async def confirm_track_album(self, track_id: str, album_id: Optional[str]):
        return await self.recognition.confirm_track_album(track_id, album_id)

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_running": self._running,
            "session": self.session_manager.get_status(),
            "persistence": self.event_persistence.get_stats(),
            "detector": self.event_detector.get_status(),
            "auto_recognition": self.auto_recognition.get_status(),
            "recognition_configured": self.recognition.is_configured,
            "listeners": {topic: self.event_bus.listener_count(topic) for topic in self.event_bus.topics()},
        }

    async def __aenter__(self) -> "ListeningPipeline":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._running:
            await self.stop()
