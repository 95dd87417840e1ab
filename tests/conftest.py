"""Shared fixtures: a virtual clock, an event recorder and in-memory collaborators."""

import asyncio
from collections import defaultdict
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from vinyl_tracker.domain.entities import RecognitionSource
from vinyl_tracker.domain.ports import (
    AudioFormat,
    AudioSource,
    EncodedSample,
    FingerprintProvider,
    RecognizedMusic,
    SampleEncoder,
)
from vinyl_tracker.events.event_bus import EventBus
from vinyl_tracker.infrastructure.repositories import InMemoryStore


async def drain(iterations: int = 20) -> None:
    """Let pending tasks run until they block again."""
    for _ in range(iterations):
        await asyncio.sleep(0)


class VirtualClock:
    """Controllable wall clock and sleep for timer-driven tests.

    ``sleep`` blocks until ``advance`` moves virtual time past its deadline;
    no real time passes.
    """

    def __init__(self, start: datetime = datetime(2024, 3, 1, 20, 0, 0)):
        self._now = start
        self._sleepers: List[tuple] = []

    def now(self) -> datetime:
        return self._now

    async def sleep(self, seconds: float) -> None:
        future = asyncio.get_running_loop().create_future()
        self._sleepers.append((self._now + timedelta(seconds=seconds), future))
        await future

    @property
    def pending_sleepers(self) -> int:
        return sum(1 for _, future in self._sleepers if not future.done())

    async def advance(self, seconds: float) -> None:
        target = self._now + timedelta(seconds=seconds)
        await drain()

        while True:
            due = sorted(
                (entry for entry in self._sleepers if entry[0] <= target and not entry[1].done()),
                key=lambda entry: entry[0],
            )
            if not due:
                break
            deadline, future = due[0]
            self._now = deadline
            future.set_result(None)
            await drain()

        self._sleepers = [entry for entry in self._sleepers if not entry[1].done()]
        self._now = target
        await drain()


class Recorder:
    """Subscribes to topics and keeps every payload it receives."""

    def __init__(self, bus: EventBus, *topics: str):
        self.received: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for topic in topics:
            bus.subscribe(topic, self._handler_for(topic))

    def _handler_for(self, topic: str):
        async def handler(payload: Dict[str, Any]) -> None:
            self.received[topic].append(payload)
        return handler

    def __getitem__(self, topic: str) -> List[Dict[str, Any]]:
        return self.received[topic]


class FakeAudioSource(AudioSource):
    def __init__(self, available: float = 30.0, fail: bool = False):
        self.available = available
        self.fail = fail
        self.requested = []

    @property
    def audio_format(self) -> AudioFormat:
        return AudioFormat(sample_rate=8000, channels=1, sample_width=2)

    def get_available_seconds(self) -> float:
        return self.available

    def capture_sample(self, seconds: float) -> bytes:
        self.requested.append(seconds)
        if self.fail:
            raise OSError("device unplugged")
        return b"\x00\x01" * int(seconds * 8000)


class FakeEncoder(SampleEncoder):
    def __init__(self, directory: Path, fail: bool = False):
        self.directory = directory
        self.fail = fail
        self.samples = []

    def encode(self, raw: bytes, audio_format: AudioFormat) -> EncodedSample:
        if self.fail:
            raise RuntimeError("codec exploded")
        path = self.directory / f"sample-{len(self.samples)}.wav"
        path.write_bytes(raw[:64])
        sample = EncodedSample(path=path, duration_seconds=1.0, sample_rate=44100)
        self.samples.append(sample)
        return sample


class FakeProvider(FingerprintProvider):
    def __init__(self, music: Optional[RecognizedMusic] = None, error: Optional[Exception] = None,
                 configured: bool = True):
        self.music = music
        self.error = error
        self.configured = configured
        self.calls = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    @property
    def source(self) -> RecognitionSource:
        return RecognitionSource.ACRCLOUD

    async def identify(self, sample_path: Path) -> Optional[RecognizedMusic]:
        self.calls.append(sample_path)
        assert sample_path.exists()
        if self.error:
            raise self.error
        return self.music


COME_TOGETHER = RecognizedMusic(
    title="Come Together",
    artist="The Beatles",
    source=RecognitionSource.ACRCLOUD,
    album="Abbey Road",
    year=1969,
    album_art_url="https://covers.example/abbey.jpg",
    duration_seconds=259,
    confidence=0.95,
    isrc="GBAYE0601690",
    provider_id="acr-123",
)



@pytest.fixture
def clock():
    return VirtualClock()


@pytest.fixture
def event_bus():
    """Create fresh event bus for each test."""
    bus = EventBus()
    yield bus
    bus.clear()


@pytest.fixture
def store():
    return InMemoryStore()
