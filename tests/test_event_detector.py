"""Tests for silence and clipping detection."""

import pytest

from vinyl_tracker.core.event_detector import SILENT_FLOOR_DB, EventDetector
from vinyl_tracker.events import topics
from vinyl_tracker.models.config import DetectionConfig

from conftest import Recorder


class FakeTime:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def recorder(event_bus):
    return Recorder(event_bus, topics.SILENCE_DETECTED, topics.SILENCE_ENDED, topics.CLIPPING_DETECTED)


@pytest.fixture
def detector(event_bus, fake_time):
    detector = EventDetector(
        event_bus,
        DetectionConfig(silence_threshold=-50.0, silence_duration=10.0, clipping_threshold=-1.0),
        clock=fake_time,
    )
    detector.start()
    return detector


async def level(bus, level_db):
    await bus.publish(topics.AUDIO_LEVEL, {"level_db": level_db})


class TestSilence:

    @pytest.mark.asyncio
    async def test_silence_detected_once_after_duration(self, detector, event_bus, fake_time, recorder):
        await level(event_bus, -60)
        fake_time.now += 5
        await level(event_bus, -61)
        assert recorder[topics.SILENCE_DETECTED] == []
        assert not detector.get_silence_status()

        fake_time.now += 5
        await level(event_bus, -62)
        fake_time.now += 5
        await level(event_bus, -63)

        detected = recorder[topics.SILENCE_DETECTED]
        assert len(detected) == 1
        assert detected[0]["level_db"] == -62
        assert detected[0]["duration"] == pytest.approx(10.0)
        assert detected[0]["threshold"] == -50.0
        assert detector.get_silence_status()

    @pytest.mark.asyncio
    async def test_silence_ended_after_confirmed_silence(self, detector, event_bus, fake_time, recorder):
        await level(event_bus, -60)
        fake_time.now += 12
        await level(event_bus, -60)
        fake_time.now += 3
        await level(event_bus, -20)

        ended = recorder[topics.SILENCE_ENDED]
        assert len(ended) == 1
        assert ended[0]["level_db"] == -20
        assert ended[0]["silence_duration"] == pytest.approx(15.0)
        assert not detector.get_silence_status()

    @pytest.mark.asyncio
    async def test_short_dip_emits_nothing(self, detector, event_bus, fake_time, recorder):
        await level(event_bus, -60)
        fake_time.now += 4
        await level(event_bus, -20)

        assert recorder[topics.SILENCE_DETECTED] == []
        assert recorder[topics.SILENCE_ENDED] == []

    @pytest.mark.asyncio
    async def test_threshold_level_is_not_silent(self, detector, event_bus, fake_time, recorder):
        await level(event_bus, -50)
        fake_time.now += 30
        await level(event_bus, -50)
        assert recorder[topics.SILENCE_DETECTED] == []

    @pytest.mark.asyncio
    async def test_second_silent_period_is_detected_again(self, detector, event_bus, fake_time, recorder):
        for _ in range(2):
            await level(event_bus, -70)
            fake_time.now += 10
            await level(event_bus, -70)
            await level(event_bus, -10)
            fake_time.now += 1

        assert len(recorder[topics.SILENCE_DETECTED]) == 2
        assert len(recorder[topics.SILENCE_ENDED]) == 2


class TestClipping:

    @pytest.mark.asyncio
    async def test_every_loud_level_is_reported(self, detector, event_bus, recorder):
        await level(event_bus, -0.5)
        await level(event_bus, -10)
        await level(event_bus, 0.0)

        clipping = recorder[topics.CLIPPING_DETECTED]
        assert [event["count"] for event in clipping] == [1, 2]
        assert clipping[0]["level_db"] == -0.5
        assert clipping[0]["threshold"] == -1.0
        assert detector.get_clipping_count() == 2

    @pytest.mark.asyncio
    async def test_threshold_level_is_not_clipping(self, detector, event_bus, recorder):
        await level(event_bus, -1.0)
        assert recorder[topics.CLIPPING_DETECTED] == []


class TestLifecycle:

    def test_initial_state(self, event_bus):
        detector = EventDetector(event_bus)
        assert not detector.is_running
        assert detector.get_last_level_db() == SILENT_FLOOR_DB
        assert detector.get_clipping_count() == 0

    @pytest.mark.asyncio
    async def test_tracks_last_level(self, detector, event_bus):
        await level(event_bus, -33.5)
        assert detector.get_last_level_db() == -33.5

    @pytest.mark.asyncio
    async def test_stop_resets_and_unsubscribes(self, detector, event_bus, recorder):
        await level(event_bus, 0)
        await detector.stop()

        assert detector.get_clipping_count() == 0
        assert event_bus.listener_count(topics.AUDIO_LEVEL) == 0

        await level(event_bus, 0)
        assert len(recorder[topics.CLIPPING_DETECTED]) == 1

    @pytest.mark.asyncio
    async def test_start_and_stop_are_idempotent(self, detector, event_bus):
        detector.start()
        assert event_bus.listener_count(topics.AUDIO_LEVEL) == 1

        await detector.destroy()
        await detector.stop()
        assert not detector.is_running

    @pytest.mark.asyncio
    async def test_setters_apply_to_next_level(self, detector, event_bus, fake_time, recorder):
        detector.set_clipping_threshold(-6.0)
        detector.set_silence_threshold(-40.0)
        detector.set_silence_duration(2.0)

        await level(event_bus, -3)
        await level(event_bus, -45)
        fake_time.now += 2
        await level(event_bus, -45)

        assert len(recorder[topics.CLIPPING_DETECTED]) == 1
        assert len(recorder[topics.SILENCE_DETECTED]) == 1

        status = detector.get_status()
        assert status["config"] == {
            "silence_threshold": -40.0,
            "silence_duration": 2.0,
            "clipping_threshold": -6.0,
        }
        assert status["is_silent"] is True
