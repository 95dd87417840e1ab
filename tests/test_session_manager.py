"""Tests for the listening session state machine."""

import asyncio

import pytest
from hypothesis import given, settings, strategies as st
from unittest.mock import AsyncMock

from vinyl_tracker.core.session_manager import SessionManager
from vinyl_tracker.domain.entities import SessionState
from vinyl_tracker.events import topics
from vinyl_tracker.events.event_bus import EventBus
from vinyl_tracker.exceptions import StoreError
from vinyl_tracker.infrastructure.repositories import InMemoryStore
from vinyl_tracker.models.config import SessionConfig

from conftest import Recorder, VirtualClock, drain


@pytest.fixture
def recorder(event_bus):
    return Recorder(event_bus, topics.SESSION_STARTED, topics.SESSION_ENDED)


@pytest.fixture
def manager(event_bus, store, clock):
    manager = SessionManager(
        event_bus,
        store,
        config=SessionConfig(session_timeout=1800, audio_threshold=-50.0),
        clock=clock.now,
        sleep=clock.sleep,
    )
    manager.start()
    return manager


async def play(bus, level_db=-30.0):
    await bus.publish(topics.AUDIO_LEVEL, {"level_db": level_db})


async def go_silent(bus):
    await bus.publish(topics.SILENCE_DETECTED, {"level_db": -60.0, "duration": 10})


class TestSessionOpening:

    @pytest.mark.asyncio
    async def test_level_above_threshold_opens_session(self, manager, event_bus, store, recorder):
        await play(event_bus)

        assert manager.state is SessionState.ACTIVE
        session_id = manager.get_current_session_id()
        assert session_id is not None
        assert await store.get_session(session_id) is not None
        assert recorder[topics.SESSION_STARTED][0]["session_id"] == session_id
        assert "timestamp" in recorder[topics.SESSION_STARTED][0]

    @pytest.mark.asyncio
    async def test_level_at_or_below_threshold_stays_idle(self, manager, event_bus, recorder):
        await play(event_bus, -50.0)
        await play(event_bus, -70.0)

        assert manager.state is SessionState.IDLE
        assert recorder[topics.SESSION_STARTED] == []

    @pytest.mark.asyncio
    async def test_no_double_open(self, manager, event_bus, recorder):
        await play(event_bus, -30.0)
        first_id = manager.get_current_session_id()
        await play(event_bus, -20.0)
        await play(event_bus, -10.0)

        assert manager.get_current_session_id() == first_id
        assert len(recorder[topics.SESSION_STARTED]) == 1

    @pytest.mark.asyncio
    async def test_store_failure_keeps_manager_idle(self, event_bus, clock, recorder):
        failing_store = AsyncMock()
        failing_store.create_session.side_effect = StoreError("disk full")
        manager = SessionManager(event_bus, failing_store, clock=clock.now, sleep=clock.sleep)
        manager.start()

        await play(event_bus)

        assert manager.state is SessionState.IDLE
        assert manager.get_current_session_id() is None
        assert recorder[topics.SESSION_STARTED] == []

    @pytest.mark.asyncio
    async def test_events_ignored_before_start(self, event_bus, store, clock, recorder):
        manager = SessionManager(event_bus, store, clock=clock.now, sleep=clock.sleep)
        await play(event_bus)
        assert manager.state is SessionState.IDLE


class TestSilenceTimeout:

    @pytest.mark.asyncio
    async def test_timeout_closes_session(self, manager, event_bus, store, clock, recorder):
        await play(event_bus)
        session_id = manager.get_current_session_id()
        await go_silent(event_bus)
        assert manager.has_pending_timeout

        await clock.advance(1800)

        assert manager.state is SessionState.IDLE
        assert manager.get_current_session_id() is None
        assert not manager.has_pending_timeout

        ended = recorder[topics.SESSION_ENDED]
        assert len(ended) == 1
        assert ended[0]["session_id"] == session_id
        assert ended[0]["duration_seconds"] == 1800
        assert ended[0]["event_count"] == 0

        session = await store.get_session(session_id)
        assert session.ended_at == clock.now()
        assert session.duration_seconds == 1800

    @pytest.mark.asyncio
    async def test_silence_ended_cancels_timeout(self, manager, event_bus, store, clock, recorder):
        await play(event_bus)
        session_id = manager.get_current_session_id()
        await go_silent(event_bus)
        await clock.advance(900)

        await event_bus.publish(topics.SILENCE_ENDED, {"level_db": -30.0, "silence_duration": 900})
        await clock.advance(3600)

        assert manager.state is SessionState.ACTIVE
        assert recorder[topics.SESSION_ENDED] == []
        assert (await store.get_session(session_id)).ended_at is None

    @pytest.mark.asyncio
    async def test_rearming_restarts_the_countdown(self, manager, event_bus, clock, recorder):
        await play(event_bus)
        await go_silent(event_bus)
        await clock.advance(1000)
        await go_silent(event_bus)
        await clock.advance(1000)

        assert manager.state is SessionState.ACTIVE
        assert clock.pending_sleepers == 1

        await clock.advance(800)
        assert manager.state is SessionState.IDLE
        assert len(recorder[topics.SESSION_ENDED]) == 1

    @pytest.mark.asyncio
    async def test_silence_while_idle_arms_nothing(self, manager, event_bus):
        await go_silent(event_bus)
        assert not manager.has_pending_timeout

    @pytest.mark.asyncio
    async def test_silence_ended_without_timer_is_noop(self, manager, event_bus):
        await play(event_bus)
        await event_bus.publish(topics.SILENCE_ENDED, {"level_db": -30.0, "silence_duration": 1})
        assert manager.state is SessionState.ACTIVE

    @pytest.mark.asyncio
    async def test_new_session_after_close(self, manager, event_bus, clock, recorder):
        await play(event_bus)
        first_id = manager.get_current_session_id()
        await go_silent(event_bus)
        await clock.advance(1800)

        await play(event_bus)
        assert manager.state is SessionState.ACTIVE
        assert manager.get_current_session_id() != first_id
        assert len(recorder[topics.SESSION_STARTED]) == 2

    @pytest.mark.asyncio
    async def test_update_failure_still_goes_idle(self, event_bus, clock, recorder, store):
        store.update_session = AsyncMock(side_effect=StoreError("locked"))
        manager = SessionManager(event_bus, store, clock=clock.now, sleep=clock.sleep)
        manager.start()

        await play(event_bus)
        await go_silent(event_bus)
        await clock.advance(1800)

        assert manager.state is SessionState.IDLE
        assert len(recorder[topics.SESSION_ENDED]) == 1

    @pytest.mark.asyncio
    async def test_set_session_timeout_rearms_pending_timer(self, manager, event_bus, clock):
        await play(event_bus)
        await go_silent(event_bus)
        await clock.advance(100)

        manager.set_session_timeout(60)
        await clock.advance(59)
        assert manager.state is SessionState.ACTIVE

        await clock.advance(1)
        assert manager.state is SessionState.IDLE


class TestEventCounting:

    @pytest.mark.asyncio
    async def test_increment_while_idle_is_ignored(self, manager):
        manager.increment_event_count()
        assert manager.get_active_session() is None

    @pytest.mark.asyncio
    async def test_increment_counts_into_session_end(self, manager, event_bus, clock, recorder):
        await play(event_bus)
        manager.increment_event_count()
        manager.increment_event_count()
        assert manager.get_active_session().event_count == 2

        await go_silent(event_bus)
        await clock.advance(1800)
        assert recorder[topics.SESSION_ENDED][0]["event_count"] == 2

        manager.increment_event_count()
        await play(event_bus)
        assert manager.get_active_session().event_count == 0


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_active_session_duration_is_live(self, manager, event_bus, clock):
        started = clock.now()
        await play(event_bus)
        await clock.advance(125)

        active = manager.get_active_session()
        assert active.duration_seconds == 125
        assert active.started_at == started

    @pytest.mark.asyncio
    async def test_stop_closes_open_session(self, manager, event_bus, store, clock, recorder):
        await play(event_bus)
        session_id = manager.get_current_session_id()
        await clock.advance(42)

        await manager.stop()

        assert manager.state is SessionState.IDLE
        assert not manager.is_running
        assert recorder[topics.SESSION_ENDED][0]["duration_seconds"] == 42
        assert (await store.get_session(session_id)).ended_at is not None
        assert event_bus.listener_count(topics.AUDIO_LEVEL) == 0

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_timer(self, manager, event_bus, clock):
        await play(event_bus)
        await go_silent(event_bus)
        await manager.stop()
        await drain()
        assert not manager.has_pending_timeout
        assert clock.pending_sleepers == 0

    @pytest.mark.asyncio
    async def test_double_start_and_stop(self, manager, event_bus):
        manager.start()
        assert event_bus.listener_count(topics.AUDIO_LEVEL) == 1

        await manager.stop()
        await manager.stop()
        assert not manager.is_running

    def test_status_and_config(self, manager):
        manager.set_audio_threshold(-40.0)
        config = manager.get_config()
        assert config.audio_threshold == -40.0
        assert config.session_timeout == 1800

        status = manager.get_status()
        assert status["is_running"] is True
        assert status["state"] == "idle"
        assert status["active_session"] is None
        assert status["config"]["audio_threshold"] == -40.0


@pytest.mark.asyncio
async def test_listening_session_end_to_end(event_bus, store, clock):
    """Audio opens a session, silence plus 30 minutes closes it."""
    recorder = Recorder(event_bus, topics.SESSION_STARTED, topics.SESSION_ENDED)
    manager = SessionManager(event_bus, store, clock=clock.now, sleep=clock.sleep)
    manager.start()

    await event_bus.publish(topics.AUDIO_LEVEL, {"level_db": -30})
    assert manager.state is SessionState.ACTIVE
    assert len(recorder[topics.SESSION_STARTED]) == 1

    await event_bus.publish(topics.SILENCE_DETECTED, {"level_db": -60, "duration": 10})
    await clock.advance(1800)

    ended = recorder[topics.SESSION_ENDED]
    assert len(ended) == 1
    assert ended[0]["duration_seconds"] == 1800
    assert ended[0]["event_count"] == 0
    assert manager.state is SessionState.IDLE


THRESHOLD = -50.0

level_steps = st.one_of(
    st.floats(min_value=-120.0, max_value=0.0, allow_nan=False),
    st.just(THRESHOLD),
)
steps = st.lists(st.one_of(level_steps, st.just("timeout")), max_size=25)


@settings(max_examples=50, deadline=None)
@given(steps)
def test_state_follows_level_and_timeout_sequence(sequence):
    """A session opens on the first loud level while idle and only a timeout closes it."""

    async def run():
        bus = EventBus()
        clock = VirtualClock()
        recorder = Recorder(bus, topics.SESSION_STARTED, topics.SESSION_ENDED)
        manager = SessionManager(
            bus,
            InMemoryStore(),
            config=SessionConfig(session_timeout=60, audio_threshold=THRESHOLD),
            clock=clock.now,
            sleep=clock.sleep,
        )
        manager.start()

        active = False
        opened = closed = 0
        for step in sequence:
            if step == "timeout":
                await go_silent(bus)
                await clock.advance(60)
                if active:
                    active, closed = False, closed + 1
            else:
                await play(bus, step)
                if not active and step > THRESHOLD:
                    active, opened = True, opened + 1

            assert manager.state is (SessionState.ACTIVE if active else SessionState.IDLE)
            assert (manager.get_current_session_id() is not None) == active
            assert len(recorder[topics.SESSION_STARTED]) == opened
            assert len(recorder[topics.SESSION_ENDED]) == closed

        await manager.stop()

    asyncio.run(run())
