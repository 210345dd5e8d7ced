"""Tests for ReconciliationLoop."""

import asyncio

import pytest

from jukebox.controller import (CommandDispatcher, ReconciliationLoop, Snapshot,
                                StateActor, Track)
from jukebox.lib.errors import ConfigurationError, EngineUnavailableError

from conftest import make_tracks, settle


def snapshot(**fields):
    fields.setdefault("entries", [Track("A", 100.0), Track("B", 200.0)])
    return Snapshot(**fields)


def test_tick_applies_every_field(store, engine):
    engine.snapshot = snapshot(current_index=1, playing=True, gain=0.8, position=42)
    loop = ReconciliationLoop(store, engine)

    assert asyncio.run(loop.tick()) is True
    assert [t.id for t in store.queue.tracks] == ["A", "B"]
    assert store.queue.current_index == 1
    assert store.playback.duration == 200.0
    assert store.playback.is_playing is True
    assert store.playback.volume == 0.8
    assert store.playback.current_time == 42
    assert loop.ticks == 1


def test_tick_applies_fields_in_order(store, engine, monkeypatch):
    engine.snapshot = snapshot(current_index=1, playing=True, gain=0.8, position=42)
    order = []

    def spy(target, name):
        original = getattr(target, name)

        def wrapper(*args):
            order.append(name)
            return original(*args)
        monkeypatch.setattr(target, name, wrapper)

    spy(store.queue, "set_queue")
    spy(store.queue, "set_index")
    spy(store.playback, "set_is_playing")
    spy(store.playback, "set_volume")
    spy(store.playback, "set_current_time")

    asyncio.run(ReconciliationLoop(store, engine).tick())
    assert order == ["set_queue", "set_index", "set_is_playing", "set_volume",
                     "set_current_time"]


def test_volume_from_snapshot_is_persisted(store, engine, settings):
    engine.snapshot = snapshot(current_index=0, gain=0.3)
    asyncio.run(ReconciliationLoop(store, engine).tick())
    assert settings.get_float("player.volume") == 0.3


def test_absent_fields_leave_state_alone(store, engine):
    store.playback.set_volume(0.5)
    engine.snapshot = snapshot(current_index=None)
    loop = ReconciliationLoop(store, engine)
    asyncio.run(loop.tick())
    # currentIndex missing wraps to the first entry
    assert store.queue.current_index == 0
    assert store.playback.volume == 0.5
    assert store.playback.is_playing is False


def test_empty_engine_queue_clears_selection(store, engine):
    store.queue.set_queue(make_tracks("X", "Y"))
    store.queue.set_index(1)
    engine.snapshot = Snapshot(entries=[], current_index=-1, playing=False)
    asyncio.run(ReconciliationLoop(store, engine).tick())
    assert len(store.queue) == 0
    assert store.queue.current_index == -1


def test_failed_poll_skips_tick(store, engine):
    store.queue.set_queue(make_tracks("X"))
    store.queue.set_index(0)
    store.playback.set_is_playing(True)
    errors = []
    engine.fail_with["get_status"] = EngineUnavailableError("connection refused")
    loop = ReconciliationLoop(store, engine, on_error=errors.append)

    assert asyncio.run(loop.tick()) is False
    assert [t.id for t in store.queue.tracks] == ["X"]
    assert store.playback.is_playing is True
    assert loop.failed_ticks == 1
    assert len(errors) == 1 and isinstance(errors[0], EngineUnavailableError)
    assert engine.names() == ["get_status"]


def test_session_fields_reset_on_reconnect(store, engine):
    engine.snapshot = snapshot(current_index=0, playing=True)
    loop = ReconciliationLoop(store, engine)
    store.playback.set_stream_title("Stale title")
    asyncio.run(loop.tick())
    assert store.playback.stream_title is None

    store.playback.set_stream_title("Live title")
    asyncio.run(loop.tick())
    assert store.playback.stream_title == "Live title"

    engine.fail_with["get_status"] = EngineUnavailableError("down")
    asyncio.run(loop.tick())
    del engine.fail_with["get_status"]
    asyncio.run(loop.tick())
    assert store.playback.stream_title is None


def test_sync_notifies_listeners(store, engine):
    reasons = []
    store.add_listener(reasons.append)
    engine.snapshot = snapshot(current_index=0)
    asyncio.run(ReconciliationLoop(store, engine).tick())
    assert reasons == ["sync"]
    assert store.revision == 0


def test_ticks_do_not_overlap(store, engine):
    async def scenario():
        gate = asyncio.Event()
        engine.gates["get_status"] = gate
        engine.snapshot = snapshot(current_index=0)
        loop = ReconciliationLoop(store, engine, interval=0.01)
        loop.start()
        await asyncio.sleep(0.1)
        assert engine.names() == ["get_status"]
        assert loop.skipped_ticks > 0

        gate.set()
        await asyncio.sleep(0.05)
        await loop.stop()
        return loop

    loop = asyncio.run(scenario())
    assert engine.names().count("get_status") > 1
    assert loop.ticks >= 1
    assert loop.running is False


def test_overwrite_mode_lets_stale_snapshot_clobber_local_command(store, engine):
    """Known race: a pause issued while a poll is in flight is undone."""
    async def scenario():
        gate = asyncio.Event()
        engine.gates["get_status"] = gate
        engine.snapshot = snapshot(current_index=0, playing=True)
        store.queue.set_queue(engine.snapshot.entries)
        store.queue.set_index(0)
        store.playback.set_is_playing(True)
        loop = ReconciliationLoop(store, engine)
        dispatcher = CommandDispatcher(store, engine)

        tick = asyncio.create_task(loop.tick())
        await settle()
        await dispatcher.pause()
        assert store.is_playing is False

        gate.set()
        return await tick

    assert asyncio.run(scenario()) is True
    assert store.is_playing is True


def test_strict_mode_drops_snapshot_older_than_local_command(store, engine):
    async def scenario():
        actor = StateActor()
        actor.start()
        gate = asyncio.Event()
        engine.gates["get_status"] = gate
        engine.snapshot = snapshot(current_index=0, playing=True)
        store.queue.set_queue(engine.snapshot.entries)
        store.queue.set_index(0)
        store.playback.set_is_playing(True)
        loop = ReconciliationLoop(store, engine, mode="strict", actor=actor)
        dispatcher = CommandDispatcher(store, engine, actor=actor)

        tick = asyncio.create_task(loop.tick())
        await settle()
        await dispatcher.pause()
        gate.set()
        applied = await tick
        assert applied is False
        assert store.is_playing is False
        assert loop.discarded_snapshots == 1

        # The next poll starts after the pause and is applied normally
        engine.snapshot = snapshot(current_index=0, playing=False, position=3)
        assert await loop.tick() is True
        assert store.playback.current_time == 3
        await actor.stop()

    asyncio.run(scenario())


def test_strict_mode_requires_actor(store, engine):
    with pytest.raises(ConfigurationError):
        ReconciliationLoop(store, engine, mode="strict")


def test_unknown_mode_rejected(store, engine):
    with pytest.raises(ConfigurationError):
        ReconciliationLoop(store, engine, mode="merge")
