"""Pytest configuration and fixtures."""

import asyncio
import random

import pytest

from jukebox.controller import PlayerStore, Snapshot, Track
from jukebox.lib.engine import RemoteEngineClient
from jukebox.lib.settings import MemorySettings


class FakeEngine(RemoteEngineClient):
    """In-memory engine that records every command.

    ``gates[name]`` blocks that command until the event is set;
    ``fail_with[name]`` makes it raise after recording the call.
    """

    def __init__(self, snapshot=None):
        self.snapshot = snapshot or Snapshot()
        self.calls = []
        self.gates = {}
        self.fail_with = {}
        self.closed = False

    async def _record(self, name, *args):
        self.calls.append((name, *args))
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        error = self.fail_with.get(name)
        if error is not None:
            raise error

    def names(self):
        return [call[0] for call in self.calls]

    async def set_queue(self, ids):
        await self._record("set_queue", list(ids))

    async def skip(self, index, offset=0):
        await self._record("skip", index, offset)

    async def start(self):
        await self._record("start")

    async def stop(self):
        await self._record("stop")

    async def set_gain(self, value):
        await self._record("set_gain", value)

    async def get_status(self):
        await self._record("get_status")
        return self.snapshot

    async def close(self):
        self.closed = True


def make_tracks(*ids, duration=60.0):
    return [Track(i, duration) for i in ids]


async def settle(rounds: int = 10):
    """Let pending tasks run up to their next real suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settings():
    return MemorySettings()


@pytest.fixture
def store(settings):
    return PlayerStore(settings, rng=random.Random(1234))


@pytest.fixture
def engine():
    return FakeEngine()
