"""
CommandDispatcher — user intents → local mutation + engine commands.

Every intent mutates the store first (optimistic update) and only then talks
to the engine, so the UI reflects the intent immediately and the next
snapshot confirms or corrects it.

Engine commands run on named channels ("transport", "gain").  Starting a
command on a channel cancels whatever is still in flight there; the
superseded caller returns quietly with a warning in the log.  Any other
engine failure propagates to the caller as an ``EngineError``.
"""

import asyncio
import logging
import math

from ..lib.errors import CommandSuperseded
from .queue import shuffled

logger = logging.getLogger(__name__)

TRANSPORT = "transport"
GAIN = "gain"


class CommandDispatcher:

    def __init__(self, store, engine, actor=None):
        self.store = store
        self.engine = engine
        self.actor = actor
        self._inflight: dict[str, asyncio.Task] = {}
        self.superseded = 0

    # ── Plumbing ──

    async def _mutate(self, fn):
        """Apply a local mutation, through the actor when one is in use."""
        if self.actor is not None:
            return await self.actor.call(fn)
        return fn()

    async def _remote(self, channel: str, *steps):
        """Run engine calls in order on *channel*, superseding older ones."""
        previous = self._inflight.get(channel)
        task = asyncio.create_task(self._run_steps(steps))
        self._inflight[channel] = task
        if previous is not None and not previous.done():
            previous.cancel()
        try:
            await task
        except asyncio.CancelledError:
            if self._inflight.get(channel) is task:
                raise
            self.superseded += 1
            logger.warning("%s command superseded by a newer one", channel)
        except CommandSuperseded as e:
            self.superseded += 1
            logger.warning("%s command superseded: %s", channel, e)
        finally:
            if self._inflight.get(channel) is task:
                del self._inflight[channel]

    @staticmethod
    async def _run_steps(steps):
        for step in steps:
            await step()

    def _engine_index(self, requested: int) -> int:
        # Send the locally wrapped index; an empty queue forwards the raw
        # request and lets the engine reject it.
        if len(self.store.queue):
            return self.store.queue.current_index
        return requested

    # ── Playback ──

    async def play_track_list(self, tracks, index: int | None = None):
        """Replace the queue with *tracks* and start at *index*.

        With no index, start at 0, or at a random track when shuffle is on.
        With shuffle on, the list is shuffled with the start track first.
        """
        tracks = list(tracks)
        if not tracks:
            logger.info("Ignoring play request with an empty track list")
            return

        def local():
            store = self.store
            start = index
            queue_tracks = tracks
            if start is None:
                start = store.queue.rng.randrange(len(tracks)) if store.shuffle else 0
            if store.shuffle:
                queue_tracks = shuffled(tracks, pinned=start, rng=store.queue.rng)
                start = 0
            store.queue.set_queue(queue_tracks)
            store.queue.set_index(start)
            store.playback.set_is_playing(True)
            store.mark_local("play_track_list")
            return [t.id for t in queue_tracks], store.queue.current_index

        ids, current = await self._mutate(local)
        logger.info("Play list of %d tracks from %d", len(ids), current)
        await self._remote(
            TRANSPORT,
            lambda: self.engine.set_queue(ids),
            lambda: self.engine.skip(current, 0),
            self.engine.start,
        )

    async def play_track_list_index(self, index: int):
        """Play the existing queue from *index*."""
        def local():
            self.store.queue.set_index(index)
            self.store.playback.set_is_playing(True)
            self.store.mark_local("play_index")
            return self._engine_index(index)

        target = await self._mutate(local)
        await self._remote(TRANSPORT, lambda: self.engine.skip(target, 0), self.engine.start)

    async def play_now(self, tracks):
        await self._mutate(lambda: self.store.set_shuffle(False))
        await self.play_track_list(tracks, 0)

    async def shuffle_now(self, tracks):
        await self._mutate(lambda: self.store.set_shuffle(True))
        await self.play_track_list(tracks)

    async def resume(self):
        def local():
            self.store.playback.set_is_playing(True)
            self.store.mark_local("resume")

        await self._mutate(local)
        await self._remote(TRANSPORT, self.engine.start)

    async def pause(self):
        def local():
            self.store.playback.set_is_playing(False)
            self.store.mark_local("pause")

        await self._mutate(local)
        await self._remote(TRANSPORT, self.engine.stop)

    async def play_pause(self):
        if self.store.is_playing:
            await self.pause()
        else:
            await self.resume()

    async def _step(self, delta: int, reason: str):
        def local():
            requested = self.store.queue.current_index + delta
            self.store.queue.set_index(requested)
            self.store.playback.set_is_playing(True)
            self.store.mark_local(reason)
            return self._engine_index(requested)

        target = await self._mutate(local)
        await self._remote(TRANSPORT, lambda: self.engine.skip(target, 0))

    async def next(self):
        await self._step(1, "next")

    async def previous(self):
        # TODO: restart the current track instead when it has played for more than 3s
        await self._step(-1, "previous")

    async def seek(self, fraction: float):
        """Jump to *fraction* (0..1) of the current track.

        Position is owned by the engine, so nothing changes locally; the
        next snapshot carries the new position.
        """
        duration = self.store.playback.duration
        if not math.isfinite(duration):
            logger.debug("Seek ignored: duration unknown")
            return
        if not math.isfinite(fraction):
            logger.warning("Ignoring seek to %r", fraction)
            return
        fraction = min(max(fraction, 0.0), 1.0)
        offset = math.floor(duration * fraction)
        index = self.store.queue.current_index
        await self._remote(TRANSPORT, lambda: self.engine.skip(index, offset))

    async def reset_queue(self):
        def local():
            self.store.queue.set_index(0)
            self.store.playback.set_is_playing(False)
            self.store.mark_local("reset")

        await self._mutate(local)
        await self._remote(TRANSPORT, lambda: self.engine.skip(0, 0), self.engine.stop)

    # ── Volume / rate ──

    async def set_volume(self, value: float):
        """Set the output gain, clamped to 0..1."""
        if not math.isfinite(value):
            logger.warning("Ignoring invalid volume %r", value)
            return
        value = min(max(float(value), 0.0), 1.0)

        def local():
            self.store.playback.set_volume(value)
            self.store.mark_local("volume")

        await self._mutate(local)
        await self._remote(GAIN, lambda: self.engine.set_gain(value))

    async def set_playback_rate(self, value: float):
        """Set the podcast playback rate.  The engine has no rate control."""
        if not value or value <= 0 or not math.isfinite(value):
            logger.warning("Ignoring invalid playback rate %r", value)
            return

        def local():
            self.store.playback.set_podcast_playback_rate(value)
            self.store.mark_local("playback_rate")

        await self._mutate(local)

    # ── Flags ──

    async def toggle_repeat(self):
        def local():
            self.store.set_repeat(not self.store.repeat)
            self.store.mark_local("repeat")

        await self._mutate(local)

    async def toggle_shuffle(self):
        await self.set_shuffle(not self.store.shuffle)

    async def set_shuffle(self, enable: bool):
        def local():
            self.store.set_shuffle(enable)
            self.store.mark_local("shuffle")

        await self._mutate(local)

    # ── Queue editing (local only; the engine picks it up on next play) ──

    async def add_to_queue(self, tracks):
        tracks = list(tracks)

        def local():
            self.store.queue.append(tracks)
            self.store.mark_local("queue_add")

        await self._mutate(local)

    async def set_next_in_queue(self, tracks):
        tracks = list(tracks)

        def local():
            self.store.queue.insert_next(tracks)
            self.store.mark_local("queue_next")

        await self._mutate(local)

    async def remove_from_queue(self, index: int):
        def local():
            self.store.queue.remove(index)
            self.store.mark_local("queue_remove")

        await self._mutate(local)

    async def clear_queue(self):
        def local():
            self.store.queue.clear()
            self.store.mark_local("queue_clear")

        await self._mutate(local)

    async def shuffle_queue(self):
        def local():
            self.store.queue.shuffle_in_place()
            self.store.mark_local("queue_shuffle")

        await self._mutate(local)
