"""
ReconciliationLoop — folds authoritative engine snapshots into the store.

Every ``interval`` seconds a tick requests ``get_status()`` and overwrites the
local view with it, in this order:

    set_queue(entries) → set_index(current_index) → set_is_playing(playing)
    → set_volume(gain) → set_current_time(position)

No diffing is done.  Ticks never overlap: if the previous tick's request is
still outstanding when the next slot comes up, that slot is skipped.

Modes:
  overwrite — apply every snapshot.  A local command issued while a request
              is in flight can be clobbered by that (stale) snapshot.
  strict    — apply through the StateActor, and drop a snapshot if the store
              saw a local mutation after the request was sent.
"""

import asyncio
import logging

from ..lib.errors import ConfigurationError, EngineError

logger = logging.getLogger(__name__)


class ReconciliationLoop:

    def __init__(self, store, engine, interval: float = 1.0, mode: str = "overwrite",
                 actor=None, on_error=None):
        if mode not in ("overwrite", "strict"):
            raise ConfigurationError(f"Unknown reconcile mode {mode!r}")
        if mode == "strict" and actor is None:
            raise ConfigurationError("Strict reconciliation needs a StateActor")
        self.store = store
        self.engine = engine
        self.interval = interval
        self.mode = mode
        self.actor = actor
        self.on_error = on_error
        self.running = False
        self._task: asyncio.Task | None = None
        self._tick_task: asyncio.Task | None = None
        self._connected = False
        # Counters (exposed in /player/status)
        self.ticks = 0
        self.skipped_ticks = 0
        self.failed_ticks = 0
        self.discarded_snapshots = 0

    # ── Lifecycle ──

    def start(self):
        if self.running:
            return
        self.running = True
        self._task = asyncio.create_task(self._schedule())
        logger.info("Reconciliation started (every %.1fs, %s mode)", self.interval, self.mode)

    async def stop(self):
        self.running = False
        for task in (self._task, self._tick_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._task = None
        self._tick_task = None
        logger.info("Reconciliation stopped")

    async def _schedule(self):
        """Start a tick every interval unless the last one is still running."""
        while self.running:
            if self._tick_task is None or self._tick_task.done():
                self._tick_task = asyncio.create_task(self.tick())
            else:
                self.skipped_ticks += 1
                logger.debug("Previous status request still outstanding, skipping tick")
            await asyncio.sleep(self.interval)

    # ── One tick ──

    async def tick(self) -> bool:
        """Pull one snapshot and apply it.  Returns True if it was applied."""
        revision = self.store.revision
        try:
            snapshot = await self.engine.get_status()
        except EngineError as e:
            self._failed(e)
            logger.warning("Status poll failed, tick skipped: %s", e)
            return False
        except Exception as e:
            self._failed(e)
            logger.error("Unexpected error polling status: %s", e, exc_info=True)
            return False

        self.ticks += 1
        if self.mode == "strict":
            return await self.actor.call(self._apply_if_current, snapshot, revision)
        self.apply(snapshot)
        return True

    def _failed(self, error):
        self.failed_ticks += 1
        self._connected = False
        if self.on_error:
            try:
                self.on_error(error)
            except Exception as e:
                logger.error("Error in reconciliation error hook: %s", e, exc_info=True)

    def _apply_if_current(self, snapshot, revision) -> bool:
        if self.store.revision != revision:
            self.discarded_snapshots += 1
            logger.debug("Dropping snapshot taken before local change (rev %d -> %d)",
                         revision, self.store.revision)
            return False
        self.apply(snapshot)
        return True

    def apply(self, snapshot):
        """Overwrite the local view with *snapshot*."""
        queue = self.store.queue
        playback = self.store.playback
        if not self._connected:
            playback.reset_session()
            self._connected = True
            logger.info("Engine connected")

        queue.set_queue(snapshot.entries)
        queue.set_index(snapshot.current_index if snapshot.current_index is not None else -1)
        if snapshot.playing is not None:
            playback.set_is_playing(snapshot.playing)
        if snapshot.gain is not None:
            playback.set_volume(snapshot.gain)
        if snapshot.position is not None:
            playback.set_current_time(snapshot.position)
        self.store.notify("sync")
