"""
StateActor — single owner task for the shared player state.

Mutations (local commands and snapshot applications alike) are submitted as
plain callables over one ``asyncio.Queue`` and run one at a time, in arrival
order, by a single worker task.  Used by strict reconciliation.

Usage:
    actor = StateActor()
    actor.start()
    result = await actor.call(store.queue.set_index, 2)
    await actor.stop()
"""

import asyncio
import logging

logger = logging.getLogger(__name__)

_STOP = object()


class StateActor:

    def __init__(self):
        self._inbox: asyncio.Queue | None = None
        self._task: asyncio.Task | None = None
        self.processed = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            return
        self._inbox = asyncio.Queue()
        self._task = asyncio.create_task(self._run())
        logger.debug("State actor started")

    async def stop(self):
        if not self.running:
            return
        await self._inbox.put((_STOP, (), None))
        await self._task
        self._task = None
        logger.debug("State actor stopped after %d mutations", self.processed)

    async def call(self, fn, *args):
        """Run ``fn(*args)`` on the actor and return its result."""
        if not self.running:
            raise RuntimeError("StateActor is not running")
        future = asyncio.get_running_loop().create_future()
        await self._inbox.put((fn, args, future))
        return await future

    async def _run(self):
        while True:
            fn, args, future = await self._inbox.get()
            if fn is _STOP:
                return
            if future.cancelled():
                continue
            try:
                result = fn(*args)
            except Exception as e:
                future.set_exception(e)
            else:
                future.set_result(result)
            self.processed += 1
