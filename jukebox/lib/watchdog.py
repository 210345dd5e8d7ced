"""Systemd heartbeat tied to the reconciliation loop.

Each beat publishes the loop's counters as ``STATUS=`` (visible in
``systemctl status beo-jukebox``) and sends ``WATCHDOG=1`` only while the
loop is still scheduling ticks.  A loop whose scheduler died or whose event
loop is wedged stops the heartbeat, and systemd restarts the service.

A failing engine is not a reason to restart: failed and skipped ticks both
count as progress.  Everything is a no-op when NOTIFY_SOCKET is unset.

Usage:
    heartbeat = Heartbeat(reconcile_loop)
    asyncio.create_task(heartbeat.run())
"""

import asyncio
import logging
import os
import socket

logger = logging.getLogger(__name__)


def sd_notify(msg: str) -> bool:
    """Send a notification message to the systemd notify socket.

    Returns False when not running under systemd.
    """
    addr = os.environ.get("NOTIFY_SOCKET")
    if not addr:
        return False
    if addr[0] == "@":
        addr = "\0" + addr[1:]
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM)
    try:
        sock.sendto(msg.encode(), addr)
    except OSError as e:
        logger.warning("sd_notify %s failed: %s", msg.split("=", 1)[0], e)
        return False
    finally:
        sock.close()
    return True


class Heartbeat:

    def __init__(self, loop, interval: float = 20):
        self.loop = loop
        self.interval = interval
        self.missed = 0
        self._last_progress: int | None = None

    def progress(self) -> int:
        return self.loop.ticks + self.loop.skipped_ticks + self.loop.failed_ticks

    def status(self) -> str:
        return (f"{self.loop.mode}: {self.loop.ticks} synced, "
                f"{self.loop.failed_ticks} failed, {self.loop.skipped_ticks} skipped")

    def beat(self) -> bool:
        """Publish status; send WATCHDOG=1 if the loop moved since last beat."""
        progress = self.progress()
        alive = self.loop.running and progress != self._last_progress
        self._last_progress = progress
        sd_notify(f"STATUS={self.status()}")
        if not alive:
            self.missed += 1
            logger.warning("Reconciliation stalled at %d ticks, withholding watchdog ping",
                           progress)
            return False
        self.missed = 0
        sd_notify("WATCHDOG=1")
        return True

    async def run(self):
        """Send READY=1, then beat every *interval* seconds."""
        sd_notify("READY=1")
        logger.info("Watchdog started (interval=%ss)", self.interval)
        while True:
            await asyncio.sleep(self.interval)
            self.beat()
