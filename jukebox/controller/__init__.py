"""
Controller — the queue/playback reconciliation state machine.

A controller does NOT play audio.  It keeps a local picture of what the
remote jukebox engine is doing (queue, current track, transport, volume),
lets the user edit it optimistically, and folds the engine's authoritative
snapshots back in.

  models.py      — Track and Snapshot records
  queue.py       — QueueModel (ordering, shuffle, current-index pointer)
  playback.py    — PlaybackState (transport, position, volume, rates)
  store.py       — PlayerStore (both of the above + flags + accessors)
  reconcile.py   — ReconciliationLoop (periodic snapshot overwrite)
  dispatcher.py  — CommandDispatcher (intents → mutations + engine calls)
  actor.py       — StateActor (serialized mutation for strict mode)
"""

from .actor import StateActor
from .dispatcher import CommandDispatcher
from .models import Snapshot, Track
from .playback import PlaybackState
from .queue import QueueModel, shuffled
from .reconcile import ReconciliationLoop
from .store import PlayerStore

__all__ = [
    "CommandDispatcher",
    "PlaybackState",
    "PlayerStore",
    "QueueModel",
    "ReconciliationLoop",
    "Snapshot",
    "StateActor",
    "Track",
    "shuffled",
]
