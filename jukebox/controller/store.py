# SPDX-License-Identifier: GPL-3.0-or-later

"""
PlayerStore — the shared state both control paths write.

Holds one QueueModel, one PlaybackState and the persisted shuffle/repeat
flags, plus the read-only accessors UI collaborators use.

Two writers exist: the CommandDispatcher (local, optimistic) and the
ReconciliationLoop (authoritative snapshots).  Local writers call
``mark_local()`` so strict reconciliation can tell that a snapshot was taken
before the latest local edit; sync writers call ``notify()``.
"""

import logging
import random

from ..lib import settings as keys
from .playback import PlaybackState
from .queue import QueueModel

logger = logging.getLogger(__name__)


class PlayerStore:
    """Created once per session, reset but never replaced."""

    def __init__(self, settings, rng: random.Random | None = None):
        self.settings = settings
        self.playback = PlaybackState(settings)
        self.queue = QueueModel(self.playback,
                                shuffle=settings.get_bool(keys.SHUFFLE),
                                rng=rng)
        self.repeat: bool = settings.get_bool(keys.REPEAT)
        self.revision = 0
        self._listeners = []

    # ── Change notification ──

    def add_listener(self, callback):
        """Register ``callback(reason: str)``, called after every change."""
        self._listeners.append(callback)

    def remove_listener(self, callback):
        try:
            self._listeners.remove(callback)
        except ValueError:
            pass

    def notify(self, reason: str):
        for callback in list(self._listeners):
            try:
                callback(reason)
            except Exception as e:
                logger.error("Error in store listener for %s: %s", reason, e, exc_info=True)

    def mark_local(self, reason: str):
        """Record a local (optimistic) mutation and notify listeners."""
        self.revision += 1
        self.notify(reason)

    # ── Flags ──

    @property
    def shuffle(self) -> bool:
        return self.queue.shuffle

    def set_shuffle(self, enable: bool):
        self.queue.shuffle = bool(enable)
        self.settings.set(keys.SHUFFLE, bool(enable))

    def set_repeat(self, enable: bool):
        self.repeat = bool(enable)
        self.settings.set(keys.REPEAT, bool(enable))

    # ── Accessors ──

    @property
    def track(self):
        return self.queue.current

    @property
    def track_id(self) -> str | None:
        track = self.queue.current
        return track.id if track is not None else None

    @property
    def is_playing(self) -> bool:
        return self.playback.is_playing

    @property
    def progress(self) -> float:
        return self.playback.progress

    @property
    def has_next(self) -> bool:
        return self.queue.current_index < len(self.queue) - 1

    @property
    def has_previous(self) -> bool:
        return self.queue.current_index > 0

    @property
    def playback_rate(self) -> float:
        track = self.queue.current
        if track is not None and track.is_podcast:
            return self.playback.podcast_playback_rate
        return 1.0

    def to_dict(self) -> dict:
        data = {
            "queue": [t.to_dict() for t in self.queue.tracks],
            "queueIndex": self.queue.current_index,
            "trackId": self.track_id,
            "progress": self.progress,
            "hasNext": self.has_next,
            "hasPrevious": self.has_previous,
            "playbackRate": self.playback_rate,
            "repeat": self.repeat,
            "shuffle": self.shuffle,
        }
        data.update(self.playback.to_dict())
        return data
