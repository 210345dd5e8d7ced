"""
Ordered play queue with a current-index pointer.

Invariant: ``current_index`` is -1 (nothing selected) or a valid index into
``tracks``; an empty queue always has ``current_index == -1``.

Out-of-range selections wrap to the start of the queue rather than raising,
so a "next" past the last track lands on the first one.
"""

import logging
import random

from .models import Track

logger = logging.getLogger(__name__)


def shuffled(items, pinned: int | None = None, rng: random.Random | None = None) -> list:
    """Return a uniformly shuffled copy of *items*.

    When *pinned* is a valid index, that element is placed first and only
    the remaining elements are permuted.
    """
    rng = rng or random
    items = list(items)
    if pinned is None or not 0 <= pinned < len(items):
        rng.shuffle(items)
        return items
    head = items.pop(pinned)
    rng.shuffle(items)
    return [head, *items]


class QueueModel:
    """The only writer of the queue list and its pointer."""

    def __init__(self, playback, shuffle: bool = False, rng: random.Random | None = None):
        self._playback = playback
        self._rng = rng or random.Random()
        self._tracks: list[Track] = []
        self._index = -1
        self.shuffle = shuffle

    # ── Read access ──

    @property
    def tracks(self) -> tuple[Track, ...]:
        return tuple(self._tracks)

    @property
    def rng(self) -> random.Random:
        return self._rng

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def current(self) -> Track | None:
        if self._index != -1:
            return self._tracks[self._index]
        return None

    def __len__(self):
        return len(self._tracks)

    # ── Mutations ──

    def set_queue(self, tracks):
        """Replace the queue wholesale; nothing is selected afterwards."""
        self._tracks = list(tracks)
        self._index = -1

    def set_index(self, index: int):
        """Select *index*, wrapping anything out of range to 0."""
        if not self._tracks:
            return
        index = max(0, index)
        if index >= len(self._tracks):
            index = 0
        self._index = index
        self._playback.duration = self._tracks[index].duration

    def _batch(self, tracks) -> list[Track]:
        tracks = list(tracks)
        return shuffled(tracks, rng=self._rng) if self.shuffle else tracks

    def append(self, tracks):
        batch = self._batch(tracks)
        self._tracks.extend(batch)
        logger.debug("Appended %d tracks (queue now %d)", len(batch), len(self._tracks))

    def insert_next(self, tracks):
        batch = self._batch(tracks)
        at = self._index + 1
        self._tracks[at:at] = batch
        logger.debug("Inserted %d tracks at %d", len(batch), at)

    def remove(self, index: int):
        if not 0 <= index < len(self._tracks):
            logger.debug("Ignoring remove of out-of-range index %d", index)
            return
        del self._tracks[index]
        if index < self._index:
            self._index -= 1
        # Keep the pointer valid when the last (or only) entry went away
        if self._index >= len(self._tracks):
            self._index = len(self._tracks) - 1

    def clear(self):
        """Collapse to the selected track, or to nothing if none is selected."""
        if self._index >= 0:
            self._tracks = [self._tracks[self._index]]
            self._index = 0
        else:
            self._tracks = []

    def shuffle_in_place(self):
        """Permute the queue, keeping the selected track first and selected."""
        if not self._tracks:
            return
        pinned = self._index if self._index >= 0 else None
        self._tracks = shuffled(self._tracks, pinned=pinned, rng=self._rng)
        self._index = 0
        if pinned is None:
            self._playback.duration = self._tracks[0].duration
