"""Typed records exchanged between the engine client and the controller."""

import math


def _as_float(value, default: float = math.nan) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


class Track:
    """Reference to one playable item in the queue.

    Only ``id``, ``duration`` and ``is_podcast`` matter to the state machine;
    the descriptive fields are carried through for display.
    """

    __slots__ = ("_id", "_duration", "_is_podcast", "_title", "_artist", "_album")

    def __init__(self, id: str, duration: float = math.nan, is_podcast: bool = False,
                 title: str | None = None, artist: str | None = None,
                 album: str | None = None):
        self._id = str(id)
        self._duration = _as_float(duration)
        self._is_podcast = bool(is_podcast)
        self._title = title
        self._artist = artist
        self._album = album

    @property
    def id(self) -> str:
        return self._id

    @property
    def duration(self) -> float:
        """Length in seconds, NaN when the engine did not report one."""
        return self._duration

    @property
    def is_podcast(self) -> bool:
        return self._is_podcast

    @property
    def title(self):
        return self._title

    @property
    def artist(self):
        return self._artist

    @property
    def album(self):
        return self._album

    @classmethod
    def from_entry(cls, entry: dict) -> "Track":
        """Build a track from an engine entry / request body dict."""
        is_podcast = bool(entry.get("isPodcast")) or entry.get("type") == "podcast"
        return cls(
            id=entry["id"],
            duration=entry.get("duration"),
            is_podcast=is_podcast,
            title=entry.get("title"),
            artist=entry.get("artist"),
            album=entry.get("album"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self._id,
            "duration": self._duration if math.isfinite(self._duration) else None,
            "isPodcast": self._is_podcast,
            "title": self._title,
            "artist": self._artist,
            "album": self._album,
        }

    def __eq__(self, other):
        if not isinstance(other, Track):
            return NotImplemented
        return (self._id, self._is_podcast) == (other._id, other._is_podcast) and (
            self._duration == other._duration
            or (math.isnan(self._duration) and math.isnan(other._duration)))

    def __hash__(self):
        return hash((self._id, self._is_podcast))

    def __repr__(self):
        return f"Track({self._id!r})"


class Snapshot:
    """Point-in-time authoritative status read from the remote engine.

    Fields the engine did not send are ``None``.
    """

    __slots__ = ("entries", "current_index", "playing", "gain", "position")

    def __init__(self, entries: list[Track] | None = None,
                 current_index: int | None = None,
                 playing: bool | None = None,
                 gain: float | None = None,
                 position: float | None = None):
        self.entries = list(entries) if entries is not None else []
        self.current_index = current_index
        self.playing = playing
        self.gain = gain
        self.position = position

    @classmethod
    def from_status(cls, status: dict) -> "Snapshot":
        """Parse a Subsonic ``jukeboxPlaylist`` / ``jukeboxStatus`` object."""
        def opt_int(key):
            value = status.get(key)
            try:
                return int(value) if value is not None else None
            except (TypeError, ValueError):
                return None

        def opt_float(key):
            value = status.get(key)
            try:
                return float(value) if value is not None else None
            except (TypeError, ValueError):
                return None

        playing = status.get("playing")
        if isinstance(playing, str):
            playing = playing.lower() == "true"
        elif playing is not None:
            playing = bool(playing)

        entries = [Track.from_entry(e) for e in status.get("entry") or [] if "id" in e]
        return cls(
            entries=entries,
            current_index=opt_int("currentIndex"),
            playing=playing,
            gain=opt_float("gain"),
            position=opt_float("position"),
        )

    def __repr__(self):
        return (f"Snapshot(entries={len(self.entries)}, current_index={self.current_index}, "
                f"playing={self.playing}, gain={self.gain}, position={self.position})")
