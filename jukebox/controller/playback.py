"""Transport status of the remote engine as seen by this client."""

import logging
import math

from ..lib import settings as keys

logger = logging.getLogger(__name__)


class PlaybackState:
    """Plain data holder with validated setters.

    ``volume`` and ``podcast_playback_rate`` are written through to the
    settings store; everything else lives for the session only.
    """

    def __init__(self, settings):
        self._settings = settings
        self.is_playing: bool = False
        self.current_time: float = 0.0
        self.duration: float = 0.0
        self.stream_title: str | None = None
        self.volume: float = settings.get_float(keys.VOLUME)
        self.podcast_playback_rate: float = settings.get_float(keys.PODCAST_PLAYBACK_RATE)

    def reset_session(self):
        """Forget session-only fields (reconnect)."""
        self.is_playing = False
        self.current_time = 0.0
        self.duration = 0.0
        self.stream_title = None

    def set_is_playing(self, playing: bool):
        self.is_playing = bool(playing)

    def set_current_time(self, seconds: float):
        if seconds is None or not math.isfinite(seconds):
            return
        self.current_time = float(seconds)

    def set_duration(self, seconds: float):
        # An unknown duration must not overwrite a known one
        if seconds is None or not math.isfinite(seconds):
            return
        self.duration = float(seconds)

    def set_stream_title(self, title: str | None):
        self.stream_title = title

    def set_volume(self, value: float):
        self.volume = value
        self._settings.set(keys.VOLUME, value)

    def set_podcast_playback_rate(self, value: float):
        self.podcast_playback_rate = value
        self._settings.set(keys.PODCAST_PLAYBACK_RATE, value)

    @property
    def progress(self) -> float:
        """Position as a fraction of the duration, 0 when either is unusable."""
        if self.current_time > -1 and self.duration > 0:
            return self.current_time / self.duration
        return 0.0

    def to_dict(self) -> dict:
        return {
            "isPlaying": self.is_playing,
            "currentTime": self.current_time,
            "duration": self.duration if math.isfinite(self.duration) else None,
            "streamTitle": self.stream_title,
            "volume": self.volume,
            "podcastPlaybackRate": self.podcast_playback_rate,
        }
