"""
Persisted player preferences (repeat, shuffle, volume, podcast rate).

Stored as a flat JSON object keyed by stable string names.  Writes are
atomic (temp file + rename) so a crash mid-write never corrupts the file.

Storage locations (first existing, then first writable wins):
  1. the path given explicitly (settings.path in config.json)
  2. $XDG_STATE_HOME/jukebox/settings.json  (~/.local/state by default)
  3. <package_dir>/settings.json            (dev fallback)
"""

import json
import logging
import os
import tempfile

logger = logging.getLogger(__name__)

PACKAGE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

REPEAT = "player.repeat"
SHUFFLE = "player.shuffle"
VOLUME = "player.volume"
PODCAST_PLAYBACK_RATE = "player.podcastPlaybackRate"
LEGACY_MUTE = "player.mute"

DEFAULTS = {
    REPEAT: True,
    SHUFFLE: False,
    VOLUME: 1.0,
    PODCAST_PLAYBACK_RATE: 1.0,
}


def _default_paths():
    state_home = os.getenv("XDG_STATE_HOME",
                           os.path.join(os.path.expanduser("~"), ".local", "state"))
    return [
        os.path.join(state_home, "jukebox", "settings.json"),
        os.path.join(PACKAGE_DIR, "settings.json"),
    ]


def _find_store_path(paths):
    """Find the best store path (first existing, or first writable)."""
    for path in paths:
        if os.path.exists(path):
            return path
    for path in paths:
        d = os.path.dirname(path) or "."
        if os.path.isdir(d) and os.access(d, os.W_OK):
            return path
    return paths[0]


class SettingsStore:
    """Read/write access to the persisted preferences.

    Values are loaded once on construction; every ``set()`` rewrites the
    file.  Absent keys fall back to ``DEFAULTS``.
    """

    def __init__(self, path: str | None = None):
        self.path = path or _find_store_path(_default_paths())
        self._values: dict = {}
        self._load()

    def _load(self):
        try:
            with open(self.path) as f:
                data = json.load(f)
        except FileNotFoundError:
            data = {}
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable settings file %s: %s", self.path, e)
            data = {}
        if not isinstance(data, dict):
            logger.warning("Ignoring settings file %s: not a JSON object", self.path)
            data = {}
        self._values = data
        # Mute was dropped in favour of volume; forget any stale value
        if self._values.pop(LEGACY_MUTE, None) is not None:
            logger.info("Removed legacy %s setting", LEGACY_MUTE)
            self._persist(LEGACY_MUTE)

    def _save(self):
        d = os.path.dirname(self.path) or "."
        os.makedirs(d, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=d, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(self._values, f, indent=2, sort_keys=True)
                f.write("\n")
            os.replace(tmp, self.path)
        except Exception:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise

    def get(self, key: str):
        if key in self._values:
            return self._values[key]
        return DEFAULTS.get(key)

    def set(self, key: str, value):
        if key in self._values and self._values[key] == value:
            return
        self._values[key] = value
        self._persist(key)

    def _persist(self, key: str):
        try:
            self._save()
        except OSError as e:
            # The in-memory value still applies for this session
            logger.error("Could not persist %s to %s: %s", key, self.path, e)

    def get_bool(self, key: str) -> bool:
        value = self.get(key)
        if isinstance(value, str):
            return value.strip().lower() == "true"
        return bool(value)

    def get_float(self, key: str) -> float:
        try:
            return float(self.get(key))
        except (TypeError, ValueError):
            return float(DEFAULTS[key])


class MemorySettings(SettingsStore):
    """Non-persistent store for tests and throwaway sessions."""

    def __init__(self, values: dict | None = None):
        self.path = None
        self._values = dict(values or {})
        self._values.pop(LEGACY_MUTE, None)

    def _save(self):
        pass
