"""
Shared configuration loader for Jukebox Remote.

Loads a single JSON config file per device.  Search order:
  1. $JUKEBOX_CONFIG                (explicit override)
  2. /etc/jukebox/config.json       (deployed install)
  3. config.json                    (CWD — handy for local dev)
  4. ../../config/default.json      (repo fallback)

Secrets (the Subsonic password) stay in environment variables, loaded
from /etc/jukebox/secrets.env by systemd EnvironmentFile.

Usage:
    from jukebox.lib.config import cfg, JukeboxConfig

    server_url = cfg("server", "url", default="http://localhost:4040")
    interval   = cfg("poll", "interval", default=1.0)
    config     = JukeboxConfig.load()   # frozen view, built once per session
"""

import json
import logging
import os

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

_config: dict | None = None

_SEARCH_PATHS = [
    "/etc/jukebox/config.json",
    "config.json",
    os.path.join(os.path.dirname(__file__), "..", "..", "config", "default.json"),
]

RECONCILE_MODES = ("overwrite", "strict")


def _search_paths() -> list[str]:
    override = os.getenv("JUKEBOX_CONFIG")
    return [override, *_SEARCH_PATHS] if override else list(_SEARCH_PATHS)


def _validate(config: dict, path: str) -> None:
    """Warn about missing or suspicious config values."""
    server = config.get("server") or {}
    if not server.get("url"):
        logger.warning("Config %s: missing server.url — using localhost default", path)
    if not server.get("user"):
        logger.warning("Config %s: missing server.user — requests will be rejected", path)
    poll = config.get("poll") or {}
    mode = poll.get("mode", "overwrite")
    if mode not in RECONCILE_MODES:
        logger.warning("Config %s: unknown poll.mode '%s'", path, mode)


def load_config() -> dict:
    """Load config from the first JSON file found. Cached after first call."""
    global _config
    if _config is not None:
        return _config

    for path in _search_paths():
        try:
            with open(path) as f:
                _config = json.load(f)
                logger.info("Config loaded from %s", path)
                _validate(_config, path)
                return _config
        except FileNotFoundError:
            continue
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in %s: %s", path, e)
            continue

    logger.warning("No config.json found — using empty config")
    _config = {}
    return _config


def cfg(section: str, key: str | None = None, *, default=None):
    """Read a config value.

    cfg("server")                      → config["server"]
    cfg("server", "url")               → config["server"]["url"]
    cfg("poll", "interval", default=1) → config["poll"]["interval"] or 1
    """
    config = load_config()
    val = config.get(section)
    if key is None:
        return val if val is not None else default
    if isinstance(val, dict):
        return val.get(key, default)
    return default


def reload_config():
    """Force re-read from disk (for testing or hot-reload)."""
    global _config
    _config = None
    return load_config()


class JukeboxConfig:
    """Session configuration, read once at startup and passed to constructors.

    Nothing under ``jukebox.controller`` calls ``cfg()`` directly; the service
    builds one of these and hands the relevant values down.
    """

    def __init__(self, server_url: str = "http://localhost:4040",
                 user: str = "", password: str = "",
                 client_name: str = "jukebox-remote",
                 api_version: str = "1.15.0",
                 request_timeout: float = 10.0,
                 poll_interval: float = 1.0,
                 reconcile_mode: str = "overwrite",
                 service_host: str = "0.0.0.0",
                 service_port: int = 8780,
                 settings_path: str | None = None,
                 log_level: str = "INFO"):
        if poll_interval <= 0:
            raise ConfigurationError(f"poll.interval must be positive, got {poll_interval}")
        if reconcile_mode not in RECONCILE_MODES:
            raise ConfigurationError(
                f"poll.mode must be one of {', '.join(RECONCILE_MODES)}, got {reconcile_mode!r}")
        self.server_url = server_url.rstrip("/")
        self.user = user
        self.password = password
        self.client_name = client_name
        self.api_version = api_version
        self.request_timeout = float(request_timeout)
        self.poll_interval = float(poll_interval)
        self.reconcile_mode = reconcile_mode
        self.service_host = service_host
        self.service_port = int(service_port)
        self.settings_path = settings_path
        self.log_level = log_level.upper()

    @classmethod
    def load(cls) -> "JukeboxConfig":
        """Build the session config from the JSON file + environment."""
        try:
            return cls(
                server_url=cfg("server", "url", default="http://localhost:4040"),
                user=cfg("server", "user", default=""),
                password=os.getenv("JUKEBOX_PASSWORD", ""),
                client_name=cfg("server", "client", default="jukebox-remote"),
                api_version=cfg("server", "api_version", default="1.15.0"),
                request_timeout=float(cfg("server", "timeout", default=10.0)),
                poll_interval=float(cfg("poll", "interval", default=1.0)),
                reconcile_mode=str(cfg("poll", "mode", default="overwrite")).lower(),
                service_host=cfg("service", "host", default="0.0.0.0"),
                service_port=int(cfg("service", "port", default=8780)),
                settings_path=cfg("settings", "path"),
                log_level=str(cfg("logging", "level", default="INFO")),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid config value: {e}") from e
