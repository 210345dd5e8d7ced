# SPDX-License-Identifier: GPL-3.0-or-later

"""
Remote engine clients — the only code that talks to the jukebox server.

Every engine client must implement the command set below.  Commands either
return normally or raise an ``EngineError`` subclass; the controller never
sees raw aiohttp exceptions.

Subsonic REST API (``/rest/jukeboxControl``, JSON responses):
  action=get                 — queue entries + currentIndex/playing/gain/position
  action=set&id=A&id=B       — replace the queue
  action=skip&index=N&offset=S — jump to entry N, S seconds in
  action=start / action=stop — transport
  action=setGain&gain=G      — output gain 0.0-1.0
"""

import asyncio
import hashlib
import logging
import secrets
from abc import ABC, abstractmethod

import aiohttp

from ..controller.models import Snapshot
from .errors import EngineCommandError, EngineProtocolError, EngineUnavailableError

logger = logging.getLogger(__name__)

REST_PATH = "/rest/jukeboxControl.view"


class RemoteEngineClient(ABC):
    """Interface every remote engine must implement."""

    @abstractmethod
    async def set_queue(self, ids: list[str]) -> None: ...

    @abstractmethod
    async def skip(self, index: int, offset: int = 0) -> None: ...

    @abstractmethod
    async def start(self) -> None: ...

    @abstractmethod
    async def stop(self) -> None: ...

    @abstractmethod
    async def set_gain(self, value: float) -> None: ...

    @abstractmethod
    async def get_status(self) -> Snapshot: ...

    # -- Optional: override in engines that hold a connection --

    async def close(self) -> None:
        pass  # no-op by default (nothing to release)


class SubsonicJukebox(RemoteEngineClient):
    """Jukebox mode of a Subsonic-compatible server (Airsonic, Navidrome...)."""

    def __init__(self, base_url: str, user: str, password: str,
                 client_name: str = "jukebox-remote", api_version: str = "1.15.0",
                 timeout: float = 10.0,
                 session: aiohttp.ClientSession | None = None):
        self.base_url = base_url.rstrip("/")
        self.user = user
        self._password = password
        self.client_name = client_name
        self.api_version = api_version
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_config(cls, config, session=None) -> "SubsonicJukebox":
        return cls(config.server_url, config.user, config.password,
                   client_name=config.client_name,
                   api_version=config.api_version,
                   timeout=config.request_timeout,
                   session=session)

    # ── HTTP helpers ──

    def _auth_params(self) -> list[tuple[str, str]]:
        """Token auth: t = md5(password + salt), fresh salt per request."""
        salt = secrets.token_hex(6)
        token = hashlib.md5((self._password + salt).encode("utf-8")).hexdigest()
        return [
            ("u", self.user),
            ("t", token),
            ("s", salt),
            ("v", self.api_version),
            ("c", self.client_name),
            ("f", "json"),
        ]

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"User-Agent": f"{self.client_name}/1.0"},
            )
            self._owns_session = True
        return self._session

    async def _control(self, action: str, params: list[tuple[str, str]] | None = None) -> dict:
        """Call jukeboxControl, return the ``subsonic-response`` body."""
        query = self._auth_params() + [("action", action)] + list(params or [])
        url = f"{self.base_url}{REST_PATH}"
        session = self._get_session()
        try:
            async with session.get(
                url, params=query, timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as resp:
                resp.raise_for_status()
                payload = await resp.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise EngineUnavailableError(f"jukeboxControl {action}: timed out") from e
        except aiohttp.ClientResponseError as e:
            raise EngineUnavailableError(
                f"jukeboxControl {action}: HTTP {e.status} {e.message}") from e
        except aiohttp.ClientError as e:
            raise EngineUnavailableError(f"jukeboxControl {action}: {e}") from e
        except ValueError as e:
            raise EngineProtocolError(f"jukeboxControl {action}: invalid JSON ({e})") from e

        body = payload.get("subsonic-response") if isinstance(payload, dict) else None
        if not isinstance(body, dict):
            raise EngineProtocolError(f"jukeboxControl {action}: missing subsonic-response")
        if body.get("status") != "ok":
            error = body.get("error") or {}
            message = error.get("message") or "request failed"
            raise EngineCommandError(f"jukeboxControl {action}: {message}",
                                     code=error.get("code"))
        logger.debug("jukeboxControl %s ok", action)
        return body

    # ── RemoteEngineClient ──

    async def set_queue(self, ids: list[str]) -> None:
        await self._control("set", [("id", str(i)) for i in ids])
        logger.info("Engine queue set (%d tracks)", len(ids))

    async def skip(self, index: int, offset: int = 0) -> None:
        await self._control("skip", [("index", str(int(index))), ("offset", str(int(offset)))])
        logger.info("Engine skip -> %d @ %ds", index, offset)

    async def start(self) -> None:
        await self._control("start")
        logger.info("Engine started")

    async def stop(self) -> None:
        await self._control("stop")
        logger.info("Engine stopped")

    async def set_gain(self, value: float) -> None:
        await self._control("setGain", [("gain", f"{float(value):.3f}")])
        logger.info("Engine gain -> %.2f", value)

    async def get_status(self) -> Snapshot:
        body = await self._control("get")
        status = body.get("jukeboxPlaylist")
        if status is None:
            status = body.get("jukeboxStatus")
        if not isinstance(status, dict):
            raise EngineProtocolError("jukeboxControl get: no jukeboxPlaylist in response")
        return Snapshot.from_status(status)

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None
