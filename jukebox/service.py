#!/usr/bin/env python3
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Jukebox Remote service (beo-jukebox)

Keeps a local view of a Subsonic jukebox in sync (ReconciliationLoop), takes
user intents over HTTP (CommandDispatcher) and pushes the resulting state to
UI clients over WebSocket.

  GET  /ws                 — player_update push feed
  GET  /player/status      — current state + loop counters
  POST /player/play        — {"tracks": [...], "index": n} | {"index": n} | {}
  POST /player/play_now    — {"tracks": [...]}  (shuffle off, from the top)
  POST /player/shuffle_now — {"tracks": [...]}  (shuffle on)
  POST /player/pause  /resume  /toggle  /next  /prev  /reset
  POST /player/seek        — {"position": 0.0-1.0}
  POST /player/volume      — {"volume": 0.0-1.0}
  POST /player/rate        — {"rate": r}  (podcast playback rate)
  POST /player/repeat      — toggle
  POST /player/shuffle     — toggle, or {"enable": bool}
  POST /queue/add  /queue/next   — {"tracks": [...]}
  POST /queue/remove       — {"index": n}
  POST /queue/clear  /queue/shuffle

Port: 8780
"""

import asyncio
import json
import logging
import math
import signal

from aiohttp import web

from .controller import (CommandDispatcher, PlayerStore, ReconciliationLoop,
                         StateActor, Track)
from .lib.config import JukeboxConfig
from .lib.engine import SubsonicJukebox
from .lib.errors import JukeboxError
from .lib.settings import SettingsStore
from .lib.watchdog import Heartbeat, sd_notify

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] %(levelname)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("beo-jukebox")


def _cors_headers():
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
    }


def _parse_tracks(data: dict) -> list[Track]:
    raw = data.get("tracks")
    if not isinstance(raw, list):
        raise web.HTTPBadRequest(text="'tracks' must be a list")
    tracks = []
    for item in raw:
        if isinstance(item, (str, int)):
            tracks.append(Track(str(item)))
        elif isinstance(item, dict) and "id" in item:
            tracks.append(Track.from_entry(item))
        else:
            raise web.HTTPBadRequest(text=f"Invalid track entry: {item!r}")
    return tracks


def _number(data: dict, key: str) -> float:
    try:
        value = float(data[key])
    except (KeyError, TypeError, ValueError):
        raise web.HTTPBadRequest(text=f"'{key}' must be a number")
    if not math.isfinite(value):
        raise web.HTTPBadRequest(text=f"'{key}' must be finite")
    return value


class JukeboxService:
    """Wires store, engine, loop and dispatcher together behind aiohttp."""

    def __init__(self, config: JukeboxConfig, engine=None, settings=None, rng=None):
        self.config = config
        self.settings = settings or SettingsStore(config.settings_path)
        self.engine = engine or SubsonicJukebox.from_config(config)
        self.store = PlayerStore(self.settings, rng=rng)
        self.actor = StateActor() if config.reconcile_mode == "strict" else None
        self.dispatcher = CommandDispatcher(self.store, self.engine, actor=self.actor)
        self.loop = ReconciliationLoop(
            self.store, self.engine,
            interval=config.poll_interval,
            mode=config.reconcile_mode,
            actor=self.actor,
            on_error=self._on_poll_error,
        )
        self.running = False
        self._runner: web.AppRunner | None = None
        self._ws_clients: set[web.WebSocketResponse] = set()
        self._broadcast_task: asyncio.Task | None = None
        self._watchdog_task: asyncio.Task | None = None
        self._last_broadcast: str | None = None
        self._pending_reason: str | None = None
        self.heartbeat = Heartbeat(self.loop, interval=max(20.0, 2 * config.poll_interval))
        self._last_poll_error: str | None = None
        self.store.add_listener(self._on_store_change)

    # ── App ──

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/ws", self._handle_ws)
        app.router.add_get("/player/status", self._handle_status)

        player = {
            "play": self._handle_play,
            "play_now": self._handle_play_now,
            "shuffle_now": self._handle_shuffle_now,
            "pause": self._simple(self.dispatcher.pause),
            "resume": self._simple(self.dispatcher.resume),
            "toggle": self._simple(self.dispatcher.play_pause),
            "next": self._simple(self.dispatcher.next),
            "prev": self._simple(self.dispatcher.previous),
            "reset": self._simple(self.dispatcher.reset_queue),
            "repeat": self._simple(self.dispatcher.toggle_repeat),
            "seek": self._handle_seek,
            "volume": self._handle_volume,
            "rate": self._handle_rate,
            "shuffle": self._handle_shuffle,
        }
        for name, handler in player.items():
            app.router.add_post(f"/player/{name}", handler)

        app.router.add_post("/queue/add", self._handle_queue_add)
        app.router.add_post("/queue/next", self._handle_queue_next)
        app.router.add_post("/queue/remove", self._handle_queue_remove)
        app.router.add_post("/queue/clear", self._simple(self.dispatcher.clear_queue))
        app.router.add_post("/queue/shuffle", self._simple(self.dispatcher.shuffle_queue))
        return app

    async def start(self):
        """Start listening, then begin polling the engine."""
        self.running = True
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.config.service_host, self.config.service_port)
        await site.start()
        logger.info("Jukebox: HTTP + WebSocket on port %d, engine %s",
                    self.config.service_port, self.config.server_url)

        if self.actor is not None:
            self.actor.start()
        self.loop.start()
        self._watchdog_task = asyncio.create_task(self.heartbeat.run())

    async def run(self):
        """Convenience entry-point: start + wait for signal + stop."""
        await self.start()
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)
        try:
            await stop_event.wait()
        finally:
            await self.shutdown()

    async def shutdown(self):
        """Clean up resources."""
        self.running = False
        sd_notify("STOPPING=1")
        await self.loop.stop()
        if self.actor is not None:
            await self.actor.stop()
        for task in (self._watchdog_task, self._broadcast_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._watchdog_task = None
        self._broadcast_task = None

        for ws in list(self._ws_clients):
            await ws.close()
        self._ws_clients.clear()
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        await self.engine.close()

    # ── State push ──

    def status_data(self) -> dict:
        data = self.store.to_dict()
        data["sync"] = {
            "mode": self.loop.mode,
            "ticks": self.loop.ticks,
            "skipped": self.loop.skipped_ticks,
            "failed": self.loop.failed_ticks,
            "discarded": self.loop.discarded_snapshots,
            "superseded": self.dispatcher.superseded,
            "lastError": self._last_poll_error,
        }
        return data

    def _on_poll_error(self, error):
        self._last_poll_error = str(error)

    def _on_store_change(self, reason: str):
        if not self._ws_clients:
            return
        # Coalesce: a change during a running broadcast is sent right after it
        self._pending_reason = reason
        if self._broadcast_task is None or self._broadcast_task.done():
            self._broadcast_task = asyncio.create_task(self._flush_broadcasts())

    async def _flush_broadcasts(self):
        while self._pending_reason is not None:
            reason, self._pending_reason = self._pending_reason, None
            try:
                await self.broadcast(reason)
            except Exception as e:
                logger.error("Broadcast failed: %s", e, exc_info=True)

    async def broadcast(self, reason: str = "update"):
        """Push the store to all WebSocket clients if it changed."""
        payload = self.store.to_dict()
        encoded = json.dumps(payload, sort_keys=True)
        if encoded == self._last_broadcast:
            return
        self._last_broadcast = encoded

        message = json.dumps({"type": "player_update", "reason": reason, "data": payload})
        disconnected = set()
        for ws in list(self._ws_clients):
            try:
                await ws.send_str(message)
            except Exception:
                disconnected.add(ws)
        self._ws_clients -= disconnected
        logger.debug("Broadcast player update to %d clients: %s",
                     len(self._ws_clients), reason)

    async def _handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self._ws_clients.add(ws)
        logger.info("WebSocket client connected (%d total)", len(self._ws_clients))
        try:
            await ws.send_json({"type": "player_update", "reason": "client_connect",
                                "data": self.store.to_dict()})
            # Push-only, incoming messages are ignored
            async for _msg in ws:
                pass
        finally:
            self._ws_clients.discard(ws)
            logger.info("WebSocket client disconnected (%d remaining)", len(self._ws_clients))
        return ws

    # ── HTTP handlers ──

    async def _run(self, coro) -> web.Response:
        try:
            await coro
        except JukeboxError as e:
            logger.warning("Command failed: %s", e)
            return web.json_response({"status": "error", "error": str(e)},
                                     status=502, headers=_cors_headers())
        return web.json_response({"status": "ok"}, headers=_cors_headers())

    def _simple(self, intent):
        """Handler for an intent that takes no arguments."""
        async def handler(request: web.Request) -> web.Response:
            return await self._run(intent())
        return handler

    @staticmethod
    async def _body(request: web.Request) -> dict:
        if not request.can_read_body:
            return {}
        try:
            data = await request.json()
        except ValueError:
            raise web.HTTPBadRequest(text="Body must be JSON")
        if not isinstance(data, dict):
            raise web.HTTPBadRequest(text="Body must be a JSON object")
        return data

    async def _handle_status(self, request: web.Request) -> web.Response:
        return web.json_response(self.status_data(), headers=_cors_headers())

    async def _handle_play(self, request: web.Request) -> web.Response:
        data = await self._body(request)
        if "tracks" in data:
            tracks = _parse_tracks(data)
            index = data.get("index")
            if index is not None:
                index = int(_number(data, "index"))
            return await self._run(self.dispatcher.play_track_list(tracks, index))
        if "index" in data:
            return await self._run(
                self.dispatcher.play_track_list_index(int(_number(data, "index"))))
        return await self._run(self.dispatcher.resume())

    async def _handle_play_now(self, request: web.Request) -> web.Response:
        tracks = _parse_tracks(await self._body(request))
        return await self._run(self.dispatcher.play_now(tracks))

    async def _handle_shuffle_now(self, request: web.Request) -> web.Response:
        tracks = _parse_tracks(await self._body(request))
        return await self._run(self.dispatcher.shuffle_now(tracks))

    async def _handle_seek(self, request: web.Request) -> web.Response:
        position = _number(await self._body(request), "position")
        return await self._run(self.dispatcher.seek(position))

    async def _handle_volume(self, request: web.Request) -> web.Response:
        volume = _number(await self._body(request), "volume")
        return await self._run(self.dispatcher.set_volume(volume))

    async def _handle_rate(self, request: web.Request) -> web.Response:
        rate = _number(await self._body(request), "rate")
        return await self._run(self.dispatcher.set_playback_rate(rate))

    async def _handle_shuffle(self, request: web.Request) -> web.Response:
        data = await self._body(request)
        if "enable" in data:
            return await self._run(self.dispatcher.set_shuffle(bool(data["enable"])))
        return await self._run(self.dispatcher.toggle_shuffle())

    async def _handle_queue_add(self, request: web.Request) -> web.Response:
        tracks = _parse_tracks(await self._body(request))
        return await self._run(self.dispatcher.add_to_queue(tracks))

    async def _handle_queue_next(self, request: web.Request) -> web.Response:
        tracks = _parse_tracks(await self._body(request))
        return await self._run(self.dispatcher.set_next_in_queue(tracks))

    async def _handle_queue_remove(self, request: web.Request) -> web.Response:
        index = int(_number(await self._body(request), "index"))
        return await self._run(self.dispatcher.remove_from_queue(index))


def main():
    config = JukeboxConfig.load()
    logging.getLogger().setLevel(getattr(logging, config.log_level, logging.INFO))
    service = JukeboxService(config)
    asyncio.run(service.run())


if __name__ == "__main__":
    main()
