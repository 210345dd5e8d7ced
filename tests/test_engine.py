"""Tests for the Subsonic jukebox client against a local aiohttp server."""

import asyncio
import hashlib

import aiohttp
import pytest
from aiohttp import web
from aiohttp import test_utils

from jukebox.lib.config import JukeboxConfig
from jukebox.lib.engine import SubsonicJukebox
from jukebox.lib.errors import (EngineCommandError, EngineProtocolError,
                                EngineUnavailableError)

OK = {"subsonic-response": {"status": "ok", "version": "1.15.0"}}

PLAYLIST = {
    "subsonic-response": {
        "status": "ok",
        "version": "1.15.0",
        "jukeboxPlaylist": {
            "currentIndex": 1,
            "playing": True,
            "gain": 0.75,
            "position": 42,
            "entry": [
                {"id": "11", "title": "One", "duration": 180},
                {"id": "12", "title": "Two", "duration": 200, "isPodcast": True},
                {"title": "no id"},
            ],
        },
    }
}


class FakeServer:
    """Records each jukeboxControl request and answers from ``responses``."""

    def __init__(self):
        self.requests = []
        self.responses = {}
        self.server = None

    async def handle(self, request):
        self.requests.append(request.query.copy())
        action = request.query.get("action")
        response = self.responses.get(action, OK)
        if isinstance(response, web.StreamResponse):
            return response
        if isinstance(response, str):
            return web.Response(text=response, content_type="application/json")
        return web.json_response(response)

    async def __aenter__(self):
        app = web.Application()
        app.router.add_get("/rest/jukeboxControl.view", self.handle)
        self.server = test_utils.TestServer(app)
        await self.server.start_server()
        return self

    async def __aexit__(self, *exc):
        await self.server.close()

    @property
    def url(self):
        return str(self.server.make_url("/"))

    def client(self, **kwargs):
        return SubsonicJukebox(self.url, "jukebox", "sesame", **kwargs)


def run(scenario):
    async def wrapper():
        async with FakeServer() as server:
            return await scenario(server)
    return asyncio.run(wrapper())


def test_token_auth_params():
    async def scenario(server):
        client = server.client(client_name="tests", api_version="1.16.1")
        await client.start()
        await client.close()
        return server.requests

    [query] = run(scenario)
    assert query["u"] == "jukebox"
    assert query["v"] == "1.16.1"
    assert query["c"] == "tests"
    assert query["f"] == "json"
    assert query["action"] == "start"
    assert "p" not in query
    expected = hashlib.md5(("sesame" + query["s"]).encode()).hexdigest()
    assert query["t"] == expected


def test_salt_changes_per_request():
    async def scenario(server):
        client = server.client()
        await client.start()
        await client.stop()
        await client.close()
        return server.requests

    first, second = run(scenario)
    assert first["s"] != second["s"]
    assert second["action"] == "stop"


def test_command_params():
    async def scenario(server):
        client = server.client()
        await client.set_queue(["a", "b", "c"])
        await client.skip(2, 95)
        await client.set_gain(0.5)
        await client.close()
        return server.requests

    set_q, skip, gain = run(scenario)
    assert set_q["action"] == "set"
    assert set_q.getall("id") == ["a", "b", "c"]
    assert (skip["action"], skip["index"], skip["offset"]) == ("skip", "2", "95")
    assert (gain["action"], gain["gain"]) == ("setGain", "0.500")


def test_get_status():
    async def scenario(server):
        server.responses["get"] = PLAYLIST
        client = server.client()
        snapshot = await client.get_status()
        await client.close()
        return snapshot

    snapshot = run(scenario)
    assert [t.id for t in snapshot.entries] == ["11", "12"]
    assert snapshot.entries[0].duration == 180.0
    assert snapshot.entries[1].is_podcast
    assert snapshot.current_index == 1
    assert snapshot.playing is True
    assert snapshot.gain == 0.75
    assert snapshot.position == 42.0


def test_get_status_accepts_status_only_response():
    async def scenario(server):
        server.responses["get"] = {"subsonic-response": {
            "status": "ok",
            "jukeboxStatus": {"currentIndex": 0, "playing": False, "gain": 0.3},
        }}
        client = server.client()
        snapshot = await client.get_status()
        await client.close()
        return snapshot

    snapshot = run(scenario)
    assert snapshot.entries == []
    assert snapshot.playing is False
    assert snapshot.position is None


def test_get_status_without_body_is_protocol_error():
    async def scenario(server):
        client = server.client()
        try:
            await client.get_status()
        finally:
            await client.close()

    with pytest.raises(EngineProtocolError):
        run(scenario)


def test_failed_status_raises_command_error():
    async def scenario(server):
        server.responses["skip"] = {"subsonic-response": {
            "status": "failed",
            "error": {"code": 0, "message": "Index out of range"},
        }}
        client = server.client()
        try:
            await client.skip(7)
        finally:
            await client.close()

    with pytest.raises(EngineCommandError) as info:
        run(scenario)
    assert info.value.code == 0
    assert "Index out of range" in str(info.value)


def test_http_error_is_unavailable():
    async def scenario(server):
        server.responses["start"] = web.Response(status=500, text="boom")
        client = server.client()
        try:
            await client.start()
        finally:
            await client.close()

    with pytest.raises(EngineUnavailableError):
        run(scenario)


def test_invalid_json_is_protocol_error():
    async def scenario(server):
        server.responses["get"] = "<html>not json"
        client = server.client()
        try:
            await client.get_status()
        finally:
            await client.close()

    with pytest.raises(EngineProtocolError):
        run(scenario)


def test_missing_envelope_is_protocol_error():
    async def scenario(server):
        server.responses["stop"] = {"status": "ok"}
        client = server.client()
        try:
            await client.stop()
        finally:
            await client.close()

    with pytest.raises(EngineProtocolError):
        run(scenario)


def test_unreachable_server_is_unavailable():
    async def scenario():
        # Grab a free port, then close the server so nothing is listening
        async with FakeServer() as server:
            url = server.url
        client = SubsonicJukebox(url, "jukebox", "sesame", timeout=2.0)
        try:
            await client.start()
        finally:
            await client.close()

    with pytest.raises(EngineUnavailableError):
        asyncio.run(scenario())


def test_slow_server_times_out():
    async def slow(request):
        await asyncio.sleep(1)
        return web.json_response(OK)

    async def scenario():
        app = web.Application()
        app.router.add_get("/rest/jukeboxControl.view", slow)
        server = test_utils.TestServer(app)
        await server.start_server()
        client = SubsonicJukebox(str(server.make_url("/")), "jukebox", "sesame", timeout=0.1)
        try:
            await client.start()
        finally:
            await client.close()
            await server.close()

    with pytest.raises(EngineUnavailableError, match="timed out"):
        asyncio.run(scenario())


def test_from_config():
    config = JukeboxConfig(server_url="http://music.local:4040/", user="alice",
                           password="pw", client_name="den", request_timeout=3)
    client = SubsonicJukebox.from_config(config)
    assert client.base_url == "http://music.local:4040"
    assert client.user == "alice"
    assert client.client_name == "den"
    assert client.timeout == 3.0


def test_external_session_is_not_closed():
    async def scenario(server):
        async with aiohttp.ClientSession() as session:
            client = SubsonicJukebox(server.url, "jukebox", "sesame", session=session)
            await client.start()
            await client.close()
            return session.closed

    assert run(scenario) is False
