"""Shared fakes and factories for jellyremote tests.

Fakes implement the collaborator protocols structurally:
- FakeApi: session source and command transport with failure injection
- RecordingSink: presence sink recording start/stop calls
- MemoryPersistence: last-session store
- FakeJellyfinServer: HTTP endpoints for client and sign-in tests
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from aiohttp import ClientConnectionError, web
from aiohttp.test_utils import TestServer

# =============================================================================
# Factories
# =============================================================================


def session_json(
    session_id: str = "s1",
    *,
    device_id: str = "dev-1",
    device_name: str = "Living Room TV",
    client: str = "Jellyfin Web",
    media_control: bool = True,
    item_id: str | None = None,
    item_name: str | None = None,
    position_ticks: int = 0,
    runtime_ticks: int | None = None,
    is_paused: bool = False,
    volume: int | None = 50,
    is_muted: bool = False,
) -> dict[str, Any]:
    """Build a raw ``/Sessions`` entry the way the server reports it."""
    data: dict[str, Any] = {
        "Id": session_id,
        "DeviceId": device_id,
        "DeviceName": device_name,
        "Client": client,
        "ApplicationVersion": "10.9.0",
        "UserId": "user-1",
        "UserName": "alice",
        "SupportsMediaControl": media_control,
        "SupportsRemoteControl": media_control,
        "PlayState": {
            "PositionTicks": position_ticks,
            "IsPaused": is_paused,
            "IsMuted": is_muted,
            "VolumeLevel": volume,
            "PlayMethod": "DirectPlay",
        },
        "Capabilities": {"PlayableMediaTypes": ["Audio", "Video"]},
    }
    if item_id is not None:
        data["NowPlayingItem"] = {
            "Id": item_id,
            "Name": item_name or "Some Title",
            "Type": "Movie",
            "RunTimeTicks": runtime_ticks,
        }
    return data


# =============================================================================
# Fakes
# =============================================================================


class FakeApi:
    """In-memory stand-in for ``JellyfinClient``."""

    def __init__(self, sessions: list[dict[str, Any]] | None = None) -> None:
        self.sessions: list[dict[str, Any]] = sessions or []
        self.fetch_count = 0
        self.fetch_error: BaseException | None = None
        # One-shot failures, consumed before fetch_error is consulted
        self.fetch_errors: list[BaseException] = []
        # Optional per-fetch hook; awaited before answering
        self.fetch_gates: list[asyncio.Event] = []
        self.calls: list[tuple[Any, ...]] = []
        self.command_error: BaseException | None = None
        self.command_delay = 0.0

    async def fetch_controllable_sessions(self) -> list[dict[str, Any]]:
        self.fetch_count += 1
        sessions = list(self.sessions)
        if self.fetch_gates:
            gate = self.fetch_gates.pop(0)
            await gate.wait()
        if self.fetch_errors:
            raise self.fetch_errors.pop(0)
        if self.fetch_error is not None:
            raise self.fetch_error
        return sessions

    async def _command(self, call: tuple[Any, ...]) -> None:
        if self.command_delay:
            await asyncio.sleep(self.command_delay)
        self.calls.append(call)
        if self.command_error is not None:
            raise self.command_error

    async def send_playstate_command(
        self, session_id: str, command: str, *, seek_position_ticks: int | None = None
    ) -> None:
        await self._command(("playstate", session_id, command, seek_position_ticks))

    async def send_command(
        self, session_id: str, command: str, arguments: dict[str, str] | None = None
    ) -> None:
        await self._command(("command", session_id, command, arguments))

    async def start_playback(
        self,
        session_id: str,
        item_ids: list[str],
        *,
        start_position_ticks: int | None = None,
        play_command: str = "PlayNow",
    ) -> None:
        await self._command(("play", session_id, play_command, item_ids, start_position_ticks))

    def commands(self) -> list[str]:
        """Names of the commands sent so far, in order."""
        return [call[2] for call in self.calls]


class RecordingSink:
    """Presence sink recording every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str | None]] = []
        self.fail_start = False
        self.fail_stop = False
        self.delay = 0.0

    async def start(self, title: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.calls.append(("start", title))
        if self.fail_start:
            raise RuntimeError("no indicator service")

    async def stop(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.calls.append(("stop", None))
        if self.fail_stop:
            raise RuntimeError("no indicator service")


class MemoryPersistence:
    """Last-session store kept in memory."""

    def __init__(self, last_session_id: str | None = None) -> None:
        self.last_session_id = last_session_id

    def get_last_session_id(self) -> str | None:
        return self.last_session_id

    def save_last_session(self, session_id: str) -> None:
        self.last_session_id = session_id

    def clear_last_session(self) -> None:
        self.last_session_id = None


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def persistence() -> MemoryPersistence:
    return MemoryPersistence()


@pytest.fixture
def connection_error() -> ClientConnectionError:
    return ClientConnectionError("connection refused")


# =============================================================================
# HTTP server
# =============================================================================


class FakeJellyfinServer:
    """Small aiohttp application answering the endpoints the client uses.

    Use as an async context manager; ``url`` is valid inside the block.
    """

    USER = {"Id": "user-1", "Name": "alice"}

    def __init__(self, *, password: str = "secret", token: str = "tok-1") -> None:
        self.password = password
        self.token = token
        self.sessions: list[Any] = []
        self.fail_status: int | None = None
        self.requests: list[dict[str, Any]] = []
        self.app = web.Application(middlewares=[self._record])
        self.app.router.add_post("/Users/AuthenticateByName", self._authenticate)
        self.app.router.add_get("/Users/Me", self._me)
        self.app.router.add_get("/Users/{user_id}", self._user)
        self.app.router.add_get("/Sessions", self._sessions)
        self.app.router.add_post("/Sessions/{session_id}/Playing/{command}", self._empty)
        self.app.router.add_post("/Sessions/{session_id}/Playing", self._empty)
        self.app.router.add_post("/Sessions/{session_id}/Command/{command}", self._empty)
        self.app.router.add_post("/Sessions/{session_id}/Command", self._empty)
        self._server: TestServer | None = None

    @property
    def url(self) -> str:
        assert self._server is not None
        return str(self._server.make_url("")).rstrip("/")

    async def __aenter__(self) -> FakeJellyfinServer:
        self._server = TestServer(self.app)
        await self._server.start_server()
        return self

    async def __aexit__(self, *exc: object) -> None:
        assert self._server is not None
        await self._server.close()

    @web.middleware
    async def _record(self, request: web.Request, handler: Any) -> web.StreamResponse:
        body = await request.json() if request.can_read_body else None
        self.requests.append(
            {
                "method": request.method,
                "path": request.path,
                "query": dict(request.query),
                "auth": request.headers.get("X-Emby-Authorization", ""),
                "json": body,
            }
        )
        if self.fail_status is not None:
            return web.Response(status=self.fail_status)
        return await handler(request)

    def _authorized(self, request: web.Request) -> bool:
        return f'Token="{self.token}"' in request.headers.get("X-Emby-Authorization", "")

    async def _authenticate(self, request: web.Request) -> web.Response:
        body = await request.json()
        if body.get("Pw") != self.password:
            return web.Response(status=401)
        return web.json_response({"AccessToken": self.token, "User": self.USER})

    async def _me(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return web.Response(status=401)
        return web.json_response(self.USER)

    async def _user(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return web.Response(status=401)
        return web.json_response(self.USER)

    async def _sessions(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return web.Response(status=401)
        return web.json_response(self.sessions)

    async def _empty(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return web.Response(status=401)
        return web.Response(status=204)
