"""Tests for the Jellyfin HTTP client against a local server."""

from __future__ import annotations

import pytest
from conftest import FakeJellyfinServer, session_json

from jellyremote.api import JellyfinApiError, JellyfinClient


@pytest.mark.asyncio
async def test_authenticate_stores_token() -> None:
    async with FakeJellyfinServer() as server:
        client = JellyfinClient(server.url + "/", "dev-9")
        try:
            result = await client.authenticate("alice", "secret")
        finally:
            await client.close()

    assert result["User"]["Name"] == "alice"
    assert client.access_token == "tok-1"
    assert client.user_id == "user-1"
    assert client.is_authenticated
    request = server.requests[0]
    assert request["json"] == {"Username": "alice", "Pw": "secret"}
    assert 'DeviceId="dev-9"' in request["auth"]
    assert "Token=" not in request["auth"]


@pytest.mark.asyncio
async def test_wrong_password_raises_with_status() -> None:
    async with FakeJellyfinServer() as server:
        client = JellyfinClient(server.url, "dev-9")
        try:
            with pytest.raises(JellyfinApiError) as exc_info:
                await client.authenticate("alice", "nope")
        finally:
            await client.close()
    assert exc_info.value.status == 401
    assert not client.is_authenticated


@pytest.mark.asyncio
async def test_validate() -> None:
    async with FakeJellyfinServer() as server:
        good = JellyfinClient(server.url, "dev-9", access_token="tok-1", user_id="user-1")
        bad = JellyfinClient(server.url, "dev-9", access_token="expired", user_id="user-1")
        anonymous = JellyfinClient(server.url, "dev-9")
        try:
            assert await good.validate()
            assert not await bad.validate()
            assert not await anonymous.validate()
        finally:
            for client in (good, bad, anonymous):
                await client.close()
    assert [r["path"] for r in server.requests] == ["/Users/user-1", "/Users/user-1"]


@pytest.mark.asyncio
async def test_fetch_sessions_filters_by_user() -> None:
    async with FakeJellyfinServer() as server:
        server.sessions = [session_json("s1"), "garbage", session_json("s2")]
        client = JellyfinClient(server.url, "dev-9", access_token="tok-1", user_id="user-1")
        try:
            sessions = await client.fetch_controllable_sessions()
        finally:
            await client.close()

    assert [s["Id"] for s in sessions] == ["s1", "s2"]
    assert server.requests[0]["query"] == {"ControllableByUserId": "user-1"}
    assert 'Token="tok-1"' in server.requests[0]["auth"]


@pytest.mark.asyncio
async def test_command_request_shapes() -> None:
    async with FakeJellyfinServer() as server:
        client = JellyfinClient(server.url, "dev-9", access_token="tok-1", user_id="user-1")
        try:
            await client.send_playstate_command("s1", "PlayPause")
            await client.send_playstate_command("s1", "Seek", seek_position_ticks=1234)
            await client.send_command("s1", "ToggleMute")
            await client.send_command("s1", "SetVolume", {"Volume": "40"})
            await client.start_playback("s1", ["a", "b"], play_command="PlayNext")
        finally:
            await client.close()

    requests = [(r["path"], r["query"], r["json"]) for r in server.requests]
    assert requests == [
        ("/Sessions/s1/Playing/PlayPause", {"controllingUserId": "user-1"}, None),
        (
            "/Sessions/s1/Playing/Seek",
            {"seekPositionTicks": "1234", "controllingUserId": "user-1"},
            None,
        ),
        ("/Sessions/s1/Command/ToggleMute", {}, None),
        ("/Sessions/s1/Command", {}, {"Name": "SetVolume", "Arguments": {"Volume": "40"}}),
        (
            "/Sessions/s1/Playing",
            {"itemIds": "a,b", "playCommand": "PlayNext", "controllingUserId": "user-1"},
            None,
        ),
    ]


@pytest.mark.asyncio
async def test_server_error_status() -> None:
    async with FakeJellyfinServer() as server:
        server.fail_status = 500
        client = JellyfinClient(server.url, "dev-9", access_token="tok-1", user_id="user-1")
        try:
            with pytest.raises(JellyfinApiError, match="status 500"):
                await client.send_playstate_command("s1", "Stop")
        finally:
            await client.close()
