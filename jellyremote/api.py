"""HTTP transport for the Jellyfin sessions API."""

from __future__ import annotations

import logging
import time
from typing import Any

from aiohttp import ClientResponse, ClientSession, ClientTimeout

from jellyremote.constants import CLIENT_NAME, CLIENT_VERSION, DEVICE_NAME
from jellyremote.utils import redact_token

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = ClientTimeout(total=30, connect=10)


class JellyfinApiError(Exception):
    """Raised when the server answers with a non-success status."""

    def __init__(self, status: int, method: str, path: str) -> None:
        """Initialize the error with the failed request."""
        super().__init__(f"{method} {path} failed with status {status}")
        self.status = status
        self.method = method
        self.path = path


class JellyfinClient:
    """Minimal Jellyfin REST client for controlling remote sessions.

    Every request carries the ``X-Emby-Authorization`` header identifying this
    controller; the access token is added once authenticated.
    """

    def __init__(
        self,
        server_url: str,
        device_id: str,
        *,
        session: ClientSession | None = None,
        access_token: str | None = None,
        user_id: str | None = None,
        device_name: str = DEVICE_NAME,
    ) -> None:
        """Initialize the client.

        Args:
            server_url: Base URL of the Jellyfin server.
            device_id: Persistent id of this controller device.
            session: Optional aiohttp session. If None, one is created lazily
                and closed by close().
            access_token: Previously issued access token, if any.
            user_id: Id of the authenticated user, if known.
            device_name: Device name reported to the server.
        """
        self._server_url = server_url.rstrip("/")
        self._device_id = device_id
        self._device_name = device_name
        self._session = session
        self._owns_session = session is None
        self._access_token = access_token
        self._user_id = user_id

    @property
    def server_url(self) -> str:
        return self._server_url

    @property
    def device_id(self) -> str:
        return self._device_id

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def access_token(self) -> str | None:
        return self._access_token

    @property
    def is_authenticated(self) -> bool:
        return self._access_token is not None and self._user_id is not None

    def set_authentication(self, access_token: str, user_id: str) -> None:
        """Use an existing access token."""
        self._access_token = access_token
        self._user_id = user_id
        logger.debug("Using token %s for user %s", redact_token(access_token), user_id)

    def _auth_header(self) -> str:
        parts = [
            f'MediaBrowser Client="{CLIENT_NAME}"',
            f'Device="{self._device_name}"',
            f'DeviceId="{self._device_id}"',
            f'Version="{CLIENT_VERSION}"',
        ]
        if self._access_token is not None:
            parts.append(f'Token="{self._access_token}"')
        return ", ".join(parts)

    def _get_session(self) -> ClientSession:
        if self._session is None or self._session.closed:
            self._session = ClientSession(timeout=DEFAULT_TIMEOUT)
            self._owns_session = True
        return self._session

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Send a request and return the decoded JSON body (None if empty)."""
        session = self._get_session()
        url = f"{self._server_url}{path}"
        started = time.monotonic()
        logger.debug("HTTP %s %s params=%s", method, path, params)

        async with session.request(
            method,
            url,
            params=params,
            json=json,
            headers={"X-Emby-Authorization": self._auth_header()},
        ) as response:
            elapsed_ms = (time.monotonic() - started) * 1000
            logger.debug("HTTP %s %s -> %d (%.0fms)", method, path, response.status, elapsed_ms)
            if not 200 <= response.status < 300:
                raise JellyfinApiError(response.status, method, path)
            return await _read_json(response)

    async def authenticate(self, username: str, password: str) -> dict[str, Any]:
        """Log in with username and password, storing the issued token."""
        data = await self._request(
            "POST",
            "/Users/AuthenticateByName",
            json={"Username": username, "Pw": password},
        )
        if not isinstance(data, dict) or "AccessToken" not in data:
            raise ValueError("Authentication response did not contain an access token")
        user = data.get("User") or {}
        self.set_authentication(str(data["AccessToken"]), str(user.get("Id", "")))
        logger.info("Authenticated as %s", user.get("Name", username))
        return data

    async def validate(self) -> bool:
        """Check that the stored token is still accepted by the server."""
        if not self.is_authenticated:
            return False
        try:
            await self._request("GET", f"/Users/{self._user_id}")
        except JellyfinApiError as e:
            logger.info("Stored credentials rejected (status %d)", e.status)
            return False
        return True

    async def fetch_current_user(self) -> dict[str, Any]:
        """Fetch the user the access token belongs to."""
        data = await self._request("GET", "/Users/Me")
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected /Users/Me payload: {type(data).__name__}")
        return data

    async def fetch_controllable_sessions(self) -> list[dict[str, Any]]:
        """Fetch the raw active sessions controllable by the current user."""
        params: dict[str, Any] = {}
        if self._user_id:
            params["ControllableByUserId"] = self._user_id
        data = await self._request("GET", "/Sessions", params=params)
        if not isinstance(data, list):
            raise ValueError(f"Unexpected /Sessions payload: {type(data).__name__}")
        return [entry for entry in data if isinstance(entry, dict)]

    async def send_playstate_command(
        self,
        session_id: str,
        command: str,
        *,
        seek_position_ticks: int | None = None,
    ) -> None:
        """Send a playstate command (``POST /Sessions/{id}/Playing/{command}``)."""
        params: dict[str, Any] = {}
        if seek_position_ticks is not None:
            params["seekPositionTicks"] = seek_position_ticks
        # Some server versions require the controlling user
        if self._user_id:
            params["controllingUserId"] = self._user_id
        await self._request(
            "POST", f"/Sessions/{session_id}/Playing/{command}", params=params or None
        )

    async def send_command(
        self,
        session_id: str,
        command: str,
        arguments: dict[str, str] | None = None,
    ) -> None:
        """Send a general command.

        Commands without arguments go to ``/Sessions/{id}/Command/{command}``;
        commands with arguments are posted as a body to ``/Sessions/{id}/Command``.
        """
        if arguments:
            await self._request(
                "POST",
                f"/Sessions/{session_id}/Command",
                json={"Name": command, "Arguments": arguments},
            )
        else:
            await self._request("POST", f"/Sessions/{session_id}/Command/{command}")

    async def start_playback(
        self,
        session_id: str,
        item_ids: list[str],
        *,
        start_position_ticks: int | None = None,
        play_command: str = "PlayNow",
    ) -> None:
        """Start (or queue) items on a session (``POST /Sessions/{id}/Playing``)."""
        params: dict[str, Any] = {
            "itemIds": ",".join(item_ids),
            "playCommand": play_command,
        }
        if start_position_ticks is not None:
            params["startPositionTicks"] = start_position_ticks
        if self._user_id:
            params["controllingUserId"] = self._user_id
        await self._request("POST", f"/Sessions/{session_id}/Playing", params=params)

    async def close(self) -> None:
        """Close the underlying HTTP session if this client created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


async def _read_json(response: ClientResponse) -> Any:
    body = await response.read()
    if not body:
        return None
    return await response.json(content_type=None)
