"""Sign in to a Jellyfin server using arguments or stored credentials."""

from __future__ import annotations

import logging

from aiohttp import ClientError

from jellyremote.api import JellyfinApiError, JellyfinClient
from jellyremote.settings import SettingsManager

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Raised when no usable credentials are available."""


async def sign_in(
    settings: SettingsManager,
    *,
    server_url: str | None = None,
    username: str | None = None,
    password: str | None = None,
    token: str | None = None,
    user_id: str | None = None,
) -> JellyfinClient:
    """Return an authenticated client, persisting the credentials used.

    Explicit arguments win over stored settings. An explicit token is used as
    is (looking up its user when ``user_id`` is not given); a username logs in
    with a password; otherwise the stored token is validated.

    Raises:
        AuthenticationError: If no server is known or every credential fails.
    """
    url = server_url or settings.server_url
    if not url:
        raise AuthenticationError("No server URL given (use --url)")
    url = url.rstrip("/")

    stored_token = settings.access_token if url == settings.server_url else None
    client = JellyfinClient(url, settings.ensure_device_id())
    user_name: str | None = None

    try:
        if token:
            client.set_authentication(token, user_id or "")
            if not user_id:
                user = await client.fetch_current_user()
                client.set_authentication(token, str(user.get("Id", "")))
                user_name = user.get("Name")
            if not await client.validate():
                raise AuthenticationError("The given access token was rejected")
        elif username:
            result = await client.authenticate(username, password or "")
            user_name = (result.get("User") or {}).get("Name", username)
        elif stored_token and settings.user_id:
            client.set_authentication(stored_token, settings.user_id)
            if not await client.validate():
                settings.clear_credentials()
                raise AuthenticationError("Stored credentials expired; sign in with --username")
            user_name = settings.user_name
        else:
            raise AuthenticationError("Not signed in; pass --username or --token")
    except AuthenticationError:
        await client.close()
        raise
    except JellyfinApiError as e:
        await client.close()
        if e.status in (401, 403):
            raise AuthenticationError("Invalid username or password") from e
        raise AuthenticationError(f"Server error: {e}") from e
    except (TimeoutError, OSError, ClientError, ValueError) as e:
        await client.close()
        raise AuthenticationError(f"Could not reach {url}: {e}") from e

    settings.update(
        server_url=url,
        access_token=client.access_token,
        user_id=client.user_id,
        user_name=user_name,
    )
    return client
