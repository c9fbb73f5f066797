"""Settings persistence for the Jellyfin remote.

Credentials, the controller's device id and the last controlled session are
stored as JSON. Settings are loaded from disk at startup and saved with
debouncing.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from jellyremote.utils import redact_token

logger = logging.getLogger(__name__)


class _UndefinedType:
    """Singleton for undefined/not-passed values."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "UNDEFINED"


UNDEFINED = _UndefinedType()

# Debounce delay for saving settings
SAVE_DEBOUNCE_SECONDS = 2.0

SETTINGS_FILE_NAME = "settings.json"


@dataclass
class Settings:
    """All persistent settings for the Jellyfin remote."""

    server_url: str | None = None
    access_token: str | None = None
    user_id: str | None = None
    user_name: str | None = None
    device_id: str | None = None
    last_session_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to a dictionary for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Settings:
        """Create settings from a dictionary, ignoring unknown keys."""
        return cls(
            server_url=data.get("server_url"),
            access_token=data.get("access_token"),
            user_id=data.get("user_id"),
            user_name=data.get("user_name"),
            device_id=data.get("device_id"),
            last_session_id=data.get("last_session_id"),
        )


class SettingsManager:
    """Manages settings with debounced disk persistence.

    Changes are saved after a short period of inactivity, or immediately on
    flush(). Also serves as the last-session store of the session selector.
    """

    def __init__(self, settings_file: Path) -> None:
        """Initialize the settings manager.

        Args:
            settings_file: Path to the settings file.
        """
        self._settings_file = settings_file
        self._settings = Settings()
        self._debounce_save_handle: asyncio.TimerHandle | None = None

    async def load(self) -> None:
        """Load settings from disk."""
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._load)

    @property
    def settings_file(self) -> Path:
        return self._settings_file

    @property
    def server_url(self) -> str | None:
        return self._settings.server_url

    @property
    def access_token(self) -> str | None:
        return self._settings.access_token

    @property
    def user_id(self) -> str | None:
        return self._settings.user_id

    @property
    def user_name(self) -> str | None:
        return self._settings.user_name

    @property
    def device_id(self) -> str | None:
        return self._settings.device_id

    def update(
        self,
        *,
        server_url: str | None | _UndefinedType = UNDEFINED,
        access_token: str | None | _UndefinedType = UNDEFINED,
        user_id: str | None | _UndefinedType = UNDEFINED,
        user_name: str | None | _UndefinedType = UNDEFINED,
        device_id: str | None | _UndefinedType = UNDEFINED,
        last_session_id: str | None | _UndefinedType = UNDEFINED,
    ) -> None:
        """Update settings fields. Only changed fields trigger a save.

        Every argument left as UNDEFINED keeps its current value.
        """
        if isinstance(server_url, str):
            server_url = server_url.rstrip("/")

        changed = False
        fields = {
            "server_url": server_url,
            "access_token": access_token,
            "user_id": user_id,
            "user_name": user_name,
            "device_id": device_id,
            "last_session_id": last_session_id,
        }
        for name, value in fields.items():
            if not isinstance(value, _UndefinedType):
                if getattr(self._settings, name) != value:
                    setattr(self._settings, name, value)
                    changed = True

        if changed:
            self._schedule_save()

    def clear_credentials(self) -> None:
        """Forget the stored token and user."""
        self.update(access_token=None, user_id=None, user_name=None)

    def ensure_device_id(self) -> str:
        """Return the controller's device id, creating one on first use."""
        if self._settings.device_id is None:
            device_id = uuid.uuid4().hex
            logger.info("Generated device id %s", device_id)
            self.update(device_id=device_id)
            return device_id
        return self._settings.device_id

    def get_last_session_id(self) -> str | None:
        return self._settings.last_session_id

    def save_last_session(self, session_id: str) -> None:
        self.update(last_session_id=session_id)

    def clear_last_session(self) -> None:
        self.update(last_session_id=None)

    async def flush(self) -> None:
        """Immediately save any pending changes to disk."""
        if self._debounce_save_handle is not None:
            self._debounce_save_handle.cancel()
            self._debounce_save_handle = None
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._save)

    def _schedule_save(self) -> None:
        """Schedule a debounced save operation."""
        # Cancel existing timer if any
        if self._debounce_save_handle is not None:
            self._debounce_save_handle.cancel()

        loop = asyncio.get_running_loop()
        self._debounce_save_handle = loop.call_later(
            SAVE_DEBOUNCE_SECONDS, self._debounced_save, loop
        )

    def _debounced_save(self, loop: asyncio.AbstractEventLoop) -> None:
        """Called by the timer to save settings in executor."""
        self._debounce_save_handle = None
        loop.run_in_executor(None, self._save)

    def _load(self) -> None:
        """Load settings from the settings file (blocking I/O)."""
        if not self._settings_file.exists():
            logger.debug("Settings file does not exist: %s", self._settings_file)
            return

        try:
            data = json.loads(self._settings_file.read_text())
            self._settings = Settings.from_dict(data)
            logger.info(
                "Loaded settings from %s: server=%s, user=%s, token=%s",
                self._settings_file,
                self._settings.server_url,
                self._settings.user_name,
                redact_token(self._settings.access_token),
            )
        except (json.JSONDecodeError, OSError, AttributeError) as e:
            logger.warning("Failed to load settings from %s: %s", self._settings_file, e)

    def _save(self) -> None:
        """Save settings to the settings file (blocking I/O)."""
        try:
            self._settings_file.parent.mkdir(parents=True, exist_ok=True)
            self._settings_file.write_text(json.dumps(self._settings.to_dict(), indent=2) + "\n")
            self._settings_file.chmod(0o600)
            logger.debug("Saved settings to %s", self._settings_file)
        except OSError as e:
            logger.warning("Failed to save settings to %s: %s", self._settings_file, e)


async def get_settings_manager(config_dir: Path | str | None = None) -> SettingsManager:
    """Create and load the settings manager.

    This should only be called once at startup. Pass the returned instance
    to components that need it.

    Args:
        config_dir: Optional directory to store settings. Defaults to
            ~/.config/jellyremote.

    Returns:
        A new SettingsManager instance with settings loaded from disk.
    """
    if config_dir is None:
        config_dir = Path.home() / ".config" / "jellyremote"
    elif isinstance(config_dir, str):
        config_dir = Path(config_dir)
    manager = SettingsManager(config_dir / SETTINGS_FILE_NAME)
    await manager.load()
    return manager
