"""Constants shared by the Jellyfin remote control."""

from __future__ import annotations

from typing import Final

# Client identification sent in the authorization header
CLIENT_NAME: Final = "Jellyfin Remote CLI"
CLIENT_VERSION: Final = "1.0.0"
DEVICE_NAME: Final = "Terminal Remote"

# Jellyfin time unit: 10,000,000 ticks per second
TICKS_PER_SECOND: Final = 10_000_000

# Polling intervals in seconds
PLAYBACK_POLL_INTERVAL: Final = 1.0
SESSION_REFRESH_INTERVAL: Final = 10.0

# Outbound rate limit for high-frequency quantities (volume, seek)
COMMAND_SEND_INTERVAL: Final = 0.06

# Pending local edits are dropped if the server has not caught up by then
PENDING_EDIT_FAILSAFE: Final = 1.5

VOLUME_MIN: Final = 0
VOLUME_MAX: Final = 100
VOLUME_TOLERANCE: Final = 1

# Rotary magnitude needed to move the volume by one percent
VOLUME_ROTARY_SENSITIVITY: Final = 8.0

SEEK_STEP_SECONDS: Final = 10

DEFAULT_PRESENCE_TITLE: Final = "Jellyfin Remote"

LOST_CONNECTION_MESSAGE: Final = "Lost connection to device"
SESSION_NOT_FOUND_MESSAGE: Final = "Session not found"
COMMAND_FAILED_MESSAGE: Final = "Command failed"

# Rotary magnitude produced by one arrow key press in the terminal UI
ROTARY_KEY_MAGNITUDE: Final = 16.0
