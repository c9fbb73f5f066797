"""Data model for remote-controlled Jellyfin sessions.

Jellyfin reports sessions as PascalCase JSON objects. The ``from_json``
constructors here are tolerant: missing keys fall back to the values the
server uses when nothing is reported, unknown keys are ignored.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from jellyremote.constants import TICKS_PER_SECOND


def _opt_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _opt_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    return int(value)


def format_ticks(ticks: int | None) -> str:
    """Format ticks as ``M:SS`` or ``H:MM:SS``."""
    if ticks is None:
        return "--:--"
    total_seconds = max(0, ticks // TICKS_PER_SECOND)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"


@dataclass(frozen=True)
class MediaStreamInfo:
    """An audio or subtitle track of the now-playing item."""

    index: int
    type: str
    codec: str | None = None
    language: str | None = None
    display_title: str | None = None
    is_default: bool = False
    is_forced: bool = False
    is_external: bool = False
    channels: int | None = None

    @property
    def name(self) -> str:
        """User-friendly track name."""
        if self.display_title:
            return self.display_title

        parts: list[str] = []
        if self.language:
            parts.append(self.language)
        if self.codec:
            parts.append(self.codec.upper())
        if self.channels is not None and self.type.lower() == "audio":
            parts.append(f"{self.channels}ch")
        if self.is_default:
            parts.append("Default")
        if self.is_forced:
            parts.append("Forced")
        return " • ".join(parts) if parts else f"Track {self.index + 1}"

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> MediaStreamInfo:
        """Create a stream descriptor from a ``MediaStreams`` entry."""
        return cls(
            index=_opt_int(data.get("Index")) or 0,
            type=str(data.get("Type") or ""),
            codec=_opt_str(data.get("Codec")),
            language=_opt_str(data.get("Language")),
            display_title=_opt_str(data.get("DisplayTitle")),
            is_default=data.get("IsDefault") is True,
            is_forced=data.get("IsForced") is True,
            is_external=data.get("IsExternal") is True,
            channels=_opt_int(data.get("Channels")),
        )


@dataclass(frozen=True)
class PlaybackSnapshot:
    """One poll result describing a session's playback state."""

    position_ticks: int = 0
    duration_ticks: int | None = None
    is_paused: bool = True
    is_muted: bool = False
    volume_level: int = 100
    now_playing_id: str | None = None
    now_playing_name: str | None = None
    now_playing_type: str | None = None
    now_playing_artist: str | None = None
    now_playing_album: str | None = None
    audio_streams: tuple[MediaStreamInfo, ...] = ()
    subtitle_streams: tuple[MediaStreamInfo, ...] = ()
    selected_audio_index: int | None = None
    selected_subtitle_index: int | None = None
    play_method: str | None = None

    @property
    def has_media(self) -> bool:
        """Whether any media is loaded (playing or paused)."""
        return self.now_playing_id is not None

    @property
    def is_playing(self) -> bool:
        """Whether media is loaded and not paused."""
        return self.has_media and not self.is_paused

    @property
    def progress(self) -> float | None:
        """Position as a fraction of the duration, None when unknown."""
        if self.duration_ticks is None or self.duration_ticks <= 0:
            return None
        return min(1.0, max(0.0, self.position_ticks / self.duration_ticks))

    @property
    def position_seconds(self) -> int:
        return self.position_ticks // TICKS_PER_SECOND

    @property
    def duration_seconds(self) -> int | None:
        if self.duration_ticks is None:
            return None
        return self.duration_ticks // TICKS_PER_SECOND

    def with_position(self, position_ticks: int) -> PlaybackSnapshot:
        """Return a copy with a different position."""
        return dataclasses.replace(self, position_ticks=position_ticks)

    def with_volume(self, volume_level: int) -> PlaybackSnapshot:
        """Return a copy with a different volume level."""
        return dataclasses.replace(self, volume_level=volume_level)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> PlaybackSnapshot:
        """Create a snapshot from one raw ``/Sessions`` entry."""
        play_state = data.get("PlayState") or {}
        now_playing = data.get("NowPlayingItem") or {}

        audio: list[MediaStreamInfo] = []
        subtitles: list[MediaStreamInfo] = []
        for raw in now_playing.get("MediaStreams") or []:
            stream = MediaStreamInfo.from_json(raw)
            stream_type = stream.type.lower()
            if stream_type == "audio":
                audio.append(stream)
            elif stream_type == "subtitle":
                subtitles.append(stream)

        artists = now_playing.get("Artists") or []
        artist = now_playing.get("AlbumArtist") or (artists[0] if artists else None)

        volume = _opt_int(play_state.get("VolumeLevel"))
        return cls(
            position_ticks=_opt_int(play_state.get("PositionTicks")) or 0,
            duration_ticks=_opt_int(now_playing.get("RunTimeTicks")),
            is_paused=play_state.get("IsPaused", True) is not False,
            is_muted=play_state.get("IsMuted") is True,
            volume_level=100 if volume is None else volume,
            now_playing_id=_opt_str(now_playing.get("Id")),
            now_playing_name=_opt_str(now_playing.get("Name")),
            now_playing_type=_opt_str(now_playing.get("Type")),
            now_playing_artist=_opt_str(artist),
            now_playing_album=_opt_str(now_playing.get("Album")),
            audio_streams=tuple(audio),
            subtitle_streams=tuple(subtitles),
            selected_audio_index=_opt_int(play_state.get("AudioStreamIndex")),
            selected_subtitle_index=_opt_int(play_state.get("SubtitleStreamIndex")),
            play_method=_opt_str(play_state.get("PlayMethod")),
        )

    def describe(self) -> str:
        """Return a human-friendly description of the snapshot."""
        if not self.has_media:
            return "Nothing playing"
        state = "paused" if self.is_paused else "playing"
        return (
            f"{self.now_playing_name or 'Unknown'} ({state}) "
            f"{format_ticks(self.position_ticks)} / {format_ticks(self.duration_ticks)}"
        )


@dataclass(frozen=True, eq=False)
class TargetSession:
    """A remote device/session that can be controlled.

    Equality is by ``session_id`` only; the echoed now-playing fields are for
    list display and go stale as soon as the list is fetched.
    """

    session_id: str
    device_id: str = ""
    device_name: str = "Unknown Device"
    client_name: str = "Unknown Client"
    application_version: str | None = None
    user_id: str | None = None
    user_name: str | None = None
    supports_media_control: bool = False
    supports_remote_control: bool = False
    supported_commands: tuple[str, ...] = ()
    playable_media_types: tuple[str, ...] = ()
    now_playing_id: str | None = None
    now_playing_name: str | None = None
    now_playing_type: str | None = None
    is_paused: bool | None = None
    position_ticks: int | None = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TargetSession):
            return NotImplemented
        return self.session_id == other.session_id

    def __hash__(self) -> int:
        return hash(self.session_id)

    @property
    def is_playing(self) -> bool:
        """Whether the session reported now-playing media when listed."""
        return self.now_playing_id is not None

    @property
    def label(self) -> str:
        return f"{self.device_name} ({self.client_name})"

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> TargetSession:
        """Create a session from one raw ``/Sessions`` entry."""
        now_playing = data.get("NowPlayingItem") or {}
        play_state = data.get("PlayState") or {}
        capabilities = data.get("Capabilities") or {}

        commands = capabilities.get("SupportedCommands")
        media_types = capabilities.get("PlayableMediaTypes")
        is_paused = play_state.get("IsPaused")

        return cls(
            session_id=str(data.get("Id") or ""),
            device_id=str(data.get("DeviceId") or ""),
            device_name=str(data.get("DeviceName") or "Unknown Device"),
            client_name=str(data.get("Client") or "Unknown Client"),
            application_version=_opt_str(data.get("ApplicationVersion")),
            user_id=_opt_str(data.get("UserId")),
            user_name=_opt_str(data.get("UserName")),
            supports_media_control=(
                data.get("SupportsMediaControl") is True
                or capabilities.get("SupportsMediaControl") is True
            ),
            supports_remote_control=data.get("SupportsRemoteControl") is True,
            supported_commands=tuple(str(c) for c in commands)
            if isinstance(commands, list)
            else (),
            playable_media_types=tuple(str(t) for t in media_types)
            if isinstance(media_types, list)
            else (),
            now_playing_id=_opt_str(now_playing.get("Id")),
            now_playing_name=_opt_str(now_playing.get("Name")),
            now_playing_type=_opt_str(now_playing.get("Type")),
            is_paused=is_paused if isinstance(is_paused, bool) else None,
            position_ticks=_opt_int(play_state.get("PositionTicks")),
        )


@dataclass
class PendingEdit:
    """A local optimistic override for one adjustable quantity.

    Timestamps are event-loop clock seconds.
    """

    target_value: int
    created_at: float
    failsafe_deadline: float
    last_sent_value: int | None = None


class CommandKind(StrEnum):
    """Commands understood by a controlled session, valued by server name."""

    PLAY_PAUSE = "PlayPause"
    PAUSE = "Pause"
    UNPAUSE = "Unpause"
    STOP = "Stop"
    NEXT_TRACK = "NextTrack"
    PREVIOUS_TRACK = "PreviousTrack"
    SEEK = "Seek"
    REWIND = "Rewind"
    FAST_FORWARD = "FastForward"
    VOLUME_UP = "VolumeUp"
    VOLUME_DOWN = "VolumeDown"
    SET_VOLUME = "SetVolume"
    TOGGLE_MUTE = "ToggleMute"
    MUTE = "Mute"
    UNMUTE = "Unmute"
    SET_AUDIO_STREAM_INDEX = "SetAudioStreamIndex"
    SET_SUBTITLE_STREAM_INDEX = "SetSubtitleStreamIndex"

    @property
    def is_playstate(self) -> bool:
        """Whether this is sent to ``/Playing/{command}`` rather than ``/Command``."""
        return self in _PLAYSTATE_COMMANDS


_PLAYSTATE_COMMANDS = frozenset(
    {
        CommandKind.PLAY_PAUSE,
        CommandKind.PAUSE,
        CommandKind.UNPAUSE,
        CommandKind.STOP,
        CommandKind.NEXT_TRACK,
        CommandKind.PREVIOUS_TRACK,
        CommandKind.SEEK,
        CommandKind.REWIND,
        CommandKind.FAST_FORWARD,
    }
)

# Name of the argument carried by general commands that take one
COMMAND_ARGUMENT_NAMES: dict[CommandKind, str] = {
    CommandKind.SET_VOLUME: "Volume",
    CommandKind.SET_AUDIO_STREAM_INDEX: "Index",
    CommandKind.SET_SUBTITLE_STREAM_INDEX: "Index",
}


@dataclass(frozen=True)
class Command:
    """A single outbound intent for a target session."""

    kind: CommandKind
    session_id: str
    argument: int | None = None
    issued_at: float = field(default=0.0, compare=False)

    def describe(self) -> str:
        if self.argument is None:
            return self.kind.value
        return f"{self.kind.value}({self.argument})"
