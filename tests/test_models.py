"""Tests for session and playback models."""

from __future__ import annotations

from conftest import session_json

from jellyremote.constants import TICKS_PER_SECOND
from jellyremote.models import (
    Command,
    CommandKind,
    MediaStreamInfo,
    PlaybackSnapshot,
    TargetSession,
    format_ticks,
)


class TestFormatTicks:
    def test_minutes_and_seconds(self) -> None:
        assert format_ticks(65 * TICKS_PER_SECOND) == "1:05"

    def test_hours(self) -> None:
        assert format_ticks((3600 + 2 * 60 + 3) * TICKS_PER_SECOND) == "1:02:03"

    def test_unknown(self) -> None:
        assert format_ticks(None) == "--:--"

    def test_negative_is_zero(self) -> None:
        assert format_ticks(-5) == "0:00"


class TestPlaybackSnapshot:
    def test_defaults_are_idle(self) -> None:
        snapshot = PlaybackSnapshot()
        assert snapshot.has_media is False
        assert snapshot.is_playing is False
        assert snapshot.progress is None
        assert snapshot.volume_level == 100

    def test_from_json_playing(self) -> None:
        raw = session_json(
            item_id="item-1",
            item_name="Big Movie",
            position_ticks=30 * TICKS_PER_SECOND,
            runtime_ticks=120 * TICKS_PER_SECOND,
            volume=42,
        )
        snapshot = PlaybackSnapshot.from_json(raw)

        assert snapshot.has_media
        assert snapshot.is_playing
        assert snapshot.now_playing_name == "Big Movie"
        assert snapshot.volume_level == 42
        assert snapshot.position_seconds == 30
        assert snapshot.duration_seconds == 120
        assert snapshot.progress == 0.25
        assert snapshot.play_method == "DirectPlay"

    def test_paused_media_is_not_playing(self) -> None:
        snapshot = PlaybackSnapshot.from_json(session_json(item_id="i", is_paused=True))
        assert snapshot.has_media
        assert not snapshot.is_playing

    def test_missing_play_state_uses_defaults(self) -> None:
        snapshot = PlaybackSnapshot.from_json({"Id": "s1"})
        assert snapshot.position_ticks == 0
        assert snapshot.is_paused is True
        assert snapshot.volume_level == 100
        assert snapshot.duration_ticks is None

    def test_progress_is_clamped(self) -> None:
        snapshot = PlaybackSnapshot(position_ticks=200, duration_ticks=100, now_playing_id="i")
        assert snapshot.progress == 1.0

    def test_zero_duration_has_no_progress(self) -> None:
        assert PlaybackSnapshot(position_ticks=10, duration_ticks=0).progress is None

    def test_streams_are_split_by_type(self) -> None:
        raw = session_json(item_id="i")
        raw["NowPlayingItem"]["MediaStreams"] = [
            {"Index": 0, "Type": "Video", "Codec": "h264"},
            {"Index": 1, "Type": "Audio", "Codec": "aac", "Language": "eng", "Channels": 6},
            {"Index": 2, "Type": "Subtitle", "Codec": "srt", "Language": "fre", "IsForced": True},
        ]
        raw["PlayState"]["AudioStreamIndex"] = 1
        snapshot = PlaybackSnapshot.from_json(raw)

        assert [s.index for s in snapshot.audio_streams] == [1]
        assert [s.index for s in snapshot.subtitle_streams] == [2]
        assert snapshot.selected_audio_index == 1
        assert snapshot.selected_subtitle_index is None
        assert snapshot.audio_streams[0].name == "eng • AAC • 6ch"
        assert snapshot.subtitle_streams[0].name == "fre • SRT • Forced"

    def test_with_volume_and_position_copy(self) -> None:
        snapshot = PlaybackSnapshot(volume_level=10, position_ticks=5)
        assert snapshot.with_volume(20).volume_level == 20
        assert snapshot.with_position(7).position_ticks == 7
        assert snapshot.volume_level == 10

    def test_describe(self) -> None:
        assert PlaybackSnapshot().describe() == "Nothing playing"
        snapshot = PlaybackSnapshot(
            now_playing_id="i",
            now_playing_name="Song",
            is_paused=False,
            position_ticks=61 * TICKS_PER_SECOND,
            duration_ticks=180 * TICKS_PER_SECOND,
        )
        assert snapshot.describe() == "Song (playing) 1:01 / 3:00"


class TestMediaStreamInfo:
    def test_display_title_wins(self) -> None:
        stream = MediaStreamInfo(index=3, type="Audio", display_title="English - Dolby")
        assert stream.name == "English - Dolby"

    def test_fallback_name(self) -> None:
        assert MediaStreamInfo(index=3, type="Subtitle").name == "Track 4"


class TestTargetSession:
    def test_from_json(self) -> None:
        session = TargetSession.from_json(session_json(item_id="i", item_name="Film"))
        assert session.session_id == "s1"
        assert session.device_name == "Living Room TV"
        assert session.supports_media_control
        assert session.is_playing
        assert session.now_playing_name == "Film"
        assert session.playable_media_types == ("Audio", "Video")
        assert session.label == "Living Room TV (Jellyfin Web)"

    def test_media_control_from_capabilities(self) -> None:
        raw = session_json(media_control=False)
        raw["Capabilities"]["SupportsMediaControl"] = True
        assert TargetSession.from_json(raw).supports_media_control

    def test_equality_by_session_id(self) -> None:
        a = TargetSession(session_id="s1", device_name="A")
        b = TargetSession(session_id="s1", device_name="B")
        assert a == b
        assert hash(a) == hash(b)
        assert a != TargetSession(session_id="s2")

    def test_missing_fields(self) -> None:
        session = TargetSession.from_json({})
        assert session.session_id == ""
        assert session.device_name == "Unknown Device"
        assert session.client_name == "Unknown Client"
        assert not session.is_playing


class TestCommand:
    def test_playstate_kinds(self) -> None:
        assert CommandKind.SEEK.is_playstate
        assert CommandKind.STOP.is_playstate
        assert not CommandKind.SET_VOLUME.is_playstate
        assert not CommandKind.TOGGLE_MUTE.is_playstate

    def test_describe(self) -> None:
        assert Command(CommandKind.PAUSE, "s1").describe() == "Pause"
        assert Command(CommandKind.SET_VOLUME, "s1", 40).describe() == "SetVolume(40)"

    def test_issued_at_not_compared(self) -> None:
        assert Command(CommandKind.PAUSE, "s1", issued_at=1.0) == Command(
            CommandKind.PAUSE, "s1", issued_at=2.0
        )
