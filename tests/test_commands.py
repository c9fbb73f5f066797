"""Tests for the playback command facade."""

from __future__ import annotations

import pytest
from aiohttp import ClientConnectionError
from conftest import FakeApi, RecordingSink

from jellyremote.api import JellyfinApiError
from jellyremote.commands import PlaybackCommandFacade
from jellyremote.constants import COMMAND_FAILED_MESSAGE, TICKS_PER_SECOND
from jellyremote.models import PlaybackSnapshot, TargetSession
from jellyremote.presence import PresenceSignalBridge


class Target:
    def __init__(self, session: TargetSession | None) -> None:
        self.session = session

    def __call__(self) -> TargetSession | None:
        return self.session


@pytest.fixture
def target() -> Target:
    return Target(TargetSession(session_id="s1", device_name="TV"))


@pytest.fixture
def bridge(sink: RecordingSink) -> PresenceSignalBridge:
    return PresenceSignalBridge(sink)


@pytest.fixture
def facade(api: FakeApi, bridge: PresenceSignalBridge, target: Target) -> PlaybackCommandFacade:
    return PlaybackCommandFacade(api, bridge, target, send_interval=0.02, failsafe=0.5)


@pytest.mark.asyncio
async def test_no_target_is_noop(
    api: FakeApi, facade: PlaybackCommandFacade, target: Target
) -> None:
    target.session = None
    assert facade.play_pause() is False
    assert facade.stop() is False
    assert facade.set_volume(10) is False
    assert facade.seek_by(10) is False
    assert facade.play_items(["a"]) is False
    await facade.drain()
    assert api.calls == []
    assert facade.error_message is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("intent", "expected"),
    [
        ("play_pause", "PlayPause"),
        ("pause", "Pause"),
        ("unpause", "Unpause"),
        ("next_track", "NextTrack"),
        ("previous_track", "PreviousTrack"),
        ("rewind", "Rewind"),
        ("fast_forward", "FastForward"),
    ],
)
async def test_playstate_intents(
    api: FakeApi, facade: PlaybackCommandFacade, intent: str, expected: str
) -> None:
    assert getattr(facade, intent)() is True
    await facade.drain()
    assert api.calls == [("playstate", "s1", expected, None)]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("intent", "expected"),
    [
        ("volume_up", "VolumeUp"),
        ("volume_down", "VolumeDown"),
        ("toggle_mute", "ToggleMute"),
        ("mute", "Mute"),
        ("unmute", "Unmute"),
    ],
)
async def test_general_intents(
    api: FakeApi, facade: PlaybackCommandFacade, intent: str, expected: str
) -> None:
    getattr(facade, intent)()
    await facade.drain()
    assert api.calls == [("command", "s1", expected, None)]


@pytest.mark.asyncio
async def test_stream_selection_carries_index(api: FakeApi, facade: PlaybackCommandFacade) -> None:
    facade.set_audio_stream(2)
    facade.set_subtitle_stream(-1)
    await facade.drain()
    assert api.calls == [
        ("command", "s1", "SetAudioStreamIndex", {"Index": "2"}),
        ("command", "s1", "SetSubtitleStreamIndex", {"Index": "-1"}),
    ]


@pytest.mark.asyncio
async def test_commands_complete_in_issue_order(api: FakeApi, facade: PlaybackCommandFacade) -> None:
    api.command_delay = 0.01
    facade.pause()
    facade.next_track()
    facade.toggle_mute()
    facade.unpause()
    await facade.drain()
    assert api.commands() == ["Pause", "NextTrack", "ToggleMute", "Unpause"]


@pytest.mark.asyncio
async def test_set_volume_goes_through_reconciler(
    api: FakeApi, facade: PlaybackCommandFacade
) -> None:
    facade.reconciler.on_snapshot(PlaybackSnapshot(volume_level=40, now_playing_id="i"))
    facade.set_volume(60)

    assert facade.reconciler.display_state().volume_level == 60
    await facade.drain()
    assert api.calls == [("command", "s1", "SetVolume", {"Volume": "60"})]


@pytest.mark.asyncio
async def test_seek_by_sends_absolute_position(api: FakeApi, facade: PlaybackCommandFacade) -> None:
    facade.reconciler.on_snapshot(
        PlaybackSnapshot(
            position_ticks=100 * TICKS_PER_SECOND,
            duration_ticks=200 * TICKS_PER_SECOND,
            now_playing_id="i",
            is_paused=False,
        )
    )
    facade.seek_by(-10)
    await facade.drain()
    assert api.calls == [("playstate", "s1", "Seek", 90 * TICKS_PER_SECOND)]


@pytest.mark.asyncio
async def test_rotate_volume_uses_accumulator(api: FakeApi, facade: PlaybackCommandFacade) -> None:
    facade.reconciler.on_snapshot(PlaybackSnapshot(volume_level=40))
    facade.rotate_volume(4, clockwise=True)
    assert facade.reconciler.volume.pending_edit is None
    facade.rotate_volume(12, clockwise=True)
    assert facade.reconciler.display_state().volume_level == 42


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error", [ClientConnectionError("refused"), JellyfinApiError(404, "POST", "/Sessions/s1")]
)
async def test_failure_sets_error_and_success_clears(
    api: FakeApi, facade: PlaybackCommandFacade, error: Exception
) -> None:
    api.command_error = error
    facade.play_pause()
    await facade.drain()
    assert facade.error_message == COMMAND_FAILED_MESSAGE
    # Not retried
    assert len(api.calls) == 1

    api.command_error = None
    facade.play_pause()
    await facade.drain()
    assert facade.error_message is None


@pytest.mark.asyncio
async def test_stop_hides_presence_even_on_failure(
    api: FakeApi, facade: PlaybackCommandFacade, bridge: PresenceSignalBridge, sink: RecordingSink
) -> None:
    bridge.sync_from_poll(True, "Film")
    await bridge.drain()

    api.command_error = ClientConnectionError("refused")
    facade.stop()
    await facade.drain()
    await bridge.drain()

    assert api.commands() == ["Stop"]
    assert facade.error_message == COMMAND_FAILED_MESSAGE
    assert sink.calls == [("start", "Film"), ("stop", None)]
    assert not bridge.shown


@pytest.mark.asyncio
async def test_play_items_and_queue(api: FakeApi, facade: PlaybackCommandFacade) -> None:
    facade.play_items(["a", "b"], start_position_ticks=5)
    facade.queue_next(["c"])
    facade.queue_last(["d"])
    assert facade.play_items([]) is False
    await facade.drain()
    assert api.calls == [
        ("play", "s1", "PlayNow", ["a", "b"], 5),
        ("play", "s1", "PlayNext", ["c"], None),
        ("play", "s1", "PlayLast", ["d"], None),
    ]


@pytest.mark.asyncio
async def test_change_callback_on_error(api: FakeApi, bridge: PresenceSignalBridge, target: Target) -> None:
    changes: list[str | None] = []
    facade: PlaybackCommandFacade

    def on_change() -> None:
        changes.append(facade.error_message)

    facade = PlaybackCommandFacade(api, bridge, target, on_change=on_change)
    api.command_error = ClientConnectionError("refused")
    facade.pause()
    await facade.drain()
    api.command_error = None
    facade.pause()
    await facade.drain()
    assert changes == [COMMAND_FAILED_MESSAGE, None]


@pytest.mark.asyncio
async def test_clear_error(api: FakeApi, facade: PlaybackCommandFacade) -> None:
    api.command_error = ClientConnectionError("refused")
    facade.pause()
    await facade.drain()
    assert facade.error_message == COMMAND_FAILED_MESSAGE

    facade.clear_error()
    assert facade.error_message is None


@pytest.mark.asyncio
async def test_relative_input_waits_for_playback_state(
    api: FakeApi, facade: PlaybackCommandFacade
) -> None:
    assert facade.rotate_volume(16, clockwise=False) is False
    assert facade.adjust_volume(-5) is False
    assert facade.seek_by(10) is False
    assert facade.reconciler.volume.pending_edit is None
    assert facade.reconciler.position.pending_edit is None

    # Absolute targets do not depend on the current value
    assert facade.set_volume(30) is True
    await facade.drain()
    assert api.calls == [("command", "s1", "SetVolume", {"Volume": "30"})]


@pytest.mark.asyncio
async def test_every_outcome_is_reported(api: FakeApi, bridge: PresenceSignalBridge, target: Target) -> None:
    results: list[bool] = []
    facade = PlaybackCommandFacade(api, bridge, target, on_command_result=results.append)
    api.command_error = ClientConnectionError("refused")
    facade.pause()
    facade.pause()
    await facade.drain()
    api.command_error = None
    facade.unpause()
    await facade.drain()
    assert results == [False, False, True]
