"""Keyboard input handling for the Jellyfin remote TUI."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import readchar

from jellyremote.constants import ROTARY_KEY_MAGNITUDE, SEEK_STEP_SECONDS
from jellyremote.models import MediaStreamInfo

if TYPE_CHECKING:
    from jellyremote.remote import RemoteController
    from jellyremote.tui.ui import RemoteUI

logger = logging.getLogger(__name__)


def next_stream_index(
    streams: tuple[MediaStreamInfo, ...], selected: int | None, *, allow_off: bool = False
) -> int | None:
    """Return the stream index after ``selected``, wrapping around.

    With ``allow_off``, -1 (disabled) is part of the cycle after the last
    stream. Returns None when there is nothing to cycle through.
    """
    if not streams:
        return None
    indices = [s.index for s in streams]
    if allow_off:
        indices.append(-1)
    if selected is None or selected not in indices:
        return indices[0]
    return indices[(indices.index(selected) + 1) % len(indices)]


class CommandHandler:
    """Translates key presses into remote intents."""

    def __init__(self, controller: RemoteController) -> None:
        """Initialize the command handler."""
        self._controller = controller
        self._commands = controller.commands

    def toggle_play_pause(self) -> None:
        self._commands.play_pause()

    def volume_step(self, *, up: bool) -> None:
        """One arrow key press behaves like one rotary detent."""
        self._commands.rotate_volume(ROTARY_KEY_MAGNITUDE, clockwise=up)

    def seek_step(self, *, forward: bool) -> None:
        self._commands.seek_by(SEEK_STEP_SECONDS if forward else -SEEK_STEP_SECONDS)

    def cycle_audio(self) -> None:
        display = self._controller.display_state
        index = next_stream_index(display.audio_streams, display.selected_audio_index)
        if index is not None:
            self._commands.set_audio_stream(index)

    def cycle_subtitles(self) -> None:
        display = self._controller.display_state
        index = next_stream_index(
            display.subtitle_streams, display.selected_subtitle_index, allow_off=True
        )
        if index is not None:
            self._commands.set_subtitle_stream(index)


async def keyboard_loop(
    controller: RemoteController,
    ui: RemoteUI,
    open_session_selector: Callable[[], Awaitable[None]],
    on_session_selected: Callable[[], Awaitable[None]],
    clear_session: Callable[[], None],
    request_shutdown: Callable[[], None],
) -> None:
    """Run the keyboard input loop.

    Args:
        controller: Remote controller receiving the intents.
        ui: UI instance.
        open_session_selector: Refreshes sessions and shows the selector.
        on_session_selected: Async callback when a session is chosen.
        clear_session: Stops controlling the current session.
        request_shutdown: Callback to request application shutdown.
    """
    handler = CommandHandler(controller)
    commands = controller.commands

    # Key dispatch table: key -> (highlight_name | None, action)
    # For keys that need case-insensitive matching, use lowercase
    shortcuts: dict[str, tuple[str | None, Callable[[], object]]] = {
        " ": ("space", handler.toggle_play_pause),
        "x": ("stop", commands.stop),
        "n": ("next", commands.next_track),
        "p": ("prev", commands.previous_track),
        "r": (None, commands.rewind),
        "f": (None, commands.fast_forward),
        "m": ("mute", commands.toggle_mute),
        "-": ("down", commands.volume_down),
        "=": ("up", commands.volume_up),
        "+": ("up", commands.volume_up),
        "a": ("audio", handler.cycle_audio),
        "t": ("subtitles", handler.cycle_subtitles),
        # Arrow keys
        readchar.key.LEFT: ("seek", lambda: handler.seek_step(forward=False)),
        readchar.key.RIGHT: ("seek", lambda: handler.seek_step(forward=True)),
        readchar.key.UP: ("up", lambda: handler.volume_step(up=True)),
        readchar.key.DOWN: ("down", lambda: handler.volume_step(up=False)),
    }

    loop = asyncio.get_running_loop()

    while True:
        try:
            # Run blocking readkey in executor to not block the event loop
            key = await loop.run_in_executor(None, readchar.readkey)
        except (asyncio.CancelledError, KeyboardInterrupt):
            request_shutdown()
            break

        # Handle session selector mode
        if ui.is_session_selector_visible():
            if key in "rR":
                ui.highlight_shortcut("selector-refresh")
                await open_session_selector()
                continue
            if key == readchar.key.UP:
                ui.highlight_shortcut("selector-up")
                ui.move_session_selection(-1)
                continue
            if key == readchar.key.DOWN:
                ui.highlight_shortcut("selector-down")
                ui.move_session_selection(1)
                continue
            if key in ("\r", "\n", readchar.key.ENTER):
                ui.highlight_shortcut("selector-enter")
                await on_session_selected()
                continue
            if key in "cC":
                ui.highlight_shortcut("selector-clear")
                clear_session()
                ui.hide_session_selector()
                continue
            if key in "qQ" or key == readchar.key.ESC:
                ui.hide_session_selector()
                continue
            # Ignore other keys when selector is open
            continue

        if key in "qQ":
            ui.highlight_shortcut("quit")
            request_shutdown()
            break

        if key in "sS":
            ui.highlight_shortcut("sessions")
            await open_session_selector()
            continue

        # Handle shortcuts via dispatch table (case-insensitive for letter keys)
        action = shortcuts.get(key) or shortcuts.get(key.lower())
        if action:
            highlight_name, action_handler = action
            if highlight_name:
                ui.highlight_shortcut(highlight_name)
            action_handler()
            continue

        # Ignore unhandled escape sequences
        if key.startswith("\x1b"):
            continue

        logger.debug("Unhandled key %r", key)
