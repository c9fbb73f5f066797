"""User-facing playback intents for the controlled session."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from aiohttp import ClientError

from jellyremote.api import JellyfinApiError
from jellyremote.constants import (
    COMMAND_FAILED_MESSAGE,
    COMMAND_SEND_INTERVAL,
    PENDING_EDIT_FAILSAFE,
    VOLUME_ROTARY_SENSITIVITY,
)
from jellyremote.models import COMMAND_ARGUMENT_NAMES, Command, CommandKind, TargetSession
from jellyremote.presence import PresenceSignalBridge, SerialTaskQueue
from jellyremote.reconciler import OptimisticStateReconciler, RotaryAccumulator

logger = logging.getLogger(__name__)

# Errors that mean "the command did not reach the session"
TRANSPORT_ERRORS = (TimeoutError, OSError, ClientError, JellyfinApiError)


class CommandTransport(Protocol):
    """The subset of the Jellyfin client used to control a session."""

    async def send_playstate_command(
        self, session_id: str, command: str, *, seek_position_ticks: int | None = None
    ) -> None: ...

    async def send_command(
        self, session_id: str, command: str, arguments: dict[str, str] | None = None
    ) -> None: ...

    async def start_playback(
        self,
        session_id: str,
        item_ids: list[str],
        *,
        start_position_ticks: int | None = None,
        play_command: str = "PlayNow",
    ) -> None: ...


class PlaybackCommandFacade:
    """One method per user intent, executed against the current target.

    Every intent returns True if it was accepted and False if there is no
    target session. Outbound commands run one at a time in issue order; use
    ``drain()`` to wait for them. A failed command sets ``error_message`` and
    is not retried; the next successful command clears it.

    Volume and seek targets go through the owned ``OptimisticStateReconciler``
    so the display updates immediately and bursts are rate limited.
    """

    def __init__(
        self,
        api: CommandTransport,
        bridge: PresenceSignalBridge,
        target: Callable[[], TargetSession | None],
        *,
        failsafe: float = PENDING_EDIT_FAILSAFE,
        send_interval: float = COMMAND_SEND_INTERVAL,
        rotary_sensitivity: float = VOLUME_ROTARY_SENSITIVITY,
        on_change: Callable[[], None] | None = None,
        on_command_result: Callable[[bool], None] | None = None,
    ) -> None:
        """Initialize the facade.

        Args:
            api: Transport for outbound commands.
            bridge: Presence bridge, force-stopped by ``stop()``.
            target: Returns the currently controlled session.
            failsafe: Seconds before an unconverged volume/seek edit is dropped.
            send_interval: Minimum seconds between two volume (or seek) sends.
            rotary_sensitivity: Rotary magnitude per volume percent.
            on_change: Called when the error message or a pending edit changes.
            on_command_result: Called after every command with whether it
                succeeded, including repeated failures.
        """
        self._api = api
        self._bridge = bridge
        self._target = target
        self._on_change = on_change
        self._on_command_result = on_command_result
        self._queue = SerialTaskQueue("commands")
        self._error_message: str | None = None
        self._rotary = RotaryAccumulator(rotary_sensitivity)
        self.reconciler = OptimisticStateReconciler(
            send_volume=self._send_volume_level,
            send_seek=self._send_seek_position,
            failsafe=failsafe,
            send_interval=send_interval,
            on_display_change=self._notify,
        )

    @property
    def error_message(self) -> str | None:
        return self._error_message

    def clear_error(self) -> None:
        if self._error_message is not None:
            self._error_message = None
            self._notify()

    async def drain(self) -> None:
        """Wait until every command issued so far has completed."""
        await self._queue.drain()

    # Playstate commands

    def play_pause(self) -> bool:
        return self._issue(CommandKind.PLAY_PAUSE)

    def pause(self) -> bool:
        return self._issue(CommandKind.PAUSE)

    def unpause(self) -> bool:
        return self._issue(CommandKind.UNPAUSE)

    def stop(self) -> bool:
        """Stop playback and hide the presence indicator whatever the outcome."""
        command = self._command(CommandKind.STOP)
        if command is None:
            return False

        async def _stop() -> None:
            try:
                await self._execute(command)
            finally:
                await self._bridge.force_stop()

        self._queue.enqueue(_stop)
        return True

    def next_track(self) -> bool:
        return self._issue(CommandKind.NEXT_TRACK)

    def previous_track(self) -> bool:
        return self._issue(CommandKind.PREVIOUS_TRACK)

    def rewind(self) -> bool:
        return self._issue(CommandKind.REWIND)

    def fast_forward(self) -> bool:
        return self._issue(CommandKind.FAST_FORWARD)

    def seek(self, position_ticks: int) -> bool:
        """Seek to an absolute position, clamped to the known duration."""
        if not self._has_target("Seek"):
            return False
        self.reconciler.seek(position_ticks)
        return True

    def seek_by(self, seconds: float) -> bool:
        """Seek relative to the displayed position, clamped to [0, duration].

        Ignored until the target's playback state has been polled.
        """
        if not self._has_target("Seek"):
            return False
        return self.reconciler.seek_by(seconds) is not None

    # General commands

    def volume_up(self) -> bool:
        return self._issue(CommandKind.VOLUME_UP)

    def volume_down(self) -> bool:
        return self._issue(CommandKind.VOLUME_DOWN)

    def set_volume(self, level: int) -> bool:
        if not self._has_target("SetVolume"):
            return False
        self.reconciler.set_volume(level)
        return True

    def adjust_volume(self, delta: int) -> bool:
        if not self._has_target("SetVolume"):
            return False
        return self.reconciler.adjust_volume(delta) is not None

    def rotate_volume(self, magnitude: float, *, clockwise: bool) -> bool:
        """Feed one rotary event; whole steps adjust the volume."""
        if not self._has_target("SetVolume"):
            return False
        if not self.reconciler.has_snapshot:
            logger.info("Rotary input ignored: playback state not loaded yet")
            return False
        steps = self._rotary.feed(magnitude, clockwise=clockwise)
        if steps:
            self.reconciler.adjust_volume(steps)
        return True

    def toggle_mute(self) -> bool:
        return self._issue(CommandKind.TOGGLE_MUTE)

    def mute(self) -> bool:
        return self._issue(CommandKind.MUTE)

    def unmute(self) -> bool:
        return self._issue(CommandKind.UNMUTE)

    def set_audio_stream(self, index: int) -> bool:
        return self._issue(CommandKind.SET_AUDIO_STREAM_INDEX, index)

    def set_subtitle_stream(self, index: int) -> bool:
        """Select a subtitle track; -1 disables subtitles."""
        return self._issue(CommandKind.SET_SUBTITLE_STREAM_INDEX, index)

    # Playback queue

    def play_items(self, item_ids: list[str], start_position_ticks: int | None = None) -> bool:
        """Replace the session's queue with ``item_ids`` and start playing."""
        return self._start_playback(item_ids, "PlayNow", start_position_ticks)

    def queue_next(self, item_ids: list[str]) -> bool:
        return self._start_playback(item_ids, "PlayNext")

    def queue_last(self, item_ids: list[str]) -> bool:
        return self._start_playback(item_ids, "PlayLast")

    def reset(self) -> None:
        """Drop pending edits and rotary leftovers (target change)."""
        self.reconciler.reset()
        self._rotary.reset()

    # Internals

    def _has_target(self, what: str) -> bool:
        if self._target() is None:
            logger.info("%s ignored: no target session", what)
            return False
        return True

    def _command(self, kind: CommandKind, argument: int | None = None) -> Command | None:
        target = self._target()
        if target is None:
            logger.info("%s ignored: no target session", kind.value)
            return None
        loop = asyncio.get_running_loop()
        return Command(kind, target.session_id, argument, issued_at=loop.time())

    def _issue(self, kind: CommandKind, argument: int | None = None) -> bool:
        command = self._command(kind, argument)
        if command is None:
            return False
        self._queue.enqueue(lambda: self._execute(command))
        return True

    def _send_volume_level(self, level: int) -> None:
        # Dispatcher callback: must not block
        self._issue(CommandKind.SET_VOLUME, level)

    def _send_seek_position(self, position_ticks: int) -> None:
        self._issue(CommandKind.SEEK, position_ticks)

    def _start_playback(
        self, item_ids: list[str], play_command: str, start_position_ticks: int | None = None
    ) -> bool:
        target = self._target()
        if target is None:
            logger.info("%s ignored: no target session", play_command)
            return False
        if not item_ids:
            return False
        session_id = target.session_id

        async def _play() -> None:
            await self._guarded(
                f"{play_command}({len(item_ids)} items)",
                lambda: self._api.start_playback(
                    session_id,
                    list(item_ids),
                    start_position_ticks=start_position_ticks,
                    play_command=play_command,
                ),
            )

        self._queue.enqueue(_play)
        return True

    async def _execute(self, command: Command) -> None:
        kind = command.kind
        if kind.is_playstate:
            seek_ticks = command.argument if kind is CommandKind.SEEK else None
            await self._guarded(
                command.describe(),
                lambda: self._api.send_playstate_command(
                    command.session_id, kind.value, seek_position_ticks=seek_ticks
                ),
            )
            return

        arguments: dict[str, str] | None = None
        argument_name = COMMAND_ARGUMENT_NAMES.get(kind)
        if argument_name is not None and command.argument is not None:
            arguments = {argument_name: str(command.argument)}
        await self._guarded(
            command.describe(),
            lambda: self._api.send_command(command.session_id, kind.value, arguments),
        )

    async def _guarded(self, description: str, send: Callable[[], Awaitable[None]]) -> None:
        try:
            await send()
        except TRANSPORT_ERRORS as e:
            logger.warning("Command %s failed: %s", description, e)
            self._report(ok=False)
            return
        except Exception:
            logger.exception("Unexpected error sending %s", description)
            self._report(ok=False)
            return
        logger.debug("Command %s sent", description)
        self._report(ok=True)

    def _report(self, *, ok: bool) -> None:
        message = None if ok else COMMAND_FAILED_MESSAGE
        if message != self._error_message:
            self._error_message = message
            self._notify()
        if self._on_command_result is not None:
            self._on_command_result(ok)

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()
