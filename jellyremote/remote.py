"""Application context tying polling, optimistic state, commands and presence."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

from jellyremote.commands import CommandTransport, PlaybackCommandFacade
from jellyremote.constants import (
    COMMAND_FAILED_MESSAGE,
    COMMAND_SEND_INTERVAL,
    DEFAULT_PRESENCE_TITLE,
    PENDING_EDIT_FAILSAFE,
    PLAYBACK_POLL_INTERVAL,
)
from jellyremote.models import PlaybackSnapshot, TargetSession
from jellyremote.poller import SessionPoller, SessionSource
from jellyremote.presence import PresenceSignalBridge, PresenceSink
from jellyremote.utils import create_task

logger = logging.getLogger(__name__)


class RemoteApi(SessionSource, CommandTransport, Protocol):
    """Everything the remote controller needs from the server client."""


class RemoteController:
    """Observable state of the remote for the UI layer.

    Listeners registered with ``add_listener`` are called synchronously after
    every state publication: new snapshots, poll errors, command outcomes,
    pending edit changes, presence changes and target changes.
    """

    def __init__(
        self,
        api: RemoteApi,
        sink: PresenceSink,
        *,
        poll_interval: float = PLAYBACK_POLL_INTERVAL,
        failsafe: float = PENDING_EDIT_FAILSAFE,
        send_interval: float = COMMAND_SEND_INTERVAL,
    ) -> None:
        """Initialize the controller and its collaborators.

        Args:
            api: Jellyfin client used for polling and commands.
            sink: Presence indicator driven from polled state.
            poll_interval: Seconds between playback polls.
            failsafe: Seconds before an unconverged local edit is dropped.
            send_interval: Minimum seconds between volume (or seek) sends.
        """
        self._target: TargetSession | None = None
        self._is_loading = False
        self._error_message: str | None = None
        self._listeners: list[Callable[[], None]] = []
        self._refresh_task: asyncio.Task[None] | None = None

        self.poller = SessionPoller(api, poll_interval)
        self.bridge = PresenceSignalBridge(sink, on_change=self._on_presence_change)
        self.commands = PlaybackCommandFacade(
            api,
            self.bridge,
            lambda: self._target,
            failsafe=failsafe,
            send_interval=send_interval,
            on_change=self._on_commands_change,
            on_command_result=self._on_command_result,
        )
        self.poller.add_snapshot_listener(self._on_snapshot)
        self.poller.add_error_listener(self._on_poll_error)

    @property
    def target_session(self) -> TargetSession | None:
        return self._target

    @property
    def has_target(self) -> bool:
        return self._target is not None

    @property
    def display_state(self) -> PlaybackSnapshot:
        """Latest snapshot with pending local edits applied."""
        return self.commands.reconciler.display_state()

    @property
    def has_pending_edits(self) -> bool:
        return self.commands.reconciler.has_pending_edits

    @property
    def is_loading(self) -> bool:
        """True from the start of polling until the first poll completes."""
        return self._is_loading

    @property
    def error_message(self) -> str | None:
        return self._error_message

    @property
    def presence_shown(self) -> bool:
        return self.bridge.shown

    def add_listener(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Add a state listener. Returns unsubscribe function."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def set_target_session(self, session: TargetSession) -> None:
        """Control ``session`` and start polling it."""
        if self._target == session and self.poller.is_running:
            # Same session from a refresh: keep the fresher list fields
            self._target = session
            return
        logger.info(
            "Target session %s: %s v%s, media control: %s",
            session.session_id,
            session.label,
            session.application_version or "?",
            session.supports_media_control,
        )
        if self._target is not None and self._target != session:
            self.commands.reset()
            self.bridge.force_stop()
        self._target = session
        self._error_message = None
        self.start_polling()
        self._publish()

    def clear_target_session(self) -> None:
        """Stop controlling any session."""
        self.stop_polling()
        self.bridge.force_stop()
        self.commands.reset()
        self._target = None
        self._error_message = None
        self._is_loading = False
        self._publish()

    def follow_target(self, session: TargetSession | None) -> None:
        """Target listener for ``TargetSessionSelector``."""
        if session is None:
            self.clear_target_session()
        else:
            self.set_target_session(session)

    def start_polling(self) -> None:
        """Resume polling the target, if any (screen became visible)."""
        if self._target is None:
            return
        if self.poller.snapshot is None or self.poller.target_session_id != self._target.session_id:
            self._is_loading = True
        self.poller.start(self._target.session_id)

    def stop_polling(self) -> None:
        """Pause polling without forgetting the target."""
        self.poller.stop()

    async def close(self) -> None:
        """Stop polling, hide the indicator and wait for queued work."""
        self.stop_polling()
        if self._refresh_task is not None:
            self._refresh_task.cancel()
        self.commands.reset()
        self.bridge.force_stop()
        await self.commands.drain()
        await self.bridge.drain()

    def _on_snapshot(self, snapshot: PlaybackSnapshot) -> None:
        self._is_loading = False
        self._error_message = None
        self.commands.reconciler.on_snapshot(snapshot)
        if self._target is not None:
            self.bridge.sync_from_poll(
                snapshot.has_media, snapshot.now_playing_name or DEFAULT_PRESENCE_TITLE
            )
        self._publish()

    def _on_poll_error(self, message: str) -> None:
        self._is_loading = False
        self._error_message = message
        self._publish()

    def _on_commands_change(self) -> None:
        self._publish()

    def _on_command_result(self, ok: bool) -> None:
        # Every failure is shown, even if a poll cleared the previous one
        self._error_message = None if ok else COMMAND_FAILED_MESSAGE
        self._publish()
        if ok and self.poller.is_running:
            # Show the effect of the command without waiting for the next tick
            self._refresh_task = create_task(self.poller.poll_now(), name="poll-after-command")

    def _on_presence_change(self, shown: bool, title: str | None) -> None:
        logger.debug("Presence indicator %s (%s)", "shown" if shown else "hidden", title)
        self._publish()

    def _publish(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Error in remote state listener")
