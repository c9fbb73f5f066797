"""Interactive terminal application for the Jellyfin remote."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from dataclasses import dataclass
from pathlib import Path

from jellyremote.api import JellyfinClient
from jellyremote.auth import AuthenticationError, sign_in
from jellyremote.constants import PLAYBACK_POLL_INTERVAL, SESSION_REFRESH_INTERVAL
from jellyremote.models import TargetSession
from jellyremote.presence import HookPresenceSink, NullPresenceSink, PresenceSink
from jellyremote.remote import RemoteController
from jellyremote.selector import TargetSessionSelector
from jellyremote.settings import SettingsManager, get_settings_manager
from jellyremote.tui.keyboard import keyboard_loop
from jellyremote.tui.ui import RemoteUI
from jellyremote.utils import create_task

logger = logging.getLogger(__name__)


@dataclass
class AppArgs:
    """Configuration for the Jellyfin remote application."""

    url: str | None = None
    username: str | None = None
    password: str | None = None
    token: str | None = None
    user_id: str | None = None
    session_id: str | None = None
    poll_interval: float = PLAYBACK_POLL_INTERVAL
    hook_start: str | None = None
    hook_stop: str | None = None
    config_dir: Path | None = None


class JellyRemoteApp:
    """Main interactive remote application."""

    def __init__(self, args: AppArgs) -> None:
        """Initialize the application."""
        self._args = args
        self._ui: RemoteUI | None = None
        self._client: JellyfinClient | None = None
        self._settings: SettingsManager | None = None
        self._controller: RemoteController | None = None
        self._selector: TargetSessionSelector | None = None

    async def run(self) -> int:
        """Run the application."""
        args = self._args

        # TUI requires an interactive terminal
        if not sys.stdin.isatty():
            print(  # noqa: T201
                "Error: the remote requires an interactive terminal.\n"
                "Use --list-sessions or --play for non-interactive use."
            )
            return 1

        # Store reference to current task so it can be cancelled on shutdown
        main_task = asyncio.current_task()
        assert main_task is not None

        def request_shutdown() -> None:
            main_task.cancel()

        try:
            self._settings = await get_settings_manager(args.config_dir)
            try:
                self._client = await sign_in(
                    self._settings,
                    server_url=args.url,
                    username=args.username,
                    password=args.password,
                    token=args.token,
                    user_id=args.user_id,
                )
            except AuthenticationError as e:
                print(f"Error: {e}")  # noqa: T201
                return 1

            # In interactive mode with UI, suppress logs to avoid interfering with display
            # Only show WARNING and above unless explicitly set to DEBUG
            if logging.getLogger().level != logging.DEBUG:
                logging.getLogger().setLevel(logging.WARNING)

            controller = RemoteController(
                self._client,
                self._build_presence_sink(),
                poll_interval=args.poll_interval,
            )
            self._controller = controller

            selector = TargetSessionSelector(
                self._client, self._settings, self._client.device_id
            )
            self._selector = selector
            if args.session_id:
                self._settings.save_last_session(args.session_id)
            selector.add_target_listener(controller.follow_target)

            self._ui = RemoteUI(controller)
            self._ui.set_connected(self._client.server_url, self._settings.user_name)
            self._ui.start()

            create_task(
                keyboard_loop(
                    controller,
                    self._ui,
                    self._open_session_selector,
                    self._on_session_selected,
                    selector.clear_target,
                    request_shutdown,
                )
            )

            def signal_handler() -> None:
                logger.debug("Received interrupt signal, shutting down...")
                request_shutdown()

            # Signal handlers aren't supported on this platform (e.g., Windows)
            loop = asyncio.get_running_loop()
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(signal.SIGINT, signal_handler)
                loop.add_signal_handler(signal.SIGTERM, signal_handler)

            await selector.refresh()
            if selector.target is None:
                # Nothing to restore: let the user pick
                self._ui.show_session_selector(selector.sessions, selector.error_message)

            await self._refresh_loop()
        except asyncio.CancelledError:
            logger.debug("Remote cancelled")
        finally:
            if self._ui:
                self._ui.stop()
            if self._controller:
                await self._controller.close()
            if self._client:
                await self._client.close()
            if self._settings:
                await self._settings.flush()

        return 0

    def _build_presence_sink(self) -> PresenceSink:
        """Hook sink when hooks are configured, otherwise a no-op sink."""
        args = self._args
        if not args.hook_start and not args.hook_stop:
            return NullPresenceSink()
        return HookPresenceSink(args.hook_start, args.hook_stop, target=self._current_target)

    def _current_target(self) -> TargetSession | None:
        if self._controller is None:
            return None
        return self._controller.target_session

    async def _refresh_loop(self) -> None:
        """Revalidate the target against the live session list periodically."""
        assert self._selector is not None
        assert self._ui is not None
        while True:
            await asyncio.sleep(SESSION_REFRESH_INTERVAL)
            try:
                sessions = await self._selector.refresh()
            except Exception:
                logger.exception("Unexpected error refreshing sessions")
                continue
            if self._ui.is_session_selector_visible():
                self._ui.update_session_list(sessions, self._selector.error_message)
            elif self._selector.error_message:
                self._ui.set_status(self._selector.error_message)

    async def _open_session_selector(self) -> None:
        assert self._selector is not None
        assert self._ui is not None
        sessions = await self._selector.refresh()
        self._ui.show_session_selector(sessions, self._selector.error_message)

    async def _on_session_selected(self) -> None:
        """Control the highlighted session."""
        assert self._selector is not None
        assert self._ui is not None
        session = self._ui.get_selected_session()
        if session is None:
            return
        self._ui.hide_session_selector()
        # Skip if already controlling this session
        if session == self._selector.target:
            return
        self._selector.set_target(session)
