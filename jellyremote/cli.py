"""Command-line interface for the Jellyfin remote."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from jellyremote.auth import AuthenticationError, sign_in
from jellyremote.constants import PLAYBACK_POLL_INTERVAL
from jellyremote.models import format_ticks
from jellyremote.presence import NullPresenceSink
from jellyremote.remote import RemoteController
from jellyremote.selector import TargetSessionSelector
from jellyremote.settings import get_settings_manager
from jellyremote.tui.app import AppArgs, JellyRemoteApp

logger = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the Jellyfin remote."""
    parser = argparse.ArgumentParser(description="Control Jellyfin playback sessions remotely")
    parser.add_argument(
        "--url",
        default=None,
        help="Base URL of the Jellyfin server. If omitted, the last used server is reused.",
    )
    parser.add_argument("--username", default=None, help="User to sign in as")
    parser.add_argument(
        "--password",
        default=None,
        help="Password for --username (empty if omitted)",
    )
    parser.add_argument(
        "--token",
        default=None,
        help="Existing access token (API key) to use instead of signing in",
    )
    parser.add_argument(
        "--user-id",
        default=None,
        help="User id owning --token (looked up from the server if omitted)",
    )
    parser.add_argument(
        "--session",
        default=None,
        help="Session id to control (defaults to the last controlled session)",
    )
    parser.add_argument(
        "--list-sessions",
        action="store_true",
        help="List sessions that can be controlled and exit",
    )
    parser.add_argument(
        "--play",
        nargs="+",
        metavar="ITEM_ID",
        default=None,
        help="Start playing the given item ids on the target session and exit",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=PLAYBACK_POLL_INTERVAL,
        help="Seconds between playback state polls",
    )
    parser.add_argument(
        "--hook-start",
        default=None,
        help="Shell command run when media is loaded on the target "
        "(title in JELLYREMOTE_TITLE)",
    )
    parser.add_argument(
        "--hook-stop",
        default=None,
        help="Shell command run when media is no longer loaded on the target",
    )
    parser.add_argument(
        "--config-dir",
        type=Path,
        default=None,
        help="Directory for settings (defaults to ~/.config/jellyremote)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level to use",
    )
    return parser.parse_args(argv)


async def list_sessions(args: argparse.Namespace) -> int:
    """Print the controllable sessions."""
    settings = await get_settings_manager(args.config_dir)
    try:
        client = await sign_in(
            settings,
            server_url=args.url,
            username=args.username,
            password=args.password,
            token=args.token,
            user_id=args.user_id,
        )
    except AuthenticationError as e:
        print(f"Error: {e}")
        return 1

    try:
        selector = TargetSessionSelector(client, settings, client.device_id)
        sessions = await selector.refresh()
        if selector.error_message:
            print(selector.error_message)
            return 1
        if not sessions:
            print("No controllable sessions found.")
            return 0

        last_session_id = settings.get_last_session_id()
        print(f"\nFound {len(sessions)} session(s):")
        print()
        for session in sessions:
            marker = " (last used)" if session.session_id == last_session_id else ""
            print(f"  {session.label}{marker}")
            print(f"    Id:      {session.session_id}")
            if session.user_name:
                print(f"    User:    {session.user_name}")
            if session.now_playing_name:
                state = "paused" if session.is_paused else "playing"
                position = format_ticks(session.position_ticks)
                print(f"    Playing: {session.now_playing_name} ({state}, {position})")
            if not session.supports_media_control:
                print("    (does not support media control)")
        print(f"\nTo control a session:\n  jellyremote --session {sessions[0].session_id}")
        return 0
    finally:
        await client.close()
        await settings.flush()


async def play_items(args: argparse.Namespace) -> int:
    """Start playback of ``args.play`` on the chosen or restored session."""
    settings = await get_settings_manager(args.config_dir)
    try:
        client = await sign_in(
            settings,
            server_url=args.url,
            username=args.username,
            password=args.password,
            token=args.token,
            user_id=args.user_id,
        )
    except AuthenticationError as e:
        print(f"Error: {e}")
        return 1

    controller = RemoteController(client, NullPresenceSink())
    try:
        selector = TargetSessionSelector(client, settings, client.device_id)
        if args.session:
            settings.save_last_session(args.session)
        selector.add_target_listener(controller.follow_target)
        await selector.refresh()
        if selector.target is None:
            print(selector.error_message or "No target session; use --list-sessions and --session")
            return 1

        controller.stop_polling()
        controller.commands.play_items(list(args.play))
        await controller.commands.drain()
        if controller.commands.error_message:
            print(f"Error: {controller.commands.error_message}")
            return 1
        print(f"Playing {len(args.play)} item(s) on {selector.target.label}")
        return 0
    finally:
        await controller.close()
        await client.close()
        await settings.flush()


def main() -> int:
    """Run the CLI."""
    args = parse_args(sys.argv[1:])

    # Interactive mode keeps the display clean; the app lowers the level itself
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.list_sessions:
        return asyncio.run(list_sessions(args))

    if args.play:
        return asyncio.run(play_items(args))

    app = JellyRemoteApp(
        AppArgs(
            url=args.url,
            username=args.username,
            password=args.password,
            token=args.token,
            user_id=args.user_id,
            session_id=args.session,
            poll_interval=args.poll_interval,
            hook_start=args.hook_start,
            hook_stop=args.hook_stop,
            config_dir=args.config_dir,
        )
    )
    return asyncio.run(app.run())


if __name__ == "__main__":
    raise SystemExit(main())
