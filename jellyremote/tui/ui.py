"""Rich-based terminal UI for the Jellyfin remote."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Self

from rich.console import Console, ConsoleOptions, RenderResult
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from jellyremote.constants import TICKS_PER_SECOND
from jellyremote.models import MediaStreamInfo, PlaybackSnapshot, TargetSession, format_ticks

if TYPE_CHECKING:
    from jellyremote.remote import RemoteController


class _RefreshableLayout:
    """A renderable that rebuilds on each render cycle."""

    def __init__(self, ui: RemoteUI) -> None:
        self._ui = ui

    def __rich_console__(self, console: Console, options: ConsoleOptions) -> RenderResult:
        """Rebuild and yield the layout on each render."""
        yield self._ui._build_layout()  # noqa: SLF001


# Duration in seconds to highlight a pressed shortcut
SHORTCUT_HIGHLIGHT_DURATION = 0.15


@dataclass
class UIState:
    """Holds state for the UI display that is not owned by the controller."""

    server_url: str | None = None
    user_name: str | None = None
    status_message: str = "Initializing..."

    # Session selector
    show_session_selector: bool = False
    available_sessions: list[TargetSession] = field(default_factory=list)
    selected_session_index: int = 0
    sessions_error: str | None = None

    # Position interpolation
    snapshot: PlaybackSnapshot | None = None
    snapshot_received_at: float = 0.0  # time.monotonic() when snapshot arrived

    # Shortcut highlight
    highlighted_shortcut: str | None = None
    highlight_time: float = 0.0


class RemoteUI:
    """Rich-based terminal UI rendering a ``RemoteController``."""

    def __init__(self, controller: RemoteController) -> None:
        """Initialize the UI."""
        self._console = Console()
        self._controller = controller
        self._state = UIState()
        self._live: Live | None = None
        self._unsubscribe: Callable[[], None] | None = controller.add_listener(
            self._on_controller_change
        )

    @property
    def state(self) -> UIState:
        """Get the UI state for external updates."""
        return self._state

    def _on_controller_change(self) -> None:
        snapshot = self._controller.commands.reconciler.snapshot
        if snapshot is not self._state.snapshot:
            self._state.snapshot = snapshot
            self._state.snapshot_received_at = time.monotonic()
        self.refresh()

    def _is_highlighted(self, shortcut: str) -> bool:
        """Check if a shortcut should be highlighted."""
        if self._state.highlighted_shortcut != shortcut:
            return False
        elapsed = time.monotonic() - self._state.highlight_time
        return elapsed < SHORTCUT_HIGHLIGHT_DURATION

    def _shortcut_style(self, shortcut: str) -> str:
        """Get the style for a shortcut key."""
        return "bold yellow reverse" if self._is_highlighted(shortcut) else "bold cyan"

    def _shortcut(self, text: Text, key: str, name: str, label: str) -> None:
        text.append(key, style=self._shortcut_style(name))
        text.append(f" {label}  ", style="dim")

    def highlight_shortcut(self, shortcut: str) -> None:
        """Highlight a shortcut temporarily."""
        self._state.highlighted_shortcut = shortcut
        self._state.highlight_time = time.monotonic()
        self.refresh()

    def _display_position(self, display: PlaybackSnapshot) -> int:
        """Display position, interpolated between polls while playing."""
        if (
            display.is_playing
            and self._controller.commands.reconciler.position.pending_edit is None
            and self._state.snapshot_received_at > 0
        ):
            elapsed = time.monotonic() - self._state.snapshot_received_at
            position = display.position_ticks + int(elapsed * TICKS_PER_SECOND)
            if display.duration_ticks:
                position = min(display.duration_ticks, position)
            return position
        return display.position_ticks

    def _build_now_playing_panel(self, display: PlaybackSnapshot, *, expand: bool = False) -> Panel:
        """Build the now playing panel."""
        if self._controller.target_session is None:
            content = Table.grid()
            content.add_column()
            content.add_row("")
            line = Text()
            line.append("Press ", style="dim")
            line.append("s", style="bold cyan")
            line.append(" to choose a device to control", style="dim")
            content.add_row(line)
            content.add_row("")
            return Panel(content, title="Now Playing", border_style="blue", expand=expand)

        if not display.has_media:
            content = Table.grid()
            content.add_column()
            content.add_row("")
            message = "Loading..." if self._controller.is_loading else "Nothing playing"
            content.add_row(Text(message, style="dim"))
            content.add_row("")
            return Panel(content, title="Now Playing", border_style="blue", expand=expand)

        # Info grid with label/value columns
        info = Table.grid(padding=(0, 1))
        info.add_column(style="dim", width=8)
        info.add_column()

        info.add_row("Title:", Text(display.now_playing_name or "Unknown", style="bold white"))
        if display.now_playing_artist or display.now_playing_type == "Audio":
            info.add_row(
                "Artist:", Text(display.now_playing_artist or "Unknown artist", style="cyan")
            )
            info.add_row("Album:", Text(display.now_playing_album or "Unknown album", style="dim"))
        else:
            info.add_row("Type:", Text(display.now_playing_type or "Unknown", style="cyan"))
            info.add_row("Method:", Text(display.play_method or "-", style="dim"))

        content = Table.grid()
        content.add_column()
        content.add_row(info)
        content.add_row("")

        space_label = "pause" if display.is_playing else "play"
        shortcuts = Text()
        self._shortcut(shortcuts, "p", "prev", "prev")
        self._shortcut(shortcuts, "<space>", "space", space_label)
        self._shortcut(shortcuts, "n", "next", "next")
        self._shortcut(shortcuts, "x", "stop", "stop")
        content.add_row(shortcuts)

        return Panel(content, title="Now Playing", border_style="blue", expand=expand)

    def _build_progress_bar(self, display: PlaybackSnapshot, *, expand: bool = False) -> Panel:
        """Build the progress bar panel."""
        position = self._display_position(display)
        duration = display.duration_ticks or 0
        percentage = min(100.0, position / duration * 100) if duration > 0 else 0.0

        time_str = f"{format_ticks(position)} / {format_ticks(display.duration_ticks)}"

        # Calculate bar width: terminal - panel borders (4) - time text - spacing
        bar_width = max(10, self._console.width - 4 - len(time_str) - 5)
        filled = int(bar_width * percentage / 100)
        empty = bar_width - filled

        seeking = self._controller.commands.reconciler.position.pending_edit is not None
        fill_style = "yellow bold" if seeking else "green bold"

        bar = Text()
        bar.append("[", style="dim")
        bar.append("=" * filled, style=fill_style)
        if filled < bar_width:
            bar.append(">", style=fill_style)
            bar.append("-" * max(0, empty - 1), style="dim")
        bar.append("] ", style="dim")

        time_text_styled = Text()
        time_text_styled.append(format_ticks(position), style="cyan")
        time_text_styled.append(" / ", style="dim")
        time_text_styled.append(format_ticks(display.duration_ticks), style="cyan")

        # Use grid to keep bar and time on same line
        content = Table.grid(expand=True, padding=0)
        content.add_column()
        content.add_column(justify="right", no_wrap=True)
        content.add_row(bar, time_text_styled)

        title = "Progress (seeking)" if seeking else "Progress"
        return Panel(content, title=title, border_style="green", expand=expand)

    def _build_volume_panel(self, display: PlaybackSnapshot, *, expand: bool = False) -> Panel:
        """Build the volume panel."""
        info = Table.grid(padding=(0, 2))
        info.add_column()
        info.add_column()

        adjusting = self._controller.commands.reconciler.volume.pending_edit is not None
        vol_style = "red" if display.is_muted else ("yellow" if adjusting else "cyan")
        vol_text = f"{display.volume_level}%" + (" [MUTED]" if display.is_muted else "")
        info.add_row("Level:", Text(vol_text, style=vol_style))
        info.add_row("", Text("adjusting..." if adjusting else "", style="dim"))

        content = Table.grid()
        content.add_column()
        content.add_row(info)
        content.add_row("")
        content.add_row("")

        shortcuts = Text()
        self._shortcut(shortcuts, "↑", "up", "up")
        self._shortcut(shortcuts, "↓", "down", "down")
        self._shortcut(shortcuts, "m", "mute", "mute")
        content.add_row(shortcuts)

        return Panel(content, title="Volume", border_style="magenta", expand=expand)

    def _build_tracks_panel(self, display: PlaybackSnapshot, *, expand: bool = False) -> Panel:
        """Build the audio/subtitle tracks panel."""
        content = Table.grid(padding=(0, 1))
        content.add_column(style="dim", width=10)
        content.add_column()

        content.add_row(
            "Audio:", _track_text(display.audio_streams, display.selected_audio_index)
        )
        content.add_row(
            "Subtitles:",
            _track_text(display.subtitle_streams, display.selected_subtitle_index, allow_off=True),
        )

        shortcuts = Text()
        self._shortcut(shortcuts, "a", "audio", "audio")
        self._shortcut(shortcuts, "t", "subtitles", "subtitles")
        content.add_row("", shortcuts)
        return Panel(content, title="Tracks", border_style="yellow", expand=expand)

    def _build_session_selector_panel(self) -> Panel:
        """Build the session selector panel."""
        content = Table.grid()
        content.add_column()

        current = self._controller.target_session
        if self._state.sessions_error:
            content.add_row("")
            content.add_row(Text(self._state.sessions_error, style="red"))
            content.add_row("")
        elif not self._state.available_sessions:
            content.add_row("")
            content.add_row(Text("No controllable sessions found", style="dim"))
            content.add_row("")
        else:
            for i, session in enumerate(self._state.available_sessions):
                is_selected = i == self._state.selected_session_index

                line = Text()
                line.append(" > " if is_selected else "   ", style="bold cyan")
                line.append(session.device_name, style="bold white" if is_selected else "white")
                line.append(f"  {session.client_name}", style="dim")
                if session == current:
                    line.append(" (current)", style="dim green")
                if not session.supports_media_control:
                    line.append(" (no media control)", style="dim red")
                content.add_row(line)

                detail = Text("      ")
                detail_style = "cyan" if is_selected else "dim"
                if session.now_playing_name:
                    state = "paused" if session.is_paused else "playing"
                    detail.append(f"{session.now_playing_name} ({state})", style=detail_style)
                else:
                    detail.append("Idle", style=detail_style)
                if session.user_name:
                    detail.append(f" · {session.user_name}", style="dim")
                content.add_row(detail)

        content.add_row("")

        shortcuts = Text()
        shortcuts.append("↑", style=self._shortcut_style("selector-up"))
        shortcuts.append("/", style="dim")
        shortcuts.append("↓", style=self._shortcut_style("selector-down"))
        shortcuts.append(" navigate  ", style="dim")
        self._shortcut(shortcuts, "<enter>", "selector-enter", "control")
        self._shortcut(shortcuts, "r", "selector-refresh", "refresh")
        self._shortcut(shortcuts, "c", "selector-clear", "disconnect")
        self._shortcut(shortcuts, "q", "selector-close", "close")
        content.add_row(shortcuts)

        return Panel(content, title="Select Device", border_style="cyan")

    def _build_layout(self) -> Table:
        """Build the complete UI layout."""
        # Get terminal width and leave 1 char margin to prevent wrapping
        width = self._console.width - 1

        layout = Table.grid(expand=False)
        layout.add_column(width=width)

        if self._state.show_session_selector:
            layout.add_row(self._build_session_selector_panel())
            return layout

        display = self._controller.display_state

        # Top row: Now Playing + Volume
        top_row = Table.grid(expand=True)
        top_row.add_column(ratio=2)
        top_row.add_column(ratio=1)
        top_row.add_row(
            self._build_now_playing_panel(display, expand=True),
            self._build_volume_panel(display, expand=True),
        )
        layout.add_row(top_row)
        layout.add_row(self._build_progress_bar(display, expand=True))
        if display.audio_streams or display.subtitle_streams:
            layout.add_row(self._build_tracks_panel(display, expand=True))
        layout.add_row(self._build_status_line())

        return layout

    def _build_status_line(self) -> Table:
        """Build the status line at the bottom."""
        left = Text()
        left.append("  ")  # Align with panel content
        target = self._controller.target_session
        error = self._controller.error_message
        if error:
            left.append(error, style="bold red")
        elif target is not None:
            left.append(f"Controlling {target.label}", style="dim")
            if self._controller.presence_shown:
                left.append(" · ●", style="green")
        else:
            left.append(self._state.status_message, style="dim yellow")

        right = Text()
        self._shortcut(right, "←/→", "seek", "seek")
        self._shortcut(right, "s", "sessions", "devices")
        right.append("q", style=self._shortcut_style("quit"))
        right.append(" quit", style="dim")

        # Use grid for left/right alignment with padding column
        line = Table.grid(expand=True)
        line.add_column(ratio=1)
        line.add_column(justify="right")
        line.add_column(width=2)  # Right padding to align with panel interior
        line.add_row(left, right, "")
        return line

    def refresh(self) -> None:
        """Request a UI refresh."""
        if self._live is not None:
            self._live.refresh()

    def set_connected(self, server_url: str, user_name: str | None) -> None:
        """Record the server and user this remote is signed in to."""
        self._state.server_url = server_url
        self._state.user_name = user_name
        self._state.status_message = f"Signed in to {server_url}" + (
            f" as {user_name}" if user_name else ""
        )
        self.refresh()

    def set_status(self, message: str) -> None:
        self._state.status_message = message
        self.refresh()

    def show_session_selector(
        self, sessions: list[TargetSession], error: str | None = None
    ) -> None:
        """Show the session selector with the given sessions."""
        self._state.available_sessions = sessions
        self._state.sessions_error = error
        current = self._controller.target_session
        self._state.selected_session_index = next(
            (i for i, s in enumerate(sessions) if s == current), 0
        )
        self._state.show_session_selector = True
        self.refresh()

    def update_session_list(self, sessions: list[TargetSession], error: str | None = None) -> None:
        """Replace the listed sessions, keeping the highlighted one if present."""
        selected = self.get_selected_session()
        self._state.available_sessions = sessions
        self._state.sessions_error = error
        if selected is not None and selected in sessions:
            self._state.selected_session_index = sessions.index(selected)
        else:
            self._state.selected_session_index = 0
        self.refresh()

    def hide_session_selector(self) -> None:
        """Hide the session selector."""
        self._state.show_session_selector = False
        self.refresh()

    def is_session_selector_visible(self) -> bool:
        """Check if the session selector is currently visible."""
        return self._state.show_session_selector

    def move_session_selection(self, delta: int) -> None:
        """Move the session selection by delta (-1 for up, +1 for down)."""
        if not self._state.available_sessions:
            return
        new_index = self._state.selected_session_index + delta
        self._state.selected_session_index = max(
            0, min(len(self._state.available_sessions) - 1, new_index)
        )
        self.refresh()

    def get_selected_session(self) -> TargetSession | None:
        """Get the currently highlighted session."""
        sessions = self._state.available_sessions
        if 0 <= self._state.selected_session_index < len(sessions):
            return sessions[self._state.selected_session_index]
        return None

    def start(self) -> None:
        """Start the live display."""
        self._console.clear()
        self._live = Live(
            _RefreshableLayout(self),
            console=self._console,
            refresh_per_second=4,
            screen=True,
        )
        self._live.start()

    def stop(self) -> None:
        """Stop the live display."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._live is not None:
            self._live.stop()
            self._live = None

    def __enter__(self) -> Self:
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, *_: object) -> None:
        """Context manager exit."""
        self.stop()


def _track_text(
    streams: tuple[MediaStreamInfo, ...], selected: int | None, *, allow_off: bool = False
) -> Text:
    if allow_off and (selected is None or selected < 0):
        return Text("Off", style="dim")
    if not streams:
        return Text("-", style="dim")
    current = next((s for s in streams if s.index == selected), None)
    if current is None:
        return Text("Default", style="dim")
    position = streams.index(current) + 1
    return Text(f"{current.name} ({position}/{len(streams)})", style="cyan")
