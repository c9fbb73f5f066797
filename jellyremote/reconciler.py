"""Blend polled playback state with pending local edits.

User input (rotary ticks, key repeats, drags) changes the displayed volume and
position immediately. The value shown comes from a ``PendingEdit`` until the
server reports a value within tolerance of it, or until a failsafe deadline
passes, so the display never snaps back to a stale poll result while a command
is still travelling.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable

from jellyremote.constants import (
    COMMAND_SEND_INTERVAL,
    PENDING_EDIT_FAILSAFE,
    TICKS_PER_SECOND,
    VOLUME_MAX,
    VOLUME_MIN,
    VOLUME_ROTARY_SENSITIVITY,
    VOLUME_TOLERANCE,
)
from jellyremote.dispatcher import RateLimitedDispatcher
from jellyremote.models import PendingEdit, PlaybackSnapshot

logger = logging.getLogger(__name__)


class AdjustableQuantity:
    """One optimistically edited quantity with its own dispatcher and failsafe."""

    def __init__(
        self,
        name: str,
        *,
        read: Callable[[PlaybackSnapshot], int],
        bounds: Callable[[PlaybackSnapshot], tuple[int, int | None]],
        send: Callable[[int], None],
        tolerance: int = 0,
        failsafe: float = PENDING_EDIT_FAILSAFE,
        send_interval: float = COMMAND_SEND_INTERVAL,
        follows_playback: bool = False,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the quantity.

        Args:
            name: Name used in log messages.
            read: Extracts the authoritative value from a snapshot.
            bounds: Returns the (lower, upper) range for a snapshot; an upper
                bound of None means unbounded.
            send: Receives the values chosen by the dispatcher.
            tolerance: Maximum distance at which a polled value counts as
                having caught up with the pending target.
            failsafe: Seconds after the latest input at which an edit that
                never converged is dropped.
            send_interval: Rate limit for outbound sends.
            follows_playback: Whether the server value keeps advancing during
                playback (position), so a value past the target still counts
                as caught up.
            on_change: Called when the pending edit is created, replaced or
                cleared.
        """
        self.name = name
        self._read = read
        self._bounds = bounds
        self._tolerance = tolerance
        self._failsafe = failsafe
        self._follows_playback = follows_playback
        self._on_change = on_change
        self._dispatcher: RateLimitedDispatcher[int] = RateLimitedDispatcher(
            self._dispatch, send_interval, name=name
        )
        self._send = send
        self._edit: PendingEdit | None = None
        self._failsafe_timer: asyncio.TimerHandle | None = None

    @property
    def pending_edit(self) -> PendingEdit | None:
        return self._edit

    @property
    def dispatcher(self) -> RateLimitedDispatcher[int]:
        return self._dispatcher

    def current_target(self, snapshot: PlaybackSnapshot) -> int:
        """The pending target, or the snapshot value when nothing is pending."""
        if self._edit is not None:
            return self._edit.target_value
        return self._read(snapshot)

    def display_value(self, snapshot: PlaybackSnapshot) -> int:
        return self.current_target(snapshot)

    def adjust(self, delta: int, snapshot: PlaybackSnapshot) -> int:
        """Move the target by ``delta`` and return the resulting target."""
        return self.set_target(self.current_target(snapshot) + delta, snapshot)

    def set_target(self, value: int, snapshot: PlaybackSnapshot) -> int:
        """Set an absolute target, clamped to the valid range."""
        lower, upper = self._bounds(snapshot)
        target = max(lower, value)
        if upper is not None:
            target = min(upper, target)

        if target == self.current_target(snapshot):
            return target

        loop = asyncio.get_running_loop()
        now = loop.time()
        if self._edit is None:
            self._edit = PendingEdit(
                target_value=target,
                created_at=now,
                failsafe_deadline=now + self._failsafe,
            )
        else:
            self._edit.target_value = target
            self._edit.created_at = now
            self._edit.failsafe_deadline = now + self._failsafe
        self._arm_failsafe(loop, self._edit.failsafe_deadline)
        self._notify()
        self._dispatcher.submit(target)
        return target

    def on_snapshot(self, snapshot: PlaybackSnapshot) -> bool:
        """Clear the edit if the server has caught up. Returns True if cleared."""
        edit = self._edit
        if edit is None:
            return False
        value = self._read(snapshot)
        if abs(value - edit.target_value) <= self._tolerance:
            logger.debug("%s converged at %d", self.name, value)
            self.clear()
            return True
        if self._follows_playback and snapshot.is_playing and edit.last_sent_value is not None:
            elapsed = asyncio.get_running_loop().time() - edit.created_at
            allowance = math.ceil(elapsed * TICKS_PER_SECOND)
            if edit.target_value <= value <= edit.target_value + allowance + self._tolerance:
                logger.debug("%s moved on from %d to %d", self.name, edit.target_value, value)
                self.clear()
                return True
        return False

    def end_interaction(self) -> None:
        """Explicitly end the interaction (drag release, confirm)."""
        self.clear()

    def clear(self) -> None:
        """Drop the pending edit, if any."""
        if self._failsafe_timer is not None:
            self._failsafe_timer.cancel()
            self._failsafe_timer = None
        self._dispatcher.forget_last_sent()
        if self._edit is not None:
            self._edit = None
            self._notify()

    def reset(self) -> None:
        """Drop the edit and anything still waiting to be sent."""
        self._dispatcher.cancel()
        self.clear()

    def _dispatch(self, value: int) -> None:
        if self._edit is not None:
            self._edit.last_sent_value = value
        self._send(value)

    def _arm_failsafe(self, loop: asyncio.AbstractEventLoop, deadline: float) -> None:
        if self._failsafe_timer is not None:
            self._failsafe_timer.cancel()
        self._failsafe_timer = loop.call_at(deadline, self._on_failsafe)

    def _on_failsafe(self) -> None:
        self._failsafe_timer = None
        if self._edit is not None:
            logger.debug(
                "%s: no convergence on %d before failsafe, dropping override",
                self.name,
                self._edit.target_value,
            )
        self.clear()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()


def _volume_bounds(_snapshot: PlaybackSnapshot) -> tuple[int, int | None]:
    return VOLUME_MIN, VOLUME_MAX


def _position_bounds(snapshot: PlaybackSnapshot) -> tuple[int, int | None]:
    if snapshot.duration_ticks is not None and snapshot.duration_ticks > 0:
        return 0, snapshot.duration_ticks
    return 0, None


# Stands in for the snapshot before the first poll
_EMPTY_SNAPSHOT = PlaybackSnapshot()


class OptimisticStateReconciler:
    """Merges the latest snapshot with pending volume and seek edits.

    Relative adjustments need an authoritative value to start from, so
    ``adjust_volume`` and ``seek_by`` are ignored until the first snapshot for
    the current target has arrived. Absolute targets are accepted at any time.
    """

    def __init__(
        self,
        *,
        send_volume: Callable[[int], None],
        send_seek: Callable[[int], None],
        failsafe: float = PENDING_EDIT_FAILSAFE,
        send_interval: float = COMMAND_SEND_INTERVAL,
        on_display_change: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the reconciler.

        Args:
            send_volume: Receives rate-limited volume levels to transmit.
            send_seek: Receives rate-limited seek positions (ticks) to transmit.
            failsafe: Seconds before an unconverged edit is dropped.
            send_interval: Minimum seconds between two sends per quantity.
            on_display_change: Called when a pending edit changes the display.
        """
        self._snapshot: PlaybackSnapshot | None = None
        self._on_display_change = on_display_change
        self.volume = AdjustableQuantity(
            "volume",
            read=lambda s: s.volume_level,
            bounds=_volume_bounds,
            send=send_volume,
            tolerance=VOLUME_TOLERANCE,
            failsafe=failsafe,
            send_interval=send_interval,
            on_change=self._display_changed,
        )
        self.position = AdjustableQuantity(
            "position",
            read=lambda s: s.position_ticks,
            bounds=_position_bounds,
            send=send_seek,
            tolerance=0,
            failsafe=failsafe,
            send_interval=send_interval,
            follows_playback=True,
            on_change=self._display_changed,
        )

    @property
    def snapshot(self) -> PlaybackSnapshot | None:
        """Latest authoritative snapshot, None before the first poll."""
        return self._snapshot

    @property
    def has_snapshot(self) -> bool:
        return self._snapshot is not None

    def on_snapshot(self, snapshot: PlaybackSnapshot) -> None:
        """Accept a new authoritative snapshot."""
        previous = self._snapshot
        self._snapshot = snapshot
        self.volume.on_snapshot(snapshot)
        if previous is not None and previous.now_playing_id != snapshot.now_playing_id:
            # A seek into the previous item means nothing for the new one
            if self.position.pending_edit is not None:
                logger.debug("Now playing changed, ending seek interaction")
            self.position.end_interaction()
        else:
            self.position.on_snapshot(snapshot)

    def display_state(self) -> PlaybackSnapshot:
        """Snapshot with volume and position overridden by pending edits."""
        snapshot = self._current()
        volume = self.volume.display_value(snapshot)
        position = self.position.display_value(snapshot)
        if volume == snapshot.volume_level and position == snapshot.position_ticks:
            return snapshot
        return snapshot.with_volume(volume).with_position(position)

    def adjust_volume(self, delta: int) -> int | None:
        """Move the volume by ``delta``; None while no snapshot is known."""
        if self._snapshot is None:
            logger.info("Volume change ignored: playback state not loaded yet")
            return None
        return self.volume.adjust(delta, self._snapshot)

    def set_volume(self, level: int) -> int:
        return self.volume.set_target(level, self._current())

    def seek(self, position_ticks: int) -> int:
        return self.position.set_target(position_ticks, self._current())

    def seek_by(self, seconds: float) -> int | None:
        """Seek relative to the displayed position; None while no snapshot is known."""
        if self._snapshot is None:
            logger.info("Relative seek ignored: playback state not loaded yet")
            return None
        return self.position.adjust(round(seconds * TICKS_PER_SECOND), self._snapshot)

    @property
    def has_pending_edits(self) -> bool:
        return self.volume.pending_edit is not None or self.position.pending_edit is not None

    def reset(self) -> None:
        """Forget the snapshot and all pending edits (target change)."""
        self.volume.reset()
        self.position.reset()
        self._snapshot = None

    def _current(self) -> PlaybackSnapshot:
        return self._snapshot if self._snapshot is not None else _EMPTY_SNAPSHOT

    def _display_changed(self) -> None:
        if self._on_display_change is not None:
            self._on_display_change()


class RotaryAccumulator:
    """Converts rotary magnitudes into whole steps.

    Magnitudes are divided by ``sensitivity`` and accumulated; whole steps are
    emitted truncated toward zero and the fractional remainder is carried
    forward. A change of direction discards the carried remainder, so the first
    detent in the new direction is not absorbed by leftovers of the old one.
    """

    def __init__(self, sensitivity: float = VOLUME_ROTARY_SENSITIVITY) -> None:
        """Initialize the accumulator.

        Args:
            sensitivity: Magnitude needed for one step; higher is less sensitive.
        """
        if sensitivity <= 0:
            raise ValueError("sensitivity must be positive")
        self._sensitivity = sensitivity
        self._accum = 0.0

    @property
    def remainder(self) -> float:
        return self._accum

    def feed(self, magnitude: float, *, clockwise: bool) -> int:
        """Add one rotary event and return the whole steps it completes."""
        direction = 1.0 if clockwise else -1.0
        if self._accum * direction < 0:
            self._accum = 0.0
        self._accum += direction * (abs(magnitude) / self._sensitivity)
        steps = math.trunc(self._accum)
        self._accum -= steps
        return steps

    def reset(self) -> None:
        self._accum = 0.0
