"""Periodic polling of one target session's playback state."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol

from aiohttp import ClientError

from jellyremote.api import JellyfinApiError
from jellyremote.constants import (
    LOST_CONNECTION_MESSAGE,
    PLAYBACK_POLL_INTERVAL,
    SESSION_NOT_FOUND_MESSAGE,
)
from jellyremote.models import PlaybackSnapshot
from jellyremote.utils import create_task

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[PlaybackSnapshot], None]
ErrorListener = Callable[[str], None]


class SessionSource(Protocol):
    """Anything that can list the sessions controllable by the current user."""

    async def fetch_controllable_sessions(self) -> list[dict[str, Any]]:
        """Return the raw session entries."""


class SessionPoller:
    """Polls the controllable session list and publishes the target's snapshot.

    At most one poll is in flight: a tick that finds the previous poll still
    pending is skipped, so a dead server never piles up requests. Each poll
    carries a sequence number and only results newer than the last applied one
    are published; results arriving after ``stop()`` (or after a restart for
    another target) are discarded.
    """

    def __init__(self, api: SessionSource, interval: float = PLAYBACK_POLL_INTERVAL) -> None:
        """Initialize the poller.

        Args:
            api: Source of the controllable session list.
            interval: Seconds between two polls.
        """
        self._api = api
        self._interval = interval
        self._target_session_id: str | None = None
        self._loop_task: asyncio.Task[None] | None = None
        self._inflight: asyncio.Task[None] | None = None
        self._poll_tasks: set[asyncio.Task[None]] = set()
        self._generation = 0
        self._next_seq = 0
        self._applied_seq = -1
        self._snapshot: PlaybackSnapshot | None = None
        self._previous: PlaybackSnapshot | None = None
        self._error_message: str | None = None
        self._consecutive_failures = 0
        self._snapshot_listeners: list[SnapshotListener] = []
        self._error_listeners: list[ErrorListener] = []

    @property
    def target_session_id(self) -> str | None:
        return self._target_session_id

    @property
    def snapshot(self) -> PlaybackSnapshot | None:
        """Latest published snapshot."""
        return self._snapshot

    @property
    def previous_snapshot(self) -> PlaybackSnapshot | None:
        """Snapshot published before the latest one."""
        return self._previous

    @property
    def error_message(self) -> str | None:
        return self._error_message

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def add_snapshot_listener(self, listener: SnapshotListener) -> Callable[[], None]:
        """Add a snapshot listener. Returns unsubscribe function."""
        self._snapshot_listeners.append(listener)
        return lambda: self._snapshot_listeners.remove(listener)

    def add_error_listener(self, listener: ErrorListener) -> Callable[[], None]:
        """Add an error listener. Returns unsubscribe function."""
        self._error_listeners.append(listener)
        return lambda: self._error_listeners.remove(listener)

    def start(self, target_session_id: str) -> None:
        """Start polling ``target_session_id``, replacing any previous loop."""
        self.stop()
        if target_session_id != self._target_session_id:
            self._snapshot = None
            self._previous = None
        self._target_session_id = target_session_id
        self._consecutive_failures = 0
        logger.debug("Polling session %s every %.1fs", target_session_id, self._interval)
        self._loop_task = create_task(
            self._run(self._generation, target_session_id), name="session-poller"
        )

    def stop(self) -> None:
        """Stop polling. In-flight results are discarded."""
        self._generation += 1
        self._inflight = None
        if self._loop_task is not None:
            self._loop_task.cancel()
            self._loop_task = None

    async def poll_now(self) -> None:
        """Poll immediately, or wait for the poll already in flight."""
        if self._target_session_id is None:
            return
        task = self._inflight
        if task is None or task.done():
            task = self._start_poll(self._generation, self._target_session_id)
        await asyncio.shield(task)

    def _start_poll(self, generation: int, session_id: str) -> asyncio.Task[None]:
        task = create_task(self._poll(generation, session_id), name="session-poll")
        self._poll_tasks.add(task)
        task.add_done_callback(self._poll_tasks.discard)
        self._inflight = task
        return task

    async def _run(self, generation: int, session_id: str) -> None:
        # First poll fires immediately, then once per interval
        while generation == self._generation:
            if self._inflight is not None and not self._inflight.done():
                logger.debug("Previous poll still pending, skipping tick")
            else:
                self._start_poll(generation, session_id)
            await asyncio.sleep(self._interval)

    async def _poll(self, generation: int, session_id: str) -> None:
        seq = self._next_seq
        self._next_seq += 1

        try:
            sessions = await self._api.fetch_controllable_sessions()
            entry = next((s for s in sessions if s.get("Id") == session_id), None)
            snapshot = PlaybackSnapshot.from_json(entry) if entry is not None else None
        except (TimeoutError, OSError, ClientError, JellyfinApiError) as e:
            logger.debug("Poll failed (%s: %s)", type(e).__name__, e)
            self._apply_error(generation, seq, LOST_CONNECTION_MESSAGE)
            return
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Malformed session payload: %s", e)
            self._apply_error(generation, seq, LOST_CONNECTION_MESSAGE)
            return
        except Exception:
            logger.exception("Unexpected error while polling")
            self._apply_error(generation, seq, LOST_CONNECTION_MESSAGE)
            return

        if snapshot is None:
            logger.debug("Target session %s not found in %d sessions", session_id, len(sessions))
            self._apply_error(generation, seq, SESSION_NOT_FOUND_MESSAGE)
            return

        self._apply_snapshot(generation, seq, snapshot)

    def _is_current(self, generation: int, seq: int) -> bool:
        if generation != self._generation:
            return False
        if seq <= self._applied_seq:
            logger.debug("Discarding stale poll result %d (applied %d)", seq, self._applied_seq)
            return False
        self._applied_seq = seq
        return True

    def _apply_snapshot(self, generation: int, seq: int, snapshot: PlaybackSnapshot) -> None:
        if not self._is_current(generation, seq):
            return
        self._previous = self._snapshot
        self._snapshot = snapshot
        self._error_message = None
        self._consecutive_failures = 0

        previous = self._previous
        if previous is None or (
            previous.is_playing != snapshot.is_playing
            or previous.now_playing_id != snapshot.now_playing_id
        ):
            logger.info("Session %s: %s", self._target_session_id, snapshot.describe())

        for listener in list(self._snapshot_listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Error in snapshot listener")

    def _apply_error(self, generation: int, seq: int, message: str) -> None:
        if not self._is_current(generation, seq):
            return
        self._error_message = message
        self._consecutive_failures += 1
        for listener in list(self._error_listeners):
            try:
                listener(message)
            except Exception:
                logger.exception("Error in poll error listener")
