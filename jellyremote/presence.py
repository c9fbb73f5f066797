"""Drive an external "media loaded" indicator from polled state.

The indicator sink is best-effort: it is missing on most hosts, so every error
it raises is swallowed here. Calls are strictly serialized through a
``SerialTaskQueue`` so overlapping polls can never interleave a start with a
stop or reorder them.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from jellyremote.hooks import run_hook
from jellyremote.models import TargetSession
from jellyremote.utils import create_task

logger = logging.getLogger(__name__)


class SerialTaskQueue:
    """Runs queued coroutine factories one at a time, in FIFO order.

    Each operation starts only after the previous one has finished, whether it
    succeeded or failed. Exceptions are logged and swallowed.
    """

    def __init__(self, name: str = "queue") -> None:
        """Initialize the queue."""
        self._name = name
        self._tail: asyncio.Task[None] | None = None

    def enqueue(self, operation: Callable[[], Awaitable[None]]) -> asyncio.Task[None]:
        """Queue ``operation`` behind everything already queued."""
        previous = self._tail
        task = create_task(self._run(previous, operation), name=f"{self._name}-op")
        self._tail = task
        return task

    async def drain(self) -> None:
        """Wait until everything queued so far has finished."""
        tail = self._tail
        if tail is not None:
            await asyncio.shield(tail)

    async def _run(
        self,
        previous: asyncio.Task[None] | None,
        operation: Callable[[], Awaitable[None]],
    ) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        try:
            await operation()
        except Exception:
            logger.debug("%s: queued operation failed", self._name, exc_info=True)


class PresenceSink(Protocol):
    """External indicator with start/stop operations."""

    async def start(self, title: str) -> None:
        """Show the indicator with ``title``."""

    async def stop(self) -> None:
        """Hide the indicator."""


class NullPresenceSink:
    """Sink for hosts without an indicator."""

    async def start(self, title: str) -> None:
        logger.debug("Presence start ignored: %s", title)

    async def stop(self) -> None:
        logger.debug("Presence stop ignored")


class HookPresenceSink:
    """Runs shell hooks when the indicator should be shown or hidden."""

    def __init__(
        self,
        start_command: str | None = None,
        stop_command: str | None = None,
        *,
        target: Callable[[], TargetSession | None] | None = None,
    ) -> None:
        """Initialize the sink.

        Args:
            start_command: Shell command run on start, with the title in
                ``JELLYREMOTE_TITLE``.
            stop_command: Shell command run on stop.
            target: Returns the controlled session, whose id and device name
                are passed to the hooks.
        """
        self._start_command = start_command
        self._stop_command = stop_command
        self._target = target or (lambda: None)

    async def start(self, title: str) -> None:
        if self._start_command:
            await run_hook(self._start_command, event="start", title=title, **self._context())

    async def stop(self) -> None:
        if self._stop_command:
            await run_hook(self._stop_command, event="stop", **self._context())

    def _context(self) -> dict[str, str | None]:
        target = self._target()
        if target is None:
            return {}
        return {"session_id": target.session_id, "device_name": target.device_name}


class PresenceSignalBridge:
    """Owns the shown/hidden state of the indicator and serializes sink calls."""

    def __init__(
        self,
        sink: PresenceSink,
        *,
        on_change: Callable[[bool, str | None], None] | None = None,
    ) -> None:
        """Initialize the bridge.

        Args:
            sink: The external indicator.
            on_change: Called with (shown, title) after every state change.
        """
        self._sink = sink
        self._on_change = on_change
        self._queue = SerialTaskQueue("presence")
        self._shown = False
        self._title: str | None = None

    @property
    def shown(self) -> bool:
        return self._shown

    @property
    def title(self) -> str | None:
        return self._title

    def sync_from_poll(self, has_media: bool, title: str) -> asyncio.Task[None]:
        """Start or stop the indicator to match polled media state."""
        return self._queue.enqueue(lambda: self._sync(has_media, title))

    def force_stop(self) -> asyncio.Task[None]:
        """Stop the indicator regardless of the current state."""
        return self._queue.enqueue(self._force_stop)

    async def drain(self) -> None:
        """Wait for queued indicator calls to finish."""
        await self._queue.drain()

    async def _sync(self, has_media: bool, title: str) -> None:
        if has_media:
            if not self._shown or self._title != title:
                try:
                    await self._sink.start(title)
                except Exception as e:  # noqa: BLE001
                    logger.debug("Presence start failed: %s", e)
                    return
                self._set_state(shown=True, title=title)
        elif self._shown:
            try:
                await self._sink.stop()
            except Exception as e:  # noqa: BLE001
                logger.debug("Presence stop failed: %s", e)
            self._set_state(shown=False, title=None)

    async def _force_stop(self) -> None:
        try:
            await self._sink.stop()
        except Exception as e:  # noqa: BLE001
            logger.debug("Presence stop failed: %s", e)
        self._set_state(shown=False, title=None)

    def _set_state(self, *, shown: bool, title: str | None) -> None:
        changed = shown != self._shown or title != self._title
        self._shown = shown
        self._title = title
        if changed and self._on_change is not None:
            self._on_change(shown, title)
