"""Leading-edge throttle with a trailing flush for high-frequency commands."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Generic, TypeVar

from jellyremote.constants import COMMAND_SEND_INTERVAL

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RateLimitedDispatcher(Generic[T]):
    """Turns a burst of "set quantity to X" requests into a bounded send rate.

    The first request of a burst is sent immediately and arms a timer. Requests
    arriving while the timer is armed only replace the pending value; when the
    timer fires, the latest pending value is sent (and the timer re-armed) if it
    differs from the last value sent. The final value of a burst is therefore
    always sent, at most one send happens per interval after the first, and the
    same value is never sent twice in a row.

    ``send`` is called synchronously, in request order. It must not block; the
    caller schedules any network I/O itself.
    """

    def __init__(
        self,
        send: Callable[[T], None],
        interval: float = COMMAND_SEND_INTERVAL,
        *,
        name: str = "dispatcher",
    ) -> None:
        """Initialize the dispatcher.

        Args:
            send: Callback invoked with each value to transmit.
            interval: Minimum seconds between two sends.
            name: Name used in log messages.
        """
        self._send = send
        self._interval = interval
        self._name = name
        self._pending: T | None = None
        self._last_sent: T | None = None
        self._timer: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> T | None:
        """Value waiting for the next send window, if any."""
        return self._pending

    @property
    def last_sent(self) -> T | None:
        """Last value handed to ``send``."""
        return self._last_sent

    @property
    def is_idle(self) -> bool:
        """Whether no send window is currently open."""
        return self._timer is None

    def submit(self, value: T) -> None:
        """Request that ``value`` be sent."""
        self._pending = value
        if self._timer is not None:
            return
        self._flush()
        self._arm()

    def forget_last_sent(self) -> None:
        """Drop the de-duplication memory once no burst is in progress."""
        if self._timer is None:
            self._last_sent = None

    def cancel(self) -> None:
        """Disarm the timer and drop any pending value."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending = None
        self._last_sent = None

    def _arm(self) -> None:
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._interval, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        if self._pending is not None and self._pending != self._last_sent:
            self._flush()
            self._arm()
        else:
            self._pending = None

    def _flush(self) -> None:
        value = self._pending
        if value is None or value == self._last_sent:
            return
        self._last_sent = value
        logger.debug("%s: sending %s", self._name, value)
        try:
            self._send(value)
        except Exception:
            logger.exception("%s: send callback failed", self._name)
