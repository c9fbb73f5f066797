"""Small helpers shared across the Jellyfin remote control."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Coroutine
from typing import TypeVar

_T = TypeVar("_T")

# eager_start exists from Python 3.12 on
_SUPPORTS_EAGER_START = sys.version_info >= (3, 12)


def create_task(
    coro: Coroutine[None, None, _T],
    *,
    name: str | None = None,
    eager_start: bool = True,
) -> asyncio.Task[_T]:
    """Schedule ``coro`` on the running loop, starting it eagerly when possible.

    An eagerly started task runs up to its first suspension point before this
    returns, so requests reach the network layer in the order they were made.
    On Python 3.11 the task is scheduled normally.
    """
    loop = asyncio.get_running_loop()
    if _SUPPORTS_EAGER_START and eager_start:
        return asyncio.Task(coro, loop=loop, name=name, eager_start=True)
    return loop.create_task(coro, name=name)


def redact_token(token: str | None) -> str:
    """Redact an access token for logging, keeping only the last 6 characters."""
    if token is None or len(token) < 10:
        return "***"
    return f"***{token[-6:]}"
