"""Run user-supplied shell hooks on presence changes."""

from __future__ import annotations

import asyncio
import logging
import os

logger = logging.getLogger(__name__)

HOOK_TIMEOUT_SECONDS = 10.0


class HookError(Exception):
    """Raised when a hook exits with a non-zero status or times out."""


async def run_hook(
    command: str,
    *,
    event: str,
    title: str | None = None,
    session_id: str | None = None,
    device_name: str | None = None,
    timeout: float = HOOK_TIMEOUT_SECONDS,
) -> None:
    """Run a hook command through the shell.

    Context is passed in ``JELLYREMOTE_*`` environment variables; empty values
    are omitted.

    Raises:
        HookError: If the command fails or does not finish within ``timeout``.
    """
    env = dict(os.environ)
    env["JELLYREMOTE_EVENT"] = event
    extra = {
        "JELLYREMOTE_TITLE": title,
        "JELLYREMOTE_SESSION_ID": session_id,
        "JELLYREMOTE_DEVICE_NAME": device_name,
    }
    env.update({key: value for key, value in extra.items() if value})

    logger.debug("Running %s hook: %s", event, command)
    process = await asyncio.create_subprocess_shell(
        command,
        env=env,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        _, stderr = await asyncio.wait_for(process.communicate(), timeout)
    except TimeoutError as e:
        process.kill()
        await process.wait()
        raise HookError(f"{event} hook timed out after {timeout:.0f}s") from e

    if process.returncode != 0:
        detail = stderr.decode("utf-8", "replace").strip() if stderr else ""
        raise HookError(f"{event} hook exited with status {process.returncode}: {detail}")
