"""Choosing, persisting and revalidating the controlled session."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any, Protocol

from aiohttp import ClientError

from jellyremote.api import JellyfinApiError
from jellyremote.models import TargetSession
from jellyremote.poller import SessionSource

logger = logging.getLogger(__name__)

TargetListener = Callable[[TargetSession | None], None]


class SessionPersistence(Protocol):
    """Storage for the last controlled session id."""

    def get_last_session_id(self) -> str | None:
        """Return the persisted session id, if any."""

    def save_last_session(self, session_id: str) -> None:
        """Persist ``session_id`` as the last controlled session."""

    def clear_last_session(self) -> None:
        """Forget the persisted session id."""


def select_sessions(
    raw_sessions: Iterable[dict[str, Any]], own_device_id: str | None
) -> list[TargetSession]:
    """Filter and sort raw sessions for presentation.

    Sessions without an id and sessions of this controller's own device are
    dropped. Sessions supporting media control come first; within each group,
    sessions with now-playing media come before idle ones.
    """
    sessions = [TargetSession.from_json(raw) for raw in raw_sessions]
    sessions = [s for s in sessions if s.session_id]
    if own_device_id:
        sessions = [s for s in sessions if s.device_id != own_device_id]
    # sort() is stable, so server order is kept within each group
    sessions.sort(key=lambda s: (not s.supports_media_control, not s.is_playing))
    return sessions


class TargetSessionSelector:
    """Maintains which session is controlled across navigation and restarts."""

    def __init__(
        self,
        api: SessionSource,
        persistence: SessionPersistence,
        own_device_id: str | None,
    ) -> None:
        """Initialize the selector.

        Args:
            api: Source of the controllable session list.
            persistence: Storage for the last controlled session id.
            own_device_id: Device id of this controller, never offered as a target.
        """
        self._api = api
        self._persistence = persistence
        self._own_device_id = own_device_id
        self._sessions: list[TargetSession] = []
        self._target: TargetSession | None = None
        self._is_loading = False
        self._error_message: str | None = None
        self._target_listeners: list[TargetListener] = []

    @property
    def sessions(self) -> list[TargetSession]:
        """Sessions from the latest refresh, sorted for presentation."""
        return list(self._sessions)

    @property
    def target(self) -> TargetSession | None:
        return self._target

    @property
    def has_target(self) -> bool:
        return self._target is not None

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def error_message(self) -> str | None:
        return self._error_message

    def add_target_listener(self, listener: TargetListener) -> Callable[[], None]:
        """Add a target change listener. Returns unsubscribe function."""
        self._target_listeners.append(listener)
        return lambda: self._target_listeners.remove(listener)

    async def refresh(self) -> list[TargetSession]:
        """Fetch sessions, then restore or revalidate the target."""
        self._is_loading = True
        try:
            raw = await self._api.fetch_controllable_sessions()
        except (TimeoutError, OSError, ClientError, JellyfinApiError, ValueError) as e:
            logger.debug("Session refresh failed (%s)", type(e).__name__)
            self._error_message = f"Failed to load sessions: {e}"
            return self.sessions
        finally:
            self._is_loading = False

        self._sessions = select_sessions(raw, self._own_device_id)
        self._error_message = None
        logger.debug("Refreshed sessions: %d controllable", len(self._sessions))

        if self._target is None:
            self._restore_last_session()
        else:
            current = next((s for s in self._sessions if s == self._target), None)
            if current is None:
                logger.info(
                    "Session %s (%s) is no longer available",
                    self._target.session_id,
                    self._target.device_name,
                )
                self._target = None
                self._persistence.clear_last_session()
                self._notify()
            else:
                # Keep the echoed summary fields fresh for display
                self._target = current
        return self.sessions

    def set_target(self, session: TargetSession) -> None:
        """Control ``session`` and persist its id."""
        logger.info("Controlling %s [%s]", session.label, session.session_id)
        self._target = session
        self._persistence.save_last_session(session.session_id)
        self._notify()

    def clear_target(self) -> None:
        """Stop controlling any session and forget the persisted id."""
        logger.info("Target session cleared")
        self._target = None
        self._persistence.clear_last_session()
        self._notify()

    def _restore_last_session(self) -> None:
        last_session_id = self._persistence.get_last_session_id()
        if last_session_id is None:
            return
        match = next((s for s in self._sessions if s.session_id == last_session_id), None)
        if match is None:
            logger.debug("Last session %s not among active sessions", last_session_id)
            return
        logger.info("Restored target session %s (%s)", match.session_id, match.device_name)
        self._target = match
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._target_listeners):
            try:
                listener(self._target)
            except Exception:
                logger.exception("Error in target listener")
