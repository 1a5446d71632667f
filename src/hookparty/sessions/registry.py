"""
In-memory session registry.

Owns every live Session and all mutation of session state. Hook events are
applied through ``process()``, which is the only code path that changes a
session's status.

Thread-safe: all mutations are serialized by a single lock; readers receive
immutable Session snapshots.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from hookparty.hooks.events import (
    HookEvent,
    HookEventType,
    NotificationPayload,
    ToolUsePayload,
)
from hookparty.sessions.models import UNKNOWN_DIRECTORY, Session, SessionStatus
from hookparty.utils.timers import Scheduler, ThreadTimerScheduler, TimerHandle

if TYPE_CHECKING:
    from hookparty.config.app import SessionSettings

logger = logging.getLogger(__name__)

SlugResolver = Callable[[str, str | None], str | None]

# Fields owned by the registry itself
_PROTECTED_FIELDS = frozenset({"id", "generation", "start_time", "last_activity"})

_PROMPT_CLEARED: dict[str, Any] = {
    "question": None,
    "options": None,
    "last_notification": None,
}


def _now_ms() -> int:
    return int(time.time() * 1000)


class SessionRegistry:
    """
    Keyed collection of live sessions driven by hook events.

    A SessionEnd leaves the session visible as ``stopped`` for a grace window
    and then evicts it. Each (re)creation of an id gets a fresh generation
    number; a pending eviction only removes the generation it was scheduled
    for, so a session restarted inside the grace window survives.
    """

    def __init__(
        self,
        end_grace_seconds: float = 30.0,
        scheduler: Scheduler | None = None,
        slug_resolver: SlugResolver | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.end_grace_seconds = end_grace_seconds
        self._scheduler = scheduler or ThreadTimerScheduler()
        self._slug_resolver = slug_resolver
        self._clock = clock or _now_ms

        self._sessions: dict[str, Session] = {}
        self._lock = threading.RLock()
        self._generations = itertools.count(1)
        self._evictions: dict[str, tuple[int, TimerHandle]] = {}
        self._change_listeners: list[Callable[[], Any]] = []

    @classmethod
    def from_config(
        cls,
        settings: SessionSettings,
        scheduler: Scheduler | None = None,
    ) -> SessionRegistry:
        """Build a registry from session settings."""
        slug_resolver: SlugResolver | None = None
        if settings.resolve_slugs:
            from hookparty.sessions.slugs import TranscriptSlugResolver

            slug_resolver = TranscriptSlugResolver(settings.transcripts_dir)

        return cls(
            end_grace_seconds=settings.end_grace_seconds,
            scheduler=scheduler,
            slug_resolver=slug_resolver,
        )

    def add_change_listener(self, listener: Callable[[], Any]) -> None:
        """Add a listener to be called when sessions change."""
        self._change_listeners.append(listener)

    def _notify_listeners(self) -> None:
        for listener in self._change_listeners:
            try:
                listener()
            except Exception as e:
                logger.error(f"Error in session change listener: {e}")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def list(self) -> list[Session]:
        with self._lock:
            return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, session_id: str, working_directory: str = UNKNOWN_DIRECTORY) -> Session:
        """Create (or replace) the session for ``session_id`` as a new incarnation."""
        with self._lock:
            session = self._create_locked(session_id, working_directory)
        self._notify_listeners()
        return session

    def update(self, session_id: str, **fields: Any) -> Session | None:
        """
        Apply a partial update to an existing session.

        Returns:
            The updated snapshot, or None if the session does not exist
        """
        with self._lock:
            session = self._update_locked(session_id, fields)
        if session is not None:
            self._notify_listeners()
        return session

    def remove(self, session_id: str) -> bool:
        """Remove a session immediately. Returns True if it existed."""
        with self._lock:
            self._cancel_eviction_locked(session_id)
            removed = self._sessions.pop(session_id, None) is not None
        if removed:
            logger.debug(f"Removed session {session_id[:8]}")
            self._notify_listeners()
        return removed

    def ensure(self, session_id: str) -> Session:
        """Return the session, creating it with an unknown directory if needed."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                return session
            session = self._create_locked(session_id, UNKNOWN_DIRECTORY)
        logger.debug(f"Auto-created session {session_id[:8]} from unknown id")
        self._notify_listeners()
        return session

    def process(self, event: HookEvent) -> Session | None:
        """
        Apply one hook event to the registry.

        Events for sessions that do not exist only create one for
        SessionStart; every other kind is a no-op returning None.

        Returns:
            The session as it stands after the event, or None
        """
        slug = self._lookup_slug(event)

        with self._lock:
            existing = self._sessions.get(event.session_id)
            if existing is not None:
                backfill: dict[str, Any] = {}
                working_directory = event.payload.working_directory
                if existing.working_directory == UNKNOWN_DIRECTORY and working_directory:
                    backfill["working_directory"] = working_directory
                if existing.slug is None and slug:
                    backfill["slug"] = slug
                if backfill:
                    self._update_locked(event.session_id, backfill)

            session = self._apply_locked(event)

        self._notify_listeners()
        return session

    # ------------------------------------------------------------------
    # Internals (callers hold self._lock)
    # ------------------------------------------------------------------

    def _lookup_slug(self, event: HookEvent) -> str | None:
        if self._slug_resolver is None:
            return None
        existing = self._sessions.get(event.session_id)
        if existing is None or existing.slug is not None:
            return None
        try:
            return self._slug_resolver(event.session_id, event.payload.transcript_path)
        except Exception as e:
            logger.warning(f"Slug lookup failed for session {event.short_id}: {e}")
            return None

    def _apply_locked(self, event: HookEvent) -> Session | None:
        session_id = event.session_id
        payload = event.payload

        if event.type == HookEventType.SESSION_START:
            return self._create_locked(session_id, payload.working_directory or UNKNOWN_DIRECTORY)

        if event.type == HookEventType.SESSION_END:
            session = self._update_locked(session_id, {"status": SessionStatus.STOPPED})
            if session is not None:
                self._schedule_eviction_locked(session)
            return session

        if event.type == HookEventType.PRE_TOOL_USE:
            tool_name = payload.tool_name if isinstance(payload, ToolUsePayload) else None
            return self._update_locked(
                session_id,
                {"status": SessionStatus.ACTIVE, "current_tool": tool_name, **_PROMPT_CLEARED},
            )

        if event.type == HookEventType.POST_TOOL_USE:
            return self._update_locked(
                session_id,
                {"status": SessionStatus.ACTIVE, "current_tool": None, **_PROMPT_CLEARED},
            )

        if event.type == HookEventType.NOTIFICATION and isinstance(payload, NotificationPayload):
            return self._update_locked(
                session_id,
                {
                    "status": SessionStatus.WAITING,
                    "last_notification": payload.message,
                    "question": payload.question,
                    "options": payload.options,
                },
            )

        if event.type == HookEventType.STOP:
            return self._update_locked(
                session_id,
                {"status": SessionStatus.STOPPED, "current_tool": None},
            )

        return self._sessions.get(session_id)

    def _create_locked(self, session_id: str, working_directory: str) -> Session:
        self._cancel_eviction_locked(session_id)
        now = self._clock()
        session = Session(
            id=session_id,
            working_directory=working_directory,
            status=SessionStatus.ACTIVE,
            start_time=now,
            last_activity=now,
            generation=next(self._generations),
        )
        self._sessions[session_id] = session
        return session

    def _update_locked(self, session_id: str, fields: dict[str, Any]) -> Session | None:
        session = self._sessions.get(session_id)
        if session is None:
            return None

        protected = _PROTECTED_FIELDS.intersection(fields)
        if protected:
            raise TypeError(f"Cannot update registry-owned fields: {sorted(protected)}")

        updated = replace(
            session,
            **fields,
            last_activity=max(self._clock(), session.last_activity),
        )
        self._sessions[session_id] = updated
        return updated

    def _schedule_eviction_locked(self, session: Session) -> None:
        self._cancel_eviction_locked(session.id)
        generation = session.generation
        handle = self._scheduler.call_later(
            self.end_grace_seconds,
            lambda: self._evict(session.id, generation),
        )
        self._evictions[session.id] = (generation, handle)

    def _cancel_eviction_locked(self, session_id: str) -> None:
        pending = self._evictions.pop(session_id, None)
        if pending is not None:
            pending[1].cancel()

    def _evict(self, session_id: str, generation: int) -> None:
        with self._lock:
            pending = self._evictions.get(session_id)
            if pending is not None and pending[0] == generation:
                del self._evictions[session_id]

            session = self._sessions.get(session_id)
            if session is None or session.generation != generation:
                return
            del self._sessions[session_id]

        logger.debug(f"Evicted ended session {session_id[:8]}")
        self._notify_listeners()
