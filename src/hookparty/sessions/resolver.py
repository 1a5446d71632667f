"""Session lookup and resolution service.

SessionResolver is the read-only query layer every reply channel uses to
turn what a user typed (a full id, a short id prefix, or nothing at all)
into a concrete session.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from hookparty.sessions.models import Session, SessionStatus
from hookparty.sessions.registry import SessionRegistry

Format = Literal["markdown", "plain"]

STATUS_ICONS = {
    SessionStatus.WAITING: "⏳",
    SessionStatus.ACTIVE: "🔄",
    SessionStatus.STOPPED: "⏹",
}

NO_SESSIONS_TEXT = "No active Claude sessions."


@dataclass(frozen=True)
class SessionLookupResult:
    """Outcome of a lookup by id or id prefix."""

    found: bool
    session: Session | None = None
    ambiguous: bool = False
    matches: list[Session] = field(default_factory=list)
    error: str | None = None


class SessionResolver:
    """Resolves user-supplied session handles against the registry."""

    def __init__(self, registry: SessionRegistry):
        self._registry = registry

    def find_by_id(self, id_prefix: str) -> SessionLookupResult:
        """
        Find a session by full id or unique id prefix.

        An exact match wins. Otherwise a prefix shared by more than one
        session is reported as ambiguous with every candidate, never guessed.
        """
        exact = self._registry.get(id_prefix)
        if exact is not None:
            return SessionLookupResult(found=True, session=exact)

        matches = [s for s in self._registry.list() if s.id.startswith(id_prefix)]

        if len(matches) == 1:
            return SessionLookupResult(found=True, session=matches[0])

        if len(matches) > 1:
            return SessionLookupResult(
                found=False,
                ambiguous=True,
                matches=matches,
                error=f'Multiple sessions match "{id_prefix}"',
            )

        return SessionLookupResult(found=False, error=f'No session found matching "{id_prefix}"')

    def find_target(self) -> Session | None:
        """
        Pick the session an unaddressed reply should go to.

        Priority: a waiting session (first found), then the active session
        with the most recent activity.
        """
        sessions = self._registry.list()

        for session in sessions:
            if session.status == SessionStatus.WAITING:
                return session

        active = [s for s in sessions if s.status == SessionStatus.ACTIVE]
        if active:
            return max(active, key=lambda s: s.last_activity)

        return None

    def format_list(
        self,
        sessions: list[Session] | None = None,
        format: Format = "markdown",
        command: str = "/session",
    ) -> str:
        """Render sessions for display inside a chat reply."""
        if sessions is None:
            sessions = self._registry.list()
        return format_session_list(sessions, format=format, command=command)

    def format_ambiguous(
        self,
        matches: list[Session],
        id_prefix: str,
        format: Format = "markdown",
    ) -> str:
        return format_ambiguous_matches(matches, id_prefix, format=format)


def format_session_list(
    sessions: list[Session],
    format: Format = "markdown",
    command: str = "/session",
) -> str:
    if not sessions:
        return NO_SESSIONS_TEXT

    blocks = []
    for s in sessions:
        icon = STATUS_ICONS.get(s.status, "⏹")
        name = f" {s.slug}" if s.slug else ""
        tool_line = f"    🔧 {s.current_tool}\n" if s.current_tool else ""
        if format == "markdown":
            blocks.append(
                f"{icon} *{s.short_id}*{name} ({s.status.value})\n"
                f"    📁 `{s.directory_name}`\n"
                f"{tool_line}"
                f"    _{command} {s.short_id} <msg>_"
            )
        else:
            blocks.append(
                f"{icon} {s.short_id}{name} ({s.status.value})\n"
                f"    📁 {s.directory_name}\n"
                f"{tool_line}"
                f"    {command} {s.short_id} <msg>"
            )
    return "\n\n".join(blocks)


def format_ambiguous_matches(
    matches: list[Session],
    id_prefix: str,
    format: Format = "markdown",
) -> str:
    header = f'Multiple sessions match "{id_prefix}":'
    if format == "markdown":
        lines = [f"• `{s.short_id}` - {s.directory_name}" for s in matches]
    else:
        lines = [f"• {s.short_id} - {s.directory_name}" for s in matches]
    return "\n".join([header, *lines])
