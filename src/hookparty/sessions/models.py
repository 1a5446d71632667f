"""Session data model."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

UNKNOWN_DIRECTORY = "Unknown"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    WAITING = "waiting"
    STOPPED = "stopped"


@dataclass(frozen=True)
class SessionOption:
    """One selectable reply offered by a session prompt."""

    label: str
    value: str
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"label": self.label, "value": self.value}
        if self.description is not None:
            data["description"] = self.description
        return data


@dataclass(frozen=True)
class Session:
    """
    Snapshot of one live coding-assistant session.

    Instances are immutable; the registry replaces the stored snapshot on
    every mutation, so a reader holding one never sees it change.
    ``generation`` identifies the incarnation of ``id`` that produced this
    snapshot and changes whenever the session is (re)created.
    """

    id: str
    working_directory: str
    status: SessionStatus
    start_time: int
    last_activity: int
    generation: int = 0
    current_tool: str | None = None
    last_notification: str | None = None
    question: str | None = None
    options: tuple[SessionOption, ...] | None = None
    slug: str | None = None

    @property
    def short_id(self) -> str:
        return self.id[:8]

    @property
    def directory_name(self) -> str:
        """Trailing path component of the working directory."""
        name = self.working_directory.rstrip("/").split("/")[-1]
        return name or "unknown"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "working_directory": self.working_directory,
            "status": self.status.value,
            "start_time": self.start_time,
            "last_activity": self.last_activity,
            "current_tool": self.current_tool,
            "last_notification": self.last_notification,
            "question": self.question,
            "options": [o.to_dict() for o in self.options] if self.options is not None else None,
            "slug": self.slug,
        }
