"""
Canonical hook events.

Webhook bodies are loosely shaped JSON objects. They are parsed once, here,
into one payload type per event kind; everything downstream works with the
typed payloads and never touches the raw dictionary.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from hookparty.sessions.models import SessionOption

DEFAULT_NOTIFICATION_TEXT = "Waiting for input..."
UNKNOWN_SESSION_ID = "unknown"

# Precedence is a compatibility contract with existing hook scripts
OPTION_LIST_KEYS = ("options", "choices", "answers")
OPTION_LABEL_KEYS = ("label", "text", "name")
OPTION_VALUE_KEYS = ("value", "label", "text")
NOTIFICATION_TEXT_KEYS = ("message", "title", "body", "text")
QUESTION_KEYS = ("question", "prompt")


class HookEventType(str, Enum):
    SESSION_START = "SessionStart"
    SESSION_END = "SessionEnd"
    PRE_TOOL_USE = "PreToolUse"
    POST_TOOL_USE = "PostToolUse"
    NOTIFICATION = "Notification"
    STOP = "Stop"


class InvalidHookTypeError(ValueError):
    """Raised when a webhook names an event kind we do not know."""

    def __init__(self, hook_type: str):
        super().__init__(f"Invalid hook type: {hook_type!r}")
        self.hook_type = hook_type


@dataclass(frozen=True)
class _BasePayload:
    working_directory: str | None = None
    transcript_path: str | None = None


@dataclass(frozen=True)
class SessionStartPayload(_BasePayload):
    pass


@dataclass(frozen=True)
class SessionEndPayload(_BasePayload):
    reason: str | None = None


@dataclass(frozen=True)
class ToolUsePayload(_BasePayload):
    tool_name: str | None = None
    tool_input: dict[str, Any] | None = None
    tool_output: Any = None


@dataclass(frozen=True)
class NotificationPayload(_BasePayload):
    message: str = DEFAULT_NOTIFICATION_TEXT
    question: str = DEFAULT_NOTIFICATION_TEXT
    options: tuple[SessionOption, ...] | None = None
    has_text: bool = False


@dataclass(frozen=True)
class StopPayload(_BasePayload):
    reason: str | None = None


HookPayload = (
    SessionStartPayload | SessionEndPayload | ToolUsePayload | NotificationPayload | StopPayload
)


@dataclass(frozen=True)
class HookEvent:
    """One normalized webhook delivery."""

    type: HookEventType
    session_id: str
    timestamp: int
    payload: HookPayload
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def short_id(self) -> str:
        return self.session_id[:8]


def _text(value: Any) -> str | None:
    """Return non-empty strings, None for anything else."""
    if isinstance(value, str) and value:
        return value
    return None


def _first_text(data: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = _text(data.get(key))
        if value is not None:
            return value
    return None


def _parse_option(entry: Any, index: int) -> SessionOption:
    if isinstance(entry, str):
        return SessionOption(label=entry, value=entry)

    if isinstance(entry, dict):
        label = next(
            (str(entry[k]) for k in OPTION_LABEL_KEYS if entry.get(k) is not None),
            None,
        )
        if label is None:
            label = str(index + 1)
        value = next(
            (str(entry[k]) for k in OPTION_VALUE_KEYS if entry.get(k) is not None),
            label,
        )
        return SessionOption(label=label, value=value, description=_text(entry.get("description")))

    return SessionOption(label=str(entry), value=str(entry))


def parse_options(data: dict[str, Any]) -> tuple[SessionOption, ...] | None:
    """
    Parse selectable replies from a payload.

    Looks at ``options``, ``choices`` and ``answers`` in that order and uses
    the first that holds a list. Entries may be plain strings or objects;
    anything else degrades to its string form.
    """
    for key in OPTION_LIST_KEYS:
        entries = data.get(key)
        if isinstance(entries, list):
            return tuple(_parse_option(entry, i) for i, entry in enumerate(entries))
    return None


def _build_payload(event_type: HookEventType, data: dict[str, Any]) -> HookPayload:
    common: dict[str, Any] = {
        "working_directory": _text(data.get("working_directory")) or _text(data.get("cwd")),
        "transcript_path": _text(data.get("transcript_path")),
    }

    if event_type == HookEventType.SESSION_START:
        return SessionStartPayload(**common)

    if event_type == HookEventType.SESSION_END:
        return SessionEndPayload(reason=_text(data.get("reason")), **common)

    if event_type in (HookEventType.PRE_TOOL_USE, HookEventType.POST_TOOL_USE):
        tool_input = data.get("tool_input")
        return ToolUsePayload(
            tool_name=_text(data.get("tool_name")),
            tool_input=tool_input if isinstance(tool_input, dict) else None,
            tool_output=data.get("tool_output"),
            **common,
        )

    if event_type == HookEventType.NOTIFICATION:
        text = _first_text(data, NOTIFICATION_TEXT_KEYS)
        message = text or DEFAULT_NOTIFICATION_TEXT
        return NotificationPayload(
            message=message,
            has_text=bool(text),
            question=_first_text(data, QUESTION_KEYS) or message,
            options=parse_options(data),
            **common,
        )

    return StopPayload(reason=_text(data.get("reason")), **common)


def parse_hook_type(hook_type: str) -> HookEventType:
    try:
        return HookEventType(hook_type)
    except ValueError as e:
        raise InvalidHookTypeError(hook_type) from e


def parse_hook_event(
    hook_type: str,
    data: dict[str, Any],
    timestamp: int | None = None,
) -> HookEvent:
    """
    Build a HookEvent from a hook name and its JSON body.

    Args:
        hook_type: Event kind, e.g. ``"PreToolUse"``
        data: Decoded JSON object from the request body
        timestamp: Receive time in ms since epoch (defaults to now)

    Returns:
        Parsed HookEvent

    Raises:
        InvalidHookTypeError: If hook_type is not a known event kind
    """
    event_type = parse_hook_type(hook_type)
    session_id = _text(data.get("session_id")) or _text(data.get("sessionId")) or UNKNOWN_SESSION_ID

    return HookEvent(
        type=event_type,
        session_id=session_id,
        timestamp=timestamp if timestamp is not None else int(time.time() * 1000),
        payload=_build_payload(event_type, data),
        raw=data,
    )
