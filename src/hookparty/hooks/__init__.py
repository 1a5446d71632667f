"""Hook event parsing."""

from hookparty.hooks.events import (
    HookEvent,
    HookEventType,
    InvalidHookTypeError,
    parse_hook_event,
)

__all__ = ["HookEvent", "HookEventType", "InvalidHookTypeError", "parse_hook_event"]
