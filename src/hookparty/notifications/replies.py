"""
Reply routing for chat channels.

Every chat surface (Telegram, Discord, SMS) speaks the same small command
language; only the command prefix and text styling differ:

- ``/status``                  list sessions
- ``/help``                    usage
- ``/session <id> <message>``  send to the session whose id starts with <id>
- ``!claude <message>``        (Discord) send to the best target session
- ``<id>:<message>``           (SMS) same as /session
- anything else                send to the best target session

Every outcome produces a short reply for the user; nothing fails silently.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from hookparty.delivery.input import InputDeliveryChannel
from hookparty.sessions.models import Session
from hookparty.sessions.resolver import NO_SESSIONS_TEXT, Format, SessionResolver

logger = logging.getLogger(__name__)

MAX_ECHO_LENGTH = 50


@dataclass(frozen=True)
class ReplyDialect:
    name: str
    prefix: str
    format: Format
    bold: str
    colon_addressing: bool = False
    direct_command: str | None = None

    def cmd(self, name: str) -> str:
        return f"{self.prefix}{name}"

    def strong(self, text: str) -> str:
        return f"{self.bold}{text}{self.bold}"


TELEGRAM = ReplyDialect(name="telegram", prefix="/", format="markdown", bold="*")
DISCORD = ReplyDialect(
    name="discord", prefix="!", format="markdown", bold="**", direct_command="claude"
)
SMS = ReplyDialect(name="sms", prefix="/", format="plain", bold="", colon_addressing=True)

_COLON_FORM = re.compile(r"^(\w+):(.+)$", re.DOTALL)


def _truncate(text: str) -> str:
    return text[:MAX_ECHO_LENGTH] + "..." if len(text) > MAX_ECHO_LENGTH else text


class ReplyRouter:
    """Parses inbound chat text and delivers it to the right session."""

    def __init__(self, resolver: SessionResolver, delivery: InputDeliveryChannel):
        self.resolver = resolver
        self.delivery = delivery

    def help_text(self, dialect: ReplyDialect) -> str:
        session_cmd = dialect.cmd("session")
        lines = [
            f"{dialect.strong('hookparty commands:')}",
            "",
            f"`{dialect.cmd('status')}` - Show active sessions with IDs",
            f"`{session_cmd} <id> <message>` - Send to specific session",
        ]
        if dialect.direct_command:
            lines.append(
                f"`{dialect.cmd(dialect.direct_command)} <message>` - Send to waiting/recent session"
            )
        if dialect.colon_addressing:
            lines.append("`<id>:<message>` - Send to specific session")
        lines += [
            "",
            "Or just send a message to reply to the waiting session.",
            "",
            f"Example: `{session_cmd} abc123 yes, continue`",
        ]
        return "\n".join(lines)

    def status_text(self, dialect: ReplyDialect) -> str:
        sessions = self.resolver.format_list(format=dialect.format, command=dialect.cmd("session"))
        if sessions == NO_SESSIONS_TEXT:
            return sessions
        return f"{dialect.strong('Active Sessions:')}\n\n{sessions}"

    async def handle(self, text: str, dialect: ReplyDialect = TELEGRAM) -> str | None:
        """
        Route one inbound message.

        Returns:
            Reply text to send back, or None for messages that are ignored
            (unknown commands)
        """
        text = text.strip()
        if not text:
            return None

        if text == dialect.cmd("status"):
            return self.status_text(dialect)

        if text == dialect.cmd("help"):
            return self.help_text(dialect)

        addressed = self._parse_addressed(text, dialect)
        if addressed is not None:
            id_prefix, message = addressed
            lookup = self.resolver.find_by_id(id_prefix)
            if lookup.ambiguous:
                return self.resolver.format_ambiguous(lookup.matches, id_prefix, format=dialect.format)
            if not lookup.found or lookup.session is None:
                return lookup.error or f'No session found matching "{id_prefix}"'
            return await self._deliver(lookup.session, message, dialect)

        message = text
        direct = dialect.cmd(dialect.direct_command) if dialect.direct_command else None
        if direct and text.startswith(direct + " "):
            message = text[len(direct) :].strip()
        elif text.startswith(dialect.prefix):
            logger.debug(f"Ignoring unknown {dialect.name} command: {text.split()[0]}")
            return None

        target = self.resolver.find_target()
        if target is None:
            return (
                "No active Claude session found.\n\n"
                f"Use `{dialect.cmd('status')}` to see available sessions."
            )
        return await self._deliver(target, message, dialect)

    def _parse_addressed(self, text: str, dialect: ReplyDialect) -> tuple[str, str] | None:
        session_cmd = dialect.cmd("session")
        match = re.match(rf"^{re.escape(session_cmd)}\s+(\S+)\s+(.+)$", text, re.DOTALL)
        if match:
            return match.group(1), match.group(2).strip()

        if dialect.colon_addressing:
            match = _COLON_FORM.match(text)
            if match:
                return match.group(1), match.group(2).strip()

        return None

    async def _deliver(self, session: Session, message: str, dialect: ReplyDialect) -> str:
        short_id = dialect.strong(session.short_id)
        if await self.delivery.send(session.id, message):
            logger.info(f"{dialect.name} input sent to session {session.id[:8]}")
            return f'✅ Sent to {short_id}: "{_truncate(message)}"'
        return f"❌ Failed to send to {short_id}."
