"""
Notification fan-out.

Turns SessionEnd, Notification and Stop events into per-channel messages
and sends them to every enabled channel concurrently. Message wording is
tailored per channel: chat channels carry a reply hint with the session's
short id so the user can answer from their phone.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

import httpx

from hookparty.config.app import NotificationSettings
from hookparty.hooks.events import HookEvent, HookEventType, NotificationPayload, StopPayload
from hookparty.notifications.channels import (
    DesktopChannel,
    DiscordBotChannel,
    DiscordWebhookChannel,
    NotificationChannel,
    SpeechChannel,
    TelegramChannel,
    TwilioSmsChannel,
)
from hookparty.sessions.models import Session

logger = logging.getLogger(__name__)

NOTIFYING_EVENTS = frozenset(
    {HookEventType.SESSION_END, HookEventType.NOTIFICATION, HookEventType.STOP}
)


@dataclass(frozen=True)
class OutgoingMessage:
    text: str
    title: str | None = None


def _session_end_message(channel: str, short_id: str, session: Session | None) -> OutgoingMessage | None:
    directory = session.working_directory if session else "unknown directory"
    message = f"Session ended in {directory}"

    if channel == "desktop":
        return OutgoingMessage(message, title="Session Complete")
    if channel == "voice":
        return OutgoingMessage("Claude session has ended")
    if channel == "sms":
        return OutgoingMessage(f"[{short_id}] {message}")
    if channel == "telegram":
        return OutgoingMessage(
            f"[*{short_id}*] {message}\n\n_Reply to this session: /session {short_id} <message>_"
        )
    if channel == "discord":
        return OutgoingMessage(
            f"[**{short_id}**] {message}\n\n_Reply: `!session {short_id} <message>`_"
        )
    return OutgoingMessage(message)


def _waiting_message(channel: str, short_id: str, message: str) -> OutgoingMessage | None:
    if channel == "desktop":
        return OutgoingMessage(message, title="Claude Notification")
    if channel == "voice":
        return OutgoingMessage(message)
    if channel == "sms":
        return OutgoingMessage(
            f'[{short_id}] Claude: {message}\n\nReply directly or use "{short_id}:your message"'
        )
    if channel == "telegram":
        return OutgoingMessage(
            f"[*{short_id}*] *Claude:* {message}\n\n"
            f"_Reply directly or use: /session {short_id} <message>_"
        )
    if channel == "discord":
        return OutgoingMessage(
            f"[**{short_id}**] **Claude:** {message}\n\n"
            f"_Reply: `!claude <message>` or `!session {short_id} <message>`_"
        )
    return OutgoingMessage(message)


def _stopped_message(channel: str, short_id: str, reason: str) -> OutgoingMessage | None:
    message = f"Claude stopped: {reason}"

    if channel == "desktop":
        return OutgoingMessage(message, title="Claude Stopped")
    if channel == "voice":
        return None
    if channel == "sms":
        return OutgoingMessage(f"[{short_id}] {message}")
    if channel == "telegram":
        return OutgoingMessage(f"[*{short_id}*] {message}")
    if channel == "discord":
        return OutgoingMessage(f"[**{short_id}**] {message}")
    return OutgoingMessage(message)


class NotificationDispatcher:
    """Sends event notifications to the configured channels."""

    def __init__(self, settings: NotificationSettings, channels: Sequence[NotificationChannel]):
        self.settings = settings
        self.channels = list(channels)

    @classmethod
    def from_settings(
        cls,
        settings: NotificationSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> NotificationDispatcher:
        """Build a dispatcher with one channel per enabled, configured platform."""
        channels: list[NotificationChannel] = []

        if settings.desktop_enabled:
            channels.append(DesktopChannel())
        if settings.voice_enabled:
            channels.append(SpeechChannel())
        if settings.sms.enabled and settings.sms.account_sid and settings.sms.auth_token:
            sms = settings.sms
            channels.append(
                TwilioSmsChannel(
                    sms.account_sid, sms.auth_token, sms.from_number, sms.to_number, transport=transport
                )
            )
        if settings.telegram.enabled and settings.telegram.bot_token:
            channels.append(
                TelegramChannel(
                    settings.telegram.bot_token, settings.telegram.chat_id, transport=transport
                )
            )
        discord = settings.discord
        if discord.enabled and discord.bot_token and discord.channel_id:
            channels.append(DiscordBotChannel(discord.bot_token, discord.channel_id, transport=transport))
        elif discord.enabled and discord.webhook_url:
            channels.append(DiscordWebhookChannel(discord.webhook_url, transport=transport))

        logger.debug(f"Notification channels: {[c.name for c in channels] or 'none'}")
        return cls(settings, channels)

    def compose(
        self,
        channel: str,
        event: HookEvent,
        session: Session | None,
    ) -> OutgoingMessage | None:
        """
        Build the message one channel should receive for an event.

        Returns None when the event kind is switched off in settings, carries
        nothing worth reporting, or the channel has no wording for it.
        """
        short_id = event.short_id
        payload = event.payload

        if event.type == HookEventType.SESSION_END:
            if not self.settings.notify_on_session_end:
                return None
            return _session_end_message(channel, short_id, session)

        if event.type == HookEventType.NOTIFICATION and isinstance(payload, NotificationPayload):
            if not self.settings.notify_on_waiting_for_input or not payload.has_text:
                return None
            return _waiting_message(channel, short_id, payload.message)

        if event.type == HookEventType.STOP and isinstance(payload, StopPayload):
            if not self.settings.notify_on_error or not payload.reason:
                return None
            return _stopped_message(channel, short_id, payload.reason)

        return None

    async def dispatch(self, event: HookEvent, session: Session | None) -> int:
        """
        Notify every channel about an event.

        Returns:
            Number of channels that accepted the notification
        """
        if event.type not in NOTIFYING_EVENTS:
            return 0

        sends = []
        names = []
        for channel in self.channels:
            message = self.compose(channel.name, event, session)
            if message is None:
                continue
            sends.append(channel.notify(message.text, title=message.title))
            names.append(channel.name)

        if not sends:
            return 0

        results = await asyncio.gather(*sends, return_exceptions=True)
        delivered = 0
        for name, result in zip(names, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(f"Notification channel {name} raised: {result}")
            elif result:
                delivered += 1
            else:
                logger.warning(f"Notification channel {name} did not deliver {event.type.value}")
        return delivered
