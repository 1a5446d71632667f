"""
Notification channels.

Each channel is a thin wrapper around one delivery mechanism: an OS command
for desktop banners and speech, or a single authenticated HTTP call for the
chat platforms. Channels report failure by returning False; they never
raise for delivery problems.
"""

from __future__ import annotations

import asyncio
import logging
import platform
import shutil
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"
TWILIO_API = "https://api.twilio.com/2010-04-01"
DISCORD_API = "https://discord.com/api/v10"


class NotificationChannel(Protocol):
    name: str

    async def notify(self, text: str, title: str | None = None) -> bool: ...


async def _run_command(*cmd: str) -> bool:
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        return await process.wait() == 0
    except OSError as e:
        logger.warning(f"Failed to run {cmd[0]}: {e}")
        return False


class DesktopChannel:
    """Desktop banners via ``osascript`` (macOS) or ``notify-send`` (Linux)."""

    name = "desktop"

    def __init__(self, system: str | None = None):
        self.system = system or platform.system()

    def _command(self, text: str, title: str) -> list[str] | None:
        if self.system == "Darwin":
            script = f"display notification {_applescript_str(text)} with title {_applescript_str(title)}"
            return ["osascript", "-e", script]
        if shutil.which("notify-send"):
            return ["notify-send", title, text]
        return None

    async def notify(self, text: str, title: str | None = None) -> bool:
        cmd = self._command(text, title or "hookparty")
        if cmd is None:
            logger.debug("No desktop notification command available")
            return False
        return await _run_command(*cmd)


class SpeechChannel:
    """Speaks notifications with ``say`` (macOS) or ``espeak``."""

    name = "voice"

    def __init__(self, system: str | None = None):
        self.system = system or platform.system()

    async def notify(self, text: str, title: str | None = None) -> bool:
        if self.system == "Darwin":
            return await _run_command("say", text)
        if shutil.which("espeak"):
            return await _run_command("espeak", text)
        logger.debug("No speech command available")
        return False


class _HttpChannel:
    def __init__(self, transport: httpx.AsyncBaseTransport | None = None, timeout: float = 10.0):
        self._transport = transport
        self._timeout = timeout

    def _client(self, **kwargs: Any) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport, **kwargs)


class TelegramChannel(_HttpChannel):
    """Telegram Bot API: sendMessage for output, getUpdates for replies."""

    name = "telegram"

    def __init__(
        self,
        bot_token: str,
        chat_id: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(transport=transport)
        self.bot_token = bot_token
        self.chat_id = chat_id

    def _url(self, method: str) -> str:
        return f"{TELEGRAM_API}/bot{self.bot_token}/{method}"

    async def notify(self, text: str, title: str | None = None) -> bool:
        return await self.send_message(text)

    async def send_message(self, text: str, chat_id: str | None = None) -> bool:
        target = chat_id or self.chat_id
        if not target:
            logger.debug("No Telegram chat ID configured")
            return False

        try:
            async with self._client() as client:
                response = await client.post(
                    self._url("sendMessage"),
                    json={"chat_id": target, "text": text, "parse_mode": "Markdown"},
                )
            if response.status_code != 200:
                logger.warning(f"Telegram sendMessage returned {response.status_code}")
                return False
            return True
        except httpx.HTTPError as e:
            logger.warning(f"Telegram sendMessage failed: {e}")
            return False

    async def get_updates(self, offset: int = 0, timeout: int = 25) -> list[dict[str, Any]]:
        """Long-poll for new updates. Returns an empty list on any failure."""
        try:
            async with httpx.AsyncClient(
                timeout=timeout + 10,
                transport=self._transport,
            ) as client:
                response = await client.get(
                    self._url("getUpdates"),
                    params={"offset": offset, "timeout": timeout},
                )
            if response.status_code != 200:
                return []
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Telegram getUpdates failed: {e}")
            return []

        if not isinstance(data, dict) or not data.get("ok"):
            return []
        result = data.get("result")
        return result if isinstance(result, list) else []


class DiscordWebhookChannel(_HttpChannel):
    """Posts to a Discord incoming webhook (notifications only)."""

    name = "discord"

    def __init__(self, webhook_url: str, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(transport=transport)
        self.webhook_url = webhook_url

    async def notify(self, text: str, title: str | None = None) -> bool:
        try:
            async with self._client() as client:
                response = await client.post(self.webhook_url, json={"content": text})
            if not response.is_success:
                logger.warning(f"Discord webhook returned {response.status_code}")
                return False
            return True
        except httpx.HTTPError as e:
            logger.warning(f"Discord webhook failed: {e}")
            return False


class DiscordBotChannel(_HttpChannel):
    """Discord bot REST API: posts to and reads from one channel."""

    name = "discord"

    def __init__(
        self,
        bot_token: str,
        channel_id: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(transport=transport)
        self.bot_token = bot_token
        self.channel_id = channel_id

    @property
    def messages_url(self) -> str:
        return f"{DISCORD_API}/channels/{self.channel_id}/messages"

    def _bot_client(self) -> httpx.AsyncClient:
        return self._client(headers={"Authorization": f"Bot {self.bot_token}"})

    async def notify(self, text: str, title: str | None = None) -> bool:
        return await self.send_message(text)

    async def send_message(self, text: str) -> bool:
        try:
            async with self._bot_client() as client:
                response = await client.post(self.messages_url, json={"content": text})
            if not response.is_success:
                logger.warning(f"Discord bot message returned {response.status_code}")
                return False
            return True
        except httpx.HTTPError as e:
            logger.warning(f"Discord bot message failed: {e}")
            return False

    async def get_messages(self, after: str | None = None, limit: int = 10) -> list[dict[str, Any]] | None:
        """
        Fetch recent channel messages, newest first.

        Returns:
            The messages, or None when the request failed
        """
        params: dict[str, Any] = {"limit": limit}
        if after:
            params["after"] = after
        try:
            async with self._bot_client() as client:
                response = await client.get(self.messages_url, params=params)
            if response.status_code != 200:
                logger.debug(f"Discord channel messages returned {response.status_code}")
                return None
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Discord channel messages failed: {e}")
            return None

        return data if isinstance(data, list) else None


class TwilioSmsChannel(_HttpChannel):
    """Sends SMS through the Twilio Messages API."""

    name = "sms"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        to_number: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(transport=transport)
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.to_number = to_number

    async def notify(self, text: str, title: str | None = None) -> bool:
        url = f"{TWILIO_API}/Accounts/{self.account_sid}/Messages.json"
        try:
            async with self._client(auth=(self.account_sid, self.auth_token)) as client:
                response = await client.post(
                    url,
                    data={"From": self.from_number, "To": self.to_number, "Body": text},
                )
            if not response.is_success:
                logger.warning(f"Twilio returned {response.status_code}")
                return False
            return True
        except httpx.HTTPError as e:
            logger.warning(f"Twilio SMS failed: {e}")
            return False


def _applescript_str(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'
