"""
Telegram reply polling.

Long-polls ``getUpdates`` and routes each text message through the
ReplyRouter, answering in the chat it came from. The first chat to message
the bot becomes the configured chat; messages from any other chat are
ignored after that.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from hookparty.notifications.channels import TelegramChannel
from hookparty.notifications.replies import TELEGRAM, ReplyRouter

logger = logging.getLogger(__name__)


class TelegramReplyPoller:
    """Background job feeding Telegram messages to the reply router."""

    def __init__(
        self,
        channel: TelegramChannel,
        router: ReplyRouter,
        interval_seconds: float = 5.0,
        long_poll_timeout: int = 25,
        on_chat_id: Callable[[str], Any] | None = None,
    ):
        self.channel = channel
        self.router = router
        self.interval_seconds = interval_seconds
        self.long_poll_timeout = long_poll_timeout
        self._on_chat_id = on_chat_id

        self.last_update_id = 0
        self._running = False
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._poll_loop(), name="telegram-reply-poller")
        logger.info("Telegram reply polling started")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        logger.info("Telegram reply polling stopped")

    async def _poll_loop(self) -> None:
        while self._running:
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"Telegram polling error: {e}")

            try:
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break

    async def poll_once(self) -> int:
        """
        Fetch and handle one batch of updates.

        Returns:
            Number of messages routed
        """
        updates = await self.channel.get_updates(
            offset=self.last_update_id + 1,
            timeout=self.long_poll_timeout,
        )

        handled = 0
        for update in updates:
            update_id = update.get("update_id")
            if isinstance(update_id, int):
                self.last_update_id = max(self.last_update_id, update_id)

            message = update.get("message")
            if not isinstance(message, dict):
                continue
            text = message.get("text")
            chat = message.get("chat")
            if not isinstance(text, str) or not isinstance(chat, dict) or "id" not in chat:
                continue

            chat_id = str(chat["id"])
            if not self.channel.chat_id:
                self._learn_chat_id(chat_id)
            elif chat_id != self.channel.chat_id:
                logger.warning(f"Ignoring Telegram message from unknown chat {chat_id}")
                continue

            reply = await self.router.handle(text, TELEGRAM)
            handled += 1
            if reply:
                await self.channel.send_message(reply, chat_id=chat_id)

        return handled

    def _learn_chat_id(self, chat_id: str) -> None:
        self.channel.chat_id = chat_id
        logger.info(f"Telegram chat ID set to {chat_id}")
        if self._on_chat_id is not None:
            try:
                self._on_chat_id(chat_id)
            except Exception as e:
                logger.error(f"Failed to save Telegram chat ID: {e}")
