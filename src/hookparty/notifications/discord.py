"""
Discord reply polling.

Polls the configured channel through the bot REST API and routes each
human message through the ReplyRouter, answering in the same channel. The
first poll only records the newest message id so earlier history is never
replayed as input.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from hookparty.notifications.channels import DiscordBotChannel
from hookparty.notifications.replies import DISCORD, ReplyRouter

logger = logging.getLogger(__name__)


def _snowflake(message_id: Any) -> int:
    try:
        return int(message_id)
    except (TypeError, ValueError):
        return 0


class DiscordReplyPoller:
    """Background job feeding Discord channel messages to the reply router."""

    def __init__(
        self,
        channel: DiscordBotChannel,
        router: ReplyRouter,
        interval_seconds: float = 5.0,
    ):
        self.channel = channel
        self.router = router
        self.interval_seconds = interval_seconds

        self.last_message_id: str | None = None
        self._primed = False
        self._running = False
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._poll_loop(), name="discord-reply-poller")
        logger.info("Discord reply polling started")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        logger.info("Discord reply polling stopped")

    async def _poll_loop(self) -> None:
        while self._running:
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"Discord polling error: {e}")

            try:
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break

    async def poll_once(self) -> int:
        """
        Fetch and handle messages posted since the last poll.

        Returns:
            Number of messages routed
        """
        messages = await self.channel.get_messages(after=self.last_message_id)
        if messages is None:
            return 0
        messages = [m for m in messages if isinstance(m, dict)]

        if not self._primed:
            self._primed = True
            newest = max((_snowflake(m.get("id")) for m in messages), default=0)
            if newest:
                self.last_message_id = str(newest)
            return 0

        handled = 0
        # The API returns newest first
        for message in sorted(messages, key=lambda m: _snowflake(m.get("id"))):
            message_id = message.get("id")
            if message_id is not None and _snowflake(message_id) > _snowflake(self.last_message_id):
                self.last_message_id = str(message_id)

            author = message.get("author")
            if not isinstance(author, dict) or author.get("bot"):
                continue
            content = message.get("content")
            if not isinstance(content, str):
                continue

            logger.info(f"Discord message from {author.get('username', 'unknown')}: {content[:50]}")
            reply = await self.router.handle(content, DISCORD)
            handled += 1
            if reply:
                await self.channel.send_message(reply)

        return handled
