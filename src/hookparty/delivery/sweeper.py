"""
Drop-box housekeeping.

Runs ``InputDeliveryChannel.sweep_stale`` on a fixed interval so input
nobody consumed does not pile up.
"""

import asyncio
import logging

from hookparty.delivery.input import InputDeliveryChannel

logger = logging.getLogger(__name__)


class InputSweeper:
    """Background job that periodically sweeps stale drop-box entries."""

    def __init__(self, channel: InputDeliveryChannel, interval_seconds: float = 60.0):
        self.channel = channel
        self.interval_seconds = interval_seconds

        self._running = False
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        """Start the background job."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._sweep_loop(), name="input-sweeper")
        logger.info(f"InputSweeper started (every {self.interval_seconds:g}s)")

    async def stop(self) -> None:
        """Stop the background job."""
        self._running = False

        if self._task:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

        logger.info("InputSweeper stopped")

    async def _sweep_loop(self) -> None:
        while self._running:
            try:
                await asyncio.to_thread(self.channel.sweep_stale)
            except Exception as e:
                logger.error(f"Error in sweep loop: {e}")

            try:
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break
