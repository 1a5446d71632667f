"""
Input delivery channel.

Sends a user's reply to a running session over one of two transports:

1. Network: POST ``{"input": text}`` to the session's wrapper process,
   retried with exponential backoff while the wrapper stays alive.
2. Drop-box: write the raw text to ``<drop_box_dir>/<session_id>.input``
   for the wrapper or a hook script to pick up on its next poll.

The consumer side of the drop-box (``read_pending``) claims an entry by
renaming it before reading, so each entry is delivered at most once even
with several pollers.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
import uuid
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx

from hookparty.delivery import wrapper
from hookparty.delivery.backoff import BackoffPolicy

if TYPE_CHECKING:
    from hookparty.config.app import InputDeliverySettings

logger = logging.getLogger(__name__)

INPUT_SUFFIX = ".input"

Sleep = Callable[[float], Awaitable[Any]]


def is_valid_session_id(session_id: str) -> bool:
    """Session ids become file names, so they must be a single path component."""
    return bool(session_id) and session_id not in (".", "..") and Path(session_id).name == session_id


class InputDeliveryChannel:
    """Delivers text replies to sessions via wrapper HTTP or the drop-box."""

    def __init__(
        self,
        drop_box_dir: str | Path = "~/.hookparty/inputs",
        wrapper_handle_path: str = "~/.hookparty/wrappers/{session_id}.json",
        request_timeout: float = 5.0,
        backoff: BackoffPolicy | None = None,
        stale_input_ttl: float = 300.0,
        sleep: Sleep | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the channel.

        Args:
            drop_box_dir: Directory for fallback ``<session_id>.input`` files
            wrapper_handle_path: Handle file path, may contain ``{session_id}``
            request_timeout: Per-attempt timeout for wrapper requests
            backoff: Retry policy for wrapper requests
            stale_input_ttl: Age in seconds after which sweep_stale removes entries
            sleep: Async sleep used between retries (injectable for tests)
            transport: Optional httpx transport (injectable for tests)
        """
        self.drop_box_dir = Path(drop_box_dir).expanduser()
        self.wrapper_handle_path = wrapper_handle_path
        self.request_timeout = request_timeout
        self.backoff = backoff or BackoffPolicy()
        self.stale_input_ttl = stale_input_ttl
        self._sleep: Sleep = sleep or asyncio.sleep
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: InputDeliverySettings, **kwargs: Any) -> InputDeliveryChannel:
        return cls(
            drop_box_dir=settings.drop_box_dir,
            wrapper_handle_path=settings.wrapper_handle_path,
            request_timeout=settings.request_timeout,
            backoff=BackoffPolicy.from_settings(settings),
            stale_input_ttl=settings.stale_input_ttl_seconds,
            **kwargs,
        )

    def input_path(self, session_id: str) -> Path:
        return self.drop_box_dir / f"{session_id}{INPUT_SUFFIX}"

    def handle_path(self, session_id: str) -> Path:
        return wrapper.handle_path_for(self.wrapper_handle_path, session_id)

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    async def send(self, session_id: str, text: str) -> bool:
        """
        Deliver ``text`` to a session.

        Tries the wrapper first and falls back to the drop-box. Never raises
        for delivery problems; cancellation of the caller still propagates.

        Returns:
            True if either transport accepted the text
        """
        if not is_valid_session_id(session_id):
            logger.warning(f"Refusing to deliver input to invalid session id {session_id!r}")
            return False

        # Lone surrogates (half of a split emoji) cannot be encoded; they become "?"
        text = text.encode("utf-8", errors="replace").decode("utf-8")

        try:
            if await self._send_via_wrapper(session_id, text):
                return True
        except Exception as e:
            logger.warning(f"Wrapper delivery to {session_id[:8]} failed: {e!r}")

        try:
            await asyncio.to_thread(self._write_drop_box, session_id, text)
        except OSError as e:
            logger.error(f"Failed to write input for session {session_id[:8]}: {e}")
            return False

        logger.info(f"Input for session {session_id[:8]} left in drop-box")
        return True

    async def _send_via_wrapper(self, session_id: str, text: str) -> bool:
        handle = wrapper.load_wrapper_handle(self.handle_path(session_id))
        if handle is None:
            return False

        delays = self.backoff.delays()
        async with httpx.AsyncClient(
            timeout=self.request_timeout,
            transport=self._transport,
        ) as client:
            for attempt, delay in enumerate(delays, 1):
                if delay > 0:
                    await self._sleep(delay)
                    if not wrapper.is_process_alive(handle.pid):
                        logger.warning(
                            f"Wrapper {handle.pid} for {session_id[:8]} exited, giving up on network delivery"
                        )
                        wrapper.discard_handle(handle.path)
                        return False

                try:
                    response = await client.post(handle.input_url, json={"input": text})
                except httpx.HTTPError as e:
                    logger.warning(
                        f"Wrapper delivery attempt {attempt}/{len(delays)} "
                        f"for {session_id[:8]} failed: {e!r}"
                    )
                    continue

                if response.is_success:
                    logger.info(f"Input delivered to wrapper for session {session_id[:8]}")
                    return True

                logger.warning(
                    f"Wrapper delivery attempt {attempt}/{len(delays)} "
                    f"for {session_id[:8]} returned {response.status_code}"
                )

        return False

    def _write_drop_box(self, session_id: str, text: str) -> None:
        self.drop_box_dir.mkdir(parents=True, exist_ok=True)
        target = self.input_path(session_id)
        tmp = self.drop_box_dir / f".{session_id}.{uuid.uuid4().hex}.tmp"
        try:
            tmp.write_text(text, encoding="utf-8")
            os.replace(tmp, target)
        finally:
            tmp.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def read_pending(self, session_id: str) -> str | None:
        """
        Consume the pending drop-box entry for a session.

        Returns:
            The text, or None if nothing is pending
        """
        if not is_valid_session_id(session_id):
            return None

        source = self.input_path(session_id)
        claimed = self.drop_box_dir / f".{session_id}.{uuid.uuid4().hex}.claimed"
        try:
            os.replace(source, claimed)
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Could not claim pending input for {session_id[:8]}: {e}")
            return None

        try:
            return claimed.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not read pending input for {session_id[:8]}: {e}")
            return None
        finally:
            claimed.unlink(missing_ok=True)

    def has_pending(self, session_id: str) -> bool:
        return is_valid_session_id(session_id) and self.input_path(session_id).is_file()

    def sweep_stale(self, now: float | None = None) -> int:
        """
        Remove drop-box entries older than the TTL.

        Best-effort: a missing directory, a file that vanished mid-sweep, or
        any other per-file error is skipped.

        Returns:
            Number of files removed
        """
        now = time.time() if now is None else now
        removed = 0

        try:
            entries = list(self.drop_box_dir.iterdir())
        except FileNotFoundError:
            return 0
        except OSError as e:
            logger.warning(f"Could not list drop-box {self.drop_box_dir}: {e}")
            return 0

        for path in entries:
            try:
                if not path.is_file():
                    continue
                if now - path.stat().st_mtime <= self.stale_input_ttl:
                    continue
                path.unlink(missing_ok=True)
                removed += 1
            except OSError as e:
                logger.debug(f"Skipping {path} during sweep: {e}")

        if removed:
            logger.info(f"Swept {removed} stale input file(s) from {self.drop_box_dir}")
        return removed
