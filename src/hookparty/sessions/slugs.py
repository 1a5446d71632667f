"""
Human-friendly session names.

Claude Code stamps a ``slug`` (e.g. ``"quiet-brewing-otter"``) onto the
entries of a session's JSONL transcript. The slug is looked up lazily the
first time a session is seen and cached for the life of the process.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path

logger = logging.getLogger(__name__)


class TranscriptSlugResolver:
    """Finds a session's slug in its transcript file."""

    def __init__(self, transcripts_dir: str | Path = "~/.claude/projects", max_lines: int = 200):
        self.transcripts_dir = Path(transcripts_dir).expanduser()
        self.max_lines = max_lines
        self._cache: dict[str, str] = {}
        self._lock = threading.Lock()

    def __call__(self, session_id: str, transcript_path: str | None = None) -> str | None:
        return self.resolve(session_id, transcript_path)

    def resolve(self, session_id: str, transcript_path: str | None = None) -> str | None:
        """
        Return the slug for a session, or None if it is not known yet.

        Only successful lookups are cached; a session whose transcript has no
        slug yet is looked up again on its next event.
        """
        with self._lock:
            cached = self._cache.get(session_id)
        if cached is not None:
            return cached

        path = Path(transcript_path).expanduser() if transcript_path else self._find(session_id)
        if path is None:
            return None

        slug = self._read_slug(path)
        if slug:
            with self._lock:
                self._cache.setdefault(session_id, slug)
                slug = self._cache[session_id]
            logger.debug(f"Resolved slug for session {session_id[:8]}: {slug}")
        return slug

    def _find(self, session_id: str) -> Path | None:
        if not session_id or Path(session_id).name != session_id:
            return None
        if not self.transcripts_dir.is_dir():
            return None
        return next(self.transcripts_dir.glob(f"*/{session_id}.jsonl"), None)

    def _read_slug(self, path: Path) -> str | None:
        try:
            with open(path, encoding="utf-8") as f:
                for line_no, line in enumerate(f):
                    if line_no >= self.max_lines:
                        break
                    try:
                        entry = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    if isinstance(entry, dict):
                        slug = entry.get("slug")
                        if isinstance(slug, str) and slug:
                            return slug
        except OSError as e:
            logger.debug(f"Could not read transcript {path}: {e}")
        return None
