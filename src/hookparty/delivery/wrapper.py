"""
Wrapper handle discovery.

A wrapper is a companion process that owns a session's stdin and accepts
input on ``POST http://127.0.0.1:<port>/input``. It advertises itself by
writing ``{"port": ..., "pid": ...}`` to a well-known handle file.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

import psutil

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WrapperHandle:
    port: int
    pid: int
    path: Path

    @property
    def input_url(self) -> str:
        return f"http://127.0.0.1:{self.port}/input"


def is_process_alive(pid: int) -> bool:
    """Check if a process is truly alive (not zombie, not dead).

    Uses psutil to check process status, which handles zombies correctly.
    """
    try:
        proc = psutil.Process(pid)
        return bool(proc.status() != psutil.STATUS_ZOMBIE)
    except (psutil.NoSuchProcess, psutil.AccessDenied, ValueError):
        return False


def handle_path_for(template: str, session_id: str) -> Path:
    """Expand a handle path template that may contain ``{session_id}``."""
    return Path(template.replace("{session_id}", session_id)).expanduser()


def discard_handle(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not delete stale wrapper handle {path}: {e}")


def load_wrapper_handle(path: Path) -> WrapperHandle | None:
    """
    Read a wrapper handle and check that its process is still running.

    Returns None when the file is missing, unreadable, or names an
    impossible port or pid. A handle whose process is gone is deleted so
    later deliveries skip it straight away.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        handle = WrapperHandle(port=int(data["port"]), pid=int(data["pid"]), path=path)
    except FileNotFoundError:
        return None
    except (OSError, ValueError, TypeError, KeyError) as e:
        logger.debug(f"Ignoring unreadable wrapper handle {path}: {e}")
        return None

    if not (1 <= handle.port <= 65535) or handle.pid <= 0:
        logger.debug(f"Ignoring wrapper handle {path} with port {handle.port} and pid {handle.pid}")
        return None

    if not is_process_alive(handle.pid):
        logger.info(f"Wrapper process {handle.pid} is gone, removing stale handle {path}")
        discard_handle(path)
        return None

    return handle


def write_wrapper_handle(path: Path, port: int, pid: int | None = None) -> WrapperHandle:
    """Advertise a wrapper listening on ``port`` (used by wrapper processes)."""
    pid = pid if pid is not None else os.getpid()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"port": port, "pid": pid}), encoding="utf-8")
    return WrapperHandle(port=port, pid=pid, path=path)
