"""
Hook ingestion server.

FastAPI app behind a loopback-only uvicorn listener. Claude Code hook
scripts POST their JSON payload to ``/<EventType>``; each delivery is parsed
into a HookEvent, applied to the SessionRegistry, and handed to the
notification dispatcher in the background.
"""

from __future__ import annotations

import asyncio
import errno
import json
import logging
import socket
from collections.abc import Callable
from typing import Any

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from hookparty import __version__
from hookparty.config.app import PartyConfig
from hookparty.hooks.events import HookEvent, InvalidHookTypeError, parse_hook_event
from hookparty.notifications.dispatcher import NOTIFYING_EVENTS, NotificationDispatcher
from hookparty.sessions.models import Session
from hookparty.sessions.registry import SessionRegistry

logger = logging.getLogger(__name__)

SettingsSink = Callable[[PartyConfig], Any]
SessionsListener = Callable[[list[Session]], Any]


class PortSearchExhaustedError(RuntimeError):
    """Every port in the search window was already in use."""

    def __init__(self, first_port: int, attempts: int):
        self.first_port = first_port
        self.attempts = attempts
        super().__init__(
            f"No free port in {first_port}-{first_port + attempts - 1} after {attempts} attempts"
        )


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


class HookServer:
    """
    HTTP listener for hook events.

    Binds the configured loopback port, moving to the next port (and
    persisting the new value through ``settings_sink``) when the port is
    taken by another process.
    """

    def __init__(
        self,
        config: PartyConfig,
        registry: SessionRegistry,
        dispatcher: NotificationDispatcher | None = None,
        settings_sink: SettingsSink | None = None,
        on_sessions_updated: SessionsListener | None = None,
    ) -> None:
        """
        Initialize hook server.

        Args:
            config: PartyConfig supplying host, port and port-search limits
            registry: SessionRegistry that hook events are applied to
            dispatcher: Optional NotificationDispatcher for SessionEnd,
                Notification and Stop events
            settings_sink: Called with the config after the port moves
            on_sessions_updated: Called with the session list after each event
        """
        self.config = config
        self.registry = registry
        self.dispatcher = dispatcher
        self.settings_sink = settings_sink
        self.on_sessions_updated = on_sessions_updated

        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task | None = None
        self._socket: socket.socket | None = None
        self._port: int | None = None
        self._background_tasks: set[asyncio.Task] = set()

        self.app = self._create_app()

    def _create_app(self) -> FastAPI:
        app = FastAPI(
            title="hookparty",
            description="Claude Code hook event receiver",
            version=__version__,
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
        )

        # Only local hook scripts call in; the listener never leaves loopback
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["*"],
            allow_headers=["*"],
        )

        self._register_exception_handlers(app)
        self._register_routes(app)
        return app

    def _register_exception_handlers(self, app: FastAPI) -> None:
        @app.exception_handler(Exception)
        async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
            logger.error(
                "Unhandled exception in hook server: %s",
                exc,
                exc_info=True,
                extra={"path": request.url.path, "method": request.method},
            )
            return _error(500, "Internal server error")

    def _register_routes(self, app: FastAPI) -> None:
        @app.options("/{path:path}")
        async def preflight(path: str) -> Response:
            return Response(status_code=200)

        @app.post("/{path:path}")
        async def receive_hook(path: str, request: Request) -> JSONResponse:
            body = await request.body()
            try:
                data = json.loads(body)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                logger.warning(f"Rejected hook with invalid JSON on /{path}: {e}")
                return _error(500, "Internal server error")
            if not isinstance(data, dict):
                logger.warning(f"Rejected hook with non-object body on /{path}")
                return _error(500, "Internal server error")

            hook_type = path.rstrip("/").rsplit("/", 1)[-1]
            try:
                event = parse_hook_event(hook_type, data)
            except InvalidHookTypeError:
                logger.warning(f"Rejected unknown hook type: {hook_type!r}")
                return _error(400, "Invalid hook type")

            session = await asyncio.to_thread(self._ingest, event)
            logger.debug(f"Hook {event.type.value} for session {event.short_id}")

            if self.dispatcher is not None and event.type in NOTIFYING_EVENTS:
                self._spawn(self.dispatcher.dispatch(event, session))

            return JSONResponse(status_code=200, content={"success": True})

    def _ingest(self, event: HookEvent) -> Session | None:
        self.registry.ensure(event.session_id)
        session = self.registry.process(event)

        if self.on_sessions_updated is not None:
            try:
                self.on_sessions_updated(self.registry.list())
            except Exception as e:
                logger.error(f"Sessions update callback failed: {e}")

        return session

    def _spawn(self, coro: Any) -> None:
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    # ------------------------------------------------------------------
    # Listener lifecycle
    # ------------------------------------------------------------------

    def current_port(self) -> int | None:
        """Port the listener is bound to, or None when not running."""
        return self._port

    def bind(self, port: int | None = None) -> socket.socket:
        """
        Bind a listening socket, walking forward past ports already in use.

        Each move to a new port is written back to the config and persisted
        through ``settings_sink``.

        Raises:
            PortSearchExhaustedError: If ``max_port_attempts`` ports are all taken
        """
        first_port = port if port is not None else self.config.hook_server_port
        host = self.config.hook_server_host
        attempts = self.config.max_port_attempts

        for offset in range(attempts):
            candidate = first_port + offset
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            try:
                sock.bind((host, candidate))
            except OSError as e:
                sock.close()
                if e.errno != errno.EADDRINUSE:
                    raise
                logger.warning(f"Port {candidate} is in use, trying {candidate + 1}")
                continue

            sock.listen(128)
            sock.setblocking(False)
            if candidate != self.config.hook_server_port:
                self._persist_port(candidate)
            return sock

        logger.critical(
            f"Hook server could not find a free port after {attempts} attempts "
            f"starting at {first_port}"
        )
        raise PortSearchExhaustedError(first_port, attempts)

    def _persist_port(self, port: int) -> None:
        self.config.hook_server_port = port
        if self.settings_sink is None:
            return
        try:
            self.settings_sink(self.config)
            logger.info(f"Hook server port moved to {port}")
        except Exception as e:
            logger.error(f"Failed to persist hook server port {port}: {e}")

    async def start(self, port: int | None = None) -> int:
        """
        Start serving in a background task.

        Returns:
            The port actually bound
        """
        if self._serve_task is not None:
            raise RuntimeError("Hook server is already running")

        sock = self.bind(port)
        bound_port = sock.getsockname()[1]

        config = uvicorn.Config(
            self.app,
            host=self.config.hook_server_host,
            port=bound_port,
            log_level="warning",
            access_log=False,
            log_config=None,
            timeout_graceful_shutdown=5,
        )
        self._server = uvicorn.Server(config)
        self._socket = sock
        self._port = bound_port
        self._serve_task = asyncio.create_task(
            self._server.serve(sockets=[sock]), name="hook-server"
        )

        while not self._server.started:
            if self._serve_task.done():
                self._serve_task.result()
                raise RuntimeError("Hook server exited during startup")
            await asyncio.sleep(0.01)

        logger.info(f"Hook server listening on {self.config.hook_server_host}:{bound_port}")
        return bound_port

    async def stop(self) -> None:
        """Stop the listener and wait for in-flight notifications."""
        if self._server is not None:
            self._server.should_exit = True
        if self._serve_task is not None:
            await asyncio.gather(self._serve_task, return_exceptions=True)
            self._serve_task = None
        if self._socket is not None:
            self._socket.close()
            self._socket = None

        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)

        self._server = None
        self._port = None
        logger.info("Hook server stopped")
