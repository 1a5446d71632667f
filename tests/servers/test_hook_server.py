"""Tests for the hook ingestion server."""

import socket
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

from hookparty.config.app import PartyConfig
from hookparty.hooks.events import HookEventType
from hookparty.notifications.dispatcher import NotificationDispatcher
from hookparty.servers.http import HookServer, PortSearchExhaustedError
from hookparty.sessions.models import SessionStatus
from hookparty.sessions.registry import SessionRegistry
from hookparty.utils.timers import ManualScheduler

pytestmark = pytest.mark.unit


@pytest.fixture
def dispatcher() -> MagicMock:
    mock = MagicMock(spec=NotificationDispatcher)
    mock.dispatch = AsyncMock(return_value=1)
    return mock


@pytest.fixture
def hook_server(
    default_config: PartyConfig,
    registry: SessionRegistry,
    dispatcher: MagicMock,
) -> HookServer:
    return HookServer(config=default_config, registry=registry, dispatcher=dispatcher)


@pytest.fixture
def client(hook_server: HookServer):
    with TestClient(hook_server.app) as test_client:
        yield test_client


def occupied_socket() -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(1)
    return sock


class TestHookEndpoint:
    def test_session_start(self, client: TestClient, registry: SessionRegistry):
        response = client.post("/SessionStart", json={"session_id": "s1", "cwd": "/tmp/proj"})

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert registry.get("s1").working_directory == "/tmp/proj"

    def test_start_then_notification(self, client: TestClient, registry: SessionRegistry):
        client.post("/SessionStart", json={"session_id": "s1", "working_directory": "/tmp/proj"})
        client.post("/Notification", json={"session_id": "s1", "message": "need input"})

        session = registry.get("s1")
        assert session.status == SessionStatus.WAITING
        assert session.last_notification == "need input"
        assert session.working_directory == "/tmp/proj"

    def test_session_end_evicts_after_grace(
        self,
        client: TestClient,
        registry: SessionRegistry,
        scheduler: ManualScheduler,
    ):
        client.post("/SessionStart", json={"session_id": "s1"})
        client.post("/SessionEnd", json={"session_id": "s1"})

        assert registry.get("s1").status == SessionStatus.STOPPED
        scheduler.advance(30)
        assert registry.get("s1") is None

    def test_event_for_unseen_session_is_auto_created(
        self, client: TestClient, registry: SessionRegistry
    ):
        response = client.post("/PreToolUse", json={"session_id": "late", "tool_name": "Bash"})

        assert response.status_code == 200
        session = registry.get("late")
        assert session.current_tool == "Bash"
        assert session.working_directory == "Unknown"

    def test_missing_session_id_uses_unknown(self, client: TestClient, registry: SessionRegistry):
        client.post("/Stop", json={})
        assert registry.get("unknown") is not None

    def test_type_taken_from_last_path_segment(self, client: TestClient, registry: SessionRegistry):
        response = client.post("/hooks/SessionStart", json={"session_id": "s1"})

        assert response.status_code == 200
        assert "s1" in registry

    def test_invalid_hook_type(self, client: TestClient, registry: SessionRegistry):
        response = client.post("/Bogus", json={"session_id": "s1"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid hook type"}
        assert len(registry) == 0

    @pytest.mark.parametrize("body", [b"{not json", b"", b"[1, 2]"])
    def test_bad_body_is_500(self, client: TestClient, registry: SessionRegistry, body: bytes):
        response = client.post("/SessionStart", content=body)

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}
        assert len(registry) == 0

    @pytest.mark.parametrize("path", ["/SessionStart", "/docs", "/redoc", "/openapi.json"])
    def test_non_post_rejected(self, client: TestClient, path: str):
        assert client.get(path).status_code == 405
        assert client.put(path).status_code == 405

    def test_preflight(self, client: TestClient):
        response = client.options("/SessionStart")

        assert response.status_code == 200
        assert response.content == b""

    def test_cors_preflight(self, client: TestClient):
        response = client.options(
            "/SessionStart",
            headers={"Origin": "http://example.test", "Access-Control-Request-Method": "POST"},
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"

    def test_handler_exception_is_500(self, default_config: PartyConfig):
        registry = MagicMock(spec=SessionRegistry)
        registry.ensure.side_effect = RuntimeError("boom")
        server = HookServer(config=default_config, registry=registry)

        with TestClient(server.app, raise_server_exceptions=False) as client:
            response = client.post("/SessionStart", json={"session_id": "s1"})

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}


class TestCollaborators:
    @pytest.mark.parametrize(
        "hook_type",
        [HookEventType.SESSION_END, HookEventType.NOTIFICATION, HookEventType.STOP],
    )
    def test_dispatches_notifying_events(
        self, client: TestClient, dispatcher: MagicMock, hook_type: HookEventType
    ):
        client.post("/SessionStart", json={"session_id": "s1"})
        client.post(f"/{hook_type.value}", json={"session_id": "s1"})

        dispatcher.dispatch.assert_called_once()
        event, session = dispatcher.dispatch.call_args.args
        assert event.type == hook_type
        assert session.id == "s1"

    @pytest.mark.parametrize("hook_type", ["SessionStart", "PreToolUse", "PostToolUse"])
    def test_does_not_dispatch_other_events(
        self, client: TestClient, dispatcher: MagicMock, hook_type: str
    ):
        client.post(f"/{hook_type}", json={"session_id": "s1"})
        dispatcher.dispatch.assert_not_called()

    def test_sessions_updated_callback(self, default_config: PartyConfig, registry: SessionRegistry):
        on_update = MagicMock()
        server = HookServer(config=default_config, registry=registry, on_sessions_updated=on_update)

        with TestClient(server.app) as client:
            client.post("/SessionStart", json={"session_id": "s1"})

        sessions = on_update.call_args.args[0]
        assert [s.id for s in sessions] == ["s1"]

    def test_failing_sessions_callback_still_succeeds(
        self, default_config: PartyConfig, registry: SessionRegistry
    ):
        server = HookServer(
            config=default_config,
            registry=registry,
            on_sessions_updated=MagicMock(side_effect=RuntimeError("ui gone")),
        )

        with TestClient(server.app) as client:
            response = client.post("/SessionStart", json={"session_id": "s1"})

        assert response.status_code == 200


class TestPortSelection:
    def test_binds_configured_port(self, default_config: PartyConfig, registry: SessionRegistry):
        spare = occupied_socket()
        port = spare.getsockname()[1]
        spare.close()
        default_config.hook_server_port = port
        sink = MagicMock()
        server = HookServer(config=default_config, registry=registry, settings_sink=sink)

        sock = server.bind()
        try:
            assert sock.getsockname() == ("127.0.0.1", port)
            sink.assert_not_called()
        finally:
            sock.close()

    def test_moves_past_port_in_use_and_persists(
        self, default_config: PartyConfig, registry: SessionRegistry
    ):
        blocker = occupied_socket()
        taken = blocker.getsockname()[1]
        default_config.hook_server_port = taken
        sink = MagicMock()
        server = HookServer(config=default_config, registry=registry, settings_sink=sink)

        try:
            sock = server.bind()
            try:
                new_port = sock.getsockname()[1]
                assert new_port > taken
                assert default_config.hook_server_port == new_port
                sink.assert_called_once_with(default_config)
            finally:
                sock.close()
        finally:
            blocker.close()

    def test_gives_up_after_max_attempts(
        self, default_config: PartyConfig, registry: SessionRegistry
    ):
        blocker = occupied_socket()
        taken = blocker.getsockname()[1]
        default_config.hook_server_port = taken
        default_config.max_port_attempts = 1
        sink = MagicMock()
        server = HookServer(config=default_config, registry=registry, settings_sink=sink)

        try:
            with pytest.raises(PortSearchExhaustedError):
                server.bind()
            sink.assert_not_called()
            assert default_config.hook_server_port == taken
        finally:
            blocker.close()


@pytest.mark.integration
class TestListener:
    @pytest.mark.asyncio
    async def test_start_serve_stop(self, default_config: PartyConfig, registry: SessionRegistry):
        spare = occupied_socket()
        port = spare.getsockname()[1]
        spare.close()
        server = HookServer(config=default_config, registry=registry)

        bound = await server.start(port)
        try:
            assert server.current_port() == bound == port
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    f"http://127.0.0.1:{bound}/SessionStart", json={"session_id": "live"}
                )
            assert response.status_code == 200
            assert "live" in registry
        finally:
            await server.stop()

        assert server.current_port() is None
