"""Tests for inbound reply routing."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from hookparty.delivery.input import InputDeliveryChannel
from hookparty.notifications.replies import DISCORD, SMS, TELEGRAM, ReplyRouter
from hookparty.sessions.models import SessionStatus
from hookparty.sessions.registry import SessionRegistry
from hookparty.sessions.resolver import NO_SESSIONS_TEXT, SessionResolver

pytestmark = pytest.mark.unit


@pytest.fixture
def delivery() -> MagicMock:
    mock = MagicMock(spec=InputDeliveryChannel)
    mock.send = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def router(resolver: SessionResolver, delivery: MagicMock) -> ReplyRouter:
    return ReplyRouter(resolver, delivery)


class TestCommands:
    @pytest.mark.asyncio
    async def test_status_without_sessions(self, router: ReplyRouter):
        assert await router.handle("/status") == NO_SESSIONS_TEXT

    @pytest.mark.asyncio
    async def test_status_lists_sessions(self, router: ReplyRouter, registry: SessionRegistry):
        registry.create("abcdef123456", "/home/me/project")

        reply = await router.handle("/status")

        assert reply.startswith("*Active Sessions:*")
        assert "abcdef12" in reply

    @pytest.mark.asyncio
    async def test_discord_status_uses_bang_commands(
        self, router: ReplyRouter, registry: SessionRegistry
    ):
        registry.create("abcdef123456", "/p")

        reply = await router.handle("!status", DISCORD)

        assert reply.startswith("**Active Sessions:**")
        assert "!session abcdef12 <msg>" in reply

    @pytest.mark.asyncio
    async def test_help(self, router: ReplyRouter):
        assert "/session <id> <message>" in await router.handle("/help")
        assert "!claude <message>" in await router.handle("!help", DISCORD)
        assert "<id>:<message>" in await router.handle("/help", SMS)

    @pytest.mark.asyncio
    async def test_unknown_command_ignored(self, router: ReplyRouter, delivery: MagicMock):
        assert await router.handle("/start") is None
        delivery.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_blank_message_ignored(self, router: ReplyRouter):
        assert await router.handle("   ") is None


class TestAddressed:
    @pytest.mark.asyncio
    async def test_session_command(
        self, router: ReplyRouter, registry: SessionRegistry, delivery: MagicMock
    ):
        registry.create("abcdef123456")

        reply = await router.handle("/session abc yes, continue")

        delivery.send.assert_awaited_once_with("abcdef123456", "yes, continue")
        assert reply == '✅ Sent to *abcdef12*: "yes, continue"'

    @pytest.mark.asyncio
    async def test_ambiguous_prefix(
        self, router: ReplyRouter, registry: SessionRegistry, delivery: MagicMock
    ):
        registry.create("abc111")
        registry.create("abc222")

        reply = await router.handle("/session abc hi")

        assert reply.startswith('Multiple sessions match "abc":')
        delivery.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_prefix(self, router: ReplyRouter, delivery: MagicMock):
        assert await router.handle("/session zzz hi") == 'No session found matching "zzz"'
        delivery.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sms_colon_form(
        self, router: ReplyRouter, registry: SessionRegistry, delivery: MagicMock
    ):
        registry.create("abcdef123456")

        reply = await router.handle("abcdef:go ahead", SMS)

        delivery.send.assert_awaited_once_with("abcdef123456", "go ahead")
        assert reply == '✅ Sent to abcdef12: "go ahead"'

    @pytest.mark.asyncio
    async def test_colon_form_only_for_sms(
        self, router: ReplyRouter, registry: SessionRegistry, delivery: MagicMock
    ):
        session = registry.create("waiting-session")
        registry.update(session.id, status=SessionStatus.WAITING)

        await router.handle("note:remember this", TELEGRAM)

        delivery.send.assert_awaited_once_with("waiting-session", "note:remember this")

    @pytest.mark.asyncio
    async def test_delivery_failure_reported(
        self, router: ReplyRouter, registry: SessionRegistry, delivery: MagicMock
    ):
        registry.create("abcdef123456")
        delivery.send.return_value = False

        assert await router.handle("/session abc hi") == "❌ Failed to send to *abcdef12*."


class TestUnaddressed:
    @pytest.mark.asyncio
    async def test_goes_to_waiting_session(
        self, router: ReplyRouter, registry: SessionRegistry, delivery: MagicMock
    ):
        registry.create("busy")
        registry.create("asking")
        registry.update("asking", status=SessionStatus.WAITING)

        await router.handle("option 2")

        delivery.send.assert_awaited_once_with("asking", "option 2")

    @pytest.mark.asyncio
    async def test_no_target(self, router: ReplyRouter):
        reply = await router.handle("hello?")
        assert reply.startswith("No active Claude session found.")
        assert "`/status`" in reply

    @pytest.mark.asyncio
    async def test_discord_direct_command(
        self, router: ReplyRouter, registry: SessionRegistry, delivery: MagicMock
    ):
        registry.create("abcdef123456")

        reply = await router.handle("!claude run the tests", DISCORD)

        delivery.send.assert_awaited_once_with("abcdef123456", "run the tests")
        assert reply == '✅ Sent to **abcdef12**: "run the tests"'

    @pytest.mark.asyncio
    async def test_long_echo_truncated(
        self, router: ReplyRouter, registry: SessionRegistry, delivery: MagicMock
    ):
        registry.create("abcdef123456")
        text = "x" * 80

        reply = await router.handle(text)

        delivery.send.assert_awaited_once_with("abcdef123456", text)
        assert reply == f'✅ Sent to *abcdef12*: "{"x" * 50}..."'
