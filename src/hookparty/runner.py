import asyncio
import logging
import signal
import sys
from pathlib import Path

from hookparty.app_context import ServiceContainer, build_services
from hookparty.config.app import PartyConfig, load_config, save_config
from hookparty.delivery.sweeper import InputSweeper
from hookparty.notifications.channels import DiscordBotChannel, TelegramChannel
from hookparty.notifications.discord import DiscordReplyPoller
from hookparty.notifications.telegram import TelegramReplyPoller
from hookparty.servers.http import HookServer
from hookparty.servers.sms import SmsWebhookServer
from hookparty.sessions.models import Session, SessionStatus
from hookparty.utils.logging import setup_file_logging

logger = logging.getLogger(__name__)


class PartyRunner:
    """Runner for the hookparty daemon."""

    def __init__(
        self,
        config_path: Path | None = None,
        verbose: bool = False,
        config: PartyConfig | None = None,
    ):
        self.config_file = str(config_path) if config_path else None
        self.config = config or load_config(self.config_file)
        setup_file_logging(self.config.logging, verbose=verbose)

        self.verbose = verbose
        self._shutdown_requested = False

        self.services: ServiceContainer = build_services(self.config)

        self.hook_server = HookServer(
            config=self.config,
            registry=self.services.registry,
            dispatcher=self.services.dispatcher,
            settings_sink=self._save_config,
            on_sessions_updated=self._log_sessions,
        )

        self.sweeper = InputSweeper(
            self.services.delivery,
            interval_seconds=self.config.input_delivery.sweep_interval_seconds,
        )

        self.telegram_poller: TelegramReplyPoller | None = None
        telegram = self.config.notifications.telegram
        if telegram.enabled and telegram.reply_enabled and telegram.bot_token:
            self.telegram_poller = TelegramReplyPoller(
                TelegramChannel(telegram.bot_token, telegram.chat_id),
                self.services.router,
                on_chat_id=self._save_telegram_chat_id,
            )

        self.discord_poller: DiscordReplyPoller | None = None
        discord = self.config.notifications.discord
        if discord.enabled and discord.reply_enabled and discord.bot_token and discord.channel_id:
            self.discord_poller = DiscordReplyPoller(
                DiscordBotChannel(discord.bot_token, discord.channel_id),
                self.services.router,
                interval_seconds=discord.poll_interval_seconds,
            )

        self.sms_server: SmsWebhookServer | None = None
        sms = self.config.notifications.sms
        if sms.enabled and sms.reply_enabled:
            self.sms_server = SmsWebhookServer(sms, self.services.router, host=self.config.hook_server_host)

    def _save_config(self, config: PartyConfig) -> None:
        save_config(config, self.config_file)

    def _save_telegram_chat_id(self, chat_id: str) -> None:
        self.config.notifications.telegram.chat_id = chat_id
        # Outgoing notifications use the dispatcher's own channel instance
        for channel in self.services.dispatcher.channels:
            if isinstance(channel, TelegramChannel):
                channel.chat_id = chat_id
        self._save_config(self.config)

    def _log_sessions(self, sessions: list[Session]) -> None:
        waiting = sum(1 for s in sessions if s.status == SessionStatus.WAITING)
        logger.debug(f"{len(sessions)} session(s), {waiting} waiting for input")

    def _setup_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda: setattr(self, "_shutdown_requested", True))

    async def run(self) -> None:
        try:
            self._setup_signal_handlers()

            port = await self.hook_server.start()
            logger.info(f"hookparty ready on port {port}")

            await self.sweeper.start()
            if self.telegram_poller:
                await self.telegram_poller.start()
            if self.discord_poller:
                await self.discord_poller.start()
            if self.sms_server:
                try:
                    await self.sms_server.start()
                except OSError as e:
                    logger.error(f"SMS webhook disabled, could not bind its port: {e}")
                    self.sms_server = None

            # Wait for shutdown
            while not self._shutdown_requested:
                await asyncio.sleep(0.5)

            # Stop in reverse startup order
            if self.sms_server:
                await self.sms_server.stop()
            if self.discord_poller:
                await self.discord_poller.stop()
            if self.telegram_poller:
                await self.telegram_poller.stop()
            await self.sweeper.stop()
            await self.hook_server.stop()

        except Exception as e:
            logger.error(f"Fatal error: {e}", exc_info=True)
            sys.exit(1)


async def run_hookparty(config_path: Path | None = None, verbose: bool = False) -> None:
    runner = PartyRunner(config_path=config_path, verbose=verbose)
    await runner.run()


def main(config_path: Path | None = None, verbose: bool = False) -> None:
    try:
        asyncio.run(run_hookparty(config_path=config_path, verbose=verbose))
    except KeyboardInterrupt:
        sys.exit(0)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
