"""
Daemon commands.
"""

import asyncio
import logging
from pathlib import Path

import click

from hookparty.config.app import PartyConfig
from hookparty.delivery.input import InputDeliveryChannel
from hookparty.runner import PartyRunner
from hookparty.utils.logging import setup_logging

logger = logging.getLogger(__name__)


@click.command()
@click.option(
    "--port",
    type=int,
    default=None,
    help="Hook server port (overrides config)",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose debug output",
)
@click.pass_context
def serve(ctx: click.Context, port: int | None, verbose: bool) -> None:
    """Run the hook server in the foreground."""
    config: PartyConfig = ctx.obj["config"]
    if port is not None:
        if not (1024 <= port <= 65535):
            raise click.BadParameter("Port must be between 1024 and 65535", param_hint="--port")
        config.hook_server_port = port

    config_path = ctx.obj.get("config_path")
    runner = PartyRunner(
        config_path=Path(config_path) if config_path else None,
        verbose=verbose,
        config=config,
    )
    click.echo(f"Starting hookparty on {config.hook_server_host}:{config.hook_server_port}")

    try:
        asyncio.run(runner.run())
    except KeyboardInterrupt:
        pass


@click.command()
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose debug output",
)
@click.pass_context
def sweep(ctx: click.Context, verbose: bool) -> None:
    """Remove stale entries from the input drop-box."""
    setup_logging(verbose)
    config: PartyConfig = ctx.obj["config"]

    channel = InputDeliveryChannel.from_settings(config.input_delivery)
    removed = channel.sweep_stale()
    click.echo(f"Removed {removed} stale input file(s) from {channel.drop_box_dir}")
