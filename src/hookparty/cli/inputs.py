"""
Input delivery commands.

``send`` is what a person (or another tool) uses to answer a session;
``pending`` is what hook scripts and wrappers poll to pick the answer up.
"""

import asyncio
import sys

import click

from hookparty.config.app import PartyConfig
from hookparty.delivery.input import InputDeliveryChannel
from hookparty.utils.logging import setup_logging


def _channel(ctx: click.Context) -> InputDeliveryChannel:
    config: PartyConfig = ctx.obj["config"]
    return InputDeliveryChannel.from_settings(config.input_delivery)


@click.command()
@click.argument("session_id")
@click.argument("text")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose debug output")
@click.pass_context
def send(ctx: click.Context, session_id: str, text: str, verbose: bool) -> None:
    """Send TEXT as input to SESSION_ID ("-" reads TEXT from stdin)."""
    setup_logging(verbose)
    if text == "-":
        text = sys.stdin.read().rstrip("\n")

    delivered = asyncio.run(_channel(ctx).send(session_id, text))
    if not delivered:
        click.echo(f"Failed to deliver input to {session_id}", err=True)
        ctx.exit(1)
    click.echo(f"Sent to {session_id[:8]}")


@click.command()
@click.argument("session_id")
@click.option(
    "--check",
    is_flag=True,
    help="Only test for pending input; do not consume it",
)
@click.pass_context
def pending(ctx: click.Context, session_id: str, check: bool) -> None:
    """
    Print and consume pending input for SESSION_ID.

    Exits 1 when nothing is pending, so hook scripts can branch on it.
    """
    channel = _channel(ctx)

    if check:
        ctx.exit(0 if channel.has_pending(session_id) else 1)

    text = channel.read_pending(session_id)
    if text is None:
        ctx.exit(1)
    click.echo(text)
