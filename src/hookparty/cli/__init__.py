"""
hookparty CLI entry point.
"""

import click

from hookparty.config.app import load_config

from .daemon import serve, sweep
from .inputs import pending, send


@click.group()
@click.option(
    "--config",
    type=click.Path(exists=True),
    help="Path to custom configuration file",
)
@click.pass_context
def cli(ctx: click.Context, config: str | None) -> None:
    """hookparty - Follow and answer Claude Code sessions from anywhere."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["config"] = load_config(config)


cli.add_command(serve)
cli.add_command(sweep)
cli.add_command(send)
cli.add_command(pending)
