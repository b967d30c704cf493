"""CLI entry point for managing Gmail accounts."""

import logging

import click
from dotenv import load_dotenv

from gmail_mcp.agent import MailboxAgent
from gmail_mcp.config import Settings

logger = logging.getLogger(__name__)


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Gmail MCP account manager — add, remove, and inspect managed accounts."""
    load_dotenv()
    logging.basicConfig(
        level=logging.WARNING,  # keep CLI output clean; errors still surface
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )
    ctx.obj = MailboxAgent.from_settings(Settings.from_env())


# Import and register commands after cli is defined to avoid circular imports.
from gmail_mcp.cli.commands import add, default, list_accounts, path, reauth, remove, serve  # noqa: E402

cli.add_command(add)
cli.add_command(remove)
cli.add_command(list_accounts)
cli.add_command(default)
cli.add_command(reauth)
cli.add_command(path)
cli.add_command(serve)
