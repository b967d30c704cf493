"""CLI command implementations — all commands act through the MailboxAgent's store."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, NoReturn

import click
from rich import box
from rich.console import Console
from rich.table import Table

from gmail_mcp.errors import GmailMCPError

if TYPE_CHECKING:
    from gmail_mcp.agent import MailboxAgent

logger = logging.getLogger(__name__)
console = Console(width=200)


def _fail(exc: GmailMCPError) -> NoReturn:
    console.print(f"[red]Error: {exc}[/red]")
    raise SystemExit(1)


def _short_date(timestamp: str | None) -> str:
    if not timestamp:
        return "never"
    try:
        return datetime.fromisoformat(timestamp).strftime("%Y-%m-%d %H:%M")
    except ValueError:
        return timestamp


@click.command()
@click.argument("email")
@click.pass_obj
def add(agent: MailboxAgent, email: str) -> None:
    """Add a Gmail account (opens a browser for Google consent)."""
    console.print(f"Adding account: [bold]{email}[/bold]")
    console.print("[dim]A browser window will open for Google authorization...[/dim]")
    try:
        agent.store.add_identity(email)
    except GmailMCPError as exc:
        _fail(exc)
    console.print(f"[green]Account {email} added successfully.[/green]")
    if agent.store.get_default() == email:
        console.print(f"[dim]{email} is now the default account.[/dim]")


@click.command()
@click.argument("email")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.pass_obj
def remove(agent: MailboxAgent, email: str, yes: bool) -> None:
    """Remove a Gmail account and delete its stored credentials."""
    if not yes:
        click.confirm(f"Remove {email} and delete its credentials?", abort=True)
    try:
        agent.store.remove_identity(email)
    except GmailMCPError as exc:
        _fail(exc)
    console.print(f"[green]Account {email} removed.[/green]")
    new_default = agent.store.get_default()
    if new_default:
        console.print(f"[dim]Default account: {new_default}[/dim]")


@click.command(name="list")
@click.pass_obj
def list_accounts(agent: MailboxAgent) -> None:
    """List configured accounts."""
    identities, default_id = agent.store.snapshot()
    if not identities:
        console.print(
            "[yellow]No accounts configured. "
            "Run `gmail-accounts add <email>` to get started.[/yellow]"
        )
        return

    table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("Account", max_width=40)
    table.add_column("Default", width=7)
    table.add_column("Added", width=16)
    table.add_column("Last used", width=16)

    for ident in identities:
        table.add_row(
            ident.account_id,
            "[green]✓[/green]" if ident.account_id == default_id else "",
            _short_date(ident.added_at),
            _short_date(ident.last_used_at),
        )
    console.print(table)


@click.command()
@click.argument("email", required=False)
@click.pass_obj
def default(agent: MailboxAgent, email: str | None) -> None:
    """Show the default account, or set it to EMAIL."""
    if email is None:
        current = agent.store.get_default()
        if current:
            console.print(f"Default account: [bold]{current}[/bold]")
        else:
            console.print("[yellow]No default account set.[/yellow]")
        return
    try:
        agent.store.set_default(email)
    except GmailMCPError as exc:
        _fail(exc)
    console.print(f"[green]Default account set to {email}.[/green]")


@click.command()
@click.argument("email")
@click.pass_obj
def reauth(agent: MailboxAgent, email: str) -> None:
    """Re-run Google consent for an account whose token stopped working."""
    console.print(f"Re-authorizing [bold]{email}[/bold]...")
    try:
        agent.store.reauthenticate(email)
    except GmailMCPError as exc:
        _fail(exc)
    console.print(f"[green]Account {email} re-authorized.[/green]")


@click.command()
@click.pass_obj
def path(agent: MailboxAgent) -> None:
    """Print where accounts and the OAuth client file are stored."""
    console.print(f"Data directory:     {agent.settings.home}")
    console.print(f"Accounts directory: {agent.settings.accounts_dir}")
    console.print(f"OAuth client file:  {agent.settings.client_secrets_path}")


@click.command()
@click.pass_obj
def serve(agent: MailboxAgent) -> None:
    """Run the MCP server on stdio (same as `gmail-mcp`)."""
    from gmail_mcp.server.app import build_server

    build_server(agent).run(transport="stdio")
