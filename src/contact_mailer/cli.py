# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Command-line interface for the contact mailer.

Manages credentials, inspects the outbox and runs the HTTP service
directly against the configured database.

Usage:
    contact-mailer init-db
    contact-mailer credentials add acme --name "ACME" --host smtp.acme.test --port 587 --secure
    contact-mailer credentials list
    contact-mailer credentials remove acme
    contact-mailer verify acme
    contact-mailer messages list --status failed
    contact-mailer serve --port 3005

Example:
    $ contact-mailer --db /tmp/mailer.db credentials add zoho-main \\
        --name noreply@example.com --provider zoho \\
        --username CLIENT_ID --password CLIENT_SECRET --api-key s3cr3t-key
"""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any

import click
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from .config_loader import MailerSettings, load_settings
from .core import MailerCore
from .entities.credential import CredentialCreate
from .errors import MailerError
from .logger import configure_logging

console = Console()
err_console = Console(stderr=True)


def run_async(coro):
    """Run an async coroutine synchronously."""
    return asyncio.run(coro)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"[red]Error:[/red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def print_json(data: Any) -> None:
    """Print data as formatted JSON."""
    console.print_json(json.dumps(data, indent=2, default=str))


def _settings(ctx: click.Context) -> MailerSettings:
    return ctx.obj["settings"]


async def _with_core(settings: MailerSettings, action):
    """Open a core on the configured database, run ``action(core)``, close it."""
    core = MailerCore(
        db_path=settings.db_path,
        timeouts=settings.timeouts,
        db_busy_timeout=settings.db_busy_timeout,
        accounts_url=settings.accounts_url,
        mail_url=settings.mail_url,
    )
    await core.init()
    try:
        return await action(core)
    finally:
        await core.close()


@click.group()
@click.option("--config", "config_path", type=click.Path(dir_okay=False),
              help="Path to the INI configuration file.")
@click.option("--db", "db_path", help="Database connection string (overrides configuration).")
@click.version_option(package_name="contact-mailer")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, db_path: str | None) -> None:
    """contact-mailer: transactional email service."""
    settings = load_settings(config_path)
    if db_path:
        settings.db_path = db_path
    configure_logging(settings.log_level)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


@main.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create missing tables in the configured database."""
    settings = _settings(ctx)

    async def _noop(core: MailerCore) -> None:
        return None

    run_async(_with_core(settings, _noop))
    print_success(f"Database ready at {settings.db_path}")


# ============================================================================
# CREDENTIALS commands
# ============================================================================

@main.group("credentials")
def credentials() -> None:
    """Manage stored credentials."""


@credentials.command("add")
@click.argument("credential_id")
@click.option("--name", "-n", required=True,
              help="Display name (the from address for provider credentials).")
@click.option("--type", "type_", type=click.Choice(["email", "sms", "whatsapp"]),
              default="email", show_default=True, help="Channel type.")
@click.option("--provider", type=click.Choice(["smtp", "zoho"]), default="smtp",
              show_default=True, help="Email delivery strategy.")
@click.option("--host", help="SMTP server hostname.")
@click.option("--port", type=int, help="SMTP server port.")
@click.option("--secure/--no-secure", default=None, help="Use TLS (implicit on 465, STARTTLS otherwise).")
@click.option("--username", "-u", help="SMTP user, or OAuth client id for providers.")
@click.option("--password", "-p", help="SMTP password, or OAuth client secret for providers.")
@click.option("--api-key", help="Per-credential API key required by callers.")
@click.pass_context
def credentials_add(
    ctx: click.Context,
    credential_id: str,
    name: str,
    type_: str,
    provider: str,
    host: str | None,
    port: int | None,
    secure: bool | None,
    username: str | None,
    password: str | None,
    api_key: str | None,
) -> None:
    """Add or replace a credential."""
    try:
        cred = CredentialCreate(
            id=credential_id,
            name=name,
            type=type_,
            provider=provider,
            host=host,
            port=port,
            secure=secure,
            username=username,
            password=password,
            api_key=api_key,
        )
    except ValidationError as exc:
        for err in exc.errors():
            field = ".".join(str(p) for p in err["loc"])
            print_error(f"{field}: {err['msg']}")
        sys.exit(1)

    async def _add(core: MailerCore) -> None:
        await core.credentials.add(cred.model_dump())

    run_async(_with_core(_settings(ctx), _add))
    print_success(f"Credential '{credential_id}' saved.")


@credentials.command("list")
@click.option("--type", "type_", default="email", show_default=True, help="Channel type to list.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def credentials_list(ctx: click.Context, type_: str, as_json: bool) -> None:
    """List credentials of one channel type. Secrets are never shown."""

    async def _list(core: MailerCore) -> list[dict]:
        return await core.credentials.find_by_type(type_)

    rows = run_async(_with_core(_settings(ctx), _list))

    if as_json:
        print_json(rows)
        return

    if not rows:
        console.print("[dim]No credentials found.[/dim]")
        return

    table = Table(title=f"Credentials ({type_})")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Provider")
    table.add_column("Host")
    table.add_column("Port", justify="right")
    table.add_column("TLS", justify="center")

    for row in rows:
        if row.get("secure") is None:
            tls = "-"
        else:
            tls = "[green]✓[/green]" if row["secure"] else "[red]✗[/red]"
        table.add_row(
            row["id"],
            row.get("name") or "-",
            row.get("provider") or "smtp",
            row.get("host") or "-",
            str(row["port"]) if row.get("port") else "-",
            tls,
        )

    console.print(table)


@credentials.command("remove")
@click.argument("credential_id")
@click.option("--force", "-f", is_flag=True, help="Skip confirmation.")
@click.pass_context
def credentials_remove(ctx: click.Context, credential_id: str, force: bool) -> None:
    """Remove a credential. Recorded messages are kept."""
    if not force and not click.confirm(f"Remove credential '{credential_id}'?"):
        console.print("[dim]Cancelled.[/dim]")
        return

    async def _remove(core: MailerCore) -> bool:
        return await core.credentials.remove(credential_id)

    if not run_async(_with_core(_settings(ctx), _remove)):
        print_error(f"Credential '{credential_id}' not found.")
        sys.exit(1)
    print_success(f"Credential '{credential_id}' removed.")


# ============================================================================
# VERIFY / MESSAGES commands
# ============================================================================

@main.command("verify")
@click.argument("credential_id")
@click.pass_context
def verify(ctx: click.Context, credential_id: str) -> None:
    """Handshake with the server configured for a credential."""

    async def _verify(core: MailerCore) -> bool:
        return await core.verify_connection(credential_id)

    try:
        run_async(_with_core(_settings(ctx), _verify))
    except MailerError as exc:
        print_error(str(exc))
        sys.exit(1)
    print_success(f"Connection verified for '{credential_id}'.")


@main.group("messages")
def messages() -> None:
    """Inspect the outbox."""


@messages.command("list")
@click.option("--status", type=click.Choice(["pending", "sent", "failed"]),
              help="Only show messages with this status.")
@click.option("--limit", type=int, default=50, show_default=True, help="Maximum rows to show.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def messages_list(ctx: click.Context, status: str | None, limit: int, as_json: bool) -> None:
    """List the most recent outbox rows."""

    async def _list(core: MailerCore) -> list[dict]:
        return await core.list_messages(status=status, limit=limit)

    rows = run_async(_with_core(_settings(ctx), _list))

    if as_json:
        print_json(rows)
        return

    if not rows:
        console.print("[dim]No messages found.[/dim]")
        return

    status_style = {"sent": "green", "failed": "red", "pending": "yellow"}
    table = Table(title="Outgoing messages")
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Credential")
    table.add_column("To")
    table.add_column("Subject")
    table.add_column("Status")
    table.add_column("Created")
    table.add_column("Error")

    for row in rows:
        style = status_style.get(row["status"], "white")
        table.add_row(
            str(row["id"]),
            row["credential_id"],
            row["recipient"],
            (row.get("subject") or "-")[:40],
            f"[{style}]{row['status']}[/{style}]",
            str(row.get("created_at") or "-"),
            (row.get("error_message") or "")[:60],
        )

    console.print(table)


# ============================================================================
# SERVE
# ============================================================================

@main.command("serve")
@click.option("--host", help="Bind address (overrides configuration).")
@click.option("--port", type=int, help="Port (overrides configuration).")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development.")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None, reload: bool) -> None:
    """Run the HTTP service with uvicorn."""
    import uvicorn

    from .server import build_app

    settings = _settings(ctx)
    host = host or settings.host
    port = port or settings.port

    console.print("\n[bold cyan]Starting contact-mailer[/bold cyan]")
    console.print(f"  DB:      {settings.db_path}")
    console.print(f"  Listen:  {host}:{port}")
    console.print()

    if reload:
        uvicorn.run("contact_mailer.server:app", host=host, port=port, reload=True)
    else:
        uvicorn.run(build_app(settings), host=host, port=port)


if __name__ == "__main__":
    main()
