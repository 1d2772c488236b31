"""Event store management commands."""

from __future__ import annotations

from typing import Annotated, Optional

import typer
from rich.table import Table

from algolia_indexlog.cli.common import console, load_config, open_sql_store

db_app = typer.Typer(
    name="db",
    help="Event store management operations",
    no_args_is_help=True,
)


@db_app.command(name="init")
def init_database(ctx: typer.Context) -> None:
    """
    Create the event store tables (idempotent).

    Safe to run multiple times; existing tables are left untouched.
    """
    console.print("[bold blue]Initializing event store...[/bold blue]")
    with open_sql_store(ctx) as store:
        console.print(f"Database: {store.database.engine.url}")
        tables = store.database.table_names()

    table = Table(title="Tables")
    table.add_column("Name", style="cyan")
    for name in tables:
        table.add_row(name)
    console.print(table)
    console.print(f"[green]✓[/green] Event store ready ({len(tables)} tables)")


@db_app.command(name="purge")
def purge_expired(
    ctx: typer.Context,
    ttl_days: Annotated[
        Optional[int],
        typer.Option("--ttl-days", min=1, help="Retention in days (default: INDEXLOG_TTL_DAYS)"),
    ] = None,
) -> None:
    """
    Delete events, accesses, race records and session ends past retention.
    """
    from datetime import timedelta

    ttl = timedelta(days=ttl_days) if ttl_days else load_config(ctx).ttl
    with open_sql_store(ctx) as store:
        deleted = store.purge_expired(ttl)
    console.print(
        f"[green]✓[/green] Purged {deleted} records older than {ttl.days} days"
    )
