"""Helpers shared by CLI commands."""

from __future__ import annotations

import typer
from pydantic import ValidationError
from rich.console import Console

from algolia_indexlog.config import IndexLogConfig
from algolia_indexlog.errors import StoreUnavailable
from algolia_indexlog.models.schemas import AnalysisInputMissing
from algolia_indexlog.store import SQLEventStore

console = Console()


def load_config(ctx: typer.Context) -> IndexLogConfig:
    """Configuration from the environment with the global --db applied."""
    db_url = (ctx.obj or {}).get("db_url")
    try:
        return IndexLogConfig.from_env(database_url=db_url)
    except ValidationError as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(code=1) from e


def open_sql_store(ctx: typer.Context) -> SQLEventStore:
    """Open the SQL event store the CLI operates on."""
    config = load_config(ctx)
    try:
        return SQLEventStore.from_url(config.database_url, echo=config.echo)
    except StoreUnavailable as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e


def exit_if_missing(result) -> None:
    """Print the message of an AnalysisInputMissing result and exit."""
    if isinstance(result, AnalysisInputMissing):
        console.print(f"[yellow]{result.message}[/yellow]")
        raise typer.Exit(code=1)
