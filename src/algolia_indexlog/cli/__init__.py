"""Console script for algolia_indexlog."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console

app = typer.Typer(
    name="indexlog",
    help="Algolia indexing event log - inspect sessions, missing items and races",
    no_args_is_help=True,
)
console = Console()


@app.callback()
def main(
    ctx: typer.Context,
    db_url: Annotated[
        Optional[str],
        typer.Option("--db", help="Database URL (default: INDEXLOG_DATABASE_URL)"),
    ] = None,
    env_file: Annotated[
        Optional[Path],
        typer.Option("--env-file", help="Load INDEXLOG_* variables from this .env file"),
    ] = None,
) -> None:
    """Algolia indexing event log."""
    if env_file is not None:
        if not env_file.exists():
            console.print(f"[red]Error:[/red] Env file not found: {env_file}")
            raise typer.Exit(code=1)
        load_dotenv(env_file, override=True, interpolate=True)
    ctx.obj = {"db_url": db_url}


# Import subcommand apps
from algolia_indexlog.cli.db_commands import db_app
from algolia_indexlog.cli.query_commands import query_app

# Register subcommands
app.add_typer(db_app, name="db", help="Event store management operations")
app.add_typer(query_app, name="query", help="Session and race analysis")


if __name__ == "__main__":
    app()
