"""Session and race analysis commands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.markup import escape
from rich.table import Table

from algolia_indexlog.cli.common import console, exit_if_missing, open_sql_store
from algolia_indexlog.constants import ItemStatus, Level
from algolia_indexlog.services import Analyzer, SessionAggregator

query_app = typer.Typer(
    name="query",
    help="Session and race analysis",
    no_args_is_help=True,
)

_STATUS_STYLE = {
    ItemStatus.INDEXED: "green",
    ItemStatus.SKIPPED: "yellow",
    ItemStatus.FAILED: "red",
    ItemStatus.UNKNOWN: "dim",
}


def _fmt_time(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "N/A"


def _read_ids(ids: list[str] | None, ids_file: Path | None) -> list[str]:
    collected = []
    for chunk in ids or []:
        collected.extend(part.strip() for part in chunk.split(",") if part.strip())
    if ids_file is not None:
        if not ids_file.exists():
            console.print(f"[red]Error:[/red] File not found: {ids_file}")
            raise typer.Exit(code=1)
        for line in ids_file.read_text().splitlines():
            collected.extend(part.strip() for part in line.split(",") if part.strip())
    return collected


@query_app.command(name="sessions")
def list_sessions(
    ctx: typer.Context,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum results"),
    ] = 10,
) -> None:
    """
    List the most recently started indexing sessions.
    """
    with open_sql_store(ctx) as store:
        sessions = Analyzer(store).recent_sessions(limit)

    if not sessions:
        console.print("[yellow]No sessions found[/yellow]")
        return

    table = Table(title=f"Recent Sessions ({len(sessions)} results)")
    table.add_column("Session", style="cyan")
    table.add_column("Start", style="blue")
    table.add_column("End", style="blue")
    table.add_column("Events", justify="right")
    table.add_column("Errors", justify="right", style="red")
    table.add_column("State")
    for info in sessions:
        table.add_row(
            info.session_id,
            _fmt_time(info.start_time),
            _fmt_time(info.end_time),
            str(info.event_count),
            str(info.error_count),
            "[green]closed[/green]" if info.closed else "[yellow]open[/yellow]",
        )
    console.print(table)


@query_app.command(name="summary")
def session_summary(
    ctx: typer.Context,
    session_id: Annotated[str, typer.Argument(help="Session identifier")],
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the summary as JSON"),
    ] = False,
    errors_limit: Annotated[
        int,
        typer.Option("--errors", help="Maximum error details shown"),
    ] = 20,
) -> None:
    """
    Summarize one session: item statuses, stage counts and errors.
    """
    with open_sql_store(ctx) as store:
        summary = SessionAggregator(store).summarize(session_id)
        analyzer = Analyzer(store)
        breakdown = analyzer.stage_breakdown(session_id)
        errors = analyzer.errors(session_id, limit=errors_limit)
    exit_if_missing(summary)

    if as_json:
        data = summary.model_dump(mode="json")
        data["errors"] = errors.model_dump(mode="json", exclude={"found"})
        console.print_json(data=data)
        return

    console.print(f"[bold]Session:[/bold] {summary.session_id}")
    console.print(f"  Start:    {_fmt_time(summary.start_time)}")
    console.print(f"  End:      {_fmt_time(summary.end_time)}")
    console.print(f"  Duration: {summary.duration:.1f}s")
    console.print(f"  State:    {'closed' if summary.closed else 'open'}")
    if summary.memory_peak:
        console.print(f"  Memory:   {summary.memory_peak / 1024 / 1024:.1f} MB")
    console.print(f"  Events:   {summary.event_count} ({summary.error_count} errors)")

    table = Table(title=f"Items ({summary.total_items})")
    table.add_column("Status")
    table.add_column("Count", justify="right")
    for status, count in summary.status_counts.items():
        style = _STATUS_STYLE[status]
        table.add_row(f"[{style}]{status.value}[/{style}]", str(count))
    console.print(table)

    stages = Table(title="Stages")
    stages.add_column("Stage", style="cyan")
    stages.add_column("Events", justify="right")
    for stage, count in summary.stage_counts.items():
        stages.add_row(stage.value, str(count))
    console.print(stages)

    if breakdown.skip_reasons:
        console.print("[bold]Skip reasons:[/bold]")
        for reason, count in breakdown.skip_reasons.items():
            console.print(f"  {reason}: {count}")

    if errors.total_count:
        table = Table(title=f"Errors ({errors.total_count})")
        table.add_column("Time", style="blue")
        table.add_column("Stage", style="cyan")
        table.add_column("Item")
        table.add_column("Message", style="red")
        for detail in errors.details:
            table.add_row(
                _fmt_time(detail.timestamp),
                detail.stage.value,
                "batch" if detail.is_batch_level else str(detail.item_id),
                escape(detail.message),
            )
        console.print(table)


@query_app.command(name="timeline")
def item_timeline(
    ctx: typer.Context,
    session_id: Annotated[str, typer.Argument(help="Session identifier")],
    item_id: Annotated[str, typer.Argument(help="Item identifier")],
) -> None:
    """
    Show every event of one item within a session.
    """
    with open_sql_store(ctx) as store:
        events = list(Analyzer(store).item_timeline(session_id, item_id))

    if not events:
        console.print(f"[yellow]No events for item {item_id} in {session_id}[/yellow]")
        return

    table = Table(title=f"Item {item_id} ({len(events)} events)")
    table.add_column("Time", style="blue")
    table.add_column("Stage", style="cyan")
    table.add_column("Level")
    table.add_column("Payload", overflow="fold")
    for event in events:
        level = event.level.value
        if event.level is Level.ERROR:
            level = f"[red]{level}[/red]"
        table.add_row(_fmt_time(event.timestamp), event.stage.value, level, str(event.payload))
    console.print(table)


@query_app.command(name="missing")
def missing_items(
    ctx: typer.Context,
    session_id: Annotated[str, typer.Argument(help="Session identifier")],
    ids: Annotated[
        Optional[list[str]],
        typer.Option("--ids", help="Expected item ids (repeatable or comma-separated)"),
    ] = None,
    ids_file: Annotated[
        Optional[Path],
        typer.Option("--ids-file", help="File with expected item ids, one per line"),
    ] = None,
) -> None:
    """
    Report expected items that a session never retrieved or never finished.
    """
    expected = _read_ids(ids, ids_file)
    with open_sql_store(ctx) as store:
        report = Analyzer(store).find_missing(session_id, expected)
    exit_if_missing(report)

    console.print(f"[bold]Session:[/bold] {report.session_id}")
    console.print(f"  Expected:  {report.expected_count}")
    console.print(f"  Retrieved: {report.retrieved_count}")
    console.print(f"  Observed:  {report.observed_count}")
    console.print(f"  Processed: {report.processed_count}")

    if report.never_seen:
        console.print(f"[red]Never seen ({len(report.never_seen)}):[/red]")
        console.print("  " + ", ".join(str(item_id) for item_id in report.never_seen))
    else:
        console.print("[green]✓[/green] Every expected item was retrieved")

    if report.retrieved_not_processed:
        console.print(
            "[yellow]Retrieved but not processed "
            f"({len(report.retrieved_not_processed)}):[/yellow]"
        )
        console.print("  " + ", ".join(str(i) for i in report.retrieved_not_processed))

    table = Table(title="Items by last stage")
    table.add_column("Stage", style="cyan")
    table.add_column("Count", justify="right")
    for stage, item_ids in report.by_stage.items():
        table.add_row(stage.value, str(len(item_ids)))
    console.print(table)


@query_app.command(name="compare")
def compare_sessions(
    ctx: typer.Context,
    session_a: Annotated[str, typer.Argument(help="First session")],
    session_b: Annotated[str, typer.Argument(help="Second session")],
) -> None:
    """
    Compare the items and stage activity of two sessions.
    """
    with open_sql_store(ctx) as store:
        report = Analyzer(store).compare(session_a, session_b)
    exit_if_missing(report)

    console.print(f"Only in A: {len(report.only_in_a)}")
    console.print(f"Only in B: {len(report.only_in_b)}")
    console.print(f"In both:   {len(report.in_both)}")

    table = Table(title="Stage activity")
    table.add_column("Stage", style="cyan")
    table.add_column("A", justify="right")
    table.add_column("B", justify="right")
    table.add_column("A - B", justify="right")
    for stage, delta in report.stage_deltas.items():
        table.add_row(
            stage.value, str(delta.session_a), str(delta.session_b), str(delta.difference)
        )
    table.add_row(
        "[red]errors[/red]",
        str(report.error_counts[session_a]),
        str(report.error_counts[session_b]),
        str(report.error_counts[session_a] - report.error_counts[session_b]),
    )
    console.print(table)


@query_app.command(name="races")
def race_report(
    ctx: typer.Context,
    min_concurrent: Annotated[
        int,
        typer.Option("--min-concurrent", min=2, help="Minimum number of sessions per item"),
    ] = 2,
    window: Annotated[
        float,
        typer.Option("--window", help="Maximum span of a correlation in seconds"),
    ] = 10.0,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum results"),
    ] = 100,
    item_id: Annotated[
        Optional[str],
        typer.Option("--item", help="Show the cross-session timeline of one item"),
    ] = None,
) -> None:
    """
    List items touched by several sessions within a short window.

    Correlations are heuristic: they only show timestamp proximity.
    """
    with open_sql_store(ctx) as store:
        analyzer = Analyzer(store)
        if item_id is not None:
            _print_race_timeline(analyzer.race_timeline(item_id))
            return
        report = analyzer.detect_races(min_concurrent, window, limit)

    if not report.items:
        console.print("[green]✓[/green] No race correlations found")
        return

    table = Table(title=f"Race correlations ({report.total_items_affected} items)")
    table.add_column("Item", style="cyan")
    table.add_column("Occurrences", justify="right")
    table.add_column("Sessions")
    table.add_column("Stages")
    table.add_column("First seen", style="blue")
    table.add_column("Last seen", style="blue")
    for summary in report.items:
        table.add_row(
            str(summary.item_id),
            str(summary.occurrences),
            str(len(summary.sessions)),
            ", ".join(stage.value for stage in summary.stages),
            _fmt_time(summary.first_seen),
            _fmt_time(summary.last_seen),
        )
    console.print(table)


def _print_race_timeline(timeline) -> None:
    table = Table(title=f"Item {timeline.item_id} across sessions")
    table.add_column("Time", style="blue")
    table.add_column("Type")
    table.add_column("Session", style="cyan")
    table.add_column("Stage")
    for entry in timeline.entries:
        kind = entry["type"]
        if kind == "race_detected":
            kind = f"[red]{kind}[/red]"
        table.add_row(_fmt_time(entry["timestamp"]), kind, entry["session_id"], entry["stage"])
    console.print(table)
    for overlap in timeline.session_overlap:
        a, b = overlap.sessions
        console.print(f"[yellow]Overlap[/yellow] {a} / {b}: {overlap.overlap_seconds:.1f}s")


@query_app.command(name="export")
def export_items(
    ctx: typer.Context,
    session_id: Annotated[str, typer.Argument(help="Session identifier")],
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Output CSV file (default: stdout)"),
    ] = None,
    problems_only: Annotated[
        bool,
        typer.Option("--problems-only", help="Only failed, skipped or errored items"),
    ] = False,
) -> None:
    """
    Export per-item results of a session as CSV.
    """
    with open_sql_store(ctx) as store:
        text = Analyzer(store).export_csv(session_id, problems_only=problems_only)

    if output is None:
        typer.echo(text, nl=False)
        return
    output.write_text(text)
    rows = max(text.count("\n") - 1, 0)
    console.print(f"[green]✓[/green] Wrote {rows} items to {output}")
