"""Heatmap CLI command -- list file heat scores for a project."""

import json

import click
import typer
from rich.table import Table

from ..persistence.queries import HEATMAP_SORT_FIELDS, list_heatmap
from . import app
from ._common import console, format_optional, format_time, open_store, resolve_config


@app.command()
def heatmap(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Registered project identifier"),
    min_score: float = typer.Option(
        0.0,
        "--min-score",
        help="Only show files scoring at least this much (0-100)",
        min=0.0,
        max=100.0,
    ),
    sort_by: str = typer.Option(
        "heat_score",
        "--sort-by",
        help="Column to sort by, descending",
        click_type=click.Choice(list(HEATMAP_SORT_FIELDS)),
    ),
    limit: int = typer.Option(
        20,
        "--limit",
        "-n",
        help="Maximum number of files to list",
        min=1,
        max=1000,
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in machine-readable JSON format",
    ),
):
    """
    List the hottest files in the current window.

    [bold cyan]Examples:[/bold cyan]

      cochange-heat heatmap web

      cochange-heat heatmap web --min-score 60 --sort-by change_count
    """
    config = resolve_config(ctx)
    with open_store(config) as store:
        rows = list_heatmap(store, project_id, min_score=min_score, sort_by=sort_by, limit=limit)

    if json_output:
        data = [
            {
                "path": r.relative_path,
                "heat_score": r.heat_score,
                "change_count": r.change_count,
                "last_changed_at": r.last_changed_at.isoformat(),
                "size_bytes": r.size_bytes,
                "loc": r.loc,
            }
            for r in rows
        ]
        print(json.dumps(data, indent=2))
        return

    if not rows:
        console.print(f"[yellow]No heatmap rows for {project_id}.[/yellow]")
        return

    table = Table(title="File heatmap")
    table.add_column("Path", style="cyan")
    table.add_column("Heat", justify="right", style="bold red")
    table.add_column("Changes", justify="right")
    table.add_column("Last changed", style="green")
    table.add_column("Bytes", justify="right", style="dim")
    table.add_column("LOC", justify="right", style="dim")
    for r in rows:
        table.add_row(
            r.relative_path,
            f"{r.heat_score:.2f}",
            str(r.change_count),
            format_time(r.last_changed_at),
            format_optional(r.size_bytes),
            format_optional(r.loc),
        )

    console.print()
    console.print(table)
