"""Status CLI command -- registered projects and their watermarks."""

import json
from typing import Optional

import typer
from rich.table import Table

from . import app
from ._common import console, format_time, open_store, resolve_config


@app.command()
def status(
    ctx: typer.Context,
    project_id: Optional[str] = typer.Argument(None, help="Limit to one project"),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in machine-readable JSON format",
    ),
):
    """
    Show registered projects and the watermark of each dataset.

    [bold cyan]Examples:[/bold cyan]

      cochange-heat status

      cochange-heat status web --json
    """
    config = resolve_config(ctx)
    with open_store(config) as store:
        projects = store.list_projects()
        if project_id is not None:
            projects = [p for p in projects if p["project_id"] == project_id]
        marks = {p["project_id"]: store.list_watermarks(p["project_id"]) for p in projects}

    if json_output:
        data = [
            {
                "project_id": p["project_id"],
                "repo_path": p["repo_path"],
                "watermarks": [
                    {
                        "dataset_kind": w.dataset_kind,
                        "last_run_at": w.last_run_at.isoformat(),
                        "window_days": w.window_days,
                        "version": w.version,
                    }
                    for w in marks[p["project_id"]]
                ],
            }
            for p in projects
        ]
        print(json.dumps(data, indent=2))
        return

    if not projects:
        console.print(
            "[yellow]No projects registered.[/yellow] "
            "Run [bold]cochange-heat register[/bold] first."
        )
        return

    table = Table(title="Projects")
    table.add_column("Project", style="bold")
    table.add_column("Repository", style="cyan")
    table.add_column("Dataset")
    table.add_column("Last run", style="green")
    table.add_column("Window", justify="right")
    table.add_column("Version", justify="right", style="dim")
    for p in projects:
        pid = p["project_id"]
        if not marks[pid]:
            table.add_row(pid, p["repo_path"], "-", "never", "-", "-")
            continue
        for w in marks[pid]:
            table.add_row(
                pid,
                p["repo_path"],
                w.dataset_kind,
                format_time(w.last_run_at),
                f"{w.window_days}d",
                str(w.version),
            )

    console.print()
    console.print(table)
