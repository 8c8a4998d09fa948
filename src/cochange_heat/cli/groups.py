"""Groups CLI command -- list co-change groups for a project."""

import json

import click
import typer
from rich.table import Table

from ..persistence.queries import list_co_change_groups, list_co_change_rows
from ..temporal.models import Scope
from . import app
from ._common import console, format_time, open_store, resolve_config


@app.command()
def groups(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Registered project identifier"),
    scope: str = typer.Option(
        Scope.FILE.value,
        "--scope",
        "-s",
        help="Member granularity: file | directory",
        click_type=click.Choice([s.value for s in Scope], case_sensitive=False),
    ),
    limit: int = typer.Option(
        20,
        "--limit",
        "-n",
        help="Maximum number of rows to list",
        min=1,
        max=1000,
    ),
    by_member: bool = typer.Option(
        False,
        "--by-member",
        help="One row per path with its co-change partners",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in machine-readable JSON format",
    ),
):
    """
    List the co-change groups currently in the window.

    [bold cyan]Examples:[/bold cyan]

      cochange-heat groups web

      cochange-heat groups web --scope directory --limit 50

      cochange-heat groups web --by-member --json
    """
    config = resolve_config(ctx)
    scope = scope.lower()

    with open_store(config) as store:
        if by_member:
            rows = list_co_change_rows(store, project_id, scope)[:limit]
        else:
            rows = list_co_change_groups(store, project_id, scope, limit=limit)

    if json_output:
        if by_member:
            data = [
                {
                    "member": r.member,
                    "max_frequency": r.max_frequency,
                    "last_seen_at": r.last_seen_at.isoformat() if r.last_seen_at else None,
                    "partners": r.partners,
                }
                for r in rows
            ]
        else:
            data = [
                {
                    "group_key": g.group_key,
                    "members": g.members,
                    "frequency": g.frequency,
                    "last_seen_at": g.last_seen_at.isoformat() if g.last_seen_at else None,
                }
                for g in rows
            ]
        print(json.dumps(data, indent=2))
        return

    if not rows:
        console.print(f"[yellow]No {scope} co-change groups for {project_id}.[/yellow]")
        return

    if by_member:
        table = Table(title=f"Co-change partners ({scope})")
        table.add_column("Member", style="cyan")
        table.add_column("Max freq", justify="right", style="bold")
        table.add_column("Last seen", style="green")
        table.add_column("Partners")
        for r in rows:
            table.add_row(r.member, str(r.max_frequency), format_time(r.last_seen_at), ", ".join(r.partners))
    else:
        table = Table(title=f"Co-change groups ({scope})")
        table.add_column("Members", style="cyan")
        table.add_column("Frequency", justify="right", style="bold")
        table.add_column("Last seen", style="green")
        for g in rows:
            table.add_row("\n".join(g.members), str(g.frequency), format_time(g.last_seen_at))

    console.print()
    console.print(table)
