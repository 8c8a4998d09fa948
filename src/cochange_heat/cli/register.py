"""Register CLI command -- map a project id to a repository path."""

from datetime import datetime, timezone
from pathlib import Path

import typer

from . import app
from ._common import console, open_store, resolve_config


@app.command()
def register(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Project identifier"),
    repo_path: Path = typer.Argument(
        ...,
        help="Path to the git working directory",
        exists=True,
        file_okay=False,
        dir_okay=True,
        readable=True,
    ),
):
    """
    Register (or move) a project's repository.

    [bold cyan]Examples:[/bold cyan]

      cochange-heat register web ~/src/web
    """
    config = resolve_config(ctx)
    resolved = str(repo_path.resolve())
    with open_store(config) as store:
        store.register_project(project_id, resolved, datetime.now(timezone.utc))
    console.print(f"[green]Registered[/green] [bold]{project_id}[/bold] -> {resolved}")
