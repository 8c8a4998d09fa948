"""CLI entry point -- registers all subcommands."""

from pathlib import Path
from typing import Optional

import typer

from .. import __version__
from ._common import console

app = typer.Typer(
    name="cochange-heat",
    help="cochange-heat - Windowed co-change groups and file heat scores from git history",
    add_completion=False,
    rich_markup_mode="rich",
)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(
        None,
        "--db",
        help="Analytics database (default: .cochange/analytics.db)",
        dir_okay=False,
    ),
    config: Optional[Path] = typer.Option(
        None,
        "-c",
        "--config",
        help="Configuration file (TOML)",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Only log errors",
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        help="Append log records to this file as well",
        dir_okay=False,
    ),
    version: bool = typer.Option(
        False,
        "--version",
        help="Show version and exit",
    ),
):
    """
    Maintain rolling-window co-change groups and file heatmaps for
    registered git repositories.

    [bold cyan]Examples:[/bold cyan]

      cochange-heat register web ~/src/web

      cochange-heat compute web --window-days 30

      cochange-heat heatmap web --min-score 50
    """
    if version:
        console.print(f"[bold cyan]cochange-heat[/bold cyan] version [green]{__version__}[/green]")
        raise typer.Exit(0)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(0)

    ctx.ensure_object(dict)
    ctx.obj["db"] = db
    ctx.obj["config"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["log_file"] = log_file


# Import subcommands to register them
from .register import register as _register  # noqa: F401, E402
from .compute import compute as _compute  # noqa: F401, E402
from .groups import groups as _groups  # noqa: F401, E402
from .heatmap import heatmap as _heatmap  # noqa: F401, E402
from .status import status as _status  # noqa: F401, E402
