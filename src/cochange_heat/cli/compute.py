"""Compute CLI command -- bring datasets up to a reference date."""

import json
from dataclasses import asdict
from typing import Optional

import click
import typer

from ..exceptions import CochangeError
from . import app
from ._common import build_engine, console, open_store, parse_reference_date, resolve_config

_KINDS = ("co-change", "heatmap", "all")


@app.command()
def compute(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Registered project identifier"),
    kind: str = typer.Option(
        "all",
        "--kind",
        "-k",
        help="Dataset to compute: co-change | heatmap | all",
        click_type=click.Choice(list(_KINDS), case_sensitive=False),
    ),
    window_days: Optional[int] = typer.Option(
        None,
        "--window-days",
        "-w",
        help="Window width in days (default from config)",
        min=1,
    ),
    reference_date: Optional[str] = typer.Option(
        None,
        "--reference-date",
        help="End of the window, ISO-8601 (default: now)",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in machine-readable JSON format",
    ),
):
    """
    Run the engine for a project, full or delta as the watermark allows.

    [bold cyan]Examples:[/bold cyan]

      cochange-heat compute web

      cochange-heat compute web --kind heatmap --window-days 14

      cochange-heat compute web --reference-date 2024-06-01T00:00:00Z --json
    """
    ref = parse_reference_date(reference_date)
    config = resolve_config(ctx, window_days=window_days)

    results = []
    try:
        with open_store(config) as store:
            if store.get_repo_path(project_id) is None:
                console.print(
                    f"[red]Unknown project:[/red] {project_id}. "
                    "Run [bold]cochange-heat register[/bold] first."
                )
                raise typer.Exit(1)
            engine = build_engine(store, config)
            kind = kind.lower()
            if kind == "all":
                # one reference date for both datasets
                results = engine.compute_all(project_id, config.window_days, ref)
            elif kind == "co-change":
                results = [engine.compute_co_change(project_id, config.window_days, ref)]
            else:
                results = [engine.compute_heatmap(project_id, config.window_days, ref)]
    except CochangeError as e:
        console.print(f"[red]Error:[/red] {e}")
        if e.recovery_hint:
            console.print(f"[dim]{e.recovery_hint}[/dim]")
        raise typer.Exit(1)

    if json_output:
        print(json.dumps([_result_dict(r) for r in results], indent=2))
        return

    for r in results:
        decision = r.decision.mode
        reason = getattr(r.decision, "reason", None)
        if reason is not None:
            decision += f" ({reason.value})"
        console.print(
            f"[bold]{r.dataset_kind.value}[/bold]: {decision}, "
            f"watermark v{r.watermark.version} at {r.watermark.last_run_at.isoformat()}"
        )
        if not r.repo_available:
            console.print("  [yellow]repository unavailable, dataset left unchanged[/yellow]")


def _result_dict(r) -> dict:
    reason = getattr(r.decision, "reason", None)
    return {
        "project_id": r.project_id,
        "dataset_kind": r.dataset_kind.value,
        "mode": r.decision.mode,
        "reason": reason.value if reason is not None else None,
        "repo_available": r.repo_available,
        "watermark": {
            "last_run_at": r.watermark.last_run_at.isoformat(),
            "window_days": r.watermark.window_days,
            "version": r.watermark.version,
        },
        "stats": asdict(r.stats) if r.stats is not None else None,
    }
