"""Shared CLI helpers."""

from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

import typer
from rich.console import Console

from ..config import EngineConfig, load_config
from ..engine import AnalyticsEngine
from ..exceptions import ConfigurationError
from ..logging_config import setup_logging
from ..persistence import AnalyticsDB, AnalyticsStore
from ..temporal import GitHistoryProvider, StoreRepoResolver
from ..temporal.window import utc

console = Console()


def resolve_config(ctx: typer.Context, **overrides) -> EngineConfig:
    """Build config from the global options plus command overrides, and set up logging."""
    obj = ctx.obj or {}
    db = obj.get("db")
    log_file = obj.get("log_file")
    try:
        config = load_config(
            config_file=obj.get("config"),
            db_path=str(db) if db is not None else None,
            verbose=obj.get("verbose", False),
            quiet=obj.get("quiet", False),
            log_file=str(log_file) if log_file is not None else None,
            **overrides,
        )
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1)

    setup_logging(config.verbosity, config.log_file)
    return config


@contextmanager
def open_store(config: EngineConfig) -> Iterator[AnalyticsStore]:
    with AnalyticsDB(config.db_path) as db:
        yield AnalyticsStore(db.conn, batch_size=config.provenance_batch_size)


def build_engine(store: AnalyticsStore, config: EngineConfig) -> AnalyticsEngine:
    return AnalyticsEngine(
        store,
        GitHistoryProvider.from_config(config),
        StoreRepoResolver(store),
        config=config,
    )


def parse_reference_date(value: Optional[str]) -> Optional[datetime]:
    """ISO-8601 date or datetime; naive values are taken as UTC."""
    if value is None:
        return None
    try:
        return utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        raise typer.BadParameter(f"not an ISO-8601 date: {value!r}", param_hint="--reference-date")


def format_time(ts: Optional[datetime]) -> str:
    if ts is None:
        return "-"
    return utc(ts).strftime("%Y-%m-%d %H:%M:%S")


def format_optional(value) -> str:
    return "-" if value is None else str(value)
