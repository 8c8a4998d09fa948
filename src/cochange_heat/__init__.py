"""
cochange-heat - incremental windowed git analytics.

Maintains two datasets over a rolling window of a project's git history:
co-change groups (paths that keep changing in the same commit) and file
heat scores (frequency and recency of change per path). Each run either
rebuilds a dataset from scratch or patches it with the commits that
entered and left the window since the previous run.
"""

__version__ = "0.1.0"

from .engine import AnalyticsEngine, Delta, Full, RunResult, select_mode
from .engine.scoring import calculate_heat_score
from .temporal.models import CommitEvent, Window

__all__ = [
    "AnalyticsEngine",  # Main entry point
    "RunResult",
    "Full",
    "Delta",
    "select_mode",
    "calculate_heat_score",
    "CommitEvent",
    "Window",
]
