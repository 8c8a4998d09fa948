"""Engine - mode selection and incremental maintenance of the datasets."""

from .cochange import CoChangeMaintainer
from .heatmap import HeatmapMaintainer
from .mode import Delta, Full, FullReason, ModeDecision, select_mode
from .runner import AnalyticsEngine, RunResult
from .scoring import calculate_heat_score

__all__ = [
    "AnalyticsEngine",
    "RunResult",
    "CoChangeMaintainer",
    "HeatmapMaintainer",
    "Full",
    "Delta",
    "FullReason",
    "ModeDecision",
    "select_mode",
    "calculate_heat_score",
]
