"""Run orchestration: pick a mode, maintain a dataset, advance the watermark."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from ..config import DEFAULT_CONFIG, EngineConfig
from ..logging_config import get_logger
from ..persistence.models import Watermark
from ..persistence.store import AnalyticsStore
from ..temporal.generator import CoChangeGenerator
from ..temporal.models import DatasetKind
from ..temporal.sources import CommitHistoryProvider, RepoPathResolver, SnapshotEventSource
from ..temporal.window import utc
from .cochange import CoChangeMaintainer, CoChangeStats
from .heatmap import HeatmapMaintainer, HeatmapStats
from .history import RunContext
from .mode import Delta, ModeDecision, select_mode

logger = get_logger(__name__)


@dataclass
class RunResult:
    """Outcome of one run for one dataset.

    ``watermark`` is the record the run advanced to; ``run_*`` leaves
    persisting it to the caller, ``compute_*`` persists it itself.
    """

    project_id: str
    dataset_kind: DatasetKind
    decision: ModeDecision
    watermark: Watermark
    repo_available: bool
    stats: Optional[Union[CoChangeStats, HeatmapStats]] = None


class AnalyticsEngine:
    """Maintains co-change groups and file heat scores per project.

    Runs for the same (project, dataset) must be serialized by the caller;
    different projects may run concurrently on separate stores.
    """

    def __init__(
        self,
        store: AnalyticsStore,
        provider: CommitHistoryProvider,
        resolver: RepoPathResolver,
        generator: Optional[CoChangeGenerator] = None,
        snapshot_source: Optional[SnapshotEventSource] = None,
        config: EngineConfig = DEFAULT_CONFIG,
    ):
        self.store = store
        self.resolver = resolver
        self.config = config
        self.co_change = CoChangeMaintainer(store, provider, generator)
        self.heatmap = HeatmapMaintainer(store, provider, snapshot_source)

    # ── persisted runs ───────────────────────────────────────────

    def compute_co_change(
        self,
        project_id: str,
        window_days: Optional[int] = None,
        reference_date: Optional[datetime] = None,
    ) -> RunResult:
        return self._compute(DatasetKind.CO_CHANGE, project_id, window_days, reference_date)

    def compute_heatmap(
        self,
        project_id: str,
        window_days: Optional[int] = None,
        reference_date: Optional[datetime] = None,
    ) -> RunResult:
        return self._compute(DatasetKind.HEATMAP, project_id, window_days, reference_date)

    def compute_all(
        self,
        project_id: str,
        window_days: Optional[int] = None,
        reference_date: Optional[datetime] = None,
    ) -> list[RunResult]:
        reference_date = reference_date or datetime.now(timezone.utc)
        return [
            self.compute_co_change(project_id, window_days, reference_date),
            self.compute_heatmap(project_id, window_days, reference_date),
        ]

    def _compute(
        self,
        kind: DatasetKind,
        project_id: str,
        window_days: Optional[int],
        reference_date: Optional[datetime],
    ) -> RunResult:
        watermark = self.store.get_watermark(project_id, kind.value)
        run = self.run_co_change if kind == DatasetKind.CO_CHANGE else self.run_heatmap
        result = run(project_id, watermark, window_days, reference_date)
        self.store.put_watermark(result.watermark)
        return result

    # ── runs against an explicit watermark ───────────────────────

    def run_co_change(
        self,
        project_id: str,
        watermark: Optional[Watermark],
        window_days: Optional[int] = None,
        reference_date: Optional[datetime] = None,
    ) -> RunResult:
        return self._run(DatasetKind.CO_CHANGE, project_id, watermark, window_days, reference_date)

    def run_heatmap(
        self,
        project_id: str,
        watermark: Optional[Watermark],
        window_days: Optional[int] = None,
        reference_date: Optional[datetime] = None,
    ) -> RunResult:
        return self._run(DatasetKind.HEATMAP, project_id, watermark, window_days, reference_date)

    def _run(
        self,
        kind: DatasetKind,
        project_id: str,
        watermark: Optional[Watermark],
        window_days: Optional[int],
        reference_date: Optional[datetime],
    ) -> RunResult:
        window_days = window_days if window_days is not None else self.config.window_days
        if window_days < 1:
            raise ValueError("window_days must be at least 1")
        reference_date = utc(reference_date) if reference_date else datetime.now(timezone.utc)

        decision = select_mode(watermark, window_days, reference_date)
        repo_path = self.resolver.resolve(project_id)
        ctx = RunContext(project_id, window_days, reference_date, repo_path)

        logger.info(
            "%s run for %s at %s: %s%s",
            kind.value,
            project_id,
            reference_date.isoformat(),
            decision.mode,
            f" ({decision.reason.value})" if not isinstance(decision, Delta) else "",
        )

        stats = None
        if repo_path is None:
            logger.warning(
                "Repository for project %s unavailable, skipping %s update", project_id, kind.value
            )
        else:
            maintainer = self.co_change if kind == DatasetKind.CO_CHANGE else self.heatmap
            if isinstance(decision, Delta):
                stats = maintainer.apply_delta(ctx, decision.previous_reference_date)
            else:
                stats = maintainer.full_rebuild(ctx)

        if watermark is None:
            new_watermark = Watermark(project_id, kind.value, reference_date, window_days, version=1)
        else:
            new_watermark = watermark.advanced(reference_date, window_days)

        return RunResult(
            project_id=project_id,
            dataset_kind=kind,
            decision=decision,
            watermark=new_watermark,
            repo_available=repo_path is not None,
            stats=stats,
        )
