"""File heatmap: full rebuild and incremental maintenance.

A row exists for every path touched at least once inside the window.
Delta runs adjust ``change_count`` by the touches that entered and left
the window, then re-score every row at the new reference date.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from ..logging_config import get_logger
from ..persistence.models import FileHeatmap
from ..persistence.store import AnalyticsStore
from ..temporal.keys import heatmap_entries_for, is_binary_path
from ..temporal.models import PathEntry
from ..temporal.sources import CommitHistoryProvider, NoSnapshotEvents, SnapshotEventSource
from ..temporal.window import expired_range, utc
from .history import PROVIDER_ERRORS, RunContext, fetch_delta, fetch_window, snapshot_events
from .scoring import calculate_heat_score

logger = get_logger(__name__)


@dataclass
class PathAggregate:
    count: int
    max_timestamp: datetime


@dataclass
class HeatmapStats:
    paths_upserted: int = 0
    paths_deleted: int = 0
    paths_rescored: int = 0
    last_changed_recomputed: int = 0
    events_added: int = 0
    events_expired: int = 0


def aggregate(entries: Iterable[PathEntry]) -> dict[str, PathAggregate]:
    """Touch count and latest touch per path."""
    result: dict[str, PathAggregate] = {}
    for e in entries:
        agg = result.get(e.path)
        if agg is None:
            result[e.path] = PathAggregate(count=1, max_timestamp=e.timestamp)
        else:
            agg.count += 1
            if e.timestamp > agg.max_timestamp:
                agg.max_timestamp = e.timestamp
    return result


class HeatmapMaintainer:
    """Keeps ``file_heatmaps`` in step with the window."""

    def __init__(
        self,
        store: AnalyticsStore,
        provider: CommitHistoryProvider,
        snapshot_source: Optional[SnapshotEventSource] = None,
    ):
        self.store = store
        self.provider = provider
        self.snapshot_source = snapshot_source or NoSnapshotEvents()

    # ── full rebuild ─────────────────────────────────────────────

    def full_rebuild(self, ctx: RunContext) -> HeatmapStats:
        window = ctx.window
        commits = fetch_window(self.provider, ctx)
        entries = heatmap_entries_for(commits)
        entries.extend(
            self._snapshot_entries(ctx, window.since, window.until, window.contains)
        )
        by_path = aggregate(entries)
        sizes = self._file_sizes(ctx)

        stats = HeatmapStats(events_added=len(entries))
        for path, agg in sorted(by_path.items()):
            size_bytes, loc = sizes.get(path, (None, None))
            self.store.upsert_heatmap(
                FileHeatmap(
                    project_id=ctx.project_id,
                    relative_path=path,
                    change_count=agg.count,
                    heat_score=calculate_heat_score(agg.count, agg.max_timestamp, ctx.reference_date),
                    last_changed_at=agg.max_timestamp,
                    size_bytes=size_bytes,
                    loc=loc,
                )
            )
            stats.paths_upserted += 1

        for row in self.store.list_heatmaps(ctx.project_id):
            if row.relative_path not in by_path:
                self.store.delete_heatmap(ctx.project_id, row.relative_path)
                stats.paths_deleted += 1

        logger.info(
            "Heatmap full rebuild for %s: %d paths from %d commits, %d stale rows removed",
            ctx.project_id,
            len(by_path),
            len(commits),
            stats.paths_deleted,
        )
        return stats

    # ── delta ────────────────────────────────────────────────────

    def apply_delta(self, ctx: RunContext, previous_reference_date: datetime) -> HeatmapStats:
        prev_ref = utc(previous_reference_date)
        ref = utc(ctx.reference_date)
        prev_since, since = expired_range(prev_ref, ref, ctx.window_days)

        delta = fetch_delta(self.provider, ctx, prev_ref)
        added_entries = heatmap_entries_for(delta.added)
        added_entries.extend(
            self._snapshot_entries(ctx, prev_ref, ref, lambda ts: prev_ref < ts <= ref)
        )
        expired_entries = heatmap_entries_for(delta.expired)
        expired_entries.extend(
            self._snapshot_entries(ctx, prev_since, since, lambda ts: prev_since <= ts < since)
        )

        added = aggregate(added_entries)
        expired = aggregate(expired_entries)
        affected = set(added) | set(expired)
        existing_rows = self.store.get_heatmaps(ctx.project_id, affected)

        stats = HeatmapStats(events_added=len(added_entries), events_expired=len(expired_entries))
        for path in sorted(affected):
            self._apply_path(ctx, path, existing_rows.get(path), added.get(path), expired.get(path), stats)

        self._rescore_untouched(ctx, affected, stats)

        logger.info(
            "Heatmap delta for %s: %d paths affected (%d upserted, %d deleted), %d rescored",
            ctx.project_id,
            len(affected),
            stats.paths_upserted,
            stats.paths_deleted,
            stats.paths_rescored,
        )
        return stats

    def _apply_path(
        self,
        ctx: RunContext,
        path: str,
        existing: Optional[FileHeatmap],
        added: Optional[PathAggregate],
        expired: Optional[PathAggregate],
        stats: HeatmapStats,
    ) -> None:
        old_count = existing.change_count if existing else 0
        new_count = old_count + (added.count if added else 0) - (expired.count if expired else 0)

        if new_count <= 0:
            if existing is not None:
                self.store.delete_heatmap(ctx.project_id, path)
                stats.paths_deleted += 1
            return

        last_changed = self._resolve_last_changed(ctx, path, existing, added, expired, stats)
        if last_changed is None:
            logger.warning("No last change time for %s in project %s, dropping row", path, ctx.project_id)
            if existing is not None:
                self.store.delete_heatmap(ctx.project_id, path)
                stats.paths_deleted += 1
            return

        size_bytes, loc = self._current_metrics(ctx, path, existing)
        self.store.upsert_heatmap(
            FileHeatmap(
                project_id=ctx.project_id,
                relative_path=path,
                change_count=new_count,
                heat_score=calculate_heat_score(new_count, last_changed, ctx.reference_date),
                last_changed_at=last_changed,
                size_bytes=size_bytes,
                loc=loc,
            )
        )
        stats.paths_upserted += 1

    def _resolve_last_changed(
        self,
        ctx: RunContext,
        path: str,
        existing: Optional[FileHeatmap],
        added: Optional[PathAggregate],
        expired: Optional[PathAggregate],
        stats: HeatmapStats,
    ) -> Optional[datetime]:
        """Latest touch still inside the window.

        When the expired touches reach the stored ``last_changed_at`` the
        true latest touch may be a commit that neither entered nor left in
        this delta, so it is looked up again.
        """
        old_max = existing.last_changed_at if existing else None
        candidates = [ts for ts in (old_max, added.max_timestamp if added else None) if ts is not None]
        new_max = max(candidates) if candidates else None

        needs_recompute = (
            expired is not None and old_max is not None and expired.max_timestamp >= old_max
        )
        if not needs_recompute:
            return new_max

        stats.last_changed_recomputed += 1
        if ctx.repo_path is None:
            return new_max
        try:
            touched = self.provider.last_file_touch(ctx.repo_path, path, ctx.since, ctx.reference_date)
        except PROVIDER_ERRORS as e:
            logger.warning("Last-touch lookup for %s failed, using candidate time: %s", path, e)
            return new_max
        if touched is None:
            return new_max
        return utc(touched)

    def _rescore_untouched(self, ctx: RunContext, affected: set[str], stats: HeatmapStats) -> None:
        for row in self.store.list_heatmaps(ctx.project_id):
            if row.relative_path in affected:
                continue
            score = calculate_heat_score(row.change_count, row.last_changed_at, ctx.reference_date)
            if score != row.heat_score:
                self.store.update_heat_score(ctx.project_id, row.relative_path, score)
                stats.paths_rescored += 1

    # ── helpers ──────────────────────────────────────────────────

    def _snapshot_entries(self, ctx: RunContext, since: datetime, until: datetime, keep) -> list[PathEntry]:
        events = snapshot_events(self.snapshot_source, ctx.project_id, since, until)
        return [
            PathEntry(path=path, timestamp=ts)
            for path, ts in events
            if path and not is_binary_path(path) and keep(ts)
        ]

    def _file_sizes(self, ctx: RunContext) -> dict[str, tuple[Optional[int], Optional[int]]]:
        if ctx.repo_path is None:
            return {}
        try:
            return self.provider.file_sizes(ctx.repo_path)
        except PROVIDER_ERRORS as e:
            logger.warning("File sizes unavailable for project %s: %s", ctx.project_id, e)
            return {}

    def _current_metrics(
        self, ctx: RunContext, path: str, existing: Optional[FileHeatmap]
    ) -> tuple[Optional[int], Optional[int]]:
        fallback = (existing.size_bytes, existing.loc) if existing else (None, None)
        if ctx.repo_path is None:
            return fallback
        try:
            return self.provider.file_metrics_at(ctx.repo_path, "HEAD", path)
        except PROVIDER_ERRORS as e:
            logger.debug("No metrics for %s: %s", path, e)
            return fallback
