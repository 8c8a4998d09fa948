"""Co-change groups: full rebuild and incremental maintenance.

Provenance rows (one per pair and supporting commit) are the ground truth
between runs. A group exists exactly when its key has at least two
provenance rows; delta runs only add and remove provenance and then
recount the keys they touched.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from ..exceptions import PersistenceError
from ..logging_config import get_logger
from ..persistence.models import CoChangeGroup, CoChangeGroupCommit, CoChangeGroupMemberStat
from ..persistence.store import AnalyticsStore
from ..temporal.generator import MIN_GROUP_FREQUENCY, CoChangeGenerator, PairGroupGenerator
from ..temporal.keys import (
    MAX_MEMBERS_PER_COMMIT,
    exceeds_guardrail,
    normalize_members,
    pair_entries_for,
    split_group_key,
)
from ..temporal.models import CommitEvent, GeneratedGroup, PairEntry, Scope
from ..temporal.sources import CommitHistoryProvider
from .history import PROVIDER_ERRORS, RunContext, fetch_delta, fetch_window

logger = get_logger(__name__)


@dataclass
class ScopeStats:
    groups_upserted: int = 0
    groups_deleted: int = 0
    provenance_inserted: int = 0
    provenance_deleted: int = 0
    write_failures: int = 0


@dataclass
class CoChangeStats:
    commits_added: int = 0
    commits_expired: int = 0
    commits_in_window: int = 0
    scopes: dict[str, ScopeStats] = field(default_factory=dict)

    def for_scope(self, scope: Scope) -> ScopeStats:
        return self.scopes.setdefault(scope.value, ScopeStats())


class CoChangeMaintainer:
    """Keeps ``co_change_groups`` and their provenance in step with the window."""

    def __init__(
        self,
        store: AnalyticsStore,
        provider: CommitHistoryProvider,
        generator: Optional[CoChangeGenerator] = None,
    ):
        self.store = store
        self.provider = provider
        self.generator = generator or PairGroupGenerator()

    # ── full rebuild ─────────────────────────────────────────────

    def full_rebuild(self, ctx: RunContext) -> CoChangeStats:
        commits = fetch_window(self.provider, ctx)
        stats = CoChangeStats(commits_in_window=len(commits))

        for scope in Scope:
            eligible = self._without_mega_commits(commits, scope)
            groups = self.generator.generate(eligible, scope)
            self._rebuild_scope(ctx, scope, eligible, groups, stats.for_scope(scope))

        logger.info(
            "Co-change full rebuild for %s: %d commits in window, %s",
            ctx.project_id,
            len(commits),
            _summary(stats),
        )
        return stats

    def _rebuild_scope(
        self,
        ctx: RunContext,
        scope: Scope,
        commits: list[CommitEvent],
        groups: list[GeneratedGroup],
        stats: ScopeStats,
    ) -> None:
        project_id = ctx.project_id

        for g in groups:
            self.store.upsert_group(
                CoChangeGroup(
                    project_id=project_id,
                    scope=scope.value,
                    group_key=g.group_key,
                    members=list(g.members),
                    frequency=g.frequency,
                    last_seen_at=g.last_seen_at,
                )
            )
        stats.groups_upserted += len(groups)

        current_keys = {g.group_key for g in groups}
        for existing in self.store.list_groups(project_id, scope.value):
            if existing.group_key not in current_keys:
                self.store.delete_group(project_id, scope.value, existing.group_key)
                stats.groups_deleted += 1

        group_rows: list[CoChangeGroupCommit] = []
        for g in groups:
            rows = [
                CoChangeGroupCommit(project_id, scope.value, g.group_key, c.hash, c.timestamp)
                for c in g.matching_commits
            ]
            group_rows.extend(rows)
            stats.provenance_inserted += self._insert_for_group(g.group_key, rows, stats)

        for g in groups:
            self._write_member_stats(ctx, scope, g, stats)

        # Seed provenance for every pair, including pairs below the group
        # threshold, so later deltas count against a complete baseline.
        seed_rows = _provenance_rows(project_id, scope, pair_entries_for(commits, scope))
        for group_key, rows in _by_key(seed_rows).items():
            stats.provenance_inserted += self._insert_for_group(group_key, rows, stats)

        keep = {(r.group_key, r.commit_hash) for r in seed_rows}
        keep.update((r.group_key, r.commit_hash) for r in group_rows)
        stale = self.store.group_commit_keys(project_id, scope.value) - keep
        if stale:
            stats.provenance_deleted += self.store.delete_group_commits(project_id, scope.value, stale)

    def _write_member_stats(
        self, ctx: RunContext, scope: Scope, group: GeneratedGroup, stats: ScopeStats
    ) -> None:
        latest = group.latest_commit
        if ctx.repo_path is None or latest is None:
            return

        rows = []
        for member in group.members:
            try:
                size_bytes, loc = self.provider.file_metrics_at(ctx.repo_path, latest.hash, member)
            except PROVIDER_ERRORS as e:
                logger.debug("No metrics for %s at %s: %s", member, latest.hash[:12], e)
                size_bytes, loc = None, None
            rows.append(
                CoChangeGroupMemberStat(
                    project_id=ctx.project_id,
                    scope=scope.value,
                    group_key=group.group_key,
                    member_path=member,
                    size_bytes=size_bytes,
                    loc=loc,
                    measured_commit_hash=latest.hash,
                    measured_at=latest.timestamp,
                )
            )

        try:
            self.store.upsert_member_stats(rows)
            self.store.delete_member_stats_except(
                ctx.project_id, scope.value, group.group_key, group.members
            )
        except PersistenceError as e:
            stats.write_failures += 1
            logger.warning("Skipping member stats for group %s: %s", group.group_key, e)

    # ── delta ────────────────────────────────────────────────────

    def apply_delta(self, ctx: RunContext, previous_reference_date: datetime) -> CoChangeStats:
        delta = fetch_delta(self.provider, ctx, previous_reference_date)
        stats = CoChangeStats(commits_added=len(delta.added), commits_expired=len(delta.expired))

        for scope in Scope:
            self._delta_scope(
                ctx,
                scope,
                pair_entries_for(delta.added, scope),
                pair_entries_for(delta.expired, scope),
                stats.for_scope(scope),
            )

        logger.info(
            "Co-change delta for %s: +%d/-%d commits, %s",
            ctx.project_id,
            len(delta.added),
            len(delta.expired),
            _summary(stats),
        )
        return stats

    def _delta_scope(
        self,
        ctx: RunContext,
        scope: Scope,
        added: list[PairEntry],
        expired: list[PairEntry],
        stats: ScopeStats,
    ) -> None:
        project_id = ctx.project_id

        added_rows = _provenance_rows(project_id, scope, added)
        for group_key, rows in _by_key(added_rows).items():
            stats.provenance_inserted += self._insert_for_group(group_key, rows, stats)

        expired_keys = {(e.group_key, e.commit_hash) for e in expired}
        if expired_keys:
            stats.provenance_deleted += self.store.delete_group_commits(
                project_id, scope.value, expired_keys
            )

        touched = sorted({e.group_key for e in added} | {e.group_key for e in expired})
        for group_key in touched:
            outcome = self._recount(project_id, scope, group_key)
            if outcome == "upserted":
                stats.groups_upserted += 1
            elif outcome == "deleted":
                stats.groups_deleted += 1

    def _recount(self, project_id: str, scope: Scope, group_key: str) -> Optional[str]:
        """Re-derive one group from its provenance.

        Returns "upserted", "deleted", or None when there was nothing to delete.
        """
        count, last_seen = self.store.group_commit_stats(project_id, scope.value, group_key)
        if count >= MIN_GROUP_FREQUENCY:
            self.store.upsert_group(
                CoChangeGroup(
                    project_id=project_id,
                    scope=scope.value,
                    group_key=group_key,
                    members=split_group_key(group_key),
                    frequency=count,
                    last_seen_at=last_seen,
                )
            )
            return "upserted"

        if self.store.get_group(project_id, scope.value, group_key) is None:
            return None
        self.store.delete_group(project_id, scope.value, group_key)
        return "deleted"

    # ── helpers ──────────────────────────────────────────────────

    def _insert_for_group(
        self, group_key: str, rows: list[CoChangeGroupCommit], stats: ScopeStats
    ) -> int:
        try:
            return self.store.insert_group_commits(rows)
        except PersistenceError as e:
            stats.write_failures += 1
            logger.warning("Skipping provenance for group %s: %s", group_key, e)
            return 0

    @staticmethod
    def _without_mega_commits(commits: list[CommitEvent], scope: Scope) -> list[CommitEvent]:
        eligible = []
        for commit in commits:
            members = normalize_members(commit.files, scope)
            if exceeds_guardrail(members):
                logger.warning(
                    "Skipping commit %s for %s co-change: %d members exceeds limit of %d",
                    commit.hash[:12],
                    scope.value,
                    len(members),
                    MAX_MEMBERS_PER_COMMIT,
                )
                continue
            eligible.append(commit)
        return eligible


def _provenance_rows(
    project_id: str, scope: Scope, entries: Iterable[PairEntry]
) -> list[CoChangeGroupCommit]:
    return [
        CoChangeGroupCommit(project_id, scope.value, e.group_key, e.commit_hash, e.committed_at)
        for e in entries
    ]


def _by_key(rows: list[CoChangeGroupCommit]) -> dict[str, list[CoChangeGroupCommit]]:
    grouped: dict[str, list[CoChangeGroupCommit]] = defaultdict(list)
    for row in rows:
        grouped[row.group_key].append(row)
    return grouped


def _summary(stats: CoChangeStats) -> str:
    parts = []
    for scope, s in sorted(stats.scopes.items()):
        parts.append(
            f"{scope}: {s.groups_upserted} upserted, {s.groups_deleted} deleted, "
            f"+{s.provenance_inserted}/-{s.provenance_deleted} provenance"
        )
    return "; ".join(parts)
