"""Read-side queries for displaying the analytics datasets."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from .models import CoChangeGroup, FileHeatmap
from .store import AnalyticsStore

MAX_ROWS = 100

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)

HEATMAP_SORT_FIELDS = ("heat_score", "change_count", "last_changed_at", "size_bytes", "loc")


@dataclass
class CoChangeRow:
    """Per-member view over the groups a path belongs to."""

    member: str
    max_frequency: int
    last_seen_at: Optional[datetime]
    groups: list[CoChangeGroup] = field(default_factory=list)

    @property
    def partners(self) -> list[str]:
        seen: list[str] = []
        for g in self.groups:
            for m in g.members:
                if m != self.member and m not in seen:
                    seen.append(m)
        return seen


def list_heatmap(
    store: AnalyticsStore,
    project_id: str,
    min_score: float = 0.0,
    sort_by: str = "heat_score",
    limit: int = MAX_ROWS,
) -> list[FileHeatmap]:
    """Heatmap rows with ``heat_score >= min_score``, highest ``sort_by`` first."""
    if sort_by not in HEATMAP_SORT_FIELDS:
        raise ValueError(f"sort_by must be one of {', '.join(HEATMAP_SORT_FIELDS)}")

    rows = [r for r in store.list_heatmaps(project_id) if r.heat_score >= min_score]

    def sort_key(row: FileHeatmap):
        value = getattr(row, sort_by)
        # rows without a value go last
        return (value is not None, value if value is not None else 0)

    rows.sort(key=lambda r: r.relative_path)
    rows.sort(key=sort_key, reverse=True)
    return rows[:limit]


def list_co_change_groups(
    store: AnalyticsStore, project_id: str, scope: str = "file", limit: int = MAX_ROWS
) -> list[CoChangeGroup]:
    """Groups ordered by frequency (desc), then most recent, then key."""
    groups = store.list_groups(project_id, scope)
    groups.sort(key=lambda g: g.group_key)
    groups.sort(key=lambda g: (g.frequency, g.last_seen_at or _EPOCH), reverse=True)
    return groups[:limit]


def list_co_change_rows(store: AnalyticsStore, project_id: str, scope: str = "file") -> list[CoChangeRow]:
    """One row per member path, with its groups ordered by frequency."""
    by_member: dict[str, list[CoChangeGroup]] = defaultdict(list)
    for group in store.list_groups(project_id, scope):
        for member in group.members:
            by_member[member].append(group)

    rows = []
    for member, groups in by_member.items():
        groups.sort(key=lambda g: (-g.frequency, g.group_key))
        seen = [g.last_seen_at for g in groups if g.last_seen_at is not None]
        rows.append(
            CoChangeRow(
                member=member,
                max_frequency=max(g.frequency for g in groups),
                last_seen_at=max(seen) if seen else None,
                groups=groups,
            )
        )
    rows.sort(key=lambda r: (-r.max_frequency, r.member))
    return rows
