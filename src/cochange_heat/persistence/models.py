"""Row types persisted by the engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class Watermark:
    """Reference time and window width of the last completed run.

    ``version`` increases by one every time the record is replaced.
    """

    project_id: str
    dataset_kind: str  # "co_change" | "heatmap"
    last_run_at: datetime
    window_days: int
    version: int = 0

    def advanced(self, last_run_at: datetime, window_days: int) -> "Watermark":
        return Watermark(
            project_id=self.project_id,
            dataset_kind=self.dataset_kind,
            last_run_at=last_run_at,
            window_days=window_days,
            version=self.version + 1,
        )


@dataclass
class CoChangeGroup:
    project_id: str
    scope: str  # "file" | "directory"
    group_key: str
    members: list[str] = field(default_factory=list)
    frequency: int = 0
    last_seen_at: Optional[datetime] = None


@dataclass(frozen=True)
class CoChangeGroupCommit:
    project_id: str
    scope: str
    group_key: str
    commit_hash: str
    committed_at: datetime


@dataclass
class CoChangeGroupMemberStat:
    project_id: str
    scope: str
    group_key: str
    member_path: str
    size_bytes: Optional[int]
    loc: Optional[int]
    measured_commit_hash: str
    measured_at: datetime


@dataclass
class FileHeatmap:
    project_id: str
    relative_path: str
    change_count: int
    heat_score: float
    last_changed_at: datetime
    size_bytes: Optional[int] = None
    loc: Optional[int] = None
