"""Data models for windowed git analytics."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Scope(str, Enum):
    """Granularity of co-change members."""

    FILE = "file"
    DIRECTORY = "directory"


class DatasetKind(str, Enum):
    """Datasets maintained by the engine, one watermark each."""

    CO_CHANGE = "co_change"
    HEATMAP = "heatmap"


@dataclass(frozen=True)
class CommitEvent:
    hash: str
    timestamp: datetime  # tz-aware UTC
    files: tuple[str, ...] = ()  # changed paths, in git order


@dataclass(frozen=True)
class Window:
    """Closed time range ``[since, until]``."""

    since: datetime
    until: datetime

    def contains(self, ts: datetime) -> bool:
        return self.since <= ts <= self.until


@dataclass(frozen=True)
class PairEntry:
    """One co-change pair contributed by one commit."""

    group_key: str
    members: tuple[str, str]
    commit_hash: str
    committed_at: datetime


@dataclass(frozen=True)
class PathEntry:
    """One heatmap touch of a path."""

    path: str
    timestamp: datetime


@dataclass(frozen=True)
class MatchingCommit:
    hash: str
    timestamp: datetime


@dataclass
class GeneratedGroup:
    """A co-change group produced by a full-rebuild generator."""

    group_key: str
    members: list[str]
    frequency: int
    last_seen_at: datetime
    matching_commits: list[MatchingCommit] = field(default_factory=list)

    @property
    def latest_commit(self) -> MatchingCommit | None:
        if not self.matching_commits:
            return None
        return max(self.matching_commits, key=lambda c: (c.timestamp, c.hash))
