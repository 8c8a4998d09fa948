"""Temporal inputs - commit events, windows, keys and git access."""

from .generator import CoChangeGenerator, PairGroupGenerator
from .git_extractor import GitHistoryProvider
from .keys import MAX_MEMBERS_PER_COMMIT, normalize_members, pair_entries
from .models import CommitEvent, DatasetKind, GeneratedGroup, Scope, Window
from .sources import (
    CommitHistoryProvider,
    NoSnapshotEvents,
    RepoPathResolver,
    SnapshotEventSource,
    StaticRepoResolver,
    StoreRepoResolver,
)
from .window import window_for

__all__ = [
    "CommitEvent",
    "DatasetKind",
    "GeneratedGroup",
    "Scope",
    "Window",
    "CoChangeGenerator",
    "PairGroupGenerator",
    "GitHistoryProvider",
    "CommitHistoryProvider",
    "RepoPathResolver",
    "SnapshotEventSource",
    "NoSnapshotEvents",
    "StaticRepoResolver",
    "StoreRepoResolver",
    "MAX_MEMBERS_PER_COMMIT",
    "normalize_members",
    "pair_entries",
    "window_for",
]
