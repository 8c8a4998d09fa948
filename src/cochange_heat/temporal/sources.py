"""Interfaces of the collaborators the engine reads from.

The engine only ever talks to these protocols; ``GitHistoryProvider`` is the
production history provider, tests substitute in-memory fakes.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol

from ..logging_config import get_logger
from .models import CommitEvent

logger = get_logger(__name__)


class CommitHistoryProvider(Protocol):
    """Supplies commits and file facts for a repository.

    Any method may raise; the engine treats a failure as an empty result
    for the range it asked about.
    """

    def fetch(self, repo_path: str, since: datetime, until: datetime) -> list[CommitEvent]: ...

    def last_file_touch(
        self, repo_path: str, path: str, since: datetime, until: datetime
    ) -> Optional[datetime]: ...

    def file_sizes(self, repo_path: str) -> dict[str, tuple[Optional[int], Optional[int]]]: ...

    def file_metrics_at(
        self, repo_path: str, revision: str, path: str
    ) -> tuple[Optional[int], Optional[int]]: ...


class RepoPathResolver(Protocol):
    """Maps a project to a working directory, or None when unavailable."""

    def resolve(self, project_id: str) -> Optional[str]: ...


class SnapshotEventSource(Protocol):
    """Non-git change events (path, timestamp) for a time range.

    Sources may treat either bound as exclusive. Callers ask for a range
    widened by a second and apply the exact bounds themselves.
    """

    def events(
        self, project_id: str, since: datetime, until: datetime
    ) -> list[tuple[str, datetime]]: ...


class NoSnapshotEvents:
    def events(
        self, project_id: str, since: datetime, until: datetime
    ) -> list[tuple[str, datetime]]:
        return []


class StaticRepoResolver:
    """Resolver backed by a fixed ``project_id -> path`` mapping."""

    def __init__(self, paths: dict[str, str]):
        self.paths = dict(paths)

    def resolve(self, project_id: str) -> Optional[str]:
        return _existing_dir(project_id, self.paths.get(project_id))


class StoreRepoResolver:
    """Resolver reading the ``projects`` table of an analytics store."""

    def __init__(self, store):
        self.store = store

    def resolve(self, project_id: str) -> Optional[str]:
        return _existing_dir(project_id, self.store.get_repo_path(project_id))


def _existing_dir(project_id: str, path: Optional[str]) -> Optional[str]:
    if not path:
        logger.warning("No repository path registered for project %s", project_id)
        return None
    if not Path(path).is_dir():
        logger.warning("Repository path %s for project %s is not accessible", path, project_id)
        return None
    return path
