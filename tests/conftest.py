"""Shared test fixtures for cochange-heat tests."""

import os
import shutil
import subprocess
from datetime import datetime
from typing import Optional

import pytest

from cochange_heat.engine import AnalyticsEngine
from cochange_heat.exceptions import ErrorCode, TemporalError
from cochange_heat.persistence import AnalyticsDB, AnalyticsStore
from cochange_heat.temporal.models import CommitEvent
from cochange_heat.temporal.sources import StaticRepoResolver
from cochange_heat.temporal.window import utc


def pytest_configure(config):
    """Register the git marker."""
    config.addinivalue_line("markers", "git: test needs a git executable on PATH")


def pytest_collection_modifyitems(config, items):
    """Skip git tests when git is not installed."""
    if shutil.which("git") is not None:
        return
    skip_git = pytest.mark.skip(reason="git executable not found")
    for item in items:
        if "git" in item.keywords:
            item.add_marker(skip_git)


class FakeHistoryProvider:
    """In-memory commit history.

    ``fetch`` returns every commit inside the closed range, in insertion
    order, like git's date filter would. Set ``failing`` to make every call
    raise.
    """

    def __init__(self):
        self.commits: list[CommitEvent] = []
        self.sizes: dict[str, tuple[Optional[int], Optional[int]]] = {}
        self.failing = False
        self.fetch_calls: list[tuple[datetime, datetime]] = []
        self.touch_calls: list[str] = []

    def add(self, commit_hash: str, when: datetime, *files: str) -> CommitEvent:
        commit = CommitEvent(hash=commit_hash, timestamp=utc(when), files=tuple(files))
        self.commits.append(commit)
        return commit

    def fetch(self, repo_path, since, until):
        self.fetch_calls.append((since, until))
        self._maybe_fail()
        return [c for c in self.commits if since <= c.timestamp <= until]

    def last_file_touch(self, repo_path, path, since, until):
        self.touch_calls.append(path)
        self._maybe_fail()
        times = [c.timestamp for c in self.commits if path in c.files and since <= c.timestamp <= until]
        return max(times) if times else None

    def file_sizes(self, repo_path):
        self._maybe_fail()
        return dict(self.sizes)

    def file_metrics_at(self, repo_path, revision, path):
        self._maybe_fail()
        return self.sizes.get(path, (None, None))

    def _maybe_fail(self):
        if self.failing:
            raise TemporalError(message="history unavailable", code=ErrorCode.CH401)


@pytest.fixture
def provider():
    return FakeHistoryProvider()


@pytest.fixture
def db():
    with AnalyticsDB(":memory:") as database:
        yield database


@pytest.fixture
def store(db):
    return AnalyticsStore(db.conn)


@pytest.fixture
def repo_dir(tmp_path):
    path = tmp_path / "repo"
    path.mkdir()
    return str(path)


@pytest.fixture
def engine(store, provider, repo_dir):
    """Engine over the fake provider with project ``p1`` resolvable."""
    return AnalyticsEngine(store, provider, StaticRepoResolver({"p1": repo_dir}))


class GitRepoBuilder:
    """Throwaway git repository with commits at chosen times."""

    def __init__(self, path):
        self.path = path
        path.mkdir()
        self._git("init", "-q", "-b", "main")

    def commit(self, when: datetime, files: dict[str, str], message: str = "change") -> None:
        for name, content in files.items():
            target = self.path / name
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        self._git("add", "-A")
        stamp = f"{int(when.timestamp())} +0000"
        env = {
            "PATH": os.environ.get("PATH", ""),
            "HOME": str(self.path),
            "GIT_AUTHOR_NAME": "Test",
            "GIT_AUTHOR_EMAIL": "test@example.com",
            "GIT_COMMITTER_NAME": "Test",
            "GIT_COMMITTER_EMAIL": "test@example.com",
            "GIT_AUTHOR_DATE": stamp,
            "GIT_COMMITTER_DATE": stamp,
        }
        self._git("commit", "-q", "-m", message, env=env)

    def _git(self, *args, env=None):
        subprocess.run(["git", "-C", str(self.path), *args], check=True, capture_output=True, env=env)


@pytest.fixture
def git_repo_builder(tmp_path):
    return GitRepoBuilder(tmp_path / "gitrepo")
