"""Read commit history and file metrics from git via subprocess."""

from __future__ import annotations

import re
import subprocess
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from ..exceptions import ErrorCode, TemporalError
from ..logging_config import get_logger
from .keys import is_binary_path
from .models import CommitEvent
from .window import from_unix, utc

logger = get_logger(__name__)

# Files above this size get no LOC count
_MAX_LOC_BYTES = 1024 * 1024

# Paths per `git check-ignore` invocation
_CHECK_IGNORE_BATCH = 500

_COMMIT_MARKER = "COMMIT:"

# Format: <mode> <type> <hash> <size>\t<path>
_LS_TREE_RE = re.compile(r"^\S+\s+(\S+)\s+\S+\s+(\d+)\t(.+)$")


def parse_log_output(raw: str) -> list[CommitEvent]:
    """Parse ``git log --name-only --format=COMMIT:%H:%ct`` output.

    Blocks with an unparseable header are dropped. Merge commits (no files)
    come through with an empty file list.
    """
    commits = []
    for block in raw.split(_COMMIT_MARKER):
        lines = [line.strip() for line in block.split("\n")]
        lines = [line for line in lines if line]
        if not lines:
            continue

        header, file_lines = lines[0], lines[1:]
        parts = header.split(":", 1)
        if len(parts) != 2:
            continue
        commit_hash, unix_str = parts
        try:
            timestamp = from_unix(int(unix_str))
        except ValueError:
            logger.debug("Skipping commit block with bad timestamp: %r", header)
            continue

        commits.append(CommitEvent(hash=commit_hash, timestamp=timestamp, files=tuple(file_lines)))
    return commits


def count_loc(content: str) -> int:
    """Number of non-blank lines."""
    return sum(1 for line in content.split("\n") if line.strip())


class GitHistoryProvider:
    """Commit history, last-touch lookups and file metrics for a repository.

    Every git failure surfaces as :class:`TemporalError`; callers decide
    whether that means "empty result" or something worse.
    """

    def __init__(
        self,
        branch: Optional[str] = None,
        timeout_seconds: int = 30,
        filter_ignored: bool = False,
        ignore_file_name: str = ".cochangeignore",
    ):
        self.branch = branch
        self.timeout_seconds = timeout_seconds
        self.filter_ignored = filter_ignored
        self.ignore_file_name = ignore_file_name

    @classmethod
    def from_config(cls, config) -> "GitHistoryProvider":
        return cls(
            branch=config.git_branch,
            timeout_seconds=config.git_timeout_seconds,
            filter_ignored=config.filter_ignored,
            ignore_file_name=config.ignore_file_name,
        )

    # ── history ──────────────────────────────────────────────────

    def fetch(self, repo_path: str, since: datetime, until: datetime) -> list[CommitEvent]:
        """Commits on the branch with committer time in ``[since, until]``.

        git's date filter is widened by a second on each side; exact
        boundary handling is left to the caller.
        """
        branch = self.resolve_branch(repo_path)
        args = [
            "log",
            "--name-only",
            f"--format={_COMMIT_MARKER}%H:%ct",
            f"--since={_git_date(utc(since) - timedelta(seconds=1))}",
            f"--until={_git_date(utc(until) + timedelta(seconds=1))}",
            branch,
            "--no-merges",
        ]
        output = self._run(repo_path, args, ErrorCode.CH401)
        commits = parse_log_output(output)

        if self.filter_ignored:
            commits = self._drop_ignored(repo_path, commits)

        logger.debug(
            "Read %d commits from %s between %s and %s", len(commits), repo_path, since, until
        )
        return commits

    def last_file_touch(
        self, repo_path: str, path: str, since: datetime, until: datetime
    ) -> Optional[datetime]:
        """Most recent commit time touching ``path`` inside ``[since, until]``, if any."""
        branch = self.resolve_branch(repo_path)
        args = [
            "log",
            "-n",
            "1",
            "--format=%ct",
            f"--since={_git_date(utc(since))}",
            f"--until={_git_date(utc(until))}",
            branch,
            "--",
            path,
        ]
        output = self._run(repo_path, args, ErrorCode.CH401).strip()
        if not output:
            return None
        try:
            return from_unix(int(output.split()[0]))
        except ValueError:
            return None

    def resolve_branch(self, repo_path: str) -> str:
        """Configured branch, else current, else origin/HEAD, else main/master."""
        if self.branch:
            return self.branch

        current = self._try(repo_path, ["branch", "--show-current"])
        if current:
            return current

        origin_head = self._try(repo_path, ["symbolic-ref", "refs/remotes/origin/HEAD"])
        if origin_head:
            return origin_head.replace("refs/remotes/origin/", "")

        for candidate in ("main", "master"):
            if self._try(repo_path, ["rev-parse", "--verify", candidate]) is not None:
                return candidate

        raise TemporalError(
            message=f"No default branch found in {repo_path}",
            code=ErrorCode.CH403,
            context={"repo_path": repo_path},
            recovery_hint="Set git_branch in cochange-heat.toml",
        )

    # ── file metrics ─────────────────────────────────────────────

    def file_sizes(self, repo_path: str) -> dict[str, tuple[Optional[int], Optional[int]]]:
        """``path -> (size_bytes, loc)`` for every blob at HEAD."""
        try:
            output = self._run(repo_path, ["ls-tree", "-r", "-l", "HEAD"], ErrorCode.CH401)
        except TemporalError as e:
            logger.warning("Could not list files at HEAD: %s", e)
            return {}

        result: dict[str, tuple[Optional[int], Optional[int]]] = {}
        for line in output.split("\n"):
            match = _LS_TREE_RE.match(line)
            if not match or match.group(1) != "blob":
                continue
            size = int(match.group(2))
            path = match.group(3)
            loc = None
            if not is_binary_path(path) and size <= _MAX_LOC_BYTES:
                loc = self._loc_at(repo_path, "HEAD", path)
            result[path] = (size, loc)
        return result

    def file_metrics_at(
        self, repo_path: str, revision: str, path: str
    ) -> tuple[Optional[int], Optional[int]]:
        """``(size_bytes, loc)`` of ``path`` at ``revision``; ``(None, None)`` if not a blob."""
        raw = self._show(repo_path, revision, path)
        if raw is None:
            return None, None
        return len(raw), count_loc(raw.decode("utf-8", errors="replace"))

    def _loc_at(self, repo_path: str, revision: str, path: str) -> Optional[int]:
        raw = self._show(repo_path, revision, path)
        return count_loc(raw.decode("utf-8", errors="replace")) if raw is not None else None

    def _show(self, repo_path: str, revision: str, path: str) -> Optional[bytes]:
        if self._try(repo_path, ["cat-file", "-t", f"{revision}:{path}"]) != "blob":
            return None
        try:
            result = subprocess.run(
                _git_command(repo_path, ["cat-file", "-p", f"{revision}:{path}"]),
                capture_output=True,
                timeout=self.timeout_seconds,
            )
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            logger.debug("git cat-file failed for %s:%s: %s", revision, path, e)
            return None
        if result.returncode != 0:
            return None
        return result.stdout

    # ── ignore filtering ─────────────────────────────────────────

    def _drop_ignored(self, repo_path: str, commits: list[CommitEvent]) -> list[CommitEvent]:
        root = self._try(repo_path, ["rev-parse", "--show-toplevel"])
        if not root:
            return commits
        ignore_file = Path(root) / self.ignore_file_name
        if not ignore_file.exists():
            return commits

        all_paths = sorted({f for c in commits for f in c.files})
        ignored: set[str] = set()
        base = ["-c", f"core.excludesFile={ignore_file}", "check-ignore", "--no-index"]
        for start in range(0, len(all_paths), _CHECK_IGNORE_BATCH):
            batch = all_paths[start : start + _CHECK_IGNORE_BATCH]
            try:
                result = subprocess.run(
                    _git_command(root, [*base, *batch]),
                    capture_output=True,
                    encoding="utf-8",
                    errors="replace",
                    timeout=self.timeout_seconds,
                )
            except (FileNotFoundError, subprocess.TimeoutExpired) as e:
                logger.warning("git check-ignore failed: %s", e)
                continue
            # exit 1 means nothing matched
            if result.returncode == 0:
                ignored.update(line for line in result.stdout.split("\n") if line)
            elif result.returncode != 1:
                logger.warning(
                    "git check-ignore failed (exit %d): %s",
                    result.returncode,
                    result.stderr.strip()[:200],
                )

        if not ignored:
            return commits
        return [
            CommitEvent(c.hash, c.timestamp, tuple(f for f in c.files if f not in ignored))
            for c in commits
        ]

    # ── subprocess helpers ───────────────────────────────────────

    def _run(self, repo_path: str, args: list[str], code: ErrorCode) -> str:
        try:
            result = subprocess.run(
                _git_command(repo_path, args),
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout_seconds,
            )
        except FileNotFoundError as e:
            raise TemporalError(
                message="git executable not found",
                code=ErrorCode.CH400,
                context={"repo_path": repo_path, "error": str(e)},
                recovery_hint="Install git and make sure it is on PATH",
            )
        except subprocess.TimeoutExpired:
            raise TemporalError(
                message=f"git {args[0]} timed out after {self.timeout_seconds}s",
                code=ErrorCode.CH402,
                context={"repo_path": repo_path},
            )

        if result.returncode != 0:
            raise TemporalError(
                message=f"git {args[0]} failed: {result.stderr.strip()[:200]}",
                code=code,
                context={"repo_path": repo_path, "returncode": result.returncode},
            )
        return result.stdout

    def _try(self, repo_path: str, args: list[str]) -> Optional[str]:
        """Run a lookup command; stripped stdout on success, else None."""
        try:
            result = subprocess.run(
                _git_command(repo_path, args),
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout_seconds,
            )
        except (FileNotFoundError, subprocess.TimeoutExpired):
            return None
        if result.returncode != 0:
            return None
        return result.stdout.strip()


def _git_date(ts: datetime) -> str:
    return ts.strftime("%Y-%m-%dT%H:%M:%S+00:00")


def _git_command(repo_path: str, args: list[str]) -> list[str]:
    # Unquoted UTF-8 paths in log, ls-tree and check-ignore output
    return ["git", "-C", repo_path, "-c", "core.quotePath=false", *args]
