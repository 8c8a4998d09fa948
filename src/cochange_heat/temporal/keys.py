"""Normalize a commit's changed files into dataset keys.

Co-change keys are sorted path pairs joined with ``|``; heatmap keys are
the normalized paths themselves. Both reject binary files. Commits whose
normalized member list exceeds ``MAX_MEMBERS_PER_COMMIT`` contribute no
pairs at all.
"""

from __future__ import annotations

import posixpath
from itertools import combinations
from typing import Iterable

from ..logging_config import get_logger
from .models import CommitEvent, PairEntry, PathEntry, Scope

logger = get_logger(__name__)

MAX_MEMBERS_PER_COMMIT = 100

GROUP_KEY_SEPARATOR = "|"

BINARY_EXTENSIONS = frozenset(
    {
        # images
        ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".svg", ".webp",
        # fonts
        ".woff", ".woff2", ".ttf", ".eot", ".otf",
        # documents and archives
        ".pdf", ".zip", ".tar", ".gz", ".bz2", ".7z",
        # build artifacts
        ".exe", ".dll", ".so", ".dylib", ".o", ".beam", ".ez", ".pyc", ".class", ".jar",
    }
)


def is_binary_path(path: str) -> bool:
    ext = posixpath.splitext(path)[1].lower()
    return ext in BINARY_EXTENSIONS


def parent_directory(path: str) -> str:
    """Parent directory of ``path``; root-level files map to ``"."``."""
    parent = posixpath.dirname(path.rstrip("/"))
    return parent or "."


def normalize_members(files: Iterable[str], scope: Scope) -> list[str]:
    """Drop binaries, map to the scope and de-duplicate, keeping first-seen order."""
    seen: set[str] = set()
    members: list[str] = []
    for path in files:
        if not path or is_binary_path(path):
            continue
        key = parent_directory(path) if scope == Scope.DIRECTORY else path
        if key not in seen:
            seen.add(key)
            members.append(key)
    return members


def make_group_key(members: Iterable[str]) -> str:
    return GROUP_KEY_SEPARATOR.join(sorted(members))


def split_group_key(group_key: str) -> list[str]:
    return group_key.split(GROUP_KEY_SEPARATOR)


def exceeds_guardrail(members: list[str]) -> bool:
    return len(members) > MAX_MEMBERS_PER_COMMIT


def member_pairs(members: Iterable[str]) -> list[tuple[str, str]]:
    """Unordered 2-combinations, each pair sorted."""
    return list(combinations(sorted(members), 2))


def pair_entries(commit: CommitEvent, scope: Scope) -> list[PairEntry]:
    """All unordered member pairs of one commit, or nothing for mega-commits."""
    members = normalize_members(commit.files, scope)
    if exceeds_guardrail(members):
        logger.warning(
            "Skipping pair generation for commit %s: %d %s members exceeds limit of %d",
            commit.hash[:12],
            len(members),
            scope.value,
            MAX_MEMBERS_PER_COMMIT,
        )
        return []

    entries = []
    for a, b in member_pairs(members):
        entries.append(
            PairEntry(
                group_key=make_group_key((a, b)),
                members=(a, b),
                commit_hash=commit.hash,
                committed_at=commit.timestamp,
            )
        )
    return entries


def pair_entries_for(commits: Iterable[CommitEvent], scope: Scope) -> list[PairEntry]:
    entries: list[PairEntry] = []
    for commit in commits:
        entries.extend(pair_entries(commit, scope))
    return entries


def heatmap_entries(commit: CommitEvent) -> list[PathEntry]:
    return [PathEntry(path=p, timestamp=commit.timestamp) for p in normalize_members(commit.files, Scope.FILE)]


def heatmap_entries_for(commits: Iterable[CommitEvent]) -> list[PathEntry]:
    entries: list[PathEntry] = []
    for commit in commits:
        entries.extend(heatmap_entries(commit))
    return entries
