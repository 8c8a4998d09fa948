"""Co-change group generators used by full rebuilds.

A generator receives the in-window commits (mega-commits already removed
for the scope) and returns every group supported by at least two commits.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Protocol

from .keys import make_group_key, member_pairs, normalize_members
from .models import CommitEvent, GeneratedGroup, MatchingCommit, Scope

MIN_GROUP_FREQUENCY = 2


class CoChangeGenerator(Protocol):
    """Produces co-change groups from a set of commits."""

    def generate(self, commits: list[CommitEvent], scope: Scope) -> list[GeneratedGroup]: ...


class PairGroupGenerator:
    """Emits one group per member pair seen in two or more commits."""

    def __init__(self, min_frequency: int = MIN_GROUP_FREQUENCY):
        self.min_frequency = max(MIN_GROUP_FREQUENCY, min_frequency)

    def generate(self, commits: list[CommitEvent], scope: Scope) -> list[GeneratedGroup]:
        supporting: dict[tuple[str, str], dict[str, MatchingCommit]] = defaultdict(dict)

        for commit in commits:
            members = normalize_members(commit.files, scope)
            for pair in member_pairs(members):
                supporting[pair][commit.hash] = MatchingCommit(commit.hash, commit.timestamp)

        groups = []
        for pair, by_hash in supporting.items():
            if len(by_hash) < self.min_frequency:
                continue
            matching = sorted(by_hash.values(), key=lambda c: (c.timestamp, c.hash))
            groups.append(
                GeneratedGroup(
                    group_key=make_group_key(pair),
                    members=list(pair),
                    frequency=len(matching),
                    last_seen_at=matching[-1].timestamp,
                    matching_commits=matching,
                )
            )

        groups.sort(key=lambda g: g.group_key)
        return groups
