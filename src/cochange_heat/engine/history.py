"""Run context and fault-tolerant reads of the commit ranges a run needs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ..exceptions import TemporalError
from ..logging_config import get_logger
from ..temporal.models import CommitEvent, Window
from ..temporal.sources import CommitHistoryProvider, SnapshotEventSource
from ..temporal.window import (
    added_range,
    expired_range,
    in_added,
    in_expired,
    in_window,
    utc,
    window_for,
)

logger = get_logger(__name__)

# Errors a provider may raise that mean "no data for this range"
PROVIDER_ERRORS = (TemporalError, OSError)

_BOUNDARY_SLACK = timedelta(seconds=1)


@dataclass(frozen=True)
class RunContext:
    project_id: str
    window_days: int
    reference_date: datetime
    repo_path: Optional[str]

    @property
    def window(self) -> Window:
        return window_for(self.reference_date, self.window_days)

    @property
    def since(self) -> datetime:
        return self.window.since


@dataclass
class CommitDelta:
    """Commits that entered and left the window between two runs."""

    added: list[CommitEvent]
    expired: list[CommitEvent]


def fetch_window(provider: CommitHistoryProvider, ctx: RunContext) -> list[CommitEvent]:
    """All commits in the closed current window."""
    window = ctx.window
    commits = _safe_fetch(provider, ctx, window.since, window.until, "window")
    return in_window(commits, window)


def fetch_delta(
    provider: CommitHistoryProvider, ctx: RunContext, previous_reference_date: datetime
) -> CommitDelta:
    """Added ``(prev_ref, ref]`` and expired ``[prev_since, since)`` commits.

    A failure on either range leaves that side empty.
    """
    prev_ref, ref = added_range(previous_reference_date, ctx.reference_date)
    added = in_added(_safe_fetch(provider, ctx, prev_ref, ref, "added"), prev_ref, ref)

    prev_since, since = expired_range(prev_ref, ref, ctx.window_days)
    expired = in_expired(_safe_fetch(provider, ctx, prev_since, since, "expired"), prev_since, since)
    return CommitDelta(added=added, expired=expired)


def snapshot_events(
    source: SnapshotEventSource, project_id: str, since: datetime, until: datetime
) -> list[tuple[str, datetime]]:
    """Snapshot change events normalized to UTC; a failing source yields none.

    The range is widened by a second on each side, like the git date
    filter, so events on either bound reach the caller's exact filter.
    """
    try:
        events = source.events(
            project_id, utc(since) - _BOUNDARY_SLACK, utc(until) + _BOUNDARY_SLACK
        )
    except PROVIDER_ERRORS as e:
        logger.warning("Snapshot events unavailable for project %s: %s", project_id, e)
        return []
    return [(path, utc(ts)) for path, ts in events]


def _safe_fetch(
    provider: CommitHistoryProvider,
    ctx: RunContext,
    since: datetime,
    until: datetime,
    label: str,
) -> list[CommitEvent]:
    if ctx.repo_path is None:
        return []
    if since > until:
        return []
    try:
        commits = provider.fetch(ctx.repo_path, since, until)
    except PROVIDER_ERRORS as e:
        logger.warning(
            "History fetch for %s range of project %s failed, treating as empty: %s",
            label,
            ctx.project_id,
            e,
        )
        return []
    return [CommitEvent(c.hash, utc(c.timestamp), tuple(c.files)) for c in commits]
