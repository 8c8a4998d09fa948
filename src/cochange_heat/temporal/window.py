"""Window boundaries and the added/expired ranges between two runs.

With a window of ``d`` days and two reference dates ``prev <= ref``:

    current window    [ref - d, ref]
    previous window   [prev - d, prev]
    added commits     (prev, ref]          strictly after the old reference
    expired commits   [prev - d, ref - d)  strictly before the new start

Full rebuilds read the closed current window, so a commit is counted once
no matter how many delta runs it passes through.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable

from .models import CommitEvent, Window

SECONDS_PER_DAY = 86400


def utc(ts: datetime) -> datetime:
    """Normalize to tz-aware UTC; naive datetimes are taken as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def from_unix(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def window_for(reference_date: datetime, window_days: int) -> Window:
    """Window ending at ``reference_date`` and spanning ``window_days``."""
    until = utc(reference_date)
    return Window(since=until - timedelta(days=window_days), until=until)


def added_range(previous_reference_date: datetime, reference_date: datetime) -> tuple[datetime, datetime]:
    """Half-open ``(previous_reference_date, reference_date]`` bounds."""
    return utc(previous_reference_date), utc(reference_date)


def expired_range(
    previous_reference_date: datetime, reference_date: datetime, window_days: int
) -> tuple[datetime, datetime]:
    """Half-open ``[previous_since, since)`` bounds."""
    previous = window_for(previous_reference_date, window_days)
    current = window_for(reference_date, window_days)
    return previous.since, current.since


def in_window(commits: Iterable[CommitEvent], window: Window) -> list[CommitEvent]:
    return sorted(
        (c for c in commits if window.contains(utc(c.timestamp))),
        key=lambda c: (c.timestamp, c.hash),
    )


def in_added(commits: Iterable[CommitEvent], lower: datetime, upper: datetime) -> list[CommitEvent]:
    return sorted(
        (c for c in commits if lower < utc(c.timestamp) <= upper),
        key=lambda c: (c.timestamp, c.hash),
    )


def in_expired(commits: Iterable[CommitEvent], lower: datetime, upper: datetime) -> list[CommitEvent]:
    return sorted(
        (c for c in commits if lower <= utc(c.timestamp) < upper),
        key=lambda c: (c.timestamp, c.hash),
    )


def elapsed_days(earlier: datetime, later: datetime) -> float:
    """Elapsed time in (fractional) days, measured in seconds first."""
    return (utc(later) - utc(earlier)).total_seconds() / SECONDS_PER_DAY
