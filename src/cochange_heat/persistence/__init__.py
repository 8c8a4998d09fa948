"""Persistence - SQLite-backed watermarks and analytics datasets."""

from .database import AnalyticsDB
from .models import (
    CoChangeGroup,
    CoChangeGroupCommit,
    CoChangeGroupMemberStat,
    FileHeatmap,
    Watermark,
)
from .store import AnalyticsStore

__all__ = [
    "AnalyticsDB",
    "AnalyticsStore",
    "Watermark",
    "CoChangeGroup",
    "CoChangeGroupCommit",
    "CoChangeGroupMemberStat",
    "FileHeatmap",
]
