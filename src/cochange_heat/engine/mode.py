"""Full-versus-delta decision for a run.

``select_mode`` is a pure function of the stored watermark and the
requested window, so callers and tests can inspect the decision without
running anything.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from ..persistence.models import Watermark
from ..temporal.window import SECONDS_PER_DAY, utc


class FullReason(str, Enum):
    NO_WATERMARK = "no_watermark"
    WINDOW_CHANGED = "window_changed"
    WATERMARK_TOO_OLD = "watermark_too_old"
    WATERMARK_IN_FUTURE = "watermark_in_future"


@dataclass(frozen=True)
class Full:
    reason: FullReason

    @property
    def mode(self) -> str:
        return "full"


@dataclass(frozen=True)
class Delta:
    previous_reference_date: datetime

    @property
    def mode(self) -> str:
        return "delta"


ModeDecision = Union[Full, Delta]


def select_mode(
    watermark: Optional[Watermark], window_days: int, reference_date: datetime
) -> ModeDecision:
    """Decide how to bring a dataset up to ``reference_date``.

    A gap of more than one window width since the last run forces a
    rebuild even though the two windows might still overlap; the boundary
    itself (exactly ``window_days`` apart) still runs as a delta.
    """
    if watermark is None:
        return Full(FullReason.NO_WATERMARK)

    if watermark.window_days != window_days:
        return Full(FullReason.WINDOW_CHANGED)

    age_seconds = (utc(reference_date) - utc(watermark.last_run_at)).total_seconds()
    if age_seconds > window_days * SECONDS_PER_DAY:
        return Full(FullReason.WATERMARK_TOO_OLD)
    if age_seconds < 0:
        return Full(FullReason.WATERMARK_IN_FUTURE)

    return Delta(previous_reference_date=utc(watermark.last_run_at))
