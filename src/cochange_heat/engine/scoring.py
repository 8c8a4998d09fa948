"""Heat score: a 0-100 blend of change frequency and recency."""

import math
from datetime import datetime

from ..temporal.window import elapsed_days

FREQUENCY_WEIGHT = 0.65
RECENCY_WEIGHT = 0.35

# 20 changes saturate the frequency term: ln(1 + 20) / ln(21) == 1
FREQUENCY_CAP_LOG = math.log(21)

RECENCY_DECAY_DAYS = 14


def calculate_heat_score(change_count: int, last_changed_at: datetime, reference_date: datetime) -> float:
    """Heat score of a path at ``reference_date``.

    frequency_norm = min(ln(1 + count) / ln(21), 1)
    recency_norm   = exp(-days_since_last_change / 14)
    heat_score     = round((0.65 * frequency_norm + 0.35 * recency_norm) * 100, 2)

    Changes dated after ``reference_date`` count as "just now".
    """
    days_since = max(elapsed_days(last_changed_at, reference_date), 0.0)
    frequency_norm = min(math.log1p(max(change_count, 0)) / FREQUENCY_CAP_LOG, 1.0)
    recency_norm = math.exp(-days_since / RECENCY_DECAY_DAYS)
    return round((FREQUENCY_WEIGHT * frequency_norm + RECENCY_WEIGHT * recency_norm) * 100, 2)
