"""
Calendar-day bounds for timestamp range queries.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Tuple


def day_bounds(start: date, end: date) -> Tuple[datetime, datetime]:
    """
    Half-open UTC interval covering every day from ``start`` to ``end``.

    Both days are included, matching ``BETWEEN`` on dates.
    """
    if end < start:
        raise ValueError(f"Range ends ({end}) before it starts ({start})")
    lower = datetime.combine(start, time.min, tzinfo=timezone.utc)
    upper = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc)
    return lower, upper
