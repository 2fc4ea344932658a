"""
Calendar Projector - month grid for rendering.

Always 6 weeks x 7 days, Monday first. Leading and trailing days from the
neighbouring months are flagged ``out_of_month`` but still carry their
interviews.
"""
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional

from state import DayBucket, Interview, YearMonth

GRID_DAYS = 42


def grid_start(month: YearMonth) -> date:
    """Monday on or before the first day of ``month``."""
    first = month.first_day
    return first - timedelta(days=first.weekday())


def project(
    interviews: Iterable[Interview],
    month: YearMonth,
    today: Optional[date] = None,
) -> List[DayBucket]:
    by_day: Dict[date, List[Interview]] = {}
    for interview in interviews:
        by_day.setdefault(interview.date, []).append(interview)

    start = grid_start(month)
    buckets = []
    for offset in range(GRID_DAYS):
        day = start + timedelta(days=offset)
        buckets.append(DayBucket(
            date=day,
            out_of_month=(day.year, day.month) != (month.year, month.month),
            is_today=day == today,
            interviews=by_day.get(day, []),
        ))
    return buckets


def weeks(buckets: List[DayBucket]) -> List[List[DayBucket]]:
    """Split a projected grid into its six rows."""
    return [buckets[i:i + 7] for i in range(0, len(buckets), 7)]
