"""
List-view helpers over a Store's rows: counters, upcoming, status filter.
"""
from datetime import date
from typing import Iterable, List, Optional, Union

from state import Interview, InterviewResult, InterviewStatus, TrackerStats

ALL_STATUSES = "all"


def stats(interviews: Iterable[Interview]) -> TrackerStats:
    rows = list(interviews)
    return TrackerStats(
        total=len(rows),
        scheduled=sum(1 for i in rows if i.status == InterviewStatus.SCHEDULED),
        completed=sum(1 for i in rows if i.status == InterviewStatus.COMPLETED),
        passed=sum(1 for i in rows if i.result == InterviewResult.PASSED),
    )


def filter_by_status(
    interviews: Iterable[Interview],
    status: Union[str, InterviewStatus, None] = ALL_STATUSES,
) -> List[Interview]:
    """Rows with ``status`` (or all), chronological."""
    if status is None or status == ALL_STATUSES:
        rows = list(interviews)
    else:
        wanted = InterviewStatus(status)
        rows = [i for i in interviews if i.status == wanted]
    return sorted(rows, key=lambda i: i.sort_key)


def upcoming(interviews: Iterable[Interview], today: Optional[date] = None) -> List[Interview]:
    """Scheduled interviews from today on, soonest first."""
    today = today or date.today()
    rows = [
        i for i in interviews
        if i.status == InterviewStatus.SCHEDULED and i.date >= today
    ]
    return sorted(rows, key=lambda i: i.sort_key)
