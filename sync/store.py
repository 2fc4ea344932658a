"""
In-memory collection of interview rows for one ViewScope.

Rows are kept unique by id and ordered by (date, time, id). The Store only
offers mutation primitives; deciding *whether* to mutate is the
Reconciler's job.
"""
import bisect
import logging
from collections import deque
from typing import Callable, Deque, Dict, Iterable, Iterator, List, Optional

from state import ChangeEvent, Interview, ViewScope
from sync.meetings import MeetingIndex

logger = logging.getLogger(__name__)

Listener = Callable[["InterviewStore"], None]


class InterviewStore:
    def __init__(self, scope: ViewScope, backlog_limit: int = 500):
        self.scope = scope
        self.backlog_limit = backlog_limit
        self.awaiting_snapshot = False
        self.closed = False
        # Row the delegated-view modal is currently showing, if any
        self.selected_id: Optional[int] = None

        self._by_id: Dict[int, Interview] = {}
        self._order: List[tuple] = []  # sorted sort_keys
        self._meetings = MeetingIndex()
        self._backlog: Deque[ChangeEvent] = deque()
        self._listeners: List[Listener] = []

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self) -> Iterator[Interview]:
        return iter(self.all())

    def __contains__(self, interview_id: int) -> bool:
        return interview_id in self._by_id

    def all(self) -> List[Interview]:
        return [self._by_id[key[2]] for key in self._order]

    def ids(self) -> List[int]:
        return [key[2] for key in self._order]

    def get(self, interview_id: int) -> Optional[Interview]:
        return self._by_id.get(interview_id)

    def find_linked_to(self, interview_id: int) -> Optional[Interview]:
        for interview in self._by_id.values():
            if interview.linked_interview_id == interview_id:
                return interview
        return None

    def materializes_meeting_of(self, interview: Interview) -> bool:
        return self._meetings.materializes(interview)

    @property
    def selected(self) -> Optional[Interview]:
        if self.selected_id is None:
            return None
        return self._by_id.get(self.selected_id)

    # -------------------------------------------------------------------------
    # Mutation primitives
    # -------------------------------------------------------------------------

    def insert(self, interview: Interview) -> bool:
        """Add a row; False if the id is already present."""
        if self.closed or interview.id in self._by_id:
            return False
        self._put(interview)
        self._notify()
        return True

    def upsert(self, interview: Interview) -> bool:
        """Replace the row with the same id wholesale, or add it. True if it was new."""
        if self.closed:
            return False
        existed = interview.id in self._by_id
        if existed:
            self._drop(interview.id)
        self._put(interview)
        self._notify()
        return not existed

    def remove(self, interview_id: int) -> Optional[Interview]:
        removed = self._drop(interview_id)
        if removed is None:
            return None
        if self.selected_id == interview_id:
            self.selected_id = None
        self._notify()
        return removed

    def replace_all(self, interviews: Iterable[Interview]) -> None:
        """Swap in a full snapshot and drop anything buffered before it."""
        if self.closed:
            return
        self._by_id.clear()
        self._order.clear()
        self._meetings.clear()
        for interview in interviews:
            if interview.id in self._by_id:
                logger.debug("Snapshot repeats interview %s, keeping the later row", interview.id)
                self._drop(interview.id)
            self._put(interview)
        if self.selected_id is not None and self.selected_id not in self._by_id:
            self.selected_id = None
        self._backlog.clear()
        self.awaiting_snapshot = False
        self._notify()

    def select(self, interview_id: Optional[int]) -> Optional[Interview]:
        if interview_id is not None and interview_id not in self._by_id:
            return None
        self.selected_id = interview_id
        return self.selected

    def close(self) -> None:
        """Tear the Store down. Later events are dropped, never buffered."""
        self.closed = True
        self._by_id.clear()
        self._order.clear()
        self._meetings.clear()
        self._backlog.clear()
        self.selected_id = None
        self._notify()
        self._listeners.clear()

    # -------------------------------------------------------------------------
    # Backlog of events received while a snapshot is in flight
    # -------------------------------------------------------------------------

    def begin_snapshot(self) -> None:
        self.awaiting_snapshot = True

    def queue(self, event: ChangeEvent) -> None:
        if len(self._backlog) >= self.backlog_limit:
            dropped = self._backlog.popleft()
            logger.warning(
                "Backlog for %s full (%d), dropping oldest %s event for interview %s",
                self.scope, self.backlog_limit, dropped.kind.value, dropped.interview_id,
            )
        self._backlog.append(event)

    @property
    def backlog(self) -> List[ChangeEvent]:
        return list(self._backlog)

    # -------------------------------------------------------------------------
    # Change listeners
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # -------------------------------------------------------------------------

    def _put(self, interview: Interview) -> None:
        self._by_id[interview.id] = interview
        bisect.insort(self._order, interview.sort_key)
        self._meetings.add(interview)

    def _drop(self, interview_id: int) -> Optional[Interview]:
        interview = self._by_id.pop(interview_id, None)
        if interview is None:
            return None
        index = bisect.bisect_left(self._order, interview.sort_key)
        del self._order[index]
        self._meetings.discard(interview)
        return interview
