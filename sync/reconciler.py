"""
Reconciler - merges push ChangeEvents into a Store.

Every event goes through the same steps:
1. Closed Store: drop.
2. Scope filter: drop events for owners the Store's scope may not see.
3. Awaiting snapshot: queue (the snapshot will supersede it).
4. Dispatch on kind: insert / replace / remove, idempotently.

Updated-class events carry the whole resulting row, so last write wins and
re-applying an event leaves the Store as it was.
"""
import logging
from enum import Enum
from typing import Callable, Dict

from errors import UnknownEventKind
from state import ChangeEvent, ChangeKind, ScopeKind, ViewScope
from sync.store import InterviewStore

logger = logging.getLogger(__name__)


class ApplyOutcome(str, Enum):
    APPLIED = "applied"
    IGNORED = "ignored"  # duplicate or no-op
    OUT_OF_SCOPE = "out_of_scope"
    QUEUED = "queued"
    CLOSED = "closed"


# =============================================================================
# SCOPE FILTER
# =============================================================================

def in_scope(event: ChangeEvent, store: InterviewStore, scope: ViewScope, self_user_id: int) -> bool:
    """May ``scope`` see this event at all?"""
    owner = event.owner_user_id
    if owner is None:
        # Bare deletions: only rows already held (hence in scope) can be affected
        return event.kind == ChangeKind.DELETED and event.interview_id in store

    if scope.kind == ScopeKind.DELEGATED:
        return owner == scope.target_user_id

    if owner == self_user_id:
        return True
    # The other party's row of a meeting we already hold gets through the
    # filter only to be suppressed as a duplicate.
    return (
        event.kind == ChangeKind.CREATED
        and event.interview is not None
        and store.materializes_meeting_of(event.interview)
    )


def is_duplicate_creation(event: ChangeEvent, store: InterviewStore) -> bool:
    if event.interview_id in store:
        return True
    return store.materializes_meeting_of(event.interview)


# =============================================================================
# PER-KIND HANDLERS
# =============================================================================

def _apply_created(event: ChangeEvent, store: InterviewStore) -> ApplyOutcome:
    if is_duplicate_creation(event, store):
        logger.debug("Ignoring duplicate creation of interview %s", event.interview_id)
        return ApplyOutcome.IGNORED
    store.insert(event.interview)
    return ApplyOutcome.APPLIED


def _apply_upsert(event: ChangeEvent, store: InterviewStore) -> ApplyOutcome:
    current = store.get(event.interview_id)
    if current is None:
        # Missed the creation; heal by inserting, unless the meeting is
        # already on this schedule under the counterpart's row.
        if store.materializes_meeting_of(event.interview):
            logger.debug("Ignoring %s for counterpart row %s", event.kind.value, event.interview_id)
            return ApplyOutcome.IGNORED
        logger.debug("%s for unknown interview %s, inserting", event.kind.value, event.interview_id)
        store.insert(event.interview)
        return ApplyOutcome.APPLIED
    if current == event.interview:
        return ApplyOutcome.IGNORED
    store.upsert(event.interview)
    return ApplyOutcome.APPLIED


def _apply_deleted(event: ChangeEvent, store: InterviewStore) -> ApplyOutcome:
    if store.remove(event.interview_id) is None:
        return ApplyOutcome.IGNORED
    return ApplyOutcome.APPLIED


HANDLERS: Dict[ChangeKind, Callable[[ChangeEvent, InterviewStore], ApplyOutcome]] = {
    ChangeKind.CREATED: _apply_created,
    ChangeKind.UPDATED: _apply_upsert,
    ChangeKind.STATUS_UPDATED: _apply_upsert,
    ChangeKind.RESULT_UPDATED: _apply_upsert,
    ChangeKind.DELETED: _apply_deleted,
}

def check_handlers(handlers: Dict[ChangeKind, Callable]) -> None:
    missing = set(ChangeKind) - set(handlers)
    if missing:
        names = ", ".join(sorted(kind.value for kind in missing))
        raise RuntimeError(f"No reconcile handler for event kinds: {names}")


check_handlers(HANDLERS)


def apply(event: ChangeEvent, store: InterviewStore, scope: ViewScope, self_user_id: int) -> ApplyOutcome:
    """Merge one event into ``store``. Raises UnknownEventKind without mutating."""
    handler = HANDLERS.get(event.kind)
    if handler is None:
        raise UnknownEventKind(f"No handler for event kind {event.kind!r}", kind=event.kind)

    if store.closed:
        return ApplyOutcome.CLOSED
    if not in_scope(event, store, scope, self_user_id):
        return ApplyOutcome.OUT_OF_SCOPE
    if store.awaiting_snapshot:
        store.queue(event)
        return ApplyOutcome.QUEUED
    return handler(event, store)


class Reconciler:
    """Applies events for one signed-in user, one Store at a time, in arrival order."""

    def __init__(self, self_user_id: int):
        self.self_user_id = self_user_id

    def apply(self, event: ChangeEvent, store: InterviewStore) -> ApplyOutcome:
        outcome = apply(event, store, store.scope, self.self_user_id)
        if outcome == ApplyOutcome.OUT_OF_SCOPE:
            logger.debug(
                "Dropped %s for interview %s outside %s",
                event.kind.value, event.interview_id, store.scope,
            )
        return outcome

    def process(self, event: ChangeEvent, store: InterviewStore) -> ApplyOutcome:
        """Like apply(), but an unknown kind is logged instead of raised."""
        try:
            return self.apply(event, store)
        except UnknownEventKind as exc:
            logger.warning("Rejected push event: %s", exc)
            return ApplyOutcome.IGNORED
