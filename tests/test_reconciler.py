"""
Reconciler tests: scope filtering, duplicate suppression and the
idempotency/ordering guarantees of apply().
"""
import random

import pytest

from errors import UnknownEventKind
from state import ChangeEvent, ChangeKind, InterviewStatus, ViewScope
from sync.reconciler import HANDLERS, ApplyOutcome, Reconciler, apply, check_handlers
from sync.store import InterviewStore


def created(interview):
    return ChangeEvent.of(ChangeKind.CREATED, interview)


def deleted(interview_id, owner=None):
    return ChangeEvent(kind=ChangeKind.DELETED, interview_id=interview_id, owner_user_id=owner)


def snapshot(store):
    return [i.model_dump() for i in store.all()]


# =============================================================================
# SCENARIOS
# =============================================================================

def test_create_then_delete_on_own_schedule(make_interview):
    store = InterviewStore(ViewScope.own())
    first = make_interview(id=1, ownerUserId=7, date="2024-03-05", time="10:00")

    assert apply(created(first), store, store.scope, 7) == ApplyOutcome.APPLIED
    assert store.ids() == [1]

    assert apply(deleted(1), store, store.scope, 7) == ApplyOutcome.APPLIED
    assert store.ids() == []


def test_counterpart_creation_is_suppressed(make_interview):
    store = InterviewStore(ViewScope.own())
    store.replace_all([make_interview(id=2, ownerUserId=9, linkedInterviewId=1, invitationStatus="pending")])
    before = snapshot(store)

    employer_row = make_interview(id=1, ownerUserId=7)
    outcome = apply(created(employer_row), store, store.scope, 9)

    assert outcome == ApplyOutcome.IGNORED
    assert snapshot(store) == before


def test_counterpart_creation_suppressed_even_for_own_owner(make_interview):
    store = InterviewStore(ViewScope.own())
    store.replace_all([make_interview(id=2, ownerUserId=9, linkedInterviewId=1)])

    outcome = apply(created(make_interview(id=1, ownerUserId=9)), store, store.scope, 9)

    assert outcome == ApplyOutcome.IGNORED
    assert store.ids() == [2]


def test_created_with_known_id_is_ignored(make_interview):
    store = InterviewStore(ViewScope.own())
    store.replace_all([make_interview(id=1, company="Original")])

    outcome = apply(created(make_interview(id=1, company="Changed")), store, store.scope, 7)

    assert outcome == ApplyOutcome.IGNORED
    assert store.get(1).company == "Original"


def test_updated_for_missing_row_inserts_it(make_interview):
    store = InterviewStore(ViewScope.own())
    row = make_interview(id=4, status="completed")

    outcome = apply(ChangeEvent.of(ChangeKind.STATUS_UPDATED, row), store, store.scope, 7)

    assert outcome == ApplyOutcome.APPLIED
    assert store.get(4).status == InterviewStatus.COMPLETED


def test_updated_for_counterpart_row_does_not_duplicate_meeting(make_interview):
    store = InterviewStore(ViewScope.own())
    store.replace_all([make_interview(id=2, ownerUserId=7, linkedInterviewId=1)])

    outcome = apply(
        ChangeEvent.of(ChangeKind.UPDATED, make_interview(id=1, ownerUserId=7)),
        store, store.scope, 7,
    )

    assert outcome == ApplyOutcome.IGNORED
    assert store.ids() == [2]


def test_update_replaces_row_wholesale(make_interview):
    store = InterviewStore(ViewScope.own())
    store.replace_all([make_interview(id=1, notes="bring passport", result=None)])

    replacement = make_interview(id=1, status="completed", result="passed")
    apply(ChangeEvent.of(ChangeKind.RESULT_UPDATED, replacement), store, store.scope, 7)

    row = store.get(1)
    assert row.result.value == "passed"
    assert row.notes is None


def test_delete_of_unknown_row_is_a_noop(make_interview):
    store = InterviewStore(ViewScope.own())
    store.replace_all([make_interview(id=1)])

    assert apply(deleted(5, owner=7), store, store.scope, 7) == ApplyOutcome.IGNORED
    assert store.ids() == [1]


def test_bare_delete_for_row_not_held_is_out_of_scope():
    store = InterviewStore(ViewScope.delegated(7))

    assert apply(deleted(5), store, store.scope, 9) == ApplyOutcome.OUT_OF_SCOPE


def test_delete_clears_delegated_modal_subject(make_interview):
    store = InterviewStore(ViewScope.delegated(7))
    store.replace_all([make_interview(id=1), make_interview(id=2, time="12:00")])
    store.select(2)

    apply(deleted(2, owner=7), store, store.scope, 9)

    assert store.ids() == [1]
    assert store.selected_id is None
    assert store.selected is None


# =============================================================================
# SCOPE ISOLATION
# =============================================================================

@pytest.mark.parametrize("kind", list(ChangeKind))
def test_delegated_store_ignores_other_owners(make_interview, kind):
    store = InterviewStore(ViewScope.delegated(7))
    store.replace_all([make_interview(id=1, ownerUserId=7)])
    before = snapshot(store)

    foreign = make_interview(id=1 if kind == ChangeKind.DELETED else 3, ownerUserId=8)
    outcome = apply(ChangeEvent.of(kind, foreign), store, store.scope, 9)

    assert outcome == ApplyOutcome.OUT_OF_SCOPE
    assert snapshot(store) == before


def test_own_store_ignores_other_owners_updates(make_interview):
    store = InterviewStore(ViewScope.own())

    outcome = apply(ChangeEvent.of(ChangeKind.UPDATED, make_interview(id=3, ownerUserId=8)), store, store.scope, 7)

    assert outcome == ApplyOutcome.OUT_OF_SCOPE
    assert len(store) == 0


def test_delegated_store_accepts_target_owner(make_interview):
    store = InterviewStore(ViewScope.delegated(7))

    outcome = apply(created(make_interview(id=3, ownerUserId=7)), store, store.scope, 9)

    assert outcome == ApplyOutcome.APPLIED
    assert store.ids() == [3]


# =============================================================================
# IDEMPOTENCY
# =============================================================================

@pytest.mark.parametrize("kind", list(ChangeKind))
def test_applying_twice_equals_applying_once(make_interview, kind):
    store = InterviewStore(ViewScope.own())
    store.replace_all([make_interview(id=1), make_interview(id=2, date="2024-03-06")])
    event = ChangeEvent.of(kind, make_interview(id=2, date="2024-03-07", status="completed"))

    apply(event, store, store.scope, 7)
    once = snapshot(store)
    apply(event, store, store.scope, 7)

    assert snapshot(store) == once


# =============================================================================
# ORDERING AND UNIQUENESS UNDER RANDOM TRAFFIC
# =============================================================================

def _random_event(rng, make_interview):
    interview_id = rng.randint(1, 12)
    kind = rng.choice(list(ChangeKind))
    if kind == ChangeKind.DELETED and rng.random() < 0.5:
        return deleted(interview_id)
    row = make_interview(
        id=interview_id,
        ownerUserId=rng.choice([7, 7, 7, 8]),
        date=f"2024-03-{rng.randint(1, 5):02d}",
        time=rng.choice(["09:00", "10:00", "10:00", "14:30"]),
        linkedInterviewId=rng.choice([None, None, None, rng.randint(1, 12)]),
    )
    return ChangeEvent.of(kind, row)


@pytest.mark.parametrize("seed", range(5))
def test_random_traffic_keeps_ids_unique_and_sorted(make_interview, seed):
    rng = random.Random(seed)
    store = InterviewStore(ViewScope.own())

    for _ in range(300):
        apply(_random_event(rng, make_interview), store, store.scope, 7)

        ids = store.ids()
        assert len(ids) == len(set(ids))
        rows = store.all()
        assert rows == sorted(rows, key=lambda i: (i.date, i.time, i.id))
        assert all(row.owner_user_id == 7 for row in rows)


def test_ties_on_date_and_time_break_by_id(make_interview):
    store = InterviewStore(ViewScope.own())
    for interview_id in (5, 3, 4):
        apply(created(make_interview(id=interview_id, date="2024-03-05", time="10:00")), store, store.scope, 7)
    apply(created(make_interview(id=1, date="2024-03-05", time="11:00")), store, store.scope, 7)
    apply(created(make_interview(id=9, date="2024-03-04", time="18:00")), store, store.scope, 7)

    assert store.ids() == [9, 3, 4, 5, 1]


def test_update_that_moves_date_reorders(make_interview):
    store = InterviewStore(ViewScope.own())
    store.replace_all([make_interview(id=1, date="2024-03-01"), make_interview(id=2, date="2024-03-02")])

    apply(ChangeEvent.of(ChangeKind.UPDATED, make_interview(id=1, date="2024-03-03")), store, store.scope, 7)

    assert store.ids() == [2, 1]


# =============================================================================
# QUEUING, CLOSED STORES, UNKNOWN KINDS
# =============================================================================

def test_events_queue_while_snapshot_in_flight(make_interview):
    store = InterviewStore(ViewScope.own())
    store.begin_snapshot()

    outcome = apply(created(make_interview(id=1)), store, store.scope, 7)

    assert outcome == ApplyOutcome.QUEUED
    assert len(store) == 0
    assert [e.interview_id for e in store.backlog] == [1]


def test_out_of_scope_events_are_not_queued(make_interview):
    store = InterviewStore(ViewScope.delegated(7))
    store.begin_snapshot()

    apply(created(make_interview(id=1, ownerUserId=8)), store, store.scope, 9)

    assert store.backlog == []


def test_closed_store_drops_everything(make_interview):
    store = InterviewStore(ViewScope.delegated(7))
    store.close()

    outcome = apply(created(make_interview(id=1, ownerUserId=7)), store, store.scope, 9)

    assert outcome == ApplyOutcome.CLOSED
    assert len(store) == 0


def test_unknown_kind_raises_without_mutation(make_interview):
    store = InterviewStore(ViewScope.own())
    row = make_interview(id=1)
    bogus = ChangeEvent.model_construct(kind="rescheduled", interview_id=1, interview=row, owner_user_id=7)

    with pytest.raises(UnknownEventKind):
        apply(bogus, store, store.scope, 7)
    assert len(store) == 0


def test_reconciler_survives_unknown_kind(make_interview):
    store = InterviewStore(ViewScope.own())
    reconciler = Reconciler(self_user_id=7)
    bogus = ChangeEvent.model_construct(
        kind="rescheduled", interview_id=1, interview=make_interview(id=1), owner_user_id=7,
    )

    assert reconciler.process(bogus, store) == ApplyOutcome.IGNORED
    assert reconciler.process(created(make_interview(id=2)), store) == ApplyOutcome.APPLIED
    assert store.ids() == [2]


def test_every_kind_has_a_handler():
    assert set(HANDLERS) == set(ChangeKind)


def test_missing_handler_is_reported():
    partial = {kind: handler for kind, handler in HANDLERS.items() if kind != ChangeKind.RESULT_UPDATED}

    with pytest.raises(RuntimeError, match="result-updated"):
        check_handlers(partial)
