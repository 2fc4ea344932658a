"""
Interview Store primitives and the Snapshot Loader.
"""
import asyncio

import pytest

from errors import FetchError
from state import ChangeEvent, ChangeKind, Role, ViewScope
from sync.loader import SnapshotLoader
from sync.meetings import join_meetings, meeting_key
from sync.reconciler import ApplyOutcome, apply
from sync.store import InterviewStore


# =============================================================================
# STORE
# =============================================================================

def test_insert_rejects_existing_id(make_interview):
    store = InterviewStore(ViewScope.own())

    assert store.insert(make_interview(id=1)) is True
    assert store.insert(make_interview(id=1, company="Other")) is False
    assert store.get(1).company == "Acme"


def test_replace_all_keeps_last_row_for_repeated_id(make_interview):
    store = InterviewStore(ViewScope.own())

    store.replace_all([make_interview(id=1, company="Old"), make_interview(id=1, company="New")])

    assert len(store) == 1
    assert store.get(1).company == "New"


def test_listeners_see_every_mutation(make_interview):
    store = InterviewStore(ViewScope.own())
    seen = []
    unsubscribe = store.subscribe(lambda s: seen.append(s.ids()))

    store.insert(make_interview(id=1))
    store.upsert(make_interview(id=2, date="2024-03-04"))
    store.remove(1)
    unsubscribe()
    store.remove(2)

    assert seen == [[1], [2, 1], [2]]


def test_backlog_is_bounded(make_interview):
    store = InterviewStore(ViewScope.own(), backlog_limit=2)
    store.begin_snapshot()

    for interview_id in (1, 2, 3):
        store.queue(ChangeEvent.of(ChangeKind.CREATED, make_interview(id=interview_id)))

    assert [e.interview_id for e in store.backlog] == [2, 3]


def test_close_empties_store_and_detaches_listeners(make_interview):
    store = InterviewStore(ViewScope.delegated(7))
    store.replace_all([make_interview(id=1)])
    store.select(1)
    calls = []
    store.subscribe(lambda s: calls.append(len(s)))

    store.close()
    store.insert(make_interview(id=2))

    assert store.closed
    assert len(store) == 0
    assert store.selected_id is None
    assert calls == [0]


def test_find_linked_to(make_interview):
    store = InterviewStore(ViewScope.own())
    store.replace_all([make_interview(id=2, linkedInterviewId=1)])

    assert store.find_linked_to(1).id == 2
    assert store.find_linked_to(2) is None


# =============================================================================
# MEETINGS
# =============================================================================

def test_join_groups_both_rows_of_a_meeting(make_interview):
    employer = make_interview(id=1, ownerUserId=7)
    candidate = make_interview(id=2, ownerUserId=9, linkedInterviewId=1, invitationStatus="pending")
    solo = make_interview(id=3, ownerUserId=9)

    meetings = join_meetings([employer, candidate, solo])

    assert meeting_key(candidate) == 1
    assert sorted(meetings) == [1, 3]
    assert meetings[1].view_for(9).interview_id == 2
    assert meetings[1].view_for(7).interview_id == 1
    assert meetings[3].view_for(7) is None


# =============================================================================
# SNAPSHOT LOADER
# =============================================================================

def test_seed_replaces_store_contents(client, make_interview):
    client.own = [make_interview(id=3, date="2024-03-09"), make_interview(id=2, date="2024-03-01")]
    store = InterviewStore(ViewScope.own())
    store.insert(make_interview(id=99))

    SnapshotLoader(client).seed(store)

    assert store.ids() == [2, 3]


def test_employer_role_pulls_employer_listing(client):
    SnapshotLoader(client, Role.EMPLOYER).load(ViewScope.own())

    assert client.calls == [("list_interviews", Role.EMPLOYER)]


def test_delegated_scope_pulls_target_calendar(client, make_interview):
    client.calendars[7] = [make_interview(id=5, ownerUserId=7)]

    rows = SnapshotLoader(client).load(ViewScope.delegated(7))

    assert [r.id for r in rows] == [5]
    assert client.calls == [("delegated_calendar", 7)]


def test_fetch_error_leaves_store_unchanged(client, make_interview):
    store = InterviewStore(ViewScope.own())
    store.replace_all([make_interview(id=1)])
    client.fail_fetch = True

    with pytest.raises(FetchError):
        SnapshotLoader(client).seed(store)
    assert store.ids() == [1]


def test_snapshot_discards_backlog(client, make_interview):
    client.own = [make_interview(id=1)]
    store = InterviewStore(ViewScope.own())
    store.begin_snapshot()
    apply(ChangeEvent.of(ChangeKind.CREATED, make_interview(id=2)), store, store.scope, 7)

    SnapshotLoader(client).seed(store)

    assert store.ids() == [1]
    assert store.backlog == []
    assert not store.awaiting_snapshot


def test_refresh_queues_until_snapshot_arrives(client, make_interview):
    client.own = [make_interview(id=1)]
    store = InterviewStore(ViewScope.own())
    loader = SnapshotLoader(client)

    async def scenario():
        task = asyncio.ensure_future(loader.refresh(store))
        await asyncio.sleep(0)
        outcome = apply(ChangeEvent.of(ChangeKind.CREATED, make_interview(id=2)), store, store.scope, 7)
        await task
        return outcome

    outcome = asyncio.run(scenario())

    assert outcome == ApplyOutcome.QUEUED
    assert store.ids() == [1]
    assert not store.awaiting_snapshot


def test_failed_refresh_keeps_buffering(client, make_interview):
    store = InterviewStore(ViewScope.own())
    client.fail_fetch = True

    with pytest.raises(FetchError):
        asyncio.run(SnapshotLoader(client).refresh(store))

    assert store.awaiting_snapshot
    outcome = apply(ChangeEvent.of(ChangeKind.CREATED, make_interview(id=2)), store, store.scope, 7)
    assert outcome == ApplyOutcome.QUEUED
