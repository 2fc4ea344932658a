"""
Shared fixtures: an in-memory stand-in for the remote service and a
scripted websocket connector.
"""
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from typing import Dict, List, Optional

import pytest

from errors import DuplicateGrant, FetchError, NotFound
from state import AccessGrant, Interview, Role, UserSummary, ViewScope
from sync.store import InterviewStore


def build_interview(**fields) -> Interview:
    values = {
        "id": 1,
        "ownerUserId": 7,
        "date": "2024-03-05",
        "time": "10:00",
        "company": "Acme",
        "position": "Backend Developer",
    }
    values.update(fields)
    return Interview.model_validate(values)


class FakeClient:
    """Remote service double. Records every command it receives."""

    def __init__(self):
        self.own: List[Interview] = []
        self.calendars: Dict[int, List[Interview]] = {}
        # user id -> error the calendar pull raises instead of answering
        self.calendar_errors: Dict[int, Exception] = {}
        self.granted_by_me: List[AccessGrant] = []
        self.granted_to_me: List[AccessGrant] = []
        self.users: List[UserSummary] = []
        self.calls: List[tuple] = []
        self.fail_fetch = False
        self.next_grant_id = 100
        self.grantor_id = 7

    def _fetch(self, name, *args):
        self.calls.append((name,) + args)
        if self.fail_fetch:
            raise FetchError(f"{name} failed")

    def list_interviews(self, role=Role.GRADUATE):
        self._fetch("list_interviews", role)
        return list(self.own)

    def delegated_calendar(self, user_id):
        self._fetch("delegated_calendar", user_id)
        if user_id in self.calendar_errors:
            raise self.calendar_errors[user_id]
        return list(self.calendars.get(user_id, []))

    def list_access(self):
        self._fetch("list_access")
        return list(self.granted_by_me), list(self.granted_to_me)

    def list_users(self, role):
        self._fetch("list_users", role)
        return list(self.users)

    def create_interview(self, fields):
        self.calls.append(("create_interview", fields))
        return {"id": 999, **fields}

    def update_interview(self, interview_id, fields):
        self.calls.append(("update_interview", interview_id, fields))

    def update_status(self, interview_id, status):
        self.calls.append(("update_status", interview_id, status))

    def update_result(self, interview_id, result):
        self.calls.append(("update_result", interview_id, result))

    def delete_interview(self, interview_id):
        self.calls.append(("delete_interview", interview_id))

    def respond_invitation(self, interview_id, action):
        self.calls.append(("respond_invitation", interview_id, action))

    def grant_access(self, target_id):
        self.calls.append(("grant_access", target_id))
        if any(g.grantee_id == target_id for g in self.granted_by_me):
            raise DuplicateGrant("already granted")
        grant = AccessGrant(id=self.next_grant_id, grantor_id=self.grantor_id, grantee_id=target_id)
        self.next_grant_id += 1
        self.granted_by_me.append(grant)
        return grant

    def revoke_access(self, access_id):
        self.calls.append(("revoke_access", access_id))
        before = len(self.granted_by_me)
        self.granted_by_me = [g for g in self.granted_by_me if g.id != access_id]
        if len(self.granted_by_me) == before:
            raise NotFound("no such grant")

    def commands(self, name):
        return [call for call in self.calls if call[0] == name]


class FakeSocket:
    """Async iterator over scripted frames; optionally fails at the end."""

    def __init__(self, frames, error: Optional[Exception] = None):
        self.frames = list(frames)
        self.error = error
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.closed = True
        return False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.closed:
            raise StopAsyncIteration
        if self.frames:
            return self.frames.pop(0)
        if self.error is not None:
            error, self.error = self.error, None
            raise error
        raise StopAsyncIteration

    async def close(self):
        self.closed = True


class FakeConnector:
    """Stand-in for websockets.connect that hands out scripted sockets."""

    def __init__(self, sockets, on_exhausted=None):
        self.sockets = list(sockets)
        self.on_exhausted = on_exhausted
        self.calls = []

    def __call__(self, url, additional_headers=None):
        self.calls.append((url, additional_headers))
        if not self.sockets:
            if self.on_exhausted is not None:
                self.on_exhausted()
            raise OSError("no more scripted connections")
        return self.sockets.pop(0)


@pytest.fixture
def make_interview():
    return build_interview


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def self_store():
    return InterviewStore(ViewScope.own())


@pytest.fixture
def fake_socket():
    return FakeSocket


@pytest.fixture
def fake_connector():
    return FakeConnector
