"""
Meetings as a join over interview rows.

An employer-created meeting is stored as two rows: the employer's own row and
the candidate's row whose ``linked_interview_id`` points back at it. Keying
both by the initiating row's id lets a Store ask "is this meeting already on
the schedule?" instead of comparing ids and links case by case.
"""
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from state import Interview, InvitationStatus


def meeting_key(interview: Interview) -> int:
    """Id of the row that initiated the meeting."""
    if interview.linked_interview_id is not None:
        return interview.linked_interview_id
    return interview.id


class ParticipantView(BaseModel):
    interview_id: int
    owner_user_id: int
    invitation_status: InvitationStatus = InvitationStatus.NONE

    @classmethod
    def of(cls, interview: Interview) -> "ParticipantView":
        return cls(
            interview_id=interview.id,
            owner_user_id=interview.owner_user_id,
            invitation_status=interview.invitation_status,
        )


class Meeting(BaseModel):
    key: int
    views: List[ParticipantView] = Field(default_factory=list)

    def view_for(self, owner_user_id: int) -> Optional[ParticipantView]:
        for view in self.views:
            if view.owner_user_id == owner_user_id:
                return view
        return None


def join_meetings(interviews: Iterable[Interview]) -> Dict[int, Meeting]:
    """Group rows into meetings by their initiating id."""
    meetings: Dict[int, Meeting] = {}
    for interview in interviews:
        key = meeting_key(interview)
        meeting = meetings.setdefault(key, Meeting(key=key))
        meeting.views.append(ParticipantView.of(interview))
    return meetings


class MeetingIndex:
    """Meeting key -> ids of the rows a Store holds for that meeting."""

    def __init__(self):
        self._rows: Dict[int, set] = {}

    def add(self, interview: Interview) -> None:
        self._rows.setdefault(meeting_key(interview), set()).add(interview.id)

    def discard(self, interview: Interview) -> None:
        key = meeting_key(interview)
        rows = self._rows.get(key)
        if rows is None:
            return
        rows.discard(interview.id)
        if not rows:
            del self._rows[key]

    def clear(self) -> None:
        self._rows.clear()

    def rows_for(self, key: int) -> set:
        return set(self._rows.get(key, ()))

    def materializes(self, interview: Interview) -> bool:
        """True if another row of ``interview``'s meeting is already held.

        Covers the counterpart case: the candidate's row (linked to N) is
        held and the employer's row N arrives, or the reverse.
        """
        others = self.rows_for(meeting_key(interview)) | self.rows_for(interview.id)
        others.discard(interview.id)
        return bool(others)
