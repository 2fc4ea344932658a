"""
Invitation State Machine for employer-initiated interviews.

    none                     (self-created row, no transitions)
    pending -> accepted      (terminal)
    pending -> declined      (terminal)

Only the candidate may leave ``pending``: the caller must own the row and
the row must be the linked (candidate-side) copy of the meeting. A
transition only sends the command; the row changes when the service echoes
a status-updated event through the Reconciler.
"""
import asyncio
import logging
from enum import Enum
from typing import Dict, Optional

from errors import InvalidTransition, NotInvitee, TrackerError
from state import Interview, InvitationStatus
from tracker_client import TrackerClient

logger = logging.getLogger(__name__)


class InvitationAction(str, Enum):
    ACCEPT = "accept"
    DECLINE = "decline"


TRANSITIONS = {
    (InvitationStatus.PENDING, InvitationAction.ACCEPT): InvitationStatus.ACCEPTED,
    (InvitationStatus.PENDING, InvitationAction.DECLINE): InvitationStatus.DECLINED,
}


def next_status(current: InvitationStatus, action: InvitationAction) -> InvitationStatus:
    target = TRANSITIONS.get((current, action))
    if target is None:
        raise InvalidTransition(
            f"Cannot {action.value} an invitation that is {current.value}",
            current=current.value,
            action=action.value,
        )
    return target


class InvitationStateMachine:
    def __init__(self, client: TrackerClient, self_user_id: int):
        self.client = client
        self.self_user_id = self_user_id
        # interview id -> status we expect the service to echo
        self._awaiting: Dict[int, InvitationStatus] = {}

    async def respond(self, interview: Interview, action: InvitationAction) -> InvitationStatus:
        """Send accept/decline for ``interview``; returns the expected status.

        Command errors propagate and leave nothing awaiting.
        """
        action = InvitationAction(action)
        if not interview.is_invitation:
            raise InvalidTransition(f"Interview {interview.id} is not an invitation")
        if interview.owner_user_id != self.self_user_id or interview.linked_interview_id is None:
            raise NotInvitee(
                f"Only the invited candidate can {action.value} interview {interview.id}",
                interview=interview.id,
            )
        if interview.id in self._awaiting:
            raise InvalidTransition(f"Interview {interview.id} already has a response in flight")

        target = next_status(interview.invitation_status, action)
        self._awaiting[interview.id] = target
        try:
            await asyncio.to_thread(self.client.respond_invitation, interview.id, action.value)
        except TrackerError:
            self._awaiting.pop(interview.id, None)
            raise
        logger.info("Sent %s for invitation %s", action.value, interview.id)
        return target

    async def accept(self, interview: Interview) -> InvitationStatus:
        return await self.respond(interview, InvitationAction.ACCEPT)

    async def decline(self, interview: Interview) -> InvitationStatus:
        return await self.respond(interview, InvitationAction.DECLINE)

    def is_awaiting(self, interview_id: int) -> bool:
        return interview_id in self._awaiting

    def expected(self, interview_id: int) -> Optional[InvitationStatus]:
        return self._awaiting.get(interview_id)

    def acknowledge(self, interview: Interview) -> None:
        """Called with each row the Reconciler applied."""
        expected = self._awaiting.get(interview.id)
        if expected is None or interview.invitation_status == InvitationStatus.PENDING:
            return
        del self._awaiting[interview.id]
        if interview.invitation_status != expected:
            logger.warning(
                "Invitation %s settled as %s, expected %s",
                interview.id, interview.invitation_status.value, expected.value,
            )

    def forget(self, interview_id: int) -> None:
        self._awaiting.pop(interview_id, None)
