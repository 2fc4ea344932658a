"""
Interview tracker API routes.
Exposes the live TrackerSession to the front end.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from calendar_projector import weeks
from invitations import InvitationAction
from state import (
    AccessGrant,
    DayBucket,
    Interview,
    InterviewResult,
    InterviewStatus,
    InvitationStatus,
    TrackerStats,
    UserSummary,
    YearMonth,
)
from tracker import TrackerSession

router = APIRouter(prefix="/api", tags=["interview-tracker"])

# The session is created by the app lifespan (or injected by tests)
_session: Optional[TrackerSession] = None


def set_session(session: Optional[TrackerSession]) -> None:
    global _session
    _session = session


def get_session() -> TrackerSession:
    if _session is None:
        raise HTTPException(status_code=503, detail="Tracker session not started")
    return _session


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InvitationRequest(CamelModel):
    action: InvitationAction


class InvitationResponse(CamelModel):
    interview_id: int
    expected_status: InvitationStatus


class StatusRequest(CamelModel):
    status: InterviewStatus


class ResultRequest(CamelModel):
    result: Optional[InterviewResult] = None


class GrantRequest(CamelModel):
    target_id: int


class AccessListing(CamelModel):
    granted_by_me: List[AccessGrant]
    granted_to_me: List[AccessGrant]


class CommandAccepted(CamelModel):
    status: str = "sent"
    data: Optional[Dict[str, Any]] = None


def _month(year: int, month: int) -> YearMonth:
    try:
        return YearMonth(year=year, month=month)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Invalid month {year}-{month}")


# =============================================================================
# INTERVIEWS
# =============================================================================

@router.get("/interviews", response_model=List[Interview])
async def list_interviews(status: str = "all", session: TrackerSession = Depends(get_session)):
    """Own schedule, optionally filtered by status."""
    if status != "all" and status not in {s.value for s in InterviewStatus}:
        raise HTTPException(status_code=422, detail=f"Unknown status '{status}'")
    return session.interviews(status)


@router.get("/interviews/upcoming", response_model=List[Interview])
async def list_upcoming(session: TrackerSession = Depends(get_session)):
    return session.upcoming()


@router.get("/stats", response_model=TrackerStats)
async def get_stats(session: TrackerSession = Depends(get_session)):
    return session.stats()


@router.get("/calendar", response_model=List[DayBucket])
async def get_calendar(
    year: int = Query(...),
    month: int = Query(...),
    session: TrackerSession = Depends(get_session),
):
    """42-day month grid, Monday first."""
    return session.calendar(_month(year, month))


@router.get("/calendar/weeks", response_model=List[List[DayBucket]])
async def get_calendar_weeks(
    year: int = Query(...),
    month: int = Query(...),
    session: TrackerSession = Depends(get_session),
):
    return weeks(session.calendar(_month(year, month)))


@router.post("/interviews", response_model=CommandAccepted, status_code=202)
async def create_interview(fields: Dict[str, Any], session: TrackerSession = Depends(get_session)):
    return CommandAccepted(data=await session.create_interview(fields))


@router.put("/interviews/{interview_id}", response_model=CommandAccepted, status_code=202)
async def update_interview(
    interview_id: int,
    fields: Dict[str, Any],
    session: TrackerSession = Depends(get_session),
):
    return CommandAccepted(data=await session.update_interview(interview_id, fields))


@router.patch("/interviews/{interview_id}/status", response_model=CommandAccepted, status_code=202)
async def update_status(
    interview_id: int,
    request: StatusRequest,
    session: TrackerSession = Depends(get_session),
):
    await session.set_status(interview_id, request.status)
    return CommandAccepted()


@router.patch("/interviews/{interview_id}/result", response_model=CommandAccepted, status_code=202)
async def update_result(
    interview_id: int,
    request: ResultRequest,
    session: TrackerSession = Depends(get_session),
):
    await session.set_result(interview_id, request.result)
    return CommandAccepted()


@router.delete("/interviews/{interview_id}", response_model=CommandAccepted, status_code=202)
async def delete_interview(interview_id: int, session: TrackerSession = Depends(get_session)):
    await session.delete_interview(interview_id)
    return CommandAccepted()


@router.patch("/interviews/{interview_id}/invitation", response_model=InvitationResponse, status_code=202)
async def respond_invitation(
    interview_id: int,
    request: InvitationRequest,
    session: TrackerSession = Depends(get_session),
):
    """Accept or decline; the row changes when the service echoes the event."""
    expected = await session.respond_invitation(interview_id, request.action)
    return InvitationResponse(interview_id=interview_id, expected_status=expected)


# =============================================================================
# ACCESS
# =============================================================================

@router.get("/access", response_model=AccessListing)
async def list_access(session: TrackerSession = Depends(get_session)):
    return AccessListing(
        granted_by_me=session.registry.list_granted_by_me(),
        granted_to_me=session.registry.list_granted_to_me(),
    )


@router.get("/access/targets", response_model=List[UserSummary])
async def search_targets(q: str = "", session: TrackerSession = Depends(get_session)):
    return await session.grant_targets(q)


@router.post("/access", response_model=AccessGrant, status_code=201)
async def grant_access(request: GrantRequest, session: TrackerSession = Depends(get_session)):
    return await session.grant_access(request.target_id)


@router.delete("/access/{grant_id}", status_code=204)
async def revoke_access(grant_id: int, session: TrackerSession = Depends(get_session)):
    await session.revoke_access(grant_id)


@router.post("/access/{user_id}/calendar", response_model=List[Interview])
async def open_calendar(user_id: int, session: TrackerSession = Depends(get_session)):
    """Open the read-only view of a user who shared their calendar."""
    view = await session.open_delegated_view(user_id)
    return view.store.all()


@router.get("/access/{user_id}/calendar", response_model=List[DayBucket])
async def read_calendar(
    user_id: int,
    year: int = Query(...),
    month: int = Query(...),
    session: TrackerSession = Depends(get_session),
):
    return session.delegated_calendar(user_id, _month(year, month))


@router.delete("/access/{user_id}/calendar", status_code=204)
async def close_calendar(user_id: int, session: TrackerSession = Depends(get_session)):
    if not session.close_delegated_view(user_id):
        raise HTTPException(status_code=404, detail="No open view for that user")
