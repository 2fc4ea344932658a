"""
State definitions for the Interview Tracker sync engine.

Wire payloads use camelCase keys (``ownerUserId``, ``linkedInterviewId``...);
the models accept either spelling and dump camelCase with ``by_alias=True``.
"""
import calendar
from datetime import date as Date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


# =============================================================================
# ENUMS
# =============================================================================

class Role(str, Enum):
    GRADUATE = "graduate"
    EMPLOYER = "employer"


class InterviewStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class InterviewResult(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    PENDING = "pending"


class InvitationStatus(str, Enum):
    NONE = "none"  # self-created record, no invitation semantics
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class InterviewType(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    PHONE = "phone"


class ChangeKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    STATUS_UPDATED = "status-updated"
    RESULT_UPDATED = "result-updated"
    DELETED = "deleted"


class AccessChangeKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class ScopeKind(str, Enum):
    SELF = "self"
    DELEGATED = "delegated"


# Kinds that carry the full resulting record
UPSERT_KINDS = (ChangeKind.UPDATED, ChangeKind.STATUS_UPDATED, ChangeKind.RESULT_UPDATED)


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# =============================================================================
# INTERVIEW
# =============================================================================

class Interview(WireModel):
    """One row of a user's schedule. A meeting set up by an employer exists
    as two rows, one per participant, joined by ``linked_interview_id``."""

    id: int
    owner_user_id: int
    date: Date
    time: str  # HH:MM, local
    status: InterviewStatus = InterviewStatus.SCHEDULED
    result: Optional[InterviewResult] = None
    invitation_status: InvitationStatus = InvitationStatus.NONE
    linked_interview_id: Optional[int] = None

    company: str = ""
    position: str = ""
    type: InterviewType = InterviewType.ONLINE
    location: Optional[str] = None
    meeting_link: Optional[str] = None
    contact_person: Optional[str] = None
    contact_phone: Optional[str] = None
    notes: Optional[str] = None
    reminder: bool = False
    feedback: Optional[str] = None

    @field_validator("date", mode="before")
    @classmethod
    def _strip_timestamp(cls, value):
        # Some endpoints send full ISO timestamps for the date column
        if isinstance(value, str) and "T" in value:
            return value.split("T", 1)[0]
        return value

    @field_validator("time", mode="before")
    @classmethod
    def _normalize_time(cls, value):
        if value is None or value == "":
            return "00:00"
        text = str(value).strip()
        try:
            parsed = datetime.strptime(text[:5], "%H:%M")
        except ValueError:
            raise ValueError(f"time must be HH:MM, got {value!r}")
        return parsed.strftime("%H:%M")

    @field_validator("invitation_status", mode="before")
    @classmethod
    def _none_invitation(cls, value):
        return InvitationStatus.NONE if value is None else value

    @property
    def sort_key(self):
        return (self.date, self.time, self.id)

    @property
    def is_invitation(self) -> bool:
        return self.invitation_status != InvitationStatus.NONE

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# ACCESS GRANTS
# =============================================================================

class UserSummary(WireModel):
    """Public profile fields shown next to a grant or in the grant search."""
    id: int
    username: str = ""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company_name: Optional[str] = None
    avatar: Optional[str] = None
    email: Optional[str] = None

    @property
    def display_name(self) -> str:
        if self.company_name:
            return self.company_name
        if self.last_name and self.first_name:
            return f"{self.last_name} {self.first_name}"
        return self.username


class AccessGrant(WireModel):
    """Directed edge grantor -> grantee: grantee may read grantor's schedule."""
    id: int
    grantor_id: int
    grantee_id: int
    created_at: Optional[datetime] = None
    grantor: Optional[UserSummary] = None
    grantee: Optional[UserSummary] = None

    @property
    def pair(self):
        return (self.grantor_id, self.grantee_id)


# =============================================================================
# VIEW SCOPE
# =============================================================================

class ViewScope(WireModel):
    kind: ScopeKind
    target_user_id: Optional[int] = None

    @model_validator(mode="after")
    def _check_target(self):
        if self.kind == ScopeKind.DELEGATED and self.target_user_id is None:
            raise ValueError("delegated scope requires target_user_id")
        if self.kind == ScopeKind.SELF and self.target_user_id is not None:
            raise ValueError("self scope takes no target_user_id")
        return self

    @classmethod
    def own(cls) -> "ViewScope":
        return cls(kind=ScopeKind.SELF)

    @classmethod
    def delegated(cls, target_user_id: int) -> "ViewScope":
        return cls(kind=ScopeKind.DELEGATED, target_user_id=target_user_id)

    @property
    def is_delegated(self) -> bool:
        return self.kind == ScopeKind.DELEGATED

    def __str__(self) -> str:
        if self.is_delegated:
            return f"Delegated({self.target_user_id})"
        return "Self"


# =============================================================================
# CHANGE EVENTS
# =============================================================================

class ChangeEvent(WireModel):
    """Normalized push notification about one interview row.

    ``interview`` may be None only for ``deleted``, whose payload often
    carries nothing but the id.
    """
    kind: ChangeKind
    interview_id: int
    interview: Optional[Interview] = None
    owner_user_id: Optional[int] = None

    @model_validator(mode="after")
    def _check_payload(self):
        if self.kind != ChangeKind.DELETED and self.interview is None:
            raise ValueError(f"{self.kind.value} event requires a full interview")
        if self.interview is not None and self.interview.id != self.interview_id:
            raise ValueError("interview_id does not match interview.id")
        return self

    @classmethod
    def of(cls, kind: ChangeKind, interview: Interview) -> "ChangeEvent":
        return cls(
            kind=kind,
            interview_id=interview.id,
            interview=interview,
            owner_user_id=interview.owner_user_id,
        )


class AccessChangeEvent(WireModel):
    kind: AccessChangeKind
    access: AccessGrant


# =============================================================================
# CALENDAR
# =============================================================================

class YearMonth(WireModel):
    year: int
    month: int = Field(ge=1, le=12)

    @classmethod
    def of(cls, day: Date) -> "YearMonth":
        return cls(year=day.year, month=day.month)

    @classmethod
    def parse(cls, text: str) -> "YearMonth":
        """Parse ``YYYY-MM``."""
        year, _, month = text.partition("-")
        return cls(year=int(year), month=int(month))

    @property
    def first_day(self) -> Date:
        return Date(self.year, self.month, 1)

    @property
    def days_in_month(self) -> int:
        return calendar.monthrange(self.year, self.month)[1]

    def next(self) -> "YearMonth":
        if self.month == 12:
            return YearMonth(year=self.year + 1, month=1)
        return YearMonth(year=self.year, month=self.month + 1)

    def previous(self) -> "YearMonth":
        if self.month == 1:
            return YearMonth(year=self.year - 1, month=12)
        return YearMonth(year=self.year, month=self.month - 1)

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


class DayBucket(WireModel):
    date: Date
    out_of_month: bool
    is_today: bool = False
    interviews: List[Interview] = Field(default_factory=list)


class TrackerStats(WireModel):
    total: int = 0
    scheduled: int = 0
    completed: int = 0
    passed: int = 0
