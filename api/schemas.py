from __future__ import annotations

from datetime import date as dt_date
from datetime import datetime as dt_datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class MessageOut(BaseModel):
    message: str


class UserOut(BaseModel):
    id: str
    email: str
    user_metadata: dict[str, Any] = {}


class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    user_type: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    created_at: Optional[dt_datetime] = None


class SessionOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: dt_datetime
    user: UserOut
    user_type: Optional[str] = None
    profile: Optional[dict[str, Any]] = None


class MetricOut(BaseModel):
    target: float
    actual: float


class WeeklyProgressOut(BaseModel):
    program_id: str
    program_title: str
    current_week: int
    total_weeks: int
    program_type: str
    metrics: dict[str, MetricOut]
    error: Optional[str] = None


class BackfillWeekOut(BaseModel):
    week: str
    status: str
    week_number: Optional[int] = None
    assignment_id: Optional[str] = None
    assigned: Optional[int] = None
    completed: Optional[int] = None
    badge_id: Optional[str] = None


class BackfillUserOut(BaseModel):
    userId: str
    status: str
    reason: Optional[str] = None
    error: Optional[str] = None
    badges: list[BackfillWeekOut] = []
    totalBadges: int = 0


class BackfillReportOut(BaseModel):
    success: bool
    message: str
    dryRun: bool
    totalAwarded: int = 0
    totalWouldAward: int = 0
    results: list[BackfillUserOut] = []
    error: Optional[str] = None


class AwardResultOut(BaseModel):
    status: str
    awarded: bool
    week: Optional[str] = None
    week_number: Optional[int] = None
    assigned: Optional[int] = None
    completed: Optional[int] = None
    badge_id: Optional[str] = None


class AwardUserOut(BaseModel):
    userId: str
    success: bool
    badgeAwarded: bool = False
    status: Optional[str] = None
    error: Optional[str] = None


class AwardRunOut(BaseModel):
    success: bool
    message: str
    automated: bool = False
    weekProcessed: Optional[str] = None
    totalAwarded: int = 0
    results: list[AwardUserOut] = []
    error: Optional[str] = None


class AssignmentOut(BaseModel):
    id: str
    user_id: str
    program_id: str
    assigned_by: Optional[str] = None
    start_date: dt_date
    end_date: Optional[dt_date] = None


class AssignedProgramOut(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    weeks: int
    program_type: str
    coach_id: Optional[str] = None


class AssignProgramOut(BaseModel):
    success: bool
    message: str
    assignment: AssignmentOut
    program: AssignedProgramOut


class FireBadgeOut(BaseModel):
    id: str
    user_id: str
    week_start: dt_date
    created_at: dt_datetime


class CompletionOut(BaseModel):
    id: str
    user_id: str
    workout_id: Optional[str] = None
    workout_type: str
    title: Optional[str] = None
    started_at: Optional[dt_datetime] = None
    completed_at: Optional[dt_datetime] = None
    distance: Optional[float] = None
    duration: Optional[float] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    rest_day: bool = False
    life_happens_pass: bool = False


class LifeHappensAllowanceOut(BaseModel):
    month: str
    limit: int
    used: int
    remaining: int


class InvitationOut(BaseModel):
    id: str
    email: Optional[str] = None
    user_type: str
    token: str
    created_at: dt_datetime
    expires_at: dt_datetime
    accepted: bool
    accepted_at: Optional[dt_datetime] = None
    is_share_link: bool
    share_link_type: Optional[str] = None
    status: str
    invite_link: str
    success: Optional[bool] = None
    email_sent: Optional[bool] = None
    email_error: Optional[str] = None


class InvitationListOut(BaseModel):
    pending: list[InvitationOut]
    expired: list[InvitationOut]
    accepted: list[InvitationOut]


class InvitationCheckOut(BaseModel):
    valid: bool
    user_type: str
    email: Optional[str] = None
    is_share_link: bool
    expires_at: dt_datetime


class UserEmailOut(BaseModel):
    id: str
    email: str
