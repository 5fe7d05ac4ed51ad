"""Pydantic validation models for all user-facing data entry points."""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

UserType = Literal["admin", "coach", "client"]


class SignInInput(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)
    user_type: UserType


class SignUpInput(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)
    user_type: UserType
    first_name: Optional[str] = Field(default=None, max_length=80)
    last_name: Optional[str] = Field(default=None, max_length=80)
    invitation_token: Optional[str] = None


class RunActivityInput(BaseModel):
    distance: float = Field(gt=0, description="Miles")
    duration: float = Field(gt=0, description="Minutes")
    completed_at: Optional[datetime] = None
    title: Optional[str] = Field(default=None, max_length=160)
    location: Optional[str] = Field(default=None, max_length=160)
    notes: str = Field(default="", max_length=2000)


class CardioActivityInput(BaseModel):
    activity_type: str = Field(min_length=1, max_length=60)
    duration: float = Field(gt=0, description="Minutes")
    completed_at: Optional[datetime] = None
    notes: str = Field(default="", max_length=2000)

    @field_validator("activity_type")
    @classmethod
    def strip_activity_type(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("activity_type must not be blank")
        return v


class RestDayInput(BaseModel):
    day: Optional[date] = None
    notes: str = Field(default="", max_length=2000)


class InvitationCreateInput(BaseModel):
    email: EmailStr
    user_type: UserType


class ShareLinkInput(BaseModel):
    user_type: UserType


class WeeklyProgressRequest(BaseModel):
    client_id: Optional[str] = None


class BackfillRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    group_id: Optional[str] = Field(default=None, alias="groupId")
    dry_run: bool = Field(default=False, alias="dryRun")


class AwardFireBadgesRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    group_id: Optional[str] = Field(default=None, alias="groupId")
    week_start: Optional[date] = Field(default=None, alias="weekStart")
    is_automated_run: bool = Field(default=False, alias="isAutomatedRun")
    process_previous_week: bool = Field(default=False, alias="processPreviousWeek")


class AssignProgramInput(BaseModel):
    client_id: str = Field(min_length=1, max_length=36)
    start_date: Optional[date] = None


class UserEmailsRequest(BaseModel):
    user_ids: list[str] = Field(default_factory=list, max_length=500)


class LifeHappensInput(BaseModel):
    workout_id: Optional[str] = None
    notes: str = Field(default="", max_length=2000)


class CompleteWorkoutInput(BaseModel):
    completed_at: Optional[datetime] = None
    duration: Optional[float] = Field(default=None, gt=0)
    distance: Optional[float] = Field(default=None, gt=0)
