from __future__ import annotations

import datetime as dt
import uuid
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

USER_TYPES = ("admin", "coach", "client")
PROGRAM_TYPES = ("strength", "run")
WORKOUT_TYPES = ("strength", "bodyweight", "flexibility", "running", "cardio", "custom", "one_off", "rest_day")


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class Profile(Base):
    __tablename__ = "profiles"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(String(200), unique=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    user_type: Mapped[str] = mapped_column(String(16))
    first_name: Mapped[Optional[str]] = mapped_column(String(80))
    last_name: Mapped[Optional[str]] = mapped_column(String(80))
    user_metadata: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=_utcnow)
    __table_args__ = (CheckConstraint("user_type in ('admin', 'coach', 'client')", name="ck_profile_user_type"),)


class AuthSession(Base):
    __tablename__ = "auth_sessions"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(ForeignKey("profiles.id"), index=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=_utcnow)
    expires_at: Mapped[dt.datetime] = mapped_column(DateTime)
    revoked_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime)


class Program(Base):
    __tablename__ = "programs"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(String(160))
    description: Mapped[Optional[str]] = mapped_column(Text)
    weeks: Mapped[int] = mapped_column(Integer)
    program_type: Mapped[str] = mapped_column(String(16), default="strength")
    coach_id: Mapped[Optional[str]] = mapped_column(ForeignKey("profiles.id"))
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=_utcnow)
    __table_args__ = (CheckConstraint("weeks >= 1", name="ck_program_weeks_positive"),)


class WorkoutWeek(Base):
    __tablename__ = "workout_weeks"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    program_id: Mapped[str] = mapped_column(ForeignKey("programs.id"), index=True)
    week_number: Mapped[int] = mapped_column(Integer)
    title: Mapped[Optional[str]] = mapped_column(String(160))
    target_miles_run: Mapped[Optional[float]] = mapped_column(Float)
    target_cardio_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    target_strength_workouts: Mapped[Optional[int]] = mapped_column(Integer)
    target_strength_mobility_workouts: Mapped[Optional[int]] = mapped_column(Integer)
    __table_args__ = (
        UniqueConstraint("program_id", "week_number", name="uq_workout_week_number"),
        CheckConstraint("week_number >= 1", name="ck_week_number_positive"),
    )


class Workout(Base):
    __tablename__ = "workouts"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    week_id: Mapped[str] = mapped_column(ForeignKey("workout_weeks.id"), index=True)
    title: Mapped[str] = mapped_column(String(160))
    workout_type: Mapped[str] = mapped_column(String(20), default="strength")
    day_of_week: Mapped[Optional[int]] = mapped_column(Integer)
    order_index: Mapped[int] = mapped_column(Integer, default=0)


class ProgramAssignment(Base):
    __tablename__ = "program_assignments"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(ForeignKey("profiles.id"), index=True)
    program_id: Mapped[str] = mapped_column(ForeignKey("programs.id"), index=True)
    start_date: Mapped[dt.date] = mapped_column(Date)
    end_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    assigned_by: Mapped[Optional[str]] = mapped_column(ForeignKey("profiles.id"))
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=_utcnow)


class WorkoutCompletion(Base):
    __tablename__ = "workout_completions"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(ForeignKey("profiles.id"), index=True)
    workout_id: Mapped[Optional[str]] = mapped_column(ForeignKey("workouts.id"), index=True)
    started_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime)
    completed_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, index=True)
    workout_type: Mapped[str] = mapped_column(String(20))
    title: Mapped[Optional[str]] = mapped_column(String(160))
    distance: Mapped[Optional[float]] = mapped_column(Float)
    duration: Mapped[Optional[float]] = mapped_column(Float)
    location: Mapped[Optional[str]] = mapped_column(String(160))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    rest_day: Mapped[bool] = mapped_column(Boolean, default=False)
    life_happens_pass: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=_utcnow)


class FireBadge(Base):
    __tablename__ = "fire_badges"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(ForeignKey("profiles.id"), index=True)
    week_start: Mapped[dt.date] = mapped_column(Date)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=_utcnow)
    __table_args__ = (UniqueConstraint("user_id", "week_start", name="uq_fire_badge_week"),)


class Group(Base):
    __tablename__ = "groups"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(120))
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=_utcnow)


class GroupMember(Base):
    __tablename__ = "group_members"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    group_id: Mapped[str] = mapped_column(ForeignKey("groups.id"), index=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("profiles.id"), index=True)
    joined_at: Mapped[dt.datetime] = mapped_column(DateTime, default=_utcnow)
    __table_args__ = (UniqueConstraint("group_id", "user_id", name="uq_group_member"),)


class GroupCoach(Base):
    __tablename__ = "group_coaches"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    group_id: Mapped[str] = mapped_column(ForeignKey("groups.id"), index=True)
    coach_id: Mapped[str] = mapped_column(ForeignKey("profiles.id"), index=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=_utcnow)
    __table_args__ = (UniqueConstraint("group_id", "coach_id", name="uq_group_coach"),)


class Invitation(Base):
    __tablename__ = "invitations"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[Optional[str]] = mapped_column(String(200))
    user_type: Mapped[str] = mapped_column(String(16))
    token: Mapped[str] = mapped_column(String(36), unique=True, default=_uuid)
    invited_by: Mapped[Optional[str]] = mapped_column(ForeignKey("profiles.id"))
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=_utcnow)
    expires_at: Mapped[dt.datetime] = mapped_column(DateTime)
    accepted: Mapped[bool] = mapped_column(Boolean, default=False)
    accepted_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime)
    is_share_link: Mapped[bool] = mapped_column(Boolean, default=False)
    share_link_type: Mapped[Optional[str]] = mapped_column(String(16))
