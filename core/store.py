"""Row-store access for the coaching services.

SqlStore wraps one SQLAlchemy session and exposes the reads and writes the
services need. Services take a store argument instead of opening sessions
themselves, so tests can hand them any object with the same methods.
"""

from __future__ import annotations

import datetime as dt
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.models import (
    AuthSession,
    FireBadge,
    GroupCoach,
    GroupMember,
    Invitation,
    Profile,
    Program,
    ProgramAssignment,
    Workout,
    WorkoutCompletion,
    WorkoutWeek,
)


class SqlStore:
    def __init__(self, session: Session):
        self.session = session

    # -- profiles / identity --

    def get_profile(self, user_id: str) -> Optional[Profile]:
        return self.session.get(Profile, user_id)

    def get_profile_by_email(self, email: str) -> Optional[Profile]:
        return self.session.execute(
            select(Profile).where(func.lower(Profile.email) == email.strip().lower())
        ).scalar_one_or_none()

    def add_profile(self, profile: Profile) -> Profile:
        self.session.add(profile)
        self.session.flush()
        return profile

    def add_auth_session(self, auth_session: AuthSession) -> AuthSession:
        self.session.add(auth_session)
        self.session.flush()
        return auth_session

    def get_auth_session(self, session_id: str) -> Optional[AuthSession]:
        return self.session.get(AuthSession, session_id)

    def get_user_emails(self, user_ids: Iterable[str]) -> list[dict[str, str]]:
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return []
        rows = self.session.execute(select(Profile.id, Profile.email).where(Profile.id.in_(ids))).all()
        return [{"id": r.id, "email": r.email} for r in rows]

    def client_ids(self, user_id: Optional[str] = None, group_id: Optional[str] = None) -> list[str]:
        q = select(Profile.id).where(Profile.user_type == "client")
        if user_id:
            q = q.where(Profile.id == user_id)
        if group_id:
            q = q.where(Profile.id.in_(select(GroupMember.user_id).where(GroupMember.group_id == group_id)))
        return list(self.session.execute(q.order_by(Profile.created_at, Profile.id)).scalars().all())

    def group_member_ids(self, group_id: str) -> list[str]:
        return list(
            self.session.execute(select(GroupMember.user_id).where(GroupMember.group_id == group_id)).scalars().all()
        )

    def is_coach_for_client(self, coach_id: str, client_id: str) -> bool:
        """True when the coach coaches a group the client belongs to, or assigned the client a program."""
        via_group = self.session.execute(
            select(GroupMember.id)
            .join(GroupCoach, GroupCoach.group_id == GroupMember.group_id)
            .where(GroupCoach.coach_id == coach_id, GroupMember.user_id == client_id)
            .limit(1)
        ).first()
        if via_group is not None:
            return True
        via_assignment = self.session.execute(
            select(ProgramAssignment.id)
            .where(ProgramAssignment.assigned_by == coach_id, ProgramAssignment.user_id == client_id)
            .limit(1)
        ).first()
        return via_assignment is not None

    # -- programs --

    def open_assignment(self, user_id: str) -> Optional[ProgramAssignment]:
        return self.session.execute(
            select(ProgramAssignment)
            .where(ProgramAssignment.user_id == user_id, ProgramAssignment.end_date.is_(None))
            .order_by(ProgramAssignment.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    def list_assignments(self, user_id: str) -> list[ProgramAssignment]:
        return list(
            self.session.execute(
                select(ProgramAssignment)
                .where(ProgramAssignment.user_id == user_id)
                .order_by(ProgramAssignment.start_date, ProgramAssignment.created_at)
            )
            .scalars()
            .all()
        )

    def open_assignments(self, user_id: str) -> list[ProgramAssignment]:
        return list(
            self.session.execute(
                select(ProgramAssignment).where(ProgramAssignment.user_id == user_id, ProgramAssignment.end_date.is_(None))
            )
            .scalars()
            .all()
        )

    def add_assignment(self, assignment: ProgramAssignment) -> ProgramAssignment:
        self.session.add(assignment)
        self.session.flush()
        return assignment

    def get_program(self, program_id: str) -> Optional[Program]:
        return self.session.get(Program, program_id)

    def get_week(self, program_id: str, week_number: int) -> Optional[WorkoutWeek]:
        return self.session.execute(
            select(WorkoutWeek).where(WorkoutWeek.program_id == program_id, WorkoutWeek.week_number == week_number)
        ).scalar_one_or_none()

    def list_weeks(self, program_id: str) -> list[WorkoutWeek]:
        return list(
            self.session.execute(
                select(WorkoutWeek).where(WorkoutWeek.program_id == program_id).order_by(WorkoutWeek.week_number)
            )
            .scalars()
            .all()
        )

    def get_workout(self, workout_id: str) -> Optional[Workout]:
        return self.session.get(Workout, workout_id)

    def workout_ids_for_week(self, week_id: str) -> list[str]:
        return list(
            self.session.execute(
                select(Workout.id).where(Workout.week_id == week_id).order_by(Workout.order_index)
            )
            .scalars()
            .all()
        )

    # -- completions --

    def add_completion(self, completion: WorkoutCompletion) -> WorkoutCompletion:
        self.session.add(completion)
        self.session.flush()
        return completion

    def get_completion(self, completion_id: str) -> Optional[WorkoutCompletion]:
        return self.session.get(WorkoutCompletion, completion_id)

    def open_completion(self, user_id: str, workout_id: str) -> Optional[WorkoutCompletion]:
        return self.session.execute(
            select(WorkoutCompletion)
            .where(
                WorkoutCompletion.user_id == user_id,
                WorkoutCompletion.workout_id == workout_id,
                WorkoutCompletion.completed_at.is_(None),
            )
            .limit(1)
        ).scalar_one_or_none()

    def list_completions(self, user_id: str, start: dt.datetime, end: dt.datetime) -> list[WorkoutCompletion]:
        """Finished completions with start <= completed_at < end."""
        return list(
            self.session.execute(
                select(WorkoutCompletion)
                .where(
                    WorkoutCompletion.user_id == user_id,
                    WorkoutCompletion.completed_at.is_not(None),
                    WorkoutCompletion.completed_at >= start,
                    WorkoutCompletion.completed_at < end,
                )
                .order_by(WorkoutCompletion.completed_at)
            )
            .scalars()
            .all()
        )

    def count_completed_workouts(
        self, user_id: str, workout_ids: list[str], start: dt.datetime, last_instant: dt.datetime
    ) -> int:
        """Distinct workouts finished with start <= completed_at <= last_instant."""
        if not workout_ids:
            return 0
        return int(
            self.session.execute(
                select(func.count(func.distinct(WorkoutCompletion.workout_id))).where(
                    WorkoutCompletion.user_id == user_id,
                    WorkoutCompletion.workout_id.in_(workout_ids),
                    WorkoutCompletion.completed_at.is_not(None),
                    WorkoutCompletion.completed_at >= start,
                    WorkoutCompletion.completed_at <= last_instant,
                )
            ).scalar_one()
        )

    def count_life_happens_passes(self, user_id: str, start: dt.datetime, end: dt.datetime) -> int:
        return int(
            self.session.execute(
                select(func.count(WorkoutCompletion.id)).where(
                    WorkoutCompletion.user_id == user_id,
                    WorkoutCompletion.life_happens_pass.is_(True),
                    WorkoutCompletion.completed_at >= start,
                    WorkoutCompletion.completed_at < end,
                )
            ).scalar_one()
        )

    # -- fire badges --

    def badge_exists(self, user_id: str, week_start: dt.date) -> bool:
        return (
            self.session.execute(
                select(FireBadge.id).where(FireBadge.user_id == user_id, FireBadge.week_start == week_start)
            ).first()
            is not None
        )

    def insert_badge(self, user_id: str, week_start: dt.date) -> Optional[FireBadge]:
        """Insert a badge; returns None when the (user, week) pair already has one."""
        badge = FireBadge(user_id=user_id, week_start=week_start)
        try:
            with self.session.begin_nested():
                self.session.add(badge)
        except IntegrityError:
            return None
        return badge

    def list_badges(self, user_id: str) -> list[FireBadge]:
        return list(
            self.session.execute(
                select(FireBadge).where(FireBadge.user_id == user_id).order_by(FireBadge.week_start.desc())
            )
            .scalars()
            .all()
        )

    # -- invitations --

    def add_invitation(self, invitation: Invitation) -> Invitation:
        self.session.add(invitation)
        self.session.flush()
        return invitation

    def get_invitation(self, invitation_id: str) -> Optional[Invitation]:
        return self.session.get(Invitation, invitation_id)

    def get_invitation_by_token(self, token: str) -> Optional[Invitation]:
        return self.session.execute(select(Invitation).where(Invitation.token == token)).scalar_one_or_none()

    def list_invitations(self) -> list[Invitation]:
        return list(self.session.execute(select(Invitation).order_by(Invitation.created_at.desc())).scalars().all())
