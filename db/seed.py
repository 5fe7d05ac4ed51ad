"""Demo data seeder.

Creates an admin, a coach and a client, a four-week strength program with
its weekly targets and workouts, and an open assignment for the client that
starts on the Monday of the current week.
"""
from __future__ import annotations

from datetime import date, timedelta
from typing import Optional

from sqlalchemy import select

from core.db import create_schema, session_scope
from core.models import Group, GroupCoach, GroupMember, Profile, Program, ProgramAssignment, Workout, WorkoutWeek
from core.security import hash_password

DEMO_PASSWORDS = {
    "admin@demo.moai": "AdminPass!2345",
    "coach@demo.moai": "CoachPass!2345",
    "client@demo.moai": "ClientPass!2345",
}

DEMO_PROFILES = [
    ("admin@demo.moai", "admin", "Ada", "Admin"),
    ("coach@demo.moai", "coach", "Cole", "Coach"),
    ("client@demo.moai", "client", "Casey", "Client"),
]

# (title, workout_type, day_of_week) per program week
WEEK_TEMPLATE = [
    ("Full Body Strength A", "strength", 0),
    ("Mobility Flow", "flexibility", 2),
    ("Full Body Strength B", "strength", 4),
    ("Bodyweight Circuit", "bodyweight", 5),
]


def seed_profiles() -> dict[str, str]:
    ids: dict[str, str] = {}
    with session_scope() as s:
        for email, user_type, first_name, last_name in DEMO_PROFILES:
            profile = s.execute(select(Profile).where(Profile.email == email)).scalar_one_or_none()
            if profile is None:
                profile = Profile(
                    email=email,
                    password_hash=hash_password(DEMO_PASSWORDS[email]),
                    user_type=user_type,
                    first_name=first_name,
                    last_name=last_name,
                    user_metadata={"user_type": user_type, "first_name": first_name, "last_name": last_name},
                )
                s.add(profile)
                s.flush()
            ids[user_type] = profile.id
    return ids


def seed_program(coach_id: Optional[str], weeks: int = 4) -> str:
    title = "Moai Strength Foundations"
    with session_scope() as s:
        program = s.execute(select(Program).where(Program.title == title)).scalar_one_or_none()
        if program is not None:
            return program.id
        program = Program(
            title=title,
            description="Four weeks of full-body strength with a weekly mobility session.",
            weeks=weeks,
            program_type="strength",
            coach_id=coach_id,
        )
        s.add(program)
        s.flush()
        for week_number in range(1, weeks + 1):
            week = WorkoutWeek(
                program_id=program.id,
                week_number=week_number,
                title=f"Week {week_number}",
                target_cardio_minutes=60 + 15 * (week_number - 1),
                target_strength_workouts=3,
                target_strength_mobility_workouts=1,
            )
            s.add(week)
            s.flush()
            for order_index, (workout_title, workout_type, day) in enumerate(WEEK_TEMPLATE):
                s.add(
                    Workout(
                        week_id=week.id,
                        title=workout_title,
                        workout_type=workout_type,
                        day_of_week=day,
                        order_index=order_index,
                    )
                )
        return program.id


def seed_assignment(client_id: str, program_id: str, assigned_by: Optional[str], start: Optional[date] = None) -> str:
    start = start or (date.today() - timedelta(days=date.today().weekday()))
    with session_scope() as s:
        existing = s.execute(
            select(ProgramAssignment).where(
                ProgramAssignment.user_id == client_id,
                ProgramAssignment.program_id == program_id,
                ProgramAssignment.end_date.is_(None),
            )
        ).scalar_one_or_none()
        if existing is not None:
            return existing.id
        assignment = ProgramAssignment(user_id=client_id, program_id=program_id, start_date=start, assigned_by=assigned_by)
        s.add(assignment)
        s.flush()
        return assignment.id


def seed_group(member_ids: list[str], coach_ids: tuple[str, ...] = ()) -> str:
    with session_scope() as s:
        group = s.execute(select(Group).where(Group.name == "Demo Moai")).scalar_one_or_none()
        if group is None:
            group = Group(name="Demo Moai", description="Demo accountability group")
            s.add(group)
            s.flush()
        present = set(s.execute(select(GroupMember.user_id).where(GroupMember.group_id == group.id)).scalars())
        for user_id in member_ids:
            if user_id not in present:
                s.add(GroupMember(group_id=group.id, user_id=user_id))
        coaching = set(s.execute(select(GroupCoach.coach_id).where(GroupCoach.group_id == group.id)).scalars())
        for coach_id in coach_ids:
            if coach_id not in coaching:
                s.add(GroupCoach(group_id=group.id, coach_id=coach_id))
        return group.id


def seed_demo() -> dict[str, str]:
    create_schema()
    ids = seed_profiles()
    program_id = seed_program(ids["coach"])
    assignment_id = seed_assignment(ids["client"], program_id, ids["coach"])
    group_id = seed_group([ids["client"]], coach_ids=(ids["coach"],))
    return {**ids, "program": program_id, "assignment": assignment_id, "group": group_id}


if __name__ == "__main__":
    result = seed_demo()
    print("Seed complete:", ", ".join(f"{k}={v}" for k, v in result.items()))
