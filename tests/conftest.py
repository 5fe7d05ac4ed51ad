from __future__ import annotations

from datetime import date, datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from core.config import get_settings
from core.models import Base, Profile, Program, ProgramAssignment, Workout, WorkoutCompletion, WorkoutWeek
from core.store import SqlStore


@pytest.fixture(autouse=True)
def _test_env(monkeypatch):
    monkeypatch.setenv("APP_ENV", "test")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    s = Session(engine, expire_on_commit=False)
    try:
        yield s
    finally:
        s.close()
        engine.dispose()


@pytest.fixture
def store(session):
    return SqlStore(session)


class Builder:
    """Small helpers for arranging programs, assignments and completions."""

    def __init__(self, session: Session):
        self.session = session

    def profile(self, email: str = "client@example.com", user_type: str = "client") -> Profile:
        p = Profile(email=email, password_hash="x", user_type=user_type, user_metadata={"user_type": user_type})
        self.session.add(p)
        self.session.flush()
        return p

    def program(self, weeks: int = 4, program_type: str = "strength", title: str = "Foundations", **week_targets) -> Program:
        program = Program(title=title, weeks=weeks, program_type=program_type)
        self.session.add(program)
        self.session.flush()
        for n in range(1, weeks + 1):
            self.session.add(WorkoutWeek(program_id=program.id, week_number=n, **week_targets))
        self.session.flush()
        return program

    def week(self, program: Program, week_number: int) -> WorkoutWeek:
        return next(w for w in SqlStore(self.session).list_weeks(program.id) if w.week_number == week_number)

    def workouts(self, week: WorkoutWeek, count: int = 2, workout_type: str = "strength") -> list[Workout]:
        rows = [Workout(week_id=week.id, title=f"W{i}", workout_type=workout_type, order_index=i) for i in range(count)]
        self.session.add_all(rows)
        self.session.flush()
        return rows

    def assign(self, user: Profile, program: Program, start: date, end: date | None = None) -> ProgramAssignment:
        a = ProgramAssignment(user_id=user.id, program_id=program.id, start_date=start, end_date=end)
        self.session.add(a)
        self.session.flush()
        return a

    def complete(self, user: Profile, completed_at: datetime, workout: Workout | None = None, **fields) -> WorkoutCompletion:
        fields.setdefault("workout_type", workout.workout_type if workout else "strength")
        row = WorkoutCompletion(
            user_id=user.id,
            workout_id=workout.id if workout else None,
            completed_at=completed_at,
            **fields,
        )
        self.session.add(row)
        self.session.flush()
        return row


@pytest.fixture
def build(session):
    return Builder(session)
