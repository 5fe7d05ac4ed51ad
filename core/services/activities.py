"""Client activity logging.

Every logged activity becomes a ``WorkoutCompletion`` row. Starting an
assigned workout creates a placeholder row with ``completed_at`` unset;
completing it stamps ``completed_at``.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Optional

from core.config import Settings, get_settings
from core.errors import NotFound, PermissionDenied, ValidationFailed
from core.models import WorkoutCompletion
from core.services.program_weeks import calendar_month_window, local_today
from core.validators import CardioActivityInput, RestDayInput, RunActivityInput

logger = logging.getLogger(__name__)

MAX_MONTHLY_PASSES = 2


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


def _as_utc_naive(value: Optional[dt.datetime]) -> dt.datetime:
    if value is None:
        return _utcnow()
    if value.tzinfo is not None:
        return value.astimezone(dt.timezone.utc).replace(tzinfo=None)
    return value


def completion_payload(row: WorkoutCompletion) -> dict[str, Any]:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "workout_id": row.workout_id,
        "workout_type": row.workout_type,
        "title": row.title,
        "started_at": row.started_at,
        "completed_at": row.completed_at,
        "distance": row.distance,
        "duration": row.duration,
        "location": row.location,
        "notes": row.notes,
        "rest_day": bool(row.rest_day),
        "life_happens_pass": bool(row.life_happens_pass),
    }


def log_run(store, user_id: str, body: RunActivityInput) -> WorkoutCompletion:
    row = store.add_completion(
        WorkoutCompletion(
            user_id=user_id,
            workout_type="running",
            title=body.title or "Run",
            distance=body.distance,
            duration=body.duration,
            location=body.location,
            notes=body.notes,
            completed_at=_as_utc_naive(body.completed_at),
        )
    )
    logger.info("activity_logged", extra={"user_id": user_id, "activity": "run", "completion_id": row.id})
    return row


def log_cardio(store, user_id: str, body: CardioActivityInput) -> WorkoutCompletion:
    row = store.add_completion(
        WorkoutCompletion(
            user_id=user_id,
            workout_type="cardio",
            title=body.activity_type,
            duration=body.duration,
            notes=body.notes,
            completed_at=_as_utc_naive(body.completed_at),
        )
    )
    logger.info("activity_logged", extra={"user_id": user_id, "activity": "cardio", "completion_id": row.id})
    return row


def _noon_utc(day: Optional[dt.date]) -> dt.datetime:
    if day is None:
        return _utcnow()
    return dt.datetime.combine(day, dt.time(hour=12))


def log_rest_day(store, user_id: str, body: RestDayInput) -> WorkoutCompletion:
    row = store.add_completion(
        WorkoutCompletion(
            user_id=user_id,
            workout_type="rest_day",
            title="Rest Day",
            notes=body.notes,
            rest_day=True,
            completed_at=_noon_utc(body.day),
        )
    )
    logger.info("activity_logged", extra={"user_id": user_id, "activity": "rest_day", "completion_id": row.id})
    return row


def life_happens_allowance(
    store,
    user_id: str,
    now: Optional[dt.datetime] = None,
    settings: Optional[Settings] = None,
) -> dict[str, Any]:
    """Passes used and left in the current calendar month of the reference timezone."""
    settings = settings or get_settings()
    now = now or dt.datetime.now(dt.timezone.utc)
    today = local_today(now, settings.reference_timezone)
    start, end = calendar_month_window(today, settings.reference_timezone)
    used = store.count_life_happens_passes(user_id, start, end)
    return {
        "month": today.strftime("%Y-%m"),
        "limit": MAX_MONTHLY_PASSES,
        "used": used,
        "remaining": max(0, MAX_MONTHLY_PASSES - used),
    }


def use_life_happens_pass(
    store,
    user_id: str,
    workout_id: Optional[str] = None,
    notes: str = "",
    now: Optional[dt.datetime] = None,
    settings: Optional[Settings] = None,
) -> WorkoutCompletion:
    """Mark a workout (or the day) as excused, at most MAX_MONTHLY_PASSES a month."""
    now = now or dt.datetime.now(dt.timezone.utc)
    allowance = life_happens_allowance(store, user_id, now=now, settings=settings)
    if allowance["remaining"] <= 0:
        raise ValidationFailed(f"You have used all {MAX_MONTHLY_PASSES} Life Happens passes for this month")
    title = "Life Happens Pass"
    workout_type = "one_off"
    if workout_id is not None:
        workout = store.get_workout(workout_id)
        if workout is None:
            raise NotFound("Workout not found")
        title = workout.title
        workout_type = workout.workout_type
    row = store.add_completion(
        WorkoutCompletion(
            user_id=user_id,
            workout_id=workout_id,
            workout_type=workout_type,
            title=title,
            notes=notes,
            life_happens_pass=True,
            completed_at=_as_utc_naive(now),
        )
    )
    logger.info(
        "life_happens_pass_used",
        extra={"user_id": user_id, "workout_id": workout_id, "remaining": allowance["remaining"] - 1},
    )
    return row


def start_workout(store, user_id: str, workout_id: str) -> WorkoutCompletion:
    """Create (or return) the in-progress row for an assigned workout."""
    workout = store.get_workout(workout_id)
    if workout is None:
        raise NotFound("Workout not found")
    existing = store.open_completion(user_id, workout_id)
    if existing is not None:
        return existing
    row = store.add_completion(
        WorkoutCompletion(
            user_id=user_id,
            workout_id=workout_id,
            workout_type=workout.workout_type,
            title=workout.title,
            started_at=_utcnow(),
            completed_at=None,
        )
    )
    logger.info("workout_started", extra={"user_id": user_id, "workout_id": workout_id})
    return row


def complete_workout(
    store,
    user_id: str,
    completion_id: str,
    completed_at: Optional[dt.datetime] = None,
    duration: Optional[float] = None,
    distance: Optional[float] = None,
) -> WorkoutCompletion:
    if duration is not None and duration <= 0:
        raise ValidationFailed("duration must be positive")
    if distance is not None and distance <= 0:
        raise ValidationFailed("distance must be positive")
    row = store.get_completion(completion_id)
    if row is None:
        raise NotFound("Workout completion not found")
    if row.user_id != user_id:
        raise PermissionDenied("Cannot complete another user's workout")
    if row.completed_at is not None:
        return row
    row.completed_at = _as_utc_naive(completed_at)
    if duration is not None:
        row.duration = duration
    if distance is not None:
        row.distance = distance
    logger.info("workout_completed", extra={"user_id": user_id, "completion_id": completion_id})
    return row
