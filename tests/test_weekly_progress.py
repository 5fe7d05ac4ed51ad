"""Tests for weekly goal-vs-actual progress."""

from __future__ import annotations

from datetime import date, datetime

from core.config import Settings
from core.services.weekly_progress import (
    WeeklyProgress,
    aggregate_actuals,
    compute_weekly_progress,
    program_type_label,
    resolve_targets,
)

SETTINGS = Settings(database_url="sqlite://")
# Wednesday 2024-01-17 12:00 in Los Angeles
NOW = datetime(2024, 1, 17, 20, 0)


def test_aggregate_actuals_buckets_by_workout_type():
    rows = [
        {"workout_type": "strength", "completed_at": NOW},
        {"workout_type": "bodyweight", "completed_at": NOW},
        {"workout_type": "flexibility", "completed_at": NOW},
        {"workout_type": "running", "completed_at": NOW, "distance": 3.1, "duration": 30},
        {"workout_type": "cardio", "completed_at": NOW, "duration": 25.5},
    ]
    assert aggregate_actuals(rows) == {
        "strength_workouts": 2,
        "strength_mobility": 1,
        "miles_run": 3.1,
        "cardio_minutes": 55.5,
    }


def test_aggregate_actuals_skips_unfinished_rows():
    rows = [
        {"workout_type": "strength", "completed_at": None},
        {"workout_type": "running", "completed_at": None, "distance": 10},
    ]
    assert aggregate_actuals(rows)["strength_workouts"] == 0
    assert aggregate_actuals(rows)["miles_run"] == 0


def test_aggregate_actuals_treats_missing_numbers_as_zero():
    rows = [{"workout_type": "running", "completed_at": NOW, "distance": None, "duration": "n/a"}]
    result = aggregate_actuals(rows)
    assert result["miles_run"] == 0
    assert result["cardio_minutes"] == 0


def test_aggregate_actuals_rounds_sums():
    rows = [{"workout_type": "running", "completed_at": NOW, "distance": 0.1} for _ in range(3)]
    assert aggregate_actuals(rows)["miles_run"] == 0.3


def test_program_type_label():
    assert program_type_label("run") == "moai_run"
    assert program_type_label("strength") == "moai_strength"
    assert program_type_label(None) == "moai_strength"


def test_resolve_targets_defaults_without_week_row():
    assert resolve_targets(None, "moai_strength", SETTINGS) == {
        "strength_workouts": 0,
        "strength_mobility": 0,
        "miles_run": 0.0,
        "cardio_minutes": 60,
    }
    assert resolve_targets(None, "moai_run", SETTINGS)["miles_run"] == 5.0


def test_resolve_targets_uses_week_values():
    week = {"target_miles_run": 12, "target_cardio_minutes": 90, "target_strength_workouts": 3, "target_strength_mobility_workouts": 1}
    assert resolve_targets(week, "moai_run", SETTINGS) == {
        "strength_workouts": 3,
        "strength_mobility": 1,
        "miles_run": 12.0,
        "cardio_minutes": 90.0,
    }


def test_default_progress_shape():
    payload = WeeklyProgress().to_dict()
    assert payload["program_title"] == "No Program"
    assert payload["current_week"] == 1
    assert payload["total_weeks"] == 1
    assert payload["program_type"] == "moai_strength"
    assert "error" not in payload
    assert set(payload["metrics"]) == {"strength_workouts", "strength_mobility", "miles_run", "cardio_minutes"}


def test_compute_without_assignment_returns_default(store, build):
    client = build.profile()
    progress = compute_weekly_progress(store, client.id, now=NOW, settings=SETTINGS)
    assert progress.program_title == "No Program"
    assert progress.error is None


def test_compute_counts_only_the_current_calendar_week(store, build):
    client = build.profile()
    program = build.program(weeks=4, title="Foundations", target_strength_workouts=3)
    build.assign(client, program, start=date(2024, 1, 3))
    # Monday 2024-01-15 00:30 local time.
    build.complete(client, datetime(2024, 1, 15, 8, 30), workout_type="strength")
    build.complete(client, datetime(2024, 1, 16, 18, 0), workout_type="running", distance=4.0, duration=40)
    # Sunday 2024-01-14 23:30 local time belongs to the previous week.
    build.complete(client, datetime(2024, 1, 15, 7, 30), workout_type="strength")
    build.complete(client, None, workout_type="strength")

    progress = compute_weekly_progress(store, client.id, now=NOW, settings=SETTINGS)

    assert progress.program_title == "Foundations"
    assert progress.program_id == program.id
    assert progress.current_week == 2
    assert progress.total_weeks == 4
    assert progress.metrics["strength_workouts"].target == 3
    assert progress.metrics["strength_workouts"].actual == 1
    assert progress.metrics["miles_run"].actual == 4.0
    assert progress.metrics["cardio_minutes"].actual == 40
    assert progress.metrics["cardio_minutes"].target == 60


def test_compute_reports_error_instead_of_raising(store, build):
    client = build.profile()
    program = build.program(weeks=4)
    build.assign(client, program, start=date(2024, 1, 1))

    class BrokenStore:
        def __getattr__(self, name):
            return getattr(store, name)

        def list_completions(self, *args, **kwargs):
            raise RuntimeError("database unavailable")

    progress = compute_weekly_progress(BrokenStore(), client.id, now=NOW, settings=SETTINGS)
    payload = progress.to_dict()
    assert payload["program_title"] == "Error"
    assert payload["total_weeks"] == 4
    assert payload["error"] == "database unavailable"
    assert payload["metrics"]["strength_workouts"] == {"target": 0, "actual": 0}
