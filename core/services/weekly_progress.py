"""Weekly goal-vs-actual progress for a client's active program.

The aggregation itself (``aggregate_actuals``, ``resolve_targets``,
``build_progress``) is pure. ``compute_weekly_progress`` reads the rows it
needs from a store and never raises: any failure produces the zeroed
default response with an ``error`` message so dashboards always render.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable, Optional

from core.config import Settings, get_settings
from core.errors import NotFound
from core.services.program_weeks import (
    calendar_week_window,
    local_today,
    monday_of,
    monday_pinned_week_number,
)

logger = logging.getLogger(__name__)

METRIC_NAMES = ("strength_workouts", "strength_mobility", "miles_run", "cardio_minutes")
STRENGTH_TYPES = frozenset({"strength", "bodyweight"})
MOBILITY_TYPES = frozenset({"flexibility"})
RUN_TYPES = frozenset({"running"})
CARDIO_TYPES = frozenset({"cardio", "running"})


@dataclass
class Metric:
    target: float = 0
    actual: float = 0


def _zero_metrics() -> dict[str, Metric]:
    return {name: Metric() for name in METRIC_NAMES}


@dataclass
class WeeklyProgress:
    program_id: str = ""
    program_title: str = "No Program"
    current_week: int = 1
    total_weeks: int = 1
    program_type: str = "moai_strength"
    metrics: dict[str, Metric] = field(default_factory=_zero_metrics)
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        if self.error is None:
            payload.pop("error")
        return payload


def _field(row: Any, name: str) -> Any:
    if isinstance(row, dict):
        return row.get(name)
    return getattr(row, name, None)


def _safe_number(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if number != number or number in (float("inf"), float("-inf")):
        return 0.0
    return number


def program_type_label(stored_type: Optional[str]) -> str:
    return "moai_run" if stored_type == "run" else "moai_strength"


def aggregate_actuals(completions: Iterable[Any]) -> dict[str, float]:
    """Sum finished completions into the four metric actuals.

    Rows with ``completed_at`` unset are in-progress and never counted.
    """
    strength = mobility = 0
    miles = minutes = 0.0
    for row in completions:
        if _field(row, "completed_at") is None:
            continue
        workout_type = _field(row, "workout_type")
        if workout_type in STRENGTH_TYPES:
            strength += 1
        if workout_type in MOBILITY_TYPES:
            mobility += 1
        if workout_type in RUN_TYPES:
            miles += _safe_number(_field(row, "distance"))
        if workout_type in CARDIO_TYPES:
            minutes += _safe_number(_field(row, "duration"))
    return {
        "strength_workouts": strength,
        "strength_mobility": mobility,
        "miles_run": round(miles, 2),
        "cardio_minutes": round(minutes, 2),
    }


def resolve_targets(week: Any, program_type: str, settings: Settings) -> dict[str, float]:
    """Per-week targets with defaults for missing rows or unset fields."""
    miles = _safe_number(_field(week, "target_miles_run")) if week is not None else 0.0
    cardio = _safe_number(_field(week, "target_cardio_minutes")) if week is not None else 0.0
    strength = _safe_number(_field(week, "target_strength_workouts")) if week is not None else 0.0
    mobility = _safe_number(_field(week, "target_strength_mobility_workouts")) if week is not None else 0.0

    if not miles and program_type == "moai_run":
        miles = settings.default_run_miles_target
    if not cardio:
        cardio = settings.default_cardio_target_minutes

    return {
        "strength_workouts": int(strength),
        "strength_mobility": int(mobility),
        "miles_run": miles,
        "cardio_minutes": cardio,
    }


def build_progress(
    program: Any,
    current_week: int,
    week: Any,
    completions: Iterable[Any],
    settings: Settings,
) -> WeeklyProgress:
    program_type = program_type_label(_field(program, "program_type"))
    targets = resolve_targets(week, program_type, settings)
    actuals = aggregate_actuals(completions)
    return WeeklyProgress(
        program_id=str(_field(program, "id")),
        program_title=_field(program, "title") or "",
        current_week=current_week,
        total_weeks=_field(program, "weeks") or settings.default_program_weeks,
        program_type=program_type,
        metrics={name: Metric(target=targets[name], actual=actuals[name]) for name in METRIC_NAMES},
    )


def compute_weekly_progress(
    store,
    client_id: str,
    now: Optional[dt.datetime] = None,
    settings: Optional[Settings] = None,
) -> WeeklyProgress:
    settings = settings or get_settings()
    now = now or dt.datetime.now(dt.timezone.utc)
    try:
        return _compute(store, client_id, now, settings)
    except Exception as exc:
        logger.exception("weekly_progress_failed", extra={"client_id": client_id})
        return WeeklyProgress(
            program_title="Error",
            total_weeks=settings.default_program_weeks,
            error=str(exc) or "Internal server error",
        )


def _compute(store, client_id: str, now: dt.datetime, settings: Settings) -> WeeklyProgress:
    tz = settings.reference_timezone
    today = local_today(now, tz)
    week_start = monday_of(today)
    window_start, window_end = calendar_week_window(week_start, tz)

    assignment = store.open_assignment(client_id)
    if assignment is None:
        logger.info("weekly_progress_no_active_program", extra={"client_id": client_id})
        return WeeklyProgress()

    program = store.get_program(assignment.program_id)
    if program is None:
        raise NotFound(f"Program {assignment.program_id} not found")

    total_weeks = program.weeks or settings.default_program_weeks
    current_week = monday_pinned_week_number(assignment.start_date, today, total_weeks)
    week = store.get_week(program.id, current_week)
    completions = store.list_completions(client_id, window_start, window_end)

    progress = build_progress(program, current_week, week, completions, settings)
    logger.debug(
        "weekly_progress_computed",
        extra={
            "client_id": client_id,
            "program_id": progress.program_id,
            "current_week": current_week,
            "week_start": week_start.isoformat(),
            "completions": len(completions),
        },
    )
    return progress
