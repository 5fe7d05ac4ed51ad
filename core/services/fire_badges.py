"""Fire badge awarding.

A fire badge marks a Monday-Sunday week in which a client finished every
workout assigned to that program week. ``backfill_fire_badges`` walks every
historical week of every assignment. ``award_fire_badges`` decides a single
calendar week for all clients (or one group) and is what the weekly schedule
runs. ``award_current_week_badge`` checks one client's current week. All
check for an existing badge before inserting, and the storage layer's
unique ``(user_id, week_start)`` constraint rejects a racing duplicate.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from core.config import Settings, get_settings
from core.services.program_weeks import (
    ONE_WEEK,
    backfill_week_start,
    calendar_week_window_inclusive,
    current_assignment,
    is_early_monday,
    local_today,
    monday_of,
    monday_pinned_week_number,
)

logger = logging.getLogger(__name__)

CREATED = "created"
WOULD_CREATE = "would_create"
INCOMPLETE = "incomplete"
ALREADY_AWARDED = "already_awarded"
NOT_STARTED = "not_started"
NO_PROGRAM = "no_program"
NO_PROGRAM_WEEK = "no_program_week"
PROGRAM_FINISHED = "program_finished"


@dataclass
class UserBackfillResult:
    user_id: str
    badges: list[dict[str, Any]] = field(default_factory=list)
    status: str = "processed"
    reason: Optional[str] = None
    error: Optional[str] = None

    @property
    def total_badges(self) -> int:
        return len([b for b in self.badges if b["status"] in (CREATED, WOULD_CREATE)])

    def count(self, status: str) -> int:
        return len([b for b in self.badges if b["status"] == status])

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"userId": self.user_id, "status": self.status}
        if self.reason:
            payload["reason"] = self.reason
        if self.error:
            payload["error"] = self.error
        payload["badges"] = self.badges
        payload["totalBadges"] = self.total_badges
        return payload


@dataclass
class BackfillReport:
    dry_run: bool
    results: list[UserBackfillResult] = field(default_factory=list)
    message: str = ""
    success: bool = True
    error: Optional[str] = None

    @property
    def total_awarded(self) -> int:
        return sum(r.count(CREATED) for r in self.results)

    @property
    def total_would_award(self) -> int:
        return sum(r.count(WOULD_CREATE) for r in self.results)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "dryRun": self.dry_run,
            "totalAwarded": self.total_awarded,
            "totalWouldAward": self.total_would_award,
            "results": [r.to_dict() for r in self.results],
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


def _evaluate_week(
    store,
    user_id: str,
    week,
    week_start: dt.date,
    tz_name: str,
    dry_run: bool,
) -> Optional[dict[str, Any]]:
    """Decide one week. Returns None when the week carries no obligation."""
    entry: dict[str, Any] = {"week": week_start.isoformat(), "week_number": week.week_number}

    if store.badge_exists(user_id, week_start):
        entry["status"] = ALREADY_AWARDED
        return entry

    workout_ids = store.workout_ids_for_week(week.id)
    if not workout_ids:
        return None

    window_start, window_last = calendar_week_window_inclusive(week_start, tz_name)
    completed = store.count_completed_workouts(user_id, workout_ids, window_start, window_last)
    entry["assigned"] = len(workout_ids)
    entry["completed"] = completed

    if completed < len(workout_ids):
        entry["status"] = INCOMPLETE
        return entry

    if dry_run:
        entry["status"] = WOULD_CREATE
        return entry

    badge = store.insert_badge(user_id, week_start)
    if badge is None:
        entry["status"] = ALREADY_AWARDED
    else:
        entry["status"] = CREATED
        entry["badge_id"] = badge.id
    return entry


def backfill_user(store, user_id: str, today: dt.date, tz_name: str, dry_run: bool) -> UserBackfillResult:
    result = UserBackfillResult(user_id=user_id)
    assignments = store.list_assignments(user_id)
    if not assignments:
        result.status = "skipped"
        result.reason = "no program assignments"
        return result

    decided: set[dt.date] = set()
    for assignment in assignments:
        for week in store.list_weeks(assignment.program_id):
            week_start = backfill_week_start(assignment.start_date, week.week_number)
            if week_start > today:
                continue
            if assignment.end_date is not None and week_start > assignment.end_date:
                continue
            # Overlapping assignments can map two program weeks onto one calendar week.
            if week_start in decided:
                continue

            entry = _evaluate_week(store, user_id, week, week_start, tz_name, dry_run)
            if entry is None:
                continue
            if entry["status"] in (CREATED, WOULD_CREATE, ALREADY_AWARDED):
                decided.add(week_start)
            entry["assignment_id"] = assignment.id
            result.badges.append(entry)
            logger.info(
                "backfill_week",
                extra={"user_id": user_id, "week_start": entry["week"], "status": entry["status"], "dry_run": dry_run},
            )
    return result


def backfill_fire_badges(
    store,
    user_id: Optional[str] = None,
    group_id: Optional[str] = None,
    dry_run: bool = False,
    now: Optional[dt.datetime] = None,
    settings: Optional[Settings] = None,
) -> BackfillReport:
    """Award badges for every fully completed past week. Never raises."""
    settings = settings or get_settings()
    now = now or dt.datetime.now(dt.timezone.utc)
    report = BackfillReport(dry_run=dry_run)
    logger.info("backfill_started", extra={"user_id": user_id, "group_id": group_id, "dry_run": dry_run})

    try:
        today = local_today(now, settings.reference_timezone)
        if group_id and not store.group_member_ids(group_id):
            report.message = "No members found in the specified group"
            return report

        for client_id in store.client_ids(user_id=user_id, group_id=group_id):
            try:
                report.results.append(
                    backfill_user(store, client_id, today, settings.reference_timezone, dry_run)
                )
            except Exception as exc:
                logger.exception("backfill_user_failed", extra={"user_id": client_id})
                report.results.append(UserBackfillResult(user_id=client_id, status="error", error=str(exc)))
    except Exception as exc:
        logger.exception("backfill_failed")
        report.success = False
        report.error = str(exc) or "Internal server error"
        report.message = "Backfill failed"
        return report

    if dry_run:
        report.message = (
            f"Dry run completed. Would award {report.total_would_award} badges to {len(report.results)} users"
        )
    else:
        report.message = f"Successfully awarded {report.total_awarded} badges to {len(report.results)} users"
    logger.info(
        "backfill_finished",
        extra={"users": len(report.results), "awarded": report.total_awarded, "would_award": report.total_would_award},
    )
    return report


def _award_program_week(store, user_id: str, week, week_start: dt.date, tz_name: str) -> dict[str, Any]:
    entry = _evaluate_week(store, user_id, week, week_start, tz_name, dry_run=False)
    if entry is None:
        entry = {"week": week_start.isoformat(), "week_number": week.week_number, "status": INCOMPLETE, "assigned": 0}
    entry["awarded"] = entry["status"] == CREATED
    return entry


def _program_week_starting(assignments, weeks_of, week_start: dt.date):
    """The program week whose Monday-pinned start is ``week_start``; the newest assignment wins."""
    for assignment in reversed(assignments):
        if assignment.end_date is not None and week_start > assignment.end_date:
            continue
        for week in weeks_of(assignment.program_id):
            if backfill_week_start(assignment.start_date, week.week_number) == week_start:
                return week
    return None


def award_week_for_user(store, user_id: str, week_start: dt.date, tz_name: str) -> dict[str, Any]:
    """Evaluate one calendar week for one client."""
    assignments = store.list_assignments(user_id)
    if not assignments:
        return {"status": NO_PROGRAM, "awarded": False, "week": week_start.isoformat()}
    week = _program_week_starting(assignments, store.list_weeks, week_start)
    if week is None:
        return {"status": NO_PROGRAM_WEEK, "awarded": False, "week": week_start.isoformat()}
    return _award_program_week(store, user_id, week, week_start, tz_name)


@dataclass
class AwardRunReport:
    automated: bool = False
    week_processed: Optional[dt.date] = None
    results: list[dict[str, Any]] = field(default_factory=list)
    message: str = ""
    success: bool = True
    error: Optional[str] = None

    @property
    def total_awarded(self) -> int:
        return len([r for r in self.results if r["badgeAwarded"]])

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "automated": self.automated,
            "weekProcessed": self.week_processed.isoformat() if self.week_processed else None,
            "totalAwarded": self.total_awarded,
            "results": self.results,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


def award_fire_badges(
    store,
    group_id: Optional[str] = None,
    week_start: Optional[dt.date] = None,
    is_automated_run: bool = False,
    process_previous_week: bool = False,
    now: Optional[dt.datetime] = None,
    settings: Optional[Settings] = None,
) -> AwardRunReport:
    """Award badges for one calendar week across all clients or one group. Never raises.

    The week defaults to the current one. Scheduled runs that land early on
    Monday, and any run with ``process_previous_week``, close out the week
    before instead.
    """
    settings = settings or get_settings()
    now = now or dt.datetime.now(dt.timezone.utc)
    tz_name = settings.reference_timezone
    report = AwardRunReport(automated=is_automated_run)

    try:
        target = monday_of(week_start or local_today(now, tz_name))
        if process_previous_week or (is_automated_run and is_early_monday(now, tz_name)):
            target -= ONE_WEEK
        report.week_processed = target
        logger.info(
            "award_run_started",
            extra={"group_id": group_id, "week_start": target.isoformat(), "automated": is_automated_run},
        )

        if group_id and not store.group_member_ids(group_id):
            report.message = "No members found in the specified group"
            return report
        client_ids = store.client_ids(group_id=group_id)
        if not client_ids:
            report.message = "No users found to process"
            return report

        for client_id in client_ids:
            try:
                entry = award_week_for_user(store, client_id, target, tz_name)
            except Exception as exc:
                logger.exception("award_user_failed", extra={"user_id": client_id})
                report.results.append({"userId": client_id, "success": False, "badgeAwarded": False, "error": str(exc)})
                continue
            report.results.append(
                {"userId": client_id, "success": True, "badgeAwarded": entry["awarded"], "status": entry["status"]}
            )
    except Exception as exc:
        logger.exception("award_run_failed")
        report.success = False
        report.error = str(exc) or "Internal server error"
        report.message = "Award run failed"
        return report

    report.message = f"Processed {len(report.results)} users, awarded {report.total_awarded} new badges"
    logger.info("award_run_finished", extra={"users": len(report.results), "awarded": report.total_awarded})
    return report


def award_current_week_badge(
    store,
    user_id: str,
    now: Optional[dt.datetime] = None,
    settings: Optional[Settings] = None,
) -> dict[str, Any]:
    """Evaluate the program week containing today for one client."""
    settings = settings or get_settings()
    now = now or dt.datetime.now(dt.timezone.utc)
    today = local_today(now, settings.reference_timezone)

    assignment = current_assignment(store.list_assignments(user_id), today)
    program = store.get_program(assignment.program_id) if assignment is not None else None
    if assignment is None or program is None:
        return {"status": NO_PROGRAM, "awarded": False}

    last_week_start = backfill_week_start(assignment.start_date, program.weeks)
    ended = assignment.end_date is not None and assignment.end_date < today
    if ended or today > last_week_start + dt.timedelta(days=6):
        return {"status": PROGRAM_FINISHED, "awarded": False, "week": last_week_start.isoformat()}

    week_number = monday_pinned_week_number(assignment.start_date, today, program.weeks)
    week_start = backfill_week_start(assignment.start_date, week_number)
    if week_start > today:
        return {"status": NOT_STARTED, "awarded": False, "week": week_start.isoformat()}

    week = store.get_week(program.id, week_number)
    if week is None:
        return {"status": INCOMPLETE, "awarded": False, "week": week_start.isoformat(), "assigned": 0}
    return _award_program_week(store, user_id, week, week_start, settings.reference_timezone)


def list_badges(store, user_id: str) -> list[dict[str, Any]]:
    return [
        {"id": b.id, "user_id": b.user_id, "week_start": b.week_start.isoformat(), "created_at": b.created_at}
        for b in store.list_badges(user_id)
    ]
