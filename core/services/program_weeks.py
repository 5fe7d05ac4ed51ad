"""Program week arithmetic.

Two week conventions live here on purpose:

* ``week_date_range`` offsets whole weeks from the program start day. It is
  used for display labels only.
* Monday-pinned weeks (``monday_pinned_week_number``, ``calendar_week_window``)
  anchor every week to Monday 00:00 through Sunday 23:59:59 in the reference
  timezone. Progress metrics and fire badges are always computed on these.

Stored timestamps are naive UTC; window helpers return naive UTC bounds.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Optional, Sequence, Union
from zoneinfo import ZoneInfo

DateLike = Union[dt.date, dt.datetime]

ONE_WEEK = dt.timedelta(days=7)


@dataclass(frozen=True)
class WeekRange:
    start: dt.date
    end: dt.date


def _as_date(value: DateLike) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    return value


def monday_of(day: DateLike) -> dt.date:
    d = _as_date(day)
    return d - dt.timedelta(days=d.weekday())


def first_monday_on_or_after(day: DateLike) -> dt.date:
    d = _as_date(day)
    return d + dt.timedelta(days=(7 - d.weekday()) % 7)


def clamp_week(week_number: int, total_weeks: int) -> int:
    return min(max(1, week_number), max(1, total_weeks))


def current_week_number(program_start: DateLike, now: DateLike) -> int:
    """Week of the program containing ``now``, counted from the start day.

    Never less than 1; callers clamp to the program length.
    """
    elapsed_days = (_as_date(now) - _as_date(program_start)).days
    return max(1, elapsed_days // 7 + 1)


def monday_pinned_week_number(program_start: DateLike, today: DateLike, total_weeks: int) -> int:
    """Week number where week 2 begins on the first Monday after the start.

    A program starting mid-week spends its partial first calendar week and
    the following full Monday-Sunday week both in week 1.
    """
    first_monday = first_monday_on_or_after(program_start)
    day = _as_date(today)
    if day < first_monday:
        return 1
    return clamp_week((day - first_monday).days // 7 + 1, total_weeks)


def week_date_range(program_start: DateLike, week_number: int) -> WeekRange:
    """Display range for a week: start day plus whole weeks, six days long."""
    start = _as_date(program_start) + (week_number - 1) * ONE_WEEK
    return WeekRange(start=start, end=start + dt.timedelta(days=6))


def format_week_date_range(program_start: DateLike, week_number: int) -> str:
    rng = week_date_range(program_start, week_number)
    return f"{rng.start.strftime('%b')} {rng.start.day} - {rng.end.strftime('%b')} {rng.end.day}"


def backfill_week_start(assignment_start: DateLike, week_number: int) -> dt.date:
    """Monday on or after ``assignment_start + (week_number - 1) weeks``."""
    return first_monday_on_or_after(_as_date(assignment_start) + (week_number - 1) * ONE_WEEK)


# -- timezone handling --


def local_today(now: dt.datetime, tz_name: str) -> dt.date:
    """Calendar date of ``now`` in ``tz_name``. Naive datetimes are taken as UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=dt.timezone.utc)
    return now.astimezone(ZoneInfo(tz_name)).date()


def is_early_monday(now: dt.datetime, tz_name: str, cutoff_hour: int = 6) -> bool:
    """True on Monday before ``cutoff_hour`` local time, when last week is still being closed out."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=dt.timezone.utc)
    local = now.astimezone(ZoneInfo(tz_name))
    return local.weekday() == 0 and local.hour < cutoff_hour


def local_midnight_utc(day: dt.date, tz_name: str) -> dt.datetime:
    local = dt.datetime.combine(day, dt.time.min, tzinfo=ZoneInfo(tz_name))
    return local.astimezone(dt.timezone.utc).replace(tzinfo=None)


def calendar_week_window(week_start: dt.date, tz_name: str) -> tuple[dt.datetime, dt.datetime]:
    """Half-open ``[Monday 00:00, next Monday 00:00)`` in naive UTC."""
    return local_midnight_utc(week_start, tz_name), local_midnight_utc(week_start + ONE_WEEK, tz_name)


def calendar_week_window_inclusive(week_start: dt.date, tz_name: str) -> tuple[dt.datetime, dt.datetime]:
    """Closed ``[Monday 00:00, Sunday 23:59:59.999999]`` in naive UTC.

    Covers exactly the instants of ``calendar_week_window``.
    """
    start, end = calendar_week_window(week_start, tz_name)
    return start, end - dt.timedelta(microseconds=1)


def calendar_month_window(day: dt.date, tz_name: str) -> tuple[dt.datetime, dt.datetime]:
    """Half-open window of the calendar month containing ``day``, in naive UTC."""
    first = day.replace(day=1)
    following = (first + dt.timedelta(days=32)).replace(day=1)
    return local_midnight_utc(first, tz_name), local_midnight_utc(following, tz_name)


# -- assignments --


def _contains(assignment, day: dt.date) -> bool:
    if assignment.start_date > day:
        return False
    return assignment.end_date is None or assignment.end_date >= day


def current_assignment(assignments: Sequence, today: dt.date) -> Optional[object]:
    """Most recent assignment whose interval contains ``today``, else the most recent overall."""
    if not assignments:
        return None

    def recency(a):
        return (a.start_date, getattr(a, "created_at", None) or dt.datetime.min)

    ordered = sorted(assignments, key=recency, reverse=True)
    for assignment in ordered:
        if _contains(assignment, today):
            return assignment
    return ordered[0]
