"""Tests for program week arithmetic and calendar windows."""

from __future__ import annotations

from datetime import date, datetime
from types import SimpleNamespace

from core.services.program_weeks import (
    backfill_week_start,
    calendar_week_window,
    calendar_week_window_inclusive,
    clamp_week,
    current_assignment,
    current_week_number,
    first_monday_on_or_after,
    format_week_date_range,
    local_today,
    monday_of,
    monday_pinned_week_number,
    week_date_range,
)

TZ = "America/Los_Angeles"


def test_current_week_number_counts_from_start_day():
    assert current_week_number(date(2024, 1, 3), date(2024, 1, 3)) == 1
    assert current_week_number(date(2024, 1, 3), date(2024, 1, 9)) == 1
    assert current_week_number(date(2024, 1, 3), date(2024, 1, 10)) == 2


def test_current_week_number_before_start_is_week_one():
    assert current_week_number(date(2024, 1, 10), date(2024, 1, 1)) == 1


def test_week_date_range_offsets_whole_weeks():
    rng = week_date_range(date(2024, 1, 3), 2)
    assert rng.start == date(2024, 1, 10)
    assert rng.end == date(2024, 1, 16)


def test_format_week_date_range():
    assert format_week_date_range(date(2024, 1, 3), 1) == "Jan 3 - Jan 9"
    assert format_week_date_range(date(2024, 1, 29), 1) == "Jan 29 - Feb 4"


def test_first_monday_on_or_after():
    assert first_monday_on_or_after(date(2024, 1, 3)) == date(2024, 1, 8)
    assert first_monday_on_or_after(date(2024, 1, 8)) == date(2024, 1, 8)
    assert first_monday_on_or_after(date(2024, 1, 14)) == date(2024, 1, 15)


def test_monday_of():
    assert monday_of(date(2024, 1, 14)) == date(2024, 1, 8)
    assert monday_of(datetime(2024, 1, 8, 23, 59)) == date(2024, 1, 8)


def test_clamp_week():
    assert clamp_week(0, 4) == 1
    assert clamp_week(9, 4) == 4
    assert clamp_week(3, 0) == 1


def test_wednesday_start_keeps_week_one_through_following_sunday():
    start = date(2024, 1, 3)
    assert monday_pinned_week_number(start, date(2024, 1, 3), 4) == 1
    assert monday_pinned_week_number(start, date(2024, 1, 7), 4) == 1
    assert monday_pinned_week_number(start, date(2024, 1, 8), 4) == 1
    assert monday_pinned_week_number(start, date(2024, 1, 14), 4) == 1
    assert monday_pinned_week_number(start, date(2024, 1, 15), 4) == 2


def test_monday_pinned_week_is_clamped_to_program_length():
    assert monday_pinned_week_number(date(2024, 1, 1), date(2024, 6, 1), 4) == 4


def test_backfill_week_start_is_always_a_monday():
    for offset in range(7):
        start = date(2024, 1, 1 + offset)
        for week_number in range(1, 6):
            assert backfill_week_start(start, week_number).weekday() == 0


def test_backfill_week_start_agrees_with_pinned_numbering():
    start = date(2024, 1, 3)
    assert backfill_week_start(start, 1) == date(2024, 1, 8)
    assert backfill_week_start(start, 2) == date(2024, 1, 15)
    assert monday_pinned_week_number(start, backfill_week_start(start, 3), 4) == 3


def test_local_today_uses_reference_timezone():
    # 2024-01-15 07:30 UTC is still Sunday evening in Los Angeles.
    assert local_today(datetime(2024, 1, 15, 7, 30), TZ) == date(2024, 1, 14)
    assert local_today(datetime(2024, 1, 15, 8, 30), TZ) == date(2024, 1, 15)


def test_calendar_week_window_is_local_midnight_in_utc():
    start, end = calendar_week_window(date(2024, 1, 8), TZ)
    assert start == datetime(2024, 1, 8, 8, 0)
    assert end == datetime(2024, 1, 15, 8, 0)


def test_calendar_week_window_across_dst_change():
    start, end = calendar_week_window(date(2024, 3, 4), TZ)
    assert start == datetime(2024, 3, 4, 8, 0)
    assert end == datetime(2024, 3, 11, 7, 0)


def test_inclusive_window_ends_on_sunday_last_instant():
    start, last = calendar_week_window_inclusive(date(2024, 1, 8), TZ)
    assert start == datetime(2024, 1, 8, 8, 0)
    assert last == datetime(2024, 1, 15, 7, 59, 59, 999999)


def test_current_assignment_prefers_containing_interval():
    old = SimpleNamespace(start_date=date(2024, 1, 1), end_date=date(2024, 1, 31), created_at=None)
    newer = SimpleNamespace(start_date=date(2024, 3, 1), end_date=None, created_at=None)
    assert current_assignment([newer, old], date(2024, 1, 10)) is old
    assert current_assignment([old, newer], date(2024, 3, 5)) is newer


def test_current_assignment_falls_back_to_most_recent():
    a = SimpleNamespace(start_date=date(2024, 1, 1), end_date=date(2024, 1, 31), created_at=None)
    b = SimpleNamespace(start_date=date(2024, 2, 1), end_date=date(2024, 2, 28), created_at=None)
    assert current_assignment([a, b], date(2024, 5, 1)) is b
    assert current_assignment([], date(2024, 5, 1)) is None
