"""Scheduled weekly fire badge run.

Meant for cron early on Monday (Pacific): before 06:00 it closes out the
week that just ended.

    python -m scripts.process_badges_weekly
    python -m scripts.process_badges_weekly --previous-week --group-id <group id>
"""
from __future__ import annotations

import argparse
import datetime as dt
import json
from typing import Optional, Sequence

from core.config import get_settings
from core.db import create_schema, session_scope
from core.logging_config import setup_logging
from core.services.fire_badges import award_fire_badges
from core.store import SqlStore


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Award fire badges for one calendar week")
    parser.add_argument("--group-id", help="Only process clients in this group")
    parser.add_argument("--week-start", type=dt.date.fromisoformat, help="Any date in the week to process (YYYY-MM-DD)")
    parser.add_argument("--previous-week", action="store_true", help="Process the week before the selected one")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(get_settings().log_level)
    create_schema()
    with session_scope() as s:
        report = award_fire_badges(
            SqlStore(s),
            group_id=args.group_id,
            week_start=args.week_start,
            is_automated_run=True,
            process_previous_week=args.previous_week,
        )
    print(json.dumps(report.to_dict(), indent=2, default=str))
    return 0 if report.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
