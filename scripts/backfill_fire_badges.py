"""Award fire badges for past fully completed program weeks.

    python -m scripts.backfill_fire_badges --dry-run
    python -m scripts.backfill_fire_badges --user-id <profile id>
"""
from __future__ import annotations

import argparse
import json
from typing import Optional, Sequence

from core.config import get_settings
from core.db import create_schema, session_scope
from core.logging_config import setup_logging
from core.services.fire_badges import backfill_fire_badges
from core.store import SqlStore


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Backfill weekly fire badges")
    parser.add_argument("--user-id", help="Only process this client")
    parser.add_argument("--group-id", help="Only process clients in this group")
    parser.add_argument("--dry-run", action="store_true", help="Report what would be awarded without writing")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(get_settings().log_level)
    create_schema()
    with session_scope() as s:
        report = backfill_fire_badges(SqlStore(s), user_id=args.user_id, group_id=args.group_id, dry_run=args.dry_run)
    print(json.dumps(report.to_dict(), indent=2, default=str))
    return 0 if report.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
