"""Maintenance commands: ``fintrack tokens:cleanup``, ``db:cleanup-orphans``, ``db:seed``."""

import argparse
import logging
from typing import List, Optional

import pandas as pd

from . import config, models
from .database import SessionLocal, engine
from .services.maintenance import cleanup_expired_tokens, cleanup_orphans, seed_demo_data


def _print_report(report) -> None:
    rows = [
        {"kind": kind, "count": len(ids), "ids": ", ".join(str(i) for i in ids)}
        for kind, ids in report.as_dict().items()
    ]
    print(pd.DataFrame(rows).to_string(index=False))


def run(args, session_factory=SessionLocal) -> int:
    db = session_factory()
    try:
        if args.command == "tokens:cleanup":
            count = cleanup_expired_tokens(db)
            print(f"Deleted {count} expired tokens.")

        elif args.command == "db:cleanup-orphans":
            report = cleanup_orphans(db, dry_run=args.dry_run)
            _print_report(report)
            if args.dry_run:
                print(f"Dry run: would clean up {report.total} orphaned records.")
            elif report.total:
                print(f"Cleaned up {report.total} orphaned records.")
            else:
                print("Database is clean, no orphaned data found.")

        elif args.command == "db:seed":
            demo = seed_demo_data(db)
            print(f"Seeded demo data for {demo.email}.")
    finally:
        db.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fintrack", description="FinTrack maintenance commands.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("tokens:cleanup", help="Delete expired API tokens")

    orphans = sub.add_parser("db:cleanup-orphans", help="Find and clean up orphaned records")
    orphans.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be cleaned up without changing anything",
    )

    sub.add_parser("db:seed", help="Create a demo user with sample data")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=config.LOG_LEVEL)
    args = build_parser().parse_args(argv)
    models.Base.metadata.create_all(bind=engine)
    return run(args)


if __name__ == "__main__":
    raise SystemExit(main())
