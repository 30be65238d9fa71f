#!/usr/bin/env python3
"""
Import FIDE rating lists into the database.

Import one list:
    python scripts/import_ratings.py --period 2025-08 --category blitz

Import a list from a local file instead of downloading it:
    python scripts/import_ratings.py --period 2025-08 --category standard --file standard_aug25frl_xml.zip

Import every category for the current month:
    python scripts/import_ratings.py --current

Historical sweep (January 2015 through the current month):
    python scripts/import_ratings.py --historical 2015

Show the import bookkeeping table:
    python scripts/import_ratings.py --status
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Add src to path so this script can be run directly
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fideratings.config import settings
from fideratings.db import Database
from fideratings.fide import CATEGORIES
from fideratings.services.rating_import import ImportOutcome, RatingImporter, list_rating_lists

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Import FIDE rating lists.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument("--period", help="Rating period to import (e.g. 20250801, 2025-08).")
    mode.add_argument("--current", action="store_true", help="Import the current month.")
    mode.add_argument(
        "--historical",
        type=int,
        metavar="START_YEAR",
        help="Import every month from January of START_YEAR.",
    )
    mode.add_argument("--status", action="store_true", help="Print the rating_lists table and exit.")

    parser.add_argument(
        "--category",
        action="append",
        choices=CATEGORIES,
        help="Category to import (repeatable). Default: all three.",
    )
    parser.add_argument("--file", default=None, help="Local .zip/.xml/.txt file (with --period).")
    parser.add_argument("--end", default=None, help="Last period for --historical (default: current month).")
    parser.add_argument("--retry-failed", action="store_true", help="Re-attempt lists marked failed.")
    parser.add_argument("--batch-size", type=int, default=None, help="Records per upsert batch.")
    parser.add_argument(
        "--atomic",
        action="store_true",
        help="Write each list in a single transaction (all or nothing).",
    )
    parser.add_argument("--database-url", default=None, help="Override settings.database_url.")
    return parser


def _print_status(database: Database) -> None:
    with database.session_scope() as session:
        runs = list_rating_lists(session)
        if not runs:
            print("No rating lists imported yet.")
            return
        print(f"{'Period':<10} {'Category':<10} {'Status':<12} {'Players':>8} {'Skipped':>8} {'Failed':>7}  Imported")
        for run in runs:
            imported = run.import_date.strftime("%Y-%m-%d %H:%M") if run.import_date else "-"
            print(
                f"{run.period:<10} {run.category:<10} {run.status:<12} "
                f"{run.total_players or 0:>8} {run.skipped_records or 0:>8} {run.failed_records or 0:>7}  {imported}"
            )


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    if args.file and not args.period:
        parser.error("--file requires --period")

    categories = tuple(args.category) if args.category else CATEGORIES

    with Database(args.database_url) as database:
        if args.status:
            _print_status(database)
            return 0

        importer = RatingImporter(
            database,
            batch_size=args.batch_size,
            transaction_mode="atomic" if args.atomic else None,
        )

        outcomes: list[ImportOutcome]
        if args.historical:
            summary = importer.import_historical(
                start_year=args.historical,
                end_period=args.end,
                categories=categories,
                retry_failed=args.retry_failed,
            )
            outcomes = summary.outcomes
        elif args.current:
            outcomes = importer.import_current_month(categories=categories)
        elif args.file:
            if len(categories) != 1:
                parser.error("--file requires exactly one --category")
            outcomes = [
                importer.import_rating_list(
                    args.period,
                    categories[0],
                    local_file=args.file,
                    retry_failed=args.retry_failed,
                )
            ]
        else:
            outcomes = importer.import_period(args.period, categories, retry_failed=args.retry_failed)

    failed = [o for o in outcomes if o.status == "failed"]
    for outcome in outcomes:
        print(f"{outcome.period} {outcome.category:<8} {outcome.status:<12} {outcome.imported} players")
    if failed:
        logger.error("%d of %d imports failed", len(failed), len(outcomes))
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
