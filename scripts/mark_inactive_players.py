#!/usr/bin/env python3
"""
Mark players without recent rated games as inactive.

    python scripts/mark_inactive_players.py
    python scripts/mark_inactive_players.py --as-of 2025-08 --months 24 --dry-run
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
from fideratings.services.activity import refresh_player_activity


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Refresh player activity flags.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--as-of", default=None, help="Reference period (default: current month).")
    parser.add_argument(
        "--months",
        type=int,
        default=None,
        help=f"Months without games before a player is inactive (default: {settings.inactivity_months}).",
    )
    parser.add_argument("--dry-run", action="store_true", help="Report changes without writing.")
    return parser


def main() -> int:
    args = _build_parser().parse_args()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    with Database() as database:
        refresh_player_activity(
            database,
            as_of_period=args.as_of,
            months=args.months,
            dry_run=args.dry_run,
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
