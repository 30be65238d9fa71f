#!/usr/bin/env python3
"""
Create the database schema from the ORM models.

For development databases and quick SQLite setups. Production databases
are managed with Alembic (`alembic upgrade head`).
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

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Create FIDE ratings tables.")
    parser.add_argument("--database-url", default=None, help="Override settings.database_url.")
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    with Database(args.database_url) as database:
        database.create_all()
        logger.info("Schema ready at %s", database.engine.url.render_as_string(hide_password=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
