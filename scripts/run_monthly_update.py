#!/usr/bin/env python3
"""
Run the monthly rating update.

FIDE publishes new lists at the start of each month. This runs the
update stages once, or stays resident and runs them on the first of
every month.

    python scripts/run_monthly_update.py --run-now
    python scripts/run_monthly_update.py --loop --hour 6
    python scripts/run_monthly_update.py --run-now --stages import_previous_month,mark_inactive
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
import time
import uuid
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Optional

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fideratings.config import settings
from fideratings.db import Database
from fideratings.periods import add_months, current_period
from fideratings.services.activity import refresh_player_activity
from fideratings.services.rating_import import ImportOutcome, RatingImporter
from fideratings.tasks import (
    StageContext,
    StageDefinition,
    StageRegistry,
    StageResult,
    run_stages,
)

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def next_run_time(now: datetime, hour: int = 6) -> datetime:
    """First day of a month at `hour`, strictly after `now`."""
    candidate = now.replace(day=1, hour=hour, minute=0, second=0, microsecond=0)
    if candidate > now:
        return candidate
    if now.month == 12:
        return candidate.replace(year=now.year + 1, month=1)
    return candidate.replace(month=now.month + 1)


def _import_result(ctx: StageContext, outcomes: list[ImportOutcome], started_at: datetime) -> StageResult:
    counts: dict[str, int] = {}
    for outcome in outcomes:
        counts[outcome.status] = counts.get(outcome.status, 0) + 1

    failed = [o for o in outcomes if o.status == "failed"]
    if failed and len(failed) == len(outcomes):
        status = "failed"
    elif failed:
        status = "partial"
    else:
        status = "success"

    return StageResult(
        stage_name=ctx.stage_name,
        status=status,
        started_at=started_at,
        ended_at=_utc_now(),
        metrics={
            "counts": counts,
            "imported": sum(o.imported for o in outcomes),
            "lists": [o.to_dict() for o in outcomes],
        },
        error="; ".join(f"{o.period} {o.category}: {o.error}" for o in failed) or None,
    )


def _run_import_stage(months_back: int):
    def _runner(ctx: StageContext) -> StageResult:
        started_at = _utc_now()
        period = add_months(current_period(ctx.today), -months_back)
        importer = RatingImporter(ctx.database)
        outcomes = importer.import_period(
            period,
            retry_failed=bool(ctx.options.get("retry_failed", False)),
        )
        return _import_result(ctx, outcomes, started_at)

    return _runner


def _run_mark_inactive_stage(ctx: StageContext) -> StageResult:
    started_at = _utc_now()
    stats = refresh_player_activity(
        ctx.database,
        as_of_period=current_period(ctx.today),
        months=ctx.options.get("inactivity_months"),
    )
    return StageResult(
        stage_name=ctx.stage_name,
        status="success",
        started_at=started_at,
        ended_at=_utc_now(),
        metrics=stats.to_dict(),
    )


def _build_registry() -> StageRegistry:
    registry = StageRegistry()
    registry.register(
        StageDefinition(
            name="import_current_month",
            runner=_run_import_stage(0),
            description="Import this month's standard, rapid and blitz lists.",
            enabled_by_default=True,
        )
    )
    registry.register(
        StageDefinition(
            name="mark_inactive",
            runner=_run_mark_inactive_stage,
            description="Refresh player activity flags from recent games.",
            enabled_by_default=True,
        )
    )
    registry.register(
        StageDefinition(
            name="import_previous_month",
            runner=_run_import_stage(1),
            description="Re-attempt last month's lists (late FIDE publications).",
            enabled_by_default=False,
        )
    )
    return registry


def run_once(
    database: Database,
    registry: StageRegistry,
    include: Optional[list[str]] = None,
    skip: Optional[set[str]] = None,
    options: Optional[dict[str, Any]] = None,
    today: Optional[date] = None,
) -> dict[str, Any]:
    started_at = _utc_now()
    run_id = started_at.strftime("%Y%m%dT%H%M%SZ") + "-" + uuid.uuid4().hex[:8]
    stages = registry.resolve(include=include, skip=skip)

    logger.info("Monthly update %s starting: %s", run_id, ", ".join(s.name for s in stages))
    results = run_stages(stages, run_id=run_id, database=database, today=today, options=options)

    ended_at = _utc_now()
    has_failed = any(r.status == "failed" for r in results)
    summary = {
        "run_id": run_id,
        "started_at": started_at.isoformat(),
        "ended_at": ended_at.isoformat(),
        "duration_s": (ended_at - started_at).total_seconds(),
        "status": "failed" if has_failed else "success",
        "stages": [r.to_dict() for r in results],
    }
    logger.info("Monthly update %s finished: %s", run_id, json.dumps(summary, default=str))
    return summary


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run the monthly FIDE rating update.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    when = parser.add_mutually_exclusive_group(required=True)
    when.add_argument("--run-now", action="store_true", help="Run the stages once and exit.")
    when.add_argument("--loop", action="store_true", help="Run on the first of every month.")
    parser.add_argument("--hour", type=int, default=6, help="Hour of day for --loop runs (local time).")
    parser.add_argument(
        "--stages",
        default=None,
        help="Comma-separated stage list. Default: registry defaults.",
    )
    parser.add_argument(
        "--skip-stages",
        default="",
        help="Comma-separated stage names to skip.",
    )
    parser.add_argument("--retry-failed", action="store_true", help="Re-attempt lists marked failed.")
    parser.add_argument(
        "--inactivity-months",
        type=int,
        default=None,
        help="Override settings.inactivity_months for the mark_inactive stage.",
    )
    parser.add_argument(
        "--metrics-json",
        default=None,
        help="Write the last run's summary JSON to this path.",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    registry = _build_registry()
    include = [s.strip() for s in args.stages.split(",")] if args.stages else None
    skip = {s.strip() for s in args.skip_stages.split(",") if s.strip()}
    options = {
        "retry_failed": args.retry_failed,
        "inactivity_months": args.inactivity_months,
    }

    with Database() as database:
        while True:
            if args.loop:
                wake_at = next_run_time(datetime.now(), args.hour)
                logger.info("Next monthly update at %s", wake_at.isoformat())
                time.sleep(max((wake_at - datetime.now()).total_seconds(), 0))

            summary = run_once(database, registry, include=include, skip=skip, options=options)

            if args.metrics_json:
                path = Path(args.metrics_json)
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(json.dumps(summary, indent=2, default=str) + "\n", encoding="utf-8")

            if not args.loop:
                return 1 if summary["status"] == "failed" else 0


if __name__ == "__main__":
    raise SystemExit(main())
