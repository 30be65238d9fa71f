"""
Rating import service: fetch, parse and upsert FIDE rating lists.

This module sequences one import per (period, category):

    fetch archive -> extract -> parse -> upsert in batches -> mark completed

and tracks each attempt in the rating_lists table so runs are safe to
repeat:

- completed lists are skipped without touching the database
- lists left 'processing' by a crashed run are re-attempted
- failed lists are skipped unless retry_failed is set
- lists FIDE has not published yet stay 'pending' and are retried later

Two transaction modes are supported. 'batch' (default) commits every
batch and isolates per-record failures, which keeps memory and lock time
bounded on 400k+ player files. 'atomic' writes the whole file in one
transaction: any failure rolls back everything written for that list.

Usage:
    importer = RatingImporter(Database())

    importer.import_rating_list("20250801", "blitz")
    importer.import_current_month()
    importer.import_historical(2015)
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from itertools import islice
from pathlib import Path
from typing import Iterable, Iterator, Optional, Union

from sqlalchemy.orm import Session

from fideratings.config import settings
from fideratings.db.models import RatingList, utc_now
from fideratings.db.session import Database
from fideratings.db.store import INFRASTRUCTURE_ERRORS, BatchResult, get_rating_store
from fideratings.fide.fetcher import RatingListFetcher, extract_data_file
from fideratings.fide.parsers import parse_rating_file
from fideratings.fide.records import CATEGORIES, Category, RatingRecord, validate_category
from fideratings.periods import current_period, historical_periods, normalize_period
from fideratings.tasks.locks import PLAYER_WRITES_LOCK, import_lock_name, named_lock

logger = logging.getLogger(__name__)


@dataclass
class ImportOutcome:
    """Result of one (period, category) import attempt."""
    period: str
    category: str
    # 'completed', 'skipped' (already completed), 'failed_skipped' (failed earlier,
    # not retried), 'unavailable' or 'failed'
    status: str
    imported: int = 0
    malformed: int = 0
    duplicates: int = 0
    failed_records: int = 0
    source_file: Optional[str] = None
    error: Optional[str] = None
    errors: list[str] = field(default_factory=list)

    def summary(self) -> str:
        """Return a human-readable summary of the import."""
        lines = [
            f"Rating list {self.period} {self.category}: {self.status}",
            f"  Players imported:         {self.imported}",
            f"  Malformed entries:        {self.malformed}",
            f"  Duplicate ids in file:    {self.duplicates}",
            f"  Records failed:           {self.failed_records}",
        ]
        if self.source_file:
            lines.append(f"  Source file:              {self.source_file}")
        if self.error:
            lines.append(f"  Error: {self.error}")
        if self.errors:
            for err in self.errors[:5]:
                lines.append(f"    - {err}")
            if len(self.errors) > 5:
                lines.append(f"    ... and {len(self.errors) - 5} more")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "period": self.period,
            "category": self.category,
            "status": self.status,
            "imported": self.imported,
            "malformed": self.malformed,
            "duplicates": self.duplicates,
            "failed_records": self.failed_records,
            "source_file": self.source_file,
            "error": self.error,
        }


@dataclass
class HistoricalImportSummary:
    """Outcomes of a multi-period sweep."""
    outcomes: list[ImportOutcome] = field(default_factory=list)

    def count(self, status: str) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def total_imported(self) -> int:
        return sum(o.imported for o in self.outcomes if o.status == "completed")

    @property
    def failed(self) -> list[ImportOutcome]:
        return [o for o in self.outcomes if o.status == "failed"]

    def summary(self) -> str:
        lines = [
            "Historical import complete:",
            f"  Lists attempted:          {len(self.outcomes)}",
            f"  Completed:                {self.count('completed')}",
            f"  Skipped (already done):   {self.count('skipped')}",
            f"  Skipped (failed earlier): {self.count('failed_skipped')}",
            f"  Not available:            {self.count('unavailable')}",
            f"  Failed:                   {self.count('failed')}",
            f"  Players imported:         {self.total_imported}",
        ]
        for outcome in self.failed[:10]:
            lines.append(f"    - {outcome.period} {outcome.category}: {outcome.error}")
        return "\n".join(lines)


def _chunked(items: list[RatingRecord], size: int) -> Iterator[list[RatingRecord]]:
    """Split a list into fixed-size chunks."""
    iterator = iter(items)
    while True:
        chunk = list(islice(iterator, size))
        if not chunk:
            return
        yield chunk


def list_rating_lists(session: Session) -> list[RatingList]:
    """All import bookkeeping rows, newest period first."""
    return (
        session.query(RatingList)
        .order_by(RatingList.period.desc(), RatingList.category.asc())
        .all()
    )


class RatingImporter:
    """
    Imports FIDE rating lists into the database.

    Args:
        database: Database handle (engine + session factory)
        fetcher: Archive fetcher; defaults to one built from settings
        batch_size: Records per upsert batch
        transaction_mode: 'batch' or 'atomic'
        progress_interval: Log progress every N records
        lock_timeout: Seconds to wait for a concurrent import of the same list
    """

    def __init__(
        self,
        database: Database,
        fetcher: Optional[RatingListFetcher] = None,
        batch_size: Optional[int] = None,
        transaction_mode: Optional[str] = None,
        progress_interval: Optional[int] = None,
        lock_timeout: Optional[float] = None,
    ):
        self.database = database
        self.fetcher = fetcher or RatingListFetcher()
        self.batch_size = batch_size or settings.import_batch_size
        self.transaction_mode = transaction_mode or settings.import_transaction_mode
        if self.transaction_mode not in ("batch", "atomic"):
            raise ValueError(f"Unknown transaction mode: {self.transaction_mode!r}")
        self.progress_interval = progress_interval or settings.import_progress_interval
        self.lock_timeout = lock_timeout if lock_timeout is not None else settings.lock_timeout_seconds

    # -------------------------------------------------------------------------
    # Single list
    # -------------------------------------------------------------------------

    def import_rating_list(
        self,
        period: Union[str, date],
        category: Category = "standard",
        local_file: Union[str, Path, None] = None,
        retry_failed: bool = False,
    ) -> ImportOutcome:
        """
        Import one category's rating list for one period.

        Args:
            period: Rating period (e.g. "20250801")
            category: 'standard', 'rapid' or 'blitz'
            local_file: Use this .zip/.xml/.txt instead of downloading
            retry_failed: Re-attempt a list previously marked failed

        Returns:
            ImportOutcome. A list already completed returns status
            'skipped' without any database writes.

        Raises:
            Any error after the list was marked 'processing'; the list is
            marked 'failed' first.
        """
        period = normalize_period(period)
        category = validate_category(category)
        engine = self.database.engine

        with named_lock(engine, PLAYER_WRITES_LOCK, shared=True, timeout_seconds=self.lock_timeout):
            with named_lock(engine, import_lock_name(period, category), timeout_seconds=self.lock_timeout):
                return self._import_locked(period, category, local_file, retry_failed)

    def _import_locked(
        self,
        period: str,
        category: Category,
        local_file: Union[str, Path, None],
        retry_failed: bool,
    ) -> ImportOutcome:
        skipped = self._claim(period, category, retry_failed)
        if skipped is not None:
            return skipped

        outcome = ImportOutcome(period=period, category=category, status="failed")
        try:
            data_file = self._resolve_data_file(period, category, local_file)
            if data_file is None:
                self._update_run(period, category, status="pending", error_message="Not published by FIDE")
                outcome.status = "unavailable"
                logger.warning("Rating list %s %s not available, left pending", period, category)
                return outcome

            outcome.source_file = str(data_file)
            parsed = parse_rating_file(data_file, category)
            outcome.malformed = parsed.malformed
            if parsed.malformed:
                logger.warning(
                    "Dropped %d malformed entries from %s", parsed.malformed, Path(data_file).name
                )

            result = self._write_records(parsed.records, period, category)
        except Exception as exc:
            error_msg = f"{exc.__class__.__name__}: {exc}"
            logger.error("Import of %s %s failed: %s", period, category, error_msg)
            self._update_run(period, category, status="failed", error_message=error_msg[:2000])
            raise

        outcome.imported = result.upserted
        outcome.duplicates = result.duplicates
        outcome.failed_records = result.failed
        outcome.errors = result.errors

        if parsed.damaged:
            outcome.status = "failed"
            outcome.error = f"Rating file is damaged after {len(parsed.records)} players: {parsed.damaged}"
        elif result.failed:
            outcome.status = "failed"
            outcome.error = f"{result.failed} records failed to upsert"
        else:
            outcome.status = "completed"

        self._update_run(
            period,
            category,
            status=outcome.status,
            total_players=outcome.imported,
            skipped_records=outcome.malformed + outcome.duplicates,
            failed_records=outcome.failed_records,
            source_file=outcome.source_file,
            error_message=outcome.error,
            finished=True,
        )
        log = logger.info if outcome.status == "completed" else logger.error
        log(outcome.summary())
        return outcome

    def _claim(self, period: str, category: Category, retry_failed: bool) -> Optional[ImportOutcome]:
        """
        Mark the list 'processing', or return a 'skipped' or 'failed_skipped' outcome.

        Runs in its own committed transaction so a crash leaves the list
        visibly 'processing' for the next run.
        """
        with self.database.session_scope() as session:
            run = (
                session.query(RatingList)
                .filter(RatingList.period == period, RatingList.category == category)
                .one_or_none()
            )

            if run is not None and run.status == "completed":
                logger.info(
                    "Rating list %s %s already imported (%s players), skipping",
                    period, category, run.total_players,
                )
                return ImportOutcome(
                    period=period,
                    category=category,
                    status="skipped",
                    source_file=run.source_file,
                )

            if run is not None and run.status == "failed" and not retry_failed:
                logger.warning(
                    "Rating list %s %s previously failed (%s); use retry_failed to re-attempt",
                    period, category, run.error_message,
                )
                return ImportOutcome(
                    period=period,
                    category=category,
                    status="failed_skipped",
                    error=run.error_message,
                )

            if run is not None and run.status == "processing":
                logger.warning(
                    "Rating list %s %s was left processing by an interrupted run, retrying",
                    period, category,
                )

            if run is None:
                run = RatingList(period=period, category=category)
                session.add(run)

            run.status = "processing"
            run.started_at = utc_now()
            run.completed_at = None
            run.error_message = None

        return None

    def _update_run(
        self,
        period: str,
        category: Category,
        *,
        status: str,
        total_players: Optional[int] = None,
        skipped_records: Optional[int] = None,
        failed_records: Optional[int] = None,
        source_file: Optional[str] = None,
        error_message: Optional[str] = None,
        finished: bool = False,
    ) -> None:
        with self.database.session_scope() as session:
            run = (
                session.query(RatingList)
                .filter(RatingList.period == period, RatingList.category == category)
                .one()
            )
            run.status = status
            run.error_message = error_message
            if total_players is not None:
                run.total_players = total_players
            if skipped_records is not None:
                run.skipped_records = skipped_records
            if failed_records is not None:
                run.failed_records = failed_records
            if source_file is not None:
                run.source_file = source_file[:500]
            if finished:
                run.import_date = utc_now()
                run.completed_at = run.import_date if status == "completed" else None

    def _resolve_data_file(
        self,
        period: str,
        category: Category,
        local_file: Union[str, Path, None],
    ) -> Optional[Path]:
        if local_file is None:
            return self.fetcher.fetch(period, category)

        path = Path(local_file)
        if path.suffix.lower() == ".zip":
            return extract_data_file(path, path.with_suffix(""))
        return path

    def _write_records(
        self,
        records: list[RatingRecord],
        period: str,
        category: Category,
    ) -> BatchResult:
        """Upsert records in batches, in file order."""
        total = len(records)
        result = BatchResult()
        processed = 0
        next_progress = self.progress_interval

        def _progress() -> None:
            nonlocal next_progress
            if processed >= next_progress or processed == total:
                logger.info("  %s %s: %d/%d records upserted", period, category, processed, total)
                while next_progress <= processed:
                    next_progress += self.progress_interval

        if self.transaction_mode == "atomic":
            with self.database.session_scope() as session:
                store = get_rating_store(session)
                for batch in _chunked(records, self.batch_size):
                    result.merge(store.upsert_records(batch, period, category, isolate=False))
                    processed += len(batch)
                    _progress()
            return result

        for batch in _chunked(records, self.batch_size):
            with self.database.session_scope() as session:
                store = get_rating_store(session)
                result.merge(store.upsert_records(batch, period, category, isolate=True))
            processed += len(batch)
            _progress()
        return result

    # -------------------------------------------------------------------------
    # Multiple lists
    # -------------------------------------------------------------------------

    def import_period(
        self,
        period: Union[str, date],
        categories: Iterable[Category] = CATEGORIES,
        retry_failed: bool = False,
    ) -> list[ImportOutcome]:
        """
        Import every requested category for one period.

        A failing category is logged and reported as a 'failed' outcome;
        only infrastructure errors (database unreachable) propagate.
        """
        period = normalize_period(period)
        outcomes = []
        for category in categories:
            try:
                outcomes.append(self.import_rating_list(period, category, retry_failed=retry_failed))
            except INFRASTRUCTURE_ERRORS:
                raise
            except Exception as exc:
                outcomes.append(
                    ImportOutcome(
                        period=period,
                        category=category,
                        status="failed",
                        error=f"{exc.__class__.__name__}: {exc}",
                    )
                )
        return outcomes

    def import_current_month(
        self,
        categories: Iterable[Category] = CATEGORIES,
        today: Optional[date] = None,
    ) -> list[ImportOutcome]:
        """Import this month's lists (the scheduled, first-of-month run)."""
        period = current_period(today)
        logger.info("Importing current month's rating lists (%s)", period)
        return self.import_period(period, categories)

    def import_historical(
        self,
        start_year: Optional[int] = None,
        end_period: Union[str, date, None] = None,
        categories: Iterable[Category] = CATEGORIES,
        retry_failed: bool = False,
        today: Optional[date] = None,
    ) -> HistoricalImportSummary:
        """
        Import every month from January of start_year through end_period.

        Per-period failures and unpublished lists are logged and the sweep
        continues; infrastructure errors abort it.
        """
        start_year = start_year or settings.historical_start_year
        categories = tuple(categories)
        periods = historical_periods(start_year, end_period, today=today)

        logger.info(
            "Importing %d periods (%s to %s) for %s",
            len(periods),
            periods[0] if periods else "-",
            periods[-1] if periods else "-",
            ", ".join(categories),
        )

        summary = HistoricalImportSummary()
        for period in periods:
            summary.outcomes.extend(self.import_period(period, categories, retry_failed=retry_failed))

        logger.info(summary.summary())
        return summary
