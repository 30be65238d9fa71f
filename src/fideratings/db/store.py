"""
Upsert engine for players and monthly rating snapshots.

All writes from an import go through a RatingStore. The merge rules live
here, once, for every backend:

- players: INSERT ... ON CONFLICT (fide_id) DO UPDATE, profile fields
  last-write-wins (name is kept if the new record has none, since the
  column is NOT NULL). is_active / inactive_date are never touched.
- ratings: INSERT ... ON CONFLICT (fide_id, period) DO UPDATE of the
  current category's two columns only, each wrapped in
  COALESCE(excluded.col, ratings.col). Importing the blitz list therefore
  never clears the standard or rapid values already stored for the same
  month, and a NULL never overwrites a stored value.

Backends differ only in which dialect's INSERT construct provides
ON CONFLICT; SQLite and PostgreSQL subclasses supply it.

Usage:
    store = get_rating_store(session)
    result = store.upsert_records(records, "20250801", "blitz")
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from sqlalchemy import Table, func
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from fideratings.db.models import CATEGORY_COLUMNS, Player, RatingSnapshot, utc_now
from fideratings.fide.records import Category, RatingRecord, validate_category

logger = logging.getLogger(__name__)

# Errors that mean the database itself is unreachable; never isolated per record
INFRASTRUCTURE_ERRORS = (OperationalError, InterfaceError)

# Keep error lists bounded on very dirty files
MAX_RECORDED_ERRORS = 50


@dataclass
class BatchResult:
    """Outcome of upserting one batch of records."""
    upserted: int = 0
    duplicates: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def merge(self, other: "BatchResult") -> None:
        self.upserted += other.upserted
        self.duplicates += other.duplicates
        self.failed += other.failed
        room = MAX_RECORDED_ERRORS - len(self.errors)
        if room > 0:
            self.errors.extend(other.errors[:room])


class RatingStore:
    """Shared upsert logic; subclasses provide the dialect INSERT construct."""

    dialect_name = ""

    def __init__(self, session: Session):
        self.session = session

    def _insert(self, table: Table):
        raise NotImplementedError

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def _player_statement(self):
        table = Player.__table__
        stmt = self._insert(table)
        return stmt.on_conflict_do_update(
            index_elements=[table.c.fide_id],
            set_={
                "name": func.coalesce(func.nullif(stmt.excluded.name, ""), table.c.name),
                "federation": stmt.excluded.federation,
                "title": stmt.excluded.title,
                "sex": stmt.excluded.sex,
                "birth_year": stmt.excluded.birth_year,
                "flag": stmt.excluded.flag,
                "updated_at": stmt.excluded.updated_at,
            },
        )

    def _rating_statement(self, category: Category):
        rating_col, games_col = CATEGORY_COLUMNS[category]
        table = RatingSnapshot.__table__
        stmt = self._insert(table)
        return stmt.on_conflict_do_update(
            index_elements=[table.c.fide_id, table.c.period],
            set_={
                rating_col: func.coalesce(stmt.excluded[rating_col], table.c[rating_col]),
                games_col: func.coalesce(stmt.excluded[games_col], table.c[games_col]),
                "updated_at": stmt.excluded.updated_at,
            },
        )

    # -------------------------------------------------------------------------
    # Row builders
    # -------------------------------------------------------------------------

    @staticmethod
    def _player_row(record: RatingRecord, now) -> dict:
        row = record.profile()
        row["name"] = row["name"] or ""
        row["updated_at"] = now
        return row

    @staticmethod
    def _rating_row(
        fide_id: int,
        period: str,
        category: Category,
        rating: Optional[int],
        games: Optional[int],
        now,
    ) -> dict:
        rating_col, games_col = CATEGORY_COLUMNS[category]
        return {
            "fide_id": fide_id,
            "period": period,
            rating_col: rating,
            games_col: games,
            "updated_at": now,
        }

    def _write(self, records: list[RatingRecord], period: str, category: Category) -> None:
        """Execute player then rating upserts for records (no transaction handling)."""
        now = utc_now()
        self.session.execute(
            self._player_statement(),
            [self._player_row(r, now) for r in records],
        )
        rating_rows = [
            self._rating_row(r.fide_id, period, category, r.rating, r.games, now)
            for r in records
            if r.rating is not None
        ]
        if rating_rows:
            self.session.execute(self._rating_statement(category), rating_rows)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def upsert_player(self, record: RatingRecord) -> None:
        """Insert the player or overwrite its profile fields."""
        self.session.execute(self._player_statement(), [self._player_row(record, utc_now())])

    def upsert_rating_category(
        self,
        fide_id: int,
        period: str,
        category: Category,
        rating: Optional[int],
        games: Optional[int],
    ) -> None:
        """
        Merge one category's (rating, games) into the (fide_id, period) row.

        Only this category's columns are written; a None rating means the
        player has no entry for this category and nothing is written.
        """
        category = validate_category(category)
        if rating is None:
            return
        row = self._rating_row(fide_id, period, category, rating, games, utc_now())
        self.session.execute(self._rating_statement(category), [row])

    def upsert_records(
        self,
        records: Iterable[RatingRecord],
        period: str,
        category: Category,
        isolate: bool = True,
    ) -> BatchResult:
        """
        Upsert one batch of records for (period, category).

        Duplicate FIDE ids inside the batch are collapsed (the last one
        wins). The batch runs inside a SAVEPOINT; if it fails and isolate
        is set, every record is retried in its own SAVEPOINT and failures
        are tallied instead of raised.
        """
        category = validate_category(category)
        result = BatchResult()

        unique: dict[int, RatingRecord] = {}
        for record in records:
            if record.fide_id in unique:
                result.duplicates += 1
            unique[record.fide_id] = record
        batch = list(unique.values())
        if not batch:
            return result

        try:
            with self.session.begin_nested():
                self._write(batch, period, category)
            result.upserted = len(batch)
            return result
        except INFRASTRUCTURE_ERRORS:
            raise
        except SQLAlchemyError as exc:
            if not isolate:
                raise
            logger.warning(
                "Batch of %d %s records for %s failed (%s); retrying record by record",
                len(batch), category, period, exc.__class__.__name__,
            )

        for record in batch:
            try:
                with self.session.begin_nested():
                    self.upsert_player(record)
                    self.upsert_rating_category(
                        record.fide_id, period, category, record.rating, record.games
                    )
                result.upserted += 1
            except INFRASTRUCTURE_ERRORS:
                raise
            except SQLAlchemyError as exc:
                result.failed += 1
                error_msg = f"fide_id={record.fide_id}: {exc.__class__.__name__}: {getattr(exc, 'orig', None) or exc}"
                if len(result.errors) < MAX_RECORDED_ERRORS:
                    result.errors.append(error_msg)
                logger.error("Error upserting record: %s", error_msg)

        return result


class SQLiteRatingStore(RatingStore):
    dialect_name = "sqlite"

    def _insert(self, table: Table):
        return sqlite_insert(table)


class PostgresRatingStore(RatingStore):
    dialect_name = "postgresql"

    def _insert(self, table: Table):
        return postgresql_insert(table)


_STORES: dict[str, type[RatingStore]] = {
    SQLiteRatingStore.dialect_name: SQLiteRatingStore,
    PostgresRatingStore.dialect_name: PostgresRatingStore,
}


def get_rating_store(session: Session) -> RatingStore:
    """
    Return the store for the session's backend.

    Raises:
        ValueError: for a dialect without ON CONFLICT support here
    """
    dialect = session.get_bind().dialect.name
    try:
        return _STORES[dialect](session)
    except KeyError as exc:
        raise ValueError(f"Unsupported database dialect for upserts: {dialect}") from exc
