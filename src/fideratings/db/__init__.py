"""
Database module for FIDE Ratings.

Provides SQLAlchemy ORM models, the Database handle and the rating
upsert engine.

Usage:
    from fideratings.db import Database, Player

    with Database() as db, db.session_scope() as session:
        players = session.query(Player).all()
"""

from fideratings.db.models import (
    Base,
    CATEGORY_COLUMNS,
    IMPORT_STATUSES,
    Player,
    RatingList,
    RatingSnapshot,
)
from fideratings.db.session import Database, create_db_engine
from fideratings.db.store import (
    BatchResult,
    PostgresRatingStore,
    RatingStore,
    SQLiteRatingStore,
    get_rating_store,
)

__all__ = [
    # Base
    "Base",
    "CATEGORY_COLUMNS",
    "IMPORT_STATUSES",
    # Models
    "Player",
    "RatingList",
    "RatingSnapshot",
    # Session
    "Database",
    "create_db_engine",
    # Upserts
    "BatchResult",
    "PostgresRatingStore",
    "RatingStore",
    "SQLiteRatingStore",
    "get_rating_store",
]
