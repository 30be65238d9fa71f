"""
SQLAlchemy ORM models for FIDE Ratings.

The schema is the same on SQLite and PostgreSQL. It is designed around
FIDE's own player identifier: one players row per FIDE id, one ratings
row per (FIDE id, period) holding all three categories side by side.

Key design decisions:
- fide_id is the natural primary key of players (never reassigned by FIDE)
- Standard, rapid and blitz for the same month share one ratings row;
  each category's columns are written independently by the importer
- rating_lists tracks every (period, category) import attempt so re-runs
  skip completed lists and retry interrupted ones

Tables:
- players: Player identity and profile fields
- ratings: Monthly rating snapshots
- rating_lists: Import bookkeeping per (period, category)
"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# =============================================================================
# Constants
# =============================================================================

IMPORT_STATUSES = ("pending", "processing", "completed", "failed")

# Column names per category on the ratings table
CATEGORY_COLUMNS: dict[str, tuple[str, str]] = {
    "standard": ("standard_rating", "standard_games"),
    "rapid": ("rapid_rating", "rapid_games"),
    "blitz": ("blitz_rating", "blitz_games"),
}


def utc_now() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.utcnow()


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# =============================================================================
# Player Models
# =============================================================================

class Player(Base):
    """
    One row per FIDE identity.

    Profile fields are overwritten by every import that lists the player.
    is_active / inactive_date are owned by the activity inference job and
    are never written by the importer; NULL is_active means "assume active".
    """
    __tablename__ = "players"

    fide_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    federation: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    sex: Mapped[Optional[str]] = mapped_column(String(1), nullable=True)
    title: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    # Taken as published; historically some values are implausible
    birth_year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    flag: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    is_active: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    inactive_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)

    ratings: Mapped[list["RatingSnapshot"]] = relationship(
        back_populates="player",
        order_by="RatingSnapshot.period",
    )

    __table_args__ = (
        Index("idx_players_name", "name"),
        Index("idx_players_federation", "federation"),
    )

    def __repr__(self) -> str:
        return f"<Player(fide_id={self.fide_id}, name='{self.name}')>"


class RatingSnapshot(Base):
    """
    One monthly rating-list entry for a player.

    Each category's (rating, games) pair is independent and may be NULL:
    a player can appear in the standard list without appearing in the
    rapid or blitz list for the same period.
    """
    __tablename__ = "ratings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    fide_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("players.fide_id", ondelete="CASCADE"), nullable=False
    )

    # YYYYMM01, compares chronologically as a string
    period: Mapped[str] = mapped_column(String(8), nullable=False)

    standard_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    standard_games: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rapid_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rapid_games: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    blitz_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    blitz_games: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)

    player: Mapped["Player"] = relationship(back_populates="ratings")

    __table_args__ = (
        UniqueConstraint("fide_id", "period", name="uq_ratings_fide_id_period"),
        Index("idx_ratings_period", "period"),
    )

    def category_values(self, category: str) -> tuple[Optional[int], Optional[int]]:
        """(rating, games) for one category."""
        rating_col, games_col = CATEGORY_COLUMNS[category]
        return getattr(self, rating_col), getattr(self, games_col)

    def __repr__(self) -> str:
        return f"<RatingSnapshot(fide_id={self.fide_id}, period='{self.period}')>"


# =============================================================================
# Operations Models
# =============================================================================

class RatingList(Base):
    """
    Import bookkeeping for one (period, category) rating list.

    Status lifecycle:
    - 'pending': attempted, but FIDE had not published the list
    - 'processing': import in progress (or crashed mid-run; retried)
    - 'completed': every record committed; re-runs skip it
    - 'failed': the attempt errored; retried only on explicit request
    """
    __tablename__ = "rating_lists"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    period: Mapped[str] = mapped_column(String(8), nullable=False)
    category: Mapped[str] = mapped_column(String(10), nullable=False, default="standard")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    total_players: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    skipped_records: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    failed_records: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    source_file: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    import_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("period", "category", name="uq_rating_lists_period_category"),
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_rating_lists_status",
        ),
        Index("idx_rating_lists_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<RatingList(period='{self.period}', category='{self.category}', status='{self.status}')>"
