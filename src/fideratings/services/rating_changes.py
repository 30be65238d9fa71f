"""
Month-over-month rating changes for one player.

Snapshots are collapsed to one per calendar month, the most recent
`window` months are kept, and each category's delta is computed against
the immediately preceding month in that window. A delta is None (never
0) when there is no previous month or when either side has no rating
for that category.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from sqlalchemy.orm import Session

from fideratings.db.models import RatingSnapshot
from fideratings.fide.records import CATEGORIES
from fideratings.periods import month_key


@dataclass
class CategoryChange:
    rating: Optional[int]
    change: Optional[int]


@dataclass
class RatingChange:
    """Ratings and deltas for one month."""
    period: str
    standard: CategoryChange
    rapid: CategoryChange
    blitz: CategoryChange

    def category(self, name: str) -> CategoryChange:
        return getattr(self, name)

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"period": self.period}
        for name in CATEGORIES:
            entry = self.category(name)
            data[f"{name}_rating"] = entry.rating
            data[f"{name}_change"] = entry.change
        return data


def _field(snapshot: Any, name: str) -> Any:
    if isinstance(snapshot, Mapping):
        return snapshot.get(name)
    return getattr(snapshot, name, None)


def _collapse_months(snapshots: Iterable[Any]) -> list[tuple[str, dict[str, Optional[int]]]]:
    """
    One (period, ratings) entry per calendar month, oldest first.

    Within a month the earliest period is reported and, per category, the
    first non-null rating wins.
    """
    months: dict[str, tuple[str, dict[str, Optional[int]]]] = {}
    for snapshot in sorted(snapshots, key=lambda s: str(_field(s, "period"))):
        period = str(_field(snapshot, "period"))
        key = month_key(period)
        if key not in months:
            months[key] = (period, {name: None for name in CATEGORIES})
        ratings = months[key][1]
        for name in CATEGORIES:
            if ratings[name] is None:
                ratings[name] = _field(snapshot, f"{name}_rating")
    return [months[key] for key in sorted(months)]


def derive_rating_changes(snapshots: Iterable[Any], window: int = 12) -> list[RatingChange]:
    """
    Compute per-category rating deltas over the most recent `window` months.

    Args:
        snapshots: RatingSnapshot rows or mappings with a period and
            {category}_rating keys, in any order
        window: Number of most recent months to report

    Returns:
        RatingChange entries, newest month first
    """
    if window <= 0:
        return []

    months = _collapse_months(snapshots)[-window:]

    changes = []
    previous: Optional[dict[str, Optional[int]]] = None
    for period, ratings in months:
        entries = {}
        for name in CATEGORIES:
            current = ratings[name]
            before = previous[name] if previous is not None else None
            delta = current - before if current is not None and before is not None else None
            entries[name] = CategoryChange(rating=current, change=delta)
        changes.append(RatingChange(period=period, **entries))
        previous = ratings

    changes.reverse()
    return changes


def get_rating_changes(session: Session, fide_id: int, window: int = 12) -> list[RatingChange]:
    """Load a player's snapshots and derive their recent rating changes."""
    snapshots = (
        session.query(RatingSnapshot)
        .filter(RatingSnapshot.fide_id == fide_id)
        .order_by(RatingSnapshot.period.asc())
        .all()
    )
    return derive_rating_changes(snapshots, window=window)
