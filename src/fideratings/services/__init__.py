"""Application services: rating-list import, rating changes and activity inference."""

from fideratings.services.activity import ActivityStats, mark_inactive_players, refresh_player_activity
from fideratings.services.rating_changes import (
    CategoryChange,
    RatingChange,
    derive_rating_changes,
    get_rating_changes,
)
from fideratings.services.rating_import import (
    HistoricalImportSummary,
    ImportOutcome,
    RatingImporter,
    list_rating_lists,
)

__all__ = [
    "ActivityStats",
    "CategoryChange",
    "HistoricalImportSummary",
    "ImportOutcome",
    "RatingChange",
    "RatingImporter",
    "derive_rating_changes",
    "get_rating_changes",
    "list_rating_lists",
    "mark_inactive_players",
    "refresh_player_activity",
]
