"""
Player activity inference.

A player is inactive when no rating snapshot at or after the cutoff
period (as_of minus N months) records a game in any category. Their
inactive_date is the first day of the month after the last period in
which they played, or the cutoff date if they never played. Players with
recent games are reset to active.

This is the only code that writes players.is_active / inactive_date.
It takes the player-writes lock exclusively so it never interleaves
with an import.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from fideratings.config import settings
from fideratings.db.models import Player, RatingSnapshot
from fideratings.db.session import Database
from fideratings.periods import add_months, current_period, normalize_period, period_to_date
from fideratings.tasks.locks import PLAYER_WRITES_LOCK, named_lock

logger = logging.getLogger(__name__)

UPDATE_CHUNK_SIZE = 5000


@dataclass
class ActivityStats:
    """Statistics from an activity refresh."""
    as_of_period: str = ""
    cutoff_period: str = ""
    players_checked: int = 0
    active: int = 0
    inactive: int = 0
    never_played: int = 0
    changed: int = 0
    dry_run: bool = False
    sample_changes: list[str] = field(default_factory=list)

    def summary(self) -> str:
        lines = [
            f"Activity refresh as of {self.as_of_period} (cutoff {self.cutoff_period})"
            + (" [dry run]" if self.dry_run else ""),
            f"  Players checked:          {self.players_checked}",
            f"  Active:                   {self.active}",
            f"  Inactive:                 {self.inactive}",
            f"    never played:           {self.never_played}",
            f"  Rows changed:             {self.changed}",
        ]
        for change in self.sample_changes:
            lines.append(f"    - {change}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "as_of_period": self.as_of_period,
            "cutoff_period": self.cutoff_period,
            "players_checked": self.players_checked,
            "active": self.active,
            "inactive": self.inactive,
            "never_played": self.never_played,
            "changed": self.changed,
            "dry_run": self.dry_run,
        }


def _last_game_periods():
    """Subquery: latest period with at least one game, per player."""
    return (
        select(
            RatingSnapshot.fide_id.label("fide_id"),
            func.max(RatingSnapshot.period).label("last_period"),
        )
        .where(
            or_(
                RatingSnapshot.standard_games > 0,
                RatingSnapshot.rapid_games > 0,
                RatingSnapshot.blitz_games > 0,
            )
        )
        .group_by(RatingSnapshot.fide_id)
        .subquery()
    )


def mark_inactive_players(
    session: Session,
    as_of_period: Optional[str] = None,
    months: Optional[int] = None,
    dry_run: bool = False,
) -> ActivityStats:
    """
    Recompute is_active / inactive_date for every player.

    Args:
        session: Database session (caller commits)
        as_of_period: Reference period; defaults to the current month
        months: Inactivity threshold; defaults to settings.inactivity_months
        dry_run: Compute statistics without writing

    Returns:
        ActivityStats
    """
    as_of = normalize_period(as_of_period) if as_of_period else current_period()
    months = months if months is not None else settings.inactivity_months
    cutoff = add_months(as_of, -months)
    cutoff_date = period_to_date(cutoff)

    stats = ActivityStats(as_of_period=as_of, cutoff_period=cutoff, dry_run=dry_run)

    last_game = _last_game_periods()
    rows = session.execute(
        select(
            Player.fide_id,
            Player.name,
            Player.is_active,
            Player.inactive_date,
            last_game.c.last_period,
        ).outerjoin(last_game, last_game.c.fide_id == Player.fide_id)
    ).all()

    updates = []
    for fide_id, name, is_active, inactive_date, last_period in rows:
        stats.players_checked += 1

        if last_period is not None and last_period >= cutoff:
            stats.active += 1
            new_active, new_date = True, None
        else:
            stats.inactive += 1
            new_active = False
            if last_period is None:
                stats.never_played += 1
                new_date = cutoff_date
            else:
                new_date = period_to_date(add_months(last_period, 1))

        if is_active is new_active and inactive_date == new_date:
            continue

        updates.append({"fide_id": fide_id, "is_active": new_active, "inactive_date": new_date})
        if len(stats.sample_changes) < 10:
            state = "active" if new_active else f"inactive since {new_date}"
            stats.sample_changes.append(f"{name} ({fide_id}): {state}")

    stats.changed = len(updates)

    if not dry_run:
        for start in range(0, len(updates), UPDATE_CHUNK_SIZE):
            session.execute(update(Player), updates[start:start + UPDATE_CHUNK_SIZE])
        session.flush()

    logger.info(stats.summary())
    return stats


def refresh_player_activity(
    database: Database,
    as_of_period: Optional[str] = None,
    months: Optional[int] = None,
    dry_run: bool = False,
    lock_timeout: Optional[float] = None,
) -> ActivityStats:
    """Run mark_inactive_players in its own transaction under the exclusive player-writes lock."""
    timeout = lock_timeout if lock_timeout is not None else settings.lock_timeout_seconds
    with named_lock(database.engine, PLAYER_WRITES_LOCK, timeout_seconds=timeout):
        with database.session_scope() as session:
            return mark_inactive_players(session, as_of_period, months, dry_run=dry_run)
