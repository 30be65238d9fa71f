from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from fideratings import __version__
from fideratings.db.models import CATEGORY_COLUMNS, Player, RatingSnapshot
from fideratings.db.session import Database
from fideratings.fide.records import CATEGORIES
from fideratings.periods import normalize_period
from fideratings.services.rating_changes import get_rating_changes
from fideratings.services.rating_import import list_rating_lists

router = APIRouter(prefix="/api")

# Standard-rating histogram buckets: (label, lower bound inclusive, upper bound exclusive)
RATING_BUCKETS = [
    ("< 1200", None, 1200),
    ("1200-1399", 1200, 1400),
    ("1400-1599", 1400, 1600),
    ("1600-1799", 1600, 1800),
    ("1800-1999", 1800, 2000),
    ("2000-2199", 2000, 2200),
    ("2200-2399", 2200, 2400),
    ("2400-2599", 2400, 2600),
    ("2600-2799", 2600, 2800),
    ("2800+", 2800, None),
]


def get_db(request: Request):
    """Request-scoped session from the app's Database handle."""
    database: Database = request.app.state.database
    yield from database.get_db()


def _parse_period(value: Optional[str], param: str) -> Optional[str]:
    if value is None:
        return None
    try:
        return normalize_period(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {param} period: {value!r}")


def _serialize_player(player: Player) -> dict:
    return {
        "fide_id": player.fide_id,
        "name": player.name,
        "federation": player.federation,
        "sex": player.sex,
        "title": player.title,
        "birth_year": player.birth_year,
        "flag": player.flag,
        "is_active": player.is_active,
        "inactive_date": player.inactive_date.isoformat() if player.inactive_date else None,
    }


def _serialize_snapshot(snapshot: Optional[RatingSnapshot]) -> Optional[dict]:
    if snapshot is None:
        return None
    data: dict[str, Any] = {"period": snapshot.period}
    for category in CATEGORIES:
        rating, games = snapshot.category_values(category)
        data[f"{category}_rating"] = rating
        data[f"{category}_games"] = games
    return data


def _latest_periods_subquery():
    """Latest snapshot period per player."""
    return (
        select(
            RatingSnapshot.fide_id.label("fide_id"),
            func.max(RatingSnapshot.period).label("max_period"),
        )
        .group_by(RatingSnapshot.fide_id)
        .subquery()
    )


def _get_player_or_404(db: Session, fide_id: int) -> Player:
    player = db.get(Player, fide_id)
    if player is None:
        raise HTTPException(status_code=404, detail=f"Player {fide_id} not found")
    return player


@router.get("/health")
async def api_health():
    return {"status": "ok", "version": __version__}


@router.get("/players/search")
async def api_players_search(
    db: Session = Depends(get_db),
    q: str = Query(..., min_length=2, description="Name search (min 2 characters)"),
    federation: Optional[str] = Query(None, description="Federation code filter"),
    limit: int = Query(20, ge=1, le=100, description="Max results"),
):
    """
    Search players by name.

    Prefix matches on the name come first, then other substring matches,
    each group alphabetical.
    """
    query = db.query(Player).filter(Player.name.ilike(f"%{q}%"))
    if federation:
        query = query.filter(Player.federation == federation.upper())

    # Over-fetch so prefix matches can be promoted before truncating
    players = query.order_by(Player.name.asc()).limit(limit * 5).all()

    q_lower = q.lower()
    players.sort(key=lambda p: (0 if p.name.lower().startswith(q_lower) else 1, p.name.lower()))

    return JSONResponse({
        "players": [_serialize_player(p) for p in players[:limit]],
    })


@router.get("/players/{fide_id}")
async def api_player_detail(fide_id: int, db: Session = Depends(get_db)):
    """Player profile with their most recent rating snapshot."""
    player = _get_player_or_404(db, fide_id)
    latest = (
        db.query(RatingSnapshot)
        .filter(RatingSnapshot.fide_id == fide_id)
        .order_by(RatingSnapshot.period.desc())
        .first()
    )
    return JSONResponse({
        "player": _serialize_player(player),
        "latest": _serialize_snapshot(latest),
    })


@router.get("/players/{fide_id}/history")
async def api_player_history(
    fide_id: int,
    db: Session = Depends(get_db),
    start: Optional[str] = Query(None, description="First period (e.g. 2024-01)"),
    end: Optional[str] = Query(None, description="Last period (e.g. 2025-08)"),
    limit: int = Query(120, ge=1, le=1000, description="Max snapshots"),
):
    """Rating snapshots for one player, newest first."""
    _get_player_or_404(db, fide_id)
    start_period = _parse_period(start, "start")
    end_period = _parse_period(end, "end")

    query = db.query(RatingSnapshot).filter(RatingSnapshot.fide_id == fide_id)
    if start_period:
        query = query.filter(RatingSnapshot.period >= start_period)
    if end_period:
        query = query.filter(RatingSnapshot.period <= end_period)

    snapshots = query.order_by(RatingSnapshot.period.desc()).limit(limit).all()
    return JSONResponse({
        "fide_id": fide_id,
        "history": [_serialize_snapshot(s) for s in snapshots],
    })


@router.get("/players/{fide_id}/rating-changes")
async def api_player_rating_changes(
    fide_id: int,
    db: Session = Depends(get_db),
    window: int = Query(12, ge=1, le=240, description="Number of recent months"),
):
    """Month-over-month rating deltas per category, newest first."""
    _get_player_or_404(db, fide_id)
    changes = get_rating_changes(db, fide_id, window=window)
    return JSONResponse({
        "fide_id": fide_id,
        "window": window,
        "changes": [c.to_dict() for c in changes],
    })


@router.get("/rankings")
async def api_rankings(
    db: Session = Depends(get_db),
    category: str = Query("standard", description="'standard', 'rapid' or 'blitz'"),
    limit: int = Query(100, ge=1, le=1000, description="Number of players"),
    federation: Optional[str] = Query(None),
    title: Optional[str] = Query(None),
    sex: Optional[str] = Query(None, description="'M' or 'F'"),
    min_age: Optional[int] = Query(None, ge=0, le=120),
    max_age: Optional[int] = Query(None, ge=0, le=120),
    active_only: bool = Query(False, description="Only players with games in this list"),
    include_inactive: bool = Query(False, description="Include players marked inactive"),
):
    """
    Top players for the latest period that has ratings in the category.

    Players marked inactive are excluded unless include_inactive is set;
    a NULL activity flag counts as active.
    """
    category_param = category.strip().lower()
    if category_param not in CATEGORY_COLUMNS:
        return JSONResponse(
            {"error": "category must be 'standard', 'rapid' or 'blitz'"},
            status_code=400,
        )

    rating_name, games_name = CATEGORY_COLUMNS[category_param]
    rating_col = getattr(RatingSnapshot, rating_name)
    games_col = getattr(RatingSnapshot, games_name)

    period = db.query(func.max(RatingSnapshot.period)).filter(rating_col.isnot(None)).scalar()
    if period is None:
        return JSONResponse({"category": category_param, "period": None, "players": []})

    query = (
        db.query(Player, rating_col, games_col)
        .join(RatingSnapshot, RatingSnapshot.fide_id == Player.fide_id)
        .filter(RatingSnapshot.period == period, rating_col.isnot(None))
    )

    if active_only:
        query = query.filter(games_col > 0)
    if not include_inactive:
        query = query.filter(Player.is_active.isnot(False))
    if federation:
        query = query.filter(Player.federation == federation.upper())
    if title:
        query = query.filter(Player.title == title.upper())
    if sex:
        query = query.filter(Player.sex == sex.upper())

    if min_age is not None or max_age is not None:
        current_year = date.today().year
        query = query.filter(Player.birth_year.between(1900, current_year))
        if min_age is not None:
            query = query.filter(Player.birth_year <= current_year - min_age)
        if max_age is not None:
            query = query.filter(Player.birth_year >= current_year - max_age)

    rows = query.order_by(rating_col.desc(), Player.name.asc()).limit(limit).all()

    players_data = []
    for i, (player, rating, games) in enumerate(rows):
        entry = _serialize_player(player)
        entry.update({"rank": i + 1, "rating": rating, "games": games})
        players_data.append(entry)

    return JSONResponse({
        "category": category_param,
        "period": period,
        "players": players_data,
    })


@router.get("/rankings/statistics")
async def api_rankings_statistics(db: Session = Depends(get_db)):
    """Player counts, per-category averages and the standard-rating distribution."""
    latest = _latest_periods_subquery()
    latest_join = and_(
        RatingSnapshot.fide_id == latest.c.fide_id,
        RatingSnapshot.period == latest.c.max_period,
    )

    summary: dict[str, Any] = {
        "total_players": db.query(func.count(Player.fide_id)).scalar() or 0,
        "titled_players": db.query(func.count(Player.fide_id)).filter(Player.title.isnot(None)).scalar() or 0,
        "total_federations": db.query(func.count(func.distinct(Player.federation))).scalar() or 0,
    }
    for category, (rating_name, _games_name) in CATEGORY_COLUMNS.items():
        col = getattr(RatingSnapshot, rating_name)
        avg_rating, max_rating = db.query(func.avg(col), func.max(col)).join(latest, latest_join).one()
        summary[f"avg_{category}"] = round(float(avg_rating), 1) if avg_rating is not None else None
        summary[f"max_{category}"] = max_rating

    distribution = []
    for label, low, high in RATING_BUCKETS:
        query = (
            db.query(func.count(RatingSnapshot.id))
            .join(latest, latest_join)
            .filter(RatingSnapshot.standard_rating.isnot(None))
        )
        if low is not None:
            query = query.filter(RatingSnapshot.standard_rating >= low)
        if high is not None:
            query = query.filter(RatingSnapshot.standard_rating < high)
        distribution.append({"rating_range": label, "count": query.scalar() or 0})

    return JSONResponse({"summary": summary, "distribution": distribution})


@router.get("/rankings/federations")
async def api_rankings_federations(db: Session = Depends(get_db)):
    """Per-federation player counts and standard-rating aggregates."""
    latest = _latest_periods_subquery()
    rows = (
        db.query(
            Player.federation,
            func.count(Player.fide_id),
            func.avg(RatingSnapshot.standard_rating),
            func.max(RatingSnapshot.standard_rating),
            func.count(Player.title),
        )
        .outerjoin(latest, latest.c.fide_id == Player.fide_id)
        .outerjoin(
            RatingSnapshot,
            and_(
                RatingSnapshot.fide_id == latest.c.fide_id,
                RatingSnapshot.period == latest.c.max_period,
            ),
        )
        .filter(Player.federation.isnot(None))
        .group_by(Player.federation)
        .order_by(func.count(Player.fide_id).desc(), Player.federation.asc())
        .all()
    )

    return JSONResponse({
        "federations": [
            {
                "federation": federation,
                "player_count": player_count,
                "avg_rating": round(float(avg_rating), 1) if avg_rating is not None else None,
                "top_rating": top_rating,
                "titled_players": titled,
            }
            for federation, player_count, avg_rating, top_rating, titled in rows
        ]
    })


@router.get("/rating-lists")
async def api_rating_lists(db: Session = Depends(get_db)):
    """Import bookkeeping for every (period, category) list."""
    return JSONResponse({
        "rating_lists": [
            {
                "period": run.period,
                "category": run.category,
                "status": run.status,
                "total_players": run.total_players,
                "skipped_records": run.skipped_records,
                "failed_records": run.failed_records,
                "error_message": run.error_message,
                "import_date": run.import_date.isoformat() if run.import_date else None,
            }
            for run in list_rating_lists(db)
        ]
    })


def create_app(database: Optional[Database] = None) -> FastAPI:
    """Build the read API around a Database handle (defaults to settings)."""
    application = FastAPI(title="FIDE Ratings", version=__version__)
    application.state.database = database or Database()
    application.include_router(router)
    return application


app = create_app()
