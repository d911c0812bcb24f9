"""
Controlador de leaderboards - Endpoints de clasificación

Las tablas las mantiene el pipeline de scoring; aquí solo se leen.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel

from pickem.core.dependencies import Database
from pickem.models.leaderboard import BestFinishEntry, LeaderboardEntry
from pickem.services.leaderboard_service import (
    InvalidWeekRangeError,
    LeaderboardNotFoundError,
    LeaderboardService,
)


router = APIRouter(prefix="/leaderboard", tags=["leaderboard"])


class LeaderboardEntryResponse(BaseModel):
    """Entrada del leaderboard (usuario y estadísticas)."""
    rank: Optional[int] = None
    user_id: str
    week: Optional[int] = None
    total_points: int
    wins: int
    losses: int
    pushes: int
    pending: int
    lock_wins: int
    lock_losses: int
    lock_pushes: int
    picks_made: int
    pick_sources: list[str]
    is_eligible: bool


class LeaderboardResponse(BaseModel):
    season: int
    week: Optional[int] = None
    entries: list[LeaderboardEntryResponse]


class BestFinishResponse(BaseModel):
    season: int
    first_week: int
    last_week: int
    entries: list[BestFinishEntry]


def to_response(entry: LeaderboardEntry) -> LeaderboardEntryResponse:
    return LeaderboardEntryResponse(
        rank=entry.rank,
        user_id=entry.user_id,
        week=entry.week,
        total_points=entry.total_points,
        wins=entry.wins,
        losses=entry.losses,
        pushes=entry.pushes,
        pending=entry.pending,
        lock_wins=entry.lock_wins,
        lock_losses=entry.lock_losses,
        lock_pushes=entry.lock_pushes,
        picks_made=entry.picks_made,
        pick_sources=entry.pick_sources,
        is_eligible=entry.is_eligible
    )


@router.get("/weekly/{season}/{week}", response_model=LeaderboardResponse)
async def get_weekly_leaderboard(
    season: int,
    week: int,
    db: Database,
    limit: int = Query(100, ge=1, le=500),
    include_ineligible: bool = Query(False)
):
    """
    Obtener el leaderboard de una semana.
    """
    entries = await LeaderboardService(db).get_leaderboard(season, week, limit, include_ineligible)
    return LeaderboardResponse(
        season=season,
        week=week,
        entries=[to_response(e) for e in entries]
    )


@router.get("/season/{season}", response_model=LeaderboardResponse)
async def get_season_leaderboard(
    season: int,
    db: Database,
    limit: int = Query(100, ge=1, le=500),
    include_ineligible: bool = Query(False)
):
    """
    Obtener el leaderboard acumulado de la temporada.
    """
    entries = await LeaderboardService(db).get_leaderboard(season, None, limit, include_ineligible)
    return LeaderboardResponse(
        season=season,
        entries=[to_response(e) for e in entries]
    )


@router.get("/users/{user_id}", response_model=list[LeaderboardEntryResponse])
async def get_user_entries(
    user_id: str,
    db: Database,
    season: int = Query(...)
):
    """
    Obtener las entradas de un usuario (cada semana y el total de temporada).
    """
    try:
        entries = await LeaderboardService(db).get_user_entries(user_id, season)
    except LeaderboardNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )

    return [to_response(e) for e in entries]


@router.get("/best-finish/{season}", response_model=BestFinishResponse)
async def get_best_finish_leaderboard(
    season: int,
    db: Database,
    first_week: Optional[int] = Query(None, ge=1, description="Primera semana (por defecto la configurada)"),
    last_week: Optional[int] = Query(None, ge=1, description="Última semana (por defecto la configurada)"),
    limit: int = Query(100, ge=1, le=500),
    include_ineligible: bool = Query(False)
):
    """
    Obtener el leaderboard Best Finish (acumulado del último tramo de semanas).

    Desempates: puntos, % de victorias y % de victorias en locks.
    """
    service = LeaderboardService(db)

    try:
        first_week, last_week = service.best_finish_range(first_week, last_week)
    except InvalidWeekRangeError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    entries = await service.get_best_finish(
        season, first_week, last_week, limit, include_ineligible
    )
    return BestFinishResponse(
        season=season,
        first_week=first_week,
        last_week=last_week,
        entries=entries
    )
