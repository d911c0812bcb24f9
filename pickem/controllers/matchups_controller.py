"""
Controlador de partidos - Slate semanal y reportes de marcador

PUT publica/corrige un partido (spread); POST /state es lo que llama el feed
externo de marcadores. Ambos disparan el regrade en cascada.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from pickem.core.dependencies import CurrentAdmin, Database
from pickem.models.matchup import Matchup, MatchupPickStats, MatchupStateReport, MatchupUpsert
from pickem.repositories.matchup_repository import MatchupRepository
from pickem.services.pick_service import MatchupNotFoundError as PickMatchupNotFoundError
from pickem.services.pick_service import PickService
from pickem.services.scoring_pipeline import (
    InvalidMatchupError,
    MatchupNotFoundError,
    ScoringPipeline,
)


router = APIRouter(prefix="/matchups", tags=["matchups"])


@router.get("", response_model=list[Matchup], response_model_by_alias=False)
async def list_matchups(
    db: Database,
    season: int = Query(..., description="Temporada"),
    week: Optional[int] = Query(None, description="Semana (todas si se omite)")
):
    """Listar los partidos de una semana o temporada"""
    return await MatchupRepository(db).get_for_scope(season, week)


@router.get("/{matchup_id}", response_model=Matchup, response_model_by_alias=False)
async def get_matchup(matchup_id: str, db: Database):
    matchup = await MatchupRepository(db).get_by_id(matchup_id)
    if not matchup:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Partido {matchup_id} no encontrado"
        )
    return matchup


@router.get("/{matchup_id}/pick-stats", response_model=MatchupPickStats)
async def get_matchup_pick_stats(matchup_id: str, db: Database):
    """
    Cuántos usuarios eligieron / hicieron lock a cada lado.

    Se recalcula desde los picks visibles de ambos canales en cada request.
    """
    try:
        return await PickService(db).get_matchup_pick_stats(matchup_id)
    except PickMatchupNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )


@router.put("/{matchup_id}")
async def upsert_matchup(
    matchup_id: str,
    request: MatchupUpsert,
    admin: CurrentAdmin,
    db: Database
):
    """
    Publicar o corregir un partido del slate.

    Si cambia el spread se recalculan el grade, los picks y los leaderboards.
    """
    pipeline = ScoringPipeline(db)

    try:
        matchup, summary = await pipeline.upsert_matchup(matchup_id, request)
    except InvalidMatchupError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    return {
        "matchup": matchup.model_dump(),
        "regrade": summary,
    }


@router.post("/{matchup_id}/state")
async def report_matchup_state(
    matchup_id: str,
    request: MatchupStateReport,
    admin: CurrentAdmin,
    db: Database
):
    """
    Reporte de marcador/estado (feed externo o corrección manual).

    Idempotente: repetir el mismo reporte deja todo igual.
    """
    pipeline = ScoringPipeline(db)

    try:
        return await pipeline.report_matchup_state(
            matchup_id,
            request.home_score,
            request.away_score,
            request.status.value
        )
    except MatchupNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
