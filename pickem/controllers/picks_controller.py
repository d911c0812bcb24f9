"""
Controlador de picks - Endpoints para picks de usuarios autenticados

Las cuentas son externas: el user_id llega en el body.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel

from pickem.core.dependencies import Database
from pickem.models.pick import PickCreate
from pickem.services.pick_service import (
    PickService,
    PickLockedError,
    MatchupNotFoundError,
    PickNotFoundError,
    InvalidPickError,
)


router = APIRouter(prefix="/picks", tags=["picks"])


class PickResponse(BaseModel):
    """Pick con su resultado (outcome/points en None mientras está pendiente)"""
    id: str
    pick_set_id: str
    user_id: Optional[str] = None
    matchup_id: str
    season: int
    week: int
    selected_side: str
    is_lock: bool
    visible: bool
    outcome: Optional[str] = None
    base_points: Optional[int] = None
    bonus_points: Optional[int] = None
    points: Optional[int] = None
    created_at: datetime


class PickWriteResponse(BaseModel):
    pick: PickResponse
    aggregates_stale: bool = False


def to_response(pick) -> PickResponse:
    return PickResponse(
        id=pick.id,
        pick_set_id=pick.pick_set_id,
        user_id=pick.owner_id,
        matchup_id=pick.matchup_id,
        season=pick.season,
        week=pick.week,
        selected_side=pick.selected_side,
        is_lock=pick.is_lock,
        visible=pick.visible,
        outcome=pick.outcome,
        base_points=pick.base_points,
        bonus_points=pick.bonus_points,
        points=pick.points,
        created_at=pick.created_at
    )


def raise_for_pick_error(e: Exception):
    """Traduce errores del servicio a HTTPException"""
    if isinstance(e, PickLockedError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, (MatchupNotFoundError, PickNotFoundError)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, InvalidPickError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    raise e


@router.post("", response_model=PickWriteResponse, status_code=status.HTTP_201_CREATED)
async def create_pick(pick_data: PickCreate, db: Database):
    """
    Crear o reemplazar un pick.

    Se puede cambiar hasta el kickoff; máximo 6 picks y un solo lock por semana.
    """
    pick_service = PickService(db)

    try:
        pick, stale = await pick_service.submit_pick(pick_data)
    except (PickLockedError, MatchupNotFoundError, InvalidPickError) as e:
        raise_for_pick_error(e)

    return PickWriteResponse(pick=to_response(pick), aggregates_stale=stale)


@router.get("", response_model=list[PickResponse])
async def get_picks(
    db: Database,
    user_id: Optional[str] = Query(None, description="Picks de un usuario (requiere season y week)"),
    matchup_id: Optional[str] = Query(None, description="Todos los picks de un partido"),
    season: Optional[int] = Query(None),
    week: Optional[int] = Query(None)
):
    """
    Obtener picks de un partido, o de un usuario en una semana.

    Los picks de usuario incluyen los anónimos que tiene asignados.
    """
    pick_service = PickService(db)

    if matchup_id:
        picks = await pick_service.list_picks_for_matchup(matchup_id)
    elif user_id and season is not None and week is not None:
        picks = await pick_service.list_picks_for_user_period(user_id, season, week)
    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Indica matchup_id, o user_id con season y week"
        )

    return [to_response(p) for p in picks]


@router.delete("/{pick_id}")
async def delete_pick(pick_id: str, db: Database):
    """Eliminar un pick mientras el partido sigue abierto"""
    pick_service = PickService(db)

    try:
        stale = await pick_service.remove_pick(pick_id)
    except (PickLockedError, MatchupNotFoundError, PickNotFoundError) as e:
        raise_for_pick_error(e)

    return {"success": True, "aggregates_stale": stale}
