"""
Controlador de picks anónimos - Envío sin cuenta y asignación (claim)

Un pick anónimo no cuenta hasta que se asigna a un usuario. Si ese usuario
ya tiene picks propios en la misma semana, la semana queda en conflicto
hasta que un admin decida la precedencia.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel

from pickem.core.dependencies import CurrentAdmin, Database
from pickem.models.pick import AnonymousPick, AnonymousPickCreate, ValidationState
from pickem.services.pick_service import (
    PickService,
    PickLockedError,
    MatchupNotFoundError,
    PickNotFoundError,
    InvalidPickError,
    InvalidClaimError,
    ClaimConflictError,
)
from pickem.controllers.picks_controller import raise_for_pick_error


router = APIRouter(prefix="/anonymous-picks", tags=["anonymous-picks"])


# ============================================
# REQUEST / RESPONSE SCHEMAS
# ============================================

class ClaimRequest(BaseModel):
    """Asignar un pick anónimo a un usuario"""
    user_id: str
    validation_state: ValidationState = ValidationState.MANUALLY_VALIDATED
    reassign: bool = False  # Permite mover un claim de otro usuario


class ClaimSetRequest(ClaimRequest):
    """Asignar todos los picks de un email en una semana"""
    email: str
    season: int
    week: int


class AnonymousPickWriteResponse(BaseModel):
    pick: AnonymousPick
    aggregates_stale: bool = False


class ClaimSetResponse(BaseModel):
    picks: list[AnonymousPick]
    aggregates_stale: bool = False


def raise_for_claim_error(e: Exception):
    if isinstance(e, InvalidClaimError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, ClaimConflictError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    raise_for_pick_error(e)


# ============================================
# ENDPOINTS
# ============================================

@router.post(
    "",
    response_model=AnonymousPickWriteResponse,
    response_model_by_alias=False,
    status_code=status.HTTP_201_CREATED
)
async def create_anonymous_pick(pick_data: AnonymousPickCreate, db: Database):
    """Crear o reemplazar un pick anónimo (mismas reglas que los picks normales)"""
    pick_service = PickService(db)

    try:
        pick, stale = await pick_service.submit_anonymous_pick(pick_data)
    except (PickLockedError, MatchupNotFoundError, InvalidPickError) as e:
        raise_for_pick_error(e)

    return AnonymousPickWriteResponse(pick=pick, aggregates_stale=stale)


@router.get("", response_model=list[AnonymousPick], response_model_by_alias=False)
async def get_anonymous_picks(
    admin: CurrentAdmin,
    db: Database,
    season: int = Query(...),
    week: Optional[int] = Query(None),
    email: Optional[str] = Query(None),
    claimed: Optional[bool] = Query(None, description="True asignados, False pendientes")
):
    """Listar picks anónimos (para revisar y asignar)"""
    return await PickService(db).list_anonymous_picks(season, week, email, claimed)


@router.post(
    "/claim-set",
    response_model=ClaimSetResponse,
    response_model_by_alias=False
)
async def claim_anonymous_pick_set(request: ClaimSetRequest, admin: CurrentAdmin, db: Database):
    """Asignar todos los picks anónimos de un email en una semana"""
    pick_service = PickService(db)

    try:
        picks, stale = await pick_service.claim_anonymous_pick_set(
            request.email,
            request.season,
            request.week,
            request.user_id,
            request.validation_state,
            request.reassign
        )
    except (PickNotFoundError, InvalidClaimError, ClaimConflictError) as e:
        raise_for_claim_error(e)

    return ClaimSetResponse(picks=picks, aggregates_stale=stale)


@router.post(
    "/{anonymous_pick_id}/claim",
    response_model=AnonymousPickWriteResponse,
    response_model_by_alias=False
)
async def claim_anonymous_pick(
    anonymous_pick_id: str,
    request: ClaimRequest,
    admin: CurrentAdmin,
    db: Database
):
    """Asignar un pick anónimo a un usuario"""
    pick_service = PickService(db)

    try:
        pick, stale = await pick_service.claim_anonymous_pick(
            anonymous_pick_id,
            request.user_id,
            request.validation_state,
            request.reassign
        )
    except (PickNotFoundError, InvalidClaimError, ClaimConflictError) as e:
        raise_for_claim_error(e)

    return AnonymousPickWriteResponse(pick=pick, aggregates_stale=stale)
