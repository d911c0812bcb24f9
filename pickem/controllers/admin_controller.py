"""
Controlador de Admin - Endpoints exclusivos para administradores

Visibilidad de picks, precedencia entre sets, elegibilidad, rebuild y auditoría.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel

from pickem.core.dependencies import CurrentAdmin, Database
from pickem.models.audit import AuditReport
from pickem.models.eligibility import EligibilityRequest
from pickem.models.precedence import PrecedenceRequest, PrecedenceResolution
from pickem.services.aggregate_service import AggregateService
from pickem.services.audit_service import AuditService
from pickem.services.pick_service import PickService, PickNotFoundError
from pickem.services.precedence_service import (
    PrecedenceService,
    InvalidPrecedenceError,
    PreferenceNotFoundError,
)
from pickem.services.scoring_pipeline import ScoringPipeline


router = APIRouter(prefix="/admin", tags=["admin"])


# ============================================
# REQUEST SCHEMAS
# ============================================

class VisibilityRequest(BaseModel):
    """Incluir/excluir un pick de los leaderboards"""
    visible: bool


class ScopeRequest(BaseModel):
    """Una semana, o toda la temporada si week es None"""
    season: int
    week: Optional[int] = None


# ============================================
# VISIBILITY
# ============================================

@router.put("/picks/{pick_id}/visibility")
async def set_pick_visibility(
    pick_id: str,
    request: VisibilityRequest,
    admin: CurrentAdmin,
    db: Database
):
    """Cambiar visibilidad de un pick (autenticado o anónimo)"""
    try:
        pick, stale = await PickService(db).set_pick_visibility(pick_id, request.visible)
    except PickNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )

    return {
        "success": True,
        "pick_id": pick.id,
        "visible": pick.visible,
        "aggregates_stale": stale
    }


# ============================================
# PRECEDENCE
# ============================================

@router.put("/precedence")
async def set_precedence(request: PrecedenceRequest, admin: CurrentAdmin, db: Database):
    """
    Decidir qué set de picks cuenta ("auth", "anon:<email>" o "anonymous").

    Sin week aplica a toda la temporada; una decisión semanal tiene prioridad.
    """
    try:
        preference, stale = await PrecedenceService(db).set_precedence(request)
    except InvalidPrecedenceError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    return {
        "preference": preference.model_dump(),
        "aggregates_stale": stale
    }


@router.delete("/precedence/{user_id}/{season}")
async def clear_precedence(
    user_id: str,
    season: int,
    admin: CurrentAdmin,
    db: Database,
    week: Optional[int] = Query(None)
):
    """Borrar una decisión de precedencia"""
    try:
        stale = await PrecedenceService(db).clear_precedence(user_id, season, week)
    except PreferenceNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )

    return {"success": True, "aggregates_stale": stale}


@router.get("/conflicts", response_model=list[PrecedenceResolution])
async def list_conflicts(
    admin: CurrentAdmin,
    db: Database,
    season: int = Query(...),
    week: Optional[int] = Query(None),
    unresolved_only: bool = Query(False)
):
    """Usuarios con más de un set de picks en una semana"""
    return await PrecedenceService(db).find_conflicts(season, week, unresolved_only)


# ============================================
# ELIGIBILITY
# ============================================

@router.put("/eligibility")
async def set_eligibility(request: EligibilityRequest, admin: CurrentAdmin, db: Database):
    """Registrar la señal de pago verificado de un usuario para la temporada"""
    record = await AggregateService(db).set_user_eligibility(
        request.user_id, request.season, request.eligible
    )
    return record.model_dump()


# ============================================
# REBUILD / AUDIT
# ============================================

@router.post("/rebuild")
async def force_rebuild(request: ScopeRequest, admin: CurrentAdmin, db: Database):
    """
    Recalcular una semana o temporada completa desde los datos fuente.

    Se puede ejecutar cuantas veces se quiera.
    """
    return await ScoringPipeline(db).force_rebuild(request.season, request.week)


@router.get("/audit", response_model=AuditReport)
async def get_audit_report(
    admin: CurrentAdmin,
    db: Database,
    season: int = Query(...),
    week: Optional[int] = Query(None)
):
    """Auditoría de consistencia (solo lectura)"""
    return await AuditService(db).audit(season, week)


@router.post("/audit/repair")
async def repair(request: ScopeRequest, admin: CurrentAdmin, db: Database):
    """Auditar y recalcular solo lo que tiene inconsistencias"""
    return await AuditService(db).repair(request.season, request.week)
