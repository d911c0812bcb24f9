"""
Dependencies de FastAPI para inyeccion de BD y acceso de administrador
"""

import secrets
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from pickem.core.config import Settings, get_settings
from pickem.database import get_database


async def require_admin(
    settings: Annotated[Settings, Depends(get_settings)],
    x_admin_key: Annotated[Optional[str], Header()] = None
) -> str:
    """
    Dependency que valida el header X-Admin-Key.

    Las cuentas y la autenticación son externas; la API solo distingue
    operaciones de administración. Sin admin_api_key configurado no hay
    forma de autenticarse, así que todo acceso de admin se rechaza.
    """
    if settings.admin_api_key is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Endpoints de administración deshabilitados: falta ADMIN_API_KEY",
        )

    if x_admin_key is None or not secrets.compare_digest(x_admin_key, settings.admin_api_key):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Se requieren permisos de administrador",
        )

    return "admin"


# Alias de tipos para que se vea mas limpio en los endpoints
CurrentAdmin = Annotated[str, Depends(require_admin)]
Database = Annotated[AsyncIOMotorDatabase, Depends(get_database)]
