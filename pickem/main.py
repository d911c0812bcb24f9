"""
Entry point de la API
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import Response
from starlette.middleware.base import BaseHTTPMiddleware

from pickem.core.config import get_settings
from pickem.core.logging_config import configure_logging
from pickem.database import Database, create_indexes

from pickem.controllers.matchups_controller import router as matchups_router
from pickem.controllers.picks_controller import router as picks_router
from pickem.controllers.anonymous_picks_controller import router as anonymous_picks_router
from pickem.controllers.leaderboard_controller import router as leaderboard_router
from pickem.controllers.admin_controller import router as admin_router
from pickem.controllers.health_controller import router as health_router

settings = get_settings()
logger = logging.getLogger(__name__)

# Parse CORS origins
CORS_ORIGINS = [origin.strip() for origin in settings.cors_origins.split(",")]


def is_allowed_origin(origin: str) -> bool:
    """Check if origin is in the configured list."""
    return bool(origin) and origin in CORS_ORIGINS


class CORSMiddleware(BaseHTTPMiddleware):
    """
    Custom CORS middleware that handles OPTIONS preflight BEFORE routing.

    Query parameter validation would otherwise turn preflights into 422s.
    """

    async def dispatch(self, request: Request, call_next):
        origin = request.headers.get("origin", "")

        # Handle preflight OPTIONS request IMMEDIATELY
        if request.method == "OPTIONS":
            if is_allowed_origin(origin):
                return Response(
                    status_code=200,
                    headers={
                        "Access-Control-Allow-Origin": origin,
                        "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS, PATCH",
                        "Access-Control-Allow-Headers": "Content-Type, Accept, Origin, X-Requested-With, X-Admin-Key",
                        "Access-Control-Max-Age": "86400",  # Cache preflight for 24 hours
                    }
                )
            return Response(status_code=403, content="Origin not allowed")

        response = await call_next(request)

        if is_allowed_origin(origin):
            response.headers["Access-Control-Allow-Origin"] = origin

        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings)
    if settings.admin_api_key is None:
        logger.warning("⚠️ ADMIN_API_KEY no configurado: los endpoints de admin responden 403")
    await Database.connect()
    await create_indexes()
    yield
    await Database.disconnect()

# Creo la app
app = FastAPI(
    title="Spread Pick'em API",
    description="Scoring y leaderboards para un pick'em contra el spread",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(CORSMiddleware)

# Agrego todos los routers de los controllers al app
app.include_router(health_router)
app.include_router(matchups_router)
app.include_router(picks_router)
app.include_router(anonymous_picks_router)
app.include_router(leaderboard_router)
app.include_router(admin_router)


@app.get("/")
async def root():
    # Endpoint raíz, sirve para verificar que la API está levantada
    return {
        "name": "Spread Pick'em API",
        "version": "1.0.0",
        "docs": "/docs"
    }
