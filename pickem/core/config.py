"""
Configuración de la app cargada desde variables de entorno (.env)

Todo lo que varía entre desarrollo/producción va aquí
"""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # MongoDB
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "spread_pickem"  # Nombre de la base de datos

    # App
    app_env: str = "development"  # o "production"
    debug: bool = False
    log_level: str = "INFO"

    # CORS - de dónde pueden venir los requests
    cors_origins: str = "http://localhost:3000"  # URLs separadas por coma

    # Header X-Admin-Key para los endpoints de administración.
    # Si no está configurado, los endpoints de admin responden 403
    admin_api_key: str | None = None

    # ==================== Reglas del concurso ====================
    max_picks_per_week: int = 6

    # Usuarios sin registro de pago: ¿cuentan para el ranking?
    default_user_eligible: bool = True

    # Best Finish: el "último cuarto" de la temporada, acumulado aparte
    best_finish_first_week: int = 11
    best_finish_last_week: int = 14

    # ==================== Recalculo de leaderboards ====================
    # Tamaño de cada lote de recalculo; un fallo solo obliga a repetir los lotes pendientes
    recompute_chunk_size: int = 50
    recompute_max_retries: int = 2

    class Config:
        env_file = ".env"  # Lee desde el archivo .env
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignora campos extras del .env que no estén en el modelo


@lru_cache()
def get_settings() -> Settings:
    """Retorna la instancia de configuración (cacheada para no releerla)"""
    return Settings()
