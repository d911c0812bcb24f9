from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class MatchupStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Side(str, Enum):
    HOME = "home"
    AWAY = "away"


class CoveringSide(str, Enum):
    HOME = "home"
    AWAY = "away"
    PUSH = "push"


class MatchupGrade(BaseModel):
    """Resultado contra el spread (derivado, nunca editado a mano)"""

    covering_side: CoveringSide
    bonus_tier: int  # 0 | 1 | 3 | 5
    adjusted_margin: float

    class Config:
        use_enum_values = True


class Matchup(BaseModel):
    """Partido de la semana con su spread"""

    id: str = Field(..., alias="_id")

    season: int
    week: int

    home_team: str
    away_team: str

    spread: float  # relativo al local; negativo = local favorito

    home_score: Optional[int] = None
    away_score: Optional[int] = None

    status: MatchupStatus = MatchupStatus.SCHEDULED
    kickoff_time: Optional[datetime] = None

    grade: Optional[MatchupGrade] = None

    # Se incrementa con cada cambio de marcador / estado / spread
    revision: int = 0

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        populate_by_name = True
        use_enum_values = True


class MatchupUpsert(BaseModel):
    """Publicación / corrección de un partido del slate semanal"""

    season: int
    week: int
    home_team: str
    away_team: str
    spread: float
    kickoff_time: Optional[datetime] = None


class MatchupStateReport(BaseModel):
    """Lo que reporta el feed externo de marcadores"""

    home_score: Optional[int] = None
    away_score: Optional[int] = None
    status: MatchupStatus


class MatchupPickStats(BaseModel):
    """Cuántos usuarios eligieron / hicieron lock a cada lado (derivado de los picks visibles)"""

    matchup_id: str

    home_picks: int = 0  # sin contar locks
    home_locks: int = 0
    away_picks: int = 0
    away_locks: int = 0
    total_picks: int = 0
