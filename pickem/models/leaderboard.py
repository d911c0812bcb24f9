from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class ScopeType(str, Enum):
    WEEK = "week"
    SEASON = "season"


def entry_id(user_id: str, season: int, week: Optional[int] = None) -> str:
    if week is None:
        return f"season:{season}:{user_id}"
    return f"week:{season}:{week}:{user_id}"


class LeaderboardEntry(BaseModel):
    """Entrada en una tabla de clasificación (resultado agregado, siempre derivado)"""

    id: str = Field(..., alias="_id")

    user_id: str
    scope_type: ScopeType
    season: int
    week: Optional[int] = None

    picks_made: int = 0
    wins: int = 0
    losses: int = 0
    pushes: int = 0
    pending: int = 0

    lock_wins: int = 0
    lock_losses: int = 0
    lock_pushes: int = 0

    total_points: int = 0

    # Sets de picks que aportaron ("auth", "anon:{email}")
    pick_sources: list[str] = []

    # Señal externa de pago verificado
    is_eligible: bool = True
    rank: Optional[int] = None

    class Config:
        populate_by_name = True
        use_enum_values = True

    def totals(self) -> dict:
        """Everything except rank, which depends on the other entries in scope."""
        return self.model_dump(by_alias=True, exclude={"rank"})


class BestFinishEntry(BaseModel):
    """
    Acumulado de un usuario sobre un rango de semanas (el "último cuarto").

    Se deriva de las entradas semanales; nunca se guarda.
    """

    user_id: str
    season: int
    weeks_included: list[int] = []

    picks_made: int = 0
    wins: int = 0
    losses: int = 0
    pushes: int = 0
    pending: int = 0

    lock_wins: int = 0
    lock_losses: int = 0
    lock_pushes: int = 0

    total_points: int = 0
    worst_week_score: int = 0

    # Desempates: % de victorias y % de victorias en locks (pushes no cuentan)
    win_percentage: float = 0.0
    lock_win_percentage: float = 0.0

    is_eligible: bool = True
    rank: Optional[int] = None
