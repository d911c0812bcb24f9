from datetime import datetime
from pydantic import BaseModel, Field


class UserEligibility(BaseModel):
    """Señal externa: el pago del usuario está verificado para la temporada"""

    id: str = Field(..., alias="_id")  # user_id:season

    user_id: str
    season: int
    eligible: bool

    updated_at: datetime

    class Config:
        populate_by_name = True


class EligibilityRequest(BaseModel):
    user_id: str
    season: int
    eligible: bool
