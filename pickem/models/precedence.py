from datetime import datetime
from enum import Enum
from typing import Optional, Union
from pydantic import BaseModel, Field

from pickem.models.pick import AnonymousPick, Pick


# Preferencia a nivel canal: vale solo si el usuario tiene un único set anónimo
ANONYMOUS_CHANNEL = "anonymous"


class PrecedenceState(str, Enum):
    NO_CONFLICT = "no_conflict"
    AUTHENTICATED_ACTIVE = "authenticated_active"
    ANONYMOUS_ACTIVE = "anonymous_active"
    UNRESOLVED = "unresolved"


class PickSetPreference(BaseModel):
    """Decisión de admin sobre qué set de picks cuenta para un usuario"""

    id: str = Field(..., alias="_id")  # user_id:season:week | user_id:season:all

    user_id: str
    season: int
    week: Optional[int] = None  # None = aplica a toda la temporada

    pick_set_id: str  # "auth" | "anon:{email}" | "anonymous"

    set_by: Optional[str] = None
    reasoning: Optional[str] = None
    updated_at: datetime

    class Config:
        populate_by_name = True


class PrecedenceRequest(BaseModel):
    user_id: str
    season: int
    week: Optional[int] = None
    pick_set_id: str
    set_by: Optional[str] = None
    reasoning: Optional[str] = None


class PrecedenceResolution(BaseModel):
    """Resultado del resolver para un (usuario, semana)"""

    user_id: str
    season: int
    week: int

    state: PrecedenceState
    active_pick_set_id: Optional[str] = None
    candidate_pick_set_ids: list[str] = []
    preference: Optional[PickSetPreference] = None

    eligible_picks: list[Union[Pick, AnonymousPick]] = []

    class Config:
        use_enum_values = True

    @property
    def is_unresolved(self) -> bool:
        return self.state == PrecedenceState.UNRESOLVED

    @property
    def has_conflict(self) -> bool:
        return len(self.candidate_pick_set_ids) > 1
