from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from pickem.models.matchup import Side


AUTHENTICATED_PICK_SET = "auth"
ANONYMOUS_PICK_SET_PREFIX = "anon:"


class PickOutcome(str, Enum):
    WIN = "win"
    LOSS = "loss"
    PUSH = "push"


class ValidationState(str, Enum):
    UNVALIDATED = "unvalidated"
    AUTO_VALIDATED = "auto_validated"
    MANUALLY_VALIDATED = "manually_validated"


def anonymous_pick_set_id(email: str) -> str:
    return f"{ANONYMOUS_PICK_SET_PREFIX}{email}"


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_anonymous_pick_id(pick_id: str) -> bool:
    """
    IDs anónimos tienen la forma anon:email:matchup_id.

    Un usuario autenticado llamado "anon" genera IDs como anon:m1, así que
    además del prefijo se exige un email con @ antes del matchup.
    """
    if not pick_id.startswith(ANONYMOUS_PICK_SET_PREFIX):
        return False
    email, separator, matchup_id = pick_id[len(ANONYMOUS_PICK_SET_PREFIX):].rpartition(":")
    return bool(separator and matchup_id) and "@" in email


class PickGrade(BaseModel):
    """Outcome and points of a single pick. All None while the matchup is ungraded."""

    outcome: Optional[PickOutcome] = None
    base_points: Optional[int] = None
    bonus_points: Optional[int] = None
    points: Optional[int] = None

    class Config:
        use_enum_values = True

    @property
    def is_pending(self) -> bool:
        return self.outcome is None


class Pick(BaseModel):
    """Elección de un usuario autenticado para un partido"""

    id: str = Field(..., alias="_id")  # user_id:matchup_id

    user_id: str
    matchup_id: str
    season: int
    week: int

    selected_side: Side
    is_lock: bool = False

    # Inclusión en el leaderboard (controlada por admin)
    visible: bool = True

    # Derivados: solo los escribe el grader
    outcome: Optional[PickOutcome] = None
    base_points: Optional[int] = None
    bonus_points: Optional[int] = None
    points: Optional[int] = None
    graded_revision: Optional[int] = None

    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        populate_by_name = True
        use_enum_values = True

    @property
    def pick_set_id(self) -> str:
        return AUTHENTICATED_PICK_SET

    @property
    def owner_id(self) -> Optional[str]:
        return self.user_id

    @property
    def stored_grade(self) -> PickGrade:
        return PickGrade(
            outcome=self.outcome,
            base_points=self.base_points,
            bonus_points=self.bonus_points,
            points=self.points,
        )


class AnonymousPick(BaseModel):
    """Pick enviado sin cuenta; cuenta solo después de asignarse a un usuario"""

    id: str = Field(..., alias="_id")  # anon:email:matchup_id

    email: str
    name: Optional[str] = None
    assigned_user_id: Optional[str] = None
    validation_state: ValidationState = ValidationState.UNVALIDATED

    matchup_id: str
    season: int
    week: int

    selected_side: Side
    is_lock: bool = False
    visible: bool = True

    outcome: Optional[PickOutcome] = None
    base_points: Optional[int] = None
    bonus_points: Optional[int] = None
    points: Optional[int] = None
    graded_revision: Optional[int] = None

    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        populate_by_name = True
        use_enum_values = True

    @property
    def pick_set_id(self) -> str:
        return anonymous_pick_set_id(self.email)

    @property
    def owner_id(self) -> Optional[str]:
        return self.assigned_user_id

    @property
    def stored_grade(self) -> PickGrade:
        return PickGrade(
            outcome=self.outcome,
            base_points=self.base_points,
            bonus_points=self.bonus_points,
            points=self.points,
        )


class PickCreate(BaseModel):
    """Request para crear/actualizar un pick autenticado"""

    user_id: str
    matchup_id: str
    selected_side: Side
    is_lock: bool = False


class AnonymousPickCreate(BaseModel):
    """Request para crear/actualizar un pick anónimo"""

    email: str
    name: Optional[str] = None
    matchup_id: str
    selected_side: Side
    is_lock: bool = False
