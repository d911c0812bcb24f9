from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel


class MismatchKind(str, Enum):
    MATCHUP_GRADE = "matchup_grade"
    PICK_GRADE = "pick_grade"
    AGGREGATE_MISMATCH = "aggregate_mismatch"
    AGGREGATE_MISSING = "aggregate_missing"
    AGGREGATE_ORPHAN = "aggregate_orphan"
    RANK_MISMATCH = "rank_mismatch"
    UNRESOLVED_CONFLICT = "unresolved_conflict"


class Mismatch(BaseModel):
    """Una inconsistencia detectada, con lo necesario para repararla puntualmente"""

    kind: MismatchKind

    season: int
    week: Optional[int] = None
    matchup_id: Optional[str] = None
    pick_id: Optional[str] = None
    user_id: Optional[str] = None

    expected: Any = None
    actual: Any = None
    detail: Optional[str] = None

    class Config:
        use_enum_values = True


class AuditReport(BaseModel):
    season: int
    week: Optional[int] = None

    matchups_checked: int = 0
    picks_checked: int = 0
    entries_checked: int = 0

    mismatches: list[Mismatch] = []

    @property
    def is_consistent(self) -> bool:
        return not self.mismatches

    def of_kind(self, kind: MismatchKind) -> list[Mismatch]:
        return [m for m in self.mismatches if m.kind == kind]
