from .matchup import Matchup, MatchupGrade, MatchupPickStats, MatchupStatus, Side, CoveringSide
from .pick import Pick, AnonymousPick, PickGrade, PickOutcome, ValidationState
from .precedence import PickSetPreference, PrecedenceResolution, PrecedenceState
from .leaderboard import BestFinishEntry, LeaderboardEntry, ScopeType
from .eligibility import UserEligibility
from .audit import AuditReport, Mismatch, MismatchKind

__all__ = [
    "Matchup",
    "MatchupGrade",
    "MatchupPickStats",
    "MatchupStatus",
    "Side",
    "CoveringSide",
    "Pick",
    "AnonymousPick",
    "PickGrade",
    "PickOutcome",
    "ValidationState",
    "PickSetPreference",
    "PrecedenceResolution",
    "PrecedenceState",
    "BestFinishEntry",
    "LeaderboardEntry",
    "ScopeType",
    "UserEligibility",
    "AuditReport",
    "Mismatch",
    "MismatchKind",
]
