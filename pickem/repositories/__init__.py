from .matchup_repository import MatchupRepository
from .pick_repository import PickRepository
from .anonymous_pick_repository import AnonymousPickRepository
from .precedence_repository import PrecedenceRepository
from .leaderboard_repository import LeaderboardRepository
from .eligibility_repository import EligibilityRepository

__all__ = [
    "MatchupRepository",
    "PickRepository",
    "AnonymousPickRepository",
    "PrecedenceRepository",
    "LeaderboardRepository",
    "EligibilityRepository",
]
