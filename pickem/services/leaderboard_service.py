"""
LeaderboardService - Serves the stored weekly and season standings.

Standings are written by the aggregate pipeline; reads never recompute. The
Best Finish table is the one derived view: it sums stored week entries over
a range of weeks on every request.
"""

from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from pickem.core.config import Settings, get_settings
from pickem.models.leaderboard import BestFinishEntry, LeaderboardEntry
from pickem.repositories.leaderboard_repository import LeaderboardRepository
from pickem.services.aggregate_service import build_best_finish


class LeaderboardServiceError(Exception):
    """Base exception for leaderboard service errors."""
    pass


class LeaderboardNotFoundError(LeaderboardServiceError):
    """Raised when leaderboard data is not found."""
    pass


class InvalidWeekRangeError(LeaderboardServiceError):
    """Raised when a Best Finish range ends before it starts."""
    pass


class LeaderboardService:
    def __init__(self, db: AsyncIOMotorDatabase, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.leaderboard_repo = LeaderboardRepository(db)

    async def get_leaderboard(
        self,
        season: int,
        week: Optional[int] = None,
        limit: int = 100,
        include_ineligible: bool = False
    ) -> list[LeaderboardEntry]:
        """
        Get the standings for a week, or for the season when week is None.

        Ordered by rank. Users without verified eligibility have no rank and
        only show up (last) with include_ineligible.
        """
        return await self.leaderboard_repo.get_ranked(season, week, limit, include_ineligible)

    async def get_user_entries(self, user_id: str, season: int) -> list[LeaderboardEntry]:
        """
        Get every entry for a user in a season (each week plus the season total).

        Raises LeaderboardNotFoundError if the user has none.
        """
        entries = await self.leaderboard_repo.get_for_user(user_id, season)
        if not entries:
            raise LeaderboardNotFoundError(f"No standings for {user_id} in season {season}")

        return sorted(entries, key=lambda e: (e.week is None, e.week or 0))

    def best_finish_range(
        self,
        first_week: Optional[int] = None,
        last_week: Optional[int] = None
    ) -> tuple[int, int]:
        """Fill in the configured Best Finish weeks and reject empty ranges."""
        if first_week is None:
            first_week = self.settings.best_finish_first_week
        if last_week is None:
            last_week = self.settings.best_finish_last_week

        if first_week > last_week:
            raise InvalidWeekRangeError(f"Week range {first_week}-{last_week} is empty")
        return first_week, last_week

    async def get_best_finish(
        self,
        season: int,
        first_week: Optional[int] = None,
        last_week: Optional[int] = None,
        limit: int = 100,
        include_ineligible: bool = False
    ) -> list[BestFinishEntry]:
        """
        Best Finish standings over [first_week, last_week].

        The range defaults to best_finish_first_week..best_finish_last_week.
        Tie-breakers after points are win % and then lock win %.
        """
        first_week, last_week = self.best_finish_range(first_week, last_week)
        week_entries = await self.leaderboard_repo.get_weeks_in_range(season, first_week, last_week)
        entries = build_best_finish(week_entries)
        if not include_ineligible:
            entries = [e for e in entries if e.rank is not None]

        return entries[:limit]
