"""
AggregateService - Weekly and season standings.

Entries are always recomputed from scratch over the eligible picks (the
precedence resolver's active set, filtered by visibility) and written with a
single upsert keyed by (user, scope). There are no incremental updates, so
running a recompute twice, or twice at the same time, converges on the same row.
"""

import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from pickem.core.config import Settings, get_settings
from pickem.models.eligibility import UserEligibility
from pickem.models.leaderboard import BestFinishEntry, LeaderboardEntry, ScopeType, entry_id
from pickem.models.pick import PickOutcome
from pickem.repositories.anonymous_pick_repository import AnonymousPickRepository
from pickem.repositories.eligibility_repository import EligibilityRepository
from pickem.repositories.leaderboard_repository import LeaderboardRepository
from pickem.repositories.pick_repository import PickRepository
from pickem.services.precedence_resolver import AnyPick, PrecedenceResolver

logger = logging.getLogger(__name__)


class AggregateServiceError(Exception):
    """Base exception for aggregate service errors."""
    pass


COUNTER_FIELDS = (
    "picks_made",
    "wins",
    "losses",
    "pushes",
    "pending",
    "lock_wins",
    "lock_losses",
    "lock_pushes",
    "total_points",
)


def tally_picks(picks: list[AnyPick]) -> dict:
    """Counters and total points over a list of eligible picks."""
    totals = dict.fromkeys(COUNTER_FIELDS, 0)
    totals["picks_made"] = len(picks)

    for pick in picks:
        if pick.outcome is None:
            totals["pending"] += 1
            continue

        if pick.outcome == PickOutcome.WIN:
            key = "wins"
        elif pick.outcome == PickOutcome.LOSS:
            key = "losses"
        else:
            key = "pushes"

        totals[key] += 1
        if pick.is_lock:
            totals[f"lock_{key}"] += 1
        totals["total_points"] += pick.points or 0

    return totals


def ranking_key(entry: LeaderboardEntry) -> tuple:
    return (-entry.total_points, -entry.wins, entry.user_id)


def rank_entries(entries: list[LeaderboardEntry]) -> dict[str, Optional[int]]:
    """
    Expected rank per entry id for one scope.

    Single total ordering: points desc, wins desc, user_id asc. Rank is the
    1-based position; entries that aren't eligible get None.
    """
    ranks: dict[str, Optional[int]] = {entry.id: None for entry in entries}
    eligible = sorted((e for e in entries if e.is_eligible), key=ranking_key)
    for position, entry in enumerate(eligible, start=1):
        ranks[entry.id] = position
    return ranks


def win_percentage(wins: int, losses: int) -> float:
    """Wins over decided picks, rounded to 3 places; pushes don't count."""
    decided = wins + losses
    if decided == 0:
        return 0.0
    return round(wins / decided, 3)


def best_finish_key(entry: BestFinishEntry) -> tuple:
    return (-entry.total_points, -entry.win_percentage, -entry.lock_win_percentage, entry.user_id)


def build_best_finish(week_entries: list[LeaderboardEntry]) -> list[BestFinishEntry]:
    """
    Sum each user's week entries over a range of weeks and rank them.

    Ordering: points desc, win % desc, lock win % desc, user_id asc. Rank is
    positional like every other scope; ineligible users get None and go last.
    """
    by_user: dict[str, list[LeaderboardEntry]] = {}
    for entry in week_entries:
        by_user.setdefault(entry.user_id, []).append(entry)

    results = []
    for user_id, weeks in by_user.items():
        totals = {field: sum(getattr(e, field) for e in weeks) for field in COUNTER_FIELDS}
        results.append(BestFinishEntry(
            user_id=user_id,
            season=weeks[0].season,
            weeks_included=sorted(e.week for e in weeks),
            worst_week_score=min(e.total_points for e in weeks),
            win_percentage=win_percentage(totals["wins"], totals["losses"]),
            lock_win_percentage=win_percentage(totals["lock_wins"], totals["lock_losses"]),
            is_eligible=all(e.is_eligible for e in weeks),
            **totals,
        ))

    eligible = sorted((e for e in results if e.is_eligible), key=best_finish_key)
    for position, entry in enumerate(eligible, start=1):
        entry.rank = position

    return sorted(results, key=lambda e: (e.rank is None, e.rank or 0, e.user_id))


class AggregateService:
    def __init__(self, db: AsyncIOMotorDatabase, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.resolver = PrecedenceResolver(db)
        self.pick_repo = PickRepository(db)
        self.anonymous_repo = AnonymousPickRepository(db)
        self.leaderboard_repo = LeaderboardRepository(db)
        self.eligibility_repo = EligibilityRepository(db)

    async def get_user_weeks(self, user_id: str, season: int) -> list[int]:
        """Weeks where the user has picks in any channel."""
        weeks = set(await self.pick_repo.get_weeks_for_user(user_id, season))
        weeks.update(await self.anonymous_repo.get_weeks_for_user(user_id, season))
        return sorted(weeks)

    async def _is_eligible(self, user_id: str, season: int) -> bool:
        return await self.eligibility_repo.is_eligible(
            user_id, season, self.settings.default_user_eligible
        )

    # ============================================
    # Build (pure recompute, no writes)
    # ============================================

    async def build_week_entry(
        self,
        user_id: str,
        season: int,
        week: int
    ) -> Optional[LeaderboardEntry]:
        """Entry for one user and week, or None when nothing is eligible."""
        resolution = await self.resolver.resolve(user_id, season, week)
        if not resolution.eligible_picks:
            return None

        return LeaderboardEntry(
            _id=entry_id(user_id, season, week),
            user_id=user_id,
            scope_type=ScopeType.WEEK,
            season=season,
            week=week,
            pick_sources=[resolution.active_pick_set_id],
            is_eligible=await self._is_eligible(user_id, season),
            **tally_picks(resolution.eligible_picks),
        )

    async def build_season_entry(self, user_id: str, season: int) -> Optional[LeaderboardEntry]:
        """
        Entry for one user and the whole season.

        Precedence is resolved week by week, so an unresolved week is left out
        of the season total as well.
        """
        eligible: list[AnyPick] = []
        sources: set[str] = set()

        for week in await self.get_user_weeks(user_id, season):
            resolution = await self.resolver.resolve(user_id, season, week)
            if resolution.eligible_picks:
                eligible.extend(resolution.eligible_picks)
                sources.add(resolution.active_pick_set_id)

        if not eligible:
            return None

        return LeaderboardEntry(
            _id=entry_id(user_id, season),
            user_id=user_id,
            scope_type=ScopeType.SEASON,
            season=season,
            week=None,
            pick_sources=sorted(sources),
            is_eligible=await self._is_eligible(user_id, season),
            **tally_picks(eligible),
        )

    # ============================================
    # Recompute (build + single upsert)
    # ============================================

    async def _store(self, key: str, entry: Optional[LeaderboardEntry]) -> None:
        if entry is None:
            await self.leaderboard_repo.delete(key)
        else:
            await self.leaderboard_repo.upsert(entry)

    async def recompute_user_week(
        self,
        user_id: str,
        season: int,
        week: int
    ) -> Optional[LeaderboardEntry]:
        entry = await self.build_week_entry(user_id, season, week)
        await self._store(entry_id(user_id, season, week), entry)
        return entry

    async def recompute_user_season(self, user_id: str, season: int) -> Optional[LeaderboardEntry]:
        entry = await self.build_season_entry(user_id, season)
        await self._store(entry_id(user_id, season), entry)
        return entry

    async def recompute_ranks(self, season: int, week: Optional[int] = None) -> int:
        """
        Re-rank every entry in a scope.

        Only ranks that changed are written. Returns the number of ranked entries.
        """
        entries = await self.leaderboard_repo.get_for_scope(season, week)
        ranks = rank_entries(entries)

        for entry in entries:
            if entry.rank != ranks[entry.id]:
                await self.leaderboard_repo.set_rank(entry.id, ranks[entry.id])

        return sum(1 for rank in ranks.values() if rank is not None)

    # ============================================
    # Eligibility
    # ============================================

    async def set_user_eligibility(
        self,
        user_id: str,
        season: int,
        eligible: bool
    ) -> UserEligibility:
        """
        Store the payment eligibility signal and refresh the user's entries.

        The flag lives on every week entry and the season entry, so all of
        them are rewritten and their scopes re-ranked.
        """
        record = await self.eligibility_repo.set(user_id, season, eligible)

        weeks = await self.get_user_weeks(user_id, season)
        for week in weeks:
            await self.recompute_user_week(user_id, season, week)
            await self.recompute_ranks(season, week)

        await self.recompute_user_season(user_id, season)
        await self.recompute_ranks(season)

        logger.info(f"Eligibility for {user_id} in season {season} set to {eligible}")
        return record
