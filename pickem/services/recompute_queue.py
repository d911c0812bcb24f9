"""
RecomputeQueue - De-duplicated aggregate recompute work.

Anything that changes what a user scores (a regraded matchup, a claim, a
precedence decision, a hidden pick) adds (user, season, week) targets here
and then drains. Adding the same target twice is harmless; draining runs it
once.

Work is drained in small chunks. Each chunk is retried on storage errors;
chunks already written are valid upserts and stay. If a chunk keeps failing
the remaining targets are reported through RecomputeIncompleteError and the
affected aggregates are merely stale until the next run.
"""

import logging
from typing import Awaitable, Callable, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from pickem.core.config import Settings, get_settings
from pickem.services.aggregate_service import AggregateService, AggregateServiceError

logger = logging.getLogger(__name__)

WeekTarget = tuple[str, int, int]  # (user_id, season, week)


class RecomputeIncompleteError(AggregateServiceError):
    """Raised when a recompute chunk kept failing; carries the targets left to do."""

    def __init__(self, pending: list, message: Optional[str] = None):
        self.pending = pending
        super().__init__(message or f"{len(pending)} recompute targets left pending")


def chunked(items: list, size: int) -> list[list]:
    size = max(size, 1)
    return [items[i:i + size] for i in range(0, len(items), size)]


async def run_with_retries(
    operation: Callable[[], Awaitable[None]],
    max_retries: int,
    label: str
) -> bool:
    """
    Run ``operation`` retrying on PyMongoError.

    Returns False once the retries are used up. The operation must be safe to
    repeat.
    """
    for attempt in range(max_retries + 1):
        try:
            await operation()
            return True
        except PyMongoError as e:
            if attempt < max_retries:
                logger.warning(f"⚠️ {label} failed ({e}), retrying ({attempt + 1}/{max_retries})")
            else:
                logger.error(f"❌ {label} failed after {max_retries} retries: {e}")
    return False


class RecomputeQueue:
    def __init__(self, db: AsyncIOMotorDatabase, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.aggregates = AggregateService(db, self.settings)

        self._weeks: set[WeekTarget] = set()
        self._seasons: set[tuple[str, int]] = set()
        self._scopes: set[tuple[int, Optional[int]]] = set()

    def add(self, user_id: Optional[str], season: int, week: int) -> None:
        """Queue a (user, week) recompute; unclaimed picks (no user) are ignored."""
        if user_id:
            self._weeks.add((user_id, season, week))

    def add_season(self, user_id: str, season: int) -> None:
        self._seasons.add((user_id, season))

    def add_scope(self, season: int, week: Optional[int] = None) -> None:
        """Queue a re-rank of a scope even if none of its entries change."""
        self._scopes.add((season, week))

    @property
    def pending(self) -> list[WeekTarget]:
        return sorted(self._weeks)

    def __len__(self) -> int:
        return len(self._weeks) + len(self._seasons) + len(self._scopes)

    async def drain(self) -> dict:
        """
        Recompute everything queued.

        1. Week entries, in chunks of recompute_chunk_size
        2. Season entries for every user touched in step 1
        3. Ranks for every touched week scope and season scope

        Raises RecomputeIncompleteError with the unfinished targets if a chunk
        exhausts its retries.
        """
        week_targets = sorted(self._weeks)
        season_targets = set(self._seasons)
        scopes = set(self._scopes)

        for user_id, season, week in week_targets:
            season_targets.add((user_id, season))
            scopes.add((season, week))
        for _, season in season_targets:
            scopes.add((season, None))

        seasons_recomputed = len(season_targets)
        chunk_size = self.settings.recompute_chunk_size
        max_retries = self.settings.recompute_max_retries

        for chunk in chunked(week_targets, chunk_size):
            async def run_week_chunk(chunk=chunk):
                for user_id, season, week in chunk:
                    await self.aggregates.recompute_user_week(user_id, season, week)

            if not await run_with_retries(run_week_chunk, max_retries, "Week recompute chunk"):
                # Weeks already written still owe their season entry and ranks
                self._seasons.update(season_targets)
                self._scopes.update(scopes)
                raise RecomputeIncompleteError(pending=sorted(self._weeks))
            self._weeks.difference_update(chunk)

        for chunk in chunked(sorted(season_targets), chunk_size):
            async def run_season_chunk(chunk=chunk):
                for user_id, season in chunk:
                    await self.aggregates.recompute_user_season(user_id, season)

            if not await run_with_retries(run_season_chunk, max_retries, "Season recompute chunk"):
                self._seasons.update(season_targets)
                self._scopes.update(scopes)
                raise RecomputeIncompleteError(pending=sorted(season_targets))
            season_targets.difference_update(chunk)
            self._seasons.difference_update(chunk)

        # Season scope last so it sees every rewritten season entry
        ordered_scopes = sorted(scopes, key=lambda s: (s[0], s[1] is None, s[1] or 0))
        for season, week in ordered_scopes:
            async def run_rank(season=season, week=week):
                await self.aggregates.recompute_ranks(season, week)

            if not await run_with_retries(run_rank, max_retries, f"Ranking {season}/{week}"):
                self._scopes.update(scopes)
                raise RecomputeIncompleteError(pending=sorted(scopes, key=str))
            scopes.discard((season, week))
            self._scopes.discard((season, week))

        logger.info(
            f"✅ Recomputed {len(week_targets)} week entries, "
            f"{seasons_recomputed} season entries, {len(ordered_scopes)} rankings"
        )

        return {
            "weeks_recomputed": len(week_targets),
            "seasons_recomputed": seasons_recomputed,
            "scopes_ranked": len(ordered_scopes),
        }

    async def flush(self) -> bool:
        """
        Drain for callers whose own write already succeeded.

        A failed recompute doesn't undo that write; the aggregates are just
        stale until the next rebuild. Returns True when they were left stale.
        """
        try:
            await self.drain()
        except RecomputeIncompleteError as e:
            logger.error(f"❌ Aggregates left stale, {len(e.pending)} targets pending: {e.pending}")
            return True
        return False
