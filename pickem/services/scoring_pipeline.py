"""
Scoring pipeline - Turns matchup state changes into grades and standings.

matchup update -> grade the matchup -> regrade every pick on it -> recompute
the affected users' week and season entries -> re-rank.

Several writers (the score feed, manual corrections, recovery scripts) can hit
the same matchup at once. Nothing here is incremental: every step recomputes
from the current source state, and stale writes are refused instead of merged.
- The matchup grade is stored only if the matchup's revision is still the one
  it was computed from; otherwise re-read and grade again.
- A pick's grade is never overwritten by one computed from an older revision.
- Aggregates are full recomputes written as one upsert per (user, scope).

force_rebuild is the same pipeline run over a whole week or season; repairs
use it instead of patching rows.
"""

import logging
from typing import Optional, Union

from motor.motor_asyncio import AsyncIOMotorDatabase

from pickem.core.config import Settings, get_settings
from pickem.models.matchup import Matchup, MatchupUpsert
from pickem.models.pick import AnonymousPick, Pick
from pickem.repositories.anonymous_pick_repository import AnonymousPickRepository
from pickem.repositories.leaderboard_repository import LeaderboardRepository
from pickem.repositories.matchup_repository import MatchupRepository
from pickem.repositories.pick_repository import PickRepository
from pickem.services.recompute_queue import (
    RecomputeIncompleteError,
    RecomputeQueue,
    chunked,
    run_with_retries,
)
from pickem.services.scoring import grade_matchup, grade_pick

logger = logging.getLogger(__name__)

# Re-reads allowed when other writers keep bumping the revision
MAX_GRADE_ATTEMPTS = 5


class ScoringPipelineError(Exception):
    """Base exception for scoring pipeline errors."""
    pass


class MatchupNotFoundError(ScoringPipelineError):
    """Raised when matchup is not found."""
    pass


class InvalidMatchupError(ScoringPipelineError):
    """Raised when matchup data is invalid."""
    pass


class ScoringPipeline:
    def __init__(self, db: AsyncIOMotorDatabase, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.matchup_repo = MatchupRepository(db)
        self.pick_repo = PickRepository(db)
        self.anonymous_repo = AnonymousPickRepository(db)
        self.leaderboard_repo = LeaderboardRepository(db)
        self.queue = RecomputeQueue(db, self.settings)

    # ============================================
    # Source changes
    # ============================================

    async def report_matchup_state(
        self,
        matchup_id: str,
        home_score: Optional[int],
        away_score: Optional[int],
        status: str
    ) -> dict:
        """
        Consume a score/status report for a matchup and cascade it.

        A completed report without both scores leaves the matchup ungraded
        and every dependent pick pending.
        """
        matchup = await self.matchup_repo.apply_state_report(
            matchup_id, home_score, away_score, status
        )
        if not matchup:
            raise MatchupNotFoundError(f"Matchup {matchup_id} not found")

        logger.info(
            f"📥 {matchup_id} reported {home_score}-{away_score} ({status}), "
            f"revision {matchup.revision}"
        )

        return await self.regrade_matchup(matchup)

    async def upsert_matchup(self, matchup_id: str, data: MatchupUpsert) -> tuple[Matchup, dict]:
        """
        Publish a slate entry or correct it.

        A spread correction regrades the matchup and its picks. A matchup
        can't move to another week once it exists.
        """
        existing = await self.matchup_repo.get_by_id(matchup_id)
        if existing and (existing.season, existing.week) != (data.season, data.week):
            raise InvalidMatchupError(
                f"Matchup {matchup_id} belongs to season {existing.season} week {existing.week}"
            )

        matchup = await self.matchup_repo.upsert_slate_entry(
            matchup_id=matchup_id,
            season=data.season,
            week=data.week,
            home_team=data.home_team,
            away_team=data.away_team,
            spread=data.spread,
            kickoff_time=data.kickoff_time,
        )

        if existing is None or existing.spread == matchup.spread:
            return matchup, {"matchup_id": matchup_id, "regraded": False}

        logger.info(f"📐 Spread for {matchup_id} corrected {existing.spread} -> {matchup.spread}")
        summary = await self.regrade_matchup(matchup)
        return await self.matchup_repo.get_by_id(matchup_id), summary

    # ============================================
    # Grading cascade
    # ============================================

    async def _store_matchup_grade(self, matchup: Matchup) -> Optional[Matchup]:
        """
        Grade a matchup and store it with compare-and-set on its revision.

        Returns the matchup as graded, or None if other writers kept winning
        the race; each of them runs its own regrade.
        """
        for _ in range(MAX_GRADE_ATTEMPTS):
            grade = grade_matchup(matchup)
            if await self.matchup_repo.store_grade(matchup.id, matchup.revision, grade):
                return matchup.model_copy(update={"grade": grade})

            latest = await self.matchup_repo.get_by_id(matchup.id)
            if latest is None:
                raise MatchupNotFoundError(f"Matchup {matchup.id} not found")
            logger.warning(
                f"⚠️ {matchup.id} changed while grading "
                f"(revision {matchup.revision} -> {latest.revision}), regrading"
            )
            matchup = latest

        logger.warning(f"⚠️ Gave up grading {matchup.id}; a newer writer owns revision {matchup.revision}")
        return None

    async def _grade_picks(
        self,
        matchup: Matchup,
        picks: list[Union[Pick, AnonymousPick]]
    ) -> int:
        """Write each pick's grade in bounded chunks. Returns picks written."""
        written = 0

        for chunk in chunked(picks, self.settings.recompute_chunk_size):
            async def write_chunk(chunk=chunk):
                for pick in chunk:
                    grade = grade_pick(pick.selected_side, pick.is_lock, matchup.grade)
                    if isinstance(pick, AnonymousPick):
                        await self.anonymous_repo.store_grade(pick.id, matchup.revision, grade)
                    else:
                        await self.pick_repo.store_grade(pick.id, matchup.revision, grade)

            if not await run_with_retries(
                write_chunk, self.settings.recompute_max_retries, f"Pick grades for {matchup.id}"
            ):
                raise RecomputeIncompleteError(
                    pending=[p.id for p in picks[written:]],
                    message=f"Grading picks of {matchup.id} stopped after {written} picks",
                )
            written += len(chunk)

        return written

    async def regrade_matchup(self, matchup: Matchup, drain: bool = True) -> dict:
        """
        Regrade one matchup and everything that depends on it.

        With drain=False the affected aggregates stay queued so a caller
        covering many matchups can drain once at the end.
        """
        graded = await self._store_matchup_grade(matchup)
        if graded is None:
            return {
                "matchup_id": matchup.id,
                "revision": matchup.revision,
                "grade": None,
                "picks_regraded": 0,
                "users_affected": 0,
                "aggregates_stale": False,
                "superseded": True,
            }
        matchup = graded

        picks = await self.pick_repo.get_for_matchup(matchup.id)
        anonymous = await self.anonymous_repo.get_for_matchup(matchup.id)
        all_picks = [*picks, *anonymous]

        stale = False
        try:
            regraded = await self._grade_picks(matchup, all_picks)
        except RecomputeIncompleteError as e:
            logger.error(f"❌ {e}")
            regraded = len(all_picks) - len(e.pending)
            stale = True

        users = set()
        for pick in all_picks:
            if pick.owner_id:
                users.add(pick.owner_id)
                self.queue.add(pick.owner_id, matchup.season, matchup.week)

        if drain:
            stale = await self.queue.flush() or stale

        logger.info(
            f"✅ {matchup.id} graded {matchup.grade.covering_side if matchup.grade else 'pending'}, "
            f"{regraded} picks regraded, {len(users)} users affected"
        )

        return {
            "matchup_id": matchup.id,
            "revision": matchup.revision,
            "grade": matchup.grade.model_dump() if matchup.grade else None,
            "picks_regraded": regraded,
            "users_affected": len(users),
            "aggregates_stale": stale,
            "superseded": False,
        }

    # ============================================
    # Rebuild
    # ============================================

    async def force_rebuild(self, season: int, week: Optional[int] = None) -> dict:
        """
        Rebuild a week (or a whole season) from source data.

        Regrades every matchup in scope and their picks, then recomputes every
        user who has picks or entries in scope and re-ranks. Safe to run as
        often as anything likes.
        """
        matchups = await self.matchup_repo.get_for_scope(season, week)

        picks_regraded = 0
        stale = False
        for matchup in matchups:
            summary = await self.regrade_matchup(matchup, drain=False)
            picks_regraded += summary["picks_regraded"]
            stale = stale or summary["aggregates_stale"]

        # Users whose picks or entries sit in scope, even with no matchup left
        for pick in await self.pick_repo.get_for_scope(season, week):
            self.queue.add(pick.user_id, pick.season, pick.week)
        for pick in await self.anonymous_repo.get_for_scope(season, week, claimed=True):
            self.queue.add(pick.assigned_user_id, pick.season, pick.week)

        if week is None:
            for entry in await self.leaderboard_repo.get_all_for_season(season):
                if entry.week is None:
                    self.queue.add_season(entry.user_id, season)
                else:
                    self.queue.add(entry.user_id, season, entry.week)
        else:
            for user_id in await self.leaderboard_repo.get_users_for_scope(season, week):
                self.queue.add(user_id, season, week)

        self.queue.add_scope(season, week)
        self.queue.add_scope(season)

        targets = len(self.queue.pending)
        stale = await self.queue.flush() or stale

        scope = f"season {season}" if week is None else f"season {season} week {week}"
        logger.info(
            f"🔁 Rebuilt {scope}: {len(matchups)} matchups, {picks_regraded} picks, "
            f"{targets} user weeks"
        )

        return {
            "season": season,
            "week": week,
            "matchups_regraded": len(matchups),
            "picks_regraded": picks_regraded,
            "user_weeks_recomputed": targets,
            "aggregates_stale": stale,
        }
