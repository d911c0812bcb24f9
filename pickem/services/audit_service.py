"""
AuditService - Consistency checks and targeted repair.

audit() is read-only. It recomputes what every derived value should be from
the current source data and compares it with what is stored:

- matchup grades against scores, status and spread
- pick outcomes and points against their matchup's stored grade
- week and season entries against the eligible picks
- ranks against the ordering of the stored entries
- weeks where a user has several pick sets and no decision (reported for an
  admin, never resolved here)

repair() runs the normal scoring pipeline for exactly the matchups and
(user, week) pairs the audit flagged.
"""

import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from pickem.core.config import Settings, get_settings
from pickem.models.audit import AuditReport, Mismatch, MismatchKind
from pickem.models.leaderboard import LeaderboardEntry, entry_id
from pickem.models.matchup import Matchup
from pickem.repositories.anonymous_pick_repository import AnonymousPickRepository
from pickem.repositories.leaderboard_repository import LeaderboardRepository
from pickem.repositories.matchup_repository import MatchupRepository
from pickem.repositories.pick_repository import PickRepository
from pickem.services.aggregate_service import AggregateService, rank_entries
from pickem.services.precedence_resolver import PrecedenceResolver
from pickem.services.scoring import grade_matchup, grade_pick
from pickem.services.scoring_pipeline import ScoringPipeline

logger = logging.getLogger(__name__)


def _grade_dump(grade) -> Optional[dict]:
    return grade.model_dump(mode="json") if grade is not None else None


def _totals(entry: Optional[LeaderboardEntry]) -> Optional[dict]:
    return entry.totals() if entry is not None else None


class AuditService:
    def __init__(self, db: AsyncIOMotorDatabase, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()
        self.matchup_repo = MatchupRepository(db)
        self.pick_repo = PickRepository(db)
        self.anonymous_repo = AnonymousPickRepository(db)
        self.leaderboard_repo = LeaderboardRepository(db)
        self.aggregates = AggregateService(db, self.settings)
        self.resolver = PrecedenceResolver(db)

    # ============================================
    # Audit
    # ============================================

    def _check_matchups(self, report: AuditReport, matchups: list[Matchup]) -> None:
        for matchup in matchups:
            expected = _grade_dump(grade_matchup(matchup))
            actual = _grade_dump(matchup.grade)
            if expected != actual:
                report.mismatches.append(Mismatch(
                    kind=MismatchKind.MATCHUP_GRADE,
                    season=matchup.season,
                    week=matchup.week,
                    matchup_id=matchup.id,
                    expected=expected,
                    actual=actual,
                ))
        report.matchups_checked = len(matchups)

    async def _check_picks(
        self,
        report: AuditReport,
        season: int,
        week: Optional[int],
        matchups: dict[str, Matchup]
    ) -> list:
        picks = [
            *await self.pick_repo.get_for_scope(season, week),
            *await self.anonymous_repo.get_for_scope(season, week),
        ]

        missing = [p.matchup_id for p in picks if p.matchup_id not in matchups]
        matchups.update(await self.matchup_repo.get_many(missing))

        for pick in picks:
            matchup = matchups.get(pick.matchup_id)
            grade = matchup.grade if matchup else None
            expected = grade_pick(pick.selected_side, pick.is_lock, grade).model_dump(mode="json")
            actual = pick.stored_grade.model_dump(mode="json")
            if expected != actual:
                report.mismatches.append(Mismatch(
                    kind=MismatchKind.PICK_GRADE,
                    season=pick.season,
                    week=pick.week,
                    matchup_id=pick.matchup_id,
                    pick_id=pick.id,
                    user_id=pick.owner_id,
                    expected=expected,
                    actual=actual,
                ))

        report.picks_checked = len(picks)
        return picks

    def _compare_entry(
        self,
        report: AuditReport,
        user_id: str,
        season: int,
        week: Optional[int],
        expected: Optional[LeaderboardEntry],
        actual: Optional[LeaderboardEntry]
    ) -> None:
        if expected is None and actual is None:
            return

        if expected is None:
            kind = MismatchKind.AGGREGATE_ORPHAN
        elif actual is None:
            kind = MismatchKind.AGGREGATE_MISSING
        elif expected.totals() != actual.totals():
            kind = MismatchKind.AGGREGATE_MISMATCH
        else:
            return

        report.mismatches.append(Mismatch(
            kind=kind,
            season=season,
            week=week,
            user_id=user_id,
            expected=_totals(expected),
            actual=_totals(actual),
        ))

    def _check_ranks(
        self,
        report: AuditReport,
        season: int,
        week: Optional[int],
        entries: list[LeaderboardEntry]
    ) -> None:
        expected_ranks = rank_entries(entries)
        for entry in entries:
            if entry.rank != expected_ranks[entry.id]:
                report.mismatches.append(Mismatch(
                    kind=MismatchKind.RANK_MISMATCH,
                    season=season,
                    week=week,
                    user_id=entry.user_id,
                    expected=expected_ranks[entry.id],
                    actual=entry.rank,
                ))

    async def audit(self, season: int, week: Optional[int] = None) -> AuditReport:
        """
        Read-only consistency scan of a week, or of a whole season.

        Every mismatch carries the matchup, pick, user and week needed to
        repair just that part.
        """
        report = AuditReport(season=season, week=week)

        matchup_list = await self.matchup_repo.get_for_scope(season, week)
        self._check_matchups(report, matchup_list)

        matchups = {m.id: m for m in matchup_list}
        picks = await self._check_picks(report, season, week, matchups)

        # (user, week) pairs that could have an entry: owned picks plus stored entries
        stored = (
            await self.leaderboard_repo.get_all_for_season(season)
            if week is None
            else await self.leaderboard_repo.get_for_scope(season, week)
        )
        stored_by_id = {e.id: e for e in stored}

        user_weeks = {(p.owner_id, p.week) for p in picks if p.owner_id}
        user_weeks.update((e.user_id, e.week) for e in stored if e.week is not None)

        for user_id, user_week in sorted(user_weeks):
            resolution = await self.resolver.resolve(user_id, season, user_week)
            if resolution.is_unresolved:
                report.mismatches.append(Mismatch(
                    kind=MismatchKind.UNRESOLVED_CONFLICT,
                    season=season,
                    week=user_week,
                    user_id=user_id,
                    expected=resolution.candidate_pick_set_ids,
                    detail="Several pick sets and no precedence decision",
                ))

            expected = await self.aggregates.build_week_entry(user_id, season, user_week)
            actual = stored_by_id.get(entry_id(user_id, season, user_week))
            self._compare_entry(report, user_id, season, user_week, expected, actual)

        checked = len(user_weeks)

        if week is None:
            season_users = {u for u, _ in user_weeks}
            season_users.update(e.user_id for e in stored if e.week is None)

            for user_id in sorted(season_users):
                expected = await self.aggregates.build_season_entry(user_id, season)
                actual = stored_by_id.get(entry_id(user_id, season))
                self._compare_entry(report, user_id, season, None, expected, actual)

            checked += len(season_users)

            by_scope: dict[Optional[int], list[LeaderboardEntry]] = {}
            for entry in stored:
                by_scope.setdefault(entry.week, []).append(entry)
            for scope_week, entries in sorted(by_scope.items(), key=lambda s: (s[0] is None, s[0] or 0)):
                self._check_ranks(report, season, scope_week, entries)
        else:
            self._check_ranks(report, season, week, stored)

        report.entries_checked = checked

        logger.info(
            f"🔎 Audit season {season} week {week}: {len(report.mismatches)} mismatches "
            f"({report.matchups_checked} matchups, {report.picks_checked} picks, {checked} entries)"
        )
        return report

    # ============================================
    # Repair
    # ============================================

    async def repair(self, season: int, week: Optional[int] = None) -> dict:
        """
        Audit, then rerun the pipeline for exactly what the audit flagged.

        Unresolved conflicts are left alone: only an admin decision fixes them.
        """
        report = await self.audit(season, week)
        pipeline = ScoringPipeline(self.db, self.settings)

        matchup_ids = sorted({
            m.matchup_id for m in report.mismatches
            if m.kind in (MismatchKind.MATCHUP_GRADE, MismatchKind.PICK_GRADE) and m.matchup_id
        })

        regraded = 0
        for matchup_id in matchup_ids:
            matchup = await self.matchup_repo.get_by_id(matchup_id)
            if matchup is None:
                # Picks pointing at a deleted matchup: their owners still get recomputed
                continue
            await pipeline.regrade_matchup(matchup, drain=False)
            regraded += 1

        aggregate_kinds = (
            MismatchKind.AGGREGATE_MISMATCH,
            MismatchKind.AGGREGATE_MISSING,
            MismatchKind.AGGREGATE_ORPHAN,
            MismatchKind.PICK_GRADE,
        )
        for mismatch in report.mismatches:
            if mismatch.kind in aggregate_kinds and mismatch.user_id:
                if mismatch.week is None:
                    pipeline.queue.add_season(mismatch.user_id, mismatch.season)
                else:
                    pipeline.queue.add(mismatch.user_id, mismatch.season, mismatch.week)
            elif mismatch.kind == MismatchKind.RANK_MISMATCH:
                pipeline.queue.add_scope(mismatch.season, mismatch.week)

        targets = len(pipeline.queue.pending)
        stale = await pipeline.queue.flush()

        conflicts = len(report.of_kind(MismatchKind.UNRESOLVED_CONFLICT))
        if conflicts:
            logger.warning(f"⚠️ {conflicts} unresolved pick set conflicts need an admin decision")

        return {
            "season": season,
            "week": week,
            "mismatches_found": len(report.mismatches),
            "matchups_regraded": regraded,
            "user_weeks_recomputed": targets,
            "unresolved_conflicts": conflicts,
            "aggregates_stale": stale,
        }
