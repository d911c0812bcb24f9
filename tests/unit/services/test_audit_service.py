"""
Unit tests for AuditService
"""

import pytest

from pickem.models.audit import MismatchKind
from pickem.models.leaderboard import entry_id
from pickem.repositories.anonymous_pick_repository import anonymous_pick_id_for
from pickem.services.audit_service import AuditService

SEASON = 2025


@pytest.fixture
def auditor(test_db, settings) -> AuditService:
    return AuditService(test_db, settings)


@pytest.fixture
async def graded_week(publish_matchup, submit_pick, final_score):
    await publish_matchup("m1", spread=-7.0)
    await publish_matchup("m2", spread=3.0)
    await submit_pick("alice", "m1", "home", is_lock=True)
    await submit_pick("alice", "m2", "away")
    await submit_pick("bob", "m1", "away")
    await final_score("m1", 31, 10)
    await final_score("m2", 20, 24)


class TestAudit:

    @pytest.mark.asyncio
    async def test_consistent_after_pipeline(self, auditor, graded_week):
        report = await auditor.audit(SEASON)

        assert report.is_consistent
        assert report.matchups_checked == 2
        assert report.picks_checked == 3
        # 2 week entries + 2 season entries
        assert report.entries_checked == 4

    @pytest.mark.asyncio
    async def test_detects_stale_matchup_grade(self, test_db, auditor, graded_week):
        await test_db["matchups"].update_one({"_id": "m1"}, {"$set": {"home_score": 10}})

        report = await auditor.audit(SEASON, 5)

        [mismatch] = report.of_kind(MismatchKind.MATCHUP_GRADE)
        assert mismatch.matchup_id == "m1"
        assert mismatch.expected["covering_side"] == "away"
        assert mismatch.actual["covering_side"] == "home"

    @pytest.mark.asyncio
    async def test_detects_pick_grade(self, test_db, auditor, graded_week):
        await test_db["picks"].update_one({"_id": "bob:m1"}, {"$set": {"points": 20, "outcome": "win"}})

        report = await auditor.audit(SEASON, 5)

        [mismatch] = report.of_kind(MismatchKind.PICK_GRADE)
        assert mismatch.pick_id == "bob:m1"
        assert mismatch.user_id == "bob"
        assert mismatch.expected["points"] == 0

    @pytest.mark.asyncio
    async def test_detects_aggregate_mismatch(self, test_db, auditor, graded_week):
        await test_db["leaderboard"].update_one(
            {"_id": entry_id("alice", SEASON, 5)}, {"$inc": {"total_points": 5}}
        )

        report = await auditor.audit(SEASON, 5)

        [mismatch] = report.of_kind(MismatchKind.AGGREGATE_MISMATCH)
        assert mismatch.user_id == "alice"
        assert mismatch.expected["total_points"] == 42
        assert mismatch.actual["total_points"] == 47

    @pytest.mark.asyncio
    async def test_detects_missing_and_orphan(self, test_db, auditor, graded_week):
        await test_db["leaderboard"].delete_one({"_id": entry_id("bob", SEASON, 5)})
        await test_db["leaderboard"].insert_one({
            "_id": entry_id("ghost", SEASON, 5), "user_id": "ghost", "scope_type": "week",
            "season": SEASON, "week": 5, "total_points": 3,
        })

        report = await auditor.audit(SEASON)

        assert [m.user_id for m in report.of_kind(MismatchKind.AGGREGATE_MISSING)] == ["bob"]
        assert [m.user_id for m in report.of_kind(MismatchKind.AGGREGATE_ORPHAN)] == ["ghost"]

    @pytest.mark.asyncio
    async def test_detects_rank_mismatch(self, test_db, auditor, graded_week):
        await test_db["leaderboard"].update_one({"_id": entry_id("bob", SEASON)}, {"$set": {"rank": 1}})

        report = await auditor.audit(SEASON)

        [mismatch] = report.of_kind(MismatchKind.RANK_MISMATCH)
        assert mismatch.user_id == "bob"
        assert mismatch.week is None
        assert (mismatch.expected, mismatch.actual) == (2, 1)

    @pytest.mark.asyncio
    async def test_reports_unresolved_conflict(
        self, auditor, pick_service, graded_week, publish_matchup, submit_anonymous_pick
    ):
        await publish_matchup("m3")
        await submit_anonymous_pick("alice@example.com", "m3", "away")
        await pick_service.claim_anonymous_pick(
            anonymous_pick_id_for("alice@example.com", "m3"), "alice"
        )

        report = await auditor.audit(SEASON, 5)

        [mismatch] = report.of_kind(MismatchKind.UNRESOLVED_CONFLICT)
        assert mismatch.user_id == "alice"
        assert mismatch.expected == ["auth", "anon:alice@example.com"]
        # The pipeline already dropped alice's week; nothing else is off
        assert len(report.mismatches) == 1


class TestRepair:

    @pytest.mark.asyncio
    async def test_repair_fixes_everything_it_reports(self, test_db, auditor, graded_week):
        await test_db["matchups"].update_one({"_id": "m2"}, {"$set": {"grade": None}})
        await test_db["picks"].update_one({"_id": "bob:m1"}, {"$set": {"points": 20}})
        await test_db["leaderboard"].update_one(
            {"_id": entry_id("alice", SEASON)}, {"$set": {"total_points": 0, "rank": 2}}
        )
        await test_db["leaderboard"].insert_one({
            "_id": entry_id("ghost", SEASON, 5), "user_id": "ghost", "scope_type": "week",
            "season": SEASON, "week": 5, "total_points": 3,
        })

        summary = await auditor.repair(SEASON)

        assert summary["mismatches_found"] >= 4
        assert summary["matchups_regraded"] == 2
        assert summary["aggregates_stale"] is False
        assert (await auditor.audit(SEASON)).is_consistent

    @pytest.mark.asyncio
    async def test_repair_leaves_conflicts_for_an_admin(
        self, auditor, pick_service, graded_week, publish_matchup, submit_anonymous_pick
    ):
        await publish_matchup("m3")
        await submit_anonymous_pick("alice@example.com", "m3", "away")
        await pick_service.claim_anonymous_pick(
            anonymous_pick_id_for("alice@example.com", "m3"), "alice"
        )

        summary = await auditor.repair(SEASON, 5)

        assert summary["unresolved_conflicts"] == 1
        report = await auditor.audit(SEASON, 5)
        assert [m.kind for m in report.mismatches] == [MismatchKind.UNRESOLVED_CONFLICT.value]
