"""
Unit tests for PickService
"""

import pytest
from datetime import datetime, timedelta, timezone

from pickem.models.matchup import Matchup, MatchupPickStats, MatchupStatus
from pickem.models.pick import AnonymousPickCreate, PickCreate, ValidationState, is_anonymous_pick_id
from pickem.services.pick_service import (
    ClaimConflictError,
    DuplicateLockError,
    InvalidClaimError,
    InvalidPickError,
    MatchupNotFoundError,
    PickLockedError,
    PickNotFoundError,
    TooManyPicksError,
    count_matchup_picks,
    is_open_for_picks,
)

SEASON = 2025


class TestIsOpenForPicks:

    def _matchup(self, status=MatchupStatus.SCHEDULED, kickoff=None):
        return Matchup(
            _id="m1", season=SEASON, week=1, home_team="A", away_team="B",
            spread=-3.0, status=status, kickoff_time=kickoff,
        )

    def test_scheduled_before_kickoff(self):
        kickoff = datetime.now(timezone.utc) + timedelta(hours=1)
        assert is_open_for_picks(self._matchup(kickoff=kickoff))

    def test_after_kickoff(self):
        kickoff = datetime.now(timezone.utc) - timedelta(minutes=1)
        assert not is_open_for_picks(self._matchup(kickoff=kickoff))

    def test_naive_kickoff_is_utc(self):
        kickoff = (datetime.now(timezone.utc) - timedelta(minutes=1)).replace(tzinfo=None)
        assert not is_open_for_picks(self._matchup(kickoff=kickoff))

    def test_not_scheduled(self):
        assert not is_open_for_picks(self._matchup(status=MatchupStatus.IN_PROGRESS))


class TestSubmitPick:
    """Test suite for pick submission rules."""

    @pytest.mark.asyncio
    async def test_submit_pick(self, pick_service, publish_matchup):
        await publish_matchup("m1")

        pick, stale = await pick_service.submit_pick(
            PickCreate(user_id="alice", matchup_id="m1", selected_side="home", is_lock=True)
        )

        assert pick.id == "alice:m1"
        assert pick.season == SEASON
        assert pick.week == 5
        assert pick.selected_side == "home"
        assert pick.is_lock is True
        assert pick.outcome is None
        assert stale is False

    @pytest.mark.asyncio
    async def test_replace_pick(self, pick_service, publish_matchup, submit_pick):
        await publish_matchup("m1")
        await submit_pick("alice", "m1", "home")

        pick, _ = await pick_service.submit_pick(
            PickCreate(user_id="alice", matchup_id="m1", selected_side="away")
        )

        assert pick.selected_side == "away"
        picks = await pick_service.list_picks_for_user_period("alice", SEASON, 5)
        assert len(picks) == 1

    @pytest.mark.asyncio
    async def test_unknown_matchup(self, pick_service):
        with pytest.raises(MatchupNotFoundError):
            await pick_service.submit_pick(
                PickCreate(user_id="alice", matchup_id="nope", selected_side="home")
            )

    @pytest.mark.asyncio
    async def test_locked_after_kickoff(self, pick_service, pipeline, test_db, publish_matchup):
        await publish_matchup("m1")
        await test_db["matchups"].update_one(
            {"_id": "m1"},
            {"$set": {"kickoff_time": datetime.now(timezone.utc) - timedelta(hours=1)}}
        )

        with pytest.raises(PickLockedError):
            await pick_service.submit_pick(
                PickCreate(user_id="alice", matchup_id="m1", selected_side="home")
            )

    @pytest.mark.asyncio
    async def test_locked_once_in_progress(self, pick_service, pipeline, publish_matchup):
        await publish_matchup("m1")
        await pipeline.report_matchup_state("m1", 0, 0, "in_progress")

        with pytest.raises(PickLockedError):
            await pick_service.submit_pick(
                PickCreate(user_id="alice", matchup_id="m1", selected_side="home")
            )

    @pytest.mark.asyncio
    async def test_too_many_picks(self, pick_service, publish_matchup, submit_pick):
        for i in range(7):
            await publish_matchup(f"m{i}")
        for i in range(6):
            await submit_pick("alice", f"m{i}", "home")

        with pytest.raises(TooManyPicksError):
            await pick_service.submit_pick(
                PickCreate(user_id="alice", matchup_id="m6", selected_side="home")
            )

        # Replacing one of the six is still fine
        pick, _ = await pick_service.submit_pick(
            PickCreate(user_id="alice", matchup_id="m0", selected_side="away")
        )
        assert pick.selected_side == "away"

    @pytest.mark.asyncio
    async def test_second_lock_rejected(self, pick_service, publish_matchup, submit_pick):
        await publish_matchup("m1")
        await publish_matchup("m2")
        await submit_pick("alice", "m1", "home", is_lock=True)

        with pytest.raises(DuplicateLockError):
            await pick_service.submit_pick(
                PickCreate(user_id="alice", matchup_id="m2", selected_side="home", is_lock=True)
            )

        # Nothing was clamped or written
        picks = await pick_service.list_picks_for_user_period("alice", SEASON, 5)
        assert [p.matchup_id for p in picks] == ["m1"]

    @pytest.mark.asyncio
    async def test_moving_the_lock_on_same_matchup(self, pick_service, publish_matchup, submit_pick):
        await publish_matchup("m1")
        await submit_pick("alice", "m1", "home", is_lock=True)

        pick, _ = await pick_service.submit_pick(
            PickCreate(user_id="alice", matchup_id="m1", selected_side="away", is_lock=True)
        )
        assert pick.is_lock is True

    @pytest.mark.asyncio
    async def test_limits_are_per_week(self, pick_service, publish_matchup, submit_pick):
        await publish_matchup("w5", week=5)
        await publish_matchup("w6", week=6)
        await submit_pick("alice", "w5", "home", is_lock=True)

        pick, _ = await pick_service.submit_pick(
            PickCreate(user_id="alice", matchup_id="w6", selected_side="home", is_lock=True)
        )
        assert pick.is_lock is True


class TestAnonymousPicks:

    @pytest.mark.asyncio
    async def test_email_is_normalized(self, pick_service, publish_matchup):
        await publish_matchup("m1")

        pick, _ = await pick_service.submit_anonymous_pick(
            AnonymousPickCreate(email="  Bob@Example.COM ", matchup_id="m1", selected_side="away")
        )

        assert pick.email == "bob@example.com"
        assert pick.id == "anon:bob@example.com:m1"
        assert pick.pick_set_id == "anon:bob@example.com"
        assert pick.assigned_user_id is None
        assert pick.validation_state == "unvalidated"

    @pytest.mark.asyncio
    async def test_invalid_email(self, pick_service, publish_matchup):
        await publish_matchup("m1")

        with pytest.raises(InvalidPickError):
            await pick_service.submit_anonymous_pick(
                AnonymousPickCreate(email="not-an-email", matchup_id="m1", selected_side="away")
            )

    @pytest.mark.asyncio
    async def test_anonymous_lock_limit(self, pick_service, publish_matchup, submit_anonymous_pick):
        await publish_matchup("m1")
        await publish_matchup("m2")
        await submit_anonymous_pick("bob@example.com", "m1", "home", is_lock=True)

        with pytest.raises(DuplicateLockError):
            await pick_service.submit_anonymous_pick(
                AnonymousPickCreate(
                    email="bob@example.com", matchup_id="m2", selected_side="home", is_lock=True
                )
            )

    @pytest.mark.asyncio
    async def test_claim(self, pick_service, publish_matchup, submit_anonymous_pick):
        await publish_matchup("m1")
        anon = await submit_anonymous_pick("bob@example.com", "m1", "home")

        claimed, _ = await pick_service.claim_anonymous_pick(
            anon.id, "bob", ValidationState.AUTO_VALIDATED
        )

        assert claimed.assigned_user_id == "bob"
        assert claimed.validation_state == "auto_validated"

        picks = await pick_service.list_picks_for_user_period("bob", SEASON, 5)
        assert [p.id for p in picks] == [anon.id]

    @pytest.mark.asyncio
    async def test_claim_needs_validation(self, pick_service, publish_matchup, submit_anonymous_pick):
        await publish_matchup("m1")
        anon = await submit_anonymous_pick("bob@example.com", "m1", "home")

        with pytest.raises(InvalidClaimError):
            await pick_service.claim_anonymous_pick(anon.id, "bob", ValidationState.UNVALIDATED)

    @pytest.mark.asyncio
    async def test_claim_is_idempotent(self, pick_service, publish_matchup, submit_anonymous_pick):
        await publish_matchup("m1")
        anon = await submit_anonymous_pick("bob@example.com", "m1", "home")

        first, _ = await pick_service.claim_anonymous_pick(anon.id, "bob")
        second, stale = await pick_service.claim_anonymous_pick(anon.id, "bob")

        assert first.assigned_user_id == second.assigned_user_id == "bob"
        assert stale is False

    @pytest.mark.asyncio
    async def test_claim_conflict_and_reassign(self, pick_service, publish_matchup, submit_anonymous_pick):
        await publish_matchup("m1")
        anon = await submit_anonymous_pick("bob@example.com", "m1", "home")
        await pick_service.claim_anonymous_pick(anon.id, "bob")

        with pytest.raises(ClaimConflictError):
            await pick_service.claim_anonymous_pick(anon.id, "carol")

        moved, _ = await pick_service.claim_anonymous_pick(anon.id, "carol", reassign=True)
        assert moved.assigned_user_id == "carol"

    @pytest.mark.asyncio
    async def test_claim_missing_pick(self, pick_service):
        with pytest.raises(PickNotFoundError):
            await pick_service.claim_anonymous_pick("anon:x@example.com:m1", "bob")

    @pytest.mark.asyncio
    async def test_claim_whole_set(self, pick_service, publish_matchup, submit_anonymous_pick):
        await publish_matchup("m1")
        await publish_matchup("m2")
        await submit_anonymous_pick("bob@example.com", "m1", "home")
        await submit_anonymous_pick("bob@example.com", "m2", "away")

        picks, _ = await pick_service.claim_anonymous_pick_set(
            "BOB@example.com", SEASON, 5, "bob"
        )

        assert len(picks) == 2
        assert all(p.assigned_user_id == "bob" for p in picks)
        unclaimed = await pick_service.list_anonymous_picks(SEASON, 5, claimed=False)
        assert unclaimed == []


class TestVisibilityAndRemoval:

    @pytest.mark.asyncio
    async def test_set_visibility(self, pick_service, publish_matchup, submit_pick):
        await publish_matchup("m1")
        await submit_pick("alice", "m1", "home")

        pick, _ = await pick_service.set_pick_visibility("alice:m1", False)
        assert pick.visible is False

    @pytest.mark.asyncio
    async def test_set_visibility_missing(self, pick_service):
        with pytest.raises(PickNotFoundError):
            await pick_service.set_pick_visibility("alice:nope", False)

    @pytest.mark.asyncio
    async def test_remove_pick(self, pick_service, publish_matchup, submit_pick):
        await publish_matchup("m1")
        await submit_pick("alice", "m1", "home")

        await pick_service.remove_pick("alice:m1")

        assert await pick_service.get_pick("alice:m1") is None

    @pytest.mark.asyncio
    async def test_remove_locked_pick(self, pick_service, pipeline, publish_matchup, submit_pick):
        await publish_matchup("m1")
        await submit_pick("alice", "m1", "home")
        await pipeline.report_matchup_state("m1", 7, 0, "in_progress")

        with pytest.raises(PickLockedError):
            await pick_service.remove_pick("alice:m1")

    @pytest.mark.asyncio
    async def test_user_named_anon_is_an_authenticated_pick(
        self, pick_service, publish_matchup, submit_pick, submit_anonymous_pick
    ):
        await publish_matchup("m1")
        await submit_pick("anon", "m1", "home")
        await submit_anonymous_pick("bob@example.com", "m1", "away")

        pick, _ = await pick_service.set_pick_visibility("anon:m1", False)
        assert pick.user_id == "anon"
        assert pick.visible is False

        anonymous, _ = await pick_service.set_pick_visibility("anon:bob@example.com:m1", False)
        assert anonymous.email == "bob@example.com"

        await pick_service.remove_pick("anon:m1")
        assert await pick_service.get_pick("anon:m1") is None
        assert await pick_service.get_pick("anon:bob@example.com:m1") is not None


class TestIsAnonymousPickId:

    @pytest.mark.parametrize("pick_id,expected", [
        ("anon:bob@example.com:m1", True),
        ("anon:alice:m1", False),
        ("anon:m1", False),
        ("anon:bob@example.com:", False),
        ("alice:m1", False),
    ])
    def test_shapes(self, pick_id, expected):
        assert is_anonymous_pick_id(pick_id) is expected


class TestMatchupPickStats:

    @pytest.mark.asyncio
    async def test_counts_both_channels(
        self, pick_service, publish_matchup, submit_pick, submit_anonymous_pick
    ):
        # Setup
        await publish_matchup("m1")
        await submit_pick("alice", "m1", "home", is_lock=True)
        await submit_pick("bob", "m1", "home")
        await submit_pick("carol", "m1", "away")
        await submit_anonymous_pick("dave@example.com", "m1", "away", is_lock=True)
        await submit_anonymous_pick("erin@example.com", "m1", "away")
        await pick_service.set_pick_visibility("anon:erin@example.com:m1", False)

        # Act
        stats = await pick_service.get_matchup_pick_stats("m1")

        # Assert - hidden picks are left out
        assert stats.matchup_id == "m1"
        assert (stats.home_picks, stats.home_locks) == (1, 1)
        assert (stats.away_picks, stats.away_locks) == (1, 1)
        assert stats.total_picks == 4

    @pytest.mark.asyncio
    async def test_follows_replaced_and_removed_picks(
        self, pick_service, publish_matchup, submit_pick
    ):
        await publish_matchup("m1")
        await submit_pick("alice", "m1", "home")
        await submit_pick("bob", "m1", "home")

        await submit_pick("alice", "m1", "away", is_lock=True)
        await pick_service.remove_pick("bob:m1")

        stats = await pick_service.get_matchup_pick_stats("m1")
        assert (stats.home_picks, stats.away_locks, stats.total_picks) == (0, 1, 1)

    @pytest.mark.asyncio
    async def test_missing_matchup(self, pick_service):
        with pytest.raises(MatchupNotFoundError):
            await pick_service.get_matchup_pick_stats("nope")

    def test_no_picks(self):
        assert count_matchup_picks("m1", []) == MatchupPickStats(matchup_id="m1")
