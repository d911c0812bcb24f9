"""
PickService - Business logic for picks.

Handles submission rules for both channels (authenticated and anonymous),
visibility, and claiming anonymous picks. Scoring lives in
services/scoring.py; this service only queues the aggregates it affects.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Union

from motor.motor_asyncio import AsyncIOMotorDatabase

from pickem.core.config import Settings, get_settings
from pickem.models.matchup import Matchup, MatchupPickStats, MatchupStatus
from pickem.models.pick import (
    AnonymousPick,
    AnonymousPickCreate,
    Pick,
    PickCreate,
    ValidationState,
    is_anonymous_pick_id,
    normalize_email,
)
from pickem.repositories.anonymous_pick_repository import AnonymousPickRepository
from pickem.repositories.matchup_repository import MatchupRepository
from pickem.repositories.pick_repository import PickRepository
from pickem.services.recompute_queue import RecomputeQueue

logger = logging.getLogger(__name__)


class PickServiceError(Exception):
    """Base exception for pick service errors."""
    pass


class PickLockedError(PickServiceError):
    """Raised when the matchup is no longer open for picks."""
    pass


class MatchupNotFoundError(PickServiceError):
    """Raised when matchup is not found."""
    pass


class PickNotFoundError(PickServiceError):
    """Raised when pick is not found."""
    pass


class InvalidPickError(PickServiceError):
    """Raised when pick data is invalid."""
    pass


class TooManyPicksError(InvalidPickError):
    """Raised when a submission would exceed the weekly pick limit."""
    pass


class DuplicateLockError(InvalidPickError):
    """Raised when a second lock is submitted for the same week."""
    pass


class InvalidClaimError(PickServiceError):
    """Raised when a claim request is invalid."""
    pass


class ClaimConflictError(PickServiceError):
    """Raised when an anonymous pick is already claimed by another user."""
    pass


def is_open_for_picks(matchup: Matchup, now: Optional[datetime] = None) -> bool:
    """A matchup takes picks while scheduled and before kickoff."""
    if matchup.status != MatchupStatus.SCHEDULED:
        return False

    if matchup.kickoff_time is None:
        return True

    kickoff = matchup.kickoff_time
    if kickoff.tzinfo is None:
        # Mongo devuelve datetimes naive en UTC
        kickoff = kickoff.replace(tzinfo=timezone.utc)

    return (now or datetime.now(timezone.utc)) < kickoff


def count_matchup_picks(matchup_id: str, picks: list[Union[Pick, AnonymousPick]]) -> MatchupPickStats:
    """Home/away picks and locks over the visible picks of both channels."""
    counts = {"home_picks": 0, "home_locks": 0, "away_picks": 0, "away_locks": 0}

    for pick in picks:
        if not pick.visible:
            continue
        kind = "locks" if pick.is_lock else "picks"
        counts[f"{pick.selected_side}_{kind}"] += 1

    return MatchupPickStats(matchup_id=matchup_id, total_picks=sum(counts.values()), **counts)


class PickService:
    def __init__(self, db: AsyncIOMotorDatabase, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.pick_repo = PickRepository(db)
        self.anonymous_repo = AnonymousPickRepository(db)
        self.matchup_repo = MatchupRepository(db)
        self.queue = RecomputeQueue(db, self.settings)

    async def _get_open_matchup(self, matchup_id: str) -> Matchup:
        matchup = await self.matchup_repo.get_by_id(matchup_id)
        if not matchup:
            raise MatchupNotFoundError(f"Matchup {matchup_id} not found")

        if not is_open_for_picks(matchup):
            raise PickLockedError(f"Matchup {matchup_id} is locked for picks")

        return matchup

    def _validate_week_picks(
        self,
        existing: list[Union[Pick, AnonymousPick]],
        matchup_id: str,
        is_lock: bool
    ) -> None:
        """
        Weekly limits, checked against the owner's other picks that week.

        Replacing the pick for the same matchup doesn't count twice.
        """
        others = [p for p in existing if p.matchup_id != matchup_id]

        limit = self.settings.max_picks_per_week
        if len(others) + 1 > limit:
            raise TooManyPicksError(f"At most {limit} picks per week")

        if is_lock and any(p.is_lock for p in others):
            raise DuplicateLockError("Only one lock per week is allowed")

    # ============================================
    # Submission
    # ============================================

    async def submit_pick(self, pick_data: PickCreate) -> tuple[Pick, bool]:
        """
        Create or replace an authenticated pick.

        Validates:
        - Matchup exists
        - Matchup is still open (scheduled, kickoff not passed)
        - At most max_picks_per_week picks and one lock per week

        Returns (pick, aggregates_stale).
        """
        matchup = await self._get_open_matchup(pick_data.matchup_id)

        existing = await self.pick_repo.get_for_user_period(
            pick_data.user_id, matchup.season, matchup.week
        )
        self._validate_week_picks(existing, matchup.id, pick_data.is_lock)

        pick = await self.pick_repo.upsert(
            user_id=pick_data.user_id,
            matchup_id=matchup.id,
            season=matchup.season,
            week=matchup.week,
            selected_side=pick_data.selected_side.value,
            is_lock=pick_data.is_lock,
        )

        self.queue.add(pick.user_id, pick.season, pick.week)
        return pick, await self.queue.flush()

    async def submit_anonymous_pick(self, pick_data: AnonymousPickCreate) -> tuple[AnonymousPick, bool]:
        """
        Create or replace an anonymous pick.

        Same rules as authenticated picks, counted per email. If the email's
        set for that week is already claimed, the claimant's aggregates follow.
        """
        email = normalize_email(pick_data.email)
        if "@" not in email:
            raise InvalidPickError(f"Invalid email: {pick_data.email}")

        matchup = await self._get_open_matchup(pick_data.matchup_id)

        existing = await self.anonymous_repo.get_for_email_period(
            email, matchup.season, matchup.week
        )
        self._validate_week_picks(existing, matchup.id, pick_data.is_lock)

        pick = await self.anonymous_repo.upsert(
            email=email,
            name=pick_data.name,
            matchup_id=matchup.id,
            season=matchup.season,
            week=matchup.week,
            selected_side=pick_data.selected_side.value,
            is_lock=pick_data.is_lock,
        )

        for other in existing:
            self.queue.add(other.assigned_user_id, other.season, other.week)
        self.queue.add(pick.assigned_user_id, pick.season, pick.week)

        return pick, await self.queue.flush()

    async def remove_pick(self, pick_id: str) -> bool:
        """Delete a pick of either channel while its matchup is open. Returns aggregates_stale."""
        pick = await self.get_pick(pick_id)
        if not pick:
            raise PickNotFoundError(f"Pick {pick_id} not found")

        await self._get_open_matchup(pick.matchup_id)

        if isinstance(pick, AnonymousPick):
            await self.anonymous_repo.delete(pick_id)
        else:
            await self.pick_repo.delete(pick_id)

        self.queue.add(pick.owner_id, pick.season, pick.week)
        return await self.queue.flush()

    # ============================================
    # Reads
    # ============================================

    async def get_pick(self, pick_id: str) -> Optional[Union[Pick, AnonymousPick]]:
        if is_anonymous_pick_id(pick_id):
            return await self.anonymous_repo.get_by_id(pick_id)
        return await self.pick_repo.get_by_id(pick_id)

    async def list_picks_for_matchup(self, matchup_id: str) -> list[Union[Pick, AnonymousPick]]:
        """Every pick referencing a matchup, both channels."""
        picks = await self.pick_repo.get_for_matchup(matchup_id)
        anonymous = await self.anonymous_repo.get_for_matchup(matchup_id)
        return [*picks, *anonymous]

    async def get_matchup_pick_stats(self, matchup_id: str) -> MatchupPickStats:
        """How the field picked a matchup, recomputed from its picks on every call."""
        if not await self.matchup_repo.get_by_id(matchup_id):
            raise MatchupNotFoundError(f"Matchup {matchup_id} not found")

        return count_matchup_picks(matchup_id, await self.list_picks_for_matchup(matchup_id))

    async def list_picks_for_user_period(
        self,
        user_id: str,
        season: int,
        week: int
    ) -> list[Union[Pick, AnonymousPick]]:
        """A user's authenticated picks plus the anonymous picks they claimed."""
        picks = await self.pick_repo.get_for_user_period(user_id, season, week)
        claimed = await self.anonymous_repo.get_claimed_for_user_period(user_id, season, week)
        return [*picks, *claimed]

    async def list_anonymous_picks(
        self,
        season: int,
        week: Optional[int] = None,
        email: Optional[str] = None,
        claimed: Optional[bool] = None
    ) -> list[AnonymousPick]:
        if email and week is not None:
            picks = await self.anonymous_repo.get_for_email_period(
                normalize_email(email), season, week
            )
            if claimed is None:
                return picks
            return [p for p in picks if (p.assigned_user_id is not None) == claimed]

        picks = await self.anonymous_repo.get_for_scope(season, week, claimed)
        if email:
            picks = [p for p in picks if p.email == normalize_email(email)]
        return picks

    # ============================================
    # Visibility
    # ============================================

    async def set_pick_visibility(
        self,
        pick_id: str,
        visible: bool
    ) -> tuple[Union[Pick, AnonymousPick], bool]:
        """Include or exclude a pick from leaderboards. Returns (pick, aggregates_stale)."""
        if is_anonymous_pick_id(pick_id):
            pick = await self.anonymous_repo.set_visibility(pick_id, visible)
        else:
            pick = await self.pick_repo.set_visibility(pick_id, visible)

        if not pick:
            raise PickNotFoundError(f"Pick {pick_id} not found")

        self.queue.add(pick.owner_id, pick.season, pick.week)
        return pick, await self.queue.flush()

    # ============================================
    # Claims
    # ============================================

    def _check_claim(
        self,
        pick: AnonymousPick,
        user_id: str,
        validation_state: ValidationState,
        reassign: bool
    ) -> None:
        if validation_state == ValidationState.UNVALIDATED:
            raise InvalidClaimError("A claim needs an auto or manual validation")

        if pick.assigned_user_id and pick.assigned_user_id != user_id and not reassign:
            raise ClaimConflictError(
                f"Pick {pick.id} is already claimed by {pick.assigned_user_id}"
            )

    async def claim_anonymous_pick(
        self,
        anonymous_pick_id: str,
        user_id: str,
        validation_state: ValidationState = ValidationState.MANUALLY_VALIDATED,
        reassign: bool = False
    ) -> tuple[AnonymousPick, bool]:
        """
        Assign an anonymous pick to a user.

        Claiming again for the same user is a no-op. Moving a claim to another
        user needs reassign=True; both users' aggregates are recomputed.
        """
        validation_state = ValidationState(validation_state)
        pick = await self.anonymous_repo.get_by_id(anonymous_pick_id)
        if not pick:
            raise PickNotFoundError(f"Anonymous pick {anonymous_pick_id} not found")

        self._check_claim(pick, user_id, validation_state, reassign)

        if pick.assigned_user_id == user_id and pick.validation_state == validation_state:
            return pick, False

        previous_user = pick.assigned_user_id
        claimed = await self.anonymous_repo.assign(pick.id, user_id, validation_state.value)

        logger.info(f"Anonymous pick {pick.id} claimed by {user_id} (was {previous_user})")

        self.queue.add(previous_user, pick.season, pick.week)
        self.queue.add(user_id, pick.season, pick.week)
        return claimed, await self.queue.flush()

    async def claim_anonymous_pick_set(
        self,
        email: str,
        season: int,
        week: int,
        user_id: str,
        validation_state: ValidationState = ValidationState.MANUALLY_VALIDATED,
        reassign: bool = False
    ) -> tuple[list[AnonymousPick], bool]:
        """Claim every anonymous pick an email submitted for one week."""
        validation_state = ValidationState(validation_state)
        email = normalize_email(email)
        picks = await self.anonymous_repo.get_for_email_period(email, season, week)
        if not picks:
            raise PickNotFoundError(f"No anonymous picks for {email} in week {week}")

        # Validate everything before writing anything
        for pick in picks:
            self._check_claim(pick, user_id, validation_state, reassign)

        claimed = []
        changed = False
        for pick in picks:
            if pick.assigned_user_id == user_id and pick.validation_state == validation_state:
                claimed.append(pick)
                continue
            changed = True
            self.queue.add(pick.assigned_user_id, season, week)
            claimed.append(
                await self.anonymous_repo.assign(pick.id, user_id, validation_state.value)
            )

        if not changed:
            return claimed, False

        logger.info(f"Anonymous set {email} week {week} claimed by {user_id}")
        self.queue.add(user_id, season, week)
        return claimed, await self.queue.flush()
