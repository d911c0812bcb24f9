"""
PrecedenceService - Admin decisions about which pick set counts.

Writes preferences and refreshes the standings they affect. Resolution
itself is in precedence_resolver.py.
"""

import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from pickem.core.config import Settings, get_settings
from pickem.models.pick import (
    ANONYMOUS_PICK_SET_PREFIX,
    AUTHENTICATED_PICK_SET,
    anonymous_pick_set_id,
    normalize_email,
)
from pickem.models.precedence import (
    ANONYMOUS_CHANNEL,
    PickSetPreference,
    PrecedenceRequest,
    PrecedenceResolution,
)
from pickem.repositories.anonymous_pick_repository import AnonymousPickRepository
from pickem.repositories.precedence_repository import PrecedenceRepository
from pickem.services.precedence_resolver import PrecedenceResolver
from pickem.services.recompute_queue import RecomputeQueue

logger = logging.getLogger(__name__)


class PrecedenceServiceError(Exception):
    """Base exception for precedence service errors."""
    pass


class InvalidPrecedenceError(PrecedenceServiceError):
    """Raised when a preference names something that isn't a pick set."""
    pass


class PreferenceNotFoundError(PrecedenceServiceError):
    """Raised when there is no preference to clear."""
    pass


def normalize_pick_set_id(pick_set_id: str) -> str:
    """
    Validate a preference target: "auth", "anonymous" or "anon:{email}".

    The email part is normalized the same way submissions are.
    """
    value = pick_set_id.strip()
    if value in (AUTHENTICATED_PICK_SET, ANONYMOUS_CHANNEL):
        return value

    if value.startswith(ANONYMOUS_PICK_SET_PREFIX):
        email = normalize_email(value[len(ANONYMOUS_PICK_SET_PREFIX):])
        if "@" in email:
            return anonymous_pick_set_id(email)

    raise InvalidPrecedenceError(
        f"Invalid pick set '{pick_set_id}'; expected 'auth', 'anonymous' or 'anon:<email>'"
    )


class PrecedenceService:
    def __init__(self, db: AsyncIOMotorDatabase, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.resolver = PrecedenceResolver(db)
        self.preference_repo = PrecedenceRepository(db)
        self.anonymous_repo = AnonymousPickRepository(db)
        self.queue = RecomputeQueue(db, self.settings)

    async def resolve(self, user_id: str, season: int, week: int) -> PrecedenceResolution:
        return await self.resolver.resolve(user_id, season, week)

    async def _queue_affected(self, user_id: str, season: int, week: Optional[int]) -> None:
        if week is not None:
            self.queue.add(user_id, season, week)
            return

        for affected_week in await self.queue.aggregates.get_user_weeks(user_id, season):
            self.queue.add(user_id, season, affected_week)

    async def set_precedence(self, request: PrecedenceRequest) -> tuple[PickSetPreference, bool]:
        """
        Store which pick set counts for a user's week (or whole season).

        Returns (preference, aggregates_stale).
        """
        pick_set_id = normalize_pick_set_id(request.pick_set_id)

        preference = await self.preference_repo.upsert(
            user_id=request.user_id,
            season=request.season,
            week=request.week,
            pick_set_id=pick_set_id,
            set_by=request.set_by,
            reasoning=request.reasoning,
        )

        scope = "season" if request.week is None else f"week {request.week}"
        logger.info(
            f"Precedence for {request.user_id} season {request.season} {scope} -> {pick_set_id}"
        )

        await self._queue_affected(request.user_id, request.season, request.week)
        return preference, await self.queue.flush()

    async def clear_precedence(self, user_id: str, season: int, week: Optional[int] = None) -> bool:
        """Remove a preference; conflicting weeks go back to unresolved. Returns aggregates_stale."""
        if not await self.preference_repo.delete(user_id, season, week):
            raise PreferenceNotFoundError(
                f"No precedence set for {user_id} season {season} week {week}"
            )

        await self._queue_affected(user_id, season, week)
        return await self.queue.flush()

    async def list_preferences(self, season: int) -> list[PickSetPreference]:
        return await self.preference_repo.get_for_season(season)

    async def find_conflicts(
        self,
        season: int,
        week: Optional[int] = None,
        unresolved_only: bool = False
    ) -> list[PrecedenceResolution]:
        """
        Every (user, week) with more than one pick set, for admins to decide.

        A conflict needs at least one claimed anonymous set, so the scan
        starts from claimed anonymous picks.
        """
        claimed = await self.anonymous_repo.get_for_scope(season, week, claimed=True)
        targets = sorted({(p.assigned_user_id, p.week) for p in claimed})

        conflicts = []
        for user_id, target_week in targets:
            resolution = await self.resolver.resolve(user_id, season, target_week)
            if not resolution.has_conflict:
                continue
            if unresolved_only and not resolution.is_unresolved:
                continue
            conflicts.append(resolution)

        return conflicts
