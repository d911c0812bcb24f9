"""
PrecedenceResolver - Decides which pick set counts for a (user, week).

A user can end up with two parallel pick sets for the same week: their
authenticated picks and an anonymous set that was claimed later (or more
than one anonymous set, one per email). Only one set may ever count.

- One candidate set: it counts (no_conflict).
- Several: an admin preference decides, week-specific first, then the
  season-wide one. No preference, or a preference that names a set the user
  doesn't have, leaves the week unresolved and nothing counts until an admin
  picks. Sets are never merged.

Read-only: nothing here writes to the database.
"""

from typing import Optional, Union

from motor.motor_asyncio import AsyncIOMotorDatabase

from pickem.models.pick import (
    ANONYMOUS_PICK_SET_PREFIX,
    AUTHENTICATED_PICK_SET,
    AnonymousPick,
    Pick,
)
from pickem.models.precedence import (
    ANONYMOUS_CHANNEL,
    PickSetPreference,
    PrecedenceResolution,
    PrecedenceState,
)
from pickem.repositories.anonymous_pick_repository import AnonymousPickRepository
from pickem.repositories.pick_repository import PickRepository
from pickem.repositories.precedence_repository import PrecedenceRepository


AnyPick = Union[Pick, AnonymousPick]


def group_pick_sets(picks: list[AnyPick]) -> dict[str, list[AnyPick]]:
    """Group a user's picks for one week by pick set id ("auth" first)."""
    sets: dict[str, list[AnyPick]] = {}
    for pick in picks:
        sets.setdefault(pick.pick_set_id, []).append(pick)

    return dict(
        sorted(sets.items(), key=lambda item: (item[0] != AUTHENTICATED_PICK_SET, item[0]))
    )


def choose_active_set(
    candidates: list[str],
    preference: Optional[PickSetPreference]
) -> Optional[str]:
    """
    Active pick set for a week with several candidates, or None if unresolved.

    The channel-wide "anonymous" preference only resolves when exactly one
    anonymous set exists.
    """
    if preference is None:
        return None

    if preference.pick_set_id == ANONYMOUS_CHANNEL:
        anonymous_sets = [c for c in candidates if c.startswith(ANONYMOUS_PICK_SET_PREFIX)]
        return anonymous_sets[0] if len(anonymous_sets) == 1 else None

    if preference.pick_set_id in candidates:
        return preference.pick_set_id

    return None


def state_for(active_pick_set_id: Optional[str], candidates: list[str]) -> PrecedenceState:
    if len(candidates) <= 1:
        return PrecedenceState.NO_CONFLICT
    if active_pick_set_id is None:
        return PrecedenceState.UNRESOLVED
    if active_pick_set_id == AUTHENTICATED_PICK_SET:
        return PrecedenceState.AUTHENTICATED_ACTIVE
    return PrecedenceState.ANONYMOUS_ACTIVE


class PrecedenceResolver:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.pick_repo = PickRepository(db)
        self.anonymous_repo = AnonymousPickRepository(db)
        self.preference_repo = PrecedenceRepository(db)

    async def resolve(self, user_id: str, season: int, week: int) -> PrecedenceResolution:
        """
        Resolve which pick set counts for a user in one week.

        eligible_picks is the active set filtered by each pick's visibility;
        it is empty when the week is unresolved.
        """
        picks = await self.pick_repo.get_for_user_period(user_id, season, week)
        claimed = await self.anonymous_repo.get_claimed_for_user_period(user_id, season, week)

        sets = group_pick_sets([*picks, *claimed])
        candidates = list(sets.keys())

        preference = None
        if len(candidates) > 1:
            preference = await self.preference_repo.get_effective(user_id, season, week)
            active = choose_active_set(candidates, preference)
        else:
            active = candidates[0] if candidates else None

        eligible = sets.get(active, []) if active else []

        return PrecedenceResolution(
            user_id=user_id,
            season=season,
            week=week,
            state=state_for(active, candidates),
            active_pick_set_id=active,
            candidate_pick_set_ids=candidates,
            preference=preference,
            eligible_picks=[p for p in eligible if p.visible],
        )
