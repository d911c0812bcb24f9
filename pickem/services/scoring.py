"""
Scoring rules for spread picks.

Pure functions only: the same inputs always give the same grade, which is
what makes regrading safe to repeat as often as anything likes.

Points:
- Win: 20 base + bonus tier of the matchup (bonus doubled on a lock)
- Push: 10 base, never a bonus
- Loss: 0

Bonus tiers by cover margin: 29+ -> 5, 20+ -> 3, 11+ -> 1, otherwise 0.
"""

from typing import Optional

from pickem.models.matchup import CoveringSide, Matchup, MatchupGrade, MatchupStatus
from pickem.models.pick import PickGrade, PickOutcome

PUSH_TOLERANCE = 0.5

WIN_POINTS = 20
PUSH_POINTS = 10
LOSS_POINTS = 0

# (minimum cover margin, bonus), highest first
BONUS_TIERS = (
    (29, 5),
    (20, 3),
    (11, 1),
)

LOCK_BONUS_MULTIPLIER = 2


def bonus_tier_for_margin(margin: float) -> int:
    margin = abs(margin)
    for minimum, bonus in BONUS_TIERS:
        if margin >= minimum:
            return bonus
    return 0


def resolve_spread(
    home_score: Optional[int],
    away_score: Optional[int],
    spread: float
) -> Optional[MatchupGrade]:
    """
    Grade a final score against the spread.

    ``spread`` is relative to the home side (-7 means home gives 7).
    Returns None when either score is missing.
    """
    if home_score is None or away_score is None:
        return None

    adjusted_margin = (home_score - away_score) + spread

    if abs(adjusted_margin) < PUSH_TOLERANCE:
        return MatchupGrade(
            covering_side=CoveringSide.PUSH,
            bonus_tier=0,
            adjusted_margin=adjusted_margin,
        )

    covering_side = CoveringSide.HOME if adjusted_margin > 0 else CoveringSide.AWAY

    return MatchupGrade(
        covering_side=covering_side,
        bonus_tier=bonus_tier_for_margin(adjusted_margin),
        adjusted_margin=adjusted_margin,
    )


def grade_matchup(matchup: Matchup) -> Optional[MatchupGrade]:
    """Grade of a matchup from its current source fields; None unless completed."""
    if matchup.status != MatchupStatus.COMPLETED:
        return None
    return resolve_spread(matchup.home_score, matchup.away_score, matchup.spread)


def grade_pick(
    selected_side: str,
    is_lock: bool,
    grade: Optional[MatchupGrade]
) -> PickGrade:
    """Outcome and points for one pick given its matchup's grade."""
    if grade is None:
        return PickGrade()

    if grade.covering_side == CoveringSide.PUSH:
        return PickGrade(
            outcome=PickOutcome.PUSH,
            base_points=PUSH_POINTS,
            bonus_points=0,
            points=PUSH_POINTS,
        )

    if selected_side == grade.covering_side:
        bonus = grade.bonus_tier
        if is_lock:
            bonus *= LOCK_BONUS_MULTIPLIER
        return PickGrade(
            outcome=PickOutcome.WIN,
            base_points=WIN_POINTS,
            bonus_points=bonus,
            points=WIN_POINTS + bonus,
        )

    return PickGrade(
        outcome=PickOutcome.LOSS,
        base_points=LOSS_POINTS,
        bonus_points=0,
        points=LOSS_POINTS,
    )
