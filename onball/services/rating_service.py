"""
onball/services/rating_service.py
Player rating store: submissions, attribute averages and weighted rating

RATING_WEIGHTINGS is the single source of truth for the weighted rating;
the team partitioner and the remote team service use the same weights.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Mapping, Optional

from onball.schemas.league import (
    ATTRIBUTES,
    DEFAULT_ATTRIBUTE_VALUE,
    Player,
    Submission,
    canonical_key,
)

logger = logging.getLogger(__name__)


RATING_WEIGHTINGS: Dict[str, float] = {
    "scoring": 0.30,
    "defense": 0.15,
    "rebounding": 0.15,
    "playmaking": 0.10,
    "stamina": 0.10,
    "physicality": 0.15,
    "xfactor": 0.05,
}

DEFAULT_RATING_VALUES: Dict[str, float] = {attribute: DEFAULT_ATTRIBUTE_VALUE for attribute in ATTRIBUTES}

RATING_PRECISION = 2

# Per-submission ratings are kept finer before averaging
INTERMEDIATE_PRECISION = 4


def round_half_up(value: float, precision: int = RATING_PRECISION) -> float:
    quantum = Decimal(1).scaleb(-precision)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def attribute_value(stats: Any, attribute: str) -> float:
    if isinstance(stats, Mapping):
        raw = stats.get(attribute)
    else:
        raw = getattr(stats, attribute, None)
    return DEFAULT_RATING_VALUES[attribute] if raw is None else float(raw)


def weighted_rating(stats: Any, precision: int = RATING_PRECISION) -> float:
    """Weighted sum of the seven attributes; missing values default to 5."""
    total = sum(attribute_value(stats, attribute) * weight for attribute, weight in RATING_WEIGHTINGS.items())
    return round_half_up(total, precision)


def rating_from_submissions(submissions: List[Submission]) -> float:
    if not submissions:
        return weighted_rating(DEFAULT_RATING_VALUES)
    total = sum(weighted_rating(submission, INTERMEDIATE_PRECISION) for submission in submissions)
    return round_half_up(total / len(submissions))


def average_attributes(submissions: List[Submission]) -> Dict[str, float]:
    if not submissions:
        return dict(DEFAULT_RATING_VALUES)
    count = len(submissions)
    return {
        attribute: round_half_up(sum(attribute_value(s, attribute) for s in submissions) / count)
        for attribute in ATTRIBUTES
    }


def recompute_player(player: Player) -> Player:
    """Refresh attributes and rating from the live submissions (in place)."""
    for attribute, value in average_attributes(player.submissions).items():
        setattr(player, attribute, value)
    player.rating = rating_from_submissions(player.submissions)
    return player


# =============================================================================
# Submissions
# =============================================================================

def upsert_submission(player: Player, submission: Submission) -> bool:
    """
    Add a reviewer's submission, replacing their previous one.

    Returns True if an earlier submission was replaced.
    """
    remaining = [s for s in player.submissions if s.reviewer_id != submission.reviewer_id]
    replaced = len(remaining) < len(player.submissions)
    player.submissions = remaining + [submission]
    recompute_player(player)
    return replaced


def remove_submission(player: Player, reviewer_id: str) -> bool:
    remaining = [s for s in player.submissions if s.reviewer_id != reviewer_id]
    if len(remaining) == len(player.submissions):
        return False
    player.submissions = remaining
    recompute_player(player)
    return True


# =============================================================================
# Roster helpers
# =============================================================================

def find_player(players: List[Player], name: str) -> Optional[Player]:
    key = canonical_key(name)
    for player in players:
        if player.key == key:
            return player
    return None


def remove_player(players: List[Player], name: str) -> Optional[Player]:
    key = canonical_key(name)
    for index, player in enumerate(players):
        if player.key == key:
            return players.pop(index)
    return None


def new_player(name: str, submission: Optional[Submission] = None) -> Player:
    player = Player(name=name)
    if submission is not None:
        player.submissions = [submission]
    return recompute_player(player)
