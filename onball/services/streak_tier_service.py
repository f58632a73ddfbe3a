"""
onball/services/streak_tier_service.py
Win-Streak & Tier Engine

Derives per-player stats, streaks and achievement tiers from the
leaderboard and the match history. Nothing here is persisted.

Categories:
- gamesPlayed: wins + losses
- wins
- mvps
- winStreaks: tier earned by the longest streak; displayed value and
  progress use the current streak
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from onball.schemas.league import Leaderboard, MatchRecord

logger = logging.getLogger(__name__)


TIER_NAMES: Tuple[str, ...] = ("bronze", "silver", "gold", "amethyst")

CATEGORIES: Tuple[str, ...] = ("gamesPlayed", "wins", "mvps", "winStreaks")


@dataclass
class TierTable:
    """Strictly increasing thresholds per category, one per tier."""
    thresholds: Dict[str, Tuple[int, int, int, int]] = field(default_factory=dict)

    def __post_init__(self):
        for category, values in self.thresholds.items():
            if len(values) != len(TIER_NAMES):
                raise ValueError(f"{category}: expected {len(TIER_NAMES)} thresholds, got {len(values)}")
            if any(later <= earlier for earlier, later in zip(values, values[1:])):
                raise ValueError(f"{category}: thresholds must be strictly increasing")

    def for_category(self, category: str) -> Tuple[int, int, int, int]:
        return self.thresholds[category]


DEFAULT_TIER_TABLE = TierTable({
    "gamesPlayed": (50, 100, 200, 500),
    "wins": (25, 50, 100, 250),
    "mvps": (10, 25, 50, 100),
    "winStreaks": (5, 10, 15, 25),
})


@dataclass
class TierResult:
    value: int
    tier: Optional[str]
    progress: float
    next_tier: Optional[str]
    next_threshold: Optional[int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "tier": self.tier,
            "progress": self.progress,
            "nextTier": self.next_tier,
            "nextThreshold": self.next_threshold,
        }


@dataclass
class PlayerStats:
    name: str
    wins: int = 0
    losses: int = 0
    mvps: int = 0
    longest_streak: int = 0
    current_streak: int = 0

    @property
    def games_played(self) -> int:
        return self.wins + self.losses

    @property
    def win_percentage(self) -> float:
        if self.games_played == 0:
            return 0.0
        return round(self.wins / self.games_played * 100, 1)

    def category_value(self, category: str) -> int:
        return {
            "gamesPlayed": self.games_played,
            "wins": self.wins,
            "mvps": self.mvps,
            "winStreaks": self.longest_streak,
        }[category]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "gamesPlayed": self.games_played,
            "wins": self.wins,
            "losses": self.losses,
            "mvps": self.mvps,
            "winPercentage": self.win_percentage,
            "longestStreak": self.longest_streak,
            "currentStreak": self.current_streak,
        }


# =============================================================================
# Streaks
# =============================================================================

def _played_matches(name: str, history: Iterable[MatchRecord]) -> List[MatchRecord]:
    """Active, scored matches the player took part in, oldest first."""
    matches = [
        match for match in history
        if match.is_active and match.is_scored and match.side_of(name) is not None
    ]
    # Stable: undated rows keep their stored order ahead of dated ones
    matches.sort(key=lambda match: (match.played_at is not None, match.played_at or 0))
    return matches


def longest_streak(name: str, history: Iterable[MatchRecord]) -> int:
    """Longest run of consecutive wins. A loss or a tie resets the run."""
    longest = current = 0
    for match in _played_matches(name, history):
        if match.won(name):
            current += 1
            longest = max(longest, current)
        else:
            current = 0
    return longest


def current_streak(name: str, history: Iterable[MatchRecord]) -> int:
    """Consecutive wins counting back from the newest match."""
    streak = 0
    for match in reversed(_played_matches(name, history)):
        if not match.won(name):
            break
        streak += 1
    return streak


# =============================================================================
# Tiers
# =============================================================================

def evaluate_tier(value: int, thresholds: Tuple[int, ...], progress_value: Optional[int] = None) -> TierResult:
    """
    Highest tier whose threshold is <= value. Progress is measured toward
    the next tier; `progress_value` overrides the value used for it.
    """
    earned = None
    next_index = 0
    for index, threshold in enumerate(thresholds):
        if value >= threshold:
            earned = TIER_NAMES[index]
            next_index = index + 1

    measured = value if progress_value is None else progress_value
    if next_index >= len(thresholds):
        return TierResult(measured, earned, 100.0, None, None)

    next_threshold = thresholds[next_index]
    progress = min(measured / next_threshold, 1.0) * 100
    return TierResult(measured, earned, progress, TIER_NAMES[next_index], next_threshold)


def player_stats(name: str, leaderboard: Leaderboard, history: List[MatchRecord]) -> PlayerStats:
    entry = leaderboard.get(name)
    stats = PlayerStats(name=entry.name if entry else name)
    if entry is not None:
        stats.wins, stats.losses, stats.mvps = entry.counts()
    if history:
        stats.longest_streak = longest_streak(name, history)
        stats.current_streak = current_streak(name, history)
    return stats


def badge_progress(stats: PlayerStats, table: TierTable = DEFAULT_TIER_TABLE) -> Dict[str, TierResult]:
    """Each category evaluated independently."""
    results = {}
    for category in CATEGORIES:
        thresholds = table.for_category(category)
        if category == "winStreaks":
            results[category] = evaluate_tier(
                stats.longest_streak, thresholds, progress_value=stats.current_streak
            )
        else:
            results[category] = evaluate_tier(stats.category_value(category), thresholds)
    return results


def player_badges(stats: PlayerStats, table: TierTable = DEFAULT_TIER_TABLE) -> Dict[str, str]:
    """Earned tier per category; categories with no tier are omitted."""
    return {
        category: result.tier
        for category, result in badge_progress(stats, table).items()
        if result.tier is not None
    }
