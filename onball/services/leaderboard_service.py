"""
onball/services/leaderboard_service.py
Leaderboard Aggregator

Maintains per-player win/loss/MVP counters incrementally on the write
path, and can rebuild them from scratch as a pure fold over the Active
match history.

Guarantees:
- A processed match is never counted twice
- Counters never go below zero
- A voided match contributes nothing to full_recompute
- Ties credit no win or loss, but the MVP is still credited
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from onball.exceptions import ValidationError
from onball.schemas.league import Leaderboard, MatchRecord, canonical_key

logger = logging.getLogger(__name__)


# =============================================================================
# Incremental updates
# =============================================================================

def _apply(leaderboard: Leaderboard, match: MatchRecord) -> None:
    decided = match.decided_rosters()
    if decided is not None:
        winners, losers = decided
        for name in winners:
            leaderboard.touch(name).wins += 1
        for name in losers:
            leaderboard.touch(name).losses += 1
    if match.mvp:
        leaderboard.touch(match.mvp).mvps += 1


def record_match(leaderboard: Leaderboard, match: MatchRecord) -> bool:
    """
    Credit a completed match to the leaderboard.

    Returns False (and changes nothing) if the match was already processed.

    Raises:
        ValidationError: if either score is missing
    """
    if not match.is_scored:
        raise ValidationError(
            "Both scores are required to record a match",
            details={"matchId": match.id, "score": {"a": match.score.a, "b": match.score.b}},
        )
    if match.processed:
        logger.debug(f"Match {match.id} already processed; skipping")
        return False

    _apply(leaderboard, match)
    match.processed = True
    return True


def reverse_match(leaderboard: Leaderboard, match: MatchRecord) -> None:
    """
    Undo the counters a match credited, re-deriving winners, losers and
    MVP from the match's own score. Works regardless of lifecycle.
    Players missing from the leaderboard are skipped.
    """
    decided = match.decided_rosters()
    if decided is not None:
        winners, losers = decided
        for name in winners:
            entry = leaderboard.get(name)
            if entry is not None:
                entry.wins = max(0, entry.wins - 1)
        for name in losers:
            entry = leaderboard.get(name)
            if entry is not None:
                entry.losses = max(0, entry.losses - 1)
    if match.mvp:
        entry = leaderboard.get(match.mvp)
        if entry is not None:
            entry.mvps = max(0, entry.mvps - 1)


def full_recompute(history: Iterable[MatchRecord]) -> Leaderboard:
    """Pure fold over Active matches that have both scores."""
    leaderboard = Leaderboard()
    skipped = 0
    for match in history:
        if not match.is_active:
            continue
        if not match.is_scored:
            skipped += 1
            continue
        _apply(leaderboard, match)
    if skipped:
        logger.debug(f"full_recompute skipped {skipped} unscored matches")
    return leaderboard


# =============================================================================
# Reconciliation
# =============================================================================

@dataclass
class PlayerDiscrepancy:
    """Cached vs. recomputed counters for one player."""
    name: str
    cached: Tuple[int, int, int]
    expected: Tuple[int, int, int]

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "cached": dict(zip(("wins", "losses", "mvps"), self.cached)),
            "expected": dict(zip(("wins", "losses", "mvps"), self.expected)),
        }


@dataclass
class ReconciliationReport:
    expected: Leaderboard
    discrepancies: List[PlayerDiscrepancy] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.discrepancies


def reconcile(cached: Leaderboard, history: Iterable[MatchRecord]) -> ReconciliationReport:
    """Compare the cached leaderboard with a full recompute of the history."""
    expected = full_recompute(history)
    report = ReconciliationReport(expected=expected)

    names: Dict[str, str] = {}
    for entry in list(cached) + list(expected):
        names.setdefault(canonical_key(entry.name), entry.name)

    for key, display in sorted(names.items()):
        cached_entry = cached.get(key)
        expected_entry = expected.get(key)
        cached_counts = cached_entry.counts() if cached_entry else (0, 0, 0)
        expected_counts = expected_entry.counts() if expected_entry else (0, 0, 0)
        if cached_counts != expected_counts:
            report.discrepancies.append(PlayerDiscrepancy(display, cached_counts, expected_counts))

    if report.discrepancies:
        logger.warning(f"Leaderboard drift for {len(report.discrepancies)} player(s)")
    return report


# =============================================================================
# Rename
# =============================================================================

def rename_player_key(leaderboard: Leaderboard, old_name: str, new_name: str) -> bool:
    """
    Move a player's counters to a new name. A case-only rename just
    updates the display name.
    """
    if canonical_key(old_name) == canonical_key(new_name):
        entry = leaderboard.get(old_name)
        if entry is None:
            return False
        entry.name = new_name.strip()
        return True
    return leaderboard.rename(old_name, new_name)


def _rename_roster(roster: List[str], old_key: str, new_name: str) -> Optional[List[str]]:
    if not any(canonical_key(member) == old_key for member in roster):
        return None
    return [new_name if canonical_key(member) == old_key else member for member in roster]


def rename_in_history(history: List[MatchRecord], old_name: str, new_name: str) -> int:
    """Rewrite roster and MVP references in place. Returns records touched."""
    old_key = canonical_key(old_name)
    new_name = new_name.strip()
    touched = 0
    for match in history:
        changed = False
        for side in ("team_a", "team_b"):
            renamed = _rename_roster(getattr(match, side), old_key, new_name)
            if renamed is not None:
                setattr(match, side, renamed)
                changed = True
        if match.mvp and canonical_key(match.mvp) == old_key:
            match.mvp = new_name
            changed = True
        touched += int(changed)
    return touched
