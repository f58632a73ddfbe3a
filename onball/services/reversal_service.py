"""
onball/services/reversal_service.py
Compensating reversal of individual ledger entries

Usage:
    service = ReversalService(store, ledger)
    result = await service.reverse(league_id, entry_id, actor)

Per action kind:
- player_added:     delete the player and its leaderboard entry, unless
                    other reviewers have rated it since; then only the
                    creator's submission is stripped
- rating_added /
  rating_updated:   strip the reviewer's submission and recompute
- match_saved /
  match_completed:  void the history record named by the logged matchId
                    and decrement the leaderboard from that record; the
                    logged rosters, score and MVP are the fallback when
                    the record is gone

Player names in a payload are followed through renames logged after
the entry, so a renamed player is still found.

Ordering: the set document is written first, then the entry is deleted
and a non-undoable `log_deleted` entry is appended. A consumed entry no
longer exists, so reversing it twice fails with NotFoundError.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from onball.config.feature_flags import feature_flags
from onball.config.settings import DEFAULT_SET_ID
from onball.exceptions import ConsistencyError, IrreversibleActionError, NotFoundError, ValidationError
from onball.schemas.league import MatchRecord, Player, canonical_key
from onball.schemas.ledger import (
    MATCH_ACTIONS,
    ActionKind,
    Actor,
    LedgerEntry,
    ReversalResult,
)
from onball.services.activity_logger import ActivityLedger
from onball.services.document_store import DocumentStore
from onball.services.leaderboard_service import reverse_match
from onball.services.match_normalizer import normalize, rosters_equal, scores_equal
from onball.services.rating_service import find_player, remove_player, remove_submission
from onball.services.set_state import SetState, load_set, save_set

logger = logging.getLogger(__name__)


PLAYER_NAME_FIELDS = ("playerName", "name", "player")


def payload_player_name(payload: Dict[str, Any]) -> Optional[str]:
    for field in PLAYER_NAME_FIELDS:
        value = payload.get(field)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def find_history_record(
    history: List[MatchRecord],
    target: MatchRecord,
    match_id: Optional[str] = None,
) -> Optional[MatchRecord]:
    """
    Locate the Active history record a logged match refers to.

    A logged `match_id` is authoritative: only that record qualifies.
    Without one, rosters must be set-equal (either side assignment), the
    score exact, and the MVP equal when the log carries one. A dated log
    only accepts the record with the same playedAt, or an undated one;
    an undated log takes the most recent candidate.
    """
    if match_id:
        for record in history:
            if record.id == match_id and record.is_active:
                return record
        return None

    candidates = [
        record for record in history
        if record.is_active
        and rosters_equal(record, target.team_a, target.team_b)
        and scores_equal(record, target)
        and (not target.mvp or canonical_key(record.mvp) == canonical_key(target.mvp))
    ]
    if not candidates:
        return None
    if target.played_at is None:
        return candidates[-1]
    for record in candidates:
        if record.played_at == target.played_at:
            return record
    undated = [record for record in candidates if record.played_at is None]
    return undated[-1] if undated else None


class ReversalService:
    """Dispatches a ledger entry to its compensating action."""

    def __init__(self, store: DocumentStore, ledger: ActivityLedger, strict: Optional[bool] = None):
        self.store = store
        self.ledger = ledger
        self._strict = strict

    @property
    def strict(self) -> bool:
        if self._strict is None:
            return feature_flags.FEATURE_STRICT_MATCH_REVERSAL
        return self._strict

    async def reverse(
        self,
        league_id: str,
        entry_id: str,
        actor: Actor,
        set_id: Optional[str] = None,
    ) -> ReversalResult:
        """
        Reverse one ledger entry.

        Raises:
            NotFoundError: entry (or the player it names) does not exist
            IrreversibleActionError: entry kind has no compensating action
            ConsistencyError: strict mode and the history record is missing
        """
        entry = await self.ledger.get(league_id, entry_id)
        if entry is None:
            raise NotFoundError("Log entry", entry_id)
        if not entry.is_reversible:
            raise IrreversibleActionError(entry.action.value)

        set_id = set_id or entry.payload.get("setId") or DEFAULT_SET_ID
        state = await load_set(self.store, league_id, set_id)
        warnings: List[str] = []

        if entry.action == ActionKind.PLAYER_ADDED:
            log_payload = await self._reverse_player_added(state, entry, warnings)
        elif entry.action in (ActionKind.RATING_ADDED, ActionKind.RATING_UPDATED):
            log_payload = await self._reverse_rating(state, entry, warnings)
        elif entry.action in MATCH_ACTIONS:
            log_payload = await self._reverse_match(state, entry, actor, warnings)
        else:
            raise IrreversibleActionError(entry.action.value)

        await save_set(self.store, state)
        await self.ledger.delete(league_id, entry_id)

        log_payload.update(logId=entry_id, deletedAction=entry.action.value, setId=set_id)
        if warnings:
            log_payload["warnings"] = warnings
        log_entry = await self.ledger.append(
            league_id, ActionKind.LOG_DELETED, actor, log_payload, undoable=False
        )

        logger.info(f"Reversed {entry.action.value} entry {entry_id} in league {league_id} by {actor.id}")
        return ReversalResult(
            reversed_entry_id=entry_id,
            reversed_action=entry.action,
            players=state.players,
            leaderboard=state.leaderboard,
            match_history=state.match_history,
            warnings=warnings,
            log_entry=log_entry,
        )

    # =========================================================================
    # Per-kind compensating actions (mutate `state`, return log payload)
    # =========================================================================

    def _reviewer_id(self, entry: LedgerEntry) -> str:
        return str(entry.payload.get("reviewerId") or entry.payload.get("submittedBy") or entry.actor_id)

    async def _renames_since(self, entry: LedgerEntry) -> List[Tuple[str, str]]:
        """(old, new) name pairs logged at or after `entry`, oldest first."""
        updates = await self.ledger.list_entries(
            entry.league_id, actions=[ActionKind.PLAYER_UPDATED], limit=None
        )
        set_id = entry.payload.get("setId")
        renames = []
        for update in reversed(updates):
            if update.timestamp < entry.timestamp:
                continue
            if set_id and update.payload.get("setId") not in (None, set_id):
                continue
            old_name, new_name = update.payload.get("oldName"), update.payload.get("newName")
            if old_name and new_name and canonical_key(old_name) != canonical_key(new_name):
                renames.append((old_name, new_name))
        return renames

    @staticmethod
    def _current_name(name: str, renames: List[Tuple[str, str]]) -> str:
        for old_name, new_name in renames:
            if canonical_key(old_name) == canonical_key(name):
                name = new_name
        return name

    async def _logged_player(self, state: SetState, entry: LedgerEntry) -> Player:
        name = payload_player_name(entry.payload)
        if name is None:
            raise ValidationError("Log entry does not name a player", details={"entryId": entry.id})
        current = self._current_name(name, await self._renames_since(entry))
        player = find_player(state.players, current)
        if player is None:
            raise NotFoundError("Player", current)
        return player

    async def _reverse_player_added(self, state: SetState, entry: LedgerEntry, warnings: List[str]) -> Dict[str, Any]:
        player = await self._logged_player(state, entry)

        reviewer_id = self._reviewer_id(entry)
        others = [s for s in player.submissions if s.reviewer_id != reviewer_id]
        if not others:
            remove_player(state.players, player.name)
            state.leaderboard.remove(player.name)
            logger.info(f"Removed player {player.name} from league {state.league_id}")
            message = "Player addition was reversed"
        else:
            remove_submission(player, reviewer_id)
            warnings.append(
                f"{player.name} has ratings from other reviewers; only the original rating was removed"
            )
            message = "Rating change was reversed"
        return {"playerName": player.name, "message": message}

    async def _reverse_rating(self, state: SetState, entry: LedgerEntry, warnings: List[str]) -> Dict[str, Any]:
        player = await self._logged_player(state, entry)

        reviewer_id = self._reviewer_id(entry)
        if not remove_submission(player, reviewer_id):
            warnings.append(f"No rating from reviewer {reviewer_id} remains on {player.name}")
            logger.warning(f"Rating reversal for {player.name}: reviewer {reviewer_id} has no live submission")
        return {"playerName": player.name, "message": "Rating change was reversed"}

    async def _reverse_match(
        self,
        state: SetState,
        entry: LedgerEntry,
        actor: Actor,
        warnings: List[str],
    ) -> Dict[str, Any]:
        target = normalize(entry.payload)
        if not target.is_scored:
            raise ValidationError("Logged match has no complete score", details={"entryId": entry.id})

        # Logged names predate any later rename; history and leaderboard do not
        renames = await self._renames_since(entry)
        if renames:
            target.team_a = [self._current_name(name, renames) for name in target.team_a]
            target.team_b = [self._current_name(name, renames) for name in target.team_b]
            if target.mvp:
                target.mvp = self._current_name(target.mvp, renames)

        match_id = entry.payload.get("matchId")
        record = find_history_record(state.match_history, target, match_id=match_id)
        if record is None:
            message = f"No active history record matches log entry {entry.id}; leaderboard adjusted only"
            if self.strict:
                raise ConsistencyError(message, details={"entryId": entry.id, "matchId": match_id})
            warnings.append(message)
            logger.warning(f"League {state.league_id}: {message}")
        else:
            target = record

        reverse_match(state.leaderboard, target)
        if record is not None:
            record.void(voided_by=actor.id, reason=f"Log entry {entry.id} reversed")

        return {
            "scoreA": target.score.a,
            "scoreB": target.score.b,
            "teamA": target.team_a,
            "teamB": target.team_b,
            "matchId": record.id if record is not None else None,
            "message": "Match result was deleted",
        }
