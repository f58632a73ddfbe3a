"""
onball/services/league_service.py
League write/read orchestration

Write path: each operation loads the set document, applies the change
through the aggregator / rating store, writes the set document once and
then appends one ledger entry. Validation happens before any write.

Read path: standings are folded from the leaderboard and the normalized
match history on demand.
"""
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from onball.config.settings import DEFAULT_SET_ID
from onball.exceptions import ConsistencyError, DuplicatePlayerError, NotFoundError, ValidationError
from onball.schemas.league import (
    ATTRIBUTES,
    Leaderboard,
    MatchRecord,
    Player,
    Submission,
    canonical_key,
    utcnow,
)
from onball.schemas.ledger import NOISY_ACTIONS, SYSTEM_ACTOR, ActionKind, Actor, LedgerEntry, ReversalResult
from onball.services import belt_service
from onball.services.activity_logger import ActivityLedger
from onball.services.document_store import DocumentStore, league_path, set_path, user_path
from onball.services.leaderboard_service import (
    ReconciliationReport,
    reconcile,
    record_match,
    rename_in_history,
    rename_player_key,
)
from onball.services.match_normalizer import normalize
from onball.services.rating_service import find_player, new_player, remove_player, upsert_submission
from onball.services.reversal_service import ReversalService
from onball.services.set_state import SetState, empty_set_document, load_set, save_set
from onball.services.streak_tier_service import (
    DEFAULT_TIER_TABLE,
    TierTable,
    badge_progress,
    player_badges,
    player_stats,
)
from onball.services.team_balance_service import TeamBalanceClient, TeamGenerationResult

logger = logging.getLogger(__name__)


def _roster_names(team: Any) -> List[str]:
    names = []
    for member in team or []:
        name = member.get("name") if isinstance(member, dict) else member
        if isinstance(name, str) and name.strip():
            names.append(name.strip())
    return names


def _empty_score() -> Dict[str, Any]:
    return {"a": None, "b": None, "processed": False}


class LeagueService:
    """
    Entry point for every league operation.

    Usage:
        service = LeagueService(store, ledger)
        await service.ensure_league("abc", actor)
        await service.submit_rating("abc", "Jordan", {"scoring": 8}, actor)
    """

    def __init__(
        self,
        store: DocumentStore,
        ledger: ActivityLedger,
        team_client: Optional[TeamBalanceClient] = None,
        reversal: Optional[ReversalService] = None,
        tier_table: TierTable = DEFAULT_TIER_TABLE,
    ):
        self.store = store
        self.ledger = ledger
        self.team_client = team_client or TeamBalanceClient()
        self.reversal = reversal or ReversalService(store, ledger)
        self.tier_table = tier_table

    async def _load(self, league_id: str, set_id: Optional[str]) -> SetState:
        return await load_set(self.store, league_id, set_id or DEFAULT_SET_ID)

    async def _log(
        self,
        state: SetState,
        action: ActionKind,
        actor: Actor,
        payload: Dict[str, Any],
        undoable: Optional[bool] = None,
    ) -> LedgerEntry:
        payload = {**payload, "setId": state.set_id}
        return await self.ledger.append(state.league_id, action, actor, payload, undoable=undoable)

    # =========================================================================
    # League / schema
    # =========================================================================

    async def ensure_league(
        self,
        league_id: str,
        actor: Actor,
        name: Optional[str] = None,
        set_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create the league and default set documents if missing.

        Idempotent: the `schema_initialized` entry is logged once per league.
        """
        set_id = set_id or DEFAULT_SET_ID
        league_doc = await self.store.get(league_path(league_id))
        if league_doc is None:
            league_doc = {
                "name": (name or league_id).strip(),
                "admins": [actor.id],
                "inviteCode": uuid.uuid4().hex[:6].upper(),
                "preferences": {},
                "createdAt": utcnow().isoformat(),
            }
            await self.store.set(league_path(league_id), league_doc)
            logger.info(f"League {league_id} created by {actor.id}")

        if await self.store.get(set_path(league_id, set_id)) is None:
            await self.store.set(set_path(league_id, set_id), empty_set_document())
            logger.info(f"Set {set_id} created for league {league_id}")

        existing = await self.ledger.list_entries(league_id, actions=[ActionKind.SCHEMA_INITIALIZED], limit=1)
        if not existing:
            await self.ledger.append(
                league_id,
                ActionKind.SCHEMA_INITIALIZED,
                SYSTEM_ACTOR,
                {"message": "Log system initialized", "setId": set_id},
                undoable=False,
            )
        return league_doc

    async def load_state(self, league_id: str, set_id: Optional[str] = None) -> SetState:
        return await self._load(league_id, set_id)

    # =========================================================================
    # Players & ratings
    # =========================================================================

    async def add_player(
        self,
        league_id: str,
        name: str,
        actor: Actor,
        set_id: Optional[str] = None,
        active: bool = True,
    ) -> Player:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Player name is required")

        state = await self._load(league_id, set_id)
        if find_player(state.players, name) is not None or state.unreadable_player(name) is not None:
            raise DuplicatePlayerError(name)

        player = new_player(name)
        player.active = active
        state.players.append(player)
        await save_set(self.store, state)
        await self._log(state, ActionKind.PLAYER_ADDED, actor, {"playerName": player.name, "reviewerId": actor.id})

        logger.info(f"Player {player.name} added to league {league_id}")
        return player

    async def submit_rating(
        self,
        league_id: str,
        player_name: str,
        scores: Dict[str, Any],
        actor: Actor,
        set_id: Optional[str] = None,
    ) -> Player:
        """
        Record the actor's rating of a player, creating the player on the
        first rating. A repeat rating from the same reviewer replaces the
        earlier one.
        """
        player_name = (player_name or "").strip()
        if not player_name:
            raise ValidationError("Player name is required")

        try:
            submission = Submission(
                reviewer_id=actor.id,
                reviewer_name=actor.name,
                **{attribute: scores[attribute] for attribute in ATTRIBUTES if scores.get(attribute) is not None},
            )
        except PydanticValidationError as e:
            raise ValidationError(
                "Attribute scores must be between 1 and 10",
                details={"errors": [error["msg"] for error in e.errors()]},
            ) from e

        state = await self._load(league_id, set_id)
        player = find_player(state.players, player_name)
        if player is None:
            if state.unreadable_player(player_name) is not None:
                raise ConsistencyError(
                    f"Stored row for player {player_name} cannot be read",
                    details={"playerName": player_name},
                )
            player = new_player(player_name, submission)
            state.players.append(player)
            action = ActionKind.PLAYER_ADDED
        else:
            replaced = upsert_submission(player, submission)
            action = ActionKind.RATING_UPDATED if replaced else ActionKind.RATING_ADDED

        await save_set(self.store, state)
        await self._log(state, action, actor, {
            "playerName": player.name,
            "reviewerId": actor.id,
            "rating": player.rating,
        })

        logger.info(f"{action.value}: {player.name} in league {league_id} by {actor.id}")
        return player

    async def update_player(
        self,
        league_id: str,
        name: str,
        actor: Actor,
        new_name: Optional[str] = None,
        active: Optional[bool] = None,
        set_id: Optional[str] = None,
    ) -> Player:
        """
        Admin edit. A rename cascades to the leaderboard, match history
        and belts in the same set write; claim records in user documents
        are rewritten afterwards in separate writes.
        """
        state = await self._load(league_id, set_id)
        player = find_player(state.players, name)
        if player is None:
            raise NotFoundError("Player", name)

        old_name = player.name
        renamed = False
        if new_name is not None:
            new_name = new_name.strip()
            if not new_name:
                raise ValidationError("Player name is required")
            clash = find_player(state.players, new_name)
            if (clash is not None and clash is not player) or state.unreadable_player(new_name) is not None:
                raise DuplicatePlayerError(new_name)
            if new_name != old_name:
                player.name = new_name
                rename_player_key(state.leaderboard, old_name, new_name)
                rename_in_history(state.match_history, old_name, new_name)
                belt_service.rename_in_belts(state.belt_votes, state.belt_holders, old_name, new_name)
                renamed = True

        if active is not None:
            player.active = active

        await save_set(self.store, state)
        if renamed:
            await self._rename_claims(league_id, old_name, player.name)

        await self._log(state, ActionKind.PLAYER_UPDATED, actor, {
            "playerName": player.name,
            "oldName": old_name,
            "newName": player.name,
            "active": player.active,
        })
        return player

    async def _rename_claims(self, league_id: str, old_name: str, new_name: str) -> int:
        old_key = canonical_key(old_name)
        updated = 0
        for path, doc in (await self.store.list("user/")).items():
            claims = doc.get("claimedPlayers") or []
            changed = False
            for claim in claims:
                if claim.get("leagueId") == league_id and canonical_key(claim.get("playerName")) == old_key:
                    claim["playerName"] = new_name
                    changed = True
            if changed:
                doc["claimedPlayers"] = claims
                await self.store.set(path, doc)
                updated += 1
        if updated:
            logger.info(f"Rewrote {updated} player claim(s) for {old_name} -> {new_name}")
        return updated

    async def delete_player(self, league_id: str, name: str, actor: Actor, set_id: Optional[str] = None) -> Player:
        """Remove a player from the roster. Leaderboard counters are kept."""
        state = await self._load(league_id, set_id)
        player = remove_player(state.players, name)
        if player is None:
            raise NotFoundError("Player", name)

        await save_set(self.store, state)
        await self._log(state, ActionKind.PLAYER_DELETED, actor, {"playerName": player.name})
        logger.info(f"Player {player.name} deleted from league {league_id}")
        return player

    async def set_player_active(
        self,
        league_id: str,
        name: str,
        active: bool,
        actor: Actor,
        set_id: Optional[str] = None,
    ) -> Player:
        state = await self._load(league_id, set_id)
        player = find_player(state.players, name)
        if player is None:
            raise NotFoundError("Player", name)

        player.active = active
        await save_set(self.store, state)
        await self._log(state, ActionKind.PLAYER_ACTIVE_CHANGED, actor, {"playerName": player.name, "active": active})
        return player

    # =========================================================================
    # Matches
    # =========================================================================

    async def save_match(
        self,
        league_id: str,
        actor: Actor,
        team_a: List[Any],
        team_b: List[Any],
        score_a: Any,
        score_b: Any,
        mvp: Optional[str] = None,
        played_at: Optional[datetime] = None,
        team_size: Optional[int] = None,
        matchup_index: Optional[int] = None,
        completed: bool = False,
        set_id: Optional[str] = None,
    ) -> MatchRecord:
        """
        Record a finished match: credit the leaderboard, append the history
        record and log `match_saved` (or `match_completed`).

        Raises:
            ValidationError: missing rosters or an incomplete score
        """
        match = normalize({
            "teamA": team_a,
            "teamB": team_b,
            "score": {"a": score_a, "b": score_b},
            "mvp": mvp,
            "teamSize": team_size,
            "playedAt": played_at or utcnow(),
        })
        if not match.team_a or not match.team_b:
            raise ValidationError("Both rosters are required")

        state = await self._load(league_id, set_id)
        if matchup_index is not None and not 0 <= matchup_index < len(state.matchups):
            raise NotFoundError("Matchup", matchup_index)

        record_match(state.leaderboard, match)
        state.match_history.append(match)
        if matchup_index is not None:
            while len(state.scores) < len(state.matchups):
                state.scores.append(_empty_score())
            while len(state.mvp_votes) < len(state.matchups):
                state.mvp_votes.append("")
            state.scores[matchup_index] = {"a": match.score.a, "b": match.score.b, "processed": True}
            state.mvp_votes[matchup_index] = match.mvp or ""

        await save_set(self.store, state)
        action = ActionKind.MATCH_COMPLETED if completed else ActionKind.MATCH_SAVED
        await self._log(state, action, actor, {
            "matchId": match.id,
            "teamA": match.team_a,
            "teamB": match.team_b,
            "score": {"a": match.score.a, "b": match.score.b},
            "scoreA": match.score.a,
            "scoreB": match.score.b,
            "mvp": match.mvp,
            "teamSize": match.team_size,
            "playedAt": match.played_at.isoformat() if match.played_at else None,
        })

        logger.info(
            f"Match {match.id} saved in league {league_id}: "
            f"{match.score.a}-{match.score.b} (mvp={match.mvp})"
        )
        return match

    async def match_history(
        self,
        league_id: str,
        include_voided: bool = True,
        set_id: Optional[str] = None,
    ) -> List[MatchRecord]:
        state = await self._load(league_id, set_id)
        if include_voided:
            return state.match_history
        return [match for match in state.match_history if match.is_active]

    # =========================================================================
    # Teams
    # =========================================================================

    async def generate_teams(
        self,
        league_id: str,
        team_size: int,
        actor: Actor,
        set_id: Optional[str] = None,
    ) -> TeamGenerationResult:
        if team_size < 1:
            raise ValidationError("Team size must be at least 1", details={"teamSize": team_size})

        state = await self._load(league_id, set_id)
        active_players = [player for player in state.players if player.active]
        result = await self.team_client.generate(active_players, team_size, league_id)

        state.teams = result.teams
        state.matchups = result.matchups
        state.scores = [_empty_score() for _ in result.matchups]
        state.mvp_votes = ["" for _ in result.matchups]
        await save_set(self.store, state)
        await self._log(state, ActionKind.TEAMS_GENERATED, actor, {
            "teamCount": len(result.teams),
            "matchupCount": len(result.matchups),
            "teamSize": team_size,
            "source": result.source,
        })
        return result

    async def create_rematch(
        self,
        league_id: str,
        matchup_index: int,
        actor: Actor,
        set_id: Optional[str] = None,
    ) -> List[Any]:
        """Queue another game between the teams of an existing matchup."""
        state = await self._load(league_id, set_id)
        if not 0 <= matchup_index < len(state.matchups):
            raise NotFoundError("Matchup", matchup_index)

        matchup = state.matchups[matchup_index]
        previous = state.scores[matchup_index] if matchup_index < len(state.scores) else {}
        state.matchups.append(matchup)
        state.scores.append(_empty_score())
        state.mvp_votes.append("")

        await save_set(self.store, state)
        team_a, team_b = (list(matchup) + [[], []])[:2]
        await self._log(state, ActionKind.REMATCH_CREATED, actor, {
            "teamA": _roster_names(team_a),
            "teamB": _roster_names(team_b),
            "originalScoreA": (previous or {}).get("a"),
            "originalScoreB": (previous or {}).get("b"),
        })
        return matchup

    # =========================================================================
    # Leaderboard admin
    # =========================================================================

    async def reset_leaderboard(self, league_id: str, actor: Actor, set_id: Optional[str] = None) -> SetState:
        """Clear standings, history and pending games. Not reversible."""
        state = await self._load(league_id, set_id)
        cleared = len(state.match_history)
        state.leaderboard = Leaderboard()
        state.match_history = []
        state.teams = []
        state.matchups = []
        state.scores = []
        state.mvp_votes = []

        await save_set(self.store, state)
        await self._log(state, ActionKind.LEADERBOARD_RESET, actor, {"clearedMatches": cleared}, undoable=False)
        logger.info(f"Leaderboard reset for league {league_id} by {actor.id} ({cleared} matches cleared)")
        return state

    async def reconcile_leaderboard(
        self,
        league_id: str,
        actor: Actor,
        apply: bool = True,
        set_id: Optional[str] = None,
    ) -> ReconciliationReport:
        """Compare the cached leaderboard with a full recompute; optionally repair it."""
        state = await self._load(league_id, set_id)
        report = reconcile(state.leaderboard, state.match_history)
        if apply and not report.is_consistent:
            state.leaderboard = report.expected
            await save_set(self.store, state)
            await self._log(state, ActionKind.LEADERBOARD_RECONCILED, actor, {
                "discrepancies": [d.to_dict() for d in report.discrepancies],
            })
            logger.info(f"Leaderboard repaired for league {league_id}: {len(report.discrepancies)} player(s)")
        return report

    async def load_standings(self, league_id: str, set_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Per-player stats, earned badges and badge progress."""
        state = await self._load(league_id, set_id)
        names: Dict[str, str] = {}
        for player in state.players:
            names.setdefault(player.key, player.name)
        for entry in state.leaderboard:
            names.setdefault(canonical_key(entry.name), entry.name)

        standings = []
        for display in names.values():
            stats = player_stats(display, state.leaderboard, state.match_history)
            item = stats.to_dict()
            item["badges"] = player_badges(stats, self.tier_table)
            item["progress"] = {
                category: result.to_dict()
                for category, result in badge_progress(stats, self.tier_table).items()
            }
            standings.append(item)

        standings.sort(key=lambda item: (-item["wins"], item["losses"], -item["mvps"], item["name"].lower()))
        return standings

    # =========================================================================
    # Belts & claims
    # =========================================================================

    async def cast_belt_vote(
        self,
        league_id: str,
        belt_id: str,
        player_name: Optional[str],
        actor: Actor,
        set_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        state = await self._load(league_id, set_id)
        if player_name:
            player = find_player(state.players, player_name)
            if player is None:
                raise NotFoundError("Player", player_name)
            player_name = player.name

        state.belt_votes = belt_service.cast_vote(state.belt_votes, actor.id, belt_id, player_name)
        state.belt_holders = belt_service.calculate_belt_standings(state.belt_votes, state.belt_holders)
        await save_set(self.store, state)
        await self._log(state, ActionKind.BELT_VOTE_CAST, actor, {"beltId": belt_id, "playerName": player_name})
        return state.belt_holders

    async def claim_player(
        self,
        uid: str,
        league_id: str,
        player_name: str,
        set_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Attach a roster player to a user account (status starts as pending)."""
        state = await self._load(league_id, set_id)
        player = find_player(state.players, player_name)
        if player is None:
            raise NotFoundError("Player", player_name)

        doc = await self.store.get(user_path(uid)) or {}
        claims = [
            claim for claim in doc.get("claimedPlayers") or []
            if not (claim.get("leagueId") == league_id and canonical_key(claim.get("playerName")) == player.key)
        ]
        claim = {
            "leagueId": league_id,
            "playerName": player.name,
            "claimedAt": utcnow().isoformat(),
            "status": "pending",
        }
        claims.append(claim)
        doc["claimedPlayers"] = claims
        await self.store.set(user_path(uid), doc)
        logger.info(f"User {uid} claimed {player.name} in league {league_id}")
        return claim

    # =========================================================================
    # Ledger
    # =========================================================================

    async def list_logs(
        self,
        league_id: str,
        action: Optional[ActionKind] = None,
        limit: int = 100,
    ) -> List[LedgerEntry]:
        """Newest first. With no action filter the noisy kinds are hidden."""
        if action is not None:
            return await self.ledger.list_entries(league_id, actions=[action], limit=limit)
        return await self.ledger.list_entries(league_id, exclude=NOISY_ACTIONS, limit=limit)

    async def reverse_log(
        self,
        league_id: str,
        entry_id: str,
        actor: Actor,
        set_id: Optional[str] = None,
    ) -> ReversalResult:
        return await self.reversal.reverse(league_id, entry_id, actor, set_id=set_id)
