"""
League API Routes

REST endpoints for rosters, ratings, matches, standings, team generation,
belts and the reversible activity log. Caller identity is taken from the
X-User-Id / X-User-Name headers.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, Query, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from onball.config.settings import DEFAULT_SET_ID
from onball.database import AsyncSessionLocal
from onball.schemas.ledger import ActionKind, Actor, LedgerEntry
from onball.services.activity_logger import ActivityLedger
from onball.services.document_store import SqlDocumentStore
from onball.services.league_service import LeagueService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/leagues",
    tags=["leagues"]
)


def get_league_service() -> LeagueService:
    """Service wired to the application database."""
    return LeagueService(SqlDocumentStore(AsyncSessionLocal), ActivityLedger(AsyncSessionLocal))


def get_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
) -> Actor:
    return Actor(id=x_user_id or "unknown", name=x_user_name or x_user_id or "Anonymous")


# ============================================================================
# Request bodies
# ============================================================================

class RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateLeagueRequest(RequestModel):
    name: Optional[str] = None


class AddPlayerRequest(RequestModel):
    name: str = Field(..., min_length=1)
    active: bool = True


class UpdatePlayerRequest(RequestModel):
    new_name: Optional[str] = None
    active: Optional[bool] = None


class ActiveRequest(RequestModel):
    active: bool


class RatingRequest(RequestModel):
    player_name: str = Field(..., min_length=1)
    scoring: Optional[float] = None
    defense: Optional[float] = None
    rebounding: Optional[float] = None
    playmaking: Optional[float] = None
    stamina: Optional[float] = None
    physicality: Optional[float] = None
    xfactor: Optional[float] = None


class ScoreBody(RequestModel):
    a: Optional[Any] = None
    b: Optional[Any] = None


class SaveMatchRequest(RequestModel):
    team_a: List[Any]
    team_b: List[Any]
    score: ScoreBody
    mvp: Optional[str] = None
    played_at: Optional[datetime] = None
    team_size: Optional[int] = None
    matchup_index: Optional[int] = None
    completed: bool = False


class GenerateTeamsRequest(RequestModel):
    team_size: int = Field(..., ge=1)


class RematchRequest(RequestModel):
    matchup_index: int = Field(..., ge=0)


class BeltVoteRequest(RequestModel):
    belt_id: str
    player_name: Optional[str] = None


def _entry(entry: Optional[LedgerEntry]) -> Optional[Dict[str, Any]]:
    if entry is None:
        return None
    return entry.model_dump(mode="json", by_alias=True)


# ============================================================================
# League
# ============================================================================

@router.post("/{league_id}", status_code=status.HTTP_201_CREATED)
async def create_league(
    league_id: str,
    request: CreateLeagueRequest,
    set_id: str = Query(DEFAULT_SET_ID, alias="setId"),
    service: LeagueService = Depends(get_league_service),
    actor: Actor = Depends(get_actor),
):
    """Create the league and its default set (idempotent)."""
    league = await service.ensure_league(league_id, actor, name=request.name, set_id=set_id)
    return {"success": True, "league": league}


@router.get("/{league_id}/standings")
async def get_standings(
    league_id: str,
    set_id: str = Query(DEFAULT_SET_ID, alias="setId"),
    service: LeagueService = Depends(get_league_service),
):
    state = await service.load_state(league_id, set_id)
    standings = await service.load_standings(league_id, set_id)
    return {
        "success": True,
        "leaderboard": state.leaderboard.to_document(),
        "players": standings,
    }


# ============================================================================
# Players & ratings
# ============================================================================

@router.post("/{league_id}/players", status_code=status.HTTP_201_CREATED)
async def add_player(
    league_id: str,
    request: AddPlayerRequest,
    set_id: str = Query(DEFAULT_SET_ID, alias="setId"),
    service: LeagueService = Depends(get_league_service),
    actor: Actor = Depends(get_actor),
):
    player = await service.add_player(league_id, request.name, actor, set_id=set_id, active=request.active)
    return {"success": True, "player": player.to_document()}


@router.patch("/{league_id}/players/{name}")
async def update_player(
    league_id: str,
    name: str,
    request: UpdatePlayerRequest,
    set_id: str = Query(DEFAULT_SET_ID, alias="setId"),
    service: LeagueService = Depends(get_league_service),
    actor: Actor = Depends(get_actor),
):
    player = await service.update_player(
        league_id, name, actor, new_name=request.new_name, active=request.active, set_id=set_id
    )
    return {"success": True, "player": player.to_document()}


@router.delete("/{league_id}/players/{name}")
async def delete_player(
    league_id: str,
    name: str,
    set_id: str = Query(DEFAULT_SET_ID, alias="setId"),
    service: LeagueService = Depends(get_league_service),
    actor: Actor = Depends(get_actor),
):
    player = await service.delete_player(league_id, name, actor, set_id=set_id)
    return {"success": True, "player": player.to_document()}


@router.post("/{league_id}/players/{name}/active")
async def set_player_active(
    league_id: str,
    name: str,
    request: ActiveRequest,
    set_id: str = Query(DEFAULT_SET_ID, alias="setId"),
    service: LeagueService = Depends(get_league_service),
    actor: Actor = Depends(get_actor),
):
    player = await service.set_player_active(league_id, name, request.active, actor, set_id=set_id)
    return {"success": True, "player": player.to_document()}


@router.post("/{league_id}/players/{name}/claim")
async def claim_player(
    league_id: str,
    name: str,
    set_id: str = Query(DEFAULT_SET_ID, alias="setId"),
    service: LeagueService = Depends(get_league_service),
    actor: Actor = Depends(get_actor),
):
    claim = await service.claim_player(actor.id, league_id, name, set_id=set_id)
    return {"success": True, "claim": claim}


@router.post("/{league_id}/ratings")
async def submit_rating(
    league_id: str,
    request: RatingRequest,
    set_id: str = Query(DEFAULT_SET_ID, alias="setId"),
    service: LeagueService = Depends(get_league_service),
    actor: Actor = Depends(get_actor),
):
    scores = request.model_dump(exclude={"player_name"}, exclude_none=True)
    player = await service.submit_rating(league_id, request.player_name, scores, actor, set_id=set_id)
    return {"success": True, "player": player.to_document()}


# ============================================================================
# Matches & teams
# ============================================================================

@router.post("/{league_id}/matches", status_code=status.HTTP_201_CREATED)
async def save_match(
    league_id: str,
    request: SaveMatchRequest,
    set_id: str = Query(DEFAULT_SET_ID, alias="setId"),
    service: LeagueService = Depends(get_league_service),
    actor: Actor = Depends(get_actor),
):
    match = await service.save_match(
        league_id,
        actor,
        team_a=request.team_a,
        team_b=request.team_b,
        score_a=request.score.a,
        score_b=request.score.b,
        mvp=request.mvp,
        played_at=request.played_at,
        team_size=request.team_size,
        matchup_index=request.matchup_index,
        completed=request.completed,
        set_id=set_id,
    )
    return {"success": True, "match": match.to_document()}


@router.get("/{league_id}/matches")
async def list_matches(
    league_id: str,
    include_voided: bool = Query(True, alias="includeVoided"),
    set_id: str = Query(DEFAULT_SET_ID, alias="setId"),
    service: LeagueService = Depends(get_league_service),
):
    history = await service.match_history(league_id, include_voided=include_voided, set_id=set_id)
    return {"success": True, "matches": [match.to_document() for match in history]}


@router.post("/{league_id}/teams/generate")
async def generate_teams(
    league_id: str,
    request: GenerateTeamsRequest,
    set_id: str = Query(DEFAULT_SET_ID, alias="setId"),
    service: LeagueService = Depends(get_league_service),
    actor: Actor = Depends(get_actor),
):
    result = await service.generate_teams(league_id, request.team_size, actor, set_id=set_id)
    return result.to_dict()


@router.post("/{league_id}/rematch", status_code=status.HTTP_201_CREATED)
async def create_rematch(
    league_id: str,
    request: RematchRequest,
    set_id: str = Query(DEFAULT_SET_ID, alias="setId"),
    service: LeagueService = Depends(get_league_service),
    actor: Actor = Depends(get_actor),
):
    matchup = await service.create_rematch(league_id, request.matchup_index, actor, set_id=set_id)
    return {"success": True, "matchup": matchup}


# ============================================================================
# Leaderboard admin
# ============================================================================

@router.post("/{league_id}/leaderboard/reset")
async def reset_leaderboard(
    league_id: str,
    set_id: str = Query(DEFAULT_SET_ID, alias="setId"),
    service: LeagueService = Depends(get_league_service),
    actor: Actor = Depends(get_actor),
):
    await service.reset_leaderboard(league_id, actor, set_id=set_id)
    return {"success": True}


@router.post("/{league_id}/leaderboard/reconcile")
async def reconcile_leaderboard(
    league_id: str,
    apply: bool = Query(True),
    set_id: str = Query(DEFAULT_SET_ID, alias="setId"),
    service: LeagueService = Depends(get_league_service),
    actor: Actor = Depends(get_actor),
):
    report = await service.reconcile_leaderboard(league_id, actor, apply=apply, set_id=set_id)
    return {
        "success": True,
        "consistent": report.is_consistent,
        "discrepancies": [d.to_dict() for d in report.discrepancies],
    }


# ============================================================================
# Activity log
# ============================================================================

@router.get("/{league_id}/logs")
async def list_logs(
    league_id: str,
    action: Optional[ActionKind] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    service: LeagueService = Depends(get_league_service),
):
    entries = await service.list_logs(league_id, action=action, limit=limit)
    return {"success": True, "logs": [_entry(entry) for entry in entries]}


@router.delete("/{league_id}/logs/{entry_id}")
async def reverse_log_entry(
    league_id: str,
    entry_id: str,
    set_id: Optional[str] = Query(None, alias="setId"),
    service: LeagueService = Depends(get_league_service),
    actor: Actor = Depends(get_actor),
):
    """Reverse the logged action and replace the entry with a log_deleted entry."""
    result = await service.reverse_log(league_id, entry_id, actor, set_id=set_id)
    return {
        "success": True,
        "reversedEntryId": result.reversed_entry_id,
        "reversedAction": result.reversed_action.value,
        "players": [player.to_document() for player in result.players],
        "leaderboard": result.leaderboard.to_document(),
        "matchHistory": [match.to_document() for match in result.match_history],
        "warnings": result.warnings,
        "logEntry": _entry(result.log_entry),
    }


# ============================================================================
# Belts
# ============================================================================

@router.post("/{league_id}/belts/votes")
async def cast_belt_vote(
    league_id: str,
    request: BeltVoteRequest,
    set_id: str = Query(DEFAULT_SET_ID, alias="setId"),
    service: LeagueService = Depends(get_league_service),
    actor: Actor = Depends(get_actor),
):
    holders = await service.cast_belt_vote(league_id, request.belt_id, request.player_name, actor, set_id=set_id)
    return {"success": True, "beltHolders": holders}
