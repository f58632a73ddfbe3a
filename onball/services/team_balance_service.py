"""
onball/services/team_balance_service.py
Team Balance Partitioner

Local deterministic partitioner plus a thin client for the external
team-generation service. The client always answers in the same shape:
when the service is not configured, unreachable, or reports failure,
the local partitioner result is returned instead.

Request:  {players: [{name, scoring, ..., xfactor}], teamSize, leagueId, weightings}
Response: {success: true, teams, matchups} | {success: false, error}
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import httpx

from onball.config.feature_flags import feature_flags
from onball.config.settings import TEAM_SERVICE_TIMEOUT, TEAM_SERVICE_URL
from onball.exceptions import ValidationError
from onball.schemas.league import ATTRIBUTES, Player
from onball.services.rating_service import RATING_WEIGHTINGS, attribute_value

logger = logging.getLogger(__name__)


Team = List[Dict[str, Any]]


def player_strength(player: Any) -> float:
    """Fixed weighted sum of the seven attributes (missing values count as 5)."""
    return sum(attribute_value(player, attribute) * weight for attribute, weight in RATING_WEIGHTINGS.items())


def player_payload(player: Any) -> Dict[str, Any]:
    """Name plus the seven attributes, as sent to the team service."""
    if isinstance(player, Player):
        name = player.name
    else:
        name = player["name"]
    payload = {"name": name}
    for attribute in ATTRIBUTES:
        payload[attribute] = attribute_value(player, attribute)
    return payload


def partition(
    players: Sequence[Any],
    team_size: int,
    strength_fn: Callable[[Any], float] = player_strength,
) -> Tuple[List[List[Any]], List[List[List[Any]]]]:
    """
    Split players into balanced teams and pair the teams into matchups.

    1. Stable sort by strength, strongest first
    2. n // team_size full teams filled by snake draft
    3. Any remainder forms one trailing short team
    4. Teams sorted by total strength; adjacent teams are paired,
       an odd team out is left unpaired

    Raises:
        ValidationError: if team_size < 1
    """
    if team_size < 1:
        raise ValidationError("Team size must be at least 1", details={"teamSize": team_size})
    if not players:
        return [], []

    ranked = sorted(players, key=strength_fn, reverse=True)
    full_team_count = len(ranked) // team_size
    drafted = full_team_count * team_size

    teams: List[List[Any]] = [[] for _ in range(full_team_count)]
    for index, player in enumerate(ranked[:drafted]):
        draft_round, position = divmod(index, full_team_count)
        if draft_round % 2 == 1:
            position = full_team_count - 1 - position
        teams[position].append(player)

    leftover = ranked[drafted:]
    if leftover:
        teams.append(list(leftover))

    teams.sort(key=lambda team: sum(strength_fn(member) for member in team), reverse=True)
    matchups = [[teams[i], teams[i + 1]] for i in range(0, len(teams) - 1, 2)]
    return teams, matchups


@dataclass
class TeamGenerationResult:
    teams: List[Team] = field(default_factory=list)
    matchups: List[List[Team]] = field(default_factory=list)
    source: str = "local"

    def to_dict(self) -> Dict[str, Any]:
        return {"success": True, "teams": self.teams, "matchups": self.matchups, "source": self.source}


def local_generate(players: Sequence[Any], team_size: int) -> TeamGenerationResult:
    teams, matchups = partition(players, team_size)
    return TeamGenerationResult(
        teams=[[player_payload(p) for p in team] for team in teams],
        matchups=[[[player_payload(p) for p in team] for team in pair] for pair in matchups],
        source="local",
    )


class TeamBalanceClient:
    """
    Client for the external team-generation service.

    Usage:
        client = TeamBalanceClient()
        result = await client.generate(players, team_size=5, league_id="abc")
    """

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: float = TEAM_SERVICE_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        enabled: Optional[bool] = None,
    ):
        self.url = TEAM_SERVICE_URL if url is None else url
        self.timeout = timeout
        self._transport = transport
        if enabled is None:
            enabled = feature_flags.FEATURE_REMOTE_TEAM_GENERATION
        self.enabled = enabled

    async def generate(self, players: Sequence[Any], team_size: int, league_id: str) -> TeamGenerationResult:
        if team_size < 1:
            raise ValidationError("Team size must be at least 1", details={"teamSize": team_size})
        if not players:
            return TeamGenerationResult()

        if not self.enabled or not self.url:
            return local_generate(players, team_size)

        body = {
            "players": [player_payload(p) for p in players],
            "teamSize": team_size,
            "leagueId": league_id,
            "weightings": RATING_WEIGHTINGS,
        }
        timeout = httpx.Timeout(self.timeout, connect=min(self.timeout, 10.0))
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=body)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.warning(f"Team service unavailable for league {league_id}, using local partitioner: {e}")
            return local_generate(players, team_size)
        except ValueError as e:
            logger.warning(f"Team service returned invalid JSON for league {league_id}: {e}")
            return local_generate(players, team_size)

        if not isinstance(data, dict) or not data.get("success"):
            error = data.get("error") if isinstance(data, dict) else None
            logger.warning(f"Team service reported failure for league {league_id} ({error}); using local partitioner")
            return local_generate(players, team_size)

        logger.info(f"Team service generated {len(data.get('teams') or [])} teams for league {league_id}")
        return TeamGenerationResult(
            teams=list(data.get("teams") or []),
            matchups=list(data.get("matchups") or []),
            source="remote",
        )
