"""
Team Balance Partitioner Tests

Coverage:
- Snake draft, trailing short team, adjacent pairing
- Determinism and input validation
- Remote client request shape and every fallback path
"""
import json

import httpx
import pytest

from onball.exceptions import ValidationError
from onball.schemas.league import Player
from onball.services.team_balance_service import (
    TeamBalanceClient,
    local_generate,
    partition,
    player_strength,
)

SERVICE_URL = "https://teams.example.test/api/generate-teams"


def by_value(player):
    return player[1]


def names(team):
    return [member[0] for member in team]


def roster(count):
    return [Player(name=f"P{i}", scoring=10 - i % 10) for i in range(count)]


def test_snake_draft_with_trailing_short_team():
    players = [("A", 10), ("B", 9), ("C", 8), ("D", 7), ("E", 6)]
    teams, matchups = partition(players, 2, strength_fn=by_value)

    assert [names(team) for team in teams] == [["A", "D"], ["B", "C"], ["E"]]
    assert len(matchups) == 1
    assert [names(team) for team in matchups[0]] == [["A", "D"], ["B", "C"]]


def test_every_player_placed_exactly_once():
    players = [(f"P{i}", (i * 7) % 11) for i in range(13)]
    teams, matchups = partition(players, 3, strength_fn=by_value)

    placed = sorted(member[0] for team in teams for member in team)
    assert placed == sorted(p[0] for p in players)
    assert [len(team) for team in teams].count(3) == 4
    assert len(matchups) == 2


def test_partition_is_deterministic():
    players = roster(10)
    first = partition(players, 5)
    second = partition(list(players), 5)
    assert [[p.name for p in team] for team in first[0]] == [[p.name for p in team] for team in second[0]]


def test_partition_validation():
    with pytest.raises(ValidationError):
        partition([("A", 1)], 0, strength_fn=by_value)
    assert partition([], 3) == ([], [])


def test_player_strength_uses_rating_weights():
    assert player_strength({"name": "x"}) == pytest.approx(5.0)
    assert player_strength(Player(name="x", scoring=10)) == pytest.approx(6.5)


def test_local_generate_shape():
    result = local_generate(roster(4), 2)
    assert result.source == "local"
    assert len(result.teams) == 2
    assert set(result.teams[0][0]) == {
        "name", "scoring", "defense", "rebounding", "playmaking", "stamina", "physicality", "xfactor"
    }
    assert result.to_dict()["success"] is True


@pytest.mark.asyncio
async def test_remote_success_is_used():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "success": True,
            "teams": [[{"name": "P0"}], [{"name": "P1"}]],
            "matchups": [[[{"name": "P0"}], [{"name": "P1"}]]],
        })

    client = TeamBalanceClient(url=SERVICE_URL, transport=httpx.MockTransport(handler), enabled=True)
    result = await client.generate(roster(2), team_size=1, league_id="lg")

    assert result.source == "remote"
    assert result.teams == [[{"name": "P0"}], [{"name": "P1"}]]
    assert seen["body"]["teamSize"] == 1
    assert seen["body"]["leagueId"] == "lg"
    assert seen["body"]["weightings"]["scoring"] == 0.30
    assert seen["body"]["players"][0]["name"] == "P0"


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    httpx.Response(200, json={"success": False, "error": "bad input"}),
    httpx.Response(500, json={"error": "boom"}),
    httpx.Response(200, text="not json"),
])
async def test_remote_failure_falls_back_to_local(response):
    client = TeamBalanceClient(
        url=SERVICE_URL,
        transport=httpx.MockTransport(lambda request: response),
        enabled=True,
    )
    result = await client.generate(roster(4), team_size=2, league_id="lg")

    assert result.source == "local"
    assert result == local_generate(roster(4), 2)


@pytest.mark.asyncio
async def test_transport_error_falls_back_to_local():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    client = TeamBalanceClient(url=SERVICE_URL, transport=httpx.MockTransport(handler), enabled=True)
    result = await client.generate(roster(4), team_size=2, league_id="lg")
    assert result.source == "local"


@pytest.mark.asyncio
async def test_unconfigured_or_disabled_client_never_calls_out():
    def handler(request):
        raise AssertionError("remote service must not be called")

    for client in (
        TeamBalanceClient(url="", transport=httpx.MockTransport(handler), enabled=True),
        TeamBalanceClient(url=SERVICE_URL, transport=httpx.MockTransport(handler), enabled=False),
    ):
        result = await client.generate(roster(4), team_size=2, league_id="lg")
        assert result.source == "local"
