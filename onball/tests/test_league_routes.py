"""
League API Contract Tests

Verifies the HTTP surface: status codes, the error envelope and the
reversal response shape.
"""
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from onball.main import app
from onball.routes.leagues import get_league_service

BASE = "/api/leagues/lg1"
ADMIN = {"X-User-Id": "admin-1", "X-User-Name": "Admin"}


@pytest_asyncio.fixture
async def client(service) -> AsyncGenerator[AsyncClient, None]:
    """Create test client bound to the per-test database."""
    app.dependency_overrides[get_league_service] = lambda: service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_create_league_and_add_player(client):
    response = await client.post(BASE, json={"name": "Tuesday Run"}, headers=ADMIN)
    assert response.status_code == 201
    assert response.json()["league"]["admins"] == ["admin-1"]

    response = await client.post(f"{BASE}/players", json={"name": "Jordan"}, headers=ADMIN)
    assert response.status_code == 201
    assert response.json()["player"]["name"] == "Jordan"


@pytest.mark.asyncio
async def test_duplicate_player_uses_error_envelope(client):
    await client.post(f"{BASE}/players", json={"name": "Jordan"}, headers=ADMIN)
    response = await client.post(f"{BASE}/players", json={"name": "jordan"}, headers=ADMIN)

    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "DUPLICATE_PLAYER"
    assert body["details"] == {"name": "jordan"}


@pytest.mark.asyncio
async def test_invalid_bodies(client):
    response = await client.post(f"{BASE}/ratings", json={"playerName": "Ann", "scoring": 0}, headers=ADMIN)
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"

    response = await client.post(f"{BASE}/teams/generate", json={"teamSize": 0}, headers=ADMIN)
    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_save_match_and_reverse_through_log(client):
    response = await client.post(f"{BASE}/matches", json={
        "teamA": ["Ann", "Bo"],
        "teamB": [{"name": "Cy"}, {"name": "Di"}],
        "score": {"a": "21", "b": 18},
        "mvp": "Ann",
        "playedAt": "2024-06-01T18:00:00Z",
    }, headers=ADMIN)
    assert response.status_code == 201
    match = response.json()["match"]
    assert match["teamB"] == ["Cy", "Di"]
    assert match["lifecycle"]["state"] == "active"

    standings = (await client.get(f"{BASE}/standings")).json()
    assert standings["leaderboard"]["Ann"] == {"wins": 1, "losses": 0, "mvps": 1}

    logs = (await client.get(f"{BASE}/logs")).json()["logs"]
    [saved] = [entry for entry in logs if entry["action"] == "match_saved"]
    assert saved["undoable"] is True

    response = await client.delete(f"{BASE}/logs/{saved['id']}", headers=ADMIN)
    assert response.status_code == 200
    body = response.json()
    assert body["reversedAction"] == "match_saved"
    assert body["leaderboard"]["Ann"] == {"wins": 0, "losses": 0, "mvps": 0}
    assert body["matchHistory"][0]["lifecycle"]["state"] == "voided"
    assert body["logEntry"]["action"] == "log_deleted"

    response = await client.delete(f"{BASE}/logs/{saved['id']}", headers=ADMIN)
    assert response.status_code == 404

    active_only = (await client.get(f"{BASE}/matches", params={"includeVoided": "false"})).json()
    assert active_only["matches"] == []


@pytest.mark.asyncio
async def test_irreversible_entry_is_rejected(client):
    await client.post(f"{BASE}/leaderboard/reset", headers=ADMIN)
    [entry] = (await client.get(f"{BASE}/logs", params={"action": "leaderboard_reset"})).json()["logs"]

    response = await client.delete(f"{BASE}/logs/{entry['id']}", headers=ADMIN)
    assert response.status_code == 400
    assert response.json()["code"] == "IRREVERSIBLE_ACTION"


@pytest.mark.asyncio
async def test_belt_vote_and_claim(client):
    await client.post(f"{BASE}/players", json={"name": "Jordan"}, headers=ADMIN)

    response = await client.post(f"{BASE}/belts/votes", json={"beltId": "motor", "playerName": "jordan"}, headers=ADMIN)
    assert response.status_code == 200
    assert response.json()["beltHolders"] == {}

    response = await client.post(f"{BASE}/belts/votes", json={"beltId": "goat", "playerName": "Jordan"}, headers=ADMIN)
    assert response.status_code == 400

    response = await client.post(f"{BASE}/players/Jordan/claim", headers={"X-User-Id": "fan-7"})
    assert response.status_code == 200
    assert response.json()["claim"]["status"] == "pending"
