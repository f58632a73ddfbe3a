"""
League Service Tests

Coverage:
- League bootstrap is idempotent
- Player roster: duplicates, rename cascade, delete, active flag
- Unreadable stored player rows are written back unchanged
- Rating kinds logged per reviewer
- Match save validation and matchup bookkeeping
- Team generation, rematch, reset, reconcile
- Default log view hides noisy kinds
"""
from datetime import datetime, timezone

import pytest

from onball.exceptions import ConsistencyError, DuplicatePlayerError, NotFoundError, ValidationError
from onball.schemas.league import Leaderboard, LeaderboardEntry
from onball.schemas.ledger import ActionKind
from onball.services.document_store import league_path, set_path, user_path
from onball.services.set_state import save_set

LEAGUE_ID = "lg1"
PLAYED_AT = datetime(2024, 5, 1, 18, 30, tzinfo=timezone.utc)


async def actions(ledger, **filters):
    return [entry.action for entry in await ledger.list_entries(LEAGUE_ID, **filters)]


async def add_roster(service, actor, *names):
    for name in names:
        await service.add_player(LEAGUE_ID, name, actor)


@pytest.mark.asyncio
async def test_ensure_league_is_idempotent(service, store, ledger, admin):
    first = await service.ensure_league(LEAGUE_ID, admin, name=" Tuesday Run ")
    second = await service.ensure_league(LEAGUE_ID, admin, name="Renamed")

    assert first == second
    assert first["name"] == "Tuesday Run"
    assert first["admins"] == [admin.id]
    assert len(first["inviteCode"]) == 6
    assert await store.get(league_path(LEAGUE_ID)) == first

    set_doc = await store.get(set_path(LEAGUE_ID, "default"))
    assert set_doc["players"] == []
    assert set_doc["leaderboard"] == {}

    [entry] = await ledger.list_entries(LEAGUE_ID)
    assert entry.action == ActionKind.SCHEMA_INITIALIZED
    assert entry.actor_id == "system"
    assert entry.payload["message"] == "Log system initialized"
    assert not entry.is_reversible


@pytest.mark.asyncio
async def test_add_player_rejects_duplicates_case_insensitively(service, ledger, admin):
    player = await service.add_player(LEAGUE_ID, "  Jordan ", admin)
    assert player.name == "Jordan"
    assert player.rating == 5.0

    with pytest.raises(DuplicatePlayerError):
        await service.add_player(LEAGUE_ID, "JORDAN", admin)
    with pytest.raises(ValidationError):
        await service.add_player(LEAGUE_ID, "   ", admin)

    assert await actions(ledger) == [ActionKind.PLAYER_ADDED]


@pytest.mark.asyncio
async def test_rating_kinds_follow_reviewer_history(service, ledger, admin, reviewer):
    await service.submit_rating(LEAGUE_ID, "Ann", {"scoring": 8}, admin)
    await service.submit_rating(LEAGUE_ID, "ann", {"scoring": 6}, reviewer)
    player = await service.submit_rating(LEAGUE_ID, "Ann", {"scoring": 4}, reviewer)

    assert await actions(ledger) == [ActionKind.RATING_UPDATED, ActionKind.RATING_ADDED, ActionKind.PLAYER_ADDED]
    assert len(player.submissions) == 2
    assert player.scoring == 6.0

    [latest] = await ledger.list_entries(LEAGUE_ID, limit=1)
    assert latest.payload["reviewerId"] == reviewer.id
    assert latest.payload["playerName"] == "Ann"
    assert latest.payload["rating"] == player.rating


@pytest.mark.asyncio
async def test_out_of_range_rating_writes_nothing(service, store, ledger, admin):
    with pytest.raises(ValidationError):
        await service.submit_rating(LEAGUE_ID, "Ann", {"scoring": 11}, admin)

    assert await store.get(set_path(LEAGUE_ID, "default")) is None
    assert await actions(ledger) == []


@pytest.mark.asyncio
async def test_rename_cascades_everywhere(service, store, admin, reviewer):
    await add_roster(service, admin, "Jon", "Bo")
    await service.save_match(LEAGUE_ID, admin, ["Jon"], ["Bo"], 21, 12, mvp="Jon", played_at=PLAYED_AT)
    await service.cast_belt_vote(LEAGUE_ID, "motor", "jon", reviewer)
    await service.claim_player("user-9", LEAGUE_ID, "JON")
    await store.set(user_path("user-10"), {"claimedPlayers": [
        {"leagueId": "other", "playerName": "Jon", "status": "pending"},
    ]})

    await service.update_player(LEAGUE_ID, "jon", admin, new_name="John")

    state = await service.load_state(LEAGUE_ID)
    assert [p.name for p in state.players] == ["John", "Bo"]
    assert "Jon" not in state.leaderboard
    assert state.leaderboard["John"].counts() == (1, 0, 1)
    assert state.match_history[0].team_a == ["John"]
    assert state.match_history[0].mvp == "John"
    assert state.belt_votes == {reviewer.id: {"motor": "John"}}

    claims = (await store.get(user_path("user-9")))["claimedPlayers"]
    assert [(c["playerName"], c["status"]) for c in claims] == [("John", "pending")]
    # claims in other leagues are untouched
    other = (await store.get(user_path("user-10")))["claimedPlayers"]
    assert other[0]["playerName"] == "Jon"


@pytest.mark.asyncio
async def test_rename_onto_existing_player_is_rejected(service, admin):
    await add_roster(service, admin, "Jon", "Bo")
    with pytest.raises(DuplicatePlayerError):
        await service.update_player(LEAGUE_ID, "Jon", admin, new_name="bo")
    with pytest.raises(NotFoundError):
        await service.update_player(LEAGUE_ID, "Nobody", admin, new_name="X")


@pytest.mark.asyncio
async def test_unreadable_player_rows_survive_unrelated_writes(service, store, admin):
    legacy = {"name": "Legacy", "submissions": [{"submittedBy": "rev-1", "scoring": 0}]}
    orphan = {"name": "Orphan", "submissions": [{"scoring": 7}]}
    await store.set(set_path(LEAGUE_ID, "default"), {
        "players": [legacy, {"name": "Kept"}, orphan],
        "leaderboard": {},
        "matchHistory": [],
    })

    await service.add_player(LEAGUE_ID, "New", admin)

    stored = (await store.get(set_path(LEAGUE_ID, "default")))["players"]
    assert [row["name"] for row in stored] == ["Kept", "New", "Legacy", "Orphan"]
    assert stored[2] == legacy
    assert stored[3] == orphan

    state = await service.load_state(LEAGUE_ID)
    assert [p.name for p in state.players] == ["Kept", "New"]

    with pytest.raises(DuplicatePlayerError):
        await service.add_player(LEAGUE_ID, "legacy", admin)
    with pytest.raises(DuplicatePlayerError):
        await service.update_player(LEAGUE_ID, "Kept", admin, new_name="Orphan")
    with pytest.raises(ConsistencyError):
        await service.submit_rating(LEAGUE_ID, "Legacy", {"scoring": 6}, admin)


@pytest.mark.asyncio
async def test_delete_player_keeps_leaderboard_counters(service, ledger, admin):
    await add_roster(service, admin, "Ann", "Bo")
    await service.save_match(LEAGUE_ID, admin, ["Ann"], ["Bo"], 21, 5, played_at=PLAYED_AT)

    deleted = await service.delete_player(LEAGUE_ID, "ann", admin)

    state = await service.load_state(LEAGUE_ID)
    assert deleted.name == "Ann"
    assert [p.name for p in state.players] == ["Bo"]
    assert state.leaderboard["Ann"].wins == 1
    assert (await actions(ledger, limit=1)) == [ActionKind.PLAYER_DELETED]

    with pytest.raises(NotFoundError):
        await service.delete_player(LEAGUE_ID, "Ann", admin)


@pytest.mark.asyncio
async def test_save_match_validation_writes_nothing(service, ledger, admin):
    with pytest.raises(ValidationError):
        await service.save_match(LEAGUE_ID, admin, ["Ann"], ["Bo"], 21, "")
    with pytest.raises(ValidationError):
        await service.save_match(LEAGUE_ID, admin, ["Ann"], [], 21, 10)
    with pytest.raises(NotFoundError):
        await service.save_match(LEAGUE_ID, admin, ["Ann"], ["Bo"], 21, 10, matchup_index=3)

    assert await service.match_history(LEAGUE_ID) == []
    assert await actions(ledger) == []


@pytest.mark.asyncio
async def test_generated_matchup_flow(service, ledger, admin):
    await add_roster(service, admin, "Ann", "Bo", "Cy", "Di", "Ed")
    await service.set_player_active(LEAGUE_ID, "Ed", False, admin)

    result = await service.generate_teams(LEAGUE_ID, 2, admin)
    assert result.source == "local"
    assert len(result.teams) == 2
    assert len(result.matchups) == 1
    placed = {member["name"] for team in result.teams for member in team}
    assert placed == {"Ann", "Bo", "Cy", "Di"}

    team_a, team_b = result.matchups[0]
    match = await service.save_match(
        LEAGUE_ID, admin, team_a, team_b, 21, 15, mvp=team_a[0]["name"], matchup_index=0, completed=True
    )
    assert match.team_size == 2

    state = await service.load_state(LEAGUE_ID)
    assert state.scores == [{"a": 21, "b": 15, "processed": True}]
    assert state.mvp_votes == [team_a[0]["name"]]

    rematch = await service.create_rematch(LEAGUE_ID, 0, admin)
    assert rematch == result.matchups[0]
    state = await service.load_state(LEAGUE_ID)
    assert len(state.matchups) == 2
    assert state.scores[1] == {"a": None, "b": None, "processed": False}

    [rematch_entry] = await ledger.list_entries(LEAGUE_ID, actions=[ActionKind.REMATCH_CREATED])
    assert (rematch_entry.payload["originalScoreA"], rematch_entry.payload["originalScoreB"]) == (21, 15)

    with pytest.raises(NotFoundError):
        await service.create_rematch(LEAGUE_ID, 9, admin)


@pytest.mark.asyncio
async def test_default_log_view_hides_noisy_kinds(service, admin):
    await add_roster(service, admin, "Ann", "Bo")
    result = await service.generate_teams(LEAGUE_ID, 1, admin)
    team_a, team_b = result.matchups[0]
    await service.save_match(LEAGUE_ID, admin, team_a, team_b, 21, 19, matchup_index=0, completed=True)
    await service.create_rematch(LEAGUE_ID, 0, admin)

    visible = [entry.action for entry in await service.list_logs(LEAGUE_ID)]
    assert visible == [ActionKind.PLAYER_ADDED, ActionKind.PLAYER_ADDED]

    completed = await service.list_logs(LEAGUE_ID, action=ActionKind.MATCH_COMPLETED)
    assert len(completed) == 1
    assert completed[0].is_reversible


@pytest.mark.asyncio
async def test_reset_clears_standings_and_is_not_reversible(service, ledger, admin):
    await service.save_match(LEAGUE_ID, admin, ["Ann"], ["Bo"], 21, 5, played_at=PLAYED_AT)
    state = await service.reset_leaderboard(LEAGUE_ID, admin)

    assert len(state.leaderboard) == 0
    assert state.match_history == []

    [entry] = await ledger.list_entries(LEAGUE_ID, actions=[ActionKind.LEADERBOARD_RESET])
    assert entry.payload["clearedMatches"] == 1
    assert entry.undoable is False


@pytest.mark.asyncio
async def test_reconcile_repairs_drifted_leaderboard(service, store, ledger, admin):
    await service.save_match(LEAGUE_ID, admin, ["Ann"], ["Bo"], 21, 5, mvp="Ann", played_at=PLAYED_AT)

    state = await service.load_state(LEAGUE_ID)
    state.leaderboard = Leaderboard([
        LeaderboardEntry(name="Ann", wins=5, losses=0, mvps=1),
        LeaderboardEntry(name="Bo", wins=0, losses=1, mvps=0),
    ])
    await save_set(store, state)

    dry_run = await service.reconcile_leaderboard(LEAGUE_ID, admin, apply=False)
    assert [d.name for d in dry_run.discrepancies] == ["Ann"]
    assert (await service.load_state(LEAGUE_ID)).leaderboard["Ann"].wins == 5

    report = await service.reconcile_leaderboard(LEAGUE_ID, admin)
    assert not report.is_consistent
    assert (await service.load_state(LEAGUE_ID)).leaderboard["Ann"].wins == 1

    assert (await service.reconcile_leaderboard(LEAGUE_ID, admin)).is_consistent
    assert len(await ledger.list_entries(LEAGUE_ID, actions=[ActionKind.LEADERBOARD_RECONCILED])) == 1


@pytest.mark.asyncio
async def test_standings_sorted_with_badges(service, admin):
    await add_roster(service, admin, "Ann", "Bo", "Cy")
    for day in range(3):
        await service.save_match(
            LEAGUE_ID, admin, ["Bo"], ["Cy"], 21, 10, mvp="Bo",
            played_at=PLAYED_AT.replace(day=day + 1),
        )

    standings = await service.load_standings(LEAGUE_ID)

    assert [item["name"] for item in standings] == ["Bo", "Ann", "Cy"]
    bo = standings[0]
    assert (bo["wins"], bo["mvps"], bo["currentStreak"]) == (3, 3, 3)
    assert bo["badges"] == {}
    assert bo["progress"]["wins"]["nextThreshold"] == 25
    assert set(bo["progress"]) == {"gamesPlayed", "wins", "mvps", "winStreaks"}


@pytest.mark.asyncio
async def test_belt_vote_requires_rostered_player(service, reviewer):
    with pytest.raises(NotFoundError):
        await service.cast_belt_vote(LEAGUE_ID, "motor", "Ghost", reviewer)
