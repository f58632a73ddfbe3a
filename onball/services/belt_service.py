"""
onball/services/belt_service.py
Belt voting standings

Each voter holds at most one vote per belt:
    beltVotes   = {voterId: {beltId: playerName}}
    beltHolders = {beltId: {"playerName": str, "votes": int}}

Championship rules:
- A vacant belt goes to the top vote-getter once they reach BELT_MIN_VOTES
- A holder keeps the belt until someone has strictly more votes
"""
import logging
from typing import Any, Dict, Optional

from onball.config.settings import BELT_MIN_VOTES
from onball.exceptions import ValidationError
from onball.schemas.league import canonical_key

logger = logging.getLogger(__name__)


BELT_CATEGORIES: Dict[str, Dict[str, Any]] = {
    # Negative belts
    "snowflake": {"name": "Flake", "negative": True},
    "toiletPaper": {"name": "Soft", "negative": True},
    "hog": {"name": "Ball Hog", "negative": True},
    "brickLayer": {"name": "Brick Layer", "negative": True},
    # Positive belts
    "bullseye": {"name": "Sharp Shooter", "negative": False},
    "general": {"name": "General", "negative": False},
    "warrior": {"name": "Warrior", "negative": False},
    "clutchGene": {"name": "Clutch", "negative": False},
    "motor": {"name": "Motor", "negative": False},
    "infinityGauntlet": {"name": "Has It All", "negative": False},
}


def count_votes(belt_votes: Dict[str, Dict[str, str]]) -> Dict[str, Dict[str, Dict[str, Any]]]:
    """
    Tally votes per belt by canonical player key.

    Returns {beltId: {key: {"playerName": first display name seen, "votes": n}}}
    """
    tallies: Dict[str, Dict[str, Dict[str, Any]]] = {belt_id: {} for belt_id in BELT_CATEGORIES}
    for ballot in (belt_votes or {}).values():
        if not isinstance(ballot, dict):
            continue
        for belt_id, player_name in ballot.items():
            if belt_id not in BELT_CATEGORIES or not isinstance(player_name, str):
                continue
            key = canonical_key(player_name)
            if not key:
                continue
            tally = tallies[belt_id].setdefault(key, {"playerName": player_name.strip(), "votes": 0})
            tally["votes"] += 1
    return tallies


def calculate_belt_standings(
    belt_votes: Dict[str, Dict[str, str]],
    current_holders: Optional[Dict[str, Any]] = None,
    min_votes: int = BELT_MIN_VOTES,
) -> Dict[str, Any]:
    current_holders = current_holders or {}
    holders = dict(current_holders)

    for belt_id, tally in count_votes(belt_votes).items():
        top: Optional[Dict[str, Any]] = None
        for candidate in tally.values():
            # First to the highest count wins ties
            if top is None or candidate["votes"] > top["votes"]:
                top = candidate

        holder = current_holders.get(belt_id)
        if not holder:
            if top is not None and top["votes"] >= min_votes:
                holders[belt_id] = {"playerName": top["playerName"], "votes": top["votes"]}
            continue

        holder_key = canonical_key(holder.get("playerName"))
        holder_votes = tally.get(holder_key, {}).get("votes", 0)
        holders[belt_id] = {**holder, "votes": holder_votes}

        if top is not None and canonical_key(top["playerName"]) != holder_key and top["votes"] > holder_votes:
            logger.info(f"Belt {belt_id}: {top['playerName']} takes it from {holder.get('playerName')}")
            holders[belt_id] = {"playerName": top["playerName"], "votes": top["votes"]}

    return holders


def cast_vote(
    belt_votes: Dict[str, Dict[str, str]],
    voter_id: str,
    belt_id: str,
    player_name: Optional[str],
) -> Dict[str, Dict[str, str]]:
    """Record (or with no player name, withdraw) one voter's vote for a belt."""
    if belt_id not in BELT_CATEGORIES:
        raise ValidationError(f"Unknown belt '{belt_id}'", details={"beltId": belt_id})

    votes = {voter: dict(ballot) for voter, ballot in (belt_votes or {}).items()}
    ballot = votes.setdefault(voter_id, {})
    if player_name and player_name.strip():
        ballot[belt_id] = player_name.strip()
    else:
        ballot.pop(belt_id, None)
        if not ballot:
            votes.pop(voter_id)
    return votes


def rename_in_belts(
    belt_votes: Dict[str, Dict[str, str]],
    belt_holders: Dict[str, Any],
    old_name: str,
    new_name: str,
) -> None:
    """Rewrite a player's name in votes and holders (in place)."""
    old_key = canonical_key(old_name)
    new_name = new_name.strip()
    for ballot in belt_votes.values():
        if not isinstance(ballot, dict):
            continue
        for belt_id, player_name in list(ballot.items()):
            if isinstance(player_name, str) and canonical_key(player_name) == old_key:
                ballot[belt_id] = new_name
    for holder in belt_holders.values():
        if isinstance(holder, dict) and canonical_key(holder.get("playerName")) == old_key:
            holder["playerName"] = new_name
