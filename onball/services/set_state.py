"""
onball/services/set_state.py
Typed view of a `league/{id}/set/{setId}` document

All per-league mutable state lives in the one set document and every
operation writes it back in a single overwrite. Keys this module does
not know about are carried through untouched.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from onball.schemas.league import Leaderboard, MatchRecord, Player, canonical_key
from onball.services.document_store import DocumentStore, set_path
from onball.services.match_normalizer import normalize_history

logger = logging.getLogger(__name__)


KNOWN_KEYS = (
    "players",
    "teams",
    "matchups",
    "scores",
    "mvpVotes",
    "leaderboard",
    "matchHistory",
    "beltVotes",
    "beltHolders",
)


def empty_set_document() -> Dict[str, Any]:
    return {
        "players": [],
        "teams": [],
        "matchups": [],
        "scores": [],
        "mvpVotes": [],
        "leaderboard": {},
        "matchHistory": [],
        "beltVotes": {},
        "beltHolders": {},
    }


def _players(raw: Any) -> Tuple[List[Player], List[Any]]:
    """Readable players, plus the rows that fail validation kept verbatim."""
    players, unreadable = [], []
    for item in raw or []:
        if not isinstance(item, dict):
            logger.warning(f"Keeping unreadable player row of type {type(item).__name__} as-is")
            unreadable.append(item)
            continue
        try:
            players.append(Player.model_validate(item))
        except PydanticValidationError as e:
            logger.warning(f"Keeping unreadable player row {item.get('name')!r} as-is: {e.error_count()} error(s)")
            unreadable.append(item)
    return players, unreadable


@dataclass
class SetState:
    league_id: str
    set_id: str
    players: List[Player] = field(default_factory=list)
    leaderboard: Leaderboard = field(default_factory=Leaderboard)
    match_history: List[MatchRecord] = field(default_factory=list)
    teams: List[Any] = field(default_factory=list)
    matchups: List[Any] = field(default_factory=list)
    scores: List[Any] = field(default_factory=list)
    mvp_votes: List[Any] = field(default_factory=list)
    belt_votes: Dict[str, Dict[str, str]] = field(default_factory=dict)
    belt_holders: Dict[str, Any] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)
    # Stored player rows that do not validate; written back unchanged
    unreadable_players: List[Any] = field(default_factory=list)

    @property
    def path(self) -> str:
        return set_path(self.league_id, self.set_id)

    @classmethod
    def from_document(cls, league_id: str, set_id: str, doc: Dict[str, Any]) -> "SetState":
        doc = doc or {}
        players, unreadable_players = _players(doc.get("players"))
        return cls(
            league_id=league_id,
            set_id=set_id,
            players=players,
            leaderboard=Leaderboard.from_document(doc.get("leaderboard")),
            match_history=normalize_history(doc.get("matchHistory")),
            teams=list(doc.get("teams") or []),
            matchups=list(doc.get("matchups") or []),
            scores=list(doc.get("scores") or []),
            mvp_votes=list(doc.get("mvpVotes") or []),
            belt_votes=dict(doc.get("beltVotes") or {}),
            belt_holders=dict(doc.get("beltHolders") or {}),
            extra={key: value for key, value in doc.items() if key not in KNOWN_KEYS},
            unreadable_players=unreadable_players,
        )

    def unreadable_player(self, name: str) -> Optional[Dict[str, Any]]:
        """The unreadable stored row carrying `name`, if any."""
        key = canonical_key(name)
        for row in self.unreadable_players:
            if isinstance(row, dict) and canonical_key(row.get("name")) == key:
                return row
        return None

    def to_document(self) -> Dict[str, Any]:
        doc = dict(self.extra)
        doc.update(
            players=[player.to_document() for player in self.players] + list(self.unreadable_players),
            teams=self.teams,
            matchups=self.matchups,
            scores=self.scores,
            mvpVotes=self.mvp_votes,
            leaderboard=self.leaderboard.to_document(),
            matchHistory=[match.to_document() for match in self.match_history],
            beltVotes=self.belt_votes,
            beltHolders=self.belt_holders,
        )
        return doc


async def load_set(store: DocumentStore, league_id: str, set_id: str) -> SetState:
    """Read a set document; a missing document reads as an empty set."""
    doc = await store.get(set_path(league_id, set_id))
    if doc is None:
        logger.debug(f"Set {set_id} of league {league_id} not found; using empty state")
    return SetState.from_document(league_id, set_id, doc or {})


async def save_set(store: DocumentStore, state: SetState) -> None:
    await store.set(state.path, state.to_document())
