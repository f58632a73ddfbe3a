"""
Pydantic Schemas for the activity ledger

ActionKind is the closed set of actions a league can log. Legacy
spellings found in older log rows are mapped on read.
"""
from datetime import datetime
from enum import Enum as PyEnum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from onball.schemas.league import Leaderboard, MatchRecord, Player, ensure_aware


class ActionKind(str, PyEnum):
    PLAYER_ADDED = "player_added"
    PLAYER_UPDATED = "player_updated"
    PLAYER_DELETED = "player_deleted"
    PLAYER_ACTIVE_CHANGED = "player_active_changed"
    RATING_ADDED = "rating_added"
    RATING_UPDATED = "rating_updated"
    MATCH_SAVED = "match_saved"
    MATCH_COMPLETED = "match_completed"
    REMATCH_CREATED = "rematch_created"
    TEAMS_GENERATED = "teams_generated"
    LEADERBOARD_RESET = "leaderboard_reset"
    LEADERBOARD_RECONCILED = "leaderboard_reconciled"
    BELT_VOTE_CAST = "belt_vote_cast"
    SCHEMA_INITIALIZED = "schema_initialized"
    LOG_DELETED = "log_deleted"

    @classmethod
    def _missing_(cls, value):
        alias = LEGACY_ACTION_ALIASES.get(value)
        if alias is not None:
            return cls(alias)
        return None


LEGACY_ACTION_ALIASES: Dict[str, str] = {
    "player_rating_added": "rating_added",
    "player_rating_updated": "rating_updated",
    "player_rating_changed": "rating_updated",
    "match_result_saved": "match_saved",
}

REVERSIBLE_ACTIONS = frozenset({
    ActionKind.PLAYER_ADDED,
    ActionKind.RATING_ADDED,
    ActionKind.RATING_UPDATED,
    ActionKind.MATCH_SAVED,
    ActionKind.MATCH_COMPLETED,
})

MATCH_ACTIONS = frozenset({ActionKind.MATCH_SAVED, ActionKind.MATCH_COMPLETED})

# Hidden from the default "all" log view
NOISY_ACTIONS = frozenset({
    ActionKind.MATCH_COMPLETED,
    ActionKind.TEAMS_GENERATED,
    ActionKind.REMATCH_CREATED,
})


class Actor(BaseModel):
    """Who performed an action. Identity is supplied by the caller."""
    id: str = "unknown"
    name: str = "Anonymous"


SYSTEM_ACTOR = Actor(id="system", name="System")


class LedgerEntry(BaseModel):
    """Read model for one `league_activity_logs` row."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    id: str
    league_id: str
    action: ActionKind
    actor_id: str
    actor_name: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    undoable: bool = False
    timestamp: datetime

    @field_validator("action", mode="before")
    @classmethod
    def _legacy_action(cls, value: Any) -> Any:
        if isinstance(value, str):
            return ActionKind(value)
        return value

    @field_validator("timestamp")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return ensure_aware(value)

    @property
    def is_reversible(self) -> bool:
        return self.undoable and self.action in REVERSIBLE_ACTIONS


class ReversalResult(BaseModel):
    """Refreshed league state handed back to the caller after a reversal."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    reversed_entry_id: str
    reversed_action: ActionKind
    players: List[Player]
    leaderboard: Leaderboard
    match_history: List[MatchRecord]
    warnings: List[str] = Field(default_factory=list)
    log_entry: Optional[LedgerEntry] = None
