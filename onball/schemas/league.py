"""
Pydantic Schemas for persisted league state

Players, rating submissions, canonical match records and leaderboard
entries as stored in `league/{id}/set/{setId}` documents. Documents are
written with camelCase keys; legacy key spellings are accepted on read.
"""
import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Iterator, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


ATTRIBUTES: Tuple[str, ...] = (
    "scoring",
    "defense",
    "rebounding",
    "playmaking",
    "stamina",
    "physicality",
    "xfactor",
)

DEFAULT_ATTRIBUTE_VALUE = 5.0

# Teams larger than this only appear in legacy rows with bench players
MAX_INFERRED_TEAM_SIZE = 5


def canonical_key(name: Optional[str]) -> str:
    """Normalized player key used for every equality and lookup."""
    if name is None:
        return ""
    return str(name).strip().lower()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps are taken as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class DocumentModel(BaseModel):
    """Base for document-backed models (camelCase on the wire)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ============================================================================
# Players & rating submissions
# ============================================================================

class Submission(DocumentModel):
    """One reviewer's rating of a player. At most one live per reviewer."""
    reviewer_id: str
    reviewer_name: Optional[str] = None
    scoring: float = Field(DEFAULT_ATTRIBUTE_VALUE, ge=1, le=10)
    defense: float = Field(DEFAULT_ATTRIBUTE_VALUE, ge=1, le=10)
    rebounding: float = Field(DEFAULT_ATTRIBUTE_VALUE, ge=1, le=10)
    playmaking: float = Field(DEFAULT_ATTRIBUTE_VALUE, ge=1, le=10)
    stamina: float = Field(DEFAULT_ATTRIBUTE_VALUE, ge=1, le=10)
    physicality: float = Field(DEFAULT_ATTRIBUTE_VALUE, ge=1, le=10)
    xfactor: float = Field(DEFAULT_ATTRIBUTE_VALUE, ge=1, le=10)
    submitted_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="before")
    @classmethod
    def _legacy_keys(cls, data: Any) -> Any:
        # Older rows: submittedBy / submittedByName / submissionDate
        if isinstance(data, dict):
            data = dict(data)
            if "reviewerId" not in data and "reviewer_id" not in data and "submittedBy" in data:
                data["reviewerId"] = data.pop("submittedBy")
            if "reviewerName" not in data and "submittedByName" in data:
                data["reviewerName"] = data.pop("submittedByName")
            if "submittedAt" not in data and "submissionDate" in data:
                data["submittedAt"] = data.pop("submissionDate")
            for attribute in ATTRIBUTES:
                if data.get(attribute) is None:
                    data.pop(attribute, None)
        return data

    @field_validator("submitted_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return ensure_aware(value)

    def attributes(self) -> Dict[str, float]:
        return {attribute: getattr(self, attribute) for attribute in ATTRIBUTES}


class Player(DocumentModel):
    """
    League roster entry.

    Attribute values are derived from the live submissions; `rating` is
    their weighted average. Unknown document fields are preserved.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    name: str
    active: bool = True
    scoring: float = DEFAULT_ATTRIBUTE_VALUE
    defense: float = DEFAULT_ATTRIBUTE_VALUE
    rebounding: float = DEFAULT_ATTRIBUTE_VALUE
    playmaking: float = DEFAULT_ATTRIBUTE_VALUE
    stamina: float = DEFAULT_ATTRIBUTE_VALUE
    physicality: float = DEFAULT_ATTRIBUTE_VALUE
    xfactor: float = DEFAULT_ATTRIBUTE_VALUE
    submissions: List[Submission] = Field(default_factory=list)
    rating: float = DEFAULT_ATTRIBUTE_VALUE

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("player name cannot be empty")
        return value

    @property
    def key(self) -> str:
        return canonical_key(self.name)

    def attributes(self) -> Dict[str, float]:
        return {attribute: getattr(self, attribute) for attribute in ATTRIBUTES}


# ============================================================================
# Match records
# ============================================================================

class Score(DocumentModel):
    a: Optional[int] = None
    b: Optional[int] = None

    @property
    def is_complete(self) -> bool:
        return self.a is not None and self.b is not None


class ActiveState(DocumentModel):
    state: Literal["active"] = "active"


class VoidedState(DocumentModel):
    state: Literal["voided"] = "voided"
    voided_at: datetime
    voided_by: str
    reason: str

    @field_validator("voided_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return ensure_aware(value)


MatchLifecycle = Annotated[Union[ActiveState, VoidedState], Field(discriminator="state")]


class MatchRecord(DocumentModel):
    """
    Canonical in-memory and persisted match shape.

    Built by the match normalizer from either historical shape. A voided
    record keeps its original `played_at` so chronological folds do not
    depend on when the void happened.
    """
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    team_a: List[str] = Field(default_factory=list)
    team_b: List[str] = Field(default_factory=list)
    score: Score = Field(default_factory=Score)
    mvp: Optional[str] = None
    team_size: int = 1
    played_at: Optional[datetime] = None
    processed: bool = False
    lifecycle: MatchLifecycle = Field(default_factory=ActiveState)

    @field_validator("played_at")
    @classmethod
    def _aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(value)

    @property
    def is_active(self) -> bool:
        return isinstance(self.lifecycle, ActiveState)

    @property
    def is_voided(self) -> bool:
        return isinstance(self.lifecycle, VoidedState)

    @property
    def is_scored(self) -> bool:
        return self.score.is_complete

    @property
    def is_tie(self) -> bool:
        return self.is_scored and self.score.a == self.score.b

    def side_of(self, name: str) -> Optional[str]:
        key = canonical_key(name)
        if any(canonical_key(member) == key for member in self.team_a):
            return "a"
        if any(canonical_key(member) == key for member in self.team_b):
            return "b"
        return None

    def won(self, name: str) -> bool:
        """True iff the player's roster strictly outscored the other."""
        if not self.is_scored:
            return False
        side = self.side_of(name)
        if side == "a":
            return self.score.a > self.score.b
        if side == "b":
            return self.score.b > self.score.a
        return False

    def decided_rosters(self) -> Optional[Tuple[List[str], List[str]]]:
        """(winners, losers), or None for a tie or an unscored match."""
        if not self.is_scored or self.is_tie:
            return None
        if self.score.a > self.score.b:
            return self.team_a, self.team_b
        return self.team_b, self.team_a

    def void(self, voided_by: str, reason: str, voided_at: Optional[datetime] = None) -> None:
        self.lifecycle = VoidedState(
            voided_at=voided_at or utcnow(),
            voided_by=voided_by,
            reason=reason,
        )


# ============================================================================
# Leaderboard
# ============================================================================

class LeaderboardEntry(DocumentModel):
    name: str
    wins: int = Field(0, ge=0)
    losses: int = Field(0, ge=0)
    mvps: int = Field(0, ge=0)

    @property
    def games_played(self) -> int:
        return self.wins + self.losses

    def counts(self) -> Tuple[int, int, int]:
        return self.wins, self.losses, self.mvps

    @classmethod
    def from_raw(cls, name: str, raw: Dict[str, Any]) -> "LeaderboardEntry":
        """Accepts both {wins, losses, mvps} and legacy {_w, _l, MVPs}."""
        raw = raw or {}
        return cls(
            name=name,
            wins=int(raw.get("wins", raw.get("_w", 0)) or 0),
            losses=int(raw.get("losses", raw.get("_l", 0)) or 0),
            mvps=int(raw.get("mvps", raw.get("MVPs", 0)) or 0),
        )


class Leaderboard:
    """
    Per-player win/loss/MVP counters indexed by canonical key.

    Lookups accept any spelling of a name; the display name lives in the
    entry. Persisted as {displayName: {wins, losses, mvps}}.
    """

    def __init__(self, entries: Optional[List[LeaderboardEntry]] = None):
        self._entries: Dict[str, LeaderboardEntry] = {}
        for entry in entries or []:
            self._merge(entry)

    def _merge(self, entry: LeaderboardEntry) -> None:
        key = canonical_key(entry.name)
        if not key:
            return
        existing = self._entries.get(key)
        if existing is None:
            self._entries[key] = entry.model_copy()
            return
        existing.wins += entry.wins
        existing.losses += entry.losses
        existing.mvps += entry.mvps

    def __getitem__(self, name: str) -> LeaderboardEntry:
        return self._entries[canonical_key(name)]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and canonical_key(name) in self._entries

    def __iter__(self) -> Iterator[LeaderboardEntry]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        # A missing entry and an all-zero entry are the same standing
        if not isinstance(other, Leaderboard):
            return NotImplemented
        return self.nonzero_counts() == other.nonzero_counts()

    def __repr__(self) -> str:
        return f"<Leaderboard({len(self)} players)>"

    def get(self, name: str) -> Optional[LeaderboardEntry]:
        return self._entries.get(canonical_key(name))

    def touch(self, name: str) -> LeaderboardEntry:
        """Return the entry for `name`, creating a zeroed one on first touch."""
        key = canonical_key(name)
        entry = self._entries.get(key)
        if entry is None:
            entry = LeaderboardEntry(name=name.strip())
            self._entries[key] = entry
        return entry

    def remove(self, name: str) -> Optional[LeaderboardEntry]:
        return self._entries.pop(canonical_key(name), None)

    def rename(self, old_name: str, new_name: str) -> bool:
        entry = self._entries.pop(canonical_key(old_name), None)
        if entry is None:
            return False
        entry.name = new_name.strip()
        self._entries[canonical_key(new_name)] = entry
        return True

    def counts(self) -> Dict[str, Tuple[int, int, int]]:
        return {key: entry.counts() for key, entry in self._entries.items()}

    def nonzero_counts(self) -> Dict[str, Tuple[int, int, int]]:
        return {key: counts for key, counts in self.counts().items() if any(counts)}

    def copy(self) -> "Leaderboard":
        return Leaderboard([entry.model_copy() for entry in self._entries.values()])

    @classmethod
    def from_document(cls, raw: Optional[Dict[str, Any]]) -> "Leaderboard":
        return cls([
            LeaderboardEntry.from_raw(name, values)
            for name, values in (raw or {}).items()
            if isinstance(values, dict)
        ])

    def to_document(self) -> Dict[str, Dict[str, int]]:
        return {
            entry.name: {"wins": entry.wins, "losses": entry.losses, "mvps": entry.mvps}
            for entry in self._entries.values()
        }
