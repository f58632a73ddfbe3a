"""
onball/services/match_normalizer.py
Match history normalization

Match rows have been stored in two shapes over the life of the app:

- team-array:   {"teams": [[...], [...]], "score": {"a": 3, "b": 1}, ...}
- named-field:  {"teamA": [...], "teamB": [...], "score": {...}, ...}

Older rows may also carry flat scoreA/scoreB, roster entries as
{"name": ...} objects, and the soft-delete fields isDeleted / deletedDate /
deletedBy / deletionReason / originalDate. Everything is folded into one
MatchRecord here so no other module has to know about the old shapes.

Side-effect free.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional, Union

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from onball.schemas.league import (
    MAX_INFERRED_TEAM_SIZE,
    ActiveState,
    MatchLifecycle,
    MatchRecord,
    Score,
    VoidedState,
    canonical_key,
    ensure_aware,
    utcnow,
)

logger = logging.getLogger(__name__)

_lifecycle_adapter = TypeAdapter(MatchLifecycle)

PLAYED_AT_FIELDS = ("playedAt", "originalDate", "date", "customDate")

# Epoch values above this are milliseconds
_EPOCH_MS_THRESHOLD = 100_000_000_000


def parse_score_value(value: Any) -> Optional[int]:
    """Integer score from an int or numeric string; anything else is missing."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError:
                return None
            return int(number) if number.is_integer() else None
    return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Accepts datetimes, ISO-8601 strings, epoch seconds/milliseconds and
    stored timestamp objects ({"seconds": ...} / {"_seconds": ...}).
    Naive results are taken as UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > _EPOCH_MS_THRESHOLD else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, Mapping):
        seconds = value.get("seconds", value.get("_seconds"))
        if seconds is None:
            return None
        return parse_timestamp(seconds)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return ensure_aware(datetime.fromisoformat(text))
        except ValueError:
            logger.debug(f"Unparseable match timestamp: {value!r}")
            return None
    return None


def _roster(raw: Any) -> List[str]:
    if not isinstance(raw, (list, tuple)):
        return []
    names = []
    for member in raw:
        if isinstance(member, Mapping):
            member = member.get("name")
        if member is None:
            continue
        name = str(member).strip()
        if name:
            names.append(name)
    return names


def _rosters(raw: Mapping[str, Any]):
    teams = raw.get("teams")
    if isinstance(teams, (list, tuple)) and len(teams) >= 2:
        return _roster(teams[0]), _roster(teams[1])
    return _roster(raw.get("teamA")), _roster(raw.get("teamB"))


def _score(raw: Mapping[str, Any]) -> Score:
    score = raw.get("score")
    a = b = None
    if isinstance(score, Mapping):
        a = parse_score_value(score.get("a"))
        b = parse_score_value(score.get("b"))
    if a is None:
        a = parse_score_value(raw.get("scoreA"))
    if b is None:
        b = parse_score_value(raw.get("scoreB"))
    return Score(a=a, b=b)


def _mvp(raw: Mapping[str, Any]) -> Optional[str]:
    mvp = raw.get("mvp")
    if isinstance(mvp, Mapping):
        mvp = mvp.get("name")
    if mvp is None:
        return None
    mvp = str(mvp).strip()
    return mvp or None


def _team_size(raw: Mapping[str, Any], team_a: List[str], team_b: List[str]) -> int:
    explicit = parse_score_value(raw.get("teamSize"))
    if explicit is not None and explicit >= 1:
        return explicit
    inferred = min(max(len(team_a), len(team_b)), MAX_INFERRED_TEAM_SIZE)
    return max(inferred, 1)


def _played_at(raw: Mapping[str, Any]) -> Optional[datetime]:
    for field in PLAYED_AT_FIELDS:
        parsed = parse_timestamp(raw.get(field))
        if parsed is not None:
            return parsed
    return None


def _lifecycle(raw: Mapping[str, Any]) -> Union[ActiveState, VoidedState]:
    explicit = raw.get("lifecycle")
    if isinstance(explicit, Mapping):
        try:
            return _lifecycle_adapter.validate_python(dict(explicit))
        except PydanticValidationError as e:
            logger.warning(f"Ignoring malformed match lifecycle {explicit!r}: {e}")

    if raw.get("isDeleted"):
        return VoidedState(
            voided_at=parse_timestamp(raw.get("deletedDate")) or utcnow(),
            voided_by=str(raw.get("deletedBy") or "unknown"),
            reason=str(raw.get("deletionReason") or ""),
        )
    return ActiveState()


def normalize(raw: Union[MatchRecord, Mapping[str, Any]]) -> MatchRecord:
    """Fold one stored match row (either shape) into a MatchRecord."""
    if isinstance(raw, MatchRecord):
        return raw.model_copy(deep=True)

    team_a, team_b = _rosters(raw)
    fields = dict(
        team_a=team_a,
        team_b=team_b,
        score=_score(raw),
        mvp=_mvp(raw),
        team_size=_team_size(raw, team_a, team_b),
        played_at=_played_at(raw),
        processed=bool(raw.get("processed", False)),
        lifecycle=_lifecycle(raw),
    )
    if raw.get("id"):
        fields["id"] = str(raw["id"])
    return MatchRecord(**fields)


def normalize_history(raw_list: Optional[Iterable[Any]]) -> List[MatchRecord]:
    """Normalize a stored history list, keeping its order."""
    records = []
    for raw in raw_list or []:
        if isinstance(raw, (MatchRecord, Mapping)):
            records.append(normalize(raw))
        else:
            logger.warning(f"Skipping match history row of type {type(raw).__name__}")
    return records


def rosters_equal(record: MatchRecord, team_a: Iterable[str], team_b: Iterable[str]) -> bool:
    """Roster set-equality under either side assignment."""
    side_a = {canonical_key(name) for name in team_a}
    side_b = {canonical_key(name) for name in team_b}
    record_a = {canonical_key(name) for name in record.team_a}
    record_b = {canonical_key(name) for name in record.team_b}
    return (record_a == side_a and record_b == side_b) or (record_a == side_b and record_b == side_a)


def scores_equal(record: MatchRecord, other: MatchRecord) -> bool:
    """Exact score equality, allowing the sides to be swapped with the rosters."""
    if rosters_equal(record, other.team_a, other.team_b):
        same_sides = {canonical_key(n) for n in record.team_a} == {canonical_key(n) for n in other.team_a}
        if same_sides and record.score.a == other.score.a and record.score.b == other.score.b:
            return True
        swapped_sides = {canonical_key(n) for n in record.team_a} == {canonical_key(n) for n in other.team_b}
        if swapped_sides and record.score.a == other.score.b and record.score.b == other.score.a:
            return True
    return False
