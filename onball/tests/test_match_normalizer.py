"""
Match Normalizer Tests

Coverage:
- Both stored shapes fold to the same record
- Roster entries as strings or {name} objects, blanks dropped
- Score parsing and the flat scoreA/scoreB fallback
- teamSize inference
- playedAt field precedence and timestamp formats
- Legacy soft-delete fields map to the Voided lifecycle
"""
from datetime import datetime, timezone

import pytest

from onball.schemas.league import ActiveState, MatchRecord, VoidedState, canonical_key
from onball.services.match_normalizer import (
    normalize,
    normalize_history,
    parse_score_value,
    parse_timestamp,
    rosters_equal,
)


def test_canonical_key_trims_and_lowercases():
    assert canonical_key("  Jordan ") == "jordan"
    assert canonical_key("JORDAN") == canonical_key("jordan")
    assert canonical_key(None) == ""


def test_team_array_and_named_field_shapes_agree():
    team_array = normalize({
        "teams": [[{"name": "Ann"}, {"name": "Bo"}], [{"name": "Cy"}, {"name": "Di"}]],
        "score": {"a": 21, "b": 15},
        "mvp": "Ann",
        "date": "2024-03-01T18:00:00Z",
    })
    named = normalize({
        "teamA": ["Ann", "Bo"],
        "teamB": ["Cy", "Di"],
        "score": {"a": "21", "b": "15"},
        "mvp": "Ann",
        "playedAt": "2024-03-01T18:00:00+00:00",
    })

    for record in (team_array, named):
        assert record.team_a == ["Ann", "Bo"]
        assert record.team_b == ["Cy", "Di"]
        assert record.score.a == 21
        assert record.score.b == 15
        assert record.mvp == "Ann"
        assert record.team_size == 2
        assert record.played_at == datetime(2024, 3, 1, 18, 0, tzinfo=timezone.utc)
        assert record.is_active


def test_blank_roster_names_are_dropped():
    record = normalize({"teamA": ["Ann", "  ", {"name": ""}, None], "teamB": [{"name": " Bo "}]})
    assert record.team_a == ["Ann"]
    assert record.team_b == ["Bo"]


def test_unparseable_score_is_missing():
    record = normalize({"teamA": ["Ann"], "teamB": ["Bo"], "score": {"a": "", "b": "abc"}})
    assert record.score.a is None
    assert record.score.b is None
    assert not record.is_scored


def test_flat_score_fallback():
    record = normalize({"teamA": ["Ann"], "teamB": ["Bo"], "scoreA": 11, "scoreB": "9"})
    assert (record.score.a, record.score.b) == (11, 9)


@pytest.mark.parametrize("value,expected", [
    (7, 7),
    ("12", 12),
    (" 3 ", 3),
    ("4.0", 4),
    (4.5, None),
    (True, None),
    (None, None),
    ("", None),
])
def test_parse_score_value(value, expected):
    assert parse_score_value(value) == expected


def test_team_size_inferred_and_capped():
    small = normalize({"teamA": ["A", "B", "C"], "teamB": ["D", "E"]})
    assert small.team_size == 3

    bench = normalize({"teamA": [f"P{i}" for i in range(7)], "teamB": [f"Q{i}" for i in range(6)]})
    assert bench.team_size == 5

    explicit = normalize({"teamA": ["A"], "teamB": ["B"], "teamSize": 3})
    assert explicit.team_size == 3


def test_blank_mvp_is_none():
    assert normalize({"teamA": ["A"], "teamB": ["B"], "mvp": "   "}).mvp is None


def test_played_at_precedence():
    record = normalize({
        "teamA": ["A"],
        "teamB": ["B"],
        "originalDate": "2024-01-02T00:00:00Z",
        "date": "2024-05-05T00:00:00Z",
    })
    assert record.played_at == datetime(2024, 1, 2, tzinfo=timezone.utc)


def test_timestamp_formats():
    expected = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert parse_timestamp("2024-01-01T00:00:00") == expected
    assert parse_timestamp(expected.timestamp()) == expected
    assert parse_timestamp(expected.timestamp() * 1000) == expected
    assert parse_timestamp({"seconds": int(expected.timestamp()), "nanoseconds": 0}) == expected
    assert parse_timestamp("not a date") is None
    assert parse_timestamp(datetime(2024, 1, 1)).tzinfo is not None


def test_legacy_soft_delete_maps_to_voided():
    record = normalize({
        "teamA": ["A"],
        "teamB": ["B"],
        "score": {"a": 21, "b": 10},
        "date": "2024-02-01T00:00:00Z",
        "isDeleted": True,
        "deletedDate": "2024-02-10T00:00:00Z",
        "deletedBy": "admin-1",
        "deletionReason": "entered twice",
    })
    assert isinstance(record.lifecycle, VoidedState)
    assert record.lifecycle.voided_by == "admin-1"
    assert record.lifecycle.reason == "entered twice"
    assert record.lifecycle.voided_at == datetime(2024, 2, 10, tzinfo=timezone.utc)
    # voiding never moves the match in time
    assert record.played_at == datetime(2024, 2, 1, tzinfo=timezone.utc)


def test_persisted_record_round_trips_through_normalize():
    original = MatchRecord(team_a=["A"], team_b=["B"], played_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    original.score.a, original.score.b = 3, 1
    original.void(voided_by="admin", reason="typo")

    restored = normalize(original.to_document())
    assert restored.id == original.id
    assert isinstance(restored.lifecycle, VoidedState)
    assert restored.score.a == 3
    assert restored.played_at == original.played_at


def test_normalize_history_skips_junk_and_keeps_order():
    history = normalize_history([
        {"teamA": ["A"], "teamB": ["B"], "score": {"a": 1, "b": 0}},
        "garbage",
        {"teams": [["C"], ["D"]], "score": {"a": 0, "b": 1}},
    ])
    assert [record.team_a for record in history] == [["A"], ["C"]]
    assert all(isinstance(record.lifecycle, ActiveState) for record in history)


def test_rosters_equal_either_side_assignment():
    record = normalize({"teamA": ["Ann", "Bo"], "teamB": ["Cy"]})
    assert rosters_equal(record, ["bo", "ANN"], ["cy"])
    assert rosters_equal(record, ["Cy"], ["Bo", "Ann"])
    assert not rosters_equal(record, ["Ann"], ["Cy"])
