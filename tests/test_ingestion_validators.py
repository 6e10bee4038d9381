"""Unit tests for ingestion payload validators and the data loader."""

import datetime as dt
import json

import pandas as pd
import pytest
import pytz

from pickengine.data.ingestion.validators import (
    validate_games_payload,
    validate_snapshot_frame,
    validate_teams_payload,
)
from pickengine.data.loader import DataLoader, local_game_date
from pickengine.data.sample import UNKNOWN_TEAM, generate_league
from pickengine.data.team_name_resolver import TeamNameResolver
from pickengine.errors import SchemaValidationError
from pickengine.models.sport import Sport
from pickengine.models.team import Team


def _game_row(**overrides):
    row = {"game_id": "g1", "home": "Duke", "away": "North Carolina", "date": "2024-01-10", "total": 141.5}
    row.update(overrides)
    return row


def test_validate_teams_payload_ok():
    payload = {"teams": [{"team_id": "duke", "name": "Duke", "aliases": ["Duke Blue Devils"]}]}
    assert validate_teams_payload(payload) == []


def test_validate_teams_payload_missing_field():
    errors = validate_teams_payload({"teams": [{"team_id": "duke"}]})
    assert errors
    assert "missing fields" in errors[0]


def test_validate_teams_payload_duplicate_id():
    payload = {"teams": [{"team_id": "duke", "name": "Duke"}, {"team_id": "duke", "name": "Duke II"}]}
    assert "duplicate team_id" in validate_teams_payload(payload)[0]


def test_validate_games_payload_ok():
    payload = {"sport": "NCAAMB", "games": [_game_row(home_score=70, away_score=68)]}
    assert validate_games_payload(payload) == []


def test_validate_games_payload_unknown_sport():
    errors = validate_games_payload({"sport": "NBA", "games": [_game_row()]})
    assert errors == ["games payload has unknown sport 'NBA'"]


def test_validate_games_payload_partial_score():
    errors = validate_games_payload({"sport": "NFL", "games": [_game_row(home_score=21)]})
    assert "partial final score" in errors[0]


def test_validate_games_payload_bad_fields():
    rows = [
        _game_row(game_id="g1", date="soon"),
        _game_row(game_id="g1", spread="pick"),
        _game_row(game_id="g3", weather={"wind": "gusty"}),
    ]
    errors = validate_games_payload({"sport": "NFL", "games": rows})
    assert any("ISO 'date'" in e for e in errors)
    assert any("duplicate game id" in e for e in errors)
    assert any("invalid numeric field 'spread'" in e for e in errors)
    assert any("invalid weather field 'wind'" in e for e in errors)


def test_validate_games_payload_bad_start_time():
    # the date prefix is fine but the time part is not
    row = _game_row(start_time="2024-01-10T25:99:00Z")
    errors = validate_games_payload({"sport": "NCAAMB", "games": [row]})
    assert errors == ["games[0] invalid ISO 'start_time' '2024-01-10T25:99:00Z'"]
    assert validate_games_payload({"sport": "NCAAMB", "games": [_game_row(start_time="2024-01-10T03:00:00Z")]}) == []


def test_validate_games_payload_bad_season():
    errors = validate_games_payload({"sport": "NCAAMB", "games": [_game_row(season="twenty")]})
    assert errors == ["games[0] season must be an integer, got 'twenty'"]
    assert validate_games_payload({"sport": "NCAAMB", "games": [_game_row(season=2024)]}) == []
    assert validate_games_payload({"sport": "NCAAMB", "games": [_game_row(season="2024")]}) == []


def test_validate_games_payload_bad_prices():
    rows = [
        _game_row(game_id="g1", prices={"over": 0, "under": -110}),
        _game_row(game_id="g2", prices={"home": "even"}),
        _game_row(game_id="g3", prices={"away": -105.5}),
        _game_row(game_id="g4", prices=[-110, -110]),
    ]
    errors = validate_games_payload({"sport": "NCAAMB", "games": rows})
    assert errors == [
        "games[0] price 'over' must be at least +/-100",
        "games[1] price 'home' must be a number",
        "games[2] price 'away' must be a whole number",
        "games[3] prices must be an object",
    ]
    good = _game_row(prices={"home": 150, "away": "-170", "over": -110, "under": None})
    assert validate_games_payload({"sport": "NCAAMB", "games": [good]}) == []


def test_validate_snapshot_frame():
    df = pd.DataFrame([
        {"team": "Duke", "date": "2024-01-09", "margin": 20.1, "offense": 120.0, "defense": 99.9, "tempo": 68.0},
        {"team": "", "date": "not-a-date", "margin": "x", "offense": 110.0, "defense": 100.0, "tempo": 66.0},
    ])
    errors = validate_snapshot_frame(df)
    assert any("invalid date" in e for e in errors)
    assert any("'margin'" in e for e in errors)
    assert any("missing team" in e for e in errors)
    assert validate_snapshot_frame(df.drop(columns=["tempo"])) == ["snapshots missing columns: tempo"]


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


def _resolver():
    return TeamNameResolver([
        Team("duke", "Duke", conference="ACC"),
        Team("unc", "North Carolina", conference="ACC"),
        Team("ku", "Kansas", conference="Big 12"),
    ])


def test_start_time_uses_local_date():
    eastern = pytz.timezone("US/Eastern")
    row = _game_row(start_time="2024-01-10T03:00:00Z")
    assert local_game_date(row, eastern) == dt.date(2024, 1, 9)
    assert local_game_date(_game_row(), eastern) == dt.date(2024, 1, 10)
    # naive start times are read as UTC
    assert local_game_date(_game_row(start_time="2024-01-10T03:00:00"), eastern) == dt.date(2024, 1, 9)


def test_game_from_row():
    loader = DataLoader("US/Eastern")
    game = loader.game_from_row(_game_row(start_time="2024-01-10T03:00:00Z"), Sport.NCAAMB, _resolver())
    assert game.date == dt.date(2024, 1, 9)
    assert game.season == 2024
    assert (game.home_id, game.away_id) == ("duke", "unc")
    assert game.conference_game
    assert not game.is_final


def test_unresolved_team_is_skipped_and_logged():
    resolver = _resolver()
    loader = DataLoader()
    assert loader.game_from_row(_game_row(away="Nowhere Tech"), Sport.NCAAMB, resolver) is None
    assert resolver.misses.count("Nowhere Tech") == 1


def test_same_team_after_mascot_strip_is_skipped():
    resolver = _resolver()
    loader = DataLoader()
    row = _game_row(home="North Carolina", away="North Carolina A&T Aggies")
    assert loader.game_from_row(row, Sport.NCAAMB, resolver) is None
    assert resolver.misses.count("North Carolina A&T Aggies") == 1
    assert resolver.misses.count("North Carolina") == 0


def test_same_team_row_does_not_abort_the_load(tmp_path):
    (tmp_path / "teams.json").write_text(json.dumps({"teams": [t.to_dict() for t in _resolver().teams]}))
    games = [
        _game_row(game_id="g1", home="North Carolina", away="North Carolina A&T Aggies"),
        _game_row(game_id="g2", home="Kansas", away="Duke"),
    ]
    (tmp_path / "games.json").write_text(json.dumps({"sport": "NCAAMB", "games": games}))
    loaded = DataLoader().load_directory(str(tmp_path))
    assert [g.game_id for g in loaded.games] == ["g2"]
    assert loaded.skipped_games == 1
    assert loaded.resolver.misses.count("North Carolina A&T Aggies") == 1


def test_schema_error_on_bad_games(tmp_path):
    (tmp_path / "teams.json").write_text(json.dumps({"teams": [t.to_dict() for t in _resolver().teams]}))
    (tmp_path / "games.json").write_text(json.dumps({"sport": "NCAAMB", "games": [{"game_id": "g1"}]}))
    with pytest.raises(SchemaValidationError) as excinfo:
        DataLoader().load_directory(str(tmp_path))
    assert excinfo.value.artifact == "games.json"
    assert "missing home team" in str(excinfo.value)


def test_schema_error_on_bad_teams(tmp_path):
    (tmp_path / "teams.json").write_text(json.dumps({"teams": []}))
    with pytest.raises(SchemaValidationError):
        DataLoader().load_directory(str(tmp_path))


def test_directory_round_trip(tmp_path):
    league = generate_league(Sport.NCAAMB, seasons=(2023,), n_teams=8, games_per_day=2, seed=11)
    league.write(str(tmp_path))
    loaded = DataLoader("US/Eastern").load_directory(str(tmp_path))
    in_memory = league.to_loaded()

    assert loaded.sport is Sport.NCAAMB
    assert [g.game_id for g in loaded.games] == [g.game_id for g in in_memory.games]
    assert loaded.skipped_games == 1
    assert loaded.resolver.misses.count(UNKNOWN_TEAM) == 1
    assert len(loaded.snapshots) == len(league.snapshot_rows)
    assert all(g.date.month in (11, 12, 1, 2, 3) for g in loaded.games)


def test_directory_without_snapshots(tmp_path):
    league = generate_league(Sport.NFL, seasons=(2022,), n_teams=4, seed=2)
    league.write(str(tmp_path))
    (tmp_path / "snapshots.csv").unlink()
    loaded = DataLoader().load_directory(str(tmp_path))
    assert len(loaded.snapshots) == 0
    assert loaded.games
