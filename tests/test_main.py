"""Tests for CLI command wiring."""

import json
from types import SimpleNamespace

import pytest

import pickengine.main as main_mod
from pickengine.data.sample import generate_league
from pickengine.models.sport import Sport


@pytest.fixture(scope="module")
def data_dir(tmp_path_factory):
    path = tmp_path_factory.mktemp("league")
    generate_league(Sport.NCAAMB, seasons=(2022, 2023), n_teams=12, games_per_day=4, seed=3).write(str(path))
    return str(path)


def _args(data_dir, **kwargs):
    return SimpleNamespace(data_dir=data_dir, config=None, **kwargs)


def test_backtest_writes_report(data_dir, tmp_path, capsys):
    output = tmp_path / "report.json"
    code = main_mod.run_backtest(_args(data_dir, markets=["total"], gap=True, output=str(output)))
    assert code == 0
    out = capsys.readouterr().out
    assert "TOTAL walk-forward (1 seasons)" in out
    assert "skipped total 2022" in out
    with open(output) as f:
        runs = json.load(f)["runs"]
    assert [r["season"] for r in runs] == [2023]


def test_sweep_writes_config_only_with_a_winner(data_dir, tmp_path, capsys):
    args = _args(data_dir, space="convergence", market="total", top=3, workers=None,
                 write_config=str(tmp_path / "engine.json"))
    code = main_mod.run_sweep(args)
    out = capsys.readouterr().out
    assert "Space 'convergence'" in out
    if "no configuration passed" in out:
        assert code == 1
        assert not (tmp_path / "engine.json").exists()
    else:
        assert code == 0
        assert (tmp_path / "engine.json").exists()


def test_weight_sweep(data_dir, tmp_path, capsys):
    args = _args(data_dir, space="weights", market="total", top=2, workers=None,
                 write_config=str(tmp_path / "engine.json"))
    code = main_mod.run_sweep(args)
    out = capsys.readouterr().out
    assert "Space 'weights'" in out
    if "no configuration passed" in out:
        assert code == 1
    else:
        assert code == 0
        assert "Winning weight table" in out
        with open(tmp_path / "engine.json") as f:
            assert json.load(f)["weight_tables"]["NCAAMB"]["total"]["market"] == "total"


def test_unknown_sweep_space(data_dir, capsys):
    args = _args(data_dir, space="moneyline", market="total", top=None, workers=None, write_config=None)
    assert main_mod.run_sweep(args) == 1
    assert "unknown sweep space" in capsys.readouterr().out


def test_misses(data_dir, capsys):
    assert main_mod.show_misses(_args(data_dir, top=None)) == 0
    assert "Nowhere Tech" in capsys.readouterr().out


def test_picks(data_dir, tmp_path, capsys):
    output = tmp_path / "picks.json"
    code = main_mod.generate_picks(_args(data_dir, date="2023-01-15", markets=None, output=str(output)))
    assert code == 0
    out = capsys.readouterr().out
    assert "picks on 2023-01-15" in out


def test_picks_bad_date(data_dir, capsys):
    assert main_mod.generate_picks(_args(data_dir, date="01/15/2023", markets=None, output=None)) == 1
    assert "YYYY-MM-DD" in capsys.readouterr().out


def test_missing_data_dir(tmp_path, capsys):
    assert main_mod.show_misses(_args(str(tmp_path / "nothing"), top=None)) == 1
    assert "missing input file" in capsys.readouterr().out


def test_invalid_games_file(tmp_path, capsys):
    (tmp_path / "teams.json").write_text(json.dumps({"teams": [{"team_id": "a", "name": "A"}]}))
    (tmp_path / "games.json").write_text(json.dumps({"sport": "NCAAMB", "games": []}))
    assert main_mod.show_misses(_args(str(tmp_path), top=None)) == 1
    assert "Invalid games.json" in capsys.readouterr().out


def test_create_sample(tmp_path, capsys):
    args = SimpleNamespace(output=str(tmp_path / "nfl"), sport="NFL", first_season=2022, seasons=1, seed=1)
    assert main_mod.create_sample(args) == 0
    assert (tmp_path / "nfl" / "games.json").exists()
    assert "pick-engine backtest" in capsys.readouterr().out
