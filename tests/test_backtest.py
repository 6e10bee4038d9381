"""Tests for the walk-forward backtest.

The fixture league has four teams with constant ratings, so the true total
of every pairing is known exactly. The training season plays each pairing
twice at truth +/- 2; a zero-penalty ridge fit on it recovers the truth, and
the held-out season's record and RMSE follow by construction.

A second league rates every team alike and plays four seasons, so a heavy
ridge penalty still predicts every total exactly and each of the three
held-out seasons has its own known record and RMSE.
"""

import datetime as dt
import itertools

import pytest

from pickengine.config import BacktestConfig, EngineConfig, RidgeConfig
from pickengine.data.context import build_context
from pickengine.data.loader import LoadedData
from pickengine.data.sample import generate_league
from pickengine.data.snapshots import SnapshotStore
from pickengine.data.team_name_resolver import TeamNameResolver
from pickengine.errors import LookAheadViolation
from pickengine.ml.evaluation import (
    BacktestReport,
    EvaluatedPick,
    TierRecord,
    WalkForwardBacktester,
    snapshot_gap_report,
)
from pickengine.models.game import Game, Outcome
from pickengine.models.sport import Direction, Market, Sport
from pickengine.models.team import RatingSnapshot, Team
from pickengine.pipeline.training import SeasonModels, check_walk_forward
from pickengine.predictors.features import DEFAULT_FEATURES

# team -> (offense, defense, tempo)
RATINGS = {
    "t1": (100.0, 98.0, 66.0),
    "t2": (104.0, 102.0, 68.0),
    "t3": (110.0, 96.0, 70.0),
    "t4": (106.0, 104.0, 72.0),
}
INTERCEPT = -280.0
TRAIN_START = dt.date(2023, 1, 10)
EVAL_START = dt.date(2024, 1, 10)

# (line offset, actual offset) from the true total; the model predicts the truth
EVAL_SCHEDULE = ((-3, 2), (-3, -2), (1, -2), (1, 2))


def true_total(home, away):
    (oh, dh, th), (oa, da, ta) = RATINGS[home], RATINGS[away]
    return INTERCEPT + (dh + da) + (oh + oa) + (th + ta) / 2.0


def _final(game_id, day, home, away, actual, line):
    actual = int(actual)
    return Game(
        game_id, Sport.NCAAMB, 2024 if day >= EVAL_START else 2023, day, home, away,
        total=float(line), home_score=actual - actual // 2, away_score=actual // 2,
    )


def _snapshots():
    store = SnapshotStore()
    day = dt.date(2022, 12, 1)
    while day <= dt.date(2024, 3, 31):
        for team, (off, de, tempo) in RATINGS.items():
            store.append(RatingSnapshot(team, day, off - de, off, de, tempo))
        day += dt.timedelta(days=1)
    return store.freeze()


def _games():
    games = []
    day = TRAIN_START
    for home, away in itertools.combinations(sorted(RATINGS), 2):
        truth = true_total(home, away)
        for n, noise in enumerate((2, -2)):
            games.append(_final(f"train-{home}-{away}-{n}", day, home, away, truth + noise, truth))
            day += dt.timedelta(days=1)
    day = EVAL_START
    for home, away in itertools.combinations(sorted(RATINGS), 2):
        truth = true_total(home, away)
        for n, (line_off, actual_off) in enumerate(EVAL_SCHEDULE):
            games.append(_final(f"eval-{home}-{away}-{n}", day, home, away, truth + actual_off, truth + line_off))
            day += dt.timedelta(days=1)
    return games


def _config(**backtest):
    return EngineConfig(
        ridge=RidgeConfig(lam=0.0, features=DEFAULT_FEATURES, min_training_games=6),
        backtest=BacktestConfig(markets=(Market.TOTAL,), **backtest),
    )


def _context(games=None, **backtest):
    resolver = TeamNameResolver([Team(t, t.upper()) for t in RATINGS])
    data = LoadedData(Sport.NCAAMB, resolver, _snapshots(), sorted(games or _games(), key=lambda g: (g.date, g.game_id)))
    return build_context(data, _config(**backtest))


@pytest.fixture(scope="module")
def report():
    return WalkForwardBacktester(_context()).run()


# ---------------------------------------------------------------------------
# Walk-forward results
# ---------------------------------------------------------------------------


class TestWalkForward:
    """Known-answer checks on the fixture league."""

    def test_first_season_skipped(self, report):
        assert report.seasons == [2024]
        assert [(s, m) for s, m, _ in report.skipped] == [(2023, Market.TOTAL)]
        assert "training games" in report.skipped[0][2]

    def test_model_record(self, report):
        run = report.runs_for(Market.TOTAL)[0]
        assert (run.model_record.wins, run.model_record.losses, run.model_record.pushes) == (18, 6, 0)
        assert run.model_record.win_rate == pytest.approx(0.75)

    def test_headline_record_uses_edge_threshold(self, report):
        run = report.runs_for(Market.TOTAL)[0]
        # only the three-point edges clear 1.5
        assert str(run.headline_record) == "12-0-0"
        assert str(report.aggregate_model_record(Market.TOTAL, headline=True)) == "12-0-0"

    def test_rmse(self, report):
        run = report.runs_for(Market.TOTAL)[0]
        assert run.rmse == pytest.approx(2.0, abs=1e-4)
        assert run.n_predictions == 24
        assert run.n_games == 24
        assert run.training_games == 12

    def test_every_game_evaluated(self, report):
        assert len(report.picks) == 24
        assert all(p.season == 2024 for p in report.picks)
        assert {p.model_side for p in report.picks} == {Direction.OVER, Direction.UNDER}

    def test_picks_per_week(self, report):
        run = report.runs_for(Market.TOTAL)[0]
        tiered = sum(r.total for r in run.tiers.values())
        assert run.weeks == 20
        assert run.picks_per_week == pytest.approx(tiered / 20)

    def test_frames(self, report):
        frame = report.to_frame()
        assert list(frame["season"]) == [2024]
        assert frame.loc[0, "model"] == "18-6-0"
        picks = report.picks_frame()
        assert len(picks) == 24
        assert set(picks["covered"]) <= {"over", "under", "neutral"}

    def test_run_serializes(self, report):
        data = report.runs[0].to_dict()
        assert data["model_record"]["wins"] == 18
        assert data["rmse"] == pytest.approx(2.0, abs=1e-4)


class TestBacktestOptions:
    """Season filter and week count overrides."""

    def test_season_filter(self):
        backtester = WalkForwardBacktester(_context(seasons=(2024, 2030)))
        assert backtester.seasons() == [2024]

    def test_weeks_override(self):
        backtester = WalkForwardBacktester(_context(weeks_per_season=10))
        assert backtester.weeks == 10.0
        run = backtester.run().runs[0]
        assert run.weeks == 10.0

    def test_sport_without_snapshots(self):
        league = generate_league(Sport.NFL, seasons=(2021, 2022), n_teams=8, seed=3)
        context = build_context(league.to_loaded(), EngineConfig())
        report = WalkForwardBacktester(context, [Market.SPREAD]).run()
        assert report.seasons == [2021, 2022]
        assert all(r.training_games is None for r in report.runs)
        assert snapshot_gap_report(context).empty


# ---------------------------------------------------------------------------
# Look-ahead protection
# ---------------------------------------------------------------------------


class TestNoLeak:
    """Training never reaches the evaluated season."""

    def test_coefficients_recover_truth(self):
        coefficients = SeasonModels(_context()).coefficients(2024, Market.TOTAL)
        assert coefficients.coefficient("intercept") == pytest.approx(INTERCEPT, abs=1e-4)
        for name in ("sum_de", "sum_oe", "avg_tempo"):
            assert coefficients.coefficient(name) == pytest.approx(1.0, abs=1e-6)

    def test_training_ends_before_season_start(self):
        models = SeasonModels(_context())
        coefficients = models.coefficients(2024, Market.TOTAL)
        assert models.season_start(2024) == EVAL_START
        assert coefficients.last_training_date < EVAL_START
        assert coefficients.training_cutoff == EVAL_START

    def test_mislabelled_late_game_is_excluded(self):
        truth = true_total("t1", "t2")
        late = Game("late", Sport.NCAAMB, 2023, EVAL_START + dt.timedelta(days=3), "t1", "t2",
                    total=truth, home_score=200, away_score=200)
        models = SeasonModels(_context(_games() + [late]))
        coefficients = models.coefficients(2024, Market.TOTAL)
        assert coefficients.training_games == 12

    def test_violation_detected(self):
        coefficients = SeasonModels(_context()).coefficients(2024, Market.TOTAL)
        with pytest.raises(LookAheadViolation) as excinfo:
            check_walk_forward(coefficients, coefficients.last_training_date)
        assert excinfo.value.season == 2024
        check_walk_forward(coefficients, None)

    def test_snapshot_gap_with_constant_ratings(self):
        gap = snapshot_gap_report(_context())
        row = gap[gap["season"] == 2024].iloc[0]
        assert row["games"] == 24
        assert row["gap_pp"] == pytest.approx(0.0)
        assert row["pit_rmse"] == pytest.approx(row["eos_rmse"])


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class TestRecords:
    """Grading and tallies."""

    def _pick(self, covered, side=Direction.OVER):
        return EvaluatedPick(2024, EVAL_START, "g", Market.TOTAL, 70, side, 4, 2.0, 68.0, 140.0, covered)

    def test_grade(self):
        assert self._pick(Direction.OVER).grade(Direction.OVER) is Outcome.WIN
        assert self._pick(Direction.UNDER).grade(Direction.OVER) is Outcome.LOSS
        assert self._pick(Direction.NEUTRAL).grade(Direction.OVER) is Outcome.PUSH

    def test_neutral_side_is_not_graded(self):
        assert self._pick(Direction.OVER).grade(Direction.NEUTRAL) is None

    def test_tier_record(self):
        record = TierRecord()
        for outcome in (Outcome.WIN, Outcome.WIN, Outcome.LOSS, Outcome.PUSH, None):
            record.add(outcome)
        assert str(record) == "2-1-1"
        assert record.graded == 3
        assert record.total == 4
        assert record.win_rate == pytest.approx(2 / 3)
        assert TierRecord().win_rate == 0.0

    def test_aggregate_merges_runs(self, report):
        merged = BacktestReport(runs=report.runs + report.runs).aggregate_model_record(Market.TOTAL)
        assert str(merged) == "36-12-0"


# ---------------------------------------------------------------------------
# Several held-out seasons under a heavy penalty
# ---------------------------------------------------------------------------

# every team rated alike, so each game's features match the intercept column;
# the penalty then holds every slope at zero and the intercept is the mean total
FLAT_RATING = (105.0, 100.0, 68.0)
FLAT_TOTAL = 140
FLAT_SCHEDULES = {
    2023: ((0, 2), (0, -2)),
    2024: EVAL_SCHEDULE,
    2025: ((-1, 4), (-1, -4), (2, 4), (2, -4)),
    2026: ((-2, -2), (2, 2), (3, 1), (3, -1)),
}


def _flat_context(lam=1000.0):
    teams = sorted(RATINGS)
    games = []
    for season, schedule in sorted(FLAT_SCHEDULES.items()):
        day = dt.date(season, 1, 10)
        for home, away in itertools.combinations(teams, 2):
            for n, (line_off, actual_off) in enumerate(schedule):
                actual = FLAT_TOTAL + actual_off
                games.append(Game(
                    f"{season}-{home}-{away}-{n}", Sport.NCAAMB, season, day, home, away,
                    total=float(FLAT_TOTAL + line_off), home_score=actual - actual // 2, away_score=actual // 2,
                ))
                day += dt.timedelta(days=1)
    store = SnapshotStore()
    day = dt.date(2022, 12, 1)
    while day <= dt.date(2026, 3, 31):
        off, de, tempo = FLAT_RATING
        for team in teams:
            store.append(RatingSnapshot(team, day, off - de, off, de, tempo))
        day += dt.timedelta(days=1)
    resolver = TeamNameResolver([Team(t, t.upper()) for t in teams])
    config = EngineConfig(
        ridge=RidgeConfig(lam=lam, features=DEFAULT_FEATURES, min_training_games=6),
        backtest=BacktestConfig(markets=(Market.TOTAL,)),
    )
    return build_context(LoadedData(Sport.NCAAMB, resolver, store.freeze(), games), config)


@pytest.fixture(scope="module")
def flat_report():
    return WalkForwardBacktester(_flat_context()).run()


class TestPenalizedSeasons:
    """Three held-out seasons, each trained on every season before it."""

    def test_seasons(self, flat_report):
        assert flat_report.seasons == [2024, 2025, 2026]
        assert [s for s, _, _ in flat_report.skipped] == [2023]

    def test_penalty_leaves_only_the_intercept(self):
        models = SeasonModels(_flat_context())
        for season in (2024, 2025, 2026):
            coefficients = models.coefficients(season, Market.TOTAL)
            assert coefficients.lam == 1000.0
            assert coefficients.clamped_pivots == 0
            assert coefficients.coefficient("intercept") == pytest.approx(FLAT_TOTAL, abs=1e-3)
            for name in ("sum_de", "sum_oe", "avg_tempo"):
                assert coefficients.coefficient(name) == pytest.approx(0.0, abs=1e-6)

    def test_training_grows_each_season(self, flat_report):
        runs = flat_report.runs_for(Market.TOTAL)
        assert [r.training_games for r in runs] == [12, 36, 60]
        assert [r.n_predictions for r in runs] == [24, 24, 24]

    def test_records_per_season(self, flat_report):
        runs = flat_report.runs_for(Market.TOTAL)
        assert [str(r.model_record) for r in runs] == ["18-6-0", "12-12-0", "12-0-12"]
        assert str(flat_report.aggregate_model_record(Market.TOTAL)) == "42-18-12"

    def test_rmse_per_season(self, flat_report):
        runs = flat_report.runs_for(Market.TOTAL)
        assert [r.rmse for r in runs] == pytest.approx([2.0, 4.0, 2.5 ** 0.5], abs=1e-3)
