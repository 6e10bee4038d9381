"""Tests for the signal generators and their small-sample statistics."""

import datetime as dt

import pytest

from pickengine.data.history import HistoryIndex
from pickengine.data.snapshots import MatchedGame, MatchedSnapshot
from pickengine.models.game import Game, MarketPrices, Weather
from pickengine.models.signal import Strength
from pickengine.models.sport import (
    EFFICIENCY_MATCHUP, H2H, MARKET_DIVERGENCE, MODEL_EDGE, PACE_TOTAL, RECENT_FORM, REST, SEASON_OU,
    TREND_ANGLES, WEATHER, Direction, Market, Sport, profile_for,
)
from pickengine.models.team import RatingSnapshot
from pickengine.predictors.base import BasePredictor, edge_direction
from pickengine.signals import AngleIndex, SignalInputs, generate_signals, make_signal
from pickengine.signals.angles import DEFAULT_TEMPLATES, AngleFinding, AngleRecord, trend_angles
from pickengine.signals.matchup import efficiency_matchup, pace_total, projected_total
from pickengine.signals.model_edge import market_divergence, model_edge
from pickengine.signals.significance import (
    american_to_probability,
    cover_probability,
    interest_score,
    interest_to_weight,
    TrendSignificance,
    trend_significance,
    vig_free_probability,
    wilson_edge,
    wilson_interval,
)
from pickengine.signals.team_trends import head_to_head, recent_form, rest_advantage, season_ats, season_ou
from pickengine.signals.weather import severity, weather


class FixedPredictor(BasePredictor):
    """Predicts the same number for every game."""

    def __init__(self, value, sigma=None):
        super().__init__("Fixed")
        self.value = value
        self._sigma = sigma

    def predict(self, game, market):
        return self.value

    def sigma(self, market):
        return self._sigma


def _inputs(game, market=Market.TOTAL, games=(), **kwargs):
    history = HistoryIndex(game.sport, list(games) + [game])
    return SignalInputs(game=game, market=market, history=history, profile=profile_for(game.sport), **kwargs)


def _game(game_id="g", day=dt.date(2024, 1, 20), home="h", away="a", sport=Sport.NCAAMB, **kwargs):
    season = profile_for(sport).season_for(day)
    return Game(game_id, sport, season, day, home, away, **kwargs)


def _matched(game, home=(10.0, 110.0, 100.0, 70.0), away=(5.0, 110.0, 100.0, 70.0), ranks=(None, None)):
    day = game.date - dt.timedelta(days=1)
    return MatchedGame(
        game=game,
        home=MatchedSnapshot(RatingSnapshot(game.home_id, day, *home), 1, "t-1", ranks[0]),
        away=MatchedSnapshot(RatingSnapshot(game.away_id, day, *away), 1, "t-1", ranks[1]),
    )


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


class TestSignificance:
    """Tests for the binomial helpers."""

    def test_wilson_known_value(self):
        lo, hi = wilson_interval(5, 10)
        assert lo == pytest.approx(0.2366, abs=1e-4)
        assert hi == pytest.approx(0.7634, abs=1e-4)

    def test_wilson_empty_sample(self):
        assert wilson_interval(0, 0) == (0.0, 1.0)

    def test_wilson_edge_needs_minimum_sample(self):
        assert wilson_edge(4, 4, min_n=5) == 0.0
        assert wilson_edge(10, 10, min_n=5) > 0.0

    def test_binomial_buckets(self):
        assert trend_significance(20, 20).strength is Strength.STRONG
        assert trend_significance(10, 20).strength is Strength.NOISE
        assert trend_significance(0, 0).p_value == 1.0

    def test_moderate_bucket(self):
        # 15/20 two-sided p is about 0.041
        sig = trend_significance(15, 20)
        assert 0.01 <= sig.p_value < 0.05
        assert sig.strength is Strength.MODERATE

    def test_interest_weighting(self):
        sig = trend_significance(20, 20)
        score = interest_score(sig, 20)
        assert score >= 70
        assert interest_to_weight(score) == 10
        assert interest_to_weight(0) == 1

    def test_prices(self):
        assert american_to_probability(-110) == pytest.approx(110 / 210)
        assert american_to_probability(150) == pytest.approx(0.4)
        assert vig_free_probability(None, None) == pytest.approx(0.5)
        with pytest.raises(ValueError):
            american_to_probability(0)

    def test_cover_probability(self):
        assert cover_probability(0.0, 10.0) == pytest.approx(0.5)
        assert cover_probability(-10.0, 10.0) == pytest.approx(0.8413, abs=1e-4)


class TestMakeSignal:
    """Tests for clamping and strength classification."""

    def test_neutral_direction_zeroes_out(self):
        result = make_signal(MODEL_EDGE, Direction.NEUTRAL, 9.0, 0.9, "x")
        assert not result.is_active
        assert result.magnitude == 0.0

    def test_magnitude_clamped(self):
        result = make_signal(MODEL_EDGE, Direction.OVER, 25.0, 1.5, "x")
        assert result.magnitude == 10.0
        assert result.confidence == 1.0
        assert result.strength is Strength.STRONG


# ---------------------------------------------------------------------------
# Model signals
# ---------------------------------------------------------------------------


class TestModelEdge:
    """Tests for the model-edge and market-divergence generators."""

    def test_edge_over(self):
        game = _game(total=140.0)
        result = model_edge(_inputs(game, predictor=FixedPredictor(146.0)))
        assert result.direction is Direction.OVER
        assert result.magnitude == pytest.approx(6.0)
        assert result.strength is Strength.STRONG

    def test_edge_under(self):
        game = _game(total=140.0)
        result = model_edge(_inputs(game, predictor=FixedPredictor(138.0)))
        assert result.direction is Direction.UNDER

    def test_spread_edge_on_home_margin_scale(self):
        # home favoured by 3, model says home by 8
        game = _game(spread=-3.0)
        result = model_edge(_inputs(game, Market.SPREAD, predictor=FixedPredictor(8.0)))
        assert result.direction is Direction.HOME
        assert result.magnitude == pytest.approx(5.0)

    def test_zero_edge_is_neutral(self):
        game = _game(total=140.0)
        assert not model_edge(_inputs(game, predictor=FixedPredictor(140.0))).is_active

    def test_no_line(self):
        game = _game()
        assert not model_edge(_inputs(game, predictor=FixedPredictor(140.0))).is_active

    def test_edge_direction(self):
        assert edge_direction(0.0, Market.TOTAL) is Direction.NEUTRAL
        assert edge_direction(None, Market.SPREAD) is Direction.NEUTRAL
        assert edge_direction(-1.0, Market.SPREAD) is Direction.AWAY

    def test_divergence_needs_sigma(self):
        game = _game(total=140.0)
        result = market_divergence(_inputs(game, predictor=FixedPredictor(150.0)))
        assert result.category == MARKET_DIVERGENCE
        assert not result.is_active

    def test_divergence_against_price(self):
        game = _game(total=140.0, prices=MarketPrices(over=-110, under=-110))
        result = market_divergence(_inputs(game, predictor=FixedPredictor(150.0, sigma=10.0)))
        assert result.direction is Direction.OVER
        assert result.magnitude == 10.0


# ---------------------------------------------------------------------------
# Ratings matchup
# ---------------------------------------------------------------------------


class TestMatchup:
    """Tests for the efficiency-matchup and pace generators."""

    def test_neutral_site_drops_home_advantage(self):
        game = _game(day=dt.date(2023, 11, 20), spread=-5.0, neutral_site=True)
        result = efficiency_matchup(_inputs(game, Market.SPREAD, matched=_matched(game)))
        assert result.direction is Direction.NEUTRAL

    def test_home_advantage_applied(self):
        game = _game(day=dt.date(2023, 11, 20), spread=-5.0)
        result = efficiency_matchup(_inputs(game, Market.SPREAD, matched=_matched(game)))
        assert result.direction is Direction.HOME
        assert result.magnitude == pytest.approx(2.0 / 0.7)

    def test_home_edge_dampened_after_december(self):
        early = _game(day=dt.date(2023, 11, 20), spread=-5.0)
        late = _game(day=dt.date(2024, 2, 10), spread=-5.0)
        m_early = efficiency_matchup(_inputs(early, Market.SPREAD, matched=_matched(early))).magnitude
        m_late = efficiency_matchup(_inputs(late, Market.SPREAD, matched=_matched(late))).magnitude
        assert m_late == pytest.approx(m_early * 0.4)

    def test_no_ratings(self):
        game = _game(total=140.0)
        assert efficiency_matchup(_inputs(game)).category == EFFICIENCY_MATCHUP
        assert not efficiency_matchup(_inputs(game)).is_active

    def test_low_defense_sum_leans_under(self):
        game = _game(total=140.0)
        matched = _matched(game, home=(10.0, 105.0, 92.0, 66.0), away=(5.0, 103.0, 91.0, 66.0))
        result = efficiency_matchup(_inputs(game, matched=matched))
        assert result.direction is Direction.UNDER

    def test_projected_total(self):
        game = _game(total=140.0)
        inputs = _inputs(game, matched=_matched(game))
        assert projected_total(inputs) == pytest.approx(147.0)
        result = pace_total(inputs)
        assert result.category == PACE_TOTAL
        assert result.direction is Direction.OVER
        assert result.strength is Strength.MODERATE

    def test_pace_inside_threshold(self):
        game = _game(total=146.0)
        assert not pace_total(_inputs(game, matched=_matched(game))).is_active


# ---------------------------------------------------------------------------
# Weather
# ---------------------------------------------------------------------------


class TestWeather:
    """Tests for the outdoor weather generator."""

    def test_indoor_sport(self):
        game = _game(total=140.0, weather=Weather(wind=40.0))
        assert not weather(_inputs(game)).is_active

    def test_wind_leans_under(self):
        game = _game(sport=Sport.NFL, day=dt.date(2023, 12, 10), total=44.0, weather=Weather(temperature=50.0, wind=30.0))
        result = weather(_inputs(game))
        assert result.category == WEATHER
        assert result.direction is Direction.UNDER
        assert result.magnitude == pytest.approx(2.0)

    def test_severity_sums_factors(self):
        score, confidence, factors = severity(Weather(temperature=10.0, wind=25.0, precipitation=0.4))
        assert score == pytest.approx(1.0 + 1.5 + 2.0)
        assert confidence == pytest.approx(0.65)
        assert len(factors) == 3

    def test_dome(self):
        game = _game(sport=Sport.NFL, day=dt.date(2023, 12, 10), total=44.0, weather=Weather(wind=40.0, conditions="dome"))
        assert not weather(_inputs(game)).is_active

    def test_spread_favours_home_without_strong_tier(self):
        game = _game(sport=Sport.NFL, day=dt.date(2023, 12, 10), spread=-3.0, weather=Weather(temperature=10.0, wind=30.0))
        result = weather(_inputs(game, Market.SPREAD))
        assert result.direction is Direction.HOME
        assert result.magnitude == pytest.approx(6.0)
        assert result.strength is Strength.MODERATE


# ---------------------------------------------------------------------------
# History-based signals
# ---------------------------------------------------------------------------


def _home_covers(team, start, count, step=3, sport=Sport.NCAAMB):
    """``count`` final non-conference home games where ``team`` covers -5 and goes over 140."""
    games = []
    for i in range(count):
        day = start + dt.timedelta(days=i * step)
        games.append(_game(
            f"{team}-{i}", day=day, home=team, away=f"opp{i}", sport=sport,
            spread=-5.0, total=140.0, home_score=80, away_score=70,
        ))
    return games


class TestHistorySignals:
    """Tests for the season-record and rest generators."""

    def test_season_ats_counts_only_earlier_games(self):
        past = _home_covers("h", dt.date(2024, 1, 1), 6)
        game = _game(day=dt.date(2024, 2, 1), spread=-4.0)
        result = season_ats(_inputs(game, Market.SPREAD, games=past))
        assert result.direction is Direction.HOME

    def test_season_ats_ignores_the_game_itself(self):
        game = _game(day=dt.date(2024, 2, 1), spread=-4.0, home_score=90, away_score=60)
        assert not season_ats(_inputs(game, Market.SPREAD)).is_active

    def test_rest_with_back_to_back(self):
        day = dt.date(2024, 1, 20)
        earlier = [
            _game("p1", day=day - dt.timedelta(days=3), home="h", away="x1"),
            _game("p2", day=day - dt.timedelta(days=1), home="a", away="x2"),
        ]
        game = _game(day=day, spread=-2.0)
        result = rest_advantage(_inputs(game, Market.SPREAD, games=earlier))
        assert result.category == REST
        assert result.direction is Direction.HOME
        assert result.magnitude == pytest.approx(2 * 1.5 + 2.0)

    def test_rest_without_prior_games(self):
        game = _game(spread=-2.0)
        assert not rest_advantage(_inputs(game, Market.SPREAD)).is_active


JAN_1 = dt.date(2024, 1, 1)
FEB_1 = dt.date(2024, 2, 1)


def _played(team, start, count, score, opponent=None, step=3):
    """``count`` final home games for ``team`` at -5 and 140 with the same final ``score``."""
    games = []
    for i in range(count):
        day = start + dt.timedelta(days=i * step)
        games.append(_game(
            f"{team}-{day.isoformat()}", day=day, home=team, away=opponent or f"{team}-opp{i}",
            spread=-5.0, total=140.0, home_score=score[0], away_score=score[1],
        ))
    return games


class TestTeamTrendSignals:
    """Recent form, head to head and the season O/U lean."""

    def test_recent_form_uses_last_five(self):
        # two early non-covers fall outside the last five
        past = (
            _played("h", JAN_1, 2, (70, 70)) + _played("h", JAN_1 + dt.timedelta(days=9), 5, (80, 70))
            + _played("a", JAN_1, 5, (70, 70))
        )
        result = recent_form(_inputs(_game(day=FEB_1, spread=-3.0), Market.SPREAD, games=past))
        assert result.category == RECENT_FORM
        assert result.direction is Direction.HOME
        assert result.magnitude == pytest.approx(10.0)
        assert result.confidence == pytest.approx(0.7)
        assert result.label == "Last 5 ATS: home 5-0, away 0-5"

    def test_recent_form_needs_three_games(self):
        past = _played("h", JAN_1, 2, (80, 70)) + _played("a", JAN_1, 2, (70, 70))
        result = recent_form(_inputs(_game(day=FEB_1, spread=-3.0), Market.SPREAD, games=past))
        assert not result.is_active
        assert result.label == "Insufficient recent data"

    def test_recent_form_on_totals(self):
        past = _played("h", JAN_1, 5, (80, 70)) + _played("a", JAN_1, 5, (70, 70))
        result = recent_form(_inputs(_game(day=FEB_1, total=141.0), Market.TOTAL, games=past))
        # away pushed every total, so only the home overs lean
        assert result.direction is Direction.OVER
        assert result.magnitude == pytest.approx(5.0)
        assert result.strength is Strength.MODERATE
        assert result.label == "Recent O/U: home 5-0, away 0-0"

    def test_head_to_head_needs_three_meetings(self):
        past = _played("h", JAN_1, 2, (80, 70), opponent="a")
        result = head_to_head(_inputs(_game(day=FEB_1, spread=-3.0), Market.SPREAD, games=past))
        assert result.category == H2H
        assert not result.is_active
        assert result.label == "H2H: 2 games (insufficient)"

    def test_head_to_head_spread(self):
        past = _played("h", JAN_1, 8, (80, 70), opponent="a")
        result = head_to_head(_inputs(_game(day=FEB_1, spread=-3.0), Market.SPREAD, games=past))
        lower, _ = wilson_interval(8, 8)
        assert result.direction is Direction.HOME
        assert result.magnitude == pytest.approx((lower - 0.5) * 40)
        assert result.label == "H2H ATS: 8-0 (100%) in 8 games"

    def test_head_to_head_total(self):
        past = _played("h", JAN_1, 8, (80, 70), opponent="a")
        result = head_to_head(_inputs(_game(day=FEB_1, total=140.0), Market.TOTAL, games=past))
        # 150 average against 140 gives 5, every meeting went over for 2 more
        assert result.direction is Direction.OVER
        assert result.magnitude == pytest.approx(7.0)
        assert result.confidence == pytest.approx(0.5)
        assert result.strength is Strength.STRONG
        assert result.label == "H2H avg 150.0 vs line 140 (+10.0), H2H O/U: 8-0"

    def test_season_ou_leans_over(self):
        past = _played("h", JAN_1, 8, (80, 70)) + _played("a", JAN_1, 8, (70, 70))
        result = season_ou(_inputs(_game(day=FEB_1, total=140.0), Market.TOTAL, games=past))
        lower, _ = wilson_interval(8, 8)
        assert result.category == SEASON_OU
        assert result.direction is Direction.OVER
        assert result.magnitude == pytest.approx((lower - 0.5) / 2 * 50)
        assert result.strength is Strength.MODERATE

    def test_season_ou_small_sample(self):
        past = _played("h", JAN_1, 7, (80, 70)) + _played("a", JAN_1, 7, (70, 70))
        assert not season_ou(_inputs(_game(day=FEB_1, total=140.0), Market.TOTAL, games=past)).is_active


class TestTrendAngles:
    """Tests for angle records and the angle vote."""

    def _index(self, past, game):
        history = HistoryIndex(Sport.NCAAMB, past + [game])
        return history, AngleIndex(history)

    def test_significant_home_angle(self):
        past = _home_covers("h", dt.date(2023, 1, 2), 20)
        game = _game(day=dt.date(2024, 1, 20), away="x", spread=-5.0, total=140.0)
        history, angles = self._index(past, game)
        inputs = SignalInputs(game=game, market=Market.SPREAD, history=history,
                              profile=profile_for(Sport.NCAAMB), angles=angles)
        result = generate_signals(inputs)
        angle = next(r for r in result if r.category == TREND_ANGLES)
        assert angle.direction is Direction.HOME
        assert angle.strength is Strength.STRONG

    def test_totals_vote_over(self):
        past = _home_covers("h", dt.date(2023, 1, 2), 20)
        game = _game(day=dt.date(2024, 1, 20), away="x", spread=-5.0, total=140.0)
        history, angles = self._index(past, game)
        findings = angles.findings(game, "h", spread_market=False)
        assert findings
        assert all(f.favors is Direction.OVER for f in findings)

    def test_angles_apply_to_the_current_game_only(self):
        past = _home_covers("h", dt.date(2023, 1, 2), 20)
        # h is on the road this time, so its home angles do not apply
        game = _game(day=dt.date(2024, 1, 20), home="x", away="h", spread=-5.0, total=140.0)
        _, angles = self._index(past, game)
        assert angles.findings(game, "h", spread_market=True) == []

    def test_lookback_window(self):
        past = _home_covers("h", dt.date(2019, 1, 2), 20)
        game = _game(day=dt.date(2024, 1, 20), away="x", spread=-5.0, total=140.0)
        _, angles = self._index(past, game)
        assert angles.findings(game, "h", spread_market=True) == []

    def test_small_sample_skipped(self):
        past = _home_covers("h", dt.date(2023, 1, 2), 10)
        game = _game(day=dt.date(2024, 1, 20), away="x", spread=-5.0, total=140.0)
        _, angles = self._index(past, game)
        assert angles.findings(game, "h", spread_market=True) == []

    def test_votes_weighted_by_interest(self):
        # three long-sample weak angles for the home side outvote one short strong angle
        weak = TrendSignificance(59, 100, 0.5, 0.08, Strength.WEAK)
        strong = TrendSignificance(20, 20, 0.5, 1e-6, Strength.STRONG)
        template = DEFAULT_TEMPLATES[0]
        home = [AngleFinding("h", template, Direction.HOME, AngleRecord(), weak) for _ in range(3)]
        away = [AngleFinding("a", template, Direction.AWAY, AngleRecord(), strong)]
        assert [f.weight for f in home + away] == [5, 5, 5, 10]

        class _Fixed:
            def findings(self, game, team_id, spread_market):
                return home if team_id == "h" else away

        game = _game(spread=-5.0, total=140.0)
        result = trend_angles(_inputs(game, Market.SPREAD, angles=_Fixed()))
        assert result.direction is Direction.HOME
        # (15 - 10) / 25 of the vote, plus half a point for the one strong angle
        assert result.magnitude == pytest.approx(2.5)


class TestRegistry:
    """One result per market category, in a fixed order."""

    def test_categories_per_market(self):
        game = _game(spread=-3.0, total=140.0)
        spread = generate_signals(_inputs(game, Market.SPREAD))
        total = generate_signals(_inputs(game, Market.TOTAL))
        assert [s.category for s in spread] == list(profile_for(Sport.NCAAMB).weights(Market.SPREAD))
        assert [s.category for s in total] == list(profile_for(Sport.NCAAMB).weights(Market.TOTAL))
