"""Tests for configuration validation and persistence."""

import pytest

from pickengine.config import (
    AnyOfRule,
    BacktestConfig,
    EngineConfig,
    MatcherConfig,
    RidgeConfig,
    SweepConfig,
    TierContext,
    TierRule,
    TierScheme,
    WeightTable,
    default_tier_scheme,
    load_engine_config,
    rule_from_dict,
    save_engine_config,
)
from pickengine.errors import ConfigError
from pickengine.models.sport import Direction, Market, Sport, profile_for


class TestWeightTable:
    """Weight tables must be complete probability vectors."""

    def test_sum_must_be_one(self):
        with pytest.raises(ConfigError):
            WeightTable(Market.TOTAL, {"a": 0.5, "b": 0.4})

    def test_tolerance(self):
        WeightTable(Market.TOTAL, {"a": 0.3333333, "b": 0.3333333, "c": 0.3333334})

    def test_out_of_range(self):
        with pytest.raises(ConfigError):
            WeightTable(Market.TOTAL, {"a": 1.5, "b": -0.5})

    def test_non_numeric(self):
        with pytest.raises(ConfigError):
            WeightTable(Market.TOTAL, {"a": True})

    def test_empty(self):
        with pytest.raises(ConfigError):
            WeightTable(Market.SPREAD, {})

    def test_fallback_only_for_missing(self):
        table = WeightTable(Market.TOTAL, {"a": 1.0, "b": 0.0})
        assert table.weight_for("b") == 0.0
        assert table.weight_for("zzz") == pytest.approx(0.1)

    def test_builtin_profiles_are_valid(self):
        for sport in Sport:
            for market in Market:
                WeightTable(market, profile_for(sport).weights(market))


class TestTierRules:
    """Tier rule matching and scheme ordering."""

    def test_side_edge_follows_the_side(self):
        assert TierContext(80, Direction.UNDER, edge=-3.0).side_edge == 3.0
        assert TierContext(80, Direction.OVER, edge=-3.0).side_edge == -3.0
        assert TierContext(80, Direction.HOME, edge=2.0).side_edge == 2.0
        assert TierContext(80, Direction.AWAY, edge=2.0).side_edge == -2.0
        assert TierContext(80, Direction.NEUTRAL, edge=2.0).side_edge is None

    def test_neutral_never_matches(self):
        assert not TierRule(3).matches(TierContext(100, Direction.NEUTRAL))

    def test_direction_filter(self):
        rule = TierRule(5, direction=Direction.UNDER)
        assert rule.matches(TierContext(10, Direction.UNDER))
        assert not rule.matches(TierContext(10, Direction.OVER))

    def test_score_threshold_inclusive(self):
        assert TierRule(4, min_score=70).matches(TierContext(70, Direction.OVER))
        assert not TierRule(4, min_score=70).matches(TierContext(69, Direction.OVER))

    def test_invalid_rules(self):
        with pytest.raises(ConfigError):
            TierRule(6)
        with pytest.raises(ConfigError):
            TierRule(3, min_score=120)
        with pytest.raises(ConfigError):
            TierRule(3, direction=Direction.NEUTRAL)
        with pytest.raises(ConfigError):
            TierRule(3, min_edge=-1.0)

    def test_any_of(self):
        rule = AnyOfRule(4, (TierRule(4, min_edge=5.0, direction=Direction.UNDER),
                             TierRule(4, min_edge=10.0, direction=Direction.OVER)))
        assert rule.matches(TierContext(50, Direction.UNDER, edge=-6.0))
        assert not rule.matches(TierContext(50, Direction.OVER, edge=6.0))
        assert rule.matches(TierContext(50, Direction.OVER, edge=11.0))
        assert rule_from_dict(rule.to_dict()) == rule

    def test_any_of_members_share_tier(self):
        with pytest.raises(ConfigError):
            AnyOfRule(4, (TierRule(3, min_score=50),))

    def test_scheme_must_descend(self):
        with pytest.raises(ConfigError):
            TierScheme([TierRule(3), TierRule(4)])
        with pytest.raises(ConfigError):
            TierScheme([TierRule(4), TierRule(4)])

    def test_first_match_wins(self):
        scheme = default_tier_scheme()
        assert scheme.assign(TierContext(90, Direction.OVER)) == 5
        assert scheme.assign(TierContext(75, Direction.OVER)) == 4
        assert scheme.assign(TierContext(55, Direction.OVER)) == 3
        assert scheme.assign(TierContext(54, Direction.OVER)) == 0

    def test_scheme_round_trip(self):
        scheme = TierScheme(
            [TierRule(5, min_edge=12.0, direction=Direction.UNDER, max_tempo=66.0),
             TierRule(4, min_score=70, max_line=145.0), TierRule(3, min_score=55)],
            name="custom",
        )
        restored = TierScheme.from_dict(scheme.to_dict())
        assert restored.rules == scheme.rules
        assert restored.name == "custom"
        assert restored.side_source == "convergence"
        assert "under>=12" in scheme.describe()


    def test_side_source(self):
        scheme = TierScheme([TierRule(5, min_edge=8.0)], name="edge", side_source="model")
        assert TierScheme.from_dict(scheme.to_dict()).side_source == "model"
        # older files carry no side_source
        assert TierScheme.from_dict({"rules": [TierRule(3).to_dict()]}).side_source == "convergence"
        with pytest.raises(ConfigError):
            TierScheme([TierRule(5)], side_source="market")


class TestComponentConfigs:
    """Range checks on the component configs."""

    def test_matcher_window(self):
        with pytest.raises(ConfigError):
            MatcherConfig(window_days=15)
        with pytest.raises(ConfigError):
            MatcherConfig(momentum_horizons=(0,))

    def test_ridge(self):
        with pytest.raises(ConfigError):
            RidgeConfig(lam=-1.0)
        with pytest.raises(ConfigError):
            RidgeConfig(features=("intercept", "shot_quality"))
        with pytest.raises(ConfigError):
            RidgeConfig(features=("sum_de", "intercept"))

    def test_backtest(self):
        with pytest.raises(ConfigError):
            BacktestConfig(markets=())
        with pytest.raises(ConfigError):
            BacktestConfig(weeks_per_season=0)
        assert BacktestConfig(markets=("spread",)).markets == (Market.SPREAD,)

    def test_sweep(self):
        with pytest.raises(ConfigError):
            SweepConfig(volume_bands={5: (4.0, 1.0)})
        with pytest.raises(ConfigError):
            SweepConfig(parallel_workers=0)
        assert SweepConfig(min_samples={"5": "20"}).min_samples == {5: 20}


class TestEngineConfig:
    """Lookup, overrides, and JSON persistence."""

    def test_unknown_timezone(self):
        with pytest.raises(ConfigError):
            EngineConfig(timezone="Mars/Olympus")

    def test_defaults_come_from_profile(self):
        config = EngineConfig()
        table = config.weight_table(Sport.NFL, Market.TOTAL)
        assert table.weights == profile_for(Sport.NFL).weights(Market.TOTAL)
        assert config.features(Sport.NCAAMB, Market.TOTAL) == ("intercept", "sum_de", "sum_oe", "avg_tempo")

    def test_with_weight_table_copies(self):
        config = EngineConfig()
        table = WeightTable(Market.TOTAL, {"model_edge": 0.6, "weather": 0.4})
        updated = config.with_weight_table(Sport.NFL, table)
        assert updated.weight_table(Sport.NFL, Market.TOTAL) == table
        assert config.weight_table(Sport.NFL, Market.TOTAL).weights == profile_for(Sport.NFL).weights(Market.TOTAL)
        assert EngineConfig.from_dict(updated.to_dict()).weight_table(Sport.NFL, Market.TOTAL) == table

    def test_scaled_weight_table(self):
        table = WeightTable(Market.TOTAL, {"a": 0.5, "b": 0.25, "c": 0.25})
        assert table.scaled("a", 0.0).weights == pytest.approx({"a": 0.0, "b": 0.5, "c": 0.5})
        assert table.scaled("b", 3.0).weights == pytest.approx({"a": 1 / 3, "b": 0.5, "c": 1 / 6})
        with pytest.raises(ConfigError):
            WeightTable(Market.TOTAL, {"a": 1.0}).scaled("a", 0.0)

    def test_with_tier_scheme_copies(self):
        config = EngineConfig()
        scheme = TierScheme([TierRule(5, min_score=90)], name="strict")
        updated = config.with_tier_scheme(Sport.NCAAMB, Market.TOTAL, scheme)
        assert updated.tier_scheme(Sport.NCAAMB, Market.TOTAL).name == "strict"
        assert config.tier_scheme(Sport.NCAAMB, Market.TOTAL).name == default_tier_scheme().name

    def test_dict_round_trip(self):
        config = EngineConfig(
            timezone="US/Pacific",
            matcher=MatcherConfig(window_days=5),
            backtest=BacktestConfig(markets=(Market.SPREAD, Market.TOTAL), weeks_per_season=19.5),
            weight_tables={Sport.NFL: {Market.SPREAD: WeightTable(Market.SPREAD, {"model_edge": 1.0})}},
        )
        config = config.with_tier_scheme(Sport.NFL, Market.SPREAD, TierScheme([TierRule(4, min_score=60)], "x"))
        restored = EngineConfig.from_dict(config.to_dict())
        assert restored.to_dict() == config.to_dict()

    def test_malformed_dict(self):
        with pytest.raises(ConfigError):
            EngineConfig.from_dict({"matcher": {"window": 3}})
        with pytest.raises(ConfigError):
            EngineConfig.from_dict({"weight_tables": {"NBA": {}}})

    def test_file_round_trip(self, tmp_path):
        path = tmp_path / "nested" / "engine.json"
        config = EngineConfig(ridge=RidgeConfig(lam=250.0, min_training_games=40))
        save_engine_config(config, str(path))
        loaded = load_engine_config(str(path))
        assert loaded.ridge.lam == 250.0
        assert loaded.ridge.min_training_games == 40

    def test_no_path_gives_defaults(self):
        assert load_engine_config(None).to_dict() == EngineConfig().to_dict()
