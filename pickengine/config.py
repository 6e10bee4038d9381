"""Validated configuration for matching, training, scoring, and sweeps.

Every struct checks its ranges in ``__post_init__`` and raises
`ConfigError`, so a bad JSON config fails at load time rather than
halfway through a backtest.
"""

from __future__ import annotations

import copy
import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytz

from .errors import ConfigError
from .models.sport import Direction, Market, Sport, profile_for
from .predictors.features import FEATURE_NAMES

MISSING_WEIGHT_FALLBACK = 0.1
WEIGHT_SUM_TOLERANCE = 1e-6
SIDE_SOURCES = ("convergence", "model")


# ---------------------------------------------------------------------------
# Weights and tiers
# ---------------------------------------------------------------------------


@dataclass
class WeightTable:
    """Per-category weights for one market. Entries sum to 1.0.

    A category listed with weight 0.0 contributes nothing. A category not
    listed at all falls back to `MISSING_WEIGHT_FALLBACK`.
    """

    market: Market
    weights: Dict[str, float]

    def __post_init__(self):
        self.market = Market(self.market)
        if not self.weights:
            raise ConfigError(f"{self.market.value} weight table is empty")
        for category, weight in self.weights.items():
            if not isinstance(weight, (int, float)) or isinstance(weight, bool) or not math.isfinite(weight):
                raise ConfigError(f"{self.market.value} weight for '{category}' is not a number: {weight!r}")
            if not 0.0 <= weight <= 1.0:
                raise ConfigError(f"{self.market.value} weight for '{category}' outside [0, 1]: {weight}")
        total = sum(self.weights.values())
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ConfigError(f"{self.market.value} weights sum to {total:.6f}, expected 1.0")
        self.weights = {k: float(v) for k, v in self.weights.items()}

    def weight_for(self, category: str) -> float:
        if category in self.weights:
            return self.weights[category]
        return MISSING_WEIGHT_FALLBACK

    def scaled(self, category: str, factor: float) -> "WeightTable":
        """Copy with one category multiplied by ``factor`` and the rest renormalized."""
        raw = dict(self.weights)
        raw[category] = raw.get(category, MISSING_WEIGHT_FALLBACK) * factor
        total = sum(raw.values())
        if total <= 0:
            raise ConfigError(f"{self.market.value} weights vanish when {category} is scaled by {factor}")
        return WeightTable(self.market, {k: v / total for k, v in raw.items()})

    def describe(self) -> str:
        return ", ".join(f"{k}={v:.3f}" for k, v in sorted(self.weights.items()))

    def to_dict(self) -> dict:
        return {"market": self.market.value, "weights": dict(self.weights)}

    @classmethod
    def from_dict(cls, data: dict) -> "WeightTable":
        return cls(market=Market(data["market"]), weights=dict(data["weights"]))


def _market_of(side: Direction) -> Market:
    return Market.SPREAD if side in (Direction.HOME, Direction.AWAY) else Market.TOTAL


@dataclass(frozen=True)
class TierContext:
    """What a tier rule may look at when classifying one candidate pick."""

    score: float
    side: Direction
    edge: Optional[float] = None  # model edge in points, signed toward the positive side
    avg_tempo: Optional[float] = None
    line: Optional[float] = None

    @property
    def side_edge(self) -> Optional[float]:
        """Edge measured toward the chosen side; negative when the model disagrees."""
        if self.edge is None or self.side is Direction.NEUTRAL:
            return None
        positive, _ = Direction.sides(_market_of(self.side))
        return self.edge if self.side is positive else -self.edge


@dataclass(frozen=True)
class TierRule:
    """Conjunctive filter. Unset fields do not constrain."""

    tier: int
    min_score: Optional[float] = None
    min_edge: Optional[float] = None
    direction: Optional[Direction] = None
    max_tempo: Optional[float] = None
    max_line: Optional[float] = None

    def __post_init__(self):
        if not 1 <= self.tier <= 5:
            raise ConfigError(f"tier must be 1-5, got {self.tier}")
        if self.min_score is not None and not 0 <= self.min_score <= 100:
            raise ConfigError(f"min_score must be within 0-100, got {self.min_score}")
        if self.min_edge is not None and self.min_edge < 0:
            raise ConfigError(f"min_edge must be >= 0, got {self.min_edge}")
        if self.direction is not None:
            object.__setattr__(self, "direction", Direction(self.direction))
            if self.direction is Direction.NEUTRAL:
                raise ConfigError("a tier rule cannot select the neutral direction")

    def matches(self, ctx: TierContext) -> bool:
        if ctx.side is Direction.NEUTRAL:
            return False
        if self.min_score is not None and ctx.score < self.min_score:
            return False
        if self.direction is not None and ctx.side is not self.direction:
            return False
        if self.min_edge is not None:
            if ctx.side_edge is None or ctx.side_edge < self.min_edge:
                return False
        if self.max_tempo is not None:
            if ctx.avg_tempo is None or ctx.avg_tempo > self.max_tempo:
                return False
        if self.max_line is not None:
            if ctx.line is None or ctx.line > self.max_line:
                return False
        return True

    def describe(self) -> str:
        parts = []
        if self.min_score is not None:
            parts.append(f"score>={self.min_score:g}")
        side = self.direction.value if self.direction else "any"
        if self.min_edge is not None:
            parts.append(f"{side}>={self.min_edge:g}")
        elif self.direction is not None:
            parts.append(side)
        if self.max_tempo is not None:
            parts.append(f"tempo<={self.max_tempo:g}")
        if self.max_line is not None:
            parts.append(f"line<={self.max_line:g}")
        return " & ".join(parts) or "any"

    def to_dict(self) -> dict:
        return {
            "tier": self.tier,
            "min_score": self.min_score,
            "min_edge": self.min_edge,
            "direction": self.direction.value if self.direction else None,
            "max_tempo": self.max_tempo,
            "max_line": self.max_line,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TierRule":
        direction = data.get("direction")
        return cls(
            tier=int(data["tier"]),
            min_score=data.get("min_score"),
            min_edge=data.get("min_edge"),
            direction=Direction(direction) if direction else None,
            max_tempo=data.get("max_tempo"),
            max_line=data.get("max_line"),
        )


@dataclass(frozen=True)
class AnyOfRule:
    """Tier rule satisfied when any member rule matches (e.g. under>=5 | over>=10)."""

    tier: int
    members: Tuple[TierRule, ...]

    def __post_init__(self):
        if not self.members:
            raise ConfigError("AnyOfRule needs at least one member")
        if any(m.tier != self.tier for m in self.members):
            raise ConfigError("AnyOfRule members must share the rule's tier")

    def matches(self, ctx: TierContext) -> bool:
        return any(m.matches(ctx) for m in self.members)

    def describe(self) -> str:
        return " | ".join(m.describe() for m in self.members)

    def to_dict(self) -> dict:
        return {"tier": self.tier, "any_of": [m.to_dict() for m in self.members]}


def rule_from_dict(data: dict):
    if "any_of" in data:
        return AnyOfRule(int(data["tier"]), tuple(TierRule.from_dict(m) for m in data["any_of"]))
    return TierRule.from_dict(data)


@dataclass
class TierScheme:
    """Ordered tier rules; the first (highest) matching tier wins, 0 means no pick.

    ``side_source`` names the side a pick is tiered and graded on:
    ``"convergence"`` is the side the signals agree on, ``"model"`` is the
    side the ridge model's edge points to.
    """

    rules: List
    name: str = "default"
    side_source: str = "convergence"

    def __post_init__(self):
        if self.side_source not in SIDE_SOURCES:
            raise ConfigError(
                f"tier scheme '{self.name}' has unknown side_source {self.side_source!r}; "
                f"expected one of {', '.join(SIDE_SOURCES)}"
            )
        if not self.rules:
            raise ConfigError(f"tier scheme '{self.name}' has no rules")
        tiers = [r.tier for r in self.rules]
        if any(a <= b for a, b in zip(tiers, tiers[1:])):
            raise ConfigError(f"tier scheme '{self.name}' must list tiers strictly descending, got {tiers}")

    @property
    def tiers(self) -> List[int]:
        return [r.tier for r in self.rules]

    def assign(self, ctx: TierContext) -> int:
        for rule in self.rules:
            if rule.matches(ctx):
                return rule.tier
        return 0

    def describe(self) -> str:
        return "; ".join(f"{r.tier}*: {r.describe()}" for r in self.rules)

    def to_dict(self) -> dict:
        return {"name": self.name, "side_source": self.side_source, "rules": [r.to_dict() for r in self.rules]}

    @classmethod
    def from_dict(cls, data: dict) -> "TierScheme":
        return cls(
            rules=[rule_from_dict(r) for r in data["rules"]],
            name=data.get("name", "default"),
            side_source=data.get("side_source", "convergence"),
        )


def default_tier_scheme() -> TierScheme:
    return TierScheme(
        rules=[TierRule(5, min_score=85), TierRule(4, min_score=70), TierRule(3, min_score=55)],
        name="score-85-70-55",
    )


# ---------------------------------------------------------------------------
# Component configs
# ---------------------------------------------------------------------------


@dataclass
class MatcherConfig:
    window_days: int = 3
    momentum_horizons: Tuple[int, ...] = (7, 14)
    momentum_tolerance_days: int = 3

    def __post_init__(self):
        if not 0 <= self.window_days <= 14:
            raise ConfigError(f"window_days must be within 0-14, got {self.window_days}")
        self.momentum_horizons = tuple(int(h) for h in self.momentum_horizons)
        if any(h < 1 for h in self.momentum_horizons):
            raise ConfigError("momentum horizons must be positive day counts")
        if not 0 <= self.momentum_tolerance_days <= 7:
            raise ConfigError(f"momentum_tolerance_days must be within 0-7, got {self.momentum_tolerance_days}")


@dataclass
class RidgeConfig:
    lam: float = 1000.0
    features: Optional[Tuple[str, ...]] = None  # None: the sport profile's feature set
    pivot_floor: float = 1e-10
    min_training_games: int = 100

    def __post_init__(self):
        if self.lam < 0 or not math.isfinite(self.lam):
            raise ConfigError(f"lam must be a finite value >= 0, got {self.lam}")
        if not 0 < self.pivot_floor < 1:
            raise ConfigError(f"pivot_floor must be within (0, 1), got {self.pivot_floor}")
        if self.min_training_games < 1:
            raise ConfigError(f"min_training_games must be >= 1, got {self.min_training_games}")
        if self.features is not None:
            self.features = tuple(self.features)
            unknown = [f for f in self.features if f not in FEATURE_NAMES]
            if unknown:
                raise ConfigError(f"unknown features: {unknown}")
            if not self.features or self.features[0] != "intercept":
                raise ConfigError("feature list must start with 'intercept'")


@dataclass
class BacktestConfig:
    markets: Tuple[Market, ...] = (Market.TOTAL,)
    headline_edge: float = 1.5  # the model record is also reported at |edge| >= this
    seasons: Optional[Tuple[int, ...]] = None
    weeks_per_season: Optional[float] = None  # None: the sport profile's value

    def __post_init__(self):
        self.markets = tuple(Market(m) for m in self.markets)
        if not self.markets:
            raise ConfigError("backtest needs at least one market")
        if self.headline_edge < 0:
            raise ConfigError(f"headline_edge must be >= 0, got {self.headline_edge}")
        if self.seasons is not None:
            self.seasons = tuple(int(s) for s in self.seasons)
        if self.weeks_per_season is not None and self.weeks_per_season <= 0:
            raise ConfigError(f"weeks_per_season must be > 0, got {self.weeks_per_season}")


@dataclass
class SweepConfig:
    space: str = "totals"
    volume_bands: Dict[int, Tuple[float, float]] = field(
        default_factory=lambda: {5: (0.5, 4.5), 4: (5.0, 25.0), 3: (35.0, 80.0)}
    )
    min_samples: Dict[int, int] = field(default_factory=lambda: {5: 20, 4: 100, 3: 500})
    min_top_win_rate: float = 0.60
    min_full_seasons: int = 5
    top_n: int = 20
    parallel_workers: int = 1
    chunk_size: int = 256

    def __post_init__(self):
        self.volume_bands = {int(k): (float(v[0]), float(v[1])) for k, v in self.volume_bands.items()}
        self.min_samples = {int(k): int(v) for k, v in self.min_samples.items()}
        for tier, (lo, hi) in self.volume_bands.items():
            if lo < 0 or hi < lo:
                raise ConfigError(f"volume band for tier {tier} is invalid: ({lo}, {hi})")
        if not 0.0 <= self.min_top_win_rate <= 1.0:
            raise ConfigError(f"min_top_win_rate must be within 0-1, got {self.min_top_win_rate}")
        if self.min_full_seasons < 1:
            raise ConfigError("min_full_seasons must be >= 1")
        if self.top_n < 1:
            raise ConfigError("top_n must be >= 1")
        if self.parallel_workers < 1:
            raise ConfigError("parallel_workers must be >= 1")
        if self.chunk_size < 1:
            raise ConfigError("chunk_size must be >= 1")


# ---------------------------------------------------------------------------
# Top-level engine config
# ---------------------------------------------------------------------------


@dataclass
class EngineConfig:
    timezone: str = "US/Eastern"
    matcher: MatcherConfig = field(default_factory=MatcherConfig)
    ridge: RidgeConfig = field(default_factory=RidgeConfig)
    backtest: BacktestConfig = field(default_factory=BacktestConfig)
    sweep: SweepConfig = field(default_factory=SweepConfig)
    weight_tables: Dict[Sport, Dict[Market, WeightTable]] = field(default_factory=dict)
    tier_schemes: Dict[Sport, Dict[Market, TierScheme]] = field(default_factory=dict)

    def __post_init__(self):
        self.weight_tables = {
            Sport(s): {Market(m): t for m, t in tables.items()} for s, tables in self.weight_tables.items()
        }
        self.tier_schemes = {
            Sport(s): {Market(m): t for m, t in schemes.items()} for s, schemes in self.tier_schemes.items()
        }
        try:
            pytz.timezone(self.timezone)
        except pytz.UnknownTimeZoneError as exc:
            raise ConfigError(f"unknown timezone: {self.timezone}") from exc
        for sport, tables in self.weight_tables.items():
            for market, table in tables.items():
                if table.market is not Market(market):
                    raise ConfigError(f"{Sport(sport).value}: weight table filed under {market} is for {table.market.value}")

    @property
    def tz(self):
        return pytz.timezone(self.timezone)

    def weight_table(self, sport: Sport, market: Market) -> WeightTable:
        override = self.weight_tables.get(Sport(sport), {}).get(Market(market))
        if override is not None:
            return override
        return WeightTable(market, profile_for(sport).weights(market))

    def tier_scheme(self, sport: Sport, market: Market) -> TierScheme:
        override = self.tier_schemes.get(Sport(sport), {}).get(Market(market))
        return override if override is not None else default_tier_scheme()

    def features(self, sport: Sport, market: Market) -> Tuple[str, ...]:
        if self.ridge.features is not None:
            return self.ridge.features
        return profile_for(sport).features(market)

    def with_tier_scheme(self, sport: Sport, market: Market, scheme: TierScheme) -> "EngineConfig":
        updated = copy.deepcopy(self)
        updated.tier_schemes.setdefault(Sport(sport), {})[Market(market)] = scheme
        return updated

    def with_weight_table(self, sport: Sport, table: WeightTable) -> "EngineConfig":
        updated = copy.deepcopy(self)
        updated.weight_tables.setdefault(Sport(sport), {})[table.market] = table
        return updated

    def to_dict(self) -> dict:
        return {
            "timezone": self.timezone,
            "matcher": {
                "window_days": self.matcher.window_days,
                "momentum_horizons": list(self.matcher.momentum_horizons),
                "momentum_tolerance_days": self.matcher.momentum_tolerance_days,
            },
            "ridge": {
                "lam": self.ridge.lam,
                "features": list(self.ridge.features) if self.ridge.features else None,
                "pivot_floor": self.ridge.pivot_floor,
                "min_training_games": self.ridge.min_training_games,
            },
            "backtest": {
                "markets": [m.value for m in self.backtest.markets],
                "headline_edge": self.backtest.headline_edge,
                "seasons": list(self.backtest.seasons) if self.backtest.seasons else None,
                "weeks_per_season": self.backtest.weeks_per_season,
            },
            "sweep": {
                "space": self.sweep.space,
                "volume_bands": {str(k): list(v) for k, v in self.sweep.volume_bands.items()},
                "min_samples": {str(k): v for k, v in self.sweep.min_samples.items()},
                "min_top_win_rate": self.sweep.min_top_win_rate,
                "min_full_seasons": self.sweep.min_full_seasons,
                "top_n": self.sweep.top_n,
                "parallel_workers": self.sweep.parallel_workers,
                "chunk_size": self.sweep.chunk_size,
            },
            "weight_tables": {
                s.value: {m.value: t.to_dict() for m, t in tables.items()}
                for s, tables in self.weight_tables.items()
            },
            "tier_schemes": {
                s.value: {m.value: t.to_dict() for m, t in schemes.items()}
                for s, schemes in self.tier_schemes.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EngineConfig":
        try:
            return cls(
                timezone=data.get("timezone", "US/Eastern"),
                matcher=MatcherConfig(**data.get("matcher", {})),
                ridge=RidgeConfig(**data.get("ridge", {})),
                backtest=BacktestConfig(**data.get("backtest", {})),
                sweep=SweepConfig(**data.get("sweep", {})),
                weight_tables={
                    Sport(s): {Market(m): WeightTable.from_dict(t) for m, t in tables.items()}
                    for s, tables in data.get("weight_tables", {}).items()
                },
                tier_schemes={
                    Sport(s): {Market(m): TierScheme.from_dict(t) for m, t in schemes.items()}
                    for s, schemes in data.get("tier_schemes", {}).items()
                },
            )
        except ConfigError:
            raise
        except (TypeError, KeyError, ValueError) as exc:
            raise ConfigError(f"malformed engine config: {exc}") from exc


def load_engine_config(path: Optional[str]) -> EngineConfig:
    """Load an `EngineConfig` from JSON; None gives the defaults."""
    if path is None:
        return EngineConfig()
    with open(path, "r") as f:
        data = json.load(f)
    return EngineConfig.from_dict(data)


def save_engine_config(config: EngineConfig, path: str) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(config.to_dict(), f, indent=2)
