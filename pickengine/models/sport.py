"""Supported sports, betting markets, and per-sport scoring profiles."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Tuple


class Sport(str, Enum):
    NCAAMB = "NCAAMB"
    NFL = "NFL"
    NCAAF = "NCAAF"


class Market(str, Enum):
    SPREAD = "spread"
    TOTAL = "total"


class Direction(str, Enum):
    HOME = "home"
    AWAY = "away"
    OVER = "over"
    UNDER = "under"
    NEUTRAL = "neutral"

    @property
    def opposite(self) -> "Direction":
        return _OPPOSITES[self]

    @classmethod
    def sides(cls, market: Market) -> Tuple["Direction", "Direction"]:
        """(positive side, negative side) for a market."""
        if market is Market.SPREAD:
            return cls.HOME, cls.AWAY
        return cls.OVER, cls.UNDER


_OPPOSITES = {
    Direction.HOME: Direction.AWAY,
    Direction.AWAY: Direction.HOME,
    Direction.OVER: Direction.UNDER,
    Direction.UNDER: Direction.OVER,
    Direction.NEUTRAL: Direction.NEUTRAL,
}


# Signal categories
MODEL_EDGE = "model_edge"
SEASON_ATS = "season_ats"
SEASON_OU = "season_ou"
TREND_ANGLES = "trend_angles"
RECENT_FORM = "recent_form"
H2H = "h2h"
REST = "rest"
WEATHER = "weather"
MARKET_DIVERGENCE = "market_divergence"
EFFICIENCY_MATCHUP = "efficiency_matchup"
PACE_TOTAL = "pace_total"

SPREAD_CATEGORIES = (
    MODEL_EDGE, SEASON_ATS, TREND_ANGLES, RECENT_FORM, H2H,
    REST, WEATHER, MARKET_DIVERGENCE, EFFICIENCY_MATCHUP,
)
TOTAL_CATEGORIES = (
    MODEL_EDGE, SEASON_OU, TREND_ANGLES, RECENT_FORM, H2H,
    WEATHER, MARKET_DIVERGENCE, EFFICIENCY_MATCHUP, PACE_TOTAL,
)


@dataclass(frozen=True)
class SportProfile:
    """Everything that varies by sport in scoring and training."""

    sport: Sport
    indoor: bool
    uses_rating_snapshots: bool
    home_advantage: float
    weeks_per_season: int
    spread_weights: Dict[str, float] = field(default_factory=dict)
    total_weights: Dict[str, float] = field(default_factory=dict)
    spread_features: Tuple[str, ...] = ("intercept", "margin_diff")
    total_features: Tuple[str, ...] = ("intercept", "sum_de", "sum_oe", "avg_tempo")

    def weights(self, market: Market) -> Dict[str, float]:
        if market is Market.SPREAD:
            return dict(self.spread_weights)
        return dict(self.total_weights)

    def features(self, market: Market) -> Tuple[str, ...]:
        if market is Market.SPREAD:
            return self.spread_features
        return self.total_features

    def season_for(self, day: dt.date) -> int:
        """Season label for a calendar date.

        Basketball seasons are labelled by the year they end in (a November
        tip-off belongs to next year's season). Football seasons are labelled
        by the year they start in, so January-March games roll back a year.
        """
        if self.sport is Sport.NCAAMB:
            return day.year + 1 if day.month >= 11 else day.year
        return day.year - 1 if day.month <= 3 else day.year


SPORT_PROFILES: Dict[Sport, SportProfile] = {
    Sport.NCAAMB: SportProfile(
        sport=Sport.NCAAMB,
        indoor=True,
        uses_rating_snapshots=True,
        home_advantage=2.0,
        weeks_per_season=20,
        spread_weights={
            MODEL_EDGE: 0.25,
            SEASON_ATS: 0.10,
            TREND_ANGLES: 0.20,
            RECENT_FORM: 0.10,
            H2H: 0.05,
            REST: 0.05,
            WEATHER: 0.0,
            MARKET_DIVERGENCE: 0.10,
            EFFICIENCY_MATCHUP: 0.15,
        },
        total_weights={
            MODEL_EDGE: 0.30,
            SEASON_OU: 0.10,
            TREND_ANGLES: 0.15,
            RECENT_FORM: 0.05,
            H2H: 0.05,
            WEATHER: 0.0,
            MARKET_DIVERGENCE: 0.10,
            EFFICIENCY_MATCHUP: 0.15,
            PACE_TOTAL: 0.10,
        },
        spread_features=("intercept", "margin_diff", "em_momentum_diff_7d"),
        total_features=("intercept", "sum_de", "sum_oe", "avg_tempo"),
    ),
    Sport.NFL: SportProfile(
        sport=Sport.NFL,
        indoor=False,
        uses_rating_snapshots=False,
        home_advantage=2.5,
        weeks_per_season=18,
        spread_weights={
            MODEL_EDGE: 0.20,
            SEASON_ATS: 0.15,
            TREND_ANGLES: 0.20,
            RECENT_FORM: 0.15,
            H2H: 0.10,
            REST: 0.05,
            WEATHER: 0.05,
            MARKET_DIVERGENCE: 0.10,
            EFFICIENCY_MATCHUP: 0.0,
        },
        total_weights={
            MODEL_EDGE: 0.20,
            SEASON_OU: 0.15,
            TREND_ANGLES: 0.20,
            RECENT_FORM: 0.10,
            H2H: 0.10,
            WEATHER: 0.15,
            MARKET_DIVERGENCE: 0.10,
            EFFICIENCY_MATCHUP: 0.0,
            PACE_TOTAL: 0.0,
        },
    ),
    Sport.NCAAF: SportProfile(
        sport=Sport.NCAAF,
        indoor=False,
        uses_rating_snapshots=False,
        home_advantage=3.0,
        weeks_per_season=15,
        spread_weights={
            MODEL_EDGE: 0.20,
            SEASON_ATS: 0.15,
            TREND_ANGLES: 0.25,
            RECENT_FORM: 0.15,
            H2H: 0.10,
            REST: 0.05,
            WEATHER: 0.05,
            MARKET_DIVERGENCE: 0.05,
            EFFICIENCY_MATCHUP: 0.0,
        },
        total_weights={
            MODEL_EDGE: 0.20,
            SEASON_OU: 0.20,
            TREND_ANGLES: 0.20,
            RECENT_FORM: 0.10,
            H2H: 0.05,
            WEATHER: 0.15,
            MARKET_DIVERGENCE: 0.10,
            EFFICIENCY_MATCHUP: 0.0,
            PACE_TOTAL: 0.0,
        },
    ),
}

_missing = set(Sport) - set(SPORT_PROFILES)
if _missing:
    raise RuntimeError(f"Sports without a scoring profile: {sorted(s.value for s in _missing)}")


def profile_for(sport: Sport) -> SportProfile:
    return SPORT_PROFILES[Sport(sport)]
