"""Category → generator dispatch."""

from __future__ import annotations

import logging
from typing import Callable, Dict, List

from ..models.signal import SignalResult
from ..models.sport import (
    EFFICIENCY_MATCHUP, H2H, MARKET_DIVERGENCE, MODEL_EDGE, PACE_TOTAL, RECENT_FORM,
    REST, SEASON_ATS, SEASON_OU, SPREAD_CATEGORIES, TOTAL_CATEGORIES, TREND_ANGLES,
    WEATHER, Market,
)
from .angles import trend_angles
from .base import SignalInputs
from .matchup import efficiency_matchup, pace_total
from .model_edge import market_divergence, model_edge
from .team_trends import head_to_head, recent_form, rest_advantage, season_ats, season_ou
from .weather import weather

logger = logging.getLogger(__name__)

Generator = Callable[[SignalInputs], SignalResult]

GENERATORS: Dict[str, Generator] = {
    MODEL_EDGE: model_edge,
    SEASON_ATS: season_ats,
    SEASON_OU: season_ou,
    TREND_ANGLES: trend_angles,
    RECENT_FORM: recent_form,
    H2H: head_to_head,
    REST: rest_advantage,
    WEATHER: weather,
    MARKET_DIVERGENCE: market_divergence,
    EFFICIENCY_MATCHUP: efficiency_matchup,
    PACE_TOTAL: pace_total,
}

_missing = set(SPREAD_CATEGORIES + TOTAL_CATEGORIES) - set(GENERATORS)
if _missing:
    raise RuntimeError(f"Signal categories without a generator: {sorted(_missing)}")


def categories_for(market: Market):
    return SPREAD_CATEGORIES if market is Market.SPREAD else TOTAL_CATEGORIES


def generate_signals(inputs: SignalInputs) -> List[SignalResult]:
    """One result per category of the market, in a fixed order."""
    results = [GENERATORS[category](inputs) for category in categories_for(inputs.market)]
    logger.debug(
        "Game %s %s: %d/%d signals active",
        inputs.game.game_id, inputs.market.value,
        sum(1 for r in results if r.is_active), len(results),
    )
    return results
