"""Snapshot-driven ridge predictor (sports with daily efficiency ratings)."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from ..data.snapshots import MatchedGame, SnapshotMatcher
from ..models.game import Game
from ..models.sport import Market
from .base import BasePredictor
from .ridge import ModelCoefficients

logger = logging.getLogger(__name__)


class RidgePredictor(BasePredictor):
    """Applies one season's ridge coefficients to point-in-time snapshots."""

    edge_scale = {Market.SPREAD: 0.7, Market.TOTAL: 1.5}
    edge_threshold = {Market.SPREAD: 0.5, Market.TOTAL: 0.5}

    def __init__(
        self,
        matcher: SnapshotMatcher,
        coefficients: Dict[Market, ModelCoefficients],
        matched_cache: Optional[Dict[str, Optional[MatchedGame]]] = None,
    ):
        super().__init__("Ridge")
        self.matcher = matcher
        self.coefficients = dict(coefficients)
        self._matched = matched_cache if matched_cache is not None else {}

    def matched(self, game: Game) -> Optional[MatchedGame]:
        if game.game_id not in self._matched:
            self._matched[game.game_id] = self.matcher.try_match_game(game)
        return self._matched[game.game_id]

    def predict(self, game: Game, market: Market) -> Optional[float]:
        coefficients = self.coefficients.get(market)
        if coefficients is None:
            return None
        matched = self.matched(game)
        if matched is None:
            return None
        return coefficients.predict(matched)

    def sigma(self, market: Market) -> Optional[float]:
        coefficients = self.coefficients.get(market)
        if coefficients is None or coefficients.residual_std <= 0:
            return None
        return coefficients.residual_std

    def confidence(self, game: Game, market: Market) -> float:
        return 0.85 if market is Market.TOTAL else 0.8
