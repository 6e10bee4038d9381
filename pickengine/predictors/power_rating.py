"""Season power rating from scoring margins (sports without rating snapshots)."""

from __future__ import annotations

from typing import Dict, Optional, Tuple

from ..data.history import HistoryIndex, Record
from ..models.game import Game
from ..models.signal import clamp
from ..models.sport import Market, Sport, profile_for
from .base import BasePredictor

# Typical outcome spread around the line, used to turn an edge into a probability.
OUTCOME_SIGMA: Dict[Sport, Dict[Market, float]] = {
    Sport.NFL: {Market.SPREAD: 13.5, Market.TOTAL: 13.0},
    Sport.NCAAF: {Market.SPREAD: 16.0, Market.TOTAL: 16.5},
    Sport.NCAAMB: {Market.SPREAD: 11.0, Market.TOTAL: 12.0},
}


class PowerRatingPredictor(BasePredictor):
    """Averages of this season's margins and points, strictly before the game."""

    edge_scale = {Market.SPREAD: 1.0, Market.TOTAL: 2.0}
    edge_threshold = {Market.SPREAD: 1.0, Market.TOTAL: 2.0}

    def __init__(self, history: HistoryIndex, min_games: int = 4):
        super().__init__("Power rating")
        self.history = history
        self.min_games = min_games
        self.profile = profile_for(history.sport)

    def records(self, game: Game) -> Optional[Tuple[Record, Record]]:
        home, _ = self.history.season_record(game.home_id, game.season, game.date)
        away, _ = self.history.season_record(game.away_id, game.season, game.date)
        if home.games < self.min_games or away.games < self.min_games:
            return None
        return home, away

    def predict(self, game: Game, market: Market) -> Optional[float]:
        records = self.records(game)
        if records is None:
            return None
        home, away = records
        if market is Market.SPREAD:
            advantage = 0.0 if game.neutral_site else self.profile.home_advantage
            return (home.avg_margin - away.avg_margin) / 2.0 + advantage
        home_expected = (home.avg_for + away.avg_against) / 2.0
        away_expected = (away.avg_for + home.avg_against) / 2.0
        return home_expected + away_expected

    def sigma(self, market: Market) -> Optional[float]:
        return OUTCOME_SIGMA[self.history.sport][market]

    def confidence(self, game: Game, market: Market) -> float:
        records = self.records(game)
        if records is None:
            return 0.0
        fewest = min(records[0].games, records[1].games)
        base = clamp(0.3 + (fewest - self.min_games) * 0.03, 0.3, 0.55)
        return base if market is Market.SPREAD else base * 0.9
