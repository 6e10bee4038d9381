"""Base predictor interface: a number on the market line's scale, per game."""

from abc import ABC, abstractmethod
from typing import Dict, Optional

from ..models.game import Game
from ..models.sport import Direction, Market


class BasePredictor(ABC):
    """Abstract base class for the models behind the model-edge signal."""

    # points of edge per unit of signal magnitude, and the dead zone around zero
    edge_scale: Dict[Market, float] = {Market.SPREAD: 1.0, Market.TOTAL: 1.0}
    edge_threshold: Dict[Market, float] = {Market.SPREAD: 0.0, Market.TOTAL: 0.0}

    def __init__(self, name: str):
        """
        Initialize predictor.

        Args:
            name: Name shown in signal labels
        """
        self.name = name

    @abstractmethod
    def predict(self, game: Game, market: Market) -> Optional[float]:
        """
        Predict the market's target for a game.

        Args:
            game: Game to predict (only data dated before it may be used)
            market: TOTAL predicts total points, SPREAD predicts home margin

        Returns:
            Prediction, or None when the model has no opinion on this game
        """

    def sigma(self, market: Market) -> Optional[float]:
        """Spread of outcomes around the prediction, if the model knows it."""
        return None

    def confidence(self, game: Game, market: Market) -> float:
        return 0.5

    def edge(self, game: Game, market: Market) -> Optional[float]:
        """Prediction minus the market line, on the same scale."""
        line = game.market_line(market)
        if line is None:
            return None
        predicted = self.predict(game, market)
        if predicted is None:
            return None
        return predicted - line


def edge_direction(edge: Optional[float], market: Market) -> Direction:
    """Sign of the edge as a side; exactly zero (or no edge) is no pick."""
    if edge is None or edge == 0:
        return Direction.NEUTRAL
    positive, negative = Direction.sides(market)
    return positive if edge > 0 else negative
