"""Inputs shared by every signal generator, and a result constructor."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Mapping, Optional, Tuple

from ..data.history import HistoryIndex
from ..data.snapshots import MatchedGame
from ..models.game import Game
from ..models.signal import SignalResult, clamp, strength_for
from ..models.sport import Direction, Market, SportProfile
from ..predictors.base import BasePredictor

if TYPE_CHECKING:
    from .angles import AngleIndex


@dataclass
class SignalInputs:
    """Everything a generator may read for one (game, market).

    ``history`` answers only for dates strictly before ``game.date`` and
    ``matched`` holds snapshots dated strictly before it, so generators
    cannot observe the outcome they are predicting.
    """

    game: Game
    market: Market
    history: HistoryIndex
    profile: SportProfile
    matched: Optional[MatchedGame] = None
    predictor: Optional[BasePredictor] = None
    angles: Optional["AngleIndex"] = None
    conferences: Mapping[str, Optional[str]] = field(default_factory=dict)

    @property
    def before(self):
        return self.game.date

    @property
    def is_spread(self) -> bool:
        return self.market is Market.SPREAD

    @property
    def market_sides(self) -> Tuple[Direction, Direction]:
        return Direction.sides(self.market)


def make_signal(
    category: str,
    direction: Direction,
    magnitude: float,
    confidence: float,
    label: str,
    strong: float = 7.0,
    moderate: float = 4.0,
    weak: float = 1.5,
) -> SignalResult:
    """Clamp and classify; a neutral direction always yields the neutral result."""
    if direction is Direction.NEUTRAL:
        return SignalResult.neutral(category, label)
    magnitude = clamp(magnitude)
    return SignalResult(
        category=category,
        direction=direction,
        magnitude=magnitude,
        confidence=clamp(confidence, 0.0, 1.0),
        strength=strength_for(magnitude, strong, moderate, weak),
        label=label,
    )
