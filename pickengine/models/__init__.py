"""Domain models for the pick engine."""

from .game import Game, MarketPrices, Outcome, Weather
from .signal import Pick, Reason, SignalResult, Strength
from .sport import Direction, Market, Sport, SportProfile, profile_for
from .team import RatingSnapshot, Team

__all__ = [
    "Direction",
    "Game",
    "Market",
    "MarketPrices",
    "Outcome",
    "Pick",
    "RatingSnapshot",
    "Reason",
    "SignalResult",
    "Sport",
    "SportProfile",
    "Strength",
    "Team",
    "Weather",
    "profile_for",
]
