"""Game model: schedule, pre-game market lines, final score."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..errors import GameStateError
from .sport import Direction, Market, Sport


class Outcome(str, Enum):
    WIN = "W"
    LOSS = "L"
    PUSH = "P"


@dataclass
class Weather:
    """Observed or forecast conditions at kickoff (outdoor sports)."""

    temperature: Optional[float] = None  # Fahrenheit
    wind: Optional[float] = None  # mph
    gust: Optional[float] = None  # mph
    precipitation: Optional[float] = None  # inches
    conditions: Optional[str] = None  # CLEAR / RAIN / SNOW / WIND / DOME

    def to_dict(self) -> dict:
        return {
            "temperature": self.temperature,
            "wind": self.wind,
            "gust": self.gust,
            "precipitation": self.precipitation,
            "conditions": self.conditions,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["Weather"]:
        if not data:
            return None
        return cls(
            temperature=data.get("temperature"),
            wind=data.get("wind"),
            gust=data.get("gust"),
            precipitation=data.get("precipitation"),
            conditions=data.get("conditions"),
        )


def _price(value) -> Optional[int]:
    return None if value is None else int(float(value))


@dataclass
class MarketPrices:
    """American odds for each side; missing prices mean standard -110 juice."""

    home: Optional[int] = None
    away: Optional[int] = None
    over: Optional[int] = None
    under: Optional[int] = None

    def to_dict(self) -> dict:
        return {"home": self.home, "away": self.away, "over": self.over, "under": self.under}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["MarketPrices"]:
        if not data:
            return None
        return cls(
            home=_price(data.get("home")),
            away=_price(data.get("away")),
            over=_price(data.get("over")),
            under=_price(data.get("under")),
        )


@dataclass
class Game:
    """One scheduled game.

    ``spread`` is quoted from the home side: -4.5 means the home team is a
    4.5-point favourite. A game is mutated twice in its life: once when the
    pre-game line is captured and once when the final score posts.
    """

    game_id: str
    sport: Sport
    season: int
    date: dt.date
    home_id: str
    away_id: str
    neutral_site: bool = False
    conference_game: bool = False
    tournament: bool = False
    spread: Optional[float] = None
    total: Optional[float] = None
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    weather: Optional[Weather] = None
    home_rank: Optional[int] = None
    away_rank: Optional[int] = None
    prices: Optional[MarketPrices] = None

    def __post_init__(self):
        self.sport = Sport(self.sport)
        if self.home_id == self.away_id:
            raise ValueError(f"Game {self.game_id}: home and away are the same team")
        if (self.home_score is None) != (self.away_score is None):
            raise ValueError(f"Game {self.game_id}: partial final score")

    # -- lifecycle ---------------------------------------------------------

    def capture_line(
        self,
        spread: Optional[float] = None,
        total: Optional[float] = None,
        prices: Optional[MarketPrices] = None,
    ) -> None:
        """Record the pre-game market line."""
        if self.is_final:
            raise GameStateError(f"Game {self.game_id}: line captured after the final score")
        if spread is not None:
            self.spread = float(spread)
        if total is not None:
            self.total = float(total)
        if prices is not None:
            self.prices = prices

    def post_result(self, home_score: int, away_score: int) -> None:
        if self.is_final:
            raise GameStateError(f"Game {self.game_id}: final score already posted")
        self.home_score = int(home_score)
        self.away_score = int(away_score)

    # -- derived -----------------------------------------------------------

    @property
    def is_final(self) -> bool:
        return self.home_score is not None and self.away_score is not None

    @property
    def home_margin(self) -> Optional[int]:
        if not self.is_final:
            return None
        return self.home_score - self.away_score

    @property
    def total_points(self) -> Optional[int]:
        if not self.is_final:
            return None
        return self.home_score + self.away_score

    def has_line(self, market: Market) -> bool:
        return self.market_line(market) is not None

    def market_line(self, market: Market) -> Optional[float]:
        """Line on the regression target's scale.

        TOTAL: the posted total. SPREAD: the implied home margin (-spread).
        """
        if market is Market.TOTAL:
            return self.total
        if self.spread is None:
            return None
        return -self.spread

    def realized(self, market: Market) -> Optional[float]:
        if market is Market.TOTAL:
            return self.total_points
        return self.home_margin

    def covered(self, market: Market) -> Optional[Direction]:
        """Side that beat the line, NEUTRAL on a push, None if not gradable."""
        line = self.market_line(market)
        actual = self.realized(market)
        if line is None or actual is None:
            return None
        positive, negative = Direction.sides(market)
        if actual > line:
            return positive
        if actual < line:
            return negative
        return Direction.NEUTRAL

    def grade(self, market: Market, side: Direction) -> Optional[Outcome]:
        winner = self.covered(market)
        if winner is None:
            return None
        if winner is Direction.NEUTRAL:
            return Outcome.PUSH
        return Outcome.WIN if winner is side else Outcome.LOSS

    def opponent_of(self, team_id: str) -> str:
        return self.away_id if team_id == self.home_id else self.home_id

    def to_dict(self) -> dict:
        return {
            "game_id": self.game_id,
            "sport": self.sport.value,
            "season": self.season,
            "date": self.date.isoformat(),
            "home_id": self.home_id,
            "away_id": self.away_id,
            "neutral_site": self.neutral_site,
            "conference_game": self.conference_game,
            "tournament": self.tournament,
            "spread": self.spread,
            "total": self.total,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "weather": self.weather.to_dict() if self.weather else None,
            "home_rank": self.home_rank,
            "away_rank": self.away_rank,
            "prices": self.prices.to_dict() if self.prices else None,
        }
