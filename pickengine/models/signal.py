"""Signal and pick records."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from .game import Outcome
from .sport import Direction, Market, Sport

MAX_MAGNITUDE = 10.0


class Strength(str, Enum):
    STRONG = "strong"
    MODERATE = "moderate"
    WEAK = "weak"
    NOISE = "noise"

    @property
    def is_meaningful(self) -> bool:
        return self in (Strength.STRONG, Strength.MODERATE)


def clamp(value: float, lo: float = 0.0, hi: float = MAX_MAGNITUDE) -> float:
    return max(lo, min(hi, value))


def strength_for(
    magnitude: float, strong: float = 7.0, moderate: float = 4.0, weak: float = 1.5
) -> Strength:
    if magnitude >= strong:
        return Strength.STRONG
    if magnitude >= moderate:
        return Strength.MODERATE
    if magnitude >= weak:
        return Strength.WEAK
    return Strength.NOISE


@dataclass(frozen=True)
class SignalResult:
    """Directional evidence from one generator for one (game, market)."""

    category: str
    direction: Direction
    magnitude: float  # 0-10
    confidence: float  # 0-1
    strength: Strength
    label: str = ""

    def __post_init__(self):
        if not 0.0 <= self.magnitude <= MAX_MAGNITUDE:
            raise ValueError(f"{self.category}: magnitude {self.magnitude} outside 0-{MAX_MAGNITUDE}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"{self.category}: confidence {self.confidence} outside 0-1")

    @classmethod
    def neutral(cls, category: str, label: str = "") -> "SignalResult":
        return cls(category, Direction.NEUTRAL, 0.0, 0.0, Strength.NOISE, label)

    @property
    def is_active(self) -> bool:
        return self.direction is not Direction.NEUTRAL and self.magnitude > 0

    @property
    def evidence(self) -> float:
        return self.magnitude * self.confidence

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "direction": self.direction.value,
            "magnitude": round(self.magnitude, 3),
            "confidence": round(self.confidence, 3),
            "strength": self.strength.value,
            "label": self.label,
        }


@dataclass
class Reason:
    """Audit line attached to a pick."""

    category: str
    label: str
    weight: int
    strength: Strength
    opposing: bool = False

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "label": self.label,
            "weight": self.weight,
            "strength": self.strength.value,
            "opposing": self.opposing,
        }


PickKey = Tuple[dt.date, Sport, Market, str, str]


@dataclass
class Pick:
    """A ranked decision for one (game, market)."""

    date: dt.date
    sport: Sport
    market: Market
    game_id: str
    home_id: str
    away_id: str
    side: Direction
    line: float
    score: int
    tier: int
    headline: str = ""
    model_edge: Optional[float] = None
    signals: List[SignalResult] = field(default_factory=list)
    reasons: List[Reason] = field(default_factory=list)
    result: Optional[Outcome] = None  # set once the game is final

    @property
    def key(self) -> PickKey:
        return (self.date, self.sport, self.market, self.home_id, self.away_id)

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "sport": self.sport.value,
            "market": self.market.value,
            "game_id": self.game_id,
            "home_id": self.home_id,
            "away_id": self.away_id,
            "side": self.side.value,
            "line": self.line,
            "score": self.score,
            "tier": self.tier,
            "headline": self.headline,
            "model_edge": self.model_edge,
            "signals": [s.to_dict() for s in self.signals],
            "reasons": [r.to_dict() for r in self.reasons],
            "result": self.result.value if self.result is not None else None,
        }
