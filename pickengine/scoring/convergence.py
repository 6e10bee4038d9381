"""Convergence scoring: many directional signals → one score, side, and tier.

The score starts at 50 and moves by how far the winning side's weighted
evidence exceeds the other side's, relative to the most evidence the weight
table could have produced. Agreement across many categories earns a bonus;
strong signals pointing the other way cost a penalty.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence

from ..config import TierContext, TierScheme, WeightTable, default_tier_scheme
from ..models.signal import Reason, SignalResult, Strength, clamp
from ..models.sport import Direction
from ..predictors.base import edge_direction

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 50
OPPOSING_PREFIX = "[OPPOSING] "


@dataclass
class ConvergenceResult:
    score: int
    side: Direction
    tier: int = 0
    raw_strength: float = 0.0
    active: int = 0
    agreeing: int = 0
    reasons: List[Reason] = field(default_factory=list)
    # the side the signals favour; differs from ``side`` only under a model-side scheme
    convergence_side: Direction = Direction.NEUTRAL

    @property
    def has_pick(self) -> bool:
        return self.side is not Direction.NEUTRAL

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "side": self.side.value,
            "tier": self.tier,
            "raw_strength": round(self.raw_strength, 4),
            "active": self.active,
            "agreeing": self.agreeing,
            "reasons": [r.to_dict() for r in self.reasons],
            "convergence_side": self.convergence_side.value,
        }


def _reasons(active: Sequence[SignalResult], side: Direction) -> List[Reason]:
    ordered = sorted(
        (s for s in active if s.strength is not Strength.NOISE),
        key=lambda s: (s.direction is not side, -s.evidence),
    )
    return [
        Reason(
            category=s.category,
            label=s.label if s.direction is side else OPPOSING_PREFIX + s.label,
            weight=int(round(s.evidence * 10)),
            strength=s.strength,
            opposing=s.direction is not side,
        )
        for s in ordered
    ]


def score_signals(signals: Sequence[SignalResult], weights: WeightTable) -> ConvergenceResult:
    """Score and side for one (game, market). Tier is left at 0."""
    active = [s for s in signals if s.is_active]
    if not active:
        return ConvergenceResult(score=NEUTRAL_SCORE, side=Direction.NEUTRAL)

    total_possible = 0.0
    sums: Dict[Direction, float] = {}
    for s in signals:
        w = weights.weight_for(s.category)
        total_possible += w * 10
        if s.is_active:
            sums[s.direction] = sums.get(s.direction, 0.0) + w * s.magnitude * s.confidence

    ranked = sorted(sums.items(), key=lambda kv: kv[1], reverse=True)
    best_side, best_sum = ranked[0]
    opposite_sum = sum(v for _, v in ranked[1:])
    if len(ranked) > 1 and ranked[1][1] == best_sum:
        logger.debug("Exact tie between %s and %s; no pick", best_side.value, ranked[1][0].value)
        return ConvergenceResult(score=NEUTRAL_SCORE, side=Direction.NEUTRAL, active=len(active))
    if best_sum <= 0:
        # every active signal sits in a zero-weight category
        return ConvergenceResult(score=NEUTRAL_SCORE, side=Direction.NEUTRAL, active=len(active))

    raw = (best_sum - opposite_sum) / total_possible if total_possible > 0 else 0.0
    score = NEUTRAL_SCORE + raw * 80

    agreeing = [s for s in active if s.direction is best_side]
    opposing = [s for s in active if s.direction is not best_side]
    agree_ratio = len(agreeing) / len(active)
    if len(active) >= 3:
        if agree_ratio >= 0.8:
            score += 8
        elif agree_ratio >= 0.6:
            score += 4

    strong_opposing = sum(1 for s in opposing if s.strength.is_meaningful)
    if strong_opposing >= 2:
        score -= 10
    elif strong_opposing == 1:
        score -= 5

    strong_agreeing = sum(1 for s in agreeing if s.strength.is_meaningful)
    if strong_agreeing >= 3:
        score += 6
    elif strong_agreeing >= 2:
        score += 3

    return ConvergenceResult(
        score=int(clamp(math.floor(score + 0.5), 0, 100)),  # half rounds up
        side=best_side,
        convergence_side=best_side,
        raw_strength=raw,
        active=len(active),
        agreeing=len(agreeing),
        reasons=_reasons(active, best_side),
    )


class ConvergenceScorer:
    """A weight table and a tier scheme for one (sport, market).

    Under a ``side_source="model"`` scheme the pick is made on the side of
    the model edge, with the convergence score as its strength; a missing or
    zero edge is no pick even when the signals agree.
    """

    def __init__(self, weights: WeightTable, scheme: Optional[TierScheme] = None):
        self.weights = weights
        self.scheme = scheme or default_tier_scheme()

    @property
    def market(self):
        return self.weights.market

    def evaluate(
        self,
        signals: Sequence[SignalResult],
        edge: Optional[float] = None,
        avg_tempo: Optional[float] = None,
        line: Optional[float] = None,
    ) -> ConvergenceResult:
        result = score_signals(signals, self.weights)
        if self.scheme.side_source == "model":
            result = self._on_model_side(result, signals, edge)
        if not result.has_pick:
            return result
        ctx = TierContext(score=result.score, side=result.side, edge=edge, avg_tempo=avg_tempo, line=line)
        return replace(result, tier=self.scheme.assign(ctx))

    def _on_model_side(
        self, result: ConvergenceResult, signals: Sequence[SignalResult], edge: Optional[float]
    ) -> ConvergenceResult:
        side = edge_direction(edge, self.market)
        if side is result.side:
            return result
        active = [s for s in signals if s.is_active]
        return replace(
            result,
            side=side,
            agreeing=sum(1 for s in active if s.direction is side),
            reasons=_reasons(active, side) if side is not Direction.NEUTRAL else [],
        )
