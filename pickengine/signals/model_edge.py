"""Signals from a predictive model: raw edge, and model vs market probability."""

from __future__ import annotations

from ..models.signal import SignalResult, clamp
from ..models.sport import MARKET_DIVERGENCE, MODEL_EDGE, Direction, Market
from ..predictors.base import edge_direction
from .base import SignalInputs, make_signal
from .significance import cover_probability, vig_free_probability

# magnitude thresholds (strong, moderate, weak) per market
_EDGE_STRENGTHS = {
    Market.SPREAD: (7.0, 4.0, 1.5),
    Market.TOTAL: (5.0, 3.0, 1.0),
}

DIVERGENCE_FLOOR = 0.03


def model_edge(inputs: SignalInputs) -> SignalResult:
    """Predicted value minus the market line, scaled into a magnitude."""
    predictor = inputs.predictor
    g, market = inputs.game, inputs.market
    if predictor is None:
        return SignalResult.neutral(MODEL_EDGE, "No model available")
    line = g.market_line(market)
    if line is None:
        return SignalResult.neutral(MODEL_EDGE, "No market line")
    predicted = predictor.predict(g, market)
    if predicted is None:
        return SignalResult.neutral(MODEL_EDGE, f"{predictor.name}: no prediction")

    edge = predicted - line
    label = f"{predictor.name}: predicted {predicted:.1f} vs line {line:g}, edge {edge:+.1f}"
    if abs(edge) <= predictor.edge_threshold[market]:
        return SignalResult.neutral(MODEL_EDGE, label)
    direction = edge_direction(edge, market)
    magnitude = clamp(abs(edge) / predictor.edge_scale[market])
    strong, moderate, weak = _EDGE_STRENGTHS[market]
    return make_signal(
        MODEL_EDGE, direction, magnitude, predictor.confidence(g, market), label,
        strong=strong, moderate=moderate, weak=weak,
    )


def _price(prices, side: Direction):
    if prices is None:
        return None
    return getattr(prices, side.value)


def market_divergence(inputs: SignalInputs) -> SignalResult:
    """Model-implied cover probability against the vig-free market price."""
    predictor = inputs.predictor
    g, market = inputs.game, inputs.market
    if predictor is None:
        return SignalResult.neutral(MARKET_DIVERGENCE, "No model available")
    sigma = predictor.sigma(market)
    edge = predictor.edge(g, market)
    if sigma is None or edge is None:
        return SignalResult.neutral(MARKET_DIVERGENCE, "No model probability")
    side = edge_direction(edge, market)
    if side is Direction.NEUTRAL:
        return SignalResult.neutral(MARKET_DIVERGENCE, "Model agrees with the line")

    model_p = cover_probability(edge, sigma)
    market_p = vig_free_probability(_price(g.prices, side), _price(g.prices, side.opposite))
    divergence = model_p - market_p
    label = f"Model {model_p:.1%} vs market {market_p:.1%} on {side.value}"
    if divergence < DIVERGENCE_FLOOR:
        return SignalResult.neutral(MARKET_DIVERGENCE, label)
    magnitude = clamp(divergence * 40)
    confidence = clamp(predictor.confidence(g, market) * 0.75, 0.0, 1.0)
    return make_signal(MARKET_DIVERGENCE, side, magnitude, confidence, label)
