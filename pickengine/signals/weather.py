"""Weather signal for outdoor sports.

Totals: wind, gusts, cold and precipitation add up to a severity score; the
severity bucket scales it into a magnitude leaning under. Spreads: harsh
conditions lean to the home side, which is used to them.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from ..models.game import Weather
from ..models.signal import SignalResult, clamp
from ..models.sport import WEATHER, Direction
from .base import SignalInputs, make_signal

# (minimum severity, multiplier, name); checked top-down
SEVERITY_BUCKETS: Tuple[Tuple[float, float, str], ...] = (
    (6.0, 1.5, "severe"),
    (3.0, 1.25, "significant"),
    (1.0, 1.0, "mild"),
)


def classify_conditions(precipitation: float, wind: float, temperature: float) -> str:
    if precipitation > 0.1 and temperature <= 32:
        return "SNOW"
    if precipitation > 0.1:
        return "RAIN"
    if wind > 20:
        return "WIND"
    return "CLEAR"


def conditions_of(weather: Weather) -> str:
    if weather.conditions:
        return weather.conditions.upper()
    return classify_conditions(
        weather.precipitation or 0.0,
        weather.wind or 0.0,
        weather.temperature if weather.temperature is not None else 70.0,
    )


def severity(weather: Weather) -> Tuple[float, float, List[str]]:
    """Severity score, summed confidence, and the factors that contributed."""
    score = 0.0
    confidence = 0.0
    factors = []
    wind = weather.wind or 0.0
    if wind > 20:
        score += min(5.0, (wind - 20) / 5.0)
        confidence += 0.3
        factors.append(f"wind {wind:.0f} mph")
    if (weather.gust or 0.0) > 30:
        score += 1.0
        confidence += 0.1
        factors.append(f"gusts {weather.gust:.0f} mph")
    temp = weather.temperature
    if temp is not None and temp < 20:
        score += 1.5
        confidence += 0.15
        factors.append(f"{temp:.0f}F")
    elif temp is not None and temp < 35:
        score += 0.5
        confidence += 0.05
        factors.append(f"{temp:.0f}F")
    precip = weather.precipitation or 0.0
    if precip > 0.1:
        score += min(3.0, precip * 5)
        confidence += 0.2
        kind = "snow" if temp is not None and temp <= 32 else "rain"
        factors.append(f"{kind} {precip:.1f}in")
    return score, min(confidence, 1.0), factors


def severity_bucket(score: float) -> Optional[Tuple[float, str]]:
    for floor, multiplier, name in SEVERITY_BUCKETS:
        if score >= floor:
            return multiplier, name
    return None


def weather(inputs: SignalInputs) -> SignalResult:
    w = inputs.game.weather
    if inputs.profile.indoor:
        return SignalResult.neutral(WEATHER, "Indoor sport")
    if w is None or conditions_of(w) == "DOME":
        return SignalResult.neutral(WEATHER, "No weather impact")
    if inputs.is_spread:
        return _weather_spread(w)

    score, confidence, factors = severity(w)
    bucket = severity_bucket(score)
    if bucket is None:
        return SignalResult.neutral(WEATHER, "No weather impact")
    multiplier, name = bucket
    magnitude = round(clamp(score * multiplier), 1)
    label = f"Weather under lean ({name}): {', '.join(factors)}"
    return make_signal(WEATHER, Direction.UNDER, magnitude, round(confidence, 2), label,
                       strong=5, moderate=3, weak=0)


def _weather_spread(w: Weather) -> SignalResult:
    magnitude = 0.0
    parts = []
    if w.wind is not None and w.wind >= 20:
        magnitude += 4 if w.wind >= 30 else 2
        parts.append(f"Wind: {w.wind:.0f} mph")
    if w.temperature is not None and w.temperature <= 20:
        magnitude += 2
        parts.append(f"Cold: {w.temperature:.0f}F")
    kind = conditions_of(w)
    if kind == "SNOW":
        magnitude += 3
        parts.append("Snow game")
    elif kind == "RAIN":
        magnitude += 1
        parts.append("Rain")
    if magnitude < 1:
        return SignalResult.neutral(WEATHER, "No significant situational factors")
    label = ", ".join(parts) + " (home advantage)"
    return make_signal(WEATHER, Direction.HOME, magnitude, 0.4, label,
                       strong=float("inf"), moderate=5, weak=0)
