"""Efficiency-rating matchup signals (sports with rating snapshots)."""

from __future__ import annotations

from typing import List, Optional, Tuple

from ..models.signal import SignalResult, clamp
from ..models.sport import EFFICIENCY_MATCHUP, PACE_TOTAL, Direction
from .base import SignalInputs, make_signal

POWER_CONFERENCES = frozenset({
    "ACC", "B10", "B12", "BE", "P12", "SEC",
    "Big Ten", "Big 12", "Big East", "Pac-12",
})

# (summed defensive efficiency bound, magnitude, confidence), checked in order
_OVER_BANDS = ((210.0, 8.0, 0.92), (205.0, 6.0, 0.85), (200.0, 4.0, 0.75))
_UNDER_BANDS = ((185.0, 10.0, 0.95), (190.0, 8.0, 0.92), (195.0, 5.0, 0.80))

PACE_THRESHOLD = 2.0


def _ranked_within(rank: Optional[int], top: int) -> bool:
    return rank is not None and rank <= top


def efficiency_matchup(inputs: SignalInputs) -> SignalResult:
    m = inputs.matched
    if m is None:
        return SignalResult.neutral(EFFICIENCY_MATCHUP, "No pre-game ratings")
    if inputs.is_spread:
        return _spread_matchup(inputs)
    return _total_matchup(inputs)


def _spread_matchup(inputs: SignalInputs) -> SignalResult:
    g, m = inputs.game, inputs.matched
    if g.spread is None:
        return SignalResult.neutral(EFFICIENCY_MATCHUP, "No spread")
    home, away = m.home.snapshot, m.away.snapshot
    advantage = 0.0 if g.neutral_site else inputs.profile.home_advantage
    edge = home.margin - away.margin + advantage + g.spread
    magnitude = clamp(abs(edge) / 0.7)
    confidence = 0.8
    notes = ""

    # home-side edges only hold up in November and December
    early_season = g.date.month >= 11
    if edge > 0.5 and not early_season:
        magnitude *= 0.4
        confidence = 0.45
        notes = " [home edge weak Jan+]"
    if g.date.month == 3 and edge > 0.5 and _ranked_within(m.home.rank, 25):
        magnitude *= 0.3
        confidence = 0.40
        notes = " [March top-25 home fade]"

    if edge > 0.5:
        direction = Direction.HOME
    elif edge < -0.5:
        direction = Direction.AWAY
    else:
        direction = Direction.NEUTRAL
    label = (
        f"Ratings: #{m.home.rank} ({home.margin:+.1f}) vs #{m.away.rank} ({away.margin:+.1f}), "
        f"edge {edge:+.1f}{notes}"
    )
    return make_signal(EFFICIENCY_MATCHUP, direction, magnitude, confidence, label)


def _defense_band(sum_de: float) -> Tuple[Direction, float, float, str]:
    for floor, mag, conf in _OVER_BANDS:
        if sum_de > floor:
            return Direction.OVER, mag, conf, f"sum DE {sum_de:.1f} over zone"
    for ceiling, mag, conf in _UNDER_BANDS:
        if sum_de < ceiling:
            return Direction.UNDER, mag, conf, f"sum DE {sum_de:.1f} under zone"
    return Direction.NEUTRAL, 0.0, 0.0, f"sum DE {sum_de:.1f} neutral"


def _total_matchup(inputs: SignalInputs) -> SignalResult:
    g, m = inputs.game, inputs.matched
    if g.total is None:
        return SignalResult.neutral(EFFICIENCY_MATCHUP, "No total")
    home, away = m.home.snapshot, m.away.snapshot
    sum_de = home.defense + away.defense
    avg_tempo = (home.tempo + away.tempo) / 2.0
    direction, magnitude, confidence, first = _defense_band(sum_de)
    parts: List[str] = [first]

    if direction is Direction.OVER and avg_tempo > 70 and sum_de > 205:
        magnitude += 2
        confidence = min(confidence + 0.05, 1.0)
        parts.append(f"fast tempo {avg_tempo:.1f}")
    elif direction is Direction.OVER and avg_tempo > 68 and sum_de > 200:
        magnitude += 1
        parts.append(f"tempo {avg_tempo:.1f}")
    elif direction is Direction.UNDER and avg_tempo < 64 and sum_de < 195:
        magnitude += 2
        confidence = min(confidence + 0.05, 1.0)
        parts.append(f"slow tempo {avg_tempo:.1f}")

    both_top50 = _ranked_within(m.home.rank, 50) and _ranked_within(m.away.rank, 50)
    if both_top50:
        direction, magnitude, confidence = Direction.UNDER, 10.0, 0.95
        parts.append(f"both top-50 (#{m.home.rank} vs #{m.away.rank})")

    conferences = inputs.conferences
    both_power = (
        conferences.get(g.home_id) in POWER_CONFERENCES
        and conferences.get(g.away_id) in POWER_CONFERENCES
    )
    if both_power and not both_top50:
        if direction is Direction.UNDER:
            magnitude += 2
            parts.append("both power conference")
        else:
            direction = Direction.UNDER
            magnitude = max(magnitude, 6.0)
            confidence = max(confidence, 0.82)
            parts.append("power conference under override")

    if (m.home.rank or 0) > 200 and (m.away.rank or 0) > 200:
        if direction is Direction.OVER:
            magnitude += 1
            parts.append("both ranked 200+")
        elif direction is Direction.NEUTRAL:
            direction = Direction.OVER
            magnitude = max(magnitude, 5.0)
            confidence = max(confidence, 0.78)
            parts.append("both ranked 200+ lean over")

    if g.date.month == 3:
        if direction is Direction.UNDER:
            magnitude += 1
            parts.append("March under bias")
        elif direction is Direction.NEUTRAL:
            direction, magnitude = Direction.UNDER, 3.0
            confidence = max(confidence, 0.60)
            parts.append("March under lean")

    if g.total > 155:
        if direction is Direction.UNDER:
            magnitude += 1
            parts.append(f"high line {g.total:g}")
        elif direction is Direction.NEUTRAL:
            direction, magnitude = Direction.UNDER, 3.0
            confidence = max(confidence, 0.65)
            parts.append(f"high line {g.total:g} lean under")

    label = "Ratings O/U: " + " | ".join(parts)
    return make_signal(EFFICIENCY_MATCHUP, direction, magnitude, confidence, label, strong=6, moderate=3, weak=1)


def projected_total(inputs: SignalInputs) -> Optional[float]:
    """Possessions times average points per possession, both sides."""
    m = inputs.matched
    if m is None:
        return None
    home, away = m.home.snapshot, m.away.snapshot
    tempo = (home.tempo + away.tempo) / 2.0
    home_ppp = (home.offense + away.defense) / 200.0
    away_ppp = (away.offense + home.defense) / 200.0
    return tempo * (home_ppp + away_ppp)


def pace_total(inputs: SignalInputs) -> SignalResult:
    if inputs.is_spread:
        return SignalResult.neutral(PACE_TOTAL, "Totals only")
    projection = projected_total(inputs)
    line = inputs.game.total
    if projection is None or line is None:
        return SignalResult.neutral(PACE_TOTAL, "No pace projection")
    edge = projection - line
    label = f"Pace projection {projection:.1f} vs line {line:g} ({edge:+.1f})"
    if abs(edge) < PACE_THRESHOLD:
        return SignalResult.neutral(PACE_TOTAL, label)
    direction = Direction.OVER if edge > 0 else Direction.UNDER
    return make_signal(PACE_TOTAL, direction, abs(edge) / 2.0, 0.5, label, strong=5, moderate=3, weak=1)
