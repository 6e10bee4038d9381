"""Signals from each team's own results: season record, recent form, H2H, rest."""

from __future__ import annotations

from typing import Dict, NamedTuple

from ..data.history import Record
from ..models.signal import SignalResult, clamp
from ..models.sport import H2H, RECENT_FORM, REST, SEASON_ATS, SEASON_OU, Direction, Sport
from .base import SignalInputs, make_signal
from .significance import wilson_edge, wilson_interval


def _season_records(inputs: SignalInputs):
    g = inputs.game
    home, _ = inputs.history.season_record(g.home_id, g.season, g.date)
    away, _ = inputs.history.season_record(g.away_id, g.season, g.date)
    return home, away


# ---------------------------------------------------------------------------
# Season records
# ---------------------------------------------------------------------------


def season_ats(inputs: SignalInputs) -> SignalResult:
    """Wilson-adjusted cover rate, home vs away, this season to date."""
    home, away = _season_records(inputs)
    home_edge = wilson_edge(home.ats_covered, home.ats_total, min_n=5)
    away_edge = wilson_edge(away.ats_covered, away.ats_total, min_n=5)
    net = home_edge - away_edge
    magnitude = clamp(abs(net) * 50)
    label = f"Season ATS: home {home.ats_string()}, away {away.ats_string()}"
    if magnitude < 0.5:
        return SignalResult.neutral(SEASON_ATS, label)
    confidence = clamp(0.3 + min(home.ats_total, away.ats_total) * 0.02, 0.3, 0.8)
    direction = Direction.HOME if net > 0 else Direction.AWAY
    return make_signal(SEASON_ATS, direction, magnitude, confidence, label, strong=7, moderate=3.5, weak=0)


def season_ou(inputs: SignalInputs) -> SignalResult:
    home, away = _season_records(inputs)
    home_edge = wilson_edge(home.overs, home.ou_total, min_n=8)
    away_edge = wilson_edge(away.overs, away.ou_total, min_n=8)
    lean = (home_edge + away_edge) / 2.0
    magnitude = clamp(abs(lean) * 50)
    label = (
        f"Season O/U: home {home.ou_string()} ({home.over_pct:.0f}%), "
        f"away {away.ou_string()} ({away.over_pct:.0f}%)"
    )
    if magnitude < 0.5:
        return SignalResult.neutral(SEASON_OU, label)
    confidence = clamp(0.3 + min(home.ou_total, away.ou_total) * 0.015, 0.3, 0.75)
    direction = Direction.OVER if lean > 0 else Direction.UNDER
    return make_signal(SEASON_OU, direction, magnitude, confidence, label, strong=6, moderate=3, weak=0)


# ---------------------------------------------------------------------------
# Recent form (last five)
# ---------------------------------------------------------------------------


def _last_five(inputs: SignalInputs):
    g = inputs.game
    home = Record.from_games(inputs.history.team_games(g.home_id, g.date, season=g.season, last_n=5))
    away = Record.from_games(inputs.history.team_games(g.away_id, g.date, season=g.season, last_n=5))
    return home, away


def _streak_bonus(covers: int) -> float:
    if covers >= 5:
        return 2.0
    if covers >= 4:
        return 1.0
    return 0.0


def recent_form(inputs: SignalInputs) -> SignalResult:
    if not inputs.is_spread:
        return recent_form_ou(inputs)
    home, away = _last_five(inputs)
    if home.ats_total < 3 and away.ats_total < 3:
        return SignalResult.neutral(RECENT_FORM, "Insufficient recent data")

    home_rate = home.ats_covered / home.ats_total if home.ats_total else 0.5
    away_rate = away.ats_covered / away.ats_total if away.ats_total else 0.5
    net = home_rate - away_rate
    magnitude = clamp(abs(net) * 10)
    magnitude = clamp(magnitude + _streak_bonus(home.ats_covered))
    magnitude = clamp(magnitude + _streak_bonus(away.ats_covered))

    label = f"Last 5 ATS: home {home.ats_string()}, away {away.ats_string()}"
    if magnitude < 1 or net == 0:
        return SignalResult.neutral(RECENT_FORM, label)
    confidence = clamp(0.4 + min(home.ats_total, away.ats_total) * 0.08, 0.4, 0.7)
    direction = Direction.HOME if net > 0 else Direction.AWAY
    return make_signal(RECENT_FORM, direction, magnitude, confidence, label, weak=0)


def recent_form_ou(inputs: SignalInputs) -> SignalResult:
    home, away = _last_five(inputs)
    if home.ou_total < 3 and away.ou_total < 3:
        return SignalResult.neutral(RECENT_FORM, "Insufficient recent O/U data")
    home_rate = home.overs / home.ou_total if home.ou_total else 0.5
    away_rate = away.overs / away.ou_total if away.ou_total else 0.5
    lean = (home_rate + away_rate) / 2.0 - 0.5
    magnitude = clamp(abs(lean) * 20)
    label = f"Recent O/U: home {home.ou_string()}, away {away.ou_string()}"
    if magnitude < 1:
        return SignalResult.neutral(RECENT_FORM, label)
    direction = Direction.OVER if lean > 0 else Direction.UNDER
    return make_signal(RECENT_FORM, direction, magnitude, 0.5, label, strong=6, moderate=3, weak=0)


# ---------------------------------------------------------------------------
# Head to head
# ---------------------------------------------------------------------------


def head_to_head(inputs: SignalInputs) -> SignalResult:
    g = inputs.game
    meetings = inputs.history.head_to_head(g.home_id, g.away_id, g.date)
    if len(meetings) < 3:
        return SignalResult.neutral(H2H, f"H2H: {len(meetings)} games (insufficient)")
    record = Record.from_games(meetings)
    if inputs.is_spread:
        return _h2h_spread(record)
    return _h2h_total(record, meetings, g.total)


def _h2h_spread(record: Record) -> SignalResult:
    n = record.ats_total
    if n < 3:
        return SignalResult.neutral(H2H, "H2H ATS data insufficient")
    lower, _ = wilson_interval(record.ats_covered, n)
    edge = lower - 0.5
    magnitude = clamp(abs(edge) * 40)
    label = f"H2H ATS: {record.ats_string()} ({record.ats_pct:.0f}%) in {n} games"
    if magnitude < 0.5:
        return SignalResult.neutral(H2H, f"H2H ATS: {record.ats_string()} (even)")
    confidence = clamp(0.3 + n * 0.03, 0.3, 0.7)
    direction = Direction.HOME if edge > 0 else Direction.AWAY
    return make_signal(H2H, direction, magnitude, confidence, label, strong=6, moderate=3, weak=0)


def _h2h_total(record: Record, meetings, line) -> SignalResult:
    magnitude = 0.0
    confidence = 0.4
    direction = Direction.NEUTRAL
    parts = []
    if line is not None and record.games:
        avg_total = (record.points_for + record.points_against) / record.games
        diff = avg_total - line
        if abs(diff) >= 3:
            magnitude += clamp(abs(diff) / 2.0, 0.0, 6.0)
            direction = Direction.OVER if diff > 0 else Direction.UNDER
            confidence = min(confidence + 0.1, 0.7)
            parts.append(f"H2H avg {avg_total:.1f} vs line {line:g} ({diff:+.1f})")
    if record.ou_total >= 5:
        over_rate = record.overs / record.ou_total
        if abs(over_rate - 0.5) > 0.15:
            magnitude += 2.0
            if direction is Direction.NEUTRAL:
                direction = Direction.OVER if over_rate > 0.5 else Direction.UNDER
            parts.append(f"H2H O/U: {record.ou_string()}")
    if magnitude < 1:
        return SignalResult.neutral(H2H, "No H2H total pattern")
    return make_signal(H2H, direction, magnitude, confidence, ", ".join(parts), strong=6, moderate=3, weak=0)


# ---------------------------------------------------------------------------
# Rest
# ---------------------------------------------------------------------------


class _RestScale(NamedTuple):
    short_rest: int  # at or below: back-to-back / short week
    cap: int  # rest beyond this adds nothing
    per_day: float


_REST_SCALES: Dict[Sport, _RestScale] = {
    Sport.NCAAMB: _RestScale(short_rest=1, cap=7, per_day=1.5),
    Sport.NFL: _RestScale(short_rest=5, cap=14, per_day=0.5),
    Sport.NCAAF: _RestScale(short_rest=5, cap=14, per_day=0.5),
}


def rest_advantage(inputs: SignalInputs) -> SignalResult:
    """Rest-day differential, with a penalty for a back-to-back / short week."""
    g = inputs.game
    home_rest = inputs.history.rest_days(g.home_id, g.date)
    away_rest = inputs.history.rest_days(g.away_id, g.date)
    if home_rest is None or away_rest is None:
        return SignalResult.neutral(REST, "No prior game for rest comparison")

    scale = _REST_SCALES[inputs.profile.sport]
    diff = min(home_rest, scale.cap) - min(away_rest, scale.cap)
    label = f"Rest: home {home_rest}d, away {away_rest}d"
    if diff == 0:
        return SignalResult.neutral(REST, label)

    magnitude = abs(diff) * scale.per_day
    tired_rest = away_rest if diff > 0 else home_rest
    if tired_rest <= scale.short_rest:
        magnitude += 2.0
        label += " (short rest)"
    if magnitude < 1.5:
        return SignalResult.neutral(REST, label)
    direction = Direction.HOME if diff > 0 else Direction.AWAY
    return make_signal(REST, direction, magnitude, 0.35, label)
