"""Feature columns built from a game's matched pre-game snapshots."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Dict, Sequence

import numpy as np

if TYPE_CHECKING:
    from ..data.snapshots import MatchedGame


def _momentum(m: "MatchedGame", horizon: int, attr: str, combine: str) -> float:
    home = getattr(m.momentum("home", horizon), attr)
    away = getattr(m.momentum("away", horizon), attr)
    return home - away if combine == "diff" else home + away


_EXTRACTORS: Dict[str, Callable[["MatchedGame"], float]] = {
    "intercept": lambda m: 1.0,
    "sum_de": lambda m: m.home.snapshot.defense + m.away.snapshot.defense,
    "sum_oe": lambda m: m.home.snapshot.offense + m.away.snapshot.offense,
    "avg_tempo": lambda m: (m.home.snapshot.tempo + m.away.snapshot.tempo) / 2.0,
    "tempo_diff": lambda m: abs(m.home.snapshot.tempo - m.away.snapshot.tempo),
    "em_diff": lambda m: abs(m.home.snapshot.margin - m.away.snapshot.margin),
    "margin_diff": lambda m: m.home.snapshot.margin - m.away.snapshot.margin,
    "em_momentum_diff_7d": lambda m: _momentum(m, 7, "margin", "diff"),
    "sum_oe_delta_7d": lambda m: _momentum(m, 7, "offense", "sum"),
    "sum_de_delta_7d": lambda m: _momentum(m, 7, "defense", "sum"),
    "tempo_shift_7d": lambda m: _momentum(m, 7, "tempo", "sum") / 2.0,
    "em_momentum_diff_14d": lambda m: _momentum(m, 14, "margin", "diff"),
    "is_conference": lambda m: 1.0 if m.game.conference_game else 0.0,
    "is_neutral": lambda m: 1.0 if m.game.neutral_site else 0.0,
}

FEATURE_NAMES = tuple(_EXTRACTORS)
DEFAULT_FEATURES = ("intercept", "sum_de", "sum_oe", "avg_tempo")


def feature_row(matched: "MatchedGame", features: Sequence[str]) -> np.ndarray:
    return np.array([_EXTRACTORS[name](matched) for name in features], dtype=float)


def design_matrix(matched_games: Sequence["MatchedGame"], features: Sequence[str]) -> np.ndarray:
    if not matched_games:
        return np.zeros((0, len(features)), dtype=float)
    return np.vstack([feature_row(m, features) for m in matched_games])
