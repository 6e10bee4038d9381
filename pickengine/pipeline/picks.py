"""Daily pick generation.

For one date: fit (or reuse) the season's predictor on earlier seasons, run
every signal generator for each lined game and market, score convergence,
and upsert every tiered result into a `PickStore` by natural key.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from ..data.context import RunContext
from ..data.snapshots import MatchedGame
from ..models.game import Game
from ..models.signal import Pick, PickKey, SignalResult, Strength
from ..models.sport import MODEL_EDGE, WEATHER, Direction, Market, Sport
from ..predictors.base import BasePredictor
from ..scoring.convergence import ConvergenceResult, ConvergenceScorer
from ..signals.base import SignalInputs
from ..signals.registry import generate_signals
from .training import SeasonModels

logger = logging.getLogger(__name__)


@dataclass
class GameEvaluation:
    """Everything computed for one (game, market) before tiering becomes a pick."""

    game: Game
    market: Market
    signals: List[SignalResult]
    result: ConvergenceResult
    prediction: Optional[float] = None
    edge: Optional[float] = None
    avg_tempo: Optional[float] = None
    matched: Optional[MatchedGame] = field(default=None, repr=False)

    @property
    def line(self) -> Optional[float]:
        """The posted line: the total, or the home spread."""
        return self.game.total if self.market is Market.TOTAL else self.game.spread


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class PickStore:
    """Picks keyed by (date, sport, market, home, away).

    Writing the same key twice replaces the earlier pick, so regenerating a
    date never duplicates rows.
    """

    def __init__(self, picks: Optional[Iterable[Pick]] = None):
        self._picks: Dict[PickKey, Pick] = {}
        for pick in picks or []:
            self.upsert(pick)

    def __len__(self) -> int:
        return len(self._picks)

    def __contains__(self, key) -> bool:
        return key in self._picks

    def upsert(self, pick: Pick) -> bool:
        """Insert or replace. Returns True when the key was new."""
        is_new = pick.key not in self._picks
        self._picks[pick.key] = pick
        return is_new

    def replace_day(self, day: dt.date, sport: Sport, picks: Sequence[Pick]) -> None:
        """Make ``picks`` the full set for (day, sport), dropping keys no longer produced."""
        keep = {p.key for p in picks}
        stale = [k for k in self._picks if k[0] == day and k[1] is sport and k not in keep]
        for key in stale:
            del self._picks[key]
        for pick in picks:
            self.upsert(pick)
        if stale:
            logger.info("Dropped %d stale picks for %s %s", len(stale), sport.value, day)

    def picks_on(self, day: dt.date, sport: Optional[Sport] = None) -> List[Pick]:
        picks = [p for p in self._picks.values() if p.date == day and (sport is None or p.sport is sport)]
        return sorted(picks, key=lambda p: (-p.tier, -p.score, p.game_id, p.market.value))

    def grade(self, games: Iterable[Game]) -> int:
        """Attach W/L/P to every ungraded pick whose game is final. Returns the number graded."""
        by_id = {g.game_id: g for g in games}
        graded = 0
        for key, pick in self._picks.items():
            if pick.result is not None:
                continue
            game = by_id.get(pick.game_id)
            if game is None:
                continue
            outcome = game.grade(pick.market, pick.side)
            if outcome is None:
                continue
            self._picks[key] = replace(pick, result=outcome)
            graded += 1
        if graded:
            logger.info("Graded %d picks", graded)
        return graded

    def all(self) -> List[Pick]:
        return sorted(self._picks.values(), key=lambda p: (p.date, -p.tier, -p.score, p.game_id, p.market.value))

    def to_frame(self) -> pd.DataFrame:
        columns = ["date", "sport", "market", "game_id", "home_id", "away_id", "side", "line", "score", "tier",
                   "model_edge", "headline", "result"]
        rows = []
        for p in self.all():
            row = p.to_dict()
            rows.append({c: row[c] for c in columns})
        return pd.DataFrame(rows, columns=columns)

    def save_json(self, file_path: str) -> None:
        Path(file_path).parent.mkdir(parents=True, exist_ok=True)
        with open(file_path, "w") as f:
            json.dump({"picks": [p.to_dict() for p in self.all()]}, f, indent=2)


# ---------------------------------------------------------------------------
# Headlines
# ---------------------------------------------------------------------------


def _signal(signals: Sequence[SignalResult], category: str, side: Direction) -> Optional[SignalResult]:
    for s in signals:
        if s.category == category and s.direction is side:
            return s
    return None


def _agreeing(signals: Sequence[SignalResult], side: Direction) -> int:
    return sum(1 for s in signals if s.direction is side and s.strength is not Strength.NOISE)


def spread_headline(
    team: str, team_line: float, tier: int, signals: Sequence[SignalResult], side: Direction,
    edge: Optional[float] = None,
) -> str:
    line_label = f"{team_line:+g}" if team_line else "PK"
    agreeing = _agreeing(signals, side)
    model = _signal(signals, MODEL_EDGE, side)
    side_edge = abs(edge) if edge is not None else None

    if tier >= 5:
        if model is not None and model.magnitude >= 5 and side_edge is not None:
            return f"{agreeing} signals align: model sees {side_edge:.1f} pts of value on {team}"
        return f"Strong convergence: {agreeing} independent edges favor {team} {line_label}"
    if tier >= 4:
        if model is not None and model.magnitude >= 3 and side_edge is not None:
            return f"Model edge: {team} has {side_edge:.1f} pts of line value"
        if agreeing >= 3:
            return f"{agreeing} trend angles favor {team} {line_label}"
        return f"ATS advantage backs {team} {line_label}"
    if agreeing >= 2:
        return f"{agreeing} factors lean {team} {line_label}"
    return f"Slight lean: {team} {line_label}"


def total_headline(
    line: float, tier: int, signals: Sequence[SignalResult], side: Direction,
    prediction: Optional[float] = None, edge: Optional[float] = None,
) -> str:
    label = side.value.capitalize()
    model = _signal(signals, MODEL_EDGE, side)
    if tier >= 5 and model is not None and model.magnitude >= 4 and prediction is not None and edge is not None:
        return f"Model projects {prediction:.1f} total: {edge:+.1f} pts from the {side.value} ({line:g})"
    if tier >= 4:
        weather = _signal(signals, WEATHER, side)
        if weather is not None and weather.magnitude >= 3:
            return f"Weather and trend data favor {label} {line:g}"
        return f"{_agreeing(signals, side)} signals favor {label} {line:g}"
    return f"Lean: {label} {line:g}"


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


class PickGenerator:
    """Scores a run context's games into tiered picks."""

    def __init__(
        self,
        context: RunContext,
        markets: Sequence[Market] = (Market.SPREAD, Market.TOTAL),
        store: Optional[PickStore] = None,
        models: Optional[SeasonModels] = None,
    ):
        self.context = context
        self.markets = tuple(Market(m) for m in markets)
        self.store = store if store is not None else PickStore()
        self.models = models or SeasonModels(context)
        config = context.config
        self.scorers: Dict[Market, ConvergenceScorer] = {
            m: ConvergenceScorer(config.weight_table(context.sport, m), config.tier_scheme(context.sport, m))
            for m in (Market.SPREAD, Market.TOTAL)
        }

    def inputs(self, game: Game, market: Market, predictor: Optional[BasePredictor]) -> SignalInputs:
        return SignalInputs(
            game=game,
            market=market,
            history=self.context.history,
            profile=self.context.profile,
            matched=self.models.matched(game) if self.context.profile.uses_rating_snapshots else None,
            predictor=predictor,
            angles=self.context.angles,
            conferences=self.context.conferences,
        )

    def evaluate(self, game: Game, market: Market, predictor: Optional[BasePredictor]) -> GameEvaluation:
        """Signals, convergence and tier for one (game, market)."""
        inputs = self.inputs(game, market, predictor)
        signals = generate_signals(inputs)
        prediction = predictor.predict(game, market) if predictor is not None else None
        line = game.market_line(market)
        edge = prediction - line if prediction is not None and line is not None else None
        matched = inputs.matched
        avg_tempo = None
        if matched is not None:
            avg_tempo = (matched.home.snapshot.tempo + matched.away.snapshot.tempo) / 2.0
        posted = game.total if market is Market.TOTAL else game.spread
        result = self.scorers[market].evaluate(signals, edge=edge, avg_tempo=avg_tempo, line=posted)
        return GameEvaluation(
            game=game,
            market=market,
            signals=signals,
            result=result,
            prediction=prediction,
            edge=edge,
            avg_tempo=avg_tempo,
            matched=matched,
        )

    def build_pick(self, evaluation: GameEvaluation) -> Optional[Pick]:
        """A pick for a tiered evaluation, None below the lowest tier."""
        result = evaluation.result
        if not result.has_pick or result.tier == 0:
            return None
        g, market, side = evaluation.game, evaluation.market, result.side
        if market is Market.TOTAL:
            line = g.total
            headline = total_headline(line, result.tier, evaluation.signals, side, evaluation.prediction, evaluation.edge)
        else:
            line = g.spread if side is Direction.HOME else -g.spread
            team_id = g.home_id if side is Direction.HOME else g.away_id
            team = self.context.resolver.get_display_name(team_id)
            headline = spread_headline(team, line, result.tier, evaluation.signals, side, evaluation.edge)
        return Pick(
            date=g.date,
            sport=g.sport,
            market=market,
            game_id=g.game_id,
            home_id=g.home_id,
            away_id=g.away_id,
            side=side,
            line=line,
            score=result.score,
            tier=result.tier,
            headline=headline,
            model_edge=round(evaluation.edge, 2) if evaluation.edge is not None else None,
            signals=[s for s in evaluation.signals if s.is_active],
            reasons=list(result.reasons),
        )

    def generate(self, day: dt.date, sport: Optional[Sport] = None) -> List[Pick]:
        """
        Generate and store the picks for one date.

        Args:
            day: Local calendar date of the games
            sport: Must match the context's sport when given

        Returns:
            The date's picks, best first. Running it again gives the same set.
        """
        if sport is not None and Sport(sport) is not self.context.sport:
            raise ValueError(f"context holds {self.context.sport.value} games, not {Sport(sport).value}")
        games = self.context.games_on(day)
        if not games:
            logger.info("No %s games on %s", self.context.sport.value, day)
            self.store.replace_day(day, self.context.sport, [])
            return []

        predictor = self.models.predictor(games[0].season, self.markets)
        picks = []
        for game in games:
            for market in self.markets:
                if not game.has_line(market):
                    continue
                pick = self.build_pick(self.evaluate(game, market, predictor))
                if pick is not None:
                    picks.append(pick)
        self.store.replace_day(day, self.context.sport, picks)
        logger.info(
            "%s %s: %d picks from %d games", self.context.sport.value, day, len(picks), len(games),
        )
        return self.store.picks_on(day, self.context.sport)
